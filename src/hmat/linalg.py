import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg

from hmat.debug import DebugLinearOperator, IndentedPrinter
from hmat.util import nbytes


# SVD ALGORITHMS

def sparse_svd(mat, k):
    '''Compute the k largest singular triplets of mat with ARPACK,
    ordered by decreasing singular value.'''
    with IndentedPrinter() as _:
        _.print('svds(%d x %d, %d)' % (*mat.shape, k))
        wrapped_mat = DebugLinearOperator(mat)
        U, S, Vt = scipy.sparse.linalg.svds(wrapped_mat, k)
        wrapped_mat.debug_print()
    I = np.argsort(S)[::-1]
    return U[:, I], S[I], Vt[I, :]


def dense_svd(mat):
    if scipy.sparse.issparse(mat):
        mat = mat.toarray()
    with IndentedPrinter() as _:
        _.print('svd(%d x %d)' % mat.shape)
        return scipy.linalg.svd(mat, full_matrices=False)


def estimate_rank(mat, tol, max_nbytes=None, k0=40):
    '''Find a truncated SVD U@diag(S)@Vt of mat whose first discarded
    singular value is at most tol times the largest one.

    Small matrices are decomposed directly; for larger ones, ARPACK is
    asked for k0 singular triplets, then 2*k0, and so on, until the
    spectrum drops below tol.

    Returns (U, S, Vt, thresh), where thresh is the relative size of
    the first discarded singular value, or None if the truncated SVD
    would take at least max_nbytes bytes.

    '''
    if not (0 <= tol < 1):
        raise ValueError('tol should satisfy 0 <= tol < 1')

    m = min(mat.shape)
    if m == 0:
        raise ValueError('can\'t estimate the rank of an empty matrix')

    k = k0
    while True:
        if k >= m - 1 or m <= 2*k0:
            U, S, Vt = dense_svd(mat)
            exhausted = True
        else:
            U, S, Vt = sparse_svd(mat, k)
            exhausted = False

        if S[0] == 0:
            return U[:, :0], S[:0], Vt[:0, :], 0.0

        thresh = S/S[0]
        below_thresh = np.where(thresh <= tol)[0]
        if below_thresh.size > 0 or exhausted:
            r = below_thresh[0] if below_thresh.size > 0 else S.size
            svd_nbytes = nbytes((U[:, :r], S[:r], Vt[:r, :]))
            if max_nbytes is not None and svd_nbytes >= max_nbytes:
                return None
            return U[:, :r], S[:r], Vt[:r, :], (thresh[r] if r < S.size else 0.0)

        k *= 2


def recompress(A, B, tol):
    '''Recompress a low-rank factorization A@B by truncating the SVD of
    the product at relative tolerance tol (in the Frobenius norm).
    Returns (U, S, Vt).'''
    QA, RA = np.linalg.qr(A)
    QB, RB = np.linalg.qr(B.T)
    W, S, Zt = np.linalg.svd(RA@RB.T, full_matrices=False)

    if S.size == 0 or S[0] == 0:
        return QA@W[:, :0], S[:0], Zt[:0, :]@QB.T

    # tail[r] is the Frobenius norm of what's discarded if we keep r terms
    tail = np.sqrt(np.cumsum(S[::-1]**2))[::-1]
    keep = np.where(tail > tol*tail[0])[0]
    r = keep[-1] + 1 if keep.size > 0 else 0

    return QA@W[:, :r], S[:r], Zt[:r, :]@QB.T


# ACA ALGORITHMS

def cross_approximation_partial(get_row, get_col, shape, tol, max_rank=None,
                                dtype=np.float64):
    '''Adaptive cross approximation with partial pivoting.

    Builds A@B ~ M one cross at a time, evaluating only the pivot rows
    and columns of M. Stops once the newest rank-1 term is smaller than
    tol times the (estimated) Frobenius norm of the approximation, when
    max_rank terms have been added, or when no nonzero pivot is left.

    Parameters
    ----------
    get_row : callable
        get_row(i) returns row i of M (a length n array).
    get_col : callable
        get_col(j) returns column j of M (a length m array).
    shape : tuple
        The shape (m, n) of M.

    Returns (A, B, converged) with A of shape (m, k) and B of shape
    (k, n). converged is False if max_rank was reached before the
    stopping criterion was met.

    '''
    m, n = shape
    if max_rank is None:
        max_rank = min(m, n)
    max_rank = min(max_rank, m, n)

    us, vs = [], []
    used_rows = np.zeros(m, dtype=bool)
    used_cols = np.zeros(n, dtype=bool)
    norm_sq = 0.0
    converged = False

    i_star = 0
    while len(us) < max_rank:
        used_rows[i_star] = True

        # Residual of the pivot row
        row = np.array(get_row(i_star), dtype=dtype)
        for u, v in zip(us, vs):
            row -= u[i_star]*v

        abs_row = abs(row)
        abs_row[used_cols] = -1
        j_star = np.argmax(abs_row)
        delta = row[j_star]

        if delta == 0:
            # This row is already reproduced exactly: try another one
            unused = np.where(~used_rows)[0]
            if unused.size == 0:
                converged = True
                break
            i_star = unused[0]
            continue

        used_cols[j_star] = True

        # Residual of the pivot column
        col = np.array(get_col(j_star), dtype=dtype)
        for u, v in zip(us, vs):
            col -= v[j_star]*u

        u_new, v_new = col, row/delta

        # Update ||A@B||_F^2 with the new cross
        u_norm_sq = np.real(np.vdot(u_new, u_new))
        v_norm_sq = np.real(np.vdot(v_new, v_new))
        for u, v in zip(us, vs):
            norm_sq += 2*np.real(np.vdot(u, u_new)*np.vdot(v, v_new))
        norm_sq += u_norm_sq*v_norm_sq

        us.append(u_new)
        vs.append(v_new)

        if np.sqrt(u_norm_sq*v_norm_sq) <= tol*np.sqrt(abs(norm_sq)):
            converged = True
            break

        abs_col = abs(u_new)
        abs_col[used_rows] = -1
        if (abs_col < 0).all():
            converged = True
            break
        i_star = np.argmax(abs_col)

    if len(us) == min(m, n):
        converged = True

    A = np.empty((m, len(us)), dtype=dtype)
    B = np.empty((len(vs), n), dtype=dtype)
    for k, (u, v) in enumerate(zip(us, vs)):
        A[:, k] = u
        B[k, :] = v
    return A, B, converged


def nnz(mat, tol=None):
    if tol is None:
        return (mat != 0).sum()
    else:
        return (abs(mat) >= tol).sum()


def sparsity(mat, tol=None):
    size = mat.size
    return 0 if size == 0 else nnz(mat, tol)/size
