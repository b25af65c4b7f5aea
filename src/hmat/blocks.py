import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from hmat.error import ShapeMismatchError
from hmat.util import as_matrix, nbytes


NOTRANS = 'notrans'
TRANS = 'trans'
CONJ = 'conj'
CONJTRANS = 'conjtrans'

TRANSPOSE_MODES = (NOTRANS, TRANS, CONJ, CONJTRANS)


def check_trans(trans):
    if trans not in TRANSPOSE_MODES:
        raise ValueError('trans must be one of: %s (got "%s")' % (
            ', '.join(TRANSPOSE_MODES), trans))


def is_transposed(trans):
    '''Whether op(A) swaps the roles of A's rows and columns.'''
    return trans in {TRANS, CONJTRANS}


class HMatrixBlock(scipy.sparse.linalg.LinearOperator):
    """The data stored for one leaf of a hierarchical matrix.

    All block types share the GEMM-style contract of apply():

        y := alpha*op(block)@x + beta*y,

    where op is the identity, the transpose, the complex conjugate or
    the conjugate transpose. Subclasses only need to provide _matmat
    (block@x) and _transpose_matmat (block.T@x).

    """

    def __init__(self, shape, dtype):
        super().__init__(np.dtype(dtype), tuple(int(_) for _ in shape))

    @property
    def size(self):
        return self.shape[0]*self.shape[1]

    @property
    def is_leaf(self):
        return True

    @property
    def is_empty_leaf(self):
        return False

    def is_dense(self):
        return False

    def is_sparse(self):
        return False

    def _transpose_matmat(self, x):
        raise NotImplementedError

    def _rmatmat(self, x):
        return self._transpose_matmat(x.conj()).conj()

    def _rmatvec(self, x):
        return self._rmatmat(x.reshape(x.size, 1)).ravel()

    def _op_matmat(self, x, trans):
        if trans == NOTRANS:
            return self._matmat(x)
        elif trans == TRANS:
            return self._transpose_matmat(x)
        elif trans == CONJ:
            return self._matmat(x.conj()).conj()
        else:
            return self._rmatmat(x)

    def apply(self, x, y, trans=NOTRANS, alpha=1, beta=0):
        """Compute y := alpha*op(self)@x + beta*y in place and return y.

        Parameters
        ----------
        x : numpy.ndarray
            The input: a vector or a matrix with one column per
            right-hand side. It is not read if alpha == 0.
        y : numpy.ndarray
            The output, overwritten in place (a view, e.g. a slice of a
            larger array, is fine). Its previous contents are not read
            if beta == 0.
        trans : str
            One of 'notrans', 'trans', 'conj' and 'conjtrans'.
        alpha, beta : scalars

        """
        check_trans(trans)

        X, Y = as_matrix(x), as_matrix(y)

        m, n = self.shape[::-1] if is_transposed(trans) else self.shape
        if X.shape[0] != n or Y.shape[0] != m:
            raise ShapeMismatchError(
                'op(block) has shape %s, but got x with %d rows and y with '
                '%d rows' % ((m, n), X.shape[0], Y.shape[0]))
        if X.shape[1] != Y.shape[1]:
            raise ShapeMismatchError(
                'x and y should have the same number of columns (got %d '
                'and %d)' % (X.shape[1], Y.shape[1]))

        if beta == 0:
            Y[...] = 0
        elif beta != 1:
            Y *= beta

        if alpha == 0 or self.is_empty_leaf:
            return y

        Z = self._op_matmat(X, trans)
        if alpha == 1:
            Y += Z
        else:
            Y += alpha*Z
        return y

    def scale(self, alpha):
        """Return a new block equal to alpha*self."""
        return self._scaled(alpha)

    def _scaled(self, alpha):
        raise NotImplementedError


class NullBlock(HMatrixBlock):
    """A block with no rows or no columns."""

    def __init__(self, shape, dtype=np.float64):
        if shape[0] != 0 and shape[1] != 0:
            raise RuntimeError('a null block must have a degenerate shape')
        super().__init__(shape, dtype)

    def _matmat(self, x):
        return np.zeros((self.shape[0], x.shape[1]),
                        dtype=np.result_type(self.dtype, x.dtype))

    def _transpose_matmat(self, x):
        return np.zeros((self.shape[1], x.shape[1]),
                        dtype=np.result_type(self.dtype, x.dtype))

    def is_dense(self):
        return True

    def is_sparse(self):
        return True

    def toarray(self):
        return np.empty(self.shape, dtype=self.dtype)

    @property
    def nbytes(self):
        return 0

    @property
    def is_empty_leaf(self):
        return True

    def _scaled(self, alpha):
        return NullBlock(self.shape, np.result_type(self.dtype, alpha))


class ZeroBlock(HMatrixBlock):

    def __init__(self, shape, dtype=np.float64):
        super().__init__(shape, dtype)

    def _matmat(self, x):
        return np.zeros((self.shape[0], x.shape[1]),
                        dtype=np.result_type(self.dtype, x.dtype))

    def _transpose_matmat(self, x):
        return np.zeros((self.shape[1], x.shape[1]),
                        dtype=np.result_type(self.dtype, x.dtype))

    def is_sparse(self):
        return True

    def toarray(self):
        return np.zeros(self.shape, dtype=self.dtype)

    def tocsr(self):
        return scipy.sparse.csr_matrix(self.shape, dtype=self.dtype)

    @property
    def nbytes(self):
        return 0

    @property
    def is_empty_leaf(self):
        return True

    def _scaled(self, alpha):
        return ZeroBlock(self.shape, np.result_type(self.dtype, alpha))


class DenseBlock(HMatrixBlock):

    def __init__(self, mat):
        if scipy.sparse.issparse(mat):
            mat = mat.toarray()
        mat = np.asarray(mat)
        if mat.ndim != 2:
            raise ValueError('a dense block needs a 2D array')
        super().__init__(mat.shape, mat.dtype)
        self._mat = mat

    @property
    def nbytes(self):
        return self._mat.nbytes

    def toarray(self):
        return self._mat

    def is_dense(self):
        return True

    def _matmat(self, x):
        return self._mat@x

    def _transpose_matmat(self, x):
        return self._mat.T@x

    def _scaled(self, alpha):
        return DenseBlock(alpha*self._mat)


class SparseBlock(HMatrixBlock):

    def _matmat(self, x):
        return np.asarray(self._spmat@x)

    def _transpose_matmat(self, x):
        return np.asarray(self._spmat.T@x)

    def is_sparse(self):
        return True

    def toarray(self):
        return self._spmat.toarray()


class CsrBlock(SparseBlock):

    def __init__(self, mat):
        if isinstance(mat, np.ndarray):
            spmat = scipy.sparse.csr_matrix(mat)
        elif scipy.sparse.issparse(mat):
            spmat = scipy.sparse.csr_matrix(mat)
        else:
            raise TypeError('invalid class for mat: %s' % type(mat))
        super().__init__(spmat.shape, spmat.dtype)
        self._spmat = spmat

    @property
    def nbytes(self):
        return nbytes(self._spmat)

    def tocsr(self):
        return self._spmat

    def _scaled(self, alpha):
        return CsrBlock(alpha*self._spmat)


class SvdBlock(HMatrixBlock):
    """A block stored as a truncated SVD, U@diag(S)@Vt. The factors are
    kept in CSR format whenever that takes less space."""

    def __init__(self, u, s, vt):
        shape = (u.shape[0], vt.shape[1])
        if u.shape[1] != s.size or vt.shape[0] != s.size:
            raise ValueError('inconsistent SVD factor shapes: %s, %s, %s' % (
                u.shape, s.shape, vt.shape))
        super().__init__(shape, np.result_type(u.dtype, s.dtype, vt.dtype))

        self._k = s.size
        self._s = s

        u_csr = scipy.sparse.csr_matrix(u)
        self._u = u if nbytes(u) < nbytes(u_csr) else u_csr

        vt_csr = scipy.sparse.csr_matrix(vt)
        self._vt = vt if nbytes(vt) < nbytes(vt_csr) else vt_csr

    @property
    def rank(self):
        return self._k

    def _matmat(self, x):
        y = np.asarray(self._vt@x)
        y = (y.T*self._s).T
        return np.asarray(self._u@y)

    def _transpose_matmat(self, x):
        y = np.asarray(self._u.T@x)
        y = (y.T*self._s).T
        return np.asarray(self._vt.T@y)

    def toarray(self):
        u = self._u.toarray() if scipy.sparse.issparse(self._u) else self._u
        vt = self._vt.toarray() if scipy.sparse.issparse(self._vt) else self._vt
        return (u*self._s)@vt

    @property
    def nbytes(self):
        return nbytes((self._u, self._s, self._vt))

    @property
    def compressed(self):
        return scipy.sparse.issparse(self._u) or scipy.sparse.issparse(self._vt)

    def _scaled(self, alpha):
        block = SvdBlock.__new__(SvdBlock)
        HMatrixBlock.__init__(block, self.shape,
                              np.result_type(self.dtype, alpha))
        block._k, block._s = self._k, alpha*self._s
        block._u, block._vt = self._u, self._vt
        return block


class LowRankBlock(HMatrixBlock):
    """A block stored as a product of two thin matrices, A@B, with A of
    shape (m, k) and B of shape (k, n)."""

    def __init__(self, a, b):
        if a.shape[1] != b.shape[0]:
            raise ValueError('inconsistent low-rank factor shapes: %s, %s' % (
                a.shape, b.shape))
        super().__init__((a.shape[0], b.shape[1]),
                         np.result_type(a.dtype, b.dtype))
        self._a = a
        self._b = b

    @property
    def rank(self):
        return self._a.shape[1]

    def _matmat(self, x):
        return self._a@(self._b@x)

    def _transpose_matmat(self, x):
        return self._b.T@(self._a.T@x)

    def toarray(self):
        return self._a@self._b

    @property
    def nbytes(self):
        return nbytes((self._a, self._b))

    def _scaled(self, alpha):
        return LowRankBlock(alpha*self._a, self._b)


def make_exact_block(mat):
    '''Store mat exactly using whichever of the null, zero, dense and CSR
    representations takes the least space.'''
    if scipy.sparse.issparse(mat):
        spmat = scipy.sparse.csr_matrix(mat, copy=True)
        spmat.eliminate_zeros()
        shape, dtype = spmat.shape, spmat.dtype
    else:
        mat = np.asarray(mat)
        spmat = None
        shape, dtype = mat.shape, mat.dtype

    if shape[0] == 0 or shape[1] == 0:
        return NullBlock(shape, dtype)

    if spmat is None:
        spmat = scipy.sparse.csr_matrix(mat)
    else:
        mat = spmat.toarray()

    if spmat.nnz == 0:
        return ZeroBlock(shape, dtype)

    if nbytes(mat) <= nbytes(spmat):
        return DenseBlock(mat)
    else:
        return CsrBlock(spmat)
