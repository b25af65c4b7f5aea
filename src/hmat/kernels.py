'''Evaluators for the true entries of the operator being compressed.

A hierarchical matrix never sees its operator's entries directly:
compressors ask a KernelMatrix for the sub-blocks they need, indexed by
original DOF indices. In a boundary element code this is where the
quadrature over pairs of elements happens; here we provide an explicit
matrix and a simple point-to-point kernel.

'''

import numpy as np
import scipy.sparse
import scipy.sparse.linalg
import scipy.spatial.distance

from abc import ABC, abstractmethod

from cached_property import cached_property


class KernelMatrix(ABC, scipy.sparse.linalg.LinearOperator):
    """A (possibly implicit) dense matrix whose sub-blocks can be
    evaluated on demand."""

    @abstractmethod
    def get_block(self, I, J):
        '''Return the dense (len(I), len(J)) block of entries with row
        indices I and column indices J (original DOF indices).'''

    def get_row(self, i, J=None):
        if J is None:
            J = np.arange(self.shape[1])
        return self.get_block(np.array([i]), J)[0]

    def get_col(self, I, j):
        if I is None:
            I = np.arange(self.shape[0])
        return self.get_block(I, np.array([j]))[:, 0]

    def toarray(self):
        return self.get_block(np.arange(self.shape[0]), np.arange(self.shape[1]))

    def _matmat(self, X):
        # Evaluate a few rows at a time to avoid forming the whole matrix
        Y = np.empty((self.shape[0], X.shape[1]),
                     dtype=np.result_type(self.dtype, X.dtype))
        J = np.arange(self.shape[1])
        for I in np.array_split(np.arange(self.shape[0]),
                                max(1, self.shape[0]//256)):
            Y[I] = self.get_block(I, J)@X
        return Y

    def _rmatmat(self, X):
        Y = np.empty((self.shape[1], X.shape[1]),
                     dtype=np.result_type(self.dtype, X.dtype))
        I = np.arange(self.shape[0])
        for J in np.array_split(np.arange(self.shape[1]),
                                max(1, self.shape[1]//256)):
            Y[J] = self.get_block(I, J).conj().T@X
        return Y

    def _rmatvec(self, x):
        return self._rmatmat(x.reshape(x.size, 1)).ravel()


class DenseKernelMatrix(KernelMatrix):
    """A kernel matrix backed by an explicitly stored (dense or sparse)
    matrix."""

    def __init__(self, mat):
        if scipy.sparse.issparse(mat):
            mat = scipy.sparse.csr_matrix(mat)
        else:
            mat = np.asarray(mat)
            if mat.ndim != 2:
                raise ValueError('need a 2D array')
        self._mat = mat
        self.shape = mat.shape
        self.dtype = mat.dtype

    def get_block(self, I, J):
        I, J = np.asarray(I, dtype=np.intp), np.asarray(J, dtype=np.intp)
        if scipy.sparse.issparse(self._mat):
            return self._mat[I, :][:, J].toarray()
        return self._mat[np.ix_(I, J)]

    def toarray(self):
        if scipy.sparse.issparse(self._mat):
            return self._mat.toarray()
        return self._mat


def laplace_kernel(R):
    '''The free-space Green's function of the Laplacian in 3D, 1/(4 pi r).
    Coincident points get the value 0.'''
    G = np.zeros_like(R)
    mask = R > 0
    G[mask] = 1/(4*np.pi*R[mask])
    return G


def make_helmholtz_kernel(k):
    '''Return the free-space Green's function of the Helmholtz operator
    with wavenumber k, exp(i k r)/(4 pi r). Coincident points get the
    value 0.'''
    def helmholtz_kernel(R):
        G = np.zeros(R.shape, dtype=np.complex128)
        mask = R > 0
        G[mask] = np.exp(1j*k*R[mask])/(4*np.pi*R[mask])
        return G
    return helmholtz_kernel


class PointKernelMatrix(KernelMatrix):
    """The matrix K[i, j] = kernel(|x_i - y_j|) of a radial kernel
    evaluated between two point sets."""

    def __init__(self, X, Y=None, kernel=None, dtype=None):
        """Parameters
        ----------
        X : array_like
            The (m, dim) target points (rows).
        Y : array_like, optional
            The (n, dim) source points (columns). Defaults to X.
        kernel : callable, optional
            Maps an array of distances to an array of kernel values of
            the same shape. Defaults to laplace_kernel.
        dtype : numpy dtype, optional
            The kernel's value type. Determined by evaluating the kernel
            once if not passed.

        """
        self.X = np.asarray(X, dtype=np.float64)
        if self.X.ndim == 1:
            self.X = self.X.reshape(self.X.size, 1)
        self.Y = self.X if Y is None else np.asarray(Y, dtype=np.float64)
        if self.Y.ndim == 1:
            self.Y = self.Y.reshape(self.Y.size, 1)
        if self.X.shape[1] != self.Y.shape[1]:
            raise ValueError('X and Y should have the same dimension')

        self.kernel = laplace_kernel if kernel is None else kernel
        self.shape = (self.X.shape[0], self.Y.shape[0])
        self.dtype = np.dtype(dtype) if dtype is not None else \
            self.kernel(np.ones((1, 1))).dtype

    @cached_property
    def diameter(self):
        P = np.vstack([self.X, self.Y])
        return np.linalg.norm(P.max(axis=0) - P.min(axis=0))

    def get_block(self, I, J):
        I, J = np.asarray(I, dtype=np.intp), np.asarray(J, dtype=np.intp)
        if I.size == 0 or J.size == 0:
            return np.zeros((I.size, J.size), dtype=self.dtype)
        R = scipy.spatial.distance.cdist(self.X[I], self.Y[J])
        return self.kernel(R).astype(self.dtype, copy=False)
