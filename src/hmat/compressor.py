import logging

import numpy as np

from abc import ABC, abstractmethod

from sklearn.utils.extmath import randomized_svd

import hmat.linalg

from hmat.blocks import DenseBlock, LowRankBlock, NullBlock, SvdBlock, \
    ZeroBlock, make_exact_block
from hmat.config import HMatOpt
from hmat.debug import IndentedPrinter
from hmat.error import CompressionError


class HMatrixCompressor(ABC):
    """A strategy turning one leaf of a block cluster tree into the block
    data stored for it.

    Compressors get the true entries of a block from a KernelMatrix,
    indexed by the original DOF indices of the leaf's row and column
    clusters. They must not depend on other leaves: HMatrix.initialize
    may compress leaves in any order, and in parallel.

    """

    def __init__(self, kernel):
        self.kernel = kernel

    @property
    def shape(self):
        return self.kernel.shape

    @property
    def dtype(self):
        return self.kernel.dtype

    @abstractmethod
    def compress_block(self, node):
        '''Return the HMatrixBlock for the block cluster tree leaf node.'''

    def _get_block(self, node):
        I, J = node.row_original_indices, node.col_original_indices
        IndentedPrinter().print('get_block(|I| = %d, |J| = %d)' % (
            len(I), len(J)))
        mat = np.asarray(self.kernel.get_block(I, J))
        if mat.shape != (len(I), len(J)):
            raise CompressionError(
                'kernel returned a block of shape %s for a %d x %d leaf' % (
                    mat.shape, len(I), len(J)))
        if not np.isfinite(mat).all():
            raise CompressionError(
                'kernel returned non-finite entries for leaf %r' % node)
        return mat

    def _make_null_block(self, node):
        return NullBlock(node.shape, self.dtype)

    def _make_exact_block(self, node):
        return make_exact_block(self._get_block(node))


class DenseCompressor(HMatrixCompressor):
    """Store every leaf exactly as a dense block."""

    def compress_block(self, node):
        if node.shape[0] == 0 or node.shape[1] == 0:
            return self._make_null_block(node)
        return DenseBlock(self._get_block(node))


class SvdCompressor(HMatrixCompressor):
    """Store inadmissible leaves exactly and admissible leaves as
    truncated SVDs, whichever takes less space."""

    def __init__(self, kernel, tol=None, min_size=None, k0=None):
        """Parameters
        ----------
        kernel : KernelMatrix
            The source of the true entries.
        tol : float, optional
            Singular values below tol times the largest one are dropped.
            Defaults to HMatOpt.get('tol').
        min_size : integer, optional
            Admissible blocks with fewer entries than this are stored
            exactly without attempting compression. Defaults to
            HMatOpt.get('min_size').
        k0 : integer, optional
            Number of singular triplets first requested from ARPACK.
            Defaults to HMatOpt.get('svd_k0').

        """
        super().__init__(kernel)
        self.tol = HMatOpt.get_or_default('tol', tol)
        if not (0 <= self.tol < 1):
            raise ValueError('tol should satisfy 0 <= tol < 1')
        self.min_size = HMatOpt.get_or_default('min_size', min_size)
        self.k0 = HMatOpt.get_or_default('svd_k0', k0)

    def compress_block(self, node):
        if node.shape[0] == 0 or node.shape[1] == 0:
            return self._make_null_block(node)

        mat = self._get_block(node)
        exact_block = make_exact_block(mat)

        # Only admissible blocks are worth compressing. Below min_size,
        # the bookkeeping isn't worth it either.
        if node.is_near or exact_block.is_empty_leaf \
           or mat.size < self.min_size:
            return exact_block

        return self._get_svd_block(mat, exact_block)

    def _get_svd_block(self, mat, exact_block):
        ret = hmat.linalg.estimate_rank(
            mat, self.tol, max_nbytes=exact_block.nbytes, k0=self.k0)
        if ret is None:
            return exact_block

        U, S, Vt, _ = ret
        return SvdBlock(U, S, Vt)


class AcaCompressor(HMatrixCompressor):
    """Store inadmissible leaves exactly and approximate admissible leaves
    with adaptive cross approximation, which only evaluates a few rows
    and columns of each block."""

    def __init__(self, kernel, tol=None, max_rank=None, recompress=True):
        """Parameters
        ----------
        kernel : KernelMatrix
            The source of the true entries.
        tol : float, optional
            Relative accuracy of the cross approximation. Defaults to
            HMatOpt.get('tol').
        max_rank : integer, optional
            Upper bound on the rank of each approximation. Defaults to
            HMatOpt.get('aca_max_rank') (None means no bound).
        recompress : bool
            Whether to recompress the cross approximation with an SVD,
            which usually lowers its rank.

        """
        super().__init__(kernel)
        self.tol = HMatOpt.get_or_default('tol', tol)
        if not (0 <= self.tol < 1):
            raise ValueError('tol should satisfy 0 <= tol < 1')
        self.max_rank = HMatOpt.get_or_default('aca_max_rank', max_rank)
        self.recompress = recompress

    def compress_block(self, node):
        if node.shape[0] == 0 or node.shape[1] == 0:
            return self._make_null_block(node)

        if node.is_near:
            return self._make_exact_block(node)

        I, J = node.row_original_indices, node.col_original_indices

        def get_row(i):
            return self.kernel.get_row(I[i], J)

        def get_col(j):
            return self.kernel.get_col(I, J[j])

        with IndentedPrinter() as _:
            _.print('aca(%d x %d)' % node.shape)
            A, B, converged = hmat.linalg.cross_approximation_partial(
                get_row, get_col, node.shape, self.tol, self.max_rank,
                dtype=self.dtype)

        if not np.isfinite(A).all() or not np.isfinite(B).all():
            raise CompressionError(
                'cross approximation produced non-finite factors for %r' % node)

        if not converged:
            logging.warning("""cross approximation hit the maximum rank
            (%d) before converging, using the exact block instead...""" % (
                A.shape[1]))
            return self._make_exact_block(node)

        if A.shape[1] == 0:
            return ZeroBlock(node.shape, self.dtype)

        if self.recompress:
            block = SvdBlock(*hmat.linalg.recompress(A, B, self.tol))
        else:
            block = LowRankBlock(A, B)

        dense_nbytes = node.shape[0]*node.shape[1]*np.dtype(self.dtype).itemsize
        if block.nbytes >= dense_nbytes:
            return self._make_exact_block(node)

        return block


class RandomizedSvdCompressor(HMatrixCompressor):
    """Store inadmissible leaves exactly and admissible leaves as
    fixed-rank randomized SVDs."""

    def __init__(self, kernel, rank, n_oversamples=10, n_iter='auto',
                 random_state=None):
        super().__init__(kernel)
        if rank < 1:
            raise ValueError('rank should be a positive integer')
        self.rank = rank
        self.n_oversamples = n_oversamples
        self.n_iter = n_iter
        self.random_state = random_state

    def compress_block(self, node):
        if node.shape[0] == 0 or node.shape[1] == 0:
            return self._make_null_block(node)

        mat = self._get_block(node)
        exact_block = make_exact_block(mat)
        if node.is_near or exact_block.is_empty_leaf:
            return exact_block

        k = min(self.rank, *mat.shape)
        with IndentedPrinter() as _:
            _.print('randomized_svd(%d x %d, %d)' % (*mat.shape, k))
            U, S, Vt = randomized_svd(
                mat, n_components=k, n_oversamples=self.n_oversamples,
                n_iter=self.n_iter, random_state=self.random_state)

        block = SvdBlock(U, S, Vt)
        if block.nbytes >= exact_block.nbytes:
            return exact_block
        return block
