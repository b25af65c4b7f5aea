import logging
import pickle

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from concurrent.futures import ThreadPoolExecutor

from hmat.blocks import NOTRANS, TRANS, CONJ, CONJTRANS, check_trans, \
    is_transposed
from hmat.config import HMatOpt
from hmat.debug import IndentedPrinter
from hmat.error import ShapeMismatchError
from hmat.util import as_matrix, nbytes, tic, toc


ROW = 'row'
COL = 'col'


class HMatrix(scipy.sparse.linalg.LinearOperator):
    """A hierarchical matrix. This provides an approximate version of a
    dense operator whose rows and columns are partitioned by a block
    cluster tree: each leaf of the tree stores its block of the
    operator either exactly or in compressed form, which strives to use
    O(N log N) space and provide an O(N log N) matrix-vector product.

    The block cluster tree is shared, never modified, and may be used by
    several hierarchical matrices at once. The blocks belong to this
    matrix. Vectors passed to and returned from apply() (or @) are in
    the original DOF ordering; the translation to the tree's
    hierarchical ordering happens internally.

    """

    def __init__(self, block_cluster_tree, compressor=None,
                 num_workers=None):
        """Create a new HMatrix.

        Parameters
        ----------
        block_cluster_tree : BlockClusterTree
            The partition of the matrix into blocks.
        compressor : HMatrixCompressor, optional
            If passed, the matrix is initialized with it right away.
            Otherwise it starts out uninitialized.
        num_workers : positive integer, optional
            The default number of threads used by initialize and apply.
            Defaults to HMatOpt.get('num_workers').

        """
        self._block_cluster_tree = block_cluster_tree
        self._num_workers = num_workers
        self._blocks = dict()
        if compressor is not None:
            self.initialize(compressor)

    def __repr__(self):
        return 'a %d x %d HMatrix with %d leaves (%s)' % (
            *self.shape, self._block_cluster_tree.num_leaves,
            'initialized' if self.is_initialized() else 'uninitialized')

    @staticmethod
    def from_file(path):
        with open(path, 'rb') as f:
            return pickle.load(f)

    def save(self, path):
        with open(path, 'wb') as f:
            pickle.dump(self, f)

    @property
    def block_cluster_tree(self):
        return self._block_cluster_tree

    @property
    def rows(self):
        return self._block_cluster_tree.row_cluster_tree.num_dofs

    @property
    def columns(self):
        return self._block_cluster_tree.column_cluster_tree.num_dofs

    @property
    def shape(self):
        return self.rows, self.columns

    @property
    def dtype(self):
        if not self._blocks:
            return np.dtype(np.float64)
        return np.result_type(*(block.dtype for block in self._blocks.values()))

    @property
    def nbytes(self):
        return sum(nbytes(block) for block in self._blocks.values())

    @property
    def compression_ratio(self):
        '''The size of this matrix relative to a dense matrix of the same
        shape and dtype.'''
        dense_nbytes = self.rows*self.columns*self.dtype.itemsize
        return np.inf if dense_nbytes == 0 else self.nbytes/dense_nbytes

    def _get_num_workers(self, num_workers):
        if num_workers is None:
            num_workers = self._num_workers
        num_workers = HMatOpt.get_or_default('num_workers', num_workers)
        if num_workers < 1:
            raise ValueError('num_workers should be a positive integer')
        return num_workers

    def initialize(self, compressor, num_workers=None):
        '''Compress every leaf of the block cluster tree with compressor,
        discarding any blocks computed earlier. If compressing any leaf
        fails, the exception propagates and the matrix is left
        uninitialized.

        '''
        self.reset()

        compressor_shape = getattr(compressor, 'shape', None)
        if compressor_shape is not None \
           and tuple(compressor_shape) != self.shape:
            raise ShapeMismatchError(
                'compressor has shape %s, but the block cluster tree has '
                'shape %s' % (tuple(compressor_shape), self.shape))

        leaves = self._block_cluster_tree.get_leaves()
        num_workers = self._get_num_workers(num_workers)

        tic()
        try:
            if num_workers == 1 or len(leaves) <= 1:
                with IndentedPrinter() as _:
                    _.print('compressing %d leaves' % len(leaves))
                    blocks = [compressor.compress_block(leaf)
                              for leaf in leaves]
            else:
                with ThreadPoolExecutor(max_workers=num_workers) as executor:
                    blocks = list(
                        executor.map(compressor.compress_block, leaves))
        finally:
            elapsed = toc()

        # Only publish the blocks once every leaf has succeeded
        self._blocks = {leaf.leaf_index: block
                        for leaf, block in zip(leaves, blocks)}
        logging.info('initialized %d x %d hierarchical matrix: %d leaves, '
                     '%d bytes, %.2f s' % (
                         *self.shape, len(leaves), self.nbytes, elapsed))
        return self

    def reset(self):
        '''Discard all blocks. The block cluster tree is untouched.'''
        self._blocks = dict()

    def is_initialized(self):
        return bool(self._blocks)

    def get_leaf_block(self, leaf):
        '''Return the block stored for a leaf (or leaf index), or None if
        the matrix is uninitialized.'''
        leaf_index = leaf if isinstance(leaf, (int, np.integer)) \
            else leaf.leaf_index
        return self._blocks.get(leaf_index)

    def get_blocks(self):
        '''Yield (leaf, block) pairs in leaf order.'''
        for leaf in self._block_cluster_tree.get_leaves():
            if leaf.leaf_index in self._blocks:
                yield leaf, self._blocks[leaf.leaf_index]

    def get_block_counts(self):
        '''Count the stored blocks by type name.'''
        counts = dict()
        for block in self._blocks.values():
            name = type(block).__name__
            counts[name] = counts.get(name, 0) + 1
        return counts

    def _get_cluster_tree(self, row_or_col):
        if row_or_col == ROW:
            return self._block_cluster_tree.row_cluster_tree
        elif row_or_col == COL:
            return self._block_cluster_tree.column_cluster_tree
        else:
            raise ValueError('row_or_col must be "%s" or "%s" (got "%s")' % (
                ROW, COL, row_or_col))

    def permute_mat_to_hmat_dofs(self, mat, row_or_col):
        '''Return a copy of mat with its rows reordered from the original
        DOF ordering into the hierarchical ordering of the row or
        column cluster tree.'''
        cluster_tree = self._get_cluster_tree(row_or_col)
        mat = np.asarray(mat)
        if mat.ndim == 0 or mat.shape[0] != cluster_tree.num_dofs:
            raise ShapeMismatchError(
                'input matrix has wrong number of rows (expected %d, got %s)'
                % (cluster_tree.num_dofs, mat.shape[0] if mat.ndim else None))
        return mat[cluster_tree.perm]

    def permute_mat_to_original_dofs(self, mat, row_or_col):
        '''Return a copy of mat with its rows reordered from the
        hierarchical ordering of the row or column cluster tree back
        into the original DOF ordering.'''
        cluster_tree = self._get_cluster_tree(row_or_col)
        mat = np.asarray(mat)
        if mat.ndim == 0 or mat.shape[0] != cluster_tree.num_dofs:
            raise ShapeMismatchError(
                'input matrix has wrong number of rows (expected %d, got %s)'
                % (cluster_tree.num_dofs, mat.shape[0] if mat.ndim else None))
        return mat[cluster_tree.rev_perm]

    def _get_leaf_ranges(self, leaf, trans):
        if is_transposed(trans):
            return leaf.row_range, leaf.col_range
        else:
            return leaf.col_range, leaf.row_range

    def _apply_leaves(self, leaves, x, y, trans, alpha):
        for leaf in leaves:
            block = self._blocks.get(leaf.leaf_index)
            if block is None or block.is_empty_leaf:
                continue
            input_range, output_range = self._get_leaf_ranges(leaf, trans)
            block.apply(x[input_range.slice], y[output_range.slice],
                        trans, alpha, 1)

    def apply(self, x, y=None, trans=NOTRANS, alpha=1, beta=0,
              num_workers=None):
        """Compute y := alpha*op(A)@x + beta*y, where A is the operator
        represented by this matrix and op is selected by trans.

        Parameters
        ----------
        x : array_like
            A vector or a matrix (one column per right-hand side) in the
            original DOF ordering. Not read if alpha == 0.
        y : numpy.ndarray, optional
            The output, updated in place. Its previous contents are not
            read if beta == 0. If not passed, a new array is allocated
            (and beta is ignored).
        trans : str
            'notrans', 'trans', 'conj' or 'conjtrans'.
        alpha, beta : scalars
        num_workers : positive integer, optional
            Number of threads to spread the leaves over.

        Returns
        -------
        y : numpy.ndarray

        """
        check_trans(trans)

        x = np.asarray(x)
        if x.ndim not in {1, 2}:
            raise ShapeMismatchError('x should be a vector or a matrix')
        X = as_matrix(x)

        m, n = self.shape[::-1] if is_transposed(trans) else self.shape
        if X.shape[0] != n:
            raise ShapeMismatchError(
                'op(A) has %d columns, but x has %d rows' % (n, X.shape[0]))

        if y is None:
            dtype = np.result_type(self.dtype, x.dtype, np.asarray(alpha))
            y = np.zeros((m,) if x.ndim == 1 else (m, X.shape[1]), dtype=dtype)
            beta = 0
        elif not isinstance(y, np.ndarray):
            raise TypeError(
                'y should be a numpy array (got %s)' % type(y).__name__)
        Y = as_matrix(y)
        if Y.shape != (m, X.shape[1]):
            raise ShapeMismatchError(
                'y should have shape %s (got %s)' % ((m, X.shape[1]), Y.shape))

        if beta == 0:
            Y[...] = 0
        elif beta != 1:
            Y *= beta

        if alpha == 0:
            return y

        if not self.is_initialized():
            logging.warning('applying an uninitialized hierarchical matrix')
            return y

        # op(A) reads x on A's column side and writes y on A's row side,
        # unless A is transposed
        x_side, y_side = (ROW, COL) if is_transposed(trans) else (COL, ROW)
        x_permuted = self.permute_mat_to_hmat_dofs(X, x_side)
        y_permuted = np.zeros(Y.shape, dtype=Y.dtype)

        leaves = self._block_cluster_tree.get_leaves()
        num_workers = self._get_num_workers(num_workers)

        if num_workers == 1 or len(leaves) <= 1:
            self._apply_leaves(leaves, x_permuted, y_permuted, trans, alpha)
        else:
            # Leaves in the same block row write to the same part of y,
            # so each worker accumulates into its own buffer
            def work(chunk):
                y_chunk = np.zeros(Y.shape, dtype=Y.dtype)
                self._apply_leaves(chunk, x_permuted, y_chunk, trans, alpha)
                return y_chunk
            chunks = [leaves[i::num_workers] for i in range(num_workers)]
            with ThreadPoolExecutor(max_workers=num_workers) as executor:
                for y_chunk in executor.map(work, chunks):
                    y_permuted += y_chunk

        Y += self.permute_mat_to_original_dofs(y_permuted, y_side)
        return y

    def _matmat(self, x):
        return self.apply(x, trans=NOTRANS)

    def _matvec(self, x):
        return self.apply(x.ravel(), trans=NOTRANS)

    def _rmatmat(self, x):
        return self.apply(x, trans=CONJTRANS)

    def _rmatvec(self, x):
        return self.apply(x.ravel(), trans=CONJTRANS)

    def _transpose(self):
        return _TransposedHMatrix(self)

    def toarray(self):
        def std_basis_vec(i):
            e = np.zeros(self.columns, dtype=self.dtype)
            e[i] = 1
            return e
        arr = np.array([self@std_basis_vec(i) for i in range(self.columns)])
        return arr.T.reshape(self.shape)

    def tocsr(self):
        return scipy.sparse.csr_matrix(self.toarray())


class _TransposedHMatrix(scipy.sparse.linalg.LinearOperator):

    def __init__(self, hmatrix):
        self._hmatrix = hmatrix
        self.shape = hmatrix.shape[::-1]

    @property
    def dtype(self):
        return self._hmatrix.dtype

    def _matmat(self, x):
        return self._hmatrix.apply(x, trans=TRANS)

    def _matvec(self, x):
        return self._hmatrix.apply(x.ravel(), trans=TRANS)

    def _transpose(self):
        return self._hmatrix

    def _rmatmat(self, x):
        return self._hmatrix.apply(x, trans=CONJ)

    def _rmatvec(self, x):
        return self._hmatrix.apply(x.ravel(), trans=CONJ)
