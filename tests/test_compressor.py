import numpy as np
import unittest

import tests.common

from hmat.blocks import DenseBlock, NullBlock, SvdBlock, ZeroBlock
from hmat.block_cluster_tree import BlockClusterTree, WeakAdmissibility
from hmat.cluster_tree import ClusterTree
from hmat.compressor import AcaCompressor, DenseCompressor, \
    RandomizedSvdCompressor, SvdCompressor
from hmat.error import CompressionError
from hmat.kernels import DenseKernelMatrix, KernelMatrix, PointKernelMatrix


class NanKernelMatrix(KernelMatrix):
    def __init__(self, n):
        self.shape = (n, n)
        self.dtype = np.dtype(np.float64)

    def get_block(self, I, J):
        return np.full((len(I), len(J)), np.nan)


class CompressorTestCase(unittest.TestCase):
    def setUp(self):
        np.seterr(all='raise', under='ignore')
        self.X, self.bct, self.kernel = tests.common.get_point_problem(300)
        self.K = self.kernel.toarray()

    def check_leaves(self, compressor, rtol):
        for leaf in self.bct.get_leaves():
            block = compressor.compress_block(leaf)
            self.assertEqual(block.shape, leaf.shape)
            if leaf.shape[0] == 0 or leaf.shape[1] == 0:
                self.assertIsInstance(block, NullBlock)
                continue
            exact = self.K[np.ix_(leaf.row_original_indices,
                                  leaf.col_original_indices)]
            if leaf.is_near:
                np.testing.assert_array_equal(block.toarray(), exact)
            else:
                self.assertLessEqual(
                    np.linalg.norm(block.toarray() - exact),
                    rtol*np.linalg.norm(exact))

    def test_dense_compressor(self):
        compressor = DenseCompressor(self.kernel)
        self.assertEqual(compressor.shape, self.kernel.shape)
        for leaf in self.bct.get_leaves():
            if leaf.shape[0] > 0 and leaf.shape[1] > 0:
                self.assertIsInstance(compressor.compress_block(leaf),
                                      DenseBlock)
        self.check_leaves(compressor, 0)

    def test_svd_compressor(self):
        compressor = SvdCompressor(self.kernel, tol=1e-8, min_size=0)
        self.check_leaves(compressor, 1e-6)

    def test_svd_compressor_on_separated_clusters(self):
        X = np.vstack([tests.common.get_random_points(150, 3, seed=1),
                       tests.common.get_random_points(150, 3, seed=2)
                       + [4, 0, 0]])
        tree = ClusterTree.from_points(X, leaf_size=16)
        bct = BlockClusterTree(tree)
        kernel = PointKernelMatrix(X)
        far_leaves = [leaf for leaf in bct.get_far_leaves()
                      if leaf.shape == (150, 150)]
        self.assertEqual(len(far_leaves), 2)
        compressor = SvdCompressor(kernel, tol=1e-8, k0=80)
        for leaf in far_leaves:
            block = compressor.compress_block(leaf)
            self.assertIsInstance(block, SvdBlock)
            self.assertLess(block.nbytes, 150*150*8)
            exact = kernel.get_block(leaf.row_original_indices,
                                     leaf.col_original_indices)
            self.assertLess(tests.common.rel_error(block.toarray(), exact),
                            1e-6)

    def test_svd_compressor_min_size(self):
        compressor = SvdCompressor(self.kernel, tol=1e-8,
                                   min_size=self.K.size)
        for leaf in self.bct.get_far_leaves():
            self.assertNotIsInstance(compressor.compress_block(leaf), SvdBlock)

    def test_aca_compressor(self):
        for recompress in [False, True]:
            with self.subTest(recompress=recompress):
                compressor = AcaCompressor(self.kernel, tol=1e-8,
                                           recompress=recompress)
                self.check_leaves(compressor, 1e-5)

    def test_aca_falls_back_to_exact_block(self):
        compressor = AcaCompressor(self.kernel, tol=1e-12, max_rank=1)
        for leaf in self.bct.get_far_leaves():
            if min(leaf.shape) > 1:
                block = compressor.compress_block(leaf)
                exact = self.K[np.ix_(leaf.row_original_indices,
                                      leaf.col_original_indices)]
                np.testing.assert_array_equal(block.toarray(), exact)
                break

    def test_randomized_svd_compressor(self):
        compressor = RandomizedSvdCompressor(self.kernel, rank=20,
                                             random_state=0)
        self.check_leaves(compressor, 1e-3)
        with self.assertRaises(ValueError):
            RandomizedSvdCompressor(self.kernel, rank=0)

    def test_zero_kernel(self):
        kernel = DenseKernelMatrix(np.zeros(self.K.shape))
        for compressor in [SvdCompressor(kernel, min_size=0),
                           AcaCompressor(kernel)]:
            with self.subTest(compressor=type(compressor).__name__):
                for leaf in self.bct.get_leaves():
                    if leaf.shape[0] > 0 and leaf.shape[1] > 0:
                        self.assertIsInstance(
                            compressor.compress_block(leaf), ZeroBlock)

    def test_empty_leaf_gets_null_block(self):
        tree = ClusterTree.from_permutation(np.arange(0), leaf_size=1)
        bct = BlockClusterTree(tree, admissible=WeakAdmissibility())
        kernel = DenseKernelMatrix(np.empty((0, 0)))
        for compressor in [DenseCompressor(kernel), SvdCompressor(kernel),
                           AcaCompressor(kernel)]:
            with self.subTest(compressor=type(compressor).__name__):
                block = compressor.compress_block(bct.root)
                self.assertIsInstance(block, NullBlock)

    def test_non_finite_kernel(self):
        compressor = DenseCompressor(NanKernelMatrix(self.K.shape[0]))
        with self.assertRaises(CompressionError):
            compressor.compress_block(self.bct.get_leaves()[0])

    def test_bad_tol(self):
        with self.assertRaises(ValueError):
            SvdCompressor(self.kernel, tol=1)
        with self.assertRaises(ValueError):
            AcaCompressor(self.kernel, tol=-1)


if __name__ == '__main__':
    unittest.main()
