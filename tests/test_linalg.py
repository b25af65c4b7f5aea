import itertools as it
import numpy as np
import unittest

import hmat.linalg
import tests.common

from hmat.kernels import PointKernelMatrix


class LinalgTestCase(unittest.TestCase):
    def setUp(self):
        np.seterr(all='raise', under='ignore')
        self.rng = np.random.default_rng(0)

    def get_low_rank_matrix(self, m, n, k):
        return self.rng.standard_normal((m, k))@self.rng.standard_normal((k, n))

    def get_separated_kernel_block(self, m=120, n=100):
        X = tests.common.get_random_points(m, 3, seed=1)
        Y = tests.common.get_random_points(n, 3, seed=2) + [3, 0, 0]
        return PointKernelMatrix(X, Y)

    def test_estimate_rank_finds_exact_rank(self):
        mat = self.get_low_rank_matrix(30, 20, 5)
        U, S, Vt, thresh = hmat.linalg.estimate_rank(mat, 1e-8, k0=10)
        self.assertEqual(S.size, 5)
        self.assertLessEqual(thresh, 1e-8)
        np.testing.assert_allclose((U*S)@Vt, mat, atol=1e-8)

    def test_estimate_rank_with_arpack(self):
        mat = self.get_separated_kernel_block().toarray()
        U, S, Vt, thresh = hmat.linalg.estimate_rank(mat, 1e-3, k0=10)
        self.assertLessEqual(thresh, 1e-3)
        self.assertLess(S.size, 40)
        self.assertLess(tests.common.rel_error((U*S)@Vt, mat), 1e-2)

    def test_estimate_rank_meets_tolerance(self):
        for m, tol in it.product([5, 30, 60], [1e-1, 1e-4, 1e-8, 1e-12]):
            with self.subTest(m=m, tol=tol):
                mat = self.rng.standard_normal((m, m))
                U, S, Vt, thresh = hmat.linalg.estimate_rank(mat, tol)
                self.assertLessEqual(thresh, tol)
                if S.size < m:
                    self.assertLessEqual(np.linalg.norm(mat - (U*S)@Vt, 2),
                                         1.01*tol*S[0])

    def test_estimate_rank_respects_max_nbytes(self):
        mat = self.rng.standard_normal((30, 30))
        self.assertIsNone(
            hmat.linalg.estimate_rank(mat, 1e-8, max_nbytes=mat.nbytes))

    def test_estimate_rank_of_zero_matrix(self):
        U, S, Vt, thresh = hmat.linalg.estimate_rank(np.zeros((10, 8)), 1e-5)
        self.assertEqual(S.size, 0)
        self.assertEqual(U.shape, (10, 0))
        self.assertEqual(Vt.shape, (0, 8))

    def test_estimate_rank_bad_tol(self):
        with self.assertRaises(ValueError):
            hmat.linalg.estimate_rank(np.ones((3, 3)), 1.5)

    def test_cross_approximation_of_low_rank_matrix(self):
        mat = self.get_low_rank_matrix(60, 40, 4)
        A, B, converged = hmat.linalg.cross_approximation_partial(
            lambda i: mat[i], lambda j: mat[:, j], mat.shape, 1e-10)
        self.assertTrue(converged)
        self.assertLessEqual(A.shape[1], 5)
        self.assertLess(tests.common.rel_error(A@B, mat), 1e-8)

    def test_cross_approximation_of_kernel_block(self):
        K = self.get_separated_kernel_block()
        mat = K.toarray()
        A, B, converged = hmat.linalg.cross_approximation_partial(
            lambda i: K.get_row(i), lambda j: K.get_col(None, j), K.shape,
            1e-8)
        self.assertTrue(converged)
        self.assertLess(A.shape[1], 40)
        self.assertLess(tests.common.rel_error(A@B, mat), 1e-6)

    def test_cross_approximation_max_rank(self):
        mat = self.rng.standard_normal((30, 30))
        A, B, converged = hmat.linalg.cross_approximation_partial(
            lambda i: mat[i], lambda j: mat[:, j], mat.shape, 1e-12,
            max_rank=5)
        self.assertFalse(converged)
        self.assertEqual(A.shape, (30, 5))
        self.assertEqual(B.shape, (5, 30))

    def test_cross_approximation_of_zero_matrix(self):
        mat = np.zeros((10, 12))
        A, B, converged = hmat.linalg.cross_approximation_partial(
            lambda i: mat[i], lambda j: mat[:, j], mat.shape, 1e-8)
        self.assertTrue(converged)
        self.assertEqual(A.shape, (10, 0))
        self.assertEqual(B.shape, (0, 12))

    def test_recompress_lowers_rank(self):
        A = self.get_low_rank_matrix(50, 8, 3)
        B = self.rng.standard_normal((8, 40))
        U, S, Vt = hmat.linalg.recompress(A, B, 1e-10)
        self.assertEqual(S.size, 3)
        np.testing.assert_allclose((U*S)@Vt, A@B, atol=1e-8)

    def test_sparsity(self):
        mat = np.zeros((4, 5))
        mat[0, :2] = 1
        self.assertEqual(hmat.linalg.nnz(mat), 2)
        self.assertAlmostEqual(hmat.linalg.sparsity(mat), 0.1)
        self.assertEqual(hmat.linalg.sparsity(np.empty((0, 3))), 0)


if __name__ == '__main__':
    unittest.main()
