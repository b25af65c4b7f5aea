import numpy as np
import unittest

import tests.common

from hmat.block_cluster_tree import BlockClusterTree, StrongAdmissibility, \
    WeakAdmissibility
from hmat.cluster_tree import ClusterTree


class BlockClusterTreeTestCase(unittest.TestCase):
    def setUp(self):
        np.seterr(all='raise', under='ignore')

    def test_leaves_tile_matrix(self):
        for eta in [1.0, 2.0]:
            with self.subTest(eta=eta):
                X, bct, _ = tests.common.get_point_problem(400, eta=eta)
                bct.check_tiling()
                self.assertEqual(bct.shape, (400, 400))
                self.assertEqual(bct.num_leaves, len(bct.get_leaves()))
                self.assertEqual(
                    len(bct.get_far_leaves()) + len(bct.get_near_leaves()),
                    bct.num_leaves)
                self.assertGreater(len(bct.get_far_leaves()), 0)

    def test_rectangular_tree_tiles_matrix(self):
        X = tests.common.get_random_points(150, 3, seed=1)
        Y = tests.common.get_random_points(90, 3, seed=2) + [2, 0, 0]
        row_tree = ClusterTree.from_points(X, leaf_size=10)
        col_tree = ClusterTree.from_points(Y, leaf_size=10)
        bct = BlockClusterTree(row_tree, col_tree)
        bct.check_tiling()
        self.assertEqual(bct.shape, (150, 90))
        self.assertIs(bct.row_cluster_tree, row_tree)
        self.assertIs(bct.column_cluster_tree, col_tree)

    def test_far_leaves_satisfy_admissibility(self):
        eta = 1.5
        _, bct, _ = tests.common.get_point_problem(300, eta=eta)
        for leaf in bct.get_far_leaves():
            row_node, col_node = leaf.row_node, leaf.col_node
            self.assertLessEqual(
                min(row_node.diameter, col_node.diameter),
                eta*row_node.get_distance(col_node))

    def test_near_leaves_are_not_subdivided_further(self):
        _, bct, _ = tests.common.get_point_problem(300)
        for leaf in bct.get_near_leaves():
            self.assertTrue(leaf.row_node.is_leaf or leaf.col_node.is_leaf
                            or leaf.row_node.is_empty
                            or leaf.col_node.is_empty)

    def test_leaf_indices(self):
        _, bct, _ = tests.common.get_point_problem(200)
        for i, leaf in enumerate(bct.get_leaves()):
            self.assertTrue(leaf.is_leaf)
            self.assertEqual(leaf.leaf_index, i)
        for node in bct.get_nodes():
            if not node.is_leaf:
                self.assertIsNone(node.leaf_index)

    def test_min_size_stops_subdivision(self):
        X = tests.common.get_random_points(200, 3)
        tree = ClusterTree.from_points(X, leaf_size=8)
        bct = BlockClusterTree(tree, admissible=lambda r, c: False,
                               min_size=200*200)
        self.assertEqual(bct.num_leaves, 1)
        self.assertTrue(bct.root.is_leaf)
        self.assertTrue(bct.root.is_near)

    def test_weak_admissibility(self):
        tree = ClusterTree.from_permutation(np.arange(64), leaf_size=8)
        bct = BlockClusterTree(tree, admissible=WeakAdmissibility())
        bct.check_tiling()
        for leaf in bct.get_leaves():
            overlaps = leaf.row_range.overlaps(leaf.col_range)
            self.assertEqual(leaf.is_far, not overlaps)
        # HODLR: the near leaves lie on the diagonal
        for leaf in bct.get_near_leaves():
            self.assertEqual(leaf.row_range, leaf.col_range)
            self.assertEqual(leaf.shape, (8, 8))

    def test_strong_admissibility_without_geometry(self):
        tree = ClusterTree.from_permutation(np.arange(32), leaf_size=4)
        bct = BlockClusterTree(tree, admissible=StrongAdmissibility())
        self.assertEqual(len(bct.get_far_leaves()), 0)
        bct.check_tiling()

    def test_needs_roots(self):
        tree = ClusterTree.from_permutation(np.arange(16), leaf_size=4)
        with self.assertRaises(ValueError):
            BlockClusterTree(tree.children[0])
        with self.assertRaises(ValueError):
            StrongAdmissibility(eta=0)

    def test_check_tiling_detects_overlap(self):
        tree = ClusterTree.from_permutation(np.arange(16), leaf_size=4)
        bct = BlockClusterTree(tree, admissible=WeakAdmissibility())
        leaves = bct.get_leaves()
        bct._leaves = leaves + (leaves[0],)
        with self.assertRaises(RuntimeError):
            bct.check_tiling()
        bct._leaves = leaves[1:]
        with self.assertRaises(RuntimeError):
            bct.check_tiling()


if __name__ == '__main__':
    unittest.main()
