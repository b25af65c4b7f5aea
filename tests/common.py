import numpy as np

from hmat.block_cluster_tree import BlockClusterTree, StrongAdmissibility
from hmat.cluster_tree import ClusterTree
from hmat.kernels import PointKernelMatrix


def get_random_points(num_points, dim=3, seed=0):
    return np.random.default_rng(seed).random((num_points, dim))


def get_point_problem(num_points=300, dim=3, leaf_size=16, eta=1.0,
                      kernel=None, seed=0):
    '''Return (X, block cluster tree, kernel matrix) for a point kernel
    over random points in the unit cube.'''
    X = get_random_points(num_points, dim, seed)
    tree = ClusterTree.from_points(X, leaf_size=leaf_size)
    bct = BlockClusterTree(tree, admissible=StrongAdmissibility(eta))
    return X, bct, PointKernelMatrix(X, kernel=kernel)


def rel_error(approx, exact):
    return np.linalg.norm(approx - exact)/np.linalg.norm(exact)
