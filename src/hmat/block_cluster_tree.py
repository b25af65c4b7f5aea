import numpy as np

from hmat.config import HMatOpt
from hmat.error import ASSERT


class StrongAdmissibility(object):
    """The usual geometric admissibility condition: a pair of clusters is
    admissible ("far") if

        min(diam(row), diam(col)) <= eta*dist(row, col),

    where diameters and distances are taken from the bounding boxes of
    the clusters' DOF positions. Clusters without positions are never
    admissible.

    """

    def __init__(self, eta=None):
        self.eta = HMatOpt.get_or_default('eta', eta)
        if self.eta <= 0:
            raise ValueError('eta should be positive')

    def __call__(self, row_node, col_node):
        if row_node.bbox is None or col_node.bbox is None:
            return False
        dist = row_node.get_distance(col_node)
        if dist == 0:
            return False
        return min(row_node.diameter, col_node.diameter) <= self.eta*dist


class WeakAdmissibility(object):
    """HODLR-style admissibility: a pair of clusters is admissible as soon
    as their hierarchical index ranges are disjoint. This only makes
    sense for square operators whose rows and columns are clustered the
    same way.

    """

    def __call__(self, row_node, col_node):
        return not row_node.index_range.overlaps(col_node.index_range)


class BlockClusterTreeNode(object):
    """A node of a block cluster tree: a pair of a row cluster and a
    column cluster. Leaves are either admissible ("far", eligible for
    compression) or not ("near", stored exactly).

    """

    def __init__(self, row_node, col_node, parent=None):
        self._row_node = row_node
        self._col_node = col_node
        self._parent = parent
        self._depth = 0 if parent is None else parent._depth + 1
        self._admissible = False
        self._children = ()
        self._leaf_index = None

    def __repr__(self):
        return 'a %s block [%d, %d) x [%d, %d)' % (
            'far' if self._admissible else 'near',
            *self.row_range, *self.col_range)

    @property
    def row_node(self):
        return self._row_node

    @property
    def col_node(self):
        return self._col_node

    @property
    def row_range(self):
        return self._row_node.index_range

    @property
    def col_range(self):
        return self._col_node.index_range

    @property
    def row_original_indices(self):
        return self._row_node.original_indices

    @property
    def col_original_indices(self):
        return self._col_node.original_indices

    @property
    def shape(self):
        return self._row_node.size, self._col_node.size

    @property
    def admissible(self):
        return self._admissible

    @property
    def is_far(self):
        return self._admissible

    @property
    def is_near(self):
        return not self._admissible

    @property
    def parent(self):
        return self._parent

    @property
    def children(self):
        return self._children

    @property
    def depth(self):
        return self._depth

    @property
    def is_leaf(self):
        return not self._children

    @property
    def leaf_index(self):
        """The position of this leaf in BlockClusterTree.get_leaves() (None
        for interior nodes)."""
        return self._leaf_index

    def get_nodes(self):
        yield self
        for child in self._children:
            yield from child.get_nodes()


class BlockClusterTree(object):
    """A block cluster tree pairing a row cluster tree with a column
    cluster tree. Its leaves tile the (rows x columns) index rectangle
    in the hierarchical ordering. The tree is built once and never
    modified afterwards, so several hierarchical matrices can share it.

    """

    def __init__(self, row_tree, col_tree=None, admissible=None,
                 min_size=None):
        """Build a block cluster tree.

        Parameters
        ----------
        row_tree : ClusterTree
            The root of the cluster tree indexing the rows.
        col_tree : ClusterTree, optional
            The root of the cluster tree indexing the columns. Defaults
            to row_tree.
        admissible : callable, optional
            A predicate admissible(row_node, col_node) deciding whether
            a pair of clusters is stored in compressed form. Defaults to
            StrongAdmissibility().
        min_size : nonnegative integer, optional
            Inadmissible pairs with at most this many entries are not
            subdivided further. Defaults to 0 (subdivide until one of
            the clusters is a leaf).

        """
        if col_tree is None:
            col_tree = row_tree
        if not row_tree.is_root or not col_tree.is_root:
            raise ValueError('need the roots of the row and column trees')

        self._row_tree = row_tree
        self._col_tree = col_tree
        self._admissible = StrongAdmissibility() if admissible is None \
            else admissible
        self._min_size = 0 if min_size is None else min_size

        self._root = self._build(row_tree, col_tree, None)

        leaves = []
        for node in self._root.get_nodes():
            if node.is_leaf:
                node._leaf_index = len(leaves)
                leaves.append(node)
        self._leaves = tuple(leaves)

    def _build(self, row_node, col_node, parent):
        node = BlockClusterTreeNode(row_node, col_node, parent)

        # Blocks with an empty side have nothing to compress
        if row_node.is_empty or col_node.is_empty:
            return node

        if self._admissible(row_node, col_node):
            node._admissible = True
            return node

        if row_node.is_leaf or col_node.is_leaf \
           or row_node.size*col_node.size <= self._min_size:
            return node

        node._children = tuple(
            self._build(row_child, col_child, node)
            for row_child in row_node.children
            for col_child in col_node.children)
        return node

    @property
    def root(self):
        return self._root

    @property
    def rows(self):
        return self._row_tree.num_dofs

    @property
    def columns(self):
        return self._col_tree.num_dofs

    @property
    def shape(self):
        return self.rows, self.columns

    @property
    def row_cluster_tree(self):
        return self._row_tree

    @property
    def column_cluster_tree(self):
        return self._col_tree

    @property
    def num_leaves(self):
        return len(self._leaves)

    @property
    def depth(self):
        return max(node.depth for node in self._leaves)

    def get_leaves(self):
        return self._leaves

    def get_far_leaves(self):
        return tuple(leaf for leaf in self._leaves if leaf.is_far)

    def get_near_leaves(self):
        return tuple(leaf for leaf in self._leaves if leaf.is_near)

    def get_nodes(self):
        yield from self._root.get_nodes()

    def check_tiling(self):
        '''Check that the leaves tile the (rows x columns) rectangle with
        no overlap and no gap. Raises RuntimeError otherwise.

        '''
        m, n = self.shape

        # Only the leaf range endpoints matter, so count coverage on the
        # grid they induce instead of on every entry
        row_cuts = np.unique(np.array(
            [0, m] + [_ for leaf in self._leaves for _ in leaf.row_range]))
        col_cuts = np.unique(np.array(
            [0, n] + [_ for leaf in self._leaves for _ in leaf.col_range]))
        ASSERT(row_cuts[0] == 0 and row_cuts[-1] == m)
        ASSERT(col_cuts[0] == 0 and col_cuts[-1] == n)

        count = np.zeros((row_cuts.size - 1, col_cuts.size - 1), dtype=int)
        for leaf in self._leaves:
            if leaf.shape[0] == 0 or leaf.shape[1] == 0:
                continue
            r0, r1 = np.searchsorted(row_cuts, leaf.row_range)
            c0, c1 = np.searchsorted(col_cuts, leaf.col_range)
            count[r0:r1, c0:c1] += 1

        if (count > 1).any():
            raise RuntimeError('block cluster tree leaves overlap')
        if (count == 0).any():
            raise RuntimeError('block cluster tree leaves leave a gap')
