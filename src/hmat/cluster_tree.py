import numpy as np

from collections import namedtuple

from cached_property import cached_property

from hmat.config import HMatOpt
from hmat.partition import get_splitter


class IndexRange(namedtuple('IndexRange', ['start', 'end'])):
    """A half-open range [start, end) of hierarchical DOF indices."""

    __slots__ = ()

    @property
    def size(self):
        return self.end - self.start

    @property
    def slice(self):
        return slice(self.start, self.end)

    def contains(self, i):
        return self.start <= i < self.end

    def overlaps(self, other):
        return self.start < other.end and other.start < self.end


def _check_perm(perm):
    perm = np.asarray(perm)
    if perm.ndim != 1:
        raise ValueError('a permutation must be a 1D array')
    if perm.size > 0 and not np.issubdtype(perm.dtype, np.integer):
        raise ValueError('a permutation must have an integer dtype')
    perm = perm.astype(np.intp)
    if not np.array_equal(np.sort(perm), np.arange(perm.size)):
        raise ValueError(
            'not a permutation of [0, %d): indices are missing or repeated'
            % perm.size)
    return perm


def _get_bbox(X):
    if X.shape[0] == 0:
        return None
    return np.column_stack([X.min(axis=0), X.max(axis=0)])


class ClusterTree(object):
    """A node of a cluster tree: a hierarchical partition of a set of
    degrees of freedom (DOFs) into nested contiguous ranges of a
    permuted ("hierarchical") ordering.

    Every node in the tree can reach the permutation between the
    original DOF ordering and the hierarchical one through its root. A
    cluster tree is immutable once built, so it can be shared freely
    between block cluster trees and hierarchical matrices.

    """

    def __init__(self, index_range, parent=None, bbox=None):
        self._index_range = IndexRange(*index_range)
        self._parent = parent
        self._root = self if parent is None else parent._root
        self._depth = 0 if parent is None else parent._depth + 1
        self._bbox = bbox
        self._children = ()
        self._perm = None
        self._rev_perm = None

    def __repr__(self):
        return 'a ClusterTree node with range [%d, %d) at depth %d' % (
            self.i0, self.i1, self.depth)

    @classmethod
    def from_points(cls, points, leaf_size=None, max_depth=None,
                    split='bisection'):
        """Build a cluster tree by recursively splitting a set of DOF
        positions.

        Parameters
        ----------
        points : array_like
            An (num_dofs, dim) array of DOF positions (a 1D array is
            treated as points on a line). Row i is the position of
            original DOF i.
        leaf_size : positive integer, optional
            Nodes with at most this many DOFs are not split further.
            Defaults to HMatOpt.get('leaf_size').
        max_depth : nonnegative integer or None
            The maximum depth of the tree. None means no limit.
        split : str or callable
            'bisection', 'quadtree', 'octree', or a function mapping an
            (n, dim) array of points to a list of disjoint index arrays
            covering range(n).

        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(points.size, 1)
        if points.ndim != 2:
            raise ValueError('points should be a 1D or 2D array')

        leaf_size = HMatOpt.get_or_default('leaf_size', leaf_size)
        if leaf_size < 1:
            raise ValueError('leaf_size should be a positive integer')
        if max_depth is not None and max_depth < 0:
            raise ValueError('max_depth should be nonnegative')

        splitter = get_splitter(split)

        perm_parts = []

        def build(parent, i0, I):
            node = cls((i0, i0 + I.size), parent, _get_bbox(points[I]))
            children = []
            if I.size > leaf_size and \
               (max_depth is None or node.depth < max_depth):
                parts = splitter(points[I])
                # A split which fails to separate the points would
                # recurse forever, so stop here instead
                if sum(J.size > 0 for J in parts) > 1:
                    offset = i0
                    for J in parts:
                        children.append(build(node, offset, I[J]))
                        offset += J.size
            if not children:
                perm_parts.append(I)
            node._children = tuple(children)
            return node

        num_dofs = points.shape[0]
        root = build(None, 0, np.arange(num_dofs))
        perm = np.concatenate(perm_parts) if perm_parts \
            else np.empty(0, dtype=np.intp)
        root._set_perm(perm)
        return root

    @classmethod
    def from_permutation(cls, perm, leaf_size=None, branching=2,
                         points=None):
        """Build a balanced cluster tree over an explicitly given
        permutation.

        Parameters
        ----------
        perm : array_like
            perm[j] is the original DOF index of hierarchical DOF j.
        leaf_size : positive integer, optional
            Ranges with at most this many DOFs become leaves. Defaults
            to HMatOpt.get('leaf_size').
        branching : integer >= 2
            The number of children of each interior node. Each range is
            split into this many parts of (nearly) equal size.
        points : array_like, optional
            DOF positions in the original ordering. If passed, each
            node records the bounding box of its DOFs, which is needed
            for geometric admissibility.

        """
        perm = _check_perm(perm)

        leaf_size = HMatOpt.get_or_default('leaf_size', leaf_size)
        if leaf_size < 1:
            raise ValueError('leaf_size should be a positive integer')
        if branching < 2:
            raise ValueError('branching should be at least 2')

        if points is not None:
            points = np.asarray(points, dtype=np.float64)
            if points.ndim == 1:
                points = points.reshape(points.size, 1)
            if points.shape[0] != perm.size:
                raise ValueError('need one point per DOF')

        def build(parent, i0, i1):
            bbox = None if points is None else _get_bbox(points[perm[i0:i1]])
            node = cls((i0, i1), parent, bbox)
            size = i1 - i0
            if size > leaf_size:
                sizes = [len(_) for _ in
                         np.array_split(np.arange(size), min(branching, size))]
                offsets = np.cumsum([i0] + sizes)
                node._children = tuple(
                    build(node, offsets[k], offsets[k + 1])
                    for k in range(len(sizes)))
            return node

        root = build(None, 0, perm.size)
        root._set_perm(perm)
        return root

    def _set_perm(self, perm):
        perm = _check_perm(perm)
        rev_perm = np.empty_like(perm)
        rev_perm[perm] = np.arange(perm.size, dtype=perm.dtype)
        perm.flags.writeable = False
        rev_perm.flags.writeable = False
        self._perm = perm
        self._rev_perm = rev_perm

    @property
    def index_range(self):
        return self._index_range

    @property
    def i0(self):
        return self._index_range.start

    @property
    def i1(self):
        return self._index_range.end

    @property
    def size(self):
        """The number of DOFs in this node."""
        return self._index_range.size

    @property
    def num_dofs(self):
        """The number of DOFs in the whole tree."""
        return self._root.size

    @property
    def root(self):
        return self._root

    @property
    def perm(self):
        """perm[j] is the original index of hierarchical DOF j."""
        return self._root._perm

    @property
    def rev_perm(self):
        """rev_perm[i] is the hierarchical index of original DOF i."""
        return self._root._rev_perm

    @property
    def original_indices(self):
        """The original indices of the DOFs in this node, in hierarchical
        order."""
        return self.perm[self._index_range.slice]

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
    def is_root(self):
        return self._root is self

    @property
    def is_leaf(self):
        return not self._children

    @property
    def is_empty(self):
        return self.size == 0

    @property
    def bbox(self):
        """A (dim, 2) array of [min, max] coordinates of this node's DOF
        positions, or None if the positions aren't known or the node is
        empty."""
        return self._bbox

    @cached_property
    def diameter(self):
        if self._bbox is None:
            return np.inf
        return np.linalg.norm(self._bbox[:, 1] - self._bbox[:, 0])

    def get_distance(self, other):
        """The distance between the bounding boxes of two nodes."""
        if self._bbox is None or other._bbox is None:
            return 0.0
        gap = np.maximum(0, np.maximum(
            other._bbox[:, 0] - self._bbox[:, 1],
            self._bbox[:, 0] - other._bbox[:, 1]))
        return np.linalg.norm(gap)

    def _check_dof(self, dof):
        dof = np.asarray(dof)
        if not np.issubdtype(dof.dtype, np.integer):
            raise TypeError('DOF indices must be integers')
        if np.any(dof < 0) or np.any(dof >= self.num_dofs):
            raise IndexError('DOF index out of range [0, %d)' % self.num_dofs)
        return dof

    def map_original_dof_to_hmat_dof(self, i):
        i = self._check_dof(i)
        j = self.rev_perm[i]
        return int(j) if j.ndim == 0 else j

    def map_hmat_dof_to_original_dof(self, j):
        j = self._check_dof(j)
        i = self.perm[j]
        return int(i) if i.ndim == 0 else i

    def get_nodes(self):
        yield self
        for child in self.children:
            yield from child.get_nodes()

    def get_leaves(self):
        for node in self.get_nodes():
            if node.is_leaf:
                yield node

    def get_max_depth(self):
        return max(_.depth for _ in self.get_nodes())

    def get_levels(self):
        levels = dict()
        for node in self.get_nodes():
            if node.depth not in levels:
                levels[node.depth] = []
            levels[node.depth].append(node)
        return levels

    def _get_dot_label(self):
        return f'[{self.i0}, {self.i1})'

    def _add_dot_nodes(self, dot, parent_label):
        for node in self.children:
            if node.size > 0:
                label = node._get_dot_label()
                dot.node(label)
                dot.edge(parent_label, label)
                node._add_dot_nodes(dot, label)

    def todot(self):
        import graphviz
        dot = graphviz.Digraph()
        label = self._get_dot_label()
        dot.node(label)
        self._add_dot_nodes(dot, label)
        return dot
