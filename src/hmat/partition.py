'''Splitting rules used to build cluster trees from DOF positions.

Each rule takes an (n, d) array of points and returns a list of index
arrays into it. The index arrays are disjoint and their union is
range(n). Some of them may be empty.

'''

import itertools as it
import numpy as np


def _get_bbox(X, bbox=None):
    if bbox is not None:
        bbox = np.asarray(bbox, dtype=np.float64)
        return bbox[:, 0], bbox[:, 1]
    return np.min(X, axis=0), np.max(X, axis=0)


def get_orthant_order(X, bbox=None):
    '''Split X into the 2**d orthants of its bounding box (or of bbox,
    given as a (d, 2) array of [min, max] rows). Points on a
    splitting plane go to the lower orthant.

    '''
    lo, hi = _get_bbox(X, bbox)
    c = (lo + hi)/2
    Is = []
    for ops in it.product([np.less_equal, np.greater], repeat=X.shape[1]):
        B = np.column_stack([op(x, xc) for op, x, xc in zip(ops, X.T, c)])
        I = np.where(np.all(B, axis=1))[0]
        Is.append(I)
    return Is


def get_quadrant_order(X, bbox=None):
    if X.shape[1] < 2:
        raise ValueError('quadtree splitting needs points with at least 2 coordinates')
    if bbox is not None:
        bbox = np.asarray(bbox)[:2]
    return get_orthant_order(X[:, :2], bbox)


def get_octant_order(X, bbox=None):
    if X.shape[1] != 3:
        raise ValueError('octree splitting needs points in 3D')
    return get_orthant_order(X, bbox)


def get_bisection_order(X, bbox=None):
    '''Split X in two at the midpoint of the longest side of its
    bounding box.'''
    lo, hi = _get_bbox(X, bbox)
    axis = np.argmax(hi - lo)
    xc = (lo[axis] + hi[axis])/2
    below = X[:, axis] <= xc
    return [np.where(below)[0], np.where(~below)[0]]


_SPLITTERS = {
    'bisection': get_bisection_order,
    'quadtree': get_quadrant_order,
    'octree': get_octant_order,
}


def get_splitter(split):
    if callable(split):
        return split
    try:
        return _SPLITTERS[split]
    except KeyError:
        raise ValueError('split must be one of: %s (got "%s")' % (
            ', '.join(sorted(_SPLITTERS)), split))
