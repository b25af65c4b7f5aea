import threading
import time

from functools import singledispatch

import numpy as np
import scipy.sparse


_timers = threading.local()


def tic():
    '''Start a timer. Timers nest, and each thread has its own.'''
    if not hasattr(_timers, 'stack'):
        _timers.stack = []
    _timers.stack.append(time.perf_counter())


def toc():
    '''Stop the innermost timer started by tic and return the elapsed time
    in seconds.'''
    return time.perf_counter() - _timers.stack.pop()


@singledispatch
def nbytes(arg):
    if scipy.sparse.issparse(arg):
        return _sparse_nbytes(arg)
    return arg.nbytes


def _sparse_nbytes(arg):
    if arg.format in {'csr', 'csc', 'bsr'}:
        return arg.data.nbytes + arg.indices.nbytes + arg.indptr.nbytes
    elif arg.format == 'coo':
        return arg.data.nbytes + arg.row.nbytes + arg.col.nbytes
    else:
        return nbytes(arg.tocsr())


@nbytes.register(scipy.sparse.csr_matrix)
def _(arg):
    return _sparse_nbytes(arg)


@nbytes.register(tuple)
@nbytes.register(list)
def _(arg):
    return sum(nbytes(_) for _ in arg)


def as_matrix(x):
    '''View a vector as a one-column matrix. Matrices are returned
    unchanged.'''
    x = np.asarray(x)
    if x.ndim == 1:
        return x.reshape(x.size, 1)
    if x.ndim != 2:
        raise ValueError('expected a vector or a matrix (got ndim = %d)' % x.ndim)
    return x
