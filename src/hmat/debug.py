import threading

import scipy.sparse.linalg

from hmat.config import HMatOpt


_state = threading.local()


class IndentedPrinter(object):
    """Print debug traces indented by how many IndentedPrinter contexts
    are open in the current thread. Nothing is printed unless the debug
    option is set."""

    @staticmethod
    def _get_indent():
        return getattr(_state, 'indent', -1)

    def print(self, *args, **kwargs):
        if HMatOpt.get('debug'):
            indent = max(0, IndentedPrinter._get_indent())
            if threading.current_thread() is not threading.main_thread():
                print('[%s] ' % threading.current_thread().name, end='')
            print('    ' * indent, end='')
            print(*args, **kwargs)

    def __enter__(self):
        _state.indent = IndentedPrinter._get_indent() + 1
        return self

    def __exit__(self, type, value, traceback):
        _state.indent = IndentedPrinter._get_indent() - 1


class DebugLinearOperator(scipy.sparse.linalg.LinearOperator):
    """Wrap a matrix, counting the products an iterative method (e.g.
    ARPACK inside svds) takes with it."""

    def __init__(self, mat):
        self._mat = mat
        self._mat_adjoint = mat.conj().T
        self.counts = {'matvec': 0, 'matmat': 0, 'rmatvec': 0, 'rmatmat': 0}

    @property
    def dtype(self):
        return self._mat.dtype

    @property
    def shape(self):
        return self._mat.shape

    def _matvec(self, x):
        self.counts['matvec'] += 1
        return self._mat@x

    def _matmat(self, X):
        self.counts['matmat'] += 1
        return self._mat@X

    def _rmatvec(self, x):
        self.counts['rmatvec'] += 1
        return self._mat_adjoint@x

    def _rmatmat(self, X):
        self.counts['rmatmat'] += 1
        return self._mat_adjoint@X

    def debug_print(self):
        with IndentedPrinter() as _:
            _.print(', '.join('%ss: %d' % item for item in self.counts.items()))
