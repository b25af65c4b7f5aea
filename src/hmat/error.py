class HMatError(Exception):
    """Base class for errors raised by hmat."""


class ShapeMismatchError(HMatError, ValueError):
    """An operand's shape disagrees with the hierarchical matrix (or one of
    its cluster trees)."""


class CompressionError(HMatError, RuntimeError):
    """A compressor failed to produce a block for a leaf."""


def ASSERT(cond, msg=None):
    if not cond:
        raise AssertionError('internal error' if msg is None else msg)
