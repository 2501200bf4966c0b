"""Exceptions and warnings raised by :mod:`sklcentroids`.

Every error derives from :class:`CentroidModelError` and from the builtin
exception that best describes it, so callers can catch either.
"""

__all__ = [
    "CentroidModelError",
    "IndexOutOfRange",
    "DimensionMismatch",
    "ShapeMismatch",
    "EmptyModel",
    "EmptyDataset",
    "InvalidDimension",
    "MalformedConfig",
    "EmptyClusterWarning",
]


class CentroidModelError(Exception):
    """Base class for all errors raised by a centroid model."""


class IndexOutOfRange(CentroidModelError, IndexError):
    """A mean index is negative or not smaller than ``n_means``."""


class DimensionMismatch(CentroidModelError, ValueError):
    """A sample does not have ``n_inputs`` features."""


class ShapeMismatch(CentroidModelError, ValueError):
    """A mean vector or matrix does not have the expected shape."""


class EmptyModel(CentroidModelError, ValueError):
    """The operation needs at least one mean but ``n_means == 0``."""


class EmptyDataset(CentroidModelError, ValueError):
    """No samples were supplied to an aggregating operation."""


class InvalidDimension(CentroidModelError, ValueError):
    """A requested number of means or inputs is not a non-negative integer."""


class MalformedConfig(CentroidModelError, ValueError):
    """A persisted configuration is missing fields or is inconsistent."""


class EmptyClusterWarning(UserWarning):
    """Warning used when some means received no sample during aggregation.

    The variance rows of such means are filled with zeros and their
    weights are zero.
    """
