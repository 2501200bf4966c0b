"""Public API for the :mod:`sklcentroids` package.

The package exposes a nearest-mean (k-means) model used in pattern
recognition pipelines:

* :class:`~sklcentroids.CentroidModel` – stores cluster means, assigns
    samples to their nearest mean and aggregates per-cluster variances and
    weights.
* :class:`~sklcentroids.Machine` – structural interface with a validating
    ``forward`` call and a raw ``forward_unchecked`` call.

Errors and warnings live in :mod:`sklcentroids.exceptions`.
"""

from ._base import Machine
from ._centroid_model import CentroidModel

__all__ = ["CentroidModel", "Machine"]

# Light-weight version attribute for now; adjust if setuptools_scm is adopted.
__version__ = "0.1.0"
