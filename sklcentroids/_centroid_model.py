"""Centroid model for nearest-mean assignment and per-cluster statistics.

This module implements :class:`CentroidModel`, the k-means "machine" of a
pattern recognition pipeline. The model stores a fixed set of learned
cluster means, assigns feature vectors to their nearest mean and derives
the per-cluster variances and weights needed to initialise downstream
estimators such as Gaussian mixture models.

The model does not learn its means. A trainer computes them (for instance
with :func:`sklearn.cluster.k_means`) and writes them back through
:meth:`CentroidModel.set_means`, :meth:`CentroidModel.set_mean` or the
writable array returned by :meth:`CentroidModel.update_means`.

Notes
-----
Throughout this module "distance" means the *squared* Euclidean distance
:math:`\\sum_d (x_d - \\mu_{i,d})^2`. No square root is taken; callers that
need the true Euclidean distance apply :func:`numpy.sqrt` themselves.

Ties between equally distant means are always broken toward the lowest
mean index.
"""

from __future__ import annotations

import os
import threading
import warnings
import zipfile
from contextlib import contextmanager
from copy import deepcopy
from numbers import Integral

import numpy as np
from sklearn import get_config
from sklearn.utils import gen_batches
from sklearn.utils.validation import check_array, check_scalar

from .exceptions import (
    DimensionMismatch,
    EmptyClusterWarning,
    EmptyDataset,
    EmptyModel,
    IndexOutOfRange,
    InvalidDimension,
    MalformedConfig,
    ShapeMismatch,
)

# Optional numba acceleration (soft dependency)
try:  # pragma: no cover - optional path
    from numba import njit, prange  # type: ignore

    _NUMBA_AVAILABLE = True
except Exception:  # pragma: no cover - optional path
    _NUMBA_AVAILABLE = False

###############################################################################
# Helper utilities


def _check_size(value, name):
    if isinstance(value, bool):
        raise InvalidDimension(f"{name} must be an integer, not bool")
    try:
        check_scalar(value, name, Integral, min_val=0)
    except (TypeError, ValueError) as exc:
        raise InvalidDimension(str(exc)) from exc
    return int(value)


def _as_means_matrix(means):
    """Return a float64 copy of ``means``, which must be 2-D."""
    try:
        means = np.array(means, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ShapeMismatch(f"means could not be converted to an array: {exc}") from exc
    if means.ndim != 2:
        raise ShapeMismatch(
            f"means should be a 2D array of shape (n_means, n_inputs), "
            f"got an array of shape {means.shape}"
        )
    return means


def _read_int(source, key):
    value = np.asarray(source[key]).item()
    if not isinstance(value, Integral):
        raise MalformedConfig(f"field {key!r} should be an integer, got {value!r}")
    return int(value)


def _read_config(source):
    """Extract ``(means, n_means, n_inputs)`` from a key/array store."""
    try:
        means = np.array(source["means"], dtype=np.float64)
        n_means = _read_int(source, "n_means")
        n_inputs = _read_int(source, "n_inputs")
    except KeyError as exc:
        raise MalformedConfig(f"missing field {exc.args[0]!r}") from exc
    except MalformedConfig:
        raise
    except (TypeError, ValueError) as exc:
        raise MalformedConfig(f"invalid field value: {exc}") from exc

    if means.ndim != 2:
        raise MalformedConfig(f"'means' should be 2D, got shape {means.shape}")
    if means.shape != (n_means, n_inputs):
        raise MalformedConfig(
            f"'means' has shape {means.shape} but the stored sizes are "
            f"n_means={n_means}, n_inputs={n_inputs}"
        )
    return means, n_means, n_inputs


def _nearest(D2):
    """Index and value of the smallest distance along the last axis.

    NaN distances never win; a row of NaN gives index 0 and ``inf``.
    The first minimum is kept, i.e. the lowest index on ties.
    """
    D2 = np.where(np.isnan(D2), np.inf, D2)
    best = np.argmin(D2, axis=-1)
    return best, np.take_along_axis(D2, np.expand_dims(best, -1), axis=-1)[..., 0]


def _closest_means_numpy(chunks, n_samples):
    labels = np.empty(n_samples, dtype=np.intp)
    min_distances = np.empty(n_samples, dtype=np.float64)
    for batch, D2 in chunks:
        labels[batch], min_distances[batch] = _nearest(D2)
    return labels, min_distances


if _NUMBA_AVAILABLE:  # pragma: no cover - exercised only when numba present

    @njit(parallel=True)
    def _closest_means_numba(X, means):  # type: ignore
        n_samples, n_features = X.shape
        n_means = means.shape[0]
        labels = np.empty(n_samples, dtype=np.intp)
        min_distances = np.empty(n_samples, dtype=np.float64)
        for j in prange(n_samples):
            best = np.inf
            pos = 0
            for k in range(n_means):
                d2 = 0.0
                for f in range(n_features):
                    t = X[j, f] - means[k, f]
                    d2 += t * t
                if d2 < best:
                    best = d2
                    pos = k
            labels[j] = pos
            min_distances[j] = best
        return labels, min_distances


###############################################################################
# Centroid model


class CentroidModel:
    """Nearest-mean (k-means) model over a fixed set of cluster means.

    Parameters
    ----------
    n_means : int, default=0
        Number of means (clusters), ``K``.
    n_inputs : int, default=0
        Feature dimensionality, ``D``.
    use_numba : bool, default=False
        If ``True`` and :mod:`numba` is installed (see ``[speed]`` extra),
        use a JIT-compiled kernel for the nearest-mean scan of batch
        operations. Results are identical to the NumPy path.
    verbose : int, default=0
        Verbosity level. ``0`` is silent; higher values print a summary of
        each aggregation and persistence call.

    Attributes
    ----------
    n_means : int
        Number of means.
    n_inputs : int
        Feature dimensionality.
    means : ndarray of shape (n_means, n_inputs)
        Read-only view of the means, one mean per row.

    Notes
    -----
    A model built from sizes has all its means set to zero. An empty
    ``0 x 0`` model is valid but every operation that needs a mean raises
    :class:`~sklcentroids.exceptions.EmptyModel`.

    Read-only operations may run concurrently on a model that is not being
    mutated. Mutators (:meth:`resize`, :meth:`set_means`, :meth:`set_mean`,
    :meth:`load` and writes through :meth:`update_means`) must be
    serialised with respect to every other call.

    Examples
    --------
    >>> import numpy as np
    >>> from sklcentroids import CentroidModel
    >>> model = CentroidModel.from_means([[1.0, 1.0], [5.0, 5.0]])
    >>> model.find_nearest([2.0, 2.0])
    (0, 2.0)
    >>> variances, weights = model.cluster_statistics(
    ...     [[0.0, 0.0], [2.0, 2.0], [6.0, 6.0]])
    >>> variances
    array([[1., 1.],
           [0., 0.]])
    >>> weights
    array([0.66666667, 0.33333333])
    """

    def __init__(self, n_means=0, n_inputs=0, *, use_numba=False, verbose=0):
        n_means = _check_size(n_means, "n_means")
        n_inputs = _check_size(n_inputs, "n_inputs")
        self.use_numba = bool(use_numba)
        self.verbose = verbose
        self._means = np.zeros((n_means, n_inputs), dtype=np.float64)
        # scratch buffer for cluster_statistics, kept the same shape as _means
        self._cache_means = np.zeros_like(self._means)
        self._cache_lock = threading.Lock()

    @classmethod
    def from_means(cls, means, **kwargs):
        """Build a model holding a copy of ``means``.

        Parameters
        ----------
        means : array-like of shape (n_means, n_inputs)
            One mean per row.
        **kwargs
            Forwarded to the constructor (``use_numba``, ``verbose``).

        Returns
        -------
        model : CentroidModel
        """
        model = cls(**kwargs)
        model.set_means(means)
        return model

    @classmethod
    def from_config(cls, source, **kwargs):
        """Build a model from a configuration store, see :meth:`load`."""
        model = cls(**kwargs)
        model.load(source)
        return model

    # ------------------------------------------------------------------
    # shape and accessors

    @property
    def n_means(self):
        return self._means.shape[0]

    @property
    def n_inputs(self):
        return self._means.shape[1]

    @property
    def means(self):
        view = self._means.view()
        view.flags.writeable = False
        return view

    def resize(self, n_means, n_inputs):
        """Resize the model to ``n_means`` means of ``n_inputs`` features.

        All means are reset to zero. On invalid sizes the model is left
        unchanged and :class:`~sklcentroids.exceptions.InvalidDimension` is
        raised.
        """
        n_means = _check_size(n_means, "n_means")
        n_inputs = _check_size(n_inputs, "n_inputs")
        self._means = np.zeros((n_means, n_inputs), dtype=np.float64)
        self._cache_means = np.zeros_like(self._means)

    def set_means(self, means):
        """Replace all the means with a copy of ``means``.

        The model adopts the shape of ``means``: setting a matrix with a
        different number of rows or columns resizes the model.

        Parameters
        ----------
        means : array-like of shape (n_means, n_inputs)
            One mean per row.
        """
        means = _as_means_matrix(means)
        if means.shape != self._cache_means.shape:
            self._cache_means = np.zeros_like(means)
        self._means = means

    def set_mean(self, i, mean):
        """Replace the ``i``-th mean with a copy of ``mean``."""
        i = self._check_index(i)
        mean = np.asarray(mean, dtype=np.float64)
        if mean.shape != (self.n_inputs,):
            raise ShapeMismatch(
                f"mean should have shape ({self.n_inputs},), got {mean.shape}"
            )
        self._means[i] = mean

    def get_mean(self, i):
        """Return a copy of the ``i``-th mean."""
        i = self._check_index(i)
        return self._means[i].copy()

    def get_means(self):
        """Return a copy of the means, one mean per row."""
        return self._means.copy()

    def update_means(self):
        """Return the means array itself, for in-place updates by trainers.

        Writes through the returned array change the model. The array must
        not be resized; use :meth:`resize` or :meth:`set_means` instead.
        """
        return self._means

    def _check_index(self, i):
        if isinstance(i, bool) or not isinstance(i, Integral):
            raise TypeError(f"mean index should be an integer, got {type(i).__name__}")
        if not 0 <= i < self.n_means:
            raise IndexOutOfRange(
                f"mean index {i} is out of range for a model with {self.n_means} means"
            )
        return int(i)

    def _check_not_empty(self):
        if self.n_means == 0:
            raise EmptyModel("the model has no means")

    def _check_sample(self, x):
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.n_inputs,):
            raise DimensionMismatch(
                f"sample should have shape ({self.n_inputs},), got {x.shape}"
            )
        return x

    def _validate_samples(self, X):
        """Return ``X`` as a float64 array of shape (n_samples, n_inputs)."""
        n_inputs = self.n_inputs
        if not hasattr(X, "__array__") and not isinstance(X, (list, tuple)):
            X = list(X)
        if not hasattr(X, "shape"):
            for j, row in enumerate(X):
                if np.shape(row) != (n_inputs,):
                    raise DimensionMismatch(
                        f"sample {j} has shape {np.shape(row)}, expected ({n_inputs},)"
                    )
            X = np.asarray(X, dtype=np.float64).reshape(len(X), n_inputs)
        X = np.asarray(X)
        if X.ndim != 2 or X.shape[1] != n_inputs:
            raise DimensionMismatch(
                f"samples should have shape (n_samples, {n_inputs}), got {X.shape}"
            )
        return check_array(
            X,
            dtype=np.float64,
            order="C",
            ensure_min_samples=0,
            ensure_min_features=0,
        )

    # ------------------------------------------------------------------
    # distances

    def squared_euclidean_distance(self, x, i):
        """Return the squared Euclidean distance of ``x`` to the ``i``-th mean.

        Parameters
        ----------
        x : array-like of shape (n_inputs,)
            Sample.
        i : int
            Mean index.

        Returns
        -------
        distance : float
        """
        x = self._check_sample(x)
        i = self._check_index(i)
        diff = x - self._means[i]
        return float(np.sum(diff * diff))

    def _distances(self, x):
        diff = self._means - x
        return np.sum(diff * diff, axis=1)

    def find_nearest(self, x):
        """Find the mean closest to ``x``.

        Parameters
        ----------
        x : array-like of shape (n_inputs,)
            Sample.

        Returns
        -------
        index : int
            Index of the closest mean. On ties the lowest index wins.
        distance : float
            Squared Euclidean distance of ``x`` to that mean.
        """
        self._check_not_empty()
        x = self._check_sample(x)
        index, distance = _nearest(self._distances(x))
        return int(index), float(distance)

    def min_distance(self, x):
        """Return the squared distance of ``x`` to its closest mean."""
        return self.find_nearest(x)[1]

    def forward(self, x):
        """Model output for one sample: its minimum squared distance.

        Lower values mean a better fit. Equivalent to :meth:`min_distance`.
        """
        self._check_not_empty()
        x = self._check_sample(x)
        return self.forward_unchecked(x)

    def forward_unchecked(self, x):
        """Same as :meth:`forward` without validating ``x`` or the model.

        ``x`` must already be a float array of shape ``(n_inputs,)`` and the
        model must hold at least one mean.
        """
        return float(_nearest(self._distances(x))[1])

    # ------------------------------------------------------------------
    # batch operations

    def _batch_size(self):
        row_bytes = max(self.n_means * self.n_inputs, 1) * 8
        working_memory = get_config()["working_memory"]
        return max(1, int(working_memory * 2**20) // row_bytes)

    def _distance_chunks(self, X):
        if X.shape[0] == 0:
            return
        for batch in gen_batches(X.shape[0], self._batch_size()):
            diff = X[batch, None, :] - self._means[None, :, :]
            yield batch, np.sum(diff * diff, axis=2)

    def _closest_means(self, X):
        if self.use_numba and _NUMBA_AVAILABLE:
            return _closest_means_numba(X, self._means)  # type: ignore
        return _closest_means_numpy(self._distance_chunks(X), X.shape[0])

    def transform(self, X):
        """Compute squared distances of samples to every mean.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_inputs)
            Samples.

        Returns
        -------
        distances : ndarray of shape (n_samples, n_means)
        """
        X = self._validate_samples(X)
        out = np.empty((X.shape[0], self.n_means), dtype=np.float64)
        for batch, D2 in self._distance_chunks(X):
            out[batch] = D2
        return out

    def closest_means(self, X):
        """Find the closest mean of every sample in ``X``.

        Returns
        -------
        labels : ndarray of shape (n_samples,)
            Index of the closest mean of each sample.
        min_distances : ndarray of shape (n_samples,)
            Squared distance of each sample to its closest mean.
        """
        self._check_not_empty()
        X = self._validate_samples(X)
        return self._closest_means(X)

    def predict(self, X):
        """Return the index of the closest mean of every sample in ``X``."""
        return self.closest_means(X)[0]

    @contextmanager
    def _scratch_means(self):
        # concurrent readers that find the buffer busy get a private one
        if self._cache_lock.acquire(blocking=False):
            try:
                yield self._cache_means
            finally:
                self._cache_lock.release()
        else:
            yield np.empty_like(self._means)

    def cluster_statistics(self, X):
        """Per-cluster variances and weights of ``X`` under hard assignment.

        Every sample is assigned to its closest mean. For each mean, the
        samples assigned to it give

        * its weight, the fraction of all samples assigned to it;
        * its variance, per feature, around the average of those samples
          (population variance, normalised by the cluster size).

        A mean that receives no sample gets a zero weight and a zero
        variance row, and an
        :class:`~sklcentroids.exceptions.EmptyClusterWarning` is emitted.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_inputs) or iterable of samples
            Samples.

        Returns
        -------
        variances : ndarray of shape (n_means, n_inputs)
            Cluster variances, one row per mean.
        weights : ndarray of shape (n_means,)
            Cluster weights. They sum to one.
        """
        self._check_not_empty()
        X = self._validate_samples(X)
        n_samples = X.shape[0]
        if n_samples == 0:
            raise EmptyDataset("cluster statistics need at least one sample")

        labels, _ = self._closest_means(X)
        counts = np.bincount(labels, minlength=self.n_means).astype(np.float64)
        populated = (counts > 0)[:, None]

        variances = np.zeros_like(self._means)
        with self._scratch_means() as cluster_means:
            cluster_means.fill(0.0)
            np.add.at(cluster_means, labels, X)
            np.divide(cluster_means, counts[:, None], out=cluster_means, where=populated)
            deviations = X - cluster_means[labels]
        np.add.at(variances, labels, deviations * deviations)
        np.divide(variances, counts[:, None], out=variances, where=populated)
        weights = counts / n_samples

        n_empty = int(np.count_nonzero(counts == 0))
        if n_empty:
            warnings.warn(
                "{} of {} means received no sample; their variances are "
                "set to zero.".format(n_empty, self.n_means),
                EmptyClusterWarning,
                stacklevel=2,
            )
        if self.verbose:
            print(
                f"[CentroidModel] cluster statistics over {n_samples} samples, "
                f"{self.n_means - n_empty}/{self.n_means} means populated"
            )
        return variances, weights

    # ------------------------------------------------------------------
    # persistence

    def load(self, source):
        """Load the model from a configuration store.

        Parameters
        ----------
        source : mapping or path-like
            Either a mapping from keys to arrays (``dict``,
            :class:`numpy.lib.npyio.NpzFile`, an ``h5py`` group, ...) or the
            path of an ``.npz`` archive. The keys ``"means"``,
            ``"n_means"`` and ``"n_inputs"`` are required.

        Raises
        ------
        MalformedConfig
            If the file cannot be read as an archive, a field is missing or
            the fields are inconsistent. The model is left unchanged.
        """
        if isinstance(source, (str, os.PathLike)):
            try:
                archive = np.load(source, allow_pickle=False)
            except (ValueError, EOFError, zipfile.BadZipFile) as exc:
                raise MalformedConfig(
                    f"{os.fspath(source)!r} could not be read: {exc}"
                ) from exc
            if not isinstance(archive, np.lib.npyio.NpzFile):
                raise MalformedConfig(f"{os.fspath(source)!r} is not an .npz archive")
            with archive:
                means, n_means, n_inputs = _read_config(archive)
        else:
            means, n_means, n_inputs = _read_config(source)

        self._means = means
        self._cache_means = np.zeros_like(means)
        if self.verbose:
            print(f"[CentroidModel] loaded {n_means} means of dimension {n_inputs}")

    def save(self, sink):
        """Save the model to a configuration store.

        Parameters
        ----------
        sink : mutable mapping or path-like
            Either a mapping that accepts item assignment or a path. Paths
            are written with :func:`numpy.savez`, which appends ``.npz``
            when missing.
        """
        config = {
            "means": self._means.copy(),
            "n_means": np.int64(self.n_means),
            "n_inputs": np.int64(self.n_inputs),
        }
        if isinstance(sink, (str, os.PathLike)):
            np.savez(sink, **config)
        else:
            for key, value in config.items():
                sink[key] = value
        if self.verbose:
            print(f"[CentroidModel] saved {self.n_means} means of dimension {self.n_inputs}")

    # ------------------------------------------------------------------
    # copy, comparison and pickling

    def copy(self):
        """Return a deep copy of the model."""
        return deepcopy(self)

    def __copy__(self):
        return self.copy()

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["_cache_means"]
        del state["_cache_lock"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._cache_means = np.zeros_like(self._means)
        self._cache_lock = threading.Lock()

    def __eq__(self, other):
        if not isinstance(other, CentroidModel):
            return NotImplemented
        return self._means.shape == other._means.shape and bool(
            np.array_equal(self._means, other._means)
        )

    __hash__ = None

    def is_similar_to(self, other, r_epsilon=1e-5, a_epsilon=1e-8):
        """Compare with ``other`` using relative and absolute tolerances.

        Returns ``True`` if both models have the same shape and all their
        means are close according to :func:`numpy.allclose`.
        """
        return self._means.shape == other._means.shape and bool(
            np.allclose(self._means, other._means, rtol=r_epsilon, atol=a_epsilon)
        )

    def __repr__(self):
        return f"{type(self).__name__}(n_means={self.n_means}, n_inputs={self.n_inputs})"
