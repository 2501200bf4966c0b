"""Numba acceleration benchmark for CentroidModel.cluster_statistics.

Measures wall-clock speed of ``cluster_statistics`` with and without
``use_numba`` over several repeats on a synthetic (optionally imbalanced)
dataset. If ``numba`` is not installed the script still runs the pure
NumPy path and prints an informational message.

Run:

    python benchmark/benchmark_cluster_statistics.py
"""

import statistics
import time

import numpy as np

from sklcentroids import CentroidModel

try:
    from numba import njit  # noqa: F401
    HAVE_NUMBA = True
except Exception:
    HAVE_NUMBA = False


def make_data(n_samples=50000, n_features=16, n_clusters=32, imbalance=True, seed=42):
    rng = np.random.RandomState(seed)
    if imbalance:
        # geometric cluster sizes, scaled to n_samples
        sizes = np.array([2.0 ** -(k % 6) for k in range(n_clusters)])
        sizes = np.maximum(5, (sizes * n_samples / sizes.sum()).astype(int))
        sizes[-1] += n_samples - sizes.sum()
    else:
        sizes = np.full(n_clusters, n_samples // n_clusters)
        sizes[-1] += n_samples - sizes.sum()

    centers_true = rng.uniform(-5, 5, size=(n_clusters, n_features))
    X = np.vstack(
        [
            rng.normal(loc=centers_true[k], scale=rng.uniform(0.3, 1.2), size=(sz, n_features))
            for k, sz in enumerate(sizes)
        ]
    )
    return X, centers_true


def time_run(X, means, use_numba, repeats=3):
    model = CentroidModel.from_means(means, use_numba=use_numba)
    durations = []
    weights = None
    for _ in range(repeats):
        t0 = time.time()
        _, weights = model.cluster_statistics(X)
        t1 = time.time()
        durations.append(t1 - t0)
    return {
        'use_numba': use_numba,
        'durations': durations,
        'mean': statistics.mean(durations),
        'std': statistics.pstdev(durations) if len(durations) > 1 else 0.0,
        'weights': weights,
    }


def maybe_warmup(X, means):
    if not HAVE_NUMBA:
        return
    print('[Warmup] Running one unmeasured JIT warm-up (numba).')
    CentroidModel.from_means(means, use_numba=True).cluster_statistics(X[:2000])


def main():
    X, means = make_data()

    if HAVE_NUMBA:
        maybe_warmup(X, means)
    else:
        print('[Info] numba not installed; only measuring pure NumPy path.')

    repeats = 5 if HAVE_NUMBA else 3
    res_no = time_run(X, means, use_numba=False, repeats=repeats)
    res_yes = time_run(X, means, use_numba=True, repeats=repeats) if HAVE_NUMBA else None

    print('\n=== cluster_statistics numba Benchmark ===')
    header = f"{'Variant':15s} {'Mean(s)':>10s} {'Std(s)':>9s}  Durations"
    print(header)
    print('-' * len(header))
    print(f"{'No numba':15s} {res_no['mean']:10.4f} {res_no['std']:9.4f}  {res_no['durations']}")
    if res_yes:
        print(f"{'With numba':15s} {res_yes['mean']:10.4f} {res_yes['std']:9.4f}  {res_yes['durations']}")
        if not np.allclose(res_no['weights'], res_yes['weights']):
            print('[Warn] Weights differ between the NumPy and numba paths.')
        if res_yes['mean'] > 0:
            print(f"\nApprox speedup (No numba / With numba): {res_no['mean'] / res_yes['mean']:.2f}x")

    print('\nDone.')


if __name__ == '__main__':
    main()
