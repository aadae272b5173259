"""
Running aggregate metrics and fractal-dimension estimators.

``MetricsTracker`` is updated incrementally on every attachment, under the
same lock as the aggregate insert, so a reader holding that lock never sees
the size and the radius disagree.

Three estimates of the fractal dimension are available:

1. **Scaling law** (``estimate_fractal_dimension``): ``log(N) / log(R_max)``
   from the running size and spanning radius. Cheap, noisy for small N.
2. **Growth history** (``fit_scaling_dimension``): slope of the log-log fit of
   the (N, R_max) samples recorded while the aggregate grew.
3. **Sandbox** (``estimate_sandbox_dimension``): slope of ``log M(<R)`` against
   ``log R`` over the attached coordinates.

All three return NaN when there is too little data to take a logarithm.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numba import njit
from scipy.stats import linregress

from .lattice import Coordinate

###############################################################################
# Constants
###############################################################################

CONTINUOUS_SAMPLE_INTERVAL = 10
SANDBOX_R_MIN = 2.0
MIN_FIT_POINTS = 3

###############################################################################
# Estimators
###############################################################################


def scaling_dimension(size: int, radius_sq: float) -> float:
    """``log(size) / log(radius)``; NaN when size or radius is <= 1."""
    if size <= 1 or radius_sq <= 1.0:
        return math.nan
    return math.log(size) / math.log(math.sqrt(radius_sq))


def fit_scaling_dimension(samples: Sequence[Tuple[int, float]]) -> float:
    """
    Growth-history estimate: fit ``log N = Df * log R + C`` over (N, R) samples.

    Samples with N <= 1 or R <= 1 are dropped; NaN if fewer than
    ``MIN_FIT_POINTS`` remain or all radii coincide.
    """
    if not samples:
        return math.nan
    data = np.asarray(samples, dtype=np.float64)
    valid = (data[:, 0] > 1.0) & (data[:, 1] > 1.0)
    data = data[valid]
    if data.shape[0] < MIN_FIT_POINTS:
        return math.nan
    log_n = np.log(data[:, 0])
    log_r = np.log(data[:, 1])
    if np.ptp(log_r) == 0.0:
        return math.nan
    slope, intercept, r_value, p_value, std_err = linregress(log_r, log_n)
    return float(slope)


@njit(cache=True, fastmath=True)
def _count_within(dist_sq: np.ndarray, radii_sq: np.ndarray) -> np.ndarray:
    """
    Count how many particles lie inside each radius.

    Both inputs must be sorted ascending; a single merge pass gives M(<R)
    for every R.
    """
    counts = np.zeros(radii_sq.shape[0], dtype=np.int64)
    j = 0
    n = dist_sq.shape[0]
    for i in range(radii_sq.shape[0]):
        while j < n and dist_sq[j] <= radii_sq[i]:
            j += 1
        counts[i] = j
    return counts


def estimate_sandbox_dimension(positions, centre=None, n_radii: Optional[int] = None) -> float:
    """
    Sandbox (mass-radius) estimate of the fractal dimension.

    Counts mass M(<R) inside log-spaced radii from ``SANDBOX_R_MIN`` out to the
    furthest particle and fits ``log M = Df * log R + C``.

    Args:
        positions: (N, D) array-like of particle coordinates.
        centre: Optional D-vector to measure from (defaults to the origin).
        n_radii: Number of radii to sample (default 50-100 scaled with N).

    Returns:
        The fitted slope, or NaN when the aggregate is too small to fit.
    """
    pos = np.asarray(positions, dtype=np.float64)
    if pos.ndim != 2 or pos.shape[0] == 0:
        return math.nan
    if centre is not None:
        pos = pos - np.asarray(centre, dtype=np.float64)
    dist_sq = np.sort(np.sum(pos * pos, axis=1))
    max_distance = math.sqrt(dist_sq[-1])
    if max_distance <= SANDBOX_R_MIN:
        return math.nan

    if n_radii is None:
        n_radii = min(100, max(50, pos.shape[0] // 10))
    radii = np.logspace(np.log10(SANDBOX_R_MIN), np.log10(max_distance), n_radii)
    masses = _count_within(dist_sq, radii * radii)

    valid = masses > 0
    radii = radii[valid]
    masses = masses[valid]
    if radii.shape[0] < MIN_FIT_POINTS or np.all(masses == masses[0]):
        return math.nan

    slope, intercept, r_value, p_value, std_err = linregress(np.log(radii), np.log(masses))
    return float(slope)


###############################################################################
# Tracker
###############################################################################


@dataclass(frozen=True)
class MetricsSnapshot:
    """One consistent reading of the running metrics."""

    size: int
    radius_squared: float
    misses: int
    fractal_dimension: float
    most_recent: Optional[Coordinate]


class MetricsTracker:
    """
    Running size, spanning radius, miss count and growth history.

    Mutators assume the caller already holds ``lock``; readers take it
    themselves so they can be called from any thread.
    """

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self.lock = lock if lock is not None else threading.RLock()
        self.reset()

    def reset(self) -> None:
        with self.lock:
            self._size = 0
            self._max_radius_sq = 0.0
            self._misses = 0
            self._most_recent: Optional[Coordinate] = None
            self._samples: List[Tuple[int, float]] = []
            self._sample_interval = CONTINUOUS_SAMPLE_INTERVAL
            self._run_start: Optional[float] = None
            self._run_end: Optional[float] = None
            self._run_attached = 0

    # ------------------------------------------------------------------ run bookkeeping
    def begin_run(self, target: int, npoints: int) -> None:
        with self.lock:
            if target > 0:
                self._sample_interval = max(1, target // npoints)
            else:
                self._sample_interval = CONTINUOUS_SAMPLE_INTERVAL
            self._run_start = time.perf_counter()
            self._run_end = None
            self._run_attached = 0

    def end_run(self) -> None:
        with self.lock:
            self._run_end = time.perf_counter()

    # ------------------------------------------------------------------ mutators (lock held)
    def record_attachment(self, position: Coordinate) -> None:
        r_sq = float(sum(c * c for c in position))
        self._size += 1
        self._run_attached += 1
        if r_sq > self._max_radius_sq:
            self._max_radius_sq = r_sq
        self._most_recent = position
        if self._size % self._sample_interval == 0:
            self._samples.append((self._size, math.sqrt(self._max_radius_sq)))

    def record_miss(self) -> None:
        self._misses += 1

    # ------------------------------------------------------------------ readers
    @property
    def size(self) -> int:
        with self.lock:
            return self._size

    def get_aggregate_radius_squared(self) -> float:
        with self.lock:
            return self._max_radius_sq

    def get_aggregate_misses(self) -> int:
        with self.lock:
            return self._misses

    def get_most_recently_attached(self) -> Optional[Coordinate]:
        with self.lock:
            return self._most_recent

    def estimate_fractal_dimension(self) -> float:
        with self.lock:
            return scaling_dimension(self._size, self._max_radius_sq)

    def bounding_radii(self) -> List[Tuple[int, float]]:
        """(size, spanning radius) samples recorded while the aggregate grew."""
        with self.lock:
            return list(self._samples)

    def generation_rate(self) -> float:
        """Attachments per second over the current (or last) run."""
        with self.lock:
            if self._run_start is None:
                return 0.0
            end = self._run_end if self._run_end is not None else time.perf_counter()
            elapsed = end - self._run_start
            return self._run_attached / elapsed if elapsed > 0 else 0.0

    def snapshot(self) -> MetricsSnapshot:
        with self.lock:
            return MetricsSnapshot(
                size=self._size,
                radius_squared=self._max_radius_sq,
                misses=self._misses,
                fractal_dimension=scaling_dimension(self._size, self._max_radius_sq),
                most_recent=self._most_recent,
            )


__all__ = [
    "CONTINUOUS_SAMPLE_INTERVAL",
    "MetricsSnapshot",
    "MetricsTracker",
    "scaling_dimension",
    "fit_scaling_dimension",
    "estimate_sandbox_dimension",
]
