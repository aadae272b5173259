"""
On-lattice aggregation engine.

Manages the lifecycle of each particle:
1.  **Spawning:** Places a walker on a random face of a box sized from the
    aggregate's current spanning radius.
2.  **Walking:** Unbiased lattice steps; walkers leaving the box are reflected
    back to their previous site, walkers stepping onto an occupied site are
    sent back as well. The steps run in numba-compiled batches
    (``lattice.walk_until_adjacent``) over the index's occupancy grid.
3.  **Colliding:** A walker next to the aggregate draws against the sticky
    coefficient. Success freezes it; failure counts a miss and it keeps
    walking from where it is.
4.  **Committing:** Insert, metrics update and hand-off push happen together
    under one lock, so readers never observe half an attachment.

One engine instance handles one dimension (2 or 3). Only one particle walks
at a time: the worker thread is the sole writer of the index, and other
threads read through the shared lock.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

import numpy as np

from . import utils
from .aggregate import AggregateIndex, should_stick
from .config import RunConfig
from .exceptions import DuplicateAttachment, InvalidConfiguration, InvalidState
from .handoff import HandOffQueue
from .lattice import (
    Coordinate,
    boundary_limit,
    direction_array,
    spawn_diameter,
    spawn_position,
    step_directions,
    walk_until_adjacent,
)
from .metrics import MetricsTracker, estimate_sandbox_dimension

logger = logging.getLogger(__name__)

CONTINUOUS_LOG_INTERVAL = 1000


class CancelToken:
    """Cooperative stop request passed into ``AggregationEngine.generate``."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AggregationEngine:
    """
    Grows a diffusion-limited aggregate one particle at a time.

    Args:
        config: Run configuration; validated against ``dimension``.
        dimension: 2 or 3.
    """

    def __init__(self, config: RunConfig | None = None, *, dimension: int = 2) -> None:
        self.dimension = dimension
        self.config = (config or RunConfig()).validate(dimension)
        self.lock = threading.RLock()
        self.directions = step_directions(self.config.lattice_type, dimension)
        self._dir_array = direction_array(self.directions)
        self.index = AggregateIndex(self.directions, self.lock)
        self.metrics = MetricsTracker(self.lock)
        self.queue: HandOffQueue[Coordinate] = HandOffQueue(self.config.queue_maxsize)
        self._uniform = utils.UniformStream(utils.make_rng(self.config.seed))
        self._running = False
        self._seed_radius_sq = 0.0
        self._seed_attractor()

    # ------------------------------------------------------------------ setup
    def _seed_attractor(self) -> None:
        cfg = self.config
        self.index.seed_attractor(cfg.attractor_type, cfg.effective_extent, self.dimension)
        self._seed_radius_sq = float(
            max(sum(c * c for c in s) for s in self.index.seeds)
        )

    @property
    def is_running(self) -> bool:
        with self.lock:
            return self._running

    @property
    def size(self) -> int:
        return self.metrics.size

    def reconfigure(self, config: RunConfig) -> None:
        """
        Apply a new configuration between runs.

        Lattice, stickiness and run-control settings can change on a
        non-empty aggregate; attractor geometry can only change once the
        aggregate has been cleared. A new seed takes effect on an empty
        aggregate or at the next ``clear``.
        """
        config.validate(self.dimension)
        with self.lock:
            if self._running:
                raise InvalidState("cannot reconfigure while a run is active")
            geometry_changed = (
                config.attractor_type is not self.config.attractor_type
                or config.effective_extent != self.config.effective_extent
            )
            empty = len(self.index) == 0
            if geometry_changed and not empty:
                raise InvalidState("clear the aggregate before changing the attractor")
            old = self.config
            self._apply(config)
            if empty and (geometry_changed or config.seed != old.seed):
                self.index.clear()
                self._uniform.reset(utils.make_rng(config.seed))
                self._seed_attractor()

    def _apply(self, config: RunConfig) -> None:
        self.config = config
        self.directions = step_directions(config.lattice_type, self.dimension)
        self.index.directions = self.directions
        self._dir_array = direction_array(self.directions)
        self.queue.maxsize = config.queue_maxsize

    def clear(self, config: RunConfig | None = None) -> None:
        """
        Empty the aggregate, zero the metrics, drop queued hand-offs and
        re-seed the attractor (and the random stream, if a seed is set).
        """
        if config is not None:
            config.validate(self.dimension)
        with self.lock:
            if self._running:
                raise InvalidState("cannot clear while a run is active")
            if config is not None:
                self._apply(config)
            self.index.clear()
            self.metrics.reset()
            self.queue.clear()
            if self.config.seed is not None:
                self._uniform.reset(utils.make_rng(self.config.seed))
            self._seed_attractor()
        logger.debug("Aggregate cleared (%dD, %s attractor)", self.dimension, self.config.attractor_type.value)

    # ------------------------------------------------------------------ public
    def generate(self, target_count: Optional[int] = None, cancel: CancelToken | None = None) -> int:
        """
        Grow the aggregate until it holds ``target_count`` particles.

        ``target_count`` defaults to the configured effective target; 0 runs
        until ``cancel`` fires. Blocks the calling thread. Returns the number
        of particles attached during this call.
        """
        config = self.config
        target = config.effective_target if target_count is None else int(target_count)
        if target < 0:
            raise InvalidConfiguration(f"target count must be >= 0, got {target}")
        cancel = cancel or CancelToken()

        with self.lock:
            if self._running:
                raise InvalidState("generate() called while a run is already active")
            self._running = True

        self.metrics.begin_run(target, config.radii_npoints)
        report_every = max(1, target // 10) if target else CONTINUOUS_LOG_INTERVAL
        logger.info(
            "Running %dD DLA: target=%s, lattice=%s, attractor=%s, sticky=%.3f",
            self.dimension,
            target if target else "continuous",
            config.lattice_type.value,
            config.attractor_type.value,
            config.sticky_coefficient,
        )

        t_start = time.perf_counter()
        attached = 0
        handoff_closed = False
        try:
            while target == 0 or len(self.index) < target:
                if cancel.is_set():
                    break
                if self._run_particle(config, cancel) is None:
                    handoff_closed = not cancel.is_set()
                    break
                attached += 1
                size = len(self.index)
                if size % report_every == 0:
                    elapsed = time.perf_counter() - t_start
                    rate = attached / elapsed if elapsed > 0 else 0.0
                    log = logger.info if target else logger.debug
                    log(
                        "[dla] %d/%s particles, %.0f particles/s, R_max=%.1f",
                        size,
                        target if target else "inf",
                        rate,
                        self.metrics.get_aggregate_radius_squared() ** 0.5,
                    )
        except DuplicateAttachment:
            logger.error("Duplicate attachment detected; aborting run", exc_info=True)
            raise
        finally:
            self.metrics.end_run()
            with self.lock:
                self._running = False

        elapsed = time.perf_counter() - t_start
        if cancel.is_set():
            logger.info("Run aborted after %d attachments (size=%d, %.2fs)", attached, len(self.index), elapsed)
        elif handoff_closed:
            logger.warning(
                "Run stopped: hand-off queue closed after %d attachments (size=%d, %.2fs)",
                attached, len(self.index), elapsed,
            )
        else:
            logger.info("Run completed: %d particles attached in %.2fs", attached, elapsed)
        return attached

    # ------------------------------------------------------------------ particle lifecycle
    def _run_particle(self, config: RunConfig, cancel: CancelToken) -> Optional[Coordinate]:
        """
        Walk one particle until it attaches; None if cancelled first or the
        hand-off queue was closed.

        The walk itself runs in compiled batches of up to one random block;
        cancellation is checked between batches and again before commit.
        """
        uniform = self._uniform
        index = self.index
        dirs = self._dir_array
        coeff = config.sticky_coefficient

        with self.lock:
            radius_sq = max(self._seed_radius_sq, self.metrics.get_aggregate_radius_squared())
            diameter = spawn_diameter(radius_sq, config.boundary_offset)
            limit = boundary_limit(diameter)
            index.ensure_extent(limit + 1)
        pos = np.array(spawn_position(diameter, self.dimension, uniform), dtype=np.int64)

        while True:
            if cancel.is_set():
                return None
            block, start = uniform.pending()
            adjacent, stop = walk_until_adjacent(index.grid, index.half, pos, dirs, limit, block, start)
            uniform.seek(stop)
            if not adjacent:
                continue
            if not should_stick(coeff, uniform):
                with self.lock:
                    self.metrics.record_miss()
                continue
            if not self.queue.wait_for_space(cancel):
                return None
            position = tuple(int(c) for c in pos)
            with self.lock:
                if cancel.is_set():
                    return None
                self._commit(position)
            return position

    def _commit(self, position: Coordinate) -> None:
        # caller holds self.lock
        self.index.insert(position)
        self.metrics.record_attachment(position)
        self.queue.put(position)

    # ------------------------------------------------------------------ export
    def coordinates(self) -> List[Coordinate]:
        """Attached coordinates in attachment order (seeds excluded)."""
        with self.lock:
            return list(self.index.attached)

    def get_centered_coords(self) -> np.ndarray:
        """
        Returns an (N, D) float array of attached coordinates, origin at the
        attractor centre.
        """
        coords = self.coordinates()
        if not coords:
            return np.zeros((0, self.dimension), dtype=np.float64)
        return np.asarray(coords, dtype=np.float64)

    def estimate_sandbox_dimension(self) -> float:
        return estimate_sandbox_dimension(self.get_centered_coords())

    def snapshot(self) -> utils.ClusterResult:
        with self.lock:
            positions = self.get_centered_coords()
            metrics = self.metrics.snapshot()
            seeds = len(self.index.seeds)
        cfg = self.config
        result = utils.ClusterResult(positions=positions)
        meta = result.ensure_meta()
        meta.update({
            "model": f"lattice{self.dimension}d",
            "lattice": cfg.lattice_type.value,
            "attractor": cfg.attractor_type.value,
            "attractor_extent": cfg.effective_extent,
            "sticky_coefficient": cfg.sticky_coefficient,
            "num": metrics.size,
            "seeds": seeds,
            "misses": metrics.misses,
            "radius_squared": metrics.radius_squared,
            "fractal_dimension": metrics.fractal_dimension,
            "seed": cfg.seed,
            "timestamp": utils.now_str(),
        })
        return result


__all__ = ["AggregationEngine", "CancelToken", "CONTINUOUS_LOG_INTERVAL"]
