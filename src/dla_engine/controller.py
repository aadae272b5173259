"""
Run control for a live aggregation.

``RunController`` owns the worker thread that drives the engine and exposes
the read-only view a renderer or presentation layer needs: metrics, the
hand-off queue, and start/abort/clear. Every reader is safe to call from
any thread while a run is in progress.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Tuple

from .config import AttractorType, LatticeType, RunConfig
from .engine import AggregationEngine, CancelToken
from .exceptions import InvalidState
from .lattice import Coordinate
from .metrics import MetricsSnapshot, fit_scaling_dimension

logger = logging.getLogger(__name__)


class RunController:
    """
    The manager class.

    Responsibilities:
    1. Hold the pending configuration (applied at the next start/clear).
    2. Run ``AggregationEngine.generate`` on a worker thread.
    3. Forward cooperative abort requests and surface worker errors.
    4. Give consumers the hand-off queue and consistent metric readings.
    """

    def __init__(self, dimension: int = 2, config: RunConfig | None = None) -> None:
        self.dimension = dimension
        self._config = (config or RunConfig()).validate(dimension)
        self.engine = AggregationEngine(self._config, dimension=dimension)
        self._thread: Optional[threading.Thread] = None
        self._cancel: Optional[CancelToken] = None
        self._error: Optional[BaseException] = None
        self._state_lock = threading.Lock()

    # ------------------------------------------------------------------ configuration
    @property
    def config(self) -> RunConfig:
        return self._config

    def configure(
        self,
        lattice_type: LatticeType | None = None,
        attractor_type: AttractorType | None = None,
        attractor_extent: int | None = None,
        sticky_coefficient: float | None = None,
        continuous: bool | None = None,
        **kwargs,
    ) -> RunConfig:
        """
        Update the pending configuration; unspecified fields keep their value.

        Raises ``InvalidConfiguration`` immediately on bad values, so nothing
        invalid ever reaches a run.
        """
        changes = {
            "lattice_type": lattice_type,
            "attractor_type": attractor_type,
            "attractor_extent": attractor_extent,
            "sticky_coefficient": sticky_coefficient,
            "continuous": continuous,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        changes.update(kwargs)
        candidate = self._config.with_changes(**changes)
        return self.configure_from(candidate)

    def configure_from(self, config: RunConfig) -> RunConfig:
        self._config = config.validate(self.dimension)
        return self._config

    # ------------------------------------------------------------------ run control
    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, target_count: Optional[int] = None) -> None:
        """
        Launch ``generate`` on a worker thread and return immediately.

        ``target_count`` overrides the configured target; 0 runs until
        ``raise_abort_signal``.
        """
        with self._state_lock:
            if self.is_running:
                raise InvalidState("a run is already active")
            self.engine.reconfigure(self._config)
            self.engine.queue.reopen()
            self._cancel = CancelToken()
            self._error = None
            self._thread = threading.Thread(
                target=self._worker,
                args=(target_count, self._cancel),
                name=f"dla-engine-{self.dimension}d",
                daemon=True,
            )
            self._thread.start()
        logger.debug("Worker %s started", self._thread.name)

    def _worker(self, target_count: Optional[int], cancel: CancelToken) -> None:
        try:
            self.engine.generate(target_count, cancel)
        except Exception as exc:
            logger.exception("Aggregation run failed")
            self._error = exc

    def raise_abort_signal(self) -> None:
        """Request a cooperative stop. Idempotent; a no-op when idle."""
        cancel = self._cancel
        if cancel is not None and not cancel.is_set():
            logger.info("Abort requested")
            cancel.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the worker to finish and acknowledge the run.

        Returns False if the worker is still running after ``timeout``.
        Re-raises any error the worker died with.
        """
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                return False
        error, self._error = self._error, None
        if error is not None:
            raise error
        return True

    def clear(self) -> None:
        """
        Reset the aggregate, metrics and hand-off queue, applying the pending
        configuration. Fails while a run (or an unacknowledged abort) is active.
        """
        with self._state_lock:
            if self.is_running:
                raise InvalidState(
                    "cannot clear while a run is active; raise the abort signal and wait() first"
                )
            self.engine.clear(self._config)

    def close(self) -> None:
        """Abort any run and close the hand-off queue, waking blocked consumers."""
        self.raise_abort_signal()
        self.engine.queue.close()

    def __enter__(self) -> "RunController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        thread = self._thread
        if thread is not None:
            thread.join()

    # ------------------------------------------------------------------ consumer side
    def drain_new_attachments(self) -> List[Coordinate]:
        """Remove and return all queued coordinates (oldest first); never blocks."""
        return self.engine.queue.drain()

    def take(self, timeout: Optional[float] = None) -> Optional[Coordinate]:
        """Blocking single-item drain; None on timeout or after ``close``."""
        return self.engine.queue.take(timeout)

    def try_take(self) -> Optional[Coordinate]:
        return self.engine.queue.try_take()

    def pending(self) -> int:
        return len(self.engine.queue)

    # ------------------------------------------------------------------ metrics
    def size(self) -> int:
        return self.engine.metrics.size

    def get_aggregate_misses(self) -> int:
        return self.engine.metrics.get_aggregate_misses()

    def get_aggregate_radius_squared(self) -> float:
        return self.engine.metrics.get_aggregate_radius_squared()

    def estimate_fractal_dimension(self) -> float:
        return self.engine.metrics.estimate_fractal_dimension()

    def get_most_recently_attached(self) -> Optional[Coordinate]:
        return self.engine.metrics.get_most_recently_attached()

    def metrics(self) -> MetricsSnapshot:
        return self.engine.metrics.snapshot()

    def bounding_radii(self) -> List[Tuple[int, float]]:
        return self.engine.metrics.bounding_radii()

    def generation_rate(self) -> float:
        return self.engine.metrics.generation_rate()

    def fit_fractal_dimension(self) -> float:
        """Growth-history estimate over the recorded (size, radius) samples."""
        return fit_scaling_dimension(self.bounding_radii())

    def estimate_sandbox_dimension(self) -> float:
        return self.engine.estimate_sandbox_dimension()


__all__ = ["RunController"]
