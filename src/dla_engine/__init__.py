"""
DLA Engine - live on-lattice diffusion-limited aggregation

This package provides:
- AggregationEngine: 2D/3D on-lattice DLA with a sticky coefficient and
  point/line/plane attractors
- RunController: runs the engine on a worker thread and hands newly attached
  particles to a consumer in attachment order
- MetricsTracker: running size, spanning radius, miss count and
  fractal-dimension estimates
"""

from .config import AttractorType, LatticeType, RunConfig, load_config
from .exceptions import DLAError, DuplicateAttachment, InvalidConfiguration, InvalidState
from .aggregate import AggregateIndex
from .handoff import HandOffQueue
from .metrics import MetricsSnapshot, MetricsTracker
from .engine import AggregationEngine, CancelToken
from .controller import RunController
from . import utils

__all__ = [
    # Engine and control
    "AggregationEngine",
    "RunController",
    "CancelToken",
    # Configuration
    "RunConfig",
    "LatticeType",
    "AttractorType",
    "load_config",
    # Building blocks
    "AggregateIndex",
    "HandOffQueue",
    "MetricsTracker",
    "MetricsSnapshot",
    # Errors
    "DLAError",
    "InvalidConfiguration",
    "InvalidState",
    "DuplicateAttachment",
    # Utilities
    "utils",
]
