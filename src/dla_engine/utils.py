# src/dla_engine/utils.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

BLOCK_SIZE = 4096


@dataclass
class ClusterResult:
    """Read-only export of an aggregate: coordinates in attachment order plus metadata."""

    positions: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Return an independent numpy Generator; ``None`` seeds from the OS."""
    return np.random.default_rng(seed)


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


class UniformStream:
    """
    Uniform [0, 1) draws from a numpy Generator, fetched in blocks.

    Drawing one value at a time from ``Generator.random`` costs far more than
    indexing a pre-drawn block, and the walk loop needs one draw per step.
    Values are handed out in generation order, so a fixed seed always yields
    the same sequence regardless of the block size.
    """

    def __init__(self, rng: np.random.Generator, block_size: int = BLOCK_SIZE) -> None:
        if block_size < 1:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self.rng = rng
        self.block_size = block_size
        self._block = np.empty(0, dtype=np.float64)
        self._pos = 0

    def _refill(self) -> None:
        self._block = self.rng.random(self.block_size)
        self._pos = 0

    def __call__(self) -> float:
        if self._pos >= self._block.shape[0]:
            self._refill()
        value = float(self._block[self._pos])
        self._pos += 1
        return value

    def pending(self) -> Tuple[np.ndarray, int]:
        """
        The current block and the index of the next unused draw, refilling
        first if the block is used up. Pair with ``seek`` once a batch of
        draws has been consumed in place.
        """
        if self._pos >= self._block.shape[0]:
            self._refill()
        return self._block, self._pos

    def seek(self, pos: int) -> None:
        self._pos = pos

    def reset(self, rng: np.random.Generator) -> None:
        """Switch to a fresh generator and discard any pre-drawn values."""
        self.rng = rng
        self._block = np.empty(0, dtype=np.float64)
        self._pos = 0
