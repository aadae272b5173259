"""
Spatial membership index for the growing aggregate.

Occupied lattice sites live in a hash set keyed by coordinate tuples, so
membership and adjacency tests are O(1) on average however large the
aggregate grows. Seeds are kept apart from attached particles so the
attachment order can be exported without them.

The same sites are mirrored into a dense occupancy grid centred on the
origin, which is what the compiled walkers read.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np

from .config import AttractorType
from .exceptions import DuplicateAttachment
from .lattice import Coordinate

INITIAL_GRID_HALF = 32


def seed_coordinates(attractor_type: AttractorType, extent: int, dimension: int) -> List[Coordinate]:
    """
    Seed geometry through the origin.

    Point: the origin. Line: ``extent`` consecutive sites along x. Plane:
    ``extent x extent`` sites in the z = 0 plane (3D only).
    """
    zero = (0,) * dimension
    if attractor_type is AttractorType.POINT:
        return [zero]
    lo = -(extent // 2)
    span = range(lo, lo + extent)
    if attractor_type is AttractorType.LINE:
        return [(x,) + zero[1:] for x in span]
    if attractor_type is AttractorType.PLANE:
        if dimension != 3:
            raise ValueError("a plane attractor needs a 3D lattice")
        return [(x, y, 0) for x in span for y in span]
    raise ValueError(f"unknown attractor type {attractor_type!r}")


def should_stick(sticky_coefficient: float, uniform: Callable[[], float]) -> bool:
    """Stickiness gate: attach iff a uniform draw falls below the coefficient."""
    return uniform() < sticky_coefficient


class AggregateIndex:
    """
    Occupied-site index with a lock shared by everything committed alongside
    an attachment.

    The index never takes its own lock implicitly: the engine holds ``lock``
    around each adjacency-test/insert pair and the metrics update that goes
    with it, so readers that take the same lock see a consistent state.
    """

    def __init__(
        self,
        directions: Tuple[Coordinate, ...],
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.directions = directions
        self.dimension = len(directions[0])
        self.lock = lock if lock is not None else threading.RLock()
        self._occupied: set[Coordinate] = set()
        self._seeds: List[Coordinate] = []
        self._attached: List[Coordinate] = []
        self._allocate(INITIAL_GRID_HALF)

    # ------------------------------------------------------------------ queries
    def __contains__(self, position: Coordinate) -> bool:
        return position in self._occupied

    def __len__(self) -> int:
        """Number of attached particles (seeds excluded)."""
        return len(self._attached)

    @property
    def seeds(self) -> Tuple[Coordinate, ...]:
        return tuple(self._seeds)

    @property
    def attached(self) -> Tuple[Coordinate, ...]:
        return tuple(self._attached)

    def is_adjacent(self, position: Coordinate) -> bool:
        """True if any lattice neighbour of ``position`` is occupied."""
        occupied = self._occupied
        if len(position) == 2:
            x, y = position
            for dx, dy in self.directions:
                if (x + dx, y + dy) in occupied:
                    return True
            return False
        x, y, z = position
        for dx, dy, dz in self.directions:
            if (x + dx, y + dy, z + dz) in occupied:
                return True
        return False

    # ------------------------------------------------------------------ occupancy grid
    def _allocate(self, half: int) -> None:
        grid = np.zeros((2 * half + 1,) * self.dimension, dtype=np.uint8)
        for c in self._occupied:
            grid[tuple(x + half for x in c)] = 1
        self.grid = grid
        self.half = half

    def ensure_extent(self, reach: int) -> None:
        """Grow the grid so every coordinate with ``|c| <= reach`` has a cell."""
        if reach > self.half:
            self._allocate(max(reach, 2 * self.half))

    def _mark(self, position: Coordinate) -> None:
        self.ensure_extent(max(abs(c) for c in position) + 1)
        half = self.half
        self.grid[tuple(c + half for c in position)] = 1

    # ------------------------------------------------------------------ updates
    def insert(self, position: Coordinate) -> None:
        """Add an attached particle; re-inserting an occupied site is a bug."""
        if position in self._occupied:
            raise DuplicateAttachment(position)
        self._occupied.add(position)
        self._attached.append(position)
        self._mark(position)

    def seed(self, coordinates: Iterable[Coordinate]) -> None:
        for c in coordinates:
            if c in self._occupied:
                raise DuplicateAttachment(c)
            self._occupied.add(c)
            self._seeds.append(c)
            self._mark(c)

    def seed_attractor(self, attractor_type: AttractorType, extent: int, dimension: int) -> None:
        self.seed(seed_coordinates(attractor_type, extent, dimension))

    def clear(self) -> None:
        self._occupied.clear()
        self._seeds.clear()
        self._attached.clear()
        self.grid.fill(0)


__all__ = ["AggregateIndex", "seed_coordinates", "should_stick"]
