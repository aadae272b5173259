"""
Lattice walking and boundary handling.

Walker moves are picked by partitioning one uniform draw in [0, 1) into
equal-width buckets, one per direction. The bucket order below is part of
the engine's reproducibility contract: the same random stream must always
produce the same walk.
"""

from __future__ import annotations

import math
from typing import Callable, Tuple

import numpy as np
from numba import njit

from .config import LatticeType

Coordinate = Tuple[int, ...]

###############################################################################
# Direction tables
###############################################################################

# square: +-x, +-y
_SQUARE_2D = ((1, 0), (-1, 0), (0, 1), (0, -1))
# triangle: +-x, then the four diagonals
_TRIANGLE_2D = ((1, 0), (-1, 0), (1, 1), (1, -1), (-1, 1), (-1, -1))
# cubic: +-x, +-y, +-z
_SQUARE_3D = (
    (1, 0, 0), (-1, 0, 0),
    (0, 1, 0), (0, -1, 0),
    (0, 0, 1), (0, 0, -1),
)
# hexagonal: +-x, the four in-plane diagonals, +-z
_TRIANGLE_3D = (
    (1, 0, 0), (-1, 0, 0),
    (1, 1, 0), (1, -1, 0),
    (-1, 1, 0), (-1, -1, 0),
    (0, 0, 1), (0, 0, -1),
)

_DIRECTIONS = {
    (LatticeType.SQUARE, 2): _SQUARE_2D,
    (LatticeType.TRIANGLE, 2): _TRIANGLE_2D,
    (LatticeType.SQUARE, 3): _SQUARE_3D,
    (LatticeType.TRIANGLE, 3): _TRIANGLE_3D,
}


def step_directions(lattice_type: LatticeType, dimension: int) -> Tuple[Coordinate, ...]:
    """Return the ordered direction set for a lattice type and dimension."""
    try:
        return _DIRECTIONS[(lattice_type, dimension)]
    except KeyError:
        raise ValueError(
            f"no direction table for lattice {lattice_type!r} in {dimension}D"
        ) from None


def direction_index(u: float, n_directions: int) -> int:
    """Map a uniform draw in [0, 1) onto one of ``n_directions`` equal buckets."""
    idx = int(u * n_directions)
    # u is < 1 but float rounding in u * n can still land on n
    return idx if idx < n_directions else n_directions - 1


def step(position: Coordinate, directions: Tuple[Coordinate, ...], u: float) -> Coordinate:
    """Advance ``position`` one lattice step in the bucket selected by ``u``."""
    d = directions[direction_index(u, len(directions))]
    if len(position) == 2:
        return (position[0] + d[0], position[1] + d[1])
    return (position[0] + d[0], position[1] + d[1], position[2] + d[2])


def neighbours(position: Coordinate, directions: Tuple[Coordinate, ...]) -> list[Coordinate]:
    """All lattice neighbours of ``position`` under the given connectivity."""
    return [tuple(p + o for p, o in zip(position, d)) for d in directions]


def direction_array(directions: Tuple[Coordinate, ...]) -> np.ndarray:
    """(n, D) int64 copy of a direction table for the compiled walkers."""
    return np.asarray(directions, dtype=np.int64)


###############################################################################
# Compiled walkers
###############################################################################

# The kernels below apply the same rules as ``step`` + ``check_and_reflect``
# + the occupied-site undo + the adjacency test, on an occupancy grid indexed
# at ``coordinate + half``. The grid must reach at least ``limit + 1`` so a
# walker's neighbours are always in range.


@njit(cache=True, fastmath=True)
def _walk_2d(
    grid: np.ndarray,
    half: int,
    pos: np.ndarray,
    dirs: np.ndarray,
    limit: int,
    uniforms: np.ndarray,
    start: int,
) -> Tuple[bool, int]:
    n_dirs = dirs.shape[0]
    x = pos[0]
    y = pos[1]
    i = start
    n = uniforms.shape[0]
    while i < n:
        k = int(uniforms[i] * n_dirs)
        if k >= n_dirs:
            k = n_dirs - 1
        i += 1
        nx = x + dirs[k, 0]
        ny = y + dirs[k, 1]
        if nx > limit or nx < -limit or ny > limit or ny < -limit:
            continue
        if grid[nx + half, ny + half]:
            continue
        x = nx
        y = ny
        for j in range(n_dirs):
            if grid[x + dirs[j, 0] + half, y + dirs[j, 1] + half]:
                pos[0] = x
                pos[1] = y
                return True, i
    pos[0] = x
    pos[1] = y
    return False, i


@njit(cache=True, fastmath=True)
def _walk_3d(
    grid: np.ndarray,
    half: int,
    pos: np.ndarray,
    dirs: np.ndarray,
    limit: int,
    uniforms: np.ndarray,
    start: int,
) -> Tuple[bool, int]:
    n_dirs = dirs.shape[0]
    x = pos[0]
    y = pos[1]
    z = pos[2]
    i = start
    n = uniforms.shape[0]
    while i < n:
        k = int(uniforms[i] * n_dirs)
        if k >= n_dirs:
            k = n_dirs - 1
        i += 1
        nx = x + dirs[k, 0]
        ny = y + dirs[k, 1]
        nz = z + dirs[k, 2]
        if (nx > limit or nx < -limit or ny > limit or ny < -limit
                or nz > limit or nz < -limit):
            continue
        if grid[nx + half, ny + half, nz + half]:
            continue
        x = nx
        y = ny
        z = nz
        for j in range(n_dirs):
            if grid[x + dirs[j, 0] + half, y + dirs[j, 1] + half, z + dirs[j, 2] + half]:
                pos[0] = x
                pos[1] = y
                pos[2] = z
                return True, i
    pos[0] = x
    pos[1] = y
    pos[2] = z
    return False, i


def walk_until_adjacent(
    grid: np.ndarray,
    half: int,
    pos: np.ndarray,
    dirs: np.ndarray,
    limit: int,
    uniforms: np.ndarray,
    start: int,
) -> Tuple[bool, int]:
    """
    Walk ``pos`` (updated in place) one step per draw in ``uniforms[start:]``.

    Stops as soon as the walker sits next to an occupied site, or when the
    draws run out. Returns ``(adjacent, next_draw_index)``.
    """
    if grid.ndim == 2:
        adjacent, stop = _walk_2d(grid, half, pos, dirs, limit, uniforms, start)
    else:
        adjacent, stop = _walk_3d(grid, half, pos, dirs, limit, uniforms, start)
    return bool(adjacent), int(stop)


###############################################################################
# Boundary policy
###############################################################################


def spawn_diameter(max_radius_sq: float, boundary_offset: int) -> int:
    """
    Diameter of the spawning box: twice the aggregate's spanning radius plus an
    offset so walkers never start on top of the aggregate.
    """
    return 2 * int(math.sqrt(max_radius_sq)) + boundary_offset


def boundary_limit(diameter: int) -> int:
    """Largest absolute coordinate a walker may reach before being reflected."""
    return diameter // 2 + 2


def check_and_reflect(
    position: Coordinate, previous: Coordinate, limit: int
) -> Tuple[Coordinate, bool]:
    """
    Reflect a walker that left the bounding box back to its previous position.

    The same origin-centred box test is used for every attractor type; for
    line and plane attractors this is an approximation (distance is not
    measured from the nearest point of the seed).
    """
    for c in position:
        if c > limit or c < -limit:
            return previous, True
    return position, False


def spawn_position(diameter: int, dimension: int, uniform: Callable[[], float]) -> Coordinate:
    """
    Place a fresh walker on a random face of the spawn box.

    The face is chosen uniformly (4 faces in 2D, 6 in 3D); the face coordinate
    is ``+-diameter // 2`` and the remaining coordinates are uniform across
    the face.
    """
    half = diameter // 2
    n_faces = 2 * dimension
    face = direction_index(uniform(), n_faces)
    axis, sign = divmod(face, 2)
    coords = []
    for ax in range(dimension):
        if ax == axis:
            coords.append(half if sign == 0 else -half)
        else:
            coords.append(int(diameter * (uniform() - 0.5)))
    return tuple(coords)


__all__ = [
    "Coordinate",
    "step_directions",
    "direction_index",
    "step",
    "neighbours",
    "direction_array",
    "walk_until_adjacent",
    "spawn_diameter",
    "boundary_limit",
    "check_and_reflect",
    "spawn_position",
]
