# tests/test_lattice.py
from collections import Counter

import numpy as np
import pytest

from dla_engine import AggregateIndex, AttractorType, LatticeType
from dla_engine.lattice import (
    boundary_limit,
    check_and_reflect,
    direction_array,
    direction_index,
    neighbours,
    spawn_diameter,
    spawn_position,
    step,
    step_directions,
    walk_until_adjacent,
)
from dla_engine.utils import UniformStream


@pytest.mark.parametrize(
    "lattice,dim,expected",
    [
        (LatticeType.SQUARE, 2, 4),
        (LatticeType.TRIANGLE, 2, 6),
        (LatticeType.SQUARE, 3, 6),
        (LatticeType.TRIANGLE, 3, 8),
    ],
)
def test_direction_set_sizes(lattice, dim, expected):
    dirs = step_directions(lattice, dim)
    assert len(dirs) == expected
    assert len(set(dirs)) == expected
    for d in dirs:
        assert len(d) == dim
        # every move has its reverse, so the walk is unbiased
        assert tuple(-c for c in d) in dirs


def test_square_2d_bucket_order():
    dirs = step_directions(LatticeType.SQUARE, 2)
    assert step((0, 0), dirs, 0.0) == (1, 0)
    assert step((0, 0), dirs, 0.25) == (-1, 0)
    assert step((0, 0), dirs, 0.5) == (0, 1)
    assert step((0, 0), dirs, 0.75) == (0, -1)
    assert step((5, -2), dirs, 0.9999999) == (5, -3)


def test_triangle_3d_bucket_order():
    dirs = step_directions(LatticeType.TRIANGLE, 3)
    assert step((0, 0, 0), dirs, 2.5 / 8) == (1, 1, 0)
    assert step((0, 0, 0), dirs, 6.5 / 8) == (0, 0, 1)
    assert step((0, 0, 0), dirs, 7.5 / 8) == (0, 0, -1)


def test_direction_index_stays_in_range():
    for n in (4, 6, 8):
        assert direction_index(0.0, n) == 0
        assert direction_index(np.nextafter(1.0, 0.0), n) == n - 1


@pytest.mark.parametrize("lattice,dim", [(LatticeType.TRIANGLE, 2), (LatticeType.TRIANGLE, 3)])
def test_triangle_step_distribution_uniform_grid(lattice, dim):
    """Evenly spaced draws must land evenly across the direction buckets."""
    dirs = step_directions(lattice, dim)
    n = len(dirs)
    samples = 240 * n
    origin = (0,) * dim
    counts = Counter(step(origin, dirs, (i + 0.5) / samples) for i in range(samples))
    assert len(counts) == n
    assert set(counts.values()) == {240}


@pytest.mark.parametrize(
    "lattice,dim",
    [
        (LatticeType.SQUARE, 2),
        (LatticeType.TRIANGLE, 2),
        (LatticeType.SQUARE, 3),
        (LatticeType.TRIANGLE, 3),
    ],
)
def test_step_distribution_uniform_random(lattice, dim):
    dirs = step_directions(lattice, dim)
    n = len(dirs)
    draws = 60_000
    uniform = UniformStream(np.random.default_rng(1234))
    origin = (0,) * dim
    counts = Counter(step(origin, dirs, uniform()) for _ in range(draws))
    expected = draws / n
    assert len(counts) == n
    for d in dirs:
        assert abs(counts[d] - expected) < 0.05 * expected


def test_neighbours_match_direction_set():
    dirs = step_directions(LatticeType.SQUARE, 2)
    assert sorted(neighbours((2, 3), dirs)) == [(1, 3), (2, 2), (2, 4), (3, 3)]


def test_spawn_diameter_and_limit():
    assert spawn_diameter(0.0, 16) == 16
    assert spawn_diameter(100.0, 16) == 36
    assert spawn_diameter(99.0, 16) == 34
    assert boundary_limit(16) == 10
    assert boundary_limit(35) == 19


def test_reflect_2d():
    limit = boundary_limit(20)  # 12
    assert check_and_reflect((12, -12), (11, -12), limit) == ((12, -12), False)
    assert check_and_reflect((13, 0), (12, 0), limit) == ((12, 0), True)
    assert check_and_reflect((0, -13), (0, -12), limit) == ((0, -12), True)


@pytest.mark.parametrize("axis", [0, 1, 2])
@pytest.mark.parametrize("sign", [1, -1])
def test_reflect_3d_checks_every_axis(axis, sign):
    limit = boundary_limit(20)
    prev = [0, 0, 0]
    prev[axis] = sign * limit
    pos = list(prev)
    pos[axis] += sign
    assert check_and_reflect(tuple(pos), tuple(prev), limit) == (tuple(prev), True)


@pytest.mark.parametrize("dim", [2, 3])
def test_spawn_on_box_faces(dim):
    uniform = UniformStream(np.random.default_rng(99))
    diameter = 36
    half = diameter // 2
    faces = Counter()
    for _ in range(3000):
        pos = spawn_position(diameter, dim, uniform)
        assert len(pos) == dim
        on_face = [ax for ax, c in enumerate(pos) if abs(c) == half]
        assert on_face, f"{pos} is not on the spawn box"
        assert max(abs(c) for c in pos) == half
        axis = next(ax for ax, c in enumerate(pos) if abs(c) == half)
        faces[(axis, pos[axis] > 0)] += 1
    assert len(faces) == 2 * dim
    expected = 3000 / (2 * dim)
    for count in faces.values():
        assert abs(count - expected) < 0.2 * expected


def _reference_walk(index, position, directions, limit, uniforms, start):
    """Step-by-step walk with the pure-Python rules, for comparison."""
    i = start
    while i < len(uniforms):
        previous = position
        position = step(position, directions, uniforms[i])
        i += 1
        position, reflected = check_and_reflect(position, previous, limit)
        if reflected:
            continue
        if position in index:
            position = previous
            continue
        if index.is_adjacent(position):
            return True, i, position
    return False, i, position


@pytest.mark.parametrize(
    "lattice,dim",
    [
        (LatticeType.SQUARE, 2),
        (LatticeType.TRIANGLE, 2),
        (LatticeType.SQUARE, 3),
        (LatticeType.TRIANGLE, 3),
    ],
)
def test_compiled_walk_matches_reference(lattice, dim):
    directions = step_directions(lattice, dim)
    index = AggregateIndex(directions)
    index.seed_attractor(AttractorType.LINE, 5, dim)
    # a few attached sites to walk around
    index.insert((0, 1) + (0,) * (dim - 2))
    index.insert((0, 2) + (0,) * (dim - 2))
    limit = boundary_limit(spawn_diameter(4.0, 16))
    index.ensure_extent(limit + 1)
    dirs = direction_array(directions)

    rng = np.random.default_rng(2024)
    uniform = UniformStream(rng)
    for _ in range(50):
        start_pos = spawn_position(spawn_diameter(4.0, 16), dim, uniform)
        uniforms = rng.random(5000)
        pos = np.array(start_pos, dtype=np.int64)
        adjacent, stop = walk_until_adjacent(index.grid, index.half, pos, dirs, limit, uniforms, 0)
        ref_adjacent, ref_stop, ref_pos = _reference_walk(
            index, start_pos, directions, limit, uniforms, 0
        )
        assert adjacent == ref_adjacent
        assert stop == ref_stop
        assert tuple(int(c) for c in pos) == ref_pos
        if adjacent:
            assert ref_pos not in index
            assert index.is_adjacent(ref_pos)


def test_compiled_walk_resumes_mid_block():
    directions = step_directions(LatticeType.SQUARE, 2)
    index = AggregateIndex(directions)
    index.seed_attractor(AttractorType.POINT, 1, 2)
    index.ensure_extent(12)
    dirs = direction_array(directions)
    uniforms = np.random.default_rng(5).random(200)

    # walking 200 draws at once or in two pieces ends in the same place
    whole = np.array([8, 0], dtype=np.int64)
    _, stop_whole = walk_until_adjacent(index.grid, index.half, whole, dirs, 10, uniforms, 0)

    pieces = np.array([8, 0], dtype=np.int64)
    adjacent, stop = walk_until_adjacent(index.grid, index.half, pieces, dirs, 10, uniforms[:100], 0)
    if not adjacent:
        _, stop = walk_until_adjacent(index.grid, index.half, pieces, dirs, 10, uniforms, stop)
    assert stop == stop_whole
    assert tuple(pieces) == tuple(whole)
