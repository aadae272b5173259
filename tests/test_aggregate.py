# tests/test_aggregate.py
import numpy as np
import pytest

from dla_engine import AggregateIndex, AttractorType, DuplicateAttachment, LatticeType
from dla_engine.aggregate import seed_coordinates, should_stick
from dla_engine.lattice import step_directions


def test_point_seed_is_origin():
    assert seed_coordinates(AttractorType.POINT, 1, 2) == [(0, 0)]
    assert seed_coordinates(AttractorType.POINT, 9, 3) == [(0, 0, 0)]


def test_line_seed_is_centred_on_origin():
    assert seed_coordinates(AttractorType.LINE, 5, 2) == [(-2, 0), (-1, 0), (0, 0), (1, 0), (2, 0)]
    assert seed_coordinates(AttractorType.LINE, 4, 3) == [
        (-2, 0, 0), (-1, 0, 0), (0, 0, 0), (1, 0, 0)
    ]


def test_plane_seed():
    seeds = seed_coordinates(AttractorType.PLANE, 3, 3)
    assert len(seeds) == 9
    assert len(set(seeds)) == 9
    assert all(z == 0 for _, _, z in seeds)
    assert (0, 0, 0) in seeds
    assert (-1, 1, 0) in seeds


def test_plane_seed_needs_3d():
    with pytest.raises(ValueError):
        seed_coordinates(AttractorType.PLANE, 3, 2)


def test_adjacency_square_vs_triangle():
    square = AggregateIndex(step_directions(LatticeType.SQUARE, 2))
    triangle = AggregateIndex(step_directions(LatticeType.TRIANGLE, 2))
    for index in (square, triangle):
        index.seed_attractor(AttractorType.POINT, 1, 2)
        assert index.is_adjacent((1, 0))
        assert index.is_adjacent((0, -1)) == (index is square)
        assert not index.is_adjacent((2, 0))
    # diagonal contact counts only on the triangular lattice
    assert not square.is_adjacent((1, 1))
    assert triangle.is_adjacent((1, 1))
    assert triangle.is_adjacent((-1, -1))


def test_adjacency_3d():
    index = AggregateIndex(step_directions(LatticeType.SQUARE, 3))
    index.seed_attractor(AttractorType.POINT, 1, 3)
    assert index.is_adjacent((0, 0, 1))
    assert index.is_adjacent((0, -1, 0))
    assert not index.is_adjacent((1, 1, 0))


def test_insert_tracks_order_and_excludes_seeds():
    index = AggregateIndex(step_directions(LatticeType.SQUARE, 2))
    index.seed_attractor(AttractorType.LINE, 3, 2)
    assert len(index) == 0
    assert index.seeds == ((-1, 0), (0, 0), (1, 0))

    index.insert((0, 1))
    index.insert((0, 2))
    assert len(index) == 2
    assert index.attached == ((0, 1), (0, 2))
    assert (0, 2) in index
    assert (0, 0) in index
    assert (5, 5) not in index


def test_duplicate_insert_raises():
    index = AggregateIndex(step_directions(LatticeType.SQUARE, 2))
    index.seed_attractor(AttractorType.POINT, 1, 2)
    index.insert((1, 0))
    with pytest.raises(DuplicateAttachment) as excinfo:
        index.insert((1, 0))
    assert excinfo.value.coordinate == (1, 0)
    with pytest.raises(DuplicateAttachment):
        index.insert((0, 0))
    assert len(index) == 1


def test_clear_empties_index():
    index = AggregateIndex(step_directions(LatticeType.SQUARE, 2))
    index.seed_attractor(AttractorType.POINT, 1, 2)
    index.insert((1, 0))
    index.clear()
    assert len(index) == 0
    assert index.seeds == ()
    assert (0, 0) not in index


def test_should_stick_gate():
    half = lambda: 0.5  # noqa: E731
    assert should_stick(1.0, half)
    assert should_stick(0.6, half)
    assert not should_stick(0.5, half)
    assert not should_stick(0.1, half)
    # coefficient 1 always sticks, whatever the draw
    assert should_stick(1.0, lambda: 0.9999999)


def _grid_sites(index):
    return {tuple(int(c) - index.half for c in site) for site in np.argwhere(index.grid)}


@pytest.mark.parametrize("dim", [2, 3])
def test_grid_mirrors_occupied_sites(dim):
    index = AggregateIndex(step_directions(LatticeType.SQUARE, dim))
    index.seed_attractor(AttractorType.LINE, 7, dim)
    start_half = index.half
    far = (start_half + 4,) + (0,) * (dim - 1)
    index.insert((0, 1) + (0,) * (dim - 2))
    index.insert(far)
    # inserting beyond the grid grows it and keeps every earlier site
    assert index.half >= start_half + 5
    expected = set(index.seeds) | set(index.attached)
    assert _grid_sites(index) == expected

    index.clear()
    assert not index.grid.any()
