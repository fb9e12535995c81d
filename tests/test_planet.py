import numpy as np

import pytest

import evoplanets.planet as planet_module
from evoplanets.errors import InsufficientControlPointsError, InvalidTopologyError
from evoplanets.planet import CrossoverType, Planet

STEP = 0.1


def _close(a, b, tol=1e-6):
    assert np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)) <= tol


@pytest.fixture
def sphere():
    return Planet.sphere(11, 8, 1.0)


@pytest.fixture
def always_invalid(monkeypatch):
    calls = []

    def oracle(planet, step):
        calls.append(step)
        return True

    monkeypatch.setattr(planet_module, 'is_self_intersecting', oracle)
    return calls


def test_sphere_shape(sphere):
    assert sphere.parallel_count == 11
    assert sphere.meridian_count == 8
    assert sphere.grid.shape == (11, 8 + 3, 3)
    assert sphere.is_periodic()
    assert len(sphere.knots_u) == 11 + 3 - 1
    assert len(sphere.knots_v) == 11 + 3 - 1


def test_sphere_needs_plateau_rows():
    with pytest.raises(ValueError):
        Planet.sphere(6, 8, 1.0)


def test_grid_is_read_only(sphere):
    with pytest.raises(ValueError):
        sphere.grid[0, 0, 0] = 5.0


def test_surface_closes_around_axis(sphere):
    for v in (0.2, 0.5, 0.8):
        _close(sphere.evaluate(0.0, v), sphere.evaluate(1.0, v))


def test_poles_are_single_points(sphere):
    north = [sphere.evaluate(u, 0.0) for u in np.linspace(0.0, 1.0, 7)]
    south = [sphere.evaluate(u, 1.0) for u in np.linspace(0.0, 1.0, 7)]
    for p in north:
        _close(p, north[0])
    for p in south:
        _close(p, south[0])
    assert north[0][1] > 0.9
    assert south[0][1] < -0.9


def test_sphere_normals_point_outward(sphere):
    for u in (0.0, 0.3, 0.7):
        for v in (0.3, 0.5, 0.7):
            n = sphere.normal(u, v)
            p = sphere.evaluate(u, v)
            assert np.dot(n, p) > 0.5 * np.linalg.norm(p)


def test_normal_grid_matches_pointwise(sphere):
    us = [0.1, 0.6]
    vs = [0.25, 0.5]
    grid = sphere.normal_grid(us, vs)
    for a, v in enumerate(vs):
        for b, u in enumerate(us):
            _close(grid[a, b], sphere.normal(u, v))


def test_sample_pairs_vary_u_slowest():
    pairs = Planet.sample_pairs(0.5, 0.25)
    assert pairs.shape == (8, 2)
    assert list(pairs[:4, 0]) == [0.0] * 4
    assert list(pairs[:4, 1]) == [0.0, 0.25, 0.5, 0.75]


def test_sphere_curvature_in_middle_band():
    planet = Planet.sphere(14, 14, 1.0)
    for u in (0.0, 0.25, 0.6):
        for v in (0.4, 0.5, 0.6):
            assert 0.8 <= planet.gaussian_curvature(u, v) <= 1.3
            assert planet.mean_curvature(u, v) != 0.0


def test_constructor_rejects_empty_grid():
    with pytest.raises(InvalidTopologyError):
        Planet([])


def test_constructor_rejects_ragged_grid():
    grid = [[(0.0, 0.0, 0.0)] * 5 for _ in range(5)]
    grid[2] = grid[2][:4]
    with pytest.raises(InvalidTopologyError):
        Planet(grid)


def test_constructor_needs_enough_points():
    with pytest.raises(InsufficientControlPointsError):
        Planet(np.zeros((3, 6, 3)))
    with pytest.raises(InsufficientControlPointsError):
        Planet(np.zeros((6, 3, 3)))


def test_constructor_needs_room_for_both_plateaus():
    rows = Planet.sphere(9, 6, 1.0).control_grid()[[0, 2, 4, 6, 8]]
    with pytest.raises(InsufficientControlPointsError) as info:
        Planet(rows)
    assert info.value.minimum == 2 * Planet.PLATEAU_ROWS + 1
    smallest = Planet(Planet.sphere(9, 6, 1.0).control_grid()[[0, 1, 2, 4, 6, 7, 8]])
    assert smallest.parallel_count == 7
    assert smallest.mutate(0.1, 0.2, STEP, np.random.default_rng(0)) in (True, False)
    assert smallest.is_periodic()


def test_constructor_rejects_mixed_point_lengths():
    grid = [[(0.0, 0.0, 0.0)] * 5 for _ in range(9)]
    grid[4] = [(0.0, 0.0, 0.0)] * 4 + [(0.0, 0.0)]
    with pytest.raises(InvalidTopologyError):
        Planet(grid)


def test_constructor_rejects_low_degree():
    with pytest.raises(ValueError):
        Planet(np.zeros((6, 6, 3)), degree_u=1)


def test_copy_is_independent(sphere):
    twin = sphere.copy()
    twin.mutate(0.3, 0.6, STEP, np.random.default_rng(1))
    assert np.array_equal(sphere.grid, Planet.sphere(11, 8, 1.0).grid)


def test_zero_distance_mutation_is_a_no_op(sphere):
    before = sphere.control_grid()
    assert sphere.mutate(0.0, 0.0, STEP, np.random.default_rng(3))
    assert np.array_equal(sphere.control_grid(), before)


@pytest.mark.parametrize('seed', [0, 1, 2, 3])
def test_mutation_keeps_periodicity_and_plateaus(sphere, seed):
    rng = np.random.default_rng(seed)
    for _ in range(3):
        sphere.mutate(0.1, 0.4, STEP, rng)
        assert sphere.is_periodic()
    grid = sphere.control_grid()
    north, south = sphere.plateaus
    for block in (north, south):
        rows = grid[block.rows_slice]
        reference = Planet.sphere(11, 8, 1.0).control_grid()[block.rows_slice]
        offsets = (rows - reference).reshape(-1, 3)
        assert np.allclose(offsets, offsets[0])


def test_rejected_mutation_rolls_back(sphere, always_invalid):
    before = sphere.grid.copy()
    assert not sphere.mutate(0.3, 0.8, STEP, np.random.default_rng(5))
    assert np.array_equal(sphere.grid, before)
    assert always_invalid == [STEP]


def test_rejected_crossover_leaves_parents(always_invalid):
    a = Planet.sphere(11, 8, 1.0)
    b = Planet.sphere(11, 8, 1.5)
    before_a, before_b = a.grid.copy(), b.grid.copy()
    for kind in CrossoverType:
        assert a.crossover(b, kind, 0.5, STEP, np.random.default_rng(0)) is None
    assert np.array_equal(a.grid, before_a)
    assert np.array_equal(b.grid, before_b)


def test_rejected_differential_mutation_rolls_back(always_invalid):
    base = Planet.sphere(11, 8, 1.0)
    before = base.grid.copy()
    assert not base.differential_mutate(Planet.sphere(11, 8, 1.2), Planet.sphere(11, 8, 0.9), 0.5, STEP)
    assert np.array_equal(base.grid, before)


@pytest.mark.parametrize('kind', list(CrossoverType))
def test_crossover_child_is_periodic(kind):
    a = Planet.sphere(11, 8, 1.0)
    b = Planet.sphere(11, 8, 1.05)
    child = a.crossover(b, kind, 0.5, STEP, np.random.default_rng(4))
    assert child is not None
    assert child.is_periodic()
    assert child is not a and child is not b


def test_continuous_crossover_blends_between_parents():
    a = Planet.sphere(11, 8, 1.0)
    b = Planet.sphere(11, 8, 1.2)
    child = a.continuous_crossover(b, 0.5, STEP)
    assert child is not None
    radius = np.linalg.norm(child.evaluate(0.0, 0.5))
    assert np.linalg.norm(a.evaluate(0.0, 0.5)) < radius < np.linalg.norm(b.evaluate(0.0, 0.5))


def test_differential_mutation_of_identical_planets_is_identity():
    base = Planet.sphere(11, 8, 1.0)
    expected = Planet.sphere(11, 8, 1.0)
    expected.poles_smoothing()
    other = Planet.sphere(11, 8, 1.3)
    assert base.differential_mutate(other, other.copy(), 0.7, STEP)
    assert np.allclose(base.grid, expected.grid)


def test_incompatible_planets_are_rejected():
    with pytest.raises(ValueError):
        Planet.sphere(11, 8).diversity(Planet.sphere(11, 9))


def test_diversity_is_symmetric():
    rng = np.random.default_rng(9)
    a = Planet.sphere(11, 8, 1.0)
    b = Planet.sphere(11, 8, 1.0)
    a.mutate(0.2, 0.5, STEP, rng)
    b.mutate(0.2, 0.5, STEP, rng)
    assert a.diversity(b) == pytest.approx(b.diversity(a))
    assert a.diversity(a) == 0.0


def test_diversity_of_scaled_spheres():
    a = Planet.sphere(11, 8, 1.0)
    b = Planet.sphere(11, 8, 2.0)
    expected = np.linalg.norm(a.control_grid(), axis=-1).mean()
    assert a.diversity(b) == pytest.approx(expected)


def test_diversity_grid_is_symmetric_with_zero_diagonal():
    planets = [Planet.sphere(11, 8, r) for r in (1.0, 1.2, 1.5)]
    grid = Planet.diversity_grid(planets)
    assert np.allclose(grid, grid.T)
    assert np.allclose(np.diag(grid), 0.0)


def test_min_diversities():
    planets = [Planet.sphere(11, 8, r) for r in (1.0, 1.1, 2.0, 2.2)]
    result = Planet.min_diversities(planets)
    assert len(result) == 4
    assert all(value > 0.0 for value in result)
    assert Planet.min_diversities(planets[:1]) == [0.0]
    assert Planet.min_diversities([]) == []


def test_min_diversities_of_two():
    planets = [Planet.sphere(11, 8, 1.0), Planet.sphere(11, 8, 1.5)]
    first, second = Planet.min_diversities(planets)
    assert first == pytest.approx(second)


def test_laplacian_smoothing_keeps_periodicity():
    planet = Planet.sphere(11, 8, 1.0)
    planet.mutate(0.3, 0.5, STEP, np.random.default_rng(2))
    planet.laplacian_smoothing(0.2)
    assert planet.is_periodic()


def test_curvature_smoothing_moves_only_interior_rows():
    planet = Planet.sphere(11, 8, 1.0)
    before = planet.control_grid()
    planet.curvature_smoothing(0.1)
    after = planet.control_grid()
    assert planet.is_periodic()
    north, south = planet.plateaus
    assert np.array_equal(after[north.rows_slice], before[north.rows_slice])
    assert np.array_equal(after[south.rows_slice], before[south.rows_slice])
    assert not np.allclose(after, before)
    assert np.all(np.isfinite(after))


def test_recenter_moves_centroid_to_origin():
    planet = Planet.sphere(11, 8, 1.0)
    planet._grid = planet._grid + np.array([1.0, 2.0, 3.0])
    planet.recenter()
    _close(planet.surface_centroid(), (0.0, 0.0, 0.0), tol=1e-9)


def test_curves_from_control_rows(sphere):
    assert len(sphere.parallels()) == 11
    assert len(sphere.meridians()) == 8
    assert len(sphere.true_parallels(0.25, 5)) == 5
    sticks = sphere.normal_sticks(0.1, 0.25)
    assert sticks.shape[1:] == (2, 3)
