import numpy as np

import pytest

from evoplanets.gravity import GravityComputer, build_tubes, field_at
from evoplanets.mesh import tessellate
from evoplanets.planet import Planet


@pytest.fixture(scope='module')
def sphere_mesh():
    return tessellate(Planet.sphere(11, 12, 1.0), 0.05)


@pytest.fixture(scope='module')
def sphere_gravity(sphere_mesh):
    return GravityComputer(sphere_mesh, tubes_resolution=16)


def test_single_segment_far_field_is_point_like():
    tube = np.array([[[0.0, -0.01, 0.0], [0.0, 0.01, 0.0]]])
    point = np.array([[10.0, 0.0, 0.0]])
    g = field_at(tube, point)[0]
    # mass 0.02 at distance 10
    assert g[0] == pytest.approx(-0.02 / 100.0, rel=1e-3)
    assert abs(g[1]) < 1e-12


def test_field_on_axis_is_finite_when_softened():
    tube = np.array([[[0.0, -1.0, 0.0], [0.0, 1.0, 0.0]]])
    g = field_at(tube, np.array([[0.0, 0.5, 0.0]]), radius=0.1)[0]
    assert np.all(np.isfinite(g))
    # more of the segment lies below the point
    assert g[1] < 0.0


def test_empty_tubes_give_zero_field():
    assert np.array_equal(field_at(np.zeros((0, 2, 3)), np.ones((2, 3))), np.zeros((2, 3)))


def test_tubes_fill_sphere(sphere_gravity, sphere_mesh):
    tubes = sphere_gravity.tubes
    assert len(sphere_gravity) > 0
    assert tubes.shape[1:] == (2, 3)
    assert np.all(tubes[:, 1, 1] > tubes[:, 0, 1])
    assert np.allclose(tubes[:, 0, [0, 2]], tubes[:, 1, [0, 2]])
    volume = np.sum(tubes[:, 1, 1] - tubes[:, 0, 1]) * sphere_gravity.cell_area
    tri = sphere_mesh.triangles()
    enclosed = abs(np.einsum('ij,ij->', tri[:, 0], np.cross(tri[:, 1], tri[:, 2]))) / 6.0
    assert volume == pytest.approx(enclosed, rel=0.02)
    assert sphere_gravity.tube_lines().shape == (2 * len(tubes), 3)


def test_mass_center_near_origin(sphere_gravity):
    center = sphere_gravity.mass_center()
    assert np.linalg.norm(center) < 0.05


def test_surface_field_points_inward(sphere_gravity):
    points = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [0.6, 0.5, 0.6]])
    for point in points:
        g = sphere_gravity.field(point)
        assert np.dot(g, point) / (np.linalg.norm(g) * np.linalg.norm(point)) < -0.95


def test_build_tubes_rejects_bad_resolution():
    mesh = tessellate(Planet.sphere(11, 8, 1.0), 0.2)
    with pytest.raises(ValueError):
        build_tubes(mesh, 0)
