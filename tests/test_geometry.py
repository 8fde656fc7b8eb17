"""Test camera math and ray casting.

Tests for src.utils.geometry:
    - normalize(), tangent frames, axis-angle / Euler rotations
    - look_at() (OpenGL view convention) and perspective()
    - ray_triangles_intersect(): closest hit, barycentrics, misses, range

Run:
    pytest tests/test_geometry.py -v
"""

import numpy as np
import pytest

from src.utils import geometry


def test_normalize():
    np.testing.assert_allclose(geometry.normalize([3.0, 4.0, 0.0]), [0.6, 0.8, 0.0])
    out = geometry.normalize(np.array([[2.0, 0.0, 0.0], [0.0, 0.0, -5.0]]))
    np.testing.assert_allclose(np.linalg.norm(out, axis=1), 1.0)
    with pytest.raises(ValueError):
        geometry.normalize([0.0, 0.0, 0.0])


@pytest.mark.parametrize("normal", [[0, 0, 1], [0, 1, 0], [0, -1, 0], [1, 2, 3]])
def test_tangent_frame_is_orthonormal(normal):
    n = geometry.normalize(np.asarray(normal, dtype=float))
    t, b = geometry.tangent_frame(n)
    for v in (t, b):
        assert np.linalg.norm(v) == pytest.approx(1.0)
        assert np.dot(v, n) == pytest.approx(0.0, abs=1e-12)
    assert np.dot(t, b) == pytest.approx(0.0, abs=1e-12)


def test_axis_angle_and_euler():
    rz = geometry.axis_angle_matrix(np.array([0.0, 0.0, 1.0]), 90.0)
    np.testing.assert_allclose(rz @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(geometry.euler_matrix((0.0, 0.0, 0.0)), np.eye(3))
    np.testing.assert_allclose(geometry.euler_matrix((0.0, 0.0, 90.0)), rz, atol=1e-12)
    r = geometry.euler_matrix((30.0, 45.0, 60.0))
    np.testing.assert_allclose(r @ r.T, np.eye(3), atol=1e-12)


def test_look_at_convention():
    eye = np.array([1.0, 2.0, 3.0])
    view = geometry.look_at(eye, [0.0, 0.0, -1.0])
    # Eye maps to the origin, a point ahead lands on -Z
    np.testing.assert_allclose(view @ np.append(eye, 1.0), [0, 0, 0, 1], atol=1e-12)
    ahead = view @ np.array([1.0, 2.0, 1.0, 1.0])
    np.testing.assert_allclose(ahead[:3], [0.0, 0.0, -2.0], atol=1e-12)

    # Forward parallel to the default up still yields a valid basis
    down = geometry.look_at(eye, [0.0, -1.0, 0.0])
    np.testing.assert_allclose(down[:3, :3] @ down[:3, :3].T, np.eye(3), atol=1e-12)


def test_perspective_maps_near_far_to_ndc():
    proj = geometry.perspective(90.0, 1.0, 0.1, 10.0)
    for z, ndc in ((-0.1, -1.0), (-10.0, 1.0)):
        clip = proj @ np.array([0.0, 0.0, z, 1.0])
        assert clip[2] / clip[3] == pytest.approx(ndc)
    edge = proj @ np.array([1.0, 0.0, -1.0, 1.0])
    assert edge[0] / edge[3] == pytest.approx(1.0)

    with pytest.raises(ValueError):
        geometry.perspective(180.0, 1.0, 0.1, 10.0)
    with pytest.raises(ValueError):
        geometry.perspective(60.0, 1.0, 1.0, 0.5)


@pytest.fixture
def two_planes():
    """Unit triangles at z = 0 and z = -1 covering (0..1)² in XY."""
    tri = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    lower = tri + np.array([0.0, 0.0, -1.0])
    return np.stack([lower, tri])


def test_ray_closest_hit(two_planes):
    origins = np.array([[0.2, 0.3, 1.0], [0.9, 0.9, 1.0], [0.2, 0.3, -0.5]])
    dirs = np.array([[0.0, 0.0, -2.0], [0.0, 0.0, -1.0], [0.0, 0.0, 1.0]])
    t, idx, bary = geometry.ray_triangles_intersect(origins, dirs, two_planes, chunk_size=2)

    assert idx.tolist() == [1, -1, 1]
    np.testing.assert_allclose(t[[0, 2]], [1.0, 0.5])
    assert np.isinf(t[1])
    np.testing.assert_allclose(bary[0], [0.2, 0.3])


def test_ray_max_distance(two_planes):
    t, idx, _ = geometry.ray_triangles_intersect(
        [[0.2, 0.2, 0.5]], [[0.0, 0.0, -1.0]], two_planes, max_distance=0.4
    )
    assert idx[0] == -1 and np.isinf(t[0])


def test_ray_no_triangles():
    t, idx, bary = geometry.ray_triangles_intersect([[0, 0, 0]], [[0, 0, 1]], np.zeros((0, 3, 3)))
    assert idx.tolist() == [-1] and bary.shape == (1, 2)
