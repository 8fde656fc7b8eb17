"""Test the capture buffer and the UV rasterizer.

Tests for src.projection_painter.capture and src.projection_painter.renderer:
    - Quality tiers and buffer read window (begin_write → publish → invalidate)
    - Stale generations cannot publish
    - Identity round-trip: unit quad seen head-on fills the buffer with
      pixel-center UVs (within one capture pixel)
    - Depth test (nearest surface wins), back-face culling, off-screen geometry
    - Near-plane clipping of triangles reaching behind a tilted camera
    - Async submit resolves to the covered pixel count

Run:
    pytest tests/test_renderer.py -v
"""

import math

import numpy as np
import pytest

from src.projection_painter.camera import BrushOffsetStrategy, FixedViewpointStrategy, Pose
from src.projection_painter.capture import SENTINEL, CaptureBuffer, QualityTier
from src.projection_painter.errors import CaptureBufferStateError
from src.projection_painter.renderer import SurfaceIndexMapRenderer, clip_near
from src.projection_painter.surface import Mesh, Surface, make_unit_quad, make_uv_sphere

HEAD_ON_FOV = math.degrees(2.0 * math.atan(0.5))


def _head_on_camera(size: int, z: float = 1.0):
    strategy = FixedViewpointStrategy(position=(0.5, 0.5, z), target=(0.5, 0.5, 0.0),
                                      fov_deg=math.degrees(2.0 * math.atan(0.5 / z)))
    return strategy.camera_for((size, size))


@pytest.fixture
def quad_surface():
    return Surface.solid(make_unit_quad(), 8, 8)


# ============================================================================
# CAPTURE BUFFER
# ============================================================================

def test_quality_tiers():
    assert QualityTier.from_name("low") == 256
    assert QualityTier.from_name(" High ") is QualityTier.HIGH
    assert CaptureBuffer.for_quality(QualityTier.ULTRA).shape == (2048, 2048)
    with pytest.raises(ValueError, match="Unknown quality tier"):
        QualityTier.from_name("huge")


def test_buffer_read_window():
    buf = CaptureBuffer(4, 3)
    assert buf.data.shape == (3, 4, 2)
    with pytest.raises(CaptureBufferStateError):
        _ = buf.uv

    gen = buf.begin_write()
    assert np.all(buf.data == SENTINEL)
    with pytest.raises(CaptureBufferStateError):
        _ = buf.uv
    assert buf.publish(gen)
    assert buf.uv.shape == (3, 4, 2)
    assert not buf.coverage().any()

    buf.invalidate()
    with pytest.raises(CaptureBufferStateError):
        buf.coverage()


def test_stale_generation_cannot_publish():
    buf = CaptureBuffer(2, 2)
    old = buf.begin_write()
    buf.invalidate()
    assert not buf.publish(old)
    assert not buf.readable

    new = buf.begin_write()
    assert new > old
    assert buf.publish(new)


def test_buffer_rejects_empty_size():
    with pytest.raises(ValueError):
        CaptureBuffer(0, 16)


# ============================================================================
# RASTERIZER
# ============================================================================

@pytest.mark.parametrize("size", [16, 64])
def test_identity_round_trip_on_unit_quad(quad_surface, size):
    camera = _head_on_camera(size)
    buf = CaptureBuffer(size, size)
    covered = SurfaceIndexMapRenderer().render(quad_surface, camera, buf)

    assert covered == size * size
    ys, xs = np.mgrid[0:size, 0:size]
    expected = np.stack([(xs + 0.5) / size, (ys + 0.5) / size], axis=-1)
    err = np.abs(buf.uv - expected)
    assert err.max() < 1.0 / size, f"UV error {err.max():.3g} exceeds one capture pixel"
    np.testing.assert_allclose(buf.uv, expected, atol=1e-4)


def test_partial_view_leaves_sentinel(quad_surface):
    # Camera farther away: quad covers only the middle of the buffer
    camera = _head_on_camera(32, z=1.0)
    far = FixedViewpointStrategy((0.5, 0.5, 2.0), (0.5, 0.5, 0.0), fov_deg=HEAD_ON_FOV).camera_for((32, 32))
    buf = CaptureBuffer(32, 32)
    renderer = SurfaceIndexMapRenderer()

    assert renderer.render(quad_surface, camera, buf) == 32 * 32
    covered = renderer.render(quad_surface, far, buf)
    assert covered == 16 * 16
    assert np.all(buf.uv[0, 0] == SENTINEL)
    assert buf.coverage()[16, 16]


def test_nearest_surface_wins():
    back = make_unit_quad()
    front = make_unit_quad(size=0.5, z=0.5)
    front_vertices = front.vertices + np.array([0.25, 0.25, 0.0])
    vertices = np.concatenate([back.vertices, front_vertices])
    uvs = np.concatenate([back.uvs, np.tile([[0.9, 0.1]], (len(front.uvs), 1))])
    triangles = np.concatenate([back.triangles, front.triangles + len(back.vertices)])
    surface = Surface.solid(Mesh(vertices, triangles, uvs), 4, 4)

    buf = CaptureBuffer(32, 32)
    SurfaceIndexMapRenderer().render(surface, _head_on_camera(32, z=2.0), buf)
    np.testing.assert_allclose(buf.uv[16, 16], [0.9, 0.1], atol=1e-6)
    assert buf.uv[1, 1, 0] < 0.5


def test_backface_culling(quad_surface):
    behind = FixedViewpointStrategy((0.5, 0.5, -1.0), (0.5, 0.5, 0.0), fov_deg=HEAD_ON_FOV).camera_for((16, 16))
    buf = CaptureBuffer(16, 16)

    assert SurfaceIndexMapRenderer(cull_backfaces=False).render(quad_surface, behind, buf) == 256
    assert SurfaceIndexMapRenderer(cull_backfaces=True).render(quad_surface, behind, buf) == 0
    assert np.all(buf.uv == SENTINEL)


def test_geometry_behind_camera_is_rejected(quad_surface):
    looking_away = FixedViewpointStrategy((0.5, 0.5, 1.0), (0.5, 0.5, 2.0), fov_deg=90.0).camera_for((16, 16))
    buf = CaptureBuffer(16, 16)
    assert SurfaceIndexMapRenderer().render(quad_surface, looking_away, buf) == 0


def test_clip_near_splits_crossing_triangle():
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
    inside = np.array([[0.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, 1.0], [0.0, 1.0, 0.0, 1.0]])
    assert clip_near(inside, uvs)[0][0] is inside

    one_behind = inside.copy()
    one_behind[1, 2] = -2.0
    pieces = clip_near(one_behind, uvs)
    assert len(pieces) == 2
    for piece_clip, _ in pieces:
        assert np.all(piece_clip[:, 2] + piece_clip[:, 3] >= -1e-12)
    first_clip, first_uv = pieces[0]
    np.testing.assert_allclose(first_clip[1], [0.5, 0.0, -1.0, 1.0])
    np.testing.assert_allclose(first_uv[1], [0.5, 0.0])

    two_behind = one_behind.copy()
    two_behind[2, 2] = -2.0
    assert len(clip_near(two_behind, uvs)) == 1
    two_behind[0, 2] = -2.0
    assert clip_near(two_behind, uvs) == []


def test_tilted_camera_clips_coarse_mesh():
    # Camera 0.06 above the quad, tilted; both quad triangles reach behind it
    pose = Pose.create([0.5, 0.5, 0.0], [0.0, 0.8, -0.6])
    view = BrushOffsetStrategy(distance=0.1).resolve(pose, 0.05, None, (64, 64))
    renderer = SurfaceIndexMapRenderer()

    coarse_buf, fine_buf = CaptureBuffer(64, 64), CaptureBuffer(64, 64)
    coarse = renderer.render(Surface.solid(make_unit_quad(subdivisions=1), 8, 8), view.camera, coarse_buf)
    fine = renderer.render(Surface.solid(make_unit_quad(subdivisions=16), 8, 8), view.camera, fine_buf)

    assert coarse > 0
    assert abs(coarse - fine) <= 0.01 * fine
    np.testing.assert_allclose(coarse_buf.uv[32, 32], [0.5, 0.5], atol=0.01)
    both = coarse_buf.coverage() & fine_buf.coverage()
    np.testing.assert_allclose(coarse_buf.uv[both], fine_buf.uv[both], atol=1e-4)


def test_sphere_render_covers_disc():
    surface = Surface.solid(make_uv_sphere(radius=0.5, segments=24, rings=12), 8, 8)
    camera = FixedViewpointStrategy((0.0, 0.0, 3.0), (0.0, 0.0, 0.0), fov_deg=30.0).camera_for((48, 48))
    buf = CaptureBuffer(48, 48)
    covered = SurfaceIndexMapRenderer().render(surface, camera, buf)
    assert 0 < covered < 48 * 48
    assert buf.coverage()[24, 24]
    assert not buf.coverage()[0, 0]
    uv = buf.uv[buf.coverage()]
    assert uv.min() >= 0.0 and uv.max() <= 1.0


def test_camera_buffer_size_mismatch(quad_surface):
    with pytest.raises(ValueError, match="capture buffer"):
        SurfaceIndexMapRenderer().render(quad_surface, _head_on_camera(16), CaptureBuffer(32, 32))


@pytest.mark.parametrize("async_readback", [False, True])
def test_submit_resolves_to_coverage(quad_surface, async_readback):
    renderer = SurfaceIndexMapRenderer(async_readback=async_readback)
    buf = CaptureBuffer(16, 16)
    try:
        future = renderer.submit(quad_surface, _head_on_camera(16), buf)
        assert future.result(timeout=10.0) == 256
        assert buf.readable
    finally:
        renderer.shutdown()


def test_head_on_pose_projects_to_center():
    camera = _head_on_camera(64)
    pixels, depth, in_front = camera.project(np.array([[0.5, 0.5, 0.0], [0.0, 0.0, 0.0]]))
    assert in_front.all()
    np.testing.assert_allclose(pixels[0], [32.0, 32.0], atol=1e-9)
    np.testing.assert_allclose(pixels[1], [0.0, 0.0], atol=1e-9)
    assert -1.0 <= depth[0] <= 1.0
    assert Pose.create([0, 0, 0], [0, 0, -2]).forward[2] == pytest.approx(-1.0)
