"""Test texel compositing.

Tests for src.projection_painter.compositor:
    - texel_indices() flooring and clamping, lerp_blend() formula
    - Concrete blend: 4×4 black texture, identity capture, red brush →
      center 2×2 red, outer ring untouched
    - Zero-strength events leave the texture bit-identical
    - Boundary safety at uv (0,0) and (1,1) with random radii
    - Stamp exclusion: a zero stamp region keeps its texels untouched
    - Sequential scan and bounded gather agree (with and without splat)
    - Bounded dispatch box: work-group aligned, covers the brush, clipped

Run:
    pytest tests/test_compositor.py -v
"""

import numpy as np
import pytest

from src.projection_painter.capture import CaptureBuffer
from src.projection_painter.compositor import (
    BoundedGatherCompositor,
    CompositeStats,
    SequentialScanCompositor,
    expand_samples,
    lerp_blend,
    splat_offsets,
    texel_indices,
)
from src.projection_painter.errors import CaptureBufferStateError
from src.projection_painter.footprint import Stamp
from src.projection_painter.painter import PaintEvent
from src.projection_painter.parameters import Brush
from src.projection_painter.resampler import GaussianResampler

RED = (1.0, 0.0, 0.0, 1.0)


# ============================================================================
# FIXTURES
# ============================================================================

def _identity_buffer(size: int = 64) -> CaptureBuffer:
    buf = CaptureBuffer(size, size)
    gen = buf.begin_write()
    ys, xs = np.mgrid[0:size, 0:size]
    buf.data[..., 0] = (xs + 0.5) / size
    buf.data[..., 1] = (ys + 0.5) / size
    buf.publish(gen)
    return buf


def _constant_buffer(u: float, v: float, size: int = 64) -> CaptureBuffer:
    buf = CaptureBuffer(size, size)
    gen = buf.begin_write()
    buf.data[..., 0] = u
    buf.data[..., 1] = v
    buf.publish(gen)
    return buf


def _event(center, radius, color=RED, stamp=None) -> PaintEvent:
    brush = Brush.create(color=color, stamp=stamp)
    return PaintEvent(event_id=1, brush=brush, camera=None, center_px=center, radius_px=radius)


def _black(h: int, w: int) -> np.ndarray:
    tex = np.zeros((h, w, 4), dtype=np.float32)
    tex[..., 3] = 1.0
    return tex


@pytest.fixture
def resampler():
    return GaussianResampler(2)


@pytest.fixture(params=["sequential", "bounded"])
def compositor(request, resampler):
    if request.param == "sequential":
        return SequentialScanCompositor(resampler)
    return BoundedGatherCompositor(resampler, work_group_size=8)


# ============================================================================
# HELPERS
# ============================================================================

def test_texel_indices_floor_and_clamp():
    uv = np.array([[0.0, 0.0], [0.249, 0.5], [0.25, 0.99], [1.0, 1.0], [-0.2, 1.7]])
    cols, rows = texel_indices(uv, 4, 4)
    np.testing.assert_array_equal(cols, [0, 0, 1, 3, 0])
    np.testing.assert_array_equal(rows, [0, 2, 3, 3, 3])


def test_lerp_blend():
    texel = np.array([0.2, 0.4, 0.6, 1.0])
    color = np.array([1.0, 0.0, 0.0, 1.0])
    np.testing.assert_allclose(lerp_blend(texel, color, 0.0), texel)
    np.testing.assert_allclose(lerp_blend(texel, color, 1.0), color)
    np.testing.assert_allclose(lerp_blend(texel, color, 0.5), [0.6, 0.2, 0.3, 1.0])


def test_splat_offsets():
    dx, dy, falloff = splat_offsets(0)
    assert len(dx) == 1 and falloff[0] == 1.0
    dx, dy, falloff = splat_offsets(2)
    assert np.all(np.hypot(dx, dy) <= 2.0)
    assert falloff[(dx == 0) & (dy == 0)][0] == 1.0
    assert falloff.min() == pytest.approx(0.0)


def test_expand_samples_skips_off_texture_splats():
    uv = np.array([[0.01, 0.01]])
    rows, cols, s = expand_samples(uv, np.array([1.0]), 8, 8, splat_radius=1)
    assert rows.min() >= 0 and cols.min() >= 0
    assert len(rows) == 3  # center, right, up


# ============================================================================
# BLENDING
# ============================================================================

@pytest.mark.painting
def test_concrete_blend_center_red_ring_black(compositor):
    texture = _black(4, 4)
    buf = _identity_buffer(64)
    stats = compositor.composite(_event((32.0, 32.0), 16.0), buf, texture)

    np.testing.assert_allclose(texture[1:3, 1:3], np.tile(RED, (2, 2, 1)), atol=1e-3)
    ring = np.ones((4, 4), dtype=bool)
    ring[1:3, 1:3] = False
    np.testing.assert_array_equal(texture[ring], _black(4, 4)[ring])
    assert stats.texels_written == 4
    assert stats.samples > 0


@pytest.mark.painting
def test_zero_strength_is_bit_identical(compositor):
    rng = np.random.default_rng(3)
    texture = rng.uniform(0.0, 1.0, (16, 16, 4)).astype(np.float32)
    before = texture.copy()
    buf = _identity_buffer(64)

    stats = compositor.composite(_event((32.0, 32.0), 0.0), buf, texture)
    assert stats.texels_written == 0
    assert texture.tobytes() == before.tobytes()

    blank = Stamp(np.zeros((8, 8)))
    stats = compositor.composite(_event((20.0, 40.0), 12.0, stamp=blank), buf, texture)
    assert stats.texels_written == 0
    assert texture.tobytes() == before.tobytes()


@pytest.mark.painting
@pytest.mark.parametrize("corner", [(0.0, 0.0), (1.0, 1.0)])
def test_boundary_safety_at_uv_corners(compositor, corner):
    rng = np.random.default_rng(11)
    buf = _constant_buffer(*corner)
    row = col = 0 if corner == (0.0, 0.0) else 7
    for _ in range(10):
        texture = _black(8, 8)
        radius = float(rng.uniform(2.0, 40.0))
        center = tuple(rng.uniform(0.0, 64.0, 2))
        compositor.composite(_event(center, radius), buf, texture)

        assert texture[row, col, 0] > 0.0
        others = np.ones((8, 8), dtype=bool)
        others[row, col] = False
        assert np.all(texture[others, 0] == 0.0)


@pytest.mark.painting
def test_stamp_exclusion(compositor):
    n = 64
    ys, xs = np.mgrid[0:n, 0:n]
    dist = np.hypot((xs + 0.5) / n - 0.5, (ys + 0.5) / n - 0.5)
    stamp = Stamp(np.where(dist < 0.25, 0.0, 1.0))

    texture = _black(5, 5)
    buf = _identity_buffer(64)
    compositor.composite(_event((32.0, 32.0), 24.0, stamp=stamp), buf, texture)

    np.testing.assert_array_equal(texture[2, 2], [0.0, 0.0, 0.0, 1.0])
    assert texture[2, 1, 0] > 0.0
    assert texture[1, 2, 0] > 0.0


@pytest.mark.painting
@pytest.mark.parametrize("splat", [0, 2])
def test_sequential_matches_bounded(resampler, splat):
    rng = np.random.default_rng(5)
    base = rng.uniform(0.0, 1.0, (16, 16, 4)).astype(np.float32)
    stamp = Stamp(rng.uniform(0.0, 1.0, (16, 16)))
    events = [
        _event((32.0, 32.0), 10.0, color=(0.1, 0.8, 0.3, 1.0)),
        _event((3.0, 60.0), 9.5, color=(1.0, 1.0, 0.0, 0.5)),
        _event((47.3, 12.8), 17.0, stamp=stamp),
        _event((64.0, 64.0), 6.0),
    ]
    buf = _identity_buffer(64)
    sequential = SequentialScanCompositor(resampler, splat_radius=splat)
    bounded = BoundedGatherCompositor(resampler, work_group_size=8, splat_radius=splat)

    tex_a, tex_b = base.copy(), base.copy()
    for event in events:
        stats_a = sequential.composite(event, buf, tex_a)
        stats_b = bounded.composite(event, buf, tex_b)
        assert stats_a.samples == stats_b.samples
        assert stats_a.texels_written == stats_b.texels_written
        assert stats_b.pixels_visited < stats_a.pixels_visited
    np.testing.assert_allclose(tex_a, tex_b, atol=1e-4)
    assert not np.array_equal(tex_a, base)


def test_composite_requires_read_window(compositor):
    buf = _identity_buffer(16)
    buf.invalidate()
    with pytest.raises(CaptureBufferStateError):
        compositor.composite(_event((8.0, 8.0), 4.0), buf, _black(4, 4))


# ============================================================================
# BOUNDED DISPATCH
# ============================================================================

@pytest.mark.parametrize("center,radius", [((32.0, 32.0), 5.0), ((40.3, 50.7), 12.2), ((31.5, 31.5), 0.5)])
def test_dispatch_region_covers_brush(resampler, center, radius):
    comp = BoundedGatherCompositor(resampler, work_group_size=8)
    x0, y0, x1, y1 = comp.dispatch_region(center, radius, 256, 256)
    assert (x1 - x0) % 8 == 0 and (y1 - y0) % 8 == 0

    ys, xs = np.mgrid[0:256, 0:256]
    inside = np.hypot(xs + 0.5 - center[0], ys + 0.5 - center[1]) <= radius
    assert np.all(inside[:, :x0] == False)  # noqa: E712
    assert np.all(inside[:, x1:] == False)  # noqa: E712
    assert np.all(inside[:y0] == False)  # noqa: E712
    assert np.all(inside[y1:] == False)  # noqa: E712


def test_dispatch_region_is_clipped(resampler):
    comp = BoundedGatherCompositor(resampler, work_group_size=8)
    x0, y0, x1, y1 = comp.dispatch_region((2.0, 62.0), 5.0, 64, 64)
    assert x0 == 0 and y1 == 64
    assert x1 <= 64 and y0 >= 0


def test_bounded_rejects_bad_work_group(resampler):
    with pytest.raises(ValueError):
        BoundedGatherCompositor(resampler, work_group_size=0)


def test_stats_default_zero():
    assert CompositeStats() == CompositeStats(0, 0, 0)
