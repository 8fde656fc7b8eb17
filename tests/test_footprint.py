"""Test the brush footprint model.

Tests for src.projection_painter.footprint:
    - smoothstep endpoints and easing shape
    - Radial falloff: 1 at center, 0 at/beyond radius, monotonic
    - Non-positive radius → zero strength everywhere
    - Stamp loading (2-D, RGB red channel, uint8) and bilinear sampling
    - Stamp window: outside [center - r, center + r]² → 0

Run:
    pytest tests/test_footprint.py -v
"""

import numpy as np
import pytest

from src.projection_painter.footprint import BrushFootprint, Stamp, radial_strength, smoothstep


def test_smoothstep_endpoints_and_midpoint():
    assert smoothstep(0.0, 1.0, 0.0) == 0.0
    assert smoothstep(0.0, 1.0, 1.0) == 1.0
    assert smoothstep(0.0, 1.0, 0.5) == pytest.approx(0.5)
    assert smoothstep(0.0, 1.0, -3.0) == 0.0
    assert smoothstep(0.0, 1.0, 7.0) == 1.0


def test_smoothstep_reversed_edges_falls_off():
    x = np.linspace(0.0, 2.0, 9)
    y = smoothstep(2.0, 0.0, x)
    assert y[0] == pytest.approx(1.0)
    assert y[-1] == pytest.approx(0.0)
    assert np.all(np.diff(y) <= 0.0)


def test_smoothstep_equal_edges_is_step():
    y = smoothstep(1.0, 1.0, np.array([0.5, 1.0, 1.5]))
    np.testing.assert_array_equal(y, [0.0, 1.0, 1.0])


@pytest.mark.parametrize("radius", [0.5, 3.0, 16.0, 250.0])
def test_radial_strength_profile(radius):
    assert radial_strength(0.0, radius) == pytest.approx(1.0)
    assert radial_strength(radius, radius) == 0.0
    assert radial_strength(radius * 1.5, radius) == 0.0

    d = np.linspace(0.0, radius * 1.2, 200)
    s = radial_strength(d, radius)
    assert np.all(np.diff(s) <= 1e-15), "Falloff must be monotonically non-increasing"
    assert np.all((s >= 0.0) & (s <= 1.0))


@pytest.mark.parametrize("radius", [0.0, -1.0])
def test_radial_strength_degenerate_radius(radius):
    assert radial_strength(0.0, radius) == 0.0
    np.testing.assert_array_equal(radial_strength(np.arange(5.0), radius), np.zeros(5))


def test_footprint_without_stamp_matches_radial():
    fp = BrushFootprint()
    px = np.array([10.0, 13.0, 20.0])
    s = fp.strength(px, np.full(3, 10.0), (10.0, 10.0), 5.0)
    np.testing.assert_allclose(s, radial_strength(np.array([0.0, 3.0, 10.0]), 5.0))


def test_footprint_zero_radius_is_zero():
    fp = BrushFootprint(Stamp(np.ones((4, 4))))
    s = fp.strength(np.arange(4.0), np.arange(4.0), (1.0, 1.0), 0.0)
    np.testing.assert_array_equal(s, np.zeros(4))


def test_stamp_uses_red_channel_and_scales_uint8():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[..., 0] = 255
    img[..., 1] = 10
    stamp = Stamp(img)
    np.testing.assert_allclose(stamp.data, np.ones((2, 2)))


def test_stamp_bilinear_sampling():
    stamp = Stamp(np.array([[0.0, 1.0], [0.0, 1.0]]))
    # Texel centers at u = 0.25 and 0.75
    assert stamp.sample(0.25, 0.5) == pytest.approx(0.0)
    assert stamp.sample(0.75, 0.5) == pytest.approx(1.0)
    assert stamp.sample(0.5, 0.5) == pytest.approx(0.5)
    # Clamped outside the texel centers
    assert stamp.sample(0.0, 0.0) == pytest.approx(0.0)
    assert stamp.sample(1.0, 1.0) == pytest.approx(1.0)


def test_stamp_rejects_empty():
    with pytest.raises(ValueError):
        Stamp(np.zeros((0, 3)))


def test_stamp_modulates_and_windows_strength():
    stamp = Stamp(np.full((8, 8), 0.5))
    fp = BrushFootprint(stamp)
    center, radius = (20.0, 20.0), 10.0

    inside = fp.strength(20.0, 20.0, center, radius)
    assert inside == pytest.approx(0.5)

    # Outside the stamp square (and the radius) → 0
    assert fp.strength(31.0, 20.0, center, radius) == 0.0
    assert fp.strength(20.0, 8.0, center, radius) == 0.0


def test_stamp_zero_region_excludes_pixels():
    data = np.ones((16, 16))
    data[6:10, 6:10] = 0.0
    fp = BrushFootprint(Stamp(data))
    assert fp.strength(50.0, 50.0, (50.0, 50.0), 20.0) == 0.0
    assert fp.strength(42.0, 50.0, (50.0, 50.0), 20.0) > 0.0
