"""Brush footprint model: distance falloff plus optional grayscale stamp.

Strength at a capture pixel is a smooth radial falloff from the brush center
(1 at the center, 0 at and beyond the radius). With a stamp, the brush
square [center - r, center + r]² is mapped onto the stamp's unit square and
the stamp intensity scales the radial envelope; outside that square the
strength is 0.

All functions accept scalars or numpy arrays and broadcast.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from src.utils import fs

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray]


def smoothstep(edge0: float, edge1: float, x: ArrayLike) -> ArrayLike:
    """Cubic Hermite ease t²(3 - 2t), t = clamp((x - edge0) / (edge1 - edge0)).

    Edges may be given in decreasing order (falloff). Equal edges degrade to
    a step at the edge.
    """
    x = np.asarray(x, dtype=np.float64)
    if edge0 == edge1:
        out = (x >= edge0).astype(np.float64)
    else:
        t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
        out = t * t * (3.0 - 2.0 * t)
    return out if out.ndim else float(out)


def radial_strength(distance: ArrayLike, radius: float) -> ArrayLike:
    """Falloff smoothstep(radius, 0, distance); zero everywhere when radius <= 0."""
    if radius <= 0.0:
        d = np.asarray(distance, dtype=np.float64)
        return np.zeros_like(d) if d.ndim else 0.0
    return smoothstep(radius, 0.0, distance)


class Stamp:
    """Grayscale brush-tip image sampled bilinearly on the unit square.

    Parameters
    ----------
    image : np.ndarray
        (h, w) intensities, or an (h, w, C) image whose first (red) channel is
        used. uint8 is scaled by 1/255; floats are clipped to [0,1].
        Row 0 corresponds to stamp v = 0.
    """

    def __init__(self, image: np.ndarray):
        img = np.asarray(image)
        if img.ndim == 3:
            img = img[:, :, 0]
        if img.ndim != 2 or img.size == 0:
            raise ValueError(f"Stamp must be a non-empty (h, w) or (h, w, C) image, got {np.shape(image)}")
        if img.dtype == np.uint8:
            data = img.astype(np.float64) / 255.0
        else:
            data = np.clip(img.astype(np.float64), 0.0, 1.0)
        self.data = data

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Stamp":
        """Load the red channel of an image file (flipped so row 0 is v = 0)."""
        return cls(fs.load_texture(path))

    @property
    def shape(self):
        return self.data.shape

    def sample(self, u: ArrayLike, v: ArrayLike) -> np.ndarray:
        """Bilinear intensity at (u, v) in [0,1]², texel centers at (i + 0.5) / n."""
        h, w = self.data.shape
        x = np.clip(np.asarray(u, dtype=np.float64) * w - 0.5, 0.0, w - 1)
        y = np.clip(np.asarray(v, dtype=np.float64) * h - 0.5, 0.0, h - 1)
        xi = np.minimum(np.floor(x).astype(np.int64), max(w - 2, 0))
        yi = np.minimum(np.floor(y).astype(np.int64), max(h - 2, 0))
        fx = x - xi
        fy = y - yi
        xj = np.minimum(xi + 1, w - 1)
        yj = np.minimum(yi + 1, h - 1)

        d = self.data
        top = d[yi, xi] * (1.0 - fx) + d[yi, xj] * fx
        bottom = d[yj, xi] * (1.0 - fx) + d[yj, xj] * fx
        return top * (1.0 - fy) + bottom * fy

    def __repr__(self) -> str:
        return f"Stamp({self.data.shape[1]}x{self.data.shape[0]})"


class BrushFootprint:
    """Per-pixel blend strength for one brush (radial falloff × optional stamp)."""

    def __init__(self, stamp: Optional[Stamp] = None):
        self.stamp = stamp

    def strength(self, px: ArrayLike, py: ArrayLike,
                 center: Sequence[float], radius: float) -> ArrayLike:
        """Blend strength in [0,1] at pixel position(s) (px, py).

        Parameters
        ----------
        px, py : float or np.ndarray
            Pixel positions (use pixel centers, i + 0.5)
        center : sequence of float
            Brush center (cx, cy) in the same pixel units
        radius : float
            Brush radius in pixels; <= 0 gives zero strength
        """
        px = np.asarray(px, dtype=np.float64)
        py = np.asarray(py, dtype=np.float64)
        if radius <= 0.0:
            out = np.zeros(np.broadcast(px, py).shape)
            return out if out.ndim else 0.0

        cx, cy = float(center[0]), float(center[1])
        strength = np.asarray(radial_strength(np.hypot(px - cx, py - cy), radius))

        if self.stamp is not None:
            su = (px - (cx - radius)) / (2.0 * radius)
            sv = (py - (cy - radius)) / (2.0 * radius)
            inside = (su >= 0.0) & (su <= 1.0) & (sv >= 0.0) & (sv <= 1.0)
            strength = np.where(inside, self.stamp.sample(su, sv) * strength, 0.0)

        return strength if strength.ndim else float(strength)
