"""Gaussian neighborhood resampling of the capture buffer.

The rasterized UVs are quantized to capture pixels; averaging a small
neighborhood gives a smoother estimate of the true texture coordinate.

Weights: exp(-(dx² + dy²) / (2k²)) over a (2k+1)² window, neighbor coordinates
clamped to the buffer. Uncovered taps (SENTINEL) get zero weight; an uncovered
query pixel yields no sample. k = 0 is the identity.

Two paths with identical results:
    - sample(): scalar reference, one pixel at a time
    - resample_region(): normalized convolution over a rectangular region,
      filter(uv · mask) / filter(mask) with cv2.filter2D
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from .capture import SENTINEL, CaptureBuffer

logger = logging.getLogger(__name__)


def gaussian_kernel(radius: int) -> np.ndarray:
    """(2k+1, 2k+1) float64 kernel exp(-(dx²+dy²)/(2k²)); [[1]] for k = 0."""
    if radius < 0:
        raise ValueError(f"radius must be >= 0, got {radius}")
    if radius == 0:
        return np.ones((1, 1))
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    dx, dy = np.meshgrid(offsets, offsets, indexing='xy')
    return np.exp(-(dx * dx + dy * dy) / (2.0 * radius * radius))


class GaussianResampler:
    """Coverage-aware Gaussian resampler.

    Parameters
    ----------
    radius : int
        Neighborhood radius k (default 2, i.e. 25 taps)
    """

    def __init__(self, radius: int = 2):
        self.radius = int(radius)
        self.kernel = gaussian_kernel(self.radius)

    def sample(self, buffer: CaptureBuffer, px: int, py: int) -> Optional[Tuple[float, float]]:
        """Smoothed (u, v) at pixel (px, py), or None if the pixel is uncovered."""
        uv = buffer.uv
        height, width = uv.shape[:2]
        if not (0 <= px < width and 0 <= py < height):
            raise IndexError(f"Pixel ({px}, {py}) outside {width}x{height} buffer")
        if uv[py, px, 0] < 0.0:
            return None

        k = self.radius
        su = sv = total = 0.0
        for dy in range(-k, k + 1):
            y = min(max(py + dy, 0), height - 1)
            for dx in range(-k, k + 1):
                x = min(max(px + dx, 0), width - 1)
                if uv[y, x, 0] < 0.0:
                    continue
                weight = self.kernel[dy + k, dx + k]
                su += weight * float(uv[y, x, 0])
                sv += weight * float(uv[y, x, 1])
                total += weight

        if total <= 0.0:
            return None
        return su / total, sv / total

    def resample_region(
        self, buffer: CaptureBuffer, x0: int, y0: int, x1: int, y1: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Resample every pixel of the half-open region [x0, x1) × [y0, y1).

        Returns
        -------
        uv : np.ndarray
            (h, w, 2) float64 smoothed coordinates, SENTINEL where invalid
        valid : np.ndarray
            (h, w) bool, True where the pixel is covered with nonzero weight
        """
        uv = buffer.uv
        height, width = uv.shape[:2]
        x0, x1 = max(x0, 0), min(x1, width)
        y0, y1 = max(y0, 0), min(y1, height)
        if x0 >= x1 or y0 >= y1:
            return np.zeros((0, 0, 2)), np.zeros((0, 0), dtype=bool)

        k = self.radius
        rows = np.clip(np.arange(y0 - k, y1 + k), 0, height - 1)
        cols = np.clip(np.arange(x0 - k, x1 + k), 0, width - 1)
        window = uv[np.ix_(rows, cols)].astype(np.float64)
        mask = (window[:, :, 0] >= 0.0).astype(np.float64)

        # Kernel never leaves the padded window inside the crop
        num = cv2.filter2D(window * mask[:, :, np.newaxis], -1, self.kernel,
                           borderType=cv2.BORDER_REPLICATE)
        den = cv2.filter2D(mask, -1, self.kernel, borderType=cv2.BORDER_REPLICATE)

        h, w = y1 - y0, x1 - x0
        num = num[k:k + h, k:k + w]
        den = den[k:k + h, k:k + w]
        covered = mask[k:k + h, k:k + w] > 0.0

        valid = covered & (den > 1e-12)
        out = np.full((h, w, 2), SENTINEL, dtype=np.float64)
        out[valid] = num[valid] / den[valid][:, np.newaxis]
        return out, valid

    def __repr__(self) -> str:
        return f"GaussianResampler(radius={self.radius})"
