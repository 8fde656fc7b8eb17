"""Texel compositors: blend brush color into the persistent texture.

For every capture pixel under the brush:
    1. Resample the capture buffer → smoothed (u, v)
    2. Footprint strength from the pixel's distance to the brush center
    3. Texel (floor(u·W), floor(v·H)), clamped, is lerped toward the brush color:
       texel + (color - texel) · strength

Optional splat radius spreads each sample to the texels within
``splat_radius`` of its texel, with strength eased by
smoothstep(0, 1, strength · (1 - offset / splat_radius)). Texels falling off
the texture are skipped.

Strategies:
    - SequentialScanCompositor: visits every capture pixel, blends one sample
      at a time in scan order (reference, single writer)
    - BoundedGatherCompositor: visits only a work-group-aligned box around the
      brush and resolves all samples landing on one texel at once. For a fixed
      color, n sequential lerps collapse to a single lerp with strength
      1 - Π(1 - sᵢ), so the result does not depend on sample order and needs
      no atomic writes.

Invariant: a zero-strength sample never touches its texel, so a zero-strength
event leaves the texture bit-identical.
"""

import abc
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Tuple

import numpy as np
import torch

from src.utils.torch_utils import resolve_device, synchronize

from .capture import CaptureBuffer
from .footprint import BrushFootprint, smoothstep
from .resampler import GaussianResampler

if TYPE_CHECKING:
    from .painter import PaintEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompositeStats:
    """Counters for one composite pass."""
    pixels_visited: int = 0
    samples: int = 0
    texels_written: int = 0


def texel_indices(uv: np.ndarray, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    """(cols, rows) = (floor(u·W), floor(v·H)) clamped to the texture."""
    uv = np.asarray(uv, dtype=np.float64)
    cols = np.clip(np.floor(uv[..., 0] * width), 0, width - 1).astype(np.int64)
    rows = np.clip(np.floor(uv[..., 1] * height), 0, height - 1).astype(np.int64)
    return cols, rows


def lerp_blend(texel: np.ndarray, color: np.ndarray, strength) -> np.ndarray:
    """texel + (color - texel) · strength, in FP64."""
    texel = np.asarray(texel, dtype=np.float64)
    color = np.asarray(color, dtype=np.float64)
    return texel + (color - texel) * np.asarray(strength, dtype=np.float64)


def splat_offsets(splat_radius: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Texel offsets (dx, dy) within ``splat_radius`` and their linear falloff."""
    r = int(splat_radius)
    if r <= 0:
        return np.zeros(1, dtype=np.int64), np.zeros(1, dtype=np.int64), np.ones(1)
    grid = np.arange(-r, r + 1)
    dx, dy = np.meshgrid(grid, grid, indexing='xy')
    dist = np.hypot(dx, dy)
    keep = dist <= r
    return dx[keep].astype(np.int64), dy[keep].astype(np.int64), 1.0 - dist[keep] / r


def expand_samples(
    uv: np.ndarray, strength: np.ndarray, width: int, height: int, splat_radius: int = 0
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Turn (N,) samples into per-texel contributions (rows, cols, strengths).

    Contributions are ordered sample-major, so applying them in order
    reproduces scan order.
    """
    if splat_radius <= 0:
        cols, rows = texel_indices(uv, width, height)
        return rows, cols, np.asarray(strength, dtype=np.float64)

    dx, dy, falloff = splat_offsets(splat_radius)
    base_cols = np.floor(uv[:, 0] * width).astype(np.int64)
    base_rows = np.floor(uv[:, 1] * height).astype(np.int64)
    cols = base_cols[:, np.newaxis] + dx[np.newaxis]
    rows = base_rows[:, np.newaxis] + dy[np.newaxis]
    s = smoothstep(0.0, 1.0, strength[:, np.newaxis] * falloff[np.newaxis])
    s = np.broadcast_to(s, cols.shape)

    inside = (cols >= 0) & (cols < width) & (rows >= 0) & (rows < height)
    return rows[inside], cols[inside], s[inside]


class TexelCompositor(abc.ABC):
    """Shared resample + footprint stage; subclasses decide how texels are written.

    Parameters
    ----------
    resampler : GaussianResampler
        Capture-buffer smoothing filter
    splat_radius : int
        Extra texel spread per sample (0 = single texel)
    """

    name = "abstract"

    def __init__(self, resampler: GaussianResampler, splat_radius: int = 0):
        self.resampler = resampler
        self.splat_radius = int(splat_radius)

    def footprint_samples(
        self, event: "PaintEvent", buffer: CaptureBuffer, x0: int, y0: int, x1: int, y1: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Resampled UVs and strengths of the region's brush pixels, in scan order.

        Pixels outside the radius, uncovered pixels and zero-strength pixels
        are dropped.
        """
        cx, cy = event.center_px
        ys = np.arange(y0, y1) + 0.5
        xs = np.arange(x0, x1) + 0.5
        px, py = np.meshgrid(xs, ys, indexing='xy')
        within = np.hypot(px - cx, py - cy) <= event.radius_px
        if not np.any(within):
            return np.zeros((0, 2)), np.zeros(0)

        uv, valid = self.resampler.resample_region(buffer, x0, y0, x1, y1)
        footprint = BrushFootprint(event.brush.stamp)
        strength = np.asarray(footprint.strength(px, py, (cx, cy), event.radius_px))
        take = within & valid & (strength > 0.0)
        return uv[take], strength[take]

    @abc.abstractmethod
    def composite(self, event: "PaintEvent", buffer: CaptureBuffer,
                  texture: np.ndarray) -> CompositeStats:
        """Blend ``event``'s brush into ``texture`` in place."""


class SequentialScanCompositor(TexelCompositor):
    """Full-buffer scan, one blend at a time."""

    name = "sequential"

    def composite(self, event, buffer, texture):
        uv_buffer = buffer.uv
        height, width = uv_buffer.shape[:2]
        visited = width * height
        if event.radius_px <= 0.0:
            return CompositeStats(pixels_visited=visited)

        uv, strength = self.footprint_samples(event, buffer, 0, 0, width, height)
        tex_h, tex_w = texture.shape[:2]
        rows, cols, s = expand_samples(uv, strength, tex_w, tex_h, self.splat_radius)

        color = np.asarray(event.brush.color, dtype=np.float64)
        written = set()
        for row, col, weight in zip(rows, cols, s):
            if weight <= 0.0:
                continue
            texture[row, col] = lerp_blend(texture[row, col], color, weight)
            written.add((int(row), int(col)))

        stats = CompositeStats(visited, len(strength), len(written))
        logger.debug(f"Sequential composite: {stats}")
        return stats


class BoundedGatherCompositor(TexelCompositor):
    """Data-parallel composite restricted to a box around the brush.

    Parameters
    ----------
    resampler : GaussianResampler
        Capture-buffer smoothing filter
    work_group_size : int
        Dispatch granularity; the box edge is rounded up to a multiple of it
    splat_radius : int
        Extra texel spread per sample
    device : str
        Torch device for the texel reduction ("cpu", "cuda", "auto")
    """

    name = "bounded"

    def __init__(self, resampler: GaussianResampler, work_group_size: int = 8,
                 splat_radius: int = 0, device: str = "cpu"):
        super().__init__(resampler, splat_radius)
        if work_group_size < 1:
            raise ValueError(f"work_group_size must be >= 1, got {work_group_size}")
        self.work_group_size = int(work_group_size)
        self.device = resolve_device(device)

    def dispatch_region(self, center: Tuple[float, float], radius: float,
                        width: int, height: int) -> Tuple[int, int, int, int]:
        """Half-open box (x0, y0, x1, y1) holding every pixel center within
        ``radius``, edges rounded up to the work-group size, clipped."""
        cx, cy = center
        wg = self.work_group_size

        def axis(c: float, limit: int) -> Tuple[int, int]:
            lo = math.floor(c - radius - 0.5)
            hi = math.ceil(c + radius - 0.5)
            span = hi - lo + 1
            size = -(-span // wg) * wg
            start = lo - (size - span) // 2
            return max(start, 0), min(start + size, limit)

        x0, x1 = axis(cx, width)
        y0, y1 = axis(cy, height)
        return x0, y0, x1, y1

    def composite(self, event, buffer, texture):
        uv_buffer = buffer.uv
        height, width = uv_buffer.shape[:2]
        if event.radius_px <= 0.0:
            return CompositeStats()

        x0, y0, x1, y1 = self.dispatch_region(event.center_px, event.radius_px, width, height)
        visited = max(x1 - x0, 0) * max(y1 - y0, 0)
        if visited == 0:
            return CompositeStats()

        uv, strength = self.footprint_samples(event, buffer, x0, y0, x1, y1)
        tex_h, tex_w = texture.shape[:2]
        rows, cols, s = expand_samples(uv, strength, tex_w, tex_h, self.splat_radius)
        keep = s > 0.0
        if not np.any(keep):
            return CompositeStats(visited, len(strength), 0)

        device = self.device
        flat_index = torch.from_numpy(rows[keep] * tex_w + cols[keep]).to(device)
        weights = torch.from_numpy(np.ascontiguousarray(s[keep], dtype=np.float64)).to(device)

        texels, inverse = torch.unique(flat_index, return_inverse=True)
        remaining = torch.ones(texels.shape[0], dtype=torch.float64, device=device)
        remaining.scatter_reduce_(0, inverse, 1.0 - weights, reduce='prod', include_self=True)
        combined = 1.0 - remaining

        tex_flat = torch.from_numpy(texture.reshape(-1, 4))
        index_cpu = texels.cpu()
        current = tex_flat[index_cpu].to(device=device, dtype=torch.float64)
        color = torch.as_tensor(np.asarray(event.brush.color, dtype=np.float64), device=device)
        blended = current + (color - current) * combined[:, None]
        synchronize(device)
        # Writes through to the numpy texture (shared memory)
        tex_flat[index_cpu] = blended.to(dtype=torch.float32).cpu()

        stats = CompositeStats(visited, len(strength), int(texels.shape[0]))
        logger.debug(f"Bounded composite box=({x0},{y0})-({x1},{y1}): {stats}")
        return stats


def compositor_from_config(compositor_cfg, resampler: GaussianResampler) -> TexelCompositor:
    """Build a compositor from a validated ``CompositorConfig``."""
    if compositor_cfg.strategy == "sequential":
        return SequentialScanCompositor(resampler, splat_radius=compositor_cfg.splat_radius)
    if compositor_cfg.strategy == "bounded":
        return BoundedGatherCompositor(
            resampler,
            work_group_size=compositor_cfg.work_group_size,
            splat_radius=compositor_cfg.splat_radius,
            device=compositor_cfg.device,
        )
    raise ValueError(f"Unknown compositor strategy: {compositor_cfg.strategy}")
