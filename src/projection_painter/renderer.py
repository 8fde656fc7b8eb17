"""Surface index map renderer: rasterizes a mesh's texture coordinates.

Instead of color, every covered capture pixel receives the (u, v) of the
surface point it sees. Pixels the surface does not cover keep SENTINEL.

Rasterization (numpy, one triangle at a time, vectorized over its bounding box):
    1. Vertices → clip space with the capture camera's view-projection
    2. Triangles entirely outside any single clip plane are rejected;
       triangles crossing the near plane (z < -w) are clipped against it
       (Sutherland–Hodgman) into one or two triangles
    3. Pixel (px, py) is sampled at its center, NDC ((px+0.5)/W·2-1, (py+0.5)/H·2-1)
    4. Edge functions give screen-space barycentrics; UVs are interpolated
       perspective-correctly (b_i / w_i, renormalized)
    5. Depth test on NDC z, nearest surface wins

Async mode runs the rasterization on a single worker thread; submit() returns
a Future the caller waits on before compositing (the readback barrier).
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from src.utils.profiler import logger_sink, timer

from .camera import CaptureCamera
from .capture import SENTINEL, CaptureBuffer
from .surface import Surface

logger = logging.getLogger(__name__)


def clip_near(clip: np.ndarray, uvs: np.ndarray) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Clip one triangle against the near plane z + w ≥ 0.

    Parameters
    ----------
    clip : np.ndarray
        Clip-space vertices, shape (3, 4)
    uvs : np.ndarray
        Vertex texture coordinates, shape (3, 2)

    Returns
    -------
    list of (np.ndarray, np.ndarray)
        Zero, one or two (clip (3, 4), uvs (3, 2)) triangles with the input winding
    """
    dist = clip[:, 2] + clip[:, 3]
    inside = dist >= 0.0
    if inside.all():
        return [(clip, uvs)]
    if not inside.any():
        return []

    poly_clip, poly_uv = [], []
    for i in range(3):
        j = (i + 1) % 3
        if inside[i]:
            poly_clip.append(clip[i])
            poly_uv.append(uvs[i])
        if inside[i] != inside[j]:
            t = dist[i] / (dist[i] - dist[j])
            poly_clip.append(clip[i] + t * (clip[j] - clip[i]))
            poly_uv.append(uvs[i] + t * (uvs[j] - uvs[i]))

    # Fan the 3- or 4-gon
    return [
        (np.stack([poly_clip[0], poly_clip[k], poly_clip[k + 1]]),
         np.stack([poly_uv[0], poly_uv[k], poly_uv[k + 1]]))
        for k in range(1, len(poly_clip) - 1)
    ]


class SurfaceIndexMapRenderer:
    """Software UV rasterizer writing into a CaptureBuffer.

    Parameters
    ----------
    cull_backfaces : bool
        Skip triangles wound clockwise on screen
    async_readback : bool
        Rasterize on a single-worker thread pool (submit() returns pending futures)
    """

    def __init__(self, cull_backfaces: bool = False, async_readback: bool = False):
        self.cull_backfaces = cull_backfaces
        self._executor: Optional[ThreadPoolExecutor] = None
        if async_readback:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="uv-render")

    @property
    def is_async(self) -> bool:
        return self._executor is not None

    def rasterize(self, surface: Surface, camera: CaptureCamera) -> np.ndarray:
        """Rasterize ``surface`` UVs for ``camera`` into a fresh (H, W, 2) array."""
        width, height = camera.width, camera.height
        uv_out = np.full((height, width, 2), SENTINEL, dtype=np.float32)
        depth = np.full((height, width), np.inf)

        mesh = surface.mesh
        clip = camera.to_clip(mesh.vertices)
        tri_clip = clip[mesh.triangles]  # (M, 3, 4)
        if len(tri_clip) == 0:
            return uv_out

        x, y, z, w = (tri_clip[..., i] for i in range(4))
        near_cross = np.any(z < -w, axis=1)
        outside = (
            np.all(x < -w, axis=1) | np.all(x > w, axis=1)
            | np.all(y < -w, axis=1) | np.all(y > w, axis=1)
            | np.all(z > w, axis=1) | np.all(z < -w, axis=1)
        )
        keep = np.nonzero(~outside)[0]

        drawn = 0
        clipped = 0
        for t in keep:
            tri_uvs = mesh.uvs[mesh.triangles[t]]
            if near_cross[t]:
                pieces = clip_near(tri_clip[t], tri_uvs)
                clipped += 1
            else:
                pieces = [(tri_clip[t], tri_uvs)]
            for piece_clip, piece_uvs in pieces:
                if self._draw_triangle(piece_clip, piece_uvs, uv_out, depth):
                    drawn += 1

        logger.debug(
            f"Rasterized {drawn} triangles from {len(tri_clip)} "
            f"({len(tri_clip) - len(keep)} rejected, {clipped} near-clipped) into {width}x{height}"
        )
        return uv_out

    def _draw_triangle(self, clip: np.ndarray, uvs: np.ndarray,
                       uv_out: np.ndarray, depth: np.ndarray) -> bool:
        height, width = depth.shape
        w = clip[:, 3]
        ndc = clip[:, :3] / w[:, np.newaxis]
        sx = (ndc[:, 0] * 0.5 + 0.5) * width
        sy = (ndc[:, 1] * 0.5 + 0.5) * height

        area = (sx[1] - sx[0]) * (sy[2] - sy[0]) - (sx[2] - sx[0]) * (sy[1] - sy[0])
        if abs(area) < 1e-12:
            return False
        if self.cull_backfaces and area < 0.0:
            return False

        # Pixel centers px + 0.5 inside [min, max]
        x0 = max(int(np.ceil(sx.min() - 0.5)), 0)
        x1 = min(int(np.floor(sx.max() - 0.5)), width - 1)
        y0 = max(int(np.ceil(sy.min() - 0.5)), 0)
        y1 = min(int(np.floor(sy.max() - 0.5)), height - 1)
        if x0 > x1 or y0 > y1:
            return False

        cx = np.arange(x0, x1 + 1) + 0.5
        cy = np.arange(y0, y1 + 1) + 0.5
        px, py = np.meshgrid(cx, cy, indexing='xy')

        b0 = ((sx[2] - sx[1]) * (py - sy[1]) - (sy[2] - sy[1]) * (px - sx[1])) / area
        b1 = ((sx[0] - sx[2]) * (py - sy[2]) - (sy[0] - sy[2]) * (px - sx[2])) / area
        b2 = 1.0 - b0 - b1
        inside = (b0 >= 0.0) & (b1 >= 0.0) & (b2 >= 0.0)
        if not np.any(inside):
            return False

        z = b0 * ndc[0, 2] + b1 * ndc[1, 2] + b2 * ndc[2, 2]
        region = depth[y0:y1 + 1, x0:x1 + 1]
        closer = inside & (z < region) & (z >= -1.0) & (z <= 1.0)
        if not np.any(closer):
            return False

        # Perspective-correct weights
        p0 = b0 / w[0]
        p1 = b1 / w[1]
        p2 = b2 / w[2]
        norm = p0 + p1 + p2
        u = (p0 * uvs[0, 0] + p1 * uvs[1, 0] + p2 * uvs[2, 0]) / norm
        v = (p0 * uvs[0, 1] + p1 * uvs[1, 1] + p2 * uvs[2, 1]) / norm

        region[closer] = z[closer]
        out = uv_out[y0:y1 + 1, x0:x1 + 1]
        out[closer, 0] = u[closer]
        out[closer, 1] = v[closer]
        return True

    def render(self, surface: Surface, camera: CaptureCamera, buffer: CaptureBuffer) -> int:
        """Synchronously render into ``buffer``; returns the covered pixel count."""
        generation = buffer.begin_write()
        return self._render_generation(surface, camera, buffer, generation)

    def _render_generation(self, surface: Surface, camera: CaptureCamera,
                           buffer: CaptureBuffer, generation: int) -> int:
        if (camera.width, camera.height) != (buffer.width, buffer.height):
            raise ValueError(
                f"Camera targets {camera.width}x{camera.height} but capture buffer is "
                f"{buffer.width}x{buffer.height}"
            )
        with timer("rasterize", sink=logger_sink(logger)):
            uv = self.rasterize(surface, camera)
        covered = int(np.count_nonzero(uv[:, :, 0] >= 0.0))
        if buffer.generation != generation:
            logger.debug(f"Discarding stale render (generation {generation})")
            return covered
        buffer.data[...] = uv
        if not buffer.publish(generation):
            logger.debug(f"Render generation {generation} superseded before publish")
        return covered

    def submit(self, surface: Surface, camera: CaptureCamera, buffer: CaptureBuffer) -> Future:
        """Start a render; the returned future resolves to the covered pixel count.

        The buffer is cleared (and its read window closed) on the calling thread
        before any work is queued.
        """
        generation = buffer.begin_write()
        if self._executor is not None:
            return self._executor.submit(self._render_generation, surface, camera, buffer, generation)

        future: Future = Future()
        try:
            future.set_result(self._render_generation(surface, camera, buffer, generation))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
