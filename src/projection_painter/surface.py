"""Paintable surfaces: triangle mesh + persistent RGBA texture.

The texture is the only long-lived mutable state of the painter. It is an
(H, W, 4) FP32 array in [0,1] indexed [row, col] with row = floor(v * H) and
col = floor(u * W). Compositors mutate it in place.

Factories:
    - make_unit_quad(): planar quad whose UVs equal normalized position
    - make_uv_sphere(): latitude/longitude sphere with a duplicated seam
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from src.utils import color as color_utils

logger = logging.getLogger(__name__)


@dataclass
class Mesh:
    """Indexed triangle mesh with per-vertex texture coordinates.

    Attributes
    ----------
    vertices : np.ndarray
        (N, 3) float64 positions
    triangles : np.ndarray
        (M, 3) int64 vertex indices
    uvs : np.ndarray
        (N, 2) float64 texture coordinates
    """
    vertices: np.ndarray
    triangles: np.ndarray
    uvs: np.ndarray
    _tri_cache: Optional[np.ndarray] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        self.triangles = np.asarray(self.triangles, dtype=np.int64)
        self.uvs = np.asarray(self.uvs, dtype=np.float64)

        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise ValueError(f"vertices must be (N, 3), got {self.vertices.shape}")
        if self.triangles.ndim != 2 or self.triangles.shape[1] != 3:
            raise ValueError(f"triangles must be (M, 3), got {self.triangles.shape}")
        if self.uvs.shape != (self.vertices.shape[0], 2):
            raise ValueError(
                f"uvs must be ({self.vertices.shape[0]}, 2), got {self.uvs.shape}"
            )
        if self.triangles.size and (
            self.triangles.min() < 0 or self.triangles.max() >= len(self.vertices)
        ):
            raise ValueError("triangle indices out of range")

    @property
    def triangle_vertices(self) -> np.ndarray:
        """(M, 3, 3) corner positions per triangle."""
        if self._tri_cache is None:
            self._tri_cache = self.vertices[self.triangles]
        return self._tri_cache

    def face_normals(self) -> np.ndarray:
        """(M, 3) unit normals (counter-clockwise winding)."""
        tri = self.triangle_vertices
        n = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        length = np.linalg.norm(n, axis=1, keepdims=True)
        return n / np.maximum(length, 1e-12)

    def interpolate_uv(self, tri_index: np.ndarray, bary: np.ndarray) -> np.ndarray:
        """UVs at barycentric (b1, b2) inside the given triangles, shape (R, 2)."""
        corner_uv = self.uvs[self.triangles[tri_index]]
        b1 = bary[:, 0:1]
        b2 = bary[:, 1:2]
        return (1.0 - b1 - b2) * corner_uv[:, 0] + b1 * corner_uv[:, 1] + b2 * corner_uv[:, 2]


class Surface:
    """A mesh plus its persistent color texture.

    Parameters
    ----------
    mesh : Mesh
        Geometry to render into the capture buffer
    texture : np.ndarray
        (H, W, 4) FP32 RGBA texture; owned (not copied) by the surface.
        Use Surface.from_texture() to paint on a copy of a caller's texture.
    name : str
        Label used in logs
    """

    def __init__(self, mesh: Mesh, texture: np.ndarray, name: str = "surface"):
        if texture.ndim != 3 or texture.shape[2] != 4:
            raise ValueError(f"texture must be (H, W, 4), got {texture.shape}")
        if texture.dtype != np.float32:
            raise TypeError(f"texture must be FP32, got {texture.dtype}")
        if not texture.flags['C_CONTIGUOUS']:
            raise ValueError("texture must be C-contiguous (compositors write in place)")
        self.mesh = mesh
        self.name = name
        self._texture: Optional[np.ndarray] = texture

    @classmethod
    def from_texture(cls, mesh: Mesh, texture: np.ndarray, name: str = "surface") -> "Surface":
        """Create a surface painting on a private copy of ``texture``.

        Accepts uint8 or float images with 1, 3 or 4 channels.
        """
        copy = color_utils.to_float_image(texture).copy()
        logger.debug(f"Surface '{name}' copied texture {copy.shape[1]}x{copy.shape[0]}")
        return cls(mesh, copy, name=name)

    @classmethod
    def solid(
        cls,
        mesh: Mesh,
        width: int,
        height: int,
        color: Sequence[float] = (1.0, 1.0, 1.0, 1.0),
        name: str = "surface",
    ) -> "Surface":
        """Create a surface with a uniformly colored width×height texture."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Texture size must be positive, got {width}x{height}")
        texture = np.empty((height, width, 4), dtype=np.float32)
        texture[:] = color_utils.as_rgba(color)
        return cls(mesh, texture, name=name)

    @property
    def texture(self) -> Optional[np.ndarray]:
        """Writable texture handle; None after release()."""
        return self._texture

    @property
    def width(self) -> int:
        return 0 if self._texture is None else self._texture.shape[1]

    @property
    def height(self) -> int:
        return 0 if self._texture is None else self._texture.shape[0]

    @property
    def released(self) -> bool:
        return self._texture is None

    def release(self) -> None:
        """Drop the texture handle (teardown)."""
        self._texture = None

    def __repr__(self) -> str:
        return (
            f"Surface({self.name!r}, verts={len(self.mesh.vertices)}, "
            f"tris={len(self.mesh.triangles)}, texture={self.width}x{self.height})"
        )


def make_unit_quad(size: float = 1.0, subdivisions: int = 1, z: float = 0.0) -> Mesh:
    """Planar quad in the XY plane facing +Z, UV == normalized position.

    Parameters
    ----------
    size : float
        Edge length; the quad spans [0, size]² in XY
    subdivisions : int
        Cells per edge (≥ 1)
    z : float
        Plane height
    """
    if subdivisions < 1:
        raise ValueError(f"subdivisions must be >= 1, got {subdivisions}")
    n = subdivisions + 1
    t = np.linspace(0.0, 1.0, n)
    uu, vv = np.meshgrid(t, t, indexing='xy')
    uvs = np.stack([uu.ravel(), vv.ravel()], axis=1)
    vertices = np.column_stack([uvs * size, np.full(len(uvs), z)])

    tris = []
    for j in range(subdivisions):
        for i in range(subdivisions):
            a = j * n + i
            b = a + 1
            c = a + n
            d = c + 1
            tris.append((a, b, d))
            tris.append((a, d, c))
    return Mesh(vertices, np.asarray(tris), uvs)


def make_uv_sphere(radius: float = 0.5, segments: int = 32, rings: int = 16,
                   center: Sequence[float] = (0.0, 0.0, 0.0)) -> Mesh:
    """Latitude/longitude sphere; u wraps around Y, v runs pole to pole.

    The seam column is duplicated so u reaches exactly 1.0, which leaves a
    UV discontinuity for the resampler to cope with.
    """
    if segments < 3 or rings < 2:
        raise ValueError(f"Need segments >= 3 and rings >= 2, got {segments}, {rings}")
    u = np.linspace(0.0, 1.0, segments + 1)
    v = np.linspace(0.0, 1.0, rings + 1)
    uu, vv = np.meshgrid(u, v, indexing='xy')
    theta = uu * 2.0 * np.pi
    phi = vv * np.pi

    x = -radius * np.sin(phi) * np.cos(theta)
    y = -radius * np.cos(phi)
    zc = radius * np.sin(phi) * np.sin(theta)
    vertices = np.stack([x.ravel(), y.ravel(), zc.ravel()], axis=1) + np.asarray(center)
    uvs = np.stack([uu.ravel(), vv.ravel()], axis=1)

    cols = segments + 1
    tris = []
    for j in range(rings):
        for i in range(segments):
            a = j * cols + i
            b = a + 1
            c = a + cols
            d = c + 1
            if j > 0:
                tris.append((a, d, b))
            if j < rings - 1:
                tris.append((a, c, d))
    return Mesh(vertices, np.asarray(tris), uvs)
