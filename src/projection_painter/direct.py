"""Single-target ray-sampling painter (no capture buffer).

A simpler painter for one mouse-pointed surface: sample the brush disc in
world space around the hit point and cast short rays back onto the surface
to read texture coordinates directly.

Per paint call:
    - Tangent frame (t, b) around the hit normal n
    - samples_per_axis² grid over [-r, r]², rotated about n in 30° steps;
      samples farther than r from the hit are dropped
    - From sample + n·d, rays toward -n tilted -90°…90° (45° steps) about the
      rotated bitangent, max length 2d
    - Each hit's UV is spread over its four bilinear neighbor texels with
      weight radial_strength(|sample - hit|, r) · bilinear weight

Blends landing on the same texel are combined as 1 - Π(1 - wᵢ), the closed
form of applying the lerps one after another with a fixed color.
"""

import logging
from typing import Optional

import numpy as np

from src.utils import geometry

from .compositor import CompositeStats
from .footprint import radial_strength
from .parameters import Brush
from .surface import Surface

logger = logging.getLogger(__name__)


class RaySamplingPainter:
    """Paints by casting sample rays around a surface hit point.

    Parameters
    ----------
    samples_per_axis : int
        Grid resolution across the brush diameter
    projection_distance : float
        Ray start offset along the normal (rays reach 2× this far)
    rotation_step_deg : float
        Step of the grid rotations about the normal
    tilt_step_deg : float
        Step of the ray tilts in [-90, 90]
    """

    def __init__(self, samples_per_axis: int = 8, projection_distance: float = 0.1,
                 rotation_step_deg: float = 30.0, tilt_step_deg: float = 45.0):
        if samples_per_axis < 1:
            raise ValueError(f"samples_per_axis must be >= 1, got {samples_per_axis}")
        if projection_distance <= 0.0:
            raise ValueError(f"projection_distance must be positive, got {projection_distance}")
        self.samples_per_axis = int(samples_per_axis)
        self.projection_distance = float(projection_distance)
        self.rotations = np.arange(0.0, 360.0, rotation_step_deg)
        self.tilts = np.arange(-90.0, 90.0 + 1e-9, tilt_step_deg)

    def sample_points(self, hit_point: np.ndarray, normal: np.ndarray, radius: float):
        """World sample positions within ``radius`` and their rotated bitangents."""
        tangent, bitangent = geometry.tangent_frame(normal)
        n = self.samples_per_axis
        step = 2.0 * radius / n
        offsets = -radius + np.arange(n) * step
        ox, oy = np.meshgrid(offsets, offsets, indexing='ij')
        ox, oy = ox.ravel(), oy.ravel()

        points, bitangents = [], []
        for angle in self.rotations:
            rot = geometry.axis_angle_matrix(normal, angle)
            t = rot @ tangent
            b = rot @ bitangent
            p = hit_point + ox[:, None] * t + oy[:, None] * b
            keep = np.linalg.norm(p - hit_point, axis=1) <= radius
            points.append(p[keep])
            bitangents.append(np.repeat(b[None], keep.sum(), axis=0))
        return np.concatenate(points), np.concatenate(bitangents)

    def paint_at_point(self, surface: Surface, hit_point, normal, brush: Brush) -> CompositeStats:
        """Blend ``brush`` around a known surface hit."""
        texture = surface.texture
        if texture is None:
            raise ValueError(f"Surface '{surface.name}' has no texture")
        radius = brush.radius_world
        if radius <= 0.0:
            return CompositeStats()

        hit_point = np.asarray(hit_point, dtype=np.float64)
        normal = geometry.normalize(np.asarray(normal, dtype=np.float64))
        points, bitangents = self.sample_points(hit_point, normal, radius)
        if len(points) == 0:
            return CompositeStats()

        origins, directions, sample_of_ray = [], [], []
        for phi in self.tilts:
            # -n rotated about each bitangent (b is perpendicular to n)
            theta = np.deg2rad(phi)
            dirs = -normal * np.cos(theta) + np.cross(bitangents, -normal) * np.sin(theta)
            origins.append(points + normal * self.projection_distance)
            directions.append(dirs)
            sample_of_ray.append(np.arange(len(points)))
        origins = np.concatenate(origins)
        directions = np.concatenate(directions)
        sample_of_ray = np.concatenate(sample_of_ray)

        _, tri, bary = geometry.ray_triangles_intersect(
            origins, directions, surface.mesh.triangle_vertices,
            max_distance=2.0 * self.projection_distance, chunk_size=1024,
        )
        hit = tri >= 0
        n_rays = len(origins)
        if not np.any(hit):
            return CompositeStats(pixels_visited=n_rays)

        uv = surface.mesh.interpolate_uv(tri[hit], bary[hit])
        dist = np.linalg.norm(points[sample_of_ray[hit]] - hit_point, axis=1)
        opacity = radial_strength(dist, radius)

        height, width = texture.shape[:2]
        exact_x = uv[:, 0] * width
        exact_y = uv[:, 1] * height
        x1 = np.clip(np.floor(exact_x).astype(np.int64), 0, width - 1)
        y1 = np.clip(np.floor(exact_y).astype(np.int64), 0, height - 1)
        x2 = np.minimum(x1 + 1, width - 1)
        y2 = np.minimum(y1 + 1, height - 1)
        wx = np.clip(exact_x - x1, 0.0, 1.0)
        wy = np.clip(exact_y - y1, 0.0, 1.0)

        index = np.concatenate([y1 * width + x1, y1 * width + x2, y2 * width + x1, y2 * width + x2])
        weight = np.concatenate([
            opacity * (1.0 - wx) * (1.0 - wy),
            opacity * wx * (1.0 - wy),
            opacity * (1.0 - wx) * wy,
            opacity * wx * wy,
        ])
        keep = weight > 0.0
        texels = self._blend(texture, index[keep], weight[keep], brush.color)

        stats = CompositeStats(n_rays, int(hit.sum()), texels)
        logger.debug(f"Ray-sampled paint at {np.round(hit_point, 4).tolist()}: {stats}")
        return stats

    @staticmethod
    def _blend(texture: np.ndarray, index: np.ndarray, weight: np.ndarray, color) -> int:
        if len(index) == 0:
            return 0
        texels, inverse = np.unique(index, return_inverse=True)
        remaining = np.ones(len(texels))
        np.multiply.at(remaining, inverse, 1.0 - weight)

        flat = texture.reshape(-1, 4)
        current = flat[texels].astype(np.float64)
        color = np.asarray(color, dtype=np.float64)
        flat[texels] = current + (color - current) * (1.0 - remaining)[:, None]
        return len(texels)

    def paint_ray(self, surface: Surface, origin, direction, brush: Brush) -> Optional[CompositeStats]:
        """Cast a pointer ray; paint around the closest hit. None on a miss."""
        origin = np.asarray(origin, dtype=np.float64)
        direction = geometry.normalize(np.asarray(direction, dtype=np.float64))
        t, tri, _ = geometry.ray_triangles_intersect(
            origin[None], direction[None], surface.mesh.triangle_vertices
        )
        if tri[0] < 0:
            return None
        point = origin + direction * t[0]
        normal = surface.mesh.face_normals()[tri[0]]
        if np.dot(normal, direction) > 0.0:
            normal = -normal
        return self.paint_at_point(surface, point, normal, brush)
