"""Capture cameras and the strategies that place them from a brush pose.

A CaptureCamera is a view + projection pair sized to the capture buffer.
Pixel coordinates are continuous: pixel index i spans [i, i + 1) and its
center sits at i + 0.5. Row 0 is NDC y = -1 (bottom).

Three interchangeable CapturePoseStrategy implementations cover the ways a
brush can be placed:
    - FixedViewpointStrategy: one external camera for the whole surface; the
      brush center is wherever the pose says (e.g. a pointer-ray hit point)
    - BrushOffsetStrategy: tracked controller; the camera sits behind the brush
      tip along its (Euler-offset) forward axis, FOV sized so the brush radius
      spans ``coverage_fraction`` of the half-buffer
    - PointerRayStrategy: pointer ray is cast on the surface; the camera looks
      back at the hit point along the hit normal
"""

import abc
import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from src.utils import geometry

from .surface import Surface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pose:
    """Brush pose sampled from the input device.

    Attributes
    ----------
    position : np.ndarray
        Brush tip (or pointer origin) in world space, shape (3,)
    forward : np.ndarray
        Pointing direction, shape (3,)
    up : np.ndarray
        Up hint for the capture camera roll, shape (3,)
    """
    position: np.ndarray
    forward: np.ndarray
    up: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))

    @classmethod
    def create(cls, position: Sequence[float], forward: Sequence[float],
               up: Sequence[float] = (0.0, 1.0, 0.0)) -> "Pose":
        pos = np.asarray(position, dtype=np.float64).reshape(3)
        fwd = geometry.normalize(np.asarray(forward, dtype=np.float64).reshape(3))
        up_v = np.asarray(up, dtype=np.float64).reshape(3)
        return cls(pos, fwd, up_v)

    def is_close(self, other: Optional["Pose"], atol: float = 1e-9) -> bool:
        if other is None:
            return False
        return (np.allclose(self.position, other.position, atol=atol)
                and np.allclose(self.forward, other.forward, atol=atol)
                and np.allclose(self.up, other.up, atol=atol))


class CaptureCamera:
    """View + projection transform targeting a width×height capture buffer."""

    def __init__(self, view: np.ndarray, projection: np.ndarray, width: int, height: int):
        self.view = np.asarray(view, dtype=np.float64)
        self.projection = np.asarray(projection, dtype=np.float64)
        self.width = int(width)
        self.height = int(height)
        self.view_projection = self.projection @ self.view

    @property
    def position(self) -> np.ndarray:
        """Camera position in world space."""
        rot = self.view[:3, :3]
        return -rot.T @ self.view[:3, 3]

    @property
    def right(self) -> np.ndarray:
        return self.view[0, :3].copy()

    @property
    def forward(self) -> np.ndarray:
        return -self.view[2, :3]

    def to_clip(self, points: np.ndarray) -> np.ndarray:
        """(N, 3) world points → (N, 4) clip coordinates."""
        return geometry.to_homogeneous(points) @ self.view_projection.T

    def clip_to_pixels(self, clip: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """(N, 4) clip → ((N, 2) pixel xy, (N,) NDC depth). Requires w > 0."""
        w = clip[:, 3:4]
        ndc = clip[:, :3] / w
        px = (ndc[:, 0] * 0.5 + 0.5) * self.width
        py = (ndc[:, 1] * 0.5 + 0.5) * self.height
        return np.stack([px, py], axis=1), ndc[:, 2]

    def project(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Project world points into capture-buffer pixels.

        Returns
        -------
        pixels : np.ndarray
            (N, 2) continuous pixel coordinates (x, y)
        depth : np.ndarray
            (N,) NDC depth in [-1, 1] for visible points
        in_front : np.ndarray
            (N,) bool, True where the point lies in front of the camera
        """
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        clip = self.to_clip(points)
        in_front = clip[:, 3] > 1e-12
        safe = clip.copy()
        safe[~in_front, 3] = 1.0
        pixels, depth = self.clip_to_pixels(safe)
        return pixels, depth, in_front

    def pixel_radius(self, center_world: np.ndarray, radius_world: float) -> float:
        """Capture-pixel length of ``radius_world`` measured at ``center_world``."""
        if radius_world <= 0.0:
            return 0.0
        center = np.asarray(center_world, dtype=np.float64)
        pts = np.stack([center, center + self.right * radius_world])
        pixels, _, in_front = self.project(pts)
        if not np.all(in_front):
            return 0.0
        return float(np.linalg.norm(pixels[1] - pixels[0]))

    def __repr__(self) -> str:
        pos = np.round(self.position, 4).tolist()
        return f"CaptureCamera({self.width}x{self.height}, position={pos})"


@dataclass(frozen=True)
class CaptureView:
    """Camera placed for one paint event plus the brush center it looks at."""
    camera: CaptureCamera
    center_world: np.ndarray


def fov_for_radius(radius_world: float, distance: float, coverage_fraction: float = 1.0) -> float:
    """Full vertical FOV (degrees) so ``radius_world`` at ``distance`` spans
    ``coverage_fraction`` of the half-buffer: half_fov = atan(r / (c·d))."""
    if distance <= 0.0:
        raise ValueError(f"distance must be positive, got {distance}")
    radius = max(radius_world, 1e-9)
    half_fov = math.atan(radius / (coverage_fraction * distance))
    return math.degrees(2.0 * half_fov)


class CapturePoseStrategy(abc.ABC):
    """Derives the capture camera for one paint event from the brush pose."""

    name = "abstract"

    @abc.abstractmethod
    def resolve(
        self,
        pose: Pose,
        radius_world: float,
        surface: Surface,
        resolution: Tuple[int, int],
    ) -> Optional[CaptureView]:
        """Place the camera; None when the pose does not target the surface."""


class FixedViewpointStrategy(CapturePoseStrategy):
    """Single external camera shared across the whole surface."""

    name = "fixed_viewpoint"

    def __init__(self, position: Sequence[float], target: Sequence[float],
                 fov_deg: float = 60.0, near: float = 0.01, far: float = 1000.0,
                 up: Sequence[float] = (0.0, 1.0, 0.0)):
        self.position = np.asarray(position, dtype=np.float64)
        self.target = np.asarray(target, dtype=np.float64)
        self.fov_deg = fov_deg
        self.near = near
        self.far = far
        self.up = np.asarray(up, dtype=np.float64)
        self._cached: Optional[CaptureCamera] = None

    def camera_for(self, resolution: Tuple[int, int]) -> CaptureCamera:
        width, height = resolution
        cam = self._cached
        if cam is None or (cam.width, cam.height) != (width, height):
            view = geometry.look_at(self.position, self.target - self.position, self.up)
            proj = geometry.perspective(self.fov_deg, width / height, self.near, self.far)
            cam = CaptureCamera(view, proj, width, height)
            self._cached = cam
        return cam

    def resolve(self, pose, radius_world, surface, resolution):
        return CaptureView(self.camera_for(resolution), np.asarray(pose.position, dtype=np.float64))


class BrushOffsetStrategy(CapturePoseStrategy):
    """Camera behind the brush tip along its forward axis."""

    name = "brush_offset"

    def __init__(self, distance: float = 0.05, coverage_fraction: float = 1.0,
                 rotation_offset_deg: Sequence[float] = (0.0, 0.0, 0.0),
                 near: float = 0.01, far: float = 1000.0):
        if distance <= 0.0:
            raise ValueError(f"distance must be positive, got {distance}")
        self.distance = distance
        self.coverage_fraction = coverage_fraction
        self.rotation = geometry.euler_matrix(tuple(rotation_offset_deg))
        self.near = near
        self.far = far

    def direction(self, pose: Pose) -> np.ndarray:
        return geometry.normalize(self.rotation @ pose.forward)

    def resolve(self, pose, radius_world, surface, resolution):
        width, height = resolution
        direction = self.direction(pose)
        eye = pose.position - direction * self.distance
        # near must stay in front of the brush tip
        near = min(self.near, 0.5 * self.distance)
        fov = fov_for_radius(radius_world, self.distance, self.coverage_fraction)
        view = geometry.look_at(eye, direction, pose.up)
        proj = geometry.perspective(fov, width / height, near, max(self.far, near * 2.0))
        return CaptureView(CaptureCamera(view, proj, width, height), pose.position.copy())


class PointerRayStrategy(CapturePoseStrategy):
    """Cast the pointer ray; look back at the hit point along its normal."""

    name = "pointer_ray"

    def __init__(self, distance: float = 0.05, coverage_fraction: float = 1.0,
                 near: float = 0.01, far: float = 1000.0, max_ray_length: float = np.inf):
        if distance <= 0.0:
            raise ValueError(f"distance must be positive, got {distance}")
        self.distance = distance
        self.coverage_fraction = coverage_fraction
        self.near = near
        self.far = far
        self.max_ray_length = max_ray_length

    def raycast(self, pose: Pose, surface: Surface) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Closest hit (point, normal facing the ray origin) or None."""
        t, tri, _ = geometry.ray_triangles_intersect(
            pose.position[np.newaxis], pose.forward[np.newaxis],
            surface.mesh.triangle_vertices, max_distance=self.max_ray_length,
        )
        if tri[0] < 0:
            return None
        point = pose.position + pose.forward * t[0]
        normal = surface.mesh.face_normals()[tri[0]]
        if np.dot(normal, pose.forward) > 0.0:
            normal = -normal
        return point, normal

    def resolve(self, pose, radius_world, surface, resolution):
        hit = self.raycast(pose, surface)
        if hit is None:
            logger.debug("Pointer ray missed the surface")
            return None
        point, normal = hit
        width, height = resolution
        eye = point + normal * self.distance
        near = min(self.near, 0.5 * self.distance)
        fov = fov_for_radius(radius_world, self.distance, self.coverage_fraction)
        view = geometry.look_at(eye, -normal, pose.up)
        proj = geometry.perspective(fov, width / height, near, max(self.far, near * 2.0))
        return CaptureView(CaptureCamera(view, proj, width, height), point)


def strategy_from_config(capture_cfg) -> CapturePoseStrategy:
    """Build a strategy from a validated ``CaptureConfig``."""
    kind = capture_cfg.strategy
    if kind == "brush_offset":
        return BrushOffsetStrategy(
            distance=capture_cfg.distance,
            coverage_fraction=capture_cfg.coverage_fraction,
            rotation_offset_deg=capture_cfg.rotation_offset_deg,
            near=capture_cfg.near,
            far=capture_cfg.far,
        )
    if kind == "fixed_viewpoint":
        return FixedViewpointStrategy(
            position=capture_cfg.fixed_position,
            target=capture_cfg.fixed_target,
            fov_deg=capture_cfg.fixed_fov_deg,
            near=capture_cfg.near,
            far=capture_cfg.far,
        )
    if kind == "pointer_ray":
        return PointerRayStrategy(
            distance=capture_cfg.distance,
            coverage_fraction=capture_cfg.coverage_fraction,
            near=capture_cfg.near,
            far=capture_cfg.far,
        )
    raise ValueError(f"Unknown capture strategy: {kind}")
