"""Geometric operations for capture cameras and ray casting.

Provides:
    - Vector helpers: normalize, tangent frames, axis-angle and Euler rotations
    - Camera matrices: look_at (view) and perspective (projection), OpenGL
      conventions (right-handed view space looking down -Z, NDC in [-1, 1]³)
    - Vectorized Möller–Trumbore ray/triangle intersection

Used by:
    - Capture pose strategies: placing the UV capture camera behind the brush
    - Renderer: clip-space transform of mesh vertices
    - Pointer-ray strategy and the ray-sampling painter: surface hits + UVs

All coordinates are world units unless noted as pixels. Matrices are numpy
float64 (4, 4) and act on column vectors: p_clip = P @ V @ p_world.
"""

from typing import Optional, Tuple

import numpy as np

_EPS = 1e-12


def normalize(v: np.ndarray, eps: float = _EPS) -> np.ndarray:
    """Normalize vectors along the last axis.

    Raises
    ------
    ValueError
        If any vector has (near) zero length
    """
    v = np.asarray(v, dtype=np.float64)
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    if np.any(norm < eps):
        raise ValueError(f"Cannot normalize zero-length vector: {v.tolist()}")
    return v / norm


def axis_angle_matrix(axis: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotation matrix (3, 3) for ``angle_deg`` degrees about ``axis`` (Rodrigues)."""
    k = normalize(axis)
    theta = np.deg2rad(angle_deg)
    K = np.array([
        [0.0, -k[2], k[1]],
        [k[2], 0.0, -k[0]],
        [-k[1], k[0], 0.0],
    ])
    return np.eye(3) + np.sin(theta) * K + (1.0 - np.cos(theta)) * (K @ K)


def euler_matrix(angles_deg: Tuple[float, float, float]) -> np.ndarray:
    """Rotation matrix (3, 3) from Euler angles in degrees.

    Rotation is applied about Z first, then X, then Y (controller-offset
    convention used by tracked brushes).
    """
    ax, ay, az = angles_deg
    rx = axis_angle_matrix(np.array([1.0, 0.0, 0.0]), ax)
    ry = axis_angle_matrix(np.array([0.0, 1.0, 0.0]), ay)
    rz = axis_angle_matrix(np.array([0.0, 0.0, 1.0]), az)
    return ry @ rx @ rz


def tangent_frame(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Build (tangent, bitangent) perpendicular to ``normal``.

    The tangent is normal × up, falling back to normal × right when the
    normal is (anti)parallel to up.
    """
    n = normalize(normal)
    tangent = np.cross(n, np.array([0.0, 1.0, 0.0]))
    if np.linalg.norm(tangent) < 1e-3:
        tangent = np.cross(n, np.array([1.0, 0.0, 0.0]))
    tangent = normalize(tangent)
    bitangent = np.cross(n, tangent)
    return tangent, bitangent


def look_at(eye: np.ndarray, forward: np.ndarray, up: Optional[np.ndarray] = None) -> np.ndarray:
    """View matrix for a camera at ``eye`` looking along ``forward``.

    Parameters
    ----------
    eye : np.ndarray
        Camera position, shape (3,)
    forward : np.ndarray
        Viewing direction, shape (3,) (need not be unit length)
    up : np.ndarray, optional
        Up hint, default +Y; replaced by +Z when parallel to ``forward``

    Returns
    -------
    np.ndarray
        (4, 4) world → view matrix
    """
    eye = np.asarray(eye, dtype=np.float64)
    f = normalize(forward)
    up = np.array([0.0, 1.0, 0.0]) if up is None else np.asarray(up, dtype=np.float64)
    if np.linalg.norm(np.cross(f, up)) < 1e-6:
        up = np.array([0.0, 0.0, 1.0]) if abs(f[2]) < 0.9 else np.array([1.0, 0.0, 0.0])

    s = normalize(np.cross(f, up))
    u = np.cross(s, f)

    view = np.eye(4)
    view[0, :3] = s
    view[1, :3] = u
    view[2, :3] = -f
    view[0, 3] = -np.dot(s, eye)
    view[1, 3] = -np.dot(u, eye)
    view[2, 3] = np.dot(f, eye)
    return view


def perspective(fov_y_deg: float, aspect: float, near: float, far: float) -> np.ndarray:
    """OpenGL-style perspective projection matrix.

    Raises
    ------
    ValueError
        If the FOV is outside (0, 180) or the clip range is invalid
    """
    if not 0.0 < fov_y_deg < 180.0:
        raise ValueError(f"fov_y_deg must be in (0, 180), got {fov_y_deg}")
    if not 0.0 < near < far:
        raise ValueError(f"Require 0 < near < far, got near={near}, far={far}")
    if aspect <= 0.0:
        raise ValueError(f"aspect must be positive, got {aspect}")

    f = 1.0 / np.tan(np.deg2rad(fov_y_deg) / 2.0)
    proj = np.zeros((4, 4))
    proj[0, 0] = f / aspect
    proj[1, 1] = f
    proj[2, 2] = (far + near) / (near - far)
    proj[2, 3] = 2.0 * far * near / (near - far)
    proj[3, 2] = -1.0
    return proj


def to_homogeneous(points: np.ndarray) -> np.ndarray:
    """(N, 3) → (N, 4) with w = 1."""
    points = np.asarray(points, dtype=np.float64)
    return np.concatenate([points, np.ones(points.shape[:-1] + (1,))], axis=-1)


def ray_triangles_intersect(
    origins: np.ndarray,
    directions: np.ndarray,
    triangles: np.ndarray,
    max_distance: float = np.inf,
    chunk_size: int = 4096,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Closest-hit Möller–Trumbore intersection of many rays with many triangles.

    Parameters
    ----------
    origins : np.ndarray
        Ray origins, shape (R, 3)
    directions : np.ndarray
        Ray directions, shape (R, 3) (normalized internally)
    triangles : np.ndarray
        Triangle vertices, shape (M, 3, 3)
    max_distance : float
        Hits farther than this along the ray are ignored
    chunk_size : int
        Rays processed per batch (bounds the (R, M) working set)

    Returns
    -------
    t : np.ndarray
        Hit distance per ray, shape (R,), ``inf`` where missed
    tri_index : np.ndarray
        Index of the hit triangle, shape (R,), -1 where missed
    bary : np.ndarray
        Barycentric (b1, b2) of the hit w.r.t. vertices 1 and 2, shape (R, 2)

    Notes
    -----
    Two-sided: back faces are hit as well.
    """
    origins = np.atleast_2d(np.asarray(origins, dtype=np.float64))
    directions = normalize(np.atleast_2d(directions))
    triangles = np.asarray(triangles, dtype=np.float64)

    n_rays = origins.shape[0]
    t_out = np.full(n_rays, np.inf)
    idx_out = np.full(n_rays, -1, dtype=np.int64)
    bary_out = np.zeros((n_rays, 2))
    if triangles.shape[0] == 0 or n_rays == 0:
        return t_out, idx_out, bary_out

    v0 = triangles[:, 0]
    e1 = triangles[:, 1] - v0
    e2 = triangles[:, 2] - v0

    for start in range(0, n_rays, chunk_size):
        stop = min(start + chunk_size, n_rays)
        o = origins[start:stop, np.newaxis, :]
        d = directions[start:stop, np.newaxis, :]

        h = np.cross(d, e2[np.newaxis])
        a = np.einsum('rmk,mk->rm', h, e1)
        parallel = np.abs(a) < 1e-12
        inv_a = np.where(parallel, 0.0, 1.0 / np.where(parallel, 1.0, a))

        s = o - v0[np.newaxis]
        u = inv_a * np.einsum('rmk,rmk->rm', s, h)
        q = np.cross(s, e1[np.newaxis])
        v = inv_a * np.einsum('rmk,rmk->rm', np.broadcast_to(d, q.shape), q)
        t = inv_a * np.einsum('rmk,mk->rm', q, e2)

        hit = (~parallel) & (u >= 0.0) & (u <= 1.0) & (v >= 0.0) & (u + v <= 1.0)
        hit &= (t > 1e-9) & (t <= max_distance)
        t = np.where(hit, t, np.inf)

        best = np.argmin(t, axis=1)
        rows = np.arange(stop - start)
        best_t = t[rows, best]
        found = np.isfinite(best_t)

        t_out[start:stop] = best_t
        idx_out[start:stop] = np.where(found, best, -1)
        bary_out[start:stop, 0] = np.where(found, u[rows, best], 0.0)
        bary_out[start:stop, 1] = np.where(found, v[rows, best], 0.0)

    return t_out, idx_out, bary_out
