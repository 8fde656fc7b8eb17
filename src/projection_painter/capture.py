"""Capture buffer: per-pixel surface texture coordinates seen by the capture camera.

The buffer is an (H, W, 2) FP32 array of (u, v). Pixels that do not cover the
surface hold SENTINEL (-1.0), which is outside [0, 1] so it can never be
confused with the valid coordinate (0, 0).

Write/read window:
    begin_write() → renderer fills data → publish(generation) → compositor reads
    → invalidate(). Reading uv outside that window raises
    CaptureBufferStateError, so stale coverage from an earlier event can never
    be composited. Each begin_write()/invalidate() bumps a generation counter;
    a late publish() from an abandoned render carries an old generation and is
    ignored.
"""

import enum
import threading

import numpy as np

from .errors import CaptureBufferStateError

SENTINEL = -1.0


class QualityTier(enum.IntEnum):
    """Capture buffer resolution tiers (square, power of two)."""
    LOW = 256
    MEDIUM = 512
    HIGH = 1024
    ULTRA = 2048

    @classmethod
    def from_name(cls, name: str) -> "QualityTier":
        try:
            return cls[name.strip().upper()]
        except KeyError as e:
            raise ValueError(
                f"Unknown quality tier '{name}', expected one of {[t.name.lower() for t in cls]}"
            ) from e


class CaptureBuffer:
    """Two-channel FP32 texture-coordinate buffer with coverage sentinel.

    Parameters
    ----------
    width, height : int
        Pixel dimensions; fixed for the lifetime of the buffer
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Capture buffer size must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.data = np.full((self.height, self.width, 2), SENTINEL, dtype=np.float32)
        self._lock = threading.Lock()
        self._generation = 0
        self._readable = False

    @classmethod
    def for_quality(cls, tier: QualityTier) -> "CaptureBuffer":
        return cls(int(tier), int(tier))

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def readable(self) -> bool:
        return self._readable

    @property
    def generation(self) -> int:
        return self._generation

    def begin_write(self) -> int:
        """Clear to SENTINEL and open a new write; returns its generation."""
        with self._lock:
            self._generation += 1
            self._readable = False
            generation = self._generation
        self.data.fill(SENTINEL)
        return generation

    def publish(self, generation: int) -> bool:
        """Mark the buffer readable if ``generation`` is still current."""
        with self._lock:
            if generation != self._generation:
                return False
            self._readable = True
            return True

    def invalidate(self) -> None:
        """Close the read window (end of event or aborted event)."""
        with self._lock:
            self._generation += 1
            self._readable = False

    @property
    def uv(self) -> np.ndarray:
        """(H, W, 2) texture coordinates; only inside the read window."""
        if not self._readable:
            raise CaptureBufferStateError(
                "Capture buffer read outside its render/composite window"
            )
        return self.data

    def coverage(self) -> np.ndarray:
        """(H, W) bool mask of pixels covering the surface."""
        return self.uv[:, :, 0] >= 0.0

    def __repr__(self) -> str:
        return f"CaptureBuffer({self.width}x{self.height}, readable={self._readable})"
