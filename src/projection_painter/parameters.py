"""Brush state and the parameter command queue.

UI widgets (menus, sliders) publish brush changes as commands from any
thread. The painter drains the queue once at the start of each paint event
and folds every pending command into one immutable Brush snapshot, so an
event never sees a half-applied update.

Commands (closed set):
    - SetBrushSize: world-space radius
    - SetBrushColor: RGBA color (hex or floats)
    - SetBrushStamp: grayscale stamp or None
    - SetPixelRadius: capture-pixel radius override or None
"""

import dataclasses
import logging
import queue
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

import numpy as np

from src.utils import color as color_utils

from .footprint import Stamp

logger = logging.getLogger(__name__)


def clamp_radius(value: float) -> float:
    """Radii ≤ 0 collapse to 0 (a zero-strength brush); NaN is rejected."""
    value = float(value)
    if np.isnan(value):
        raise ValueError("Brush radius must be a number, got NaN")
    return max(value, 0.0)


@dataclass(frozen=True)
class Brush:
    """Immutable brush snapshot used for one paint event.

    Attributes
    ----------
    color : np.ndarray
        RGBA FP32, shape (4,)
    radius_world : float
        Brush radius in world units
    radius_px : float, optional
        Capture-pixel radius override (skips the projected radius)
    stamp : Stamp, optional
        Grayscale tip modulating the falloff
    """
    color: np.ndarray
    radius_world: float = 0.01
    radius_px: Optional[float] = None
    stamp: Optional[Stamp] = None

    @classmethod
    def create(cls, color: color_utils.ColorLike = (1.0, 0.0, 0.0, 1.0),
               radius_world: float = 0.01, radius_px: Optional[float] = None,
               stamp: Optional[Stamp] = None) -> "Brush":
        return cls(color_utils.as_rgba(color), float(radius_world), radius_px, stamp)

    @classmethod
    def from_config(cls, brush_cfg) -> "Brush":
        """Build from a validated ``BrushConfig`` (loads the stamp image if set)."""
        stamp = Stamp.from_file(brush_cfg.stamp_path) if brush_cfg.stamp_path else None
        return cls.create(brush_cfg.color, brush_cfg.radius_world, brush_cfg.radius_px, stamp)


@dataclass(frozen=True)
class SetBrushSize:
    kind: ClassVar[str] = "brush_size"
    radius_world: float

    def __post_init__(self):
        object.__setattr__(self, 'radius_world', clamp_radius(self.radius_world))

    def apply(self, brush: Brush) -> Brush:
        return dataclasses.replace(brush, radius_world=float(self.radius_world))


@dataclass(frozen=True)
class SetBrushColor:
    kind: ClassVar[str] = "brush_color"
    color: color_utils.ColorLike

    def __post_init__(self):
        object.__setattr__(self, 'color', color_utils.as_rgba(self.color))

    def apply(self, brush: Brush) -> Brush:
        return dataclasses.replace(brush, color=self.color)


@dataclass(frozen=True)
class SetBrushStamp:
    kind: ClassVar[str] = "brush_stamp"
    stamp: Optional[Stamp]

    def apply(self, brush: Brush) -> Brush:
        return dataclasses.replace(brush, stamp=self.stamp)


@dataclass(frozen=True)
class SetPixelRadius:
    kind: ClassVar[str] = "pixel_radius"
    radius_px: Optional[float]

    def __post_init__(self):
        if self.radius_px is not None:
            object.__setattr__(self, 'radius_px', clamp_radius(self.radius_px))

    def apply(self, brush: Brush) -> Brush:
        return dataclasses.replace(brush, radius_px=self.radius_px)


BrushCommand = Union[SetBrushSize, SetBrushColor, SetBrushStamp, SetPixelRadius]
_COMMAND_TYPES = (SetBrushSize, SetBrushColor, SetBrushStamp, SetPixelRadius)


class ParameterQueue:
    """Thread-safe FIFO of brush commands, drained by the painter."""

    def __init__(self):
        self._queue: "queue.SimpleQueue[BrushCommand]" = queue.SimpleQueue()

    def publish(self, command: BrushCommand) -> None:
        if not isinstance(command, _COMMAND_TYPES):
            raise TypeError(f"Unsupported brush command: {type(command).__name__}")
        self._queue.put(command)

    def drain(self, brush: Brush) -> Tuple[Brush, int]:
        """Fold all pending commands into a new snapshot (last write wins).

        Returns
        -------
        brush : Brush
            Updated snapshot (the input object if nothing was pending)
        applied : int
            Number of commands consumed
        """
        applied = 0
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                break
            brush = command.apply(brush)
            applied += 1
            logger.debug(f"Applied brush command {command.kind}")
        return brush, applied


def brushes_equal(a: Brush, b: Brush) -> bool:
    """Field-wise equality (numpy colors compared by value)."""
    return (np.array_equal(a.color, b.color) and a.radius_world == b.radius_world
            and a.radius_px == b.radius_px and a.stamp is b.stamp)
