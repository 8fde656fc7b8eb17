"""Texture-space projection painting engine.

Paints brush color into a surface's persistent texture by rendering the
surface's own texture coordinates from a brush-aligned camera, then
resampling that capture and blending into the texels it addresses. No
per-triangle UV unwrapping math is needed on the caller's side.

Modules:
    - surface: Mesh + persistent RGBA texture, primitive factories
    - capture: Capture buffer (per-pixel UVs) and quality tiers
    - camera: Capture camera and the three pose strategies
    - renderer: Software UV rasterizer (sync or single-worker async)
    - resampler: Coverage-aware Gaussian UV resampling
    - footprint: Smoothstep falloff and grayscale stamps
    - compositor: Sequential scan and bounded gather texel compositors
    - parameters: Brush snapshot and the UI command queue
    - painter: ProjectionPainter orchestrator (per-event state machine)
    - direct: Ray-sampling painter for a single pointed surface

Invariants:
    - Texture is RGBA FP32 in [0,1], row = floor(v·H), col = floor(u·W)
    - Texel reads/writes are clamped to the texture
    - Capture buffer is readable only between render and composite of one event
    - Zero-strength events leave the texture bit-identical

Used by:
    - scripts/paint_demo.py: scripted strokes on a quad or sphere
"""

from .camera import (
    BrushOffsetStrategy,
    CaptureCamera,
    CapturePoseStrategy,
    CaptureView,
    FixedViewpointStrategy,
    PointerRayStrategy,
    Pose,
    strategy_from_config,
)
from .capture import SENTINEL, CaptureBuffer, QualityTier
from .compositor import (
    BoundedGatherCompositor,
    CompositeStats,
    SequentialScanCompositor,
    lerp_blend,
    texel_indices,
)
from .direct import RaySamplingPainter
from .errors import (
    CaptureBufferStateError,
    ConfigurationError,
    PainterError,
    PainterStateError,
    ReadbackError,
)
from .footprint import BrushFootprint, Stamp, radial_strength, smoothstep
from .painter import PaintEvent, PaintOutcome, PainterState, PaintResult, ProjectionPainter
from .parameters import (
    Brush,
    ParameterQueue,
    SetBrushColor,
    SetBrushSize,
    SetBrushStamp,
    SetPixelRadius,
)
from .renderer import SurfaceIndexMapRenderer
from .resampler import GaussianResampler
from .surface import Mesh, Surface, make_unit_quad, make_uv_sphere

__all__ = [
    'BoundedGatherCompositor',
    'Brush',
    'BrushFootprint',
    'BrushOffsetStrategy',
    'CaptureBuffer',
    'CaptureBufferStateError',
    'CaptureCamera',
    'CapturePoseStrategy',
    'CaptureView',
    'CompositeStats',
    'ConfigurationError',
    'FixedViewpointStrategy',
    'GaussianResampler',
    'Mesh',
    'PaintEvent',
    'PaintOutcome',
    'PaintResult',
    'PainterError',
    'PainterState',
    'PainterStateError',
    'ParameterQueue',
    'PointerRayStrategy',
    'Pose',
    'ProjectionPainter',
    'QualityTier',
    'RaySamplingPainter',
    'ReadbackError',
    'SENTINEL',
    'SequentialScanCompositor',
    'SetBrushColor',
    'SetBrushSize',
    'SetBrushStamp',
    'SetPixelRadius',
    'Stamp',
    'Surface',
    'SurfaceIndexMapRenderer',
    'lerp_blend',
    'make_unit_quad',
    'make_uv_sphere',
    'radial_strength',
    'smoothstep',
    'strategy_from_config',
    'texel_indices',
]
