"""YAML schema validation and config loading.

Provides centralized validation for all configuration files using pydantic:
    - Painter schema (painter.v1): quality tier, brush defaults, capture camera
      placement, resampler, compositor and render settings
    - Generation schema (generation.v1): remote txt2img service settings

All modules must use these validators to load configs for fail-fast error
detection with actionable messages (offending keys, expected ranges).

Units:
    - Geometry: world units (meters for tracked controllers)
    - Brush pixel radius: capture-buffer pixels
    - Color: RGBA [0.0, 1.0]

Usage:
    from src.utils import validators

    cfg = validators.load_painter_config("configs/painter_v1.yaml")
    gen_cfg = validators.load_generation_config("configs/generation_v1.yaml")
"""

import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import color as color_utils

QUALITY_NAMES = ("low", "medium", "high", "ultra")
CAPTURE_STRATEGIES = ("brush_offset", "fixed_viewpoint", "pointer_ray")
COMPOSITOR_STRATEGIES = ("sequential", "bounded")


# ============================================================================
# PAINTER SCHEMA V1
# ============================================================================

class BrushConfig(BaseModel):
    """Initial brush state (live updates go through the parameter queue)."""
    color: Union[str, List[float]] = Field(
        default_factory=lambda: [1.0, 0.0, 0.0, 1.0],
        description="RGBA floats in [0,1] or '#RRGGBB[AA]'"
    )
    radius_world: float = Field(0.01, description="Brush radius in world units (≤ 0 paints nothing)")
    radius_px: Optional[float] = Field(
        None, description="Override: brush radius in capture-buffer pixels"
    )
    stamp_path: Optional[str] = Field(None, description="Optional grayscale stamp image")

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: Union[str, List[float]]) -> List[float]:
        return [float(c) for c in color_utils.as_rgba(v)]

    @field_validator('radius_world', 'radius_px')
    @classmethod
    def validate_radius(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        if math.isnan(v):
            raise ValueError("radius must be a number, got NaN")
        return max(v, 0.0)


class CaptureConfig(BaseModel):
    """Capture camera placement (one of three interchangeable strategies)."""
    strategy: str = Field("brush_offset", description=f"One of {CAPTURE_STRATEGIES}")
    distance: float = Field(0.05, gt=0.0, description="Camera offset behind the brush tip")
    coverage_fraction: float = Field(
        1.0, gt=0.0, le=1.0,
        description="Fraction of the half-buffer the brush radius should span"
    )
    rotation_offset_deg: Tuple[float, float, float] = Field(
        (0.0, 0.0, 0.0), description="Euler offset applied to the brush forward axis"
    )
    near: float = Field(0.01, gt=0.0)
    far: float = Field(1000.0, gt=0.0)
    fixed_position: Optional[Tuple[float, float, float]] = None
    fixed_target: Optional[Tuple[float, float, float]] = None
    fixed_fov_deg: float = Field(60.0, gt=0.0, lt=180.0)

    @field_validator('strategy')
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CAPTURE_STRATEGIES:
            raise ValueError(f"Capture strategy must be one of {CAPTURE_STRATEGIES}, got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_camera(self) -> 'CaptureConfig':
        if self.near >= self.far:
            raise ValueError(f"near ({self.near}) must be < far ({self.far})")
        if self.strategy == "fixed_viewpoint":
            if self.fixed_position is None or self.fixed_target is None:
                raise ValueError("fixed_viewpoint strategy requires fixed_position and fixed_target")
            if tuple(self.fixed_position) == tuple(self.fixed_target):
                raise ValueError("fixed_position and fixed_target must differ")
        return self


class ResamplerConfig(BaseModel):
    """Gaussian UV resampler."""
    radius: int = Field(2, ge=0, le=16, description="Neighborhood radius k; (2k+1)² taps")


class CompositorConfig(BaseModel):
    """Texel compositor strategy."""
    strategy: str = Field("bounded", description=f"One of {COMPOSITOR_STRATEGIES}")
    work_group_size: int = Field(8, ge=1, le=256, description="Bounded dispatch granularity (px)")
    splat_radius: int = Field(0, ge=0, le=16, description="Texel spread around each sample")
    device: str = Field("cpu", description="Torch device for the bounded compositor")

    @field_validator('strategy')
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in COMPOSITOR_STRATEGIES:
            raise ValueError(f"Compositor strategy must be one of {COMPOSITOR_STRATEGIES}, got '{v}'")
        return v


class RenderConfig(BaseModel):
    """UV render pass and readback barrier."""
    cull_backfaces: bool = Field(False)
    async_readback: bool = Field(False, description="Render on a worker thread")
    readback_timeout_s: float = Field(2.0, gt=0.0, description="Barrier timeout per event")


class PainterConfigV1(BaseModel):
    """Painter config schema v1 (painter.v1)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("painter.v1", alias="schema", description="Schema version")
    quality: str = Field("medium", description=f"Capture resolution tier, one of {QUALITY_NAMES}")
    brush: BrushConfig = Field(default_factory=BrushConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    resampler: ResamplerConfig = Field(default_factory=ResamplerConfig)
    compositor: CompositorConfig = Field(default_factory=CompositorConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "painter.v1":
            raise ValueError(f"Expected schema 'painter.v1', got '{v}'")
        return v

    @field_validator('quality')
    @classmethod
    def validate_quality(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in QUALITY_NAMES:
            raise ValueError(f"Quality must be one of {QUALITY_NAMES}, got '{v}'")
        return v


# ============================================================================
# GENERATION SCHEMA V1
# ============================================================================

class GenerationDefaults(BaseModel):
    """Default txt2img request parameters."""
    prompt: str = Field("a weathered wooden crate texture", min_length=1)
    steps: int = Field(25, ge=1, le=150)
    width: int = Field(512, ge=64, le=2048)
    height: int = Field(512, ge=64, le=2048)
    model: Optional[str] = None


class GenerationConfigV1(BaseModel):
    """Remote generation service config (generation.v1)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("generation.v1", alias="schema")
    api_url: str = Field("http://127.0.0.1:7860")
    timeout_s: float = Field(300.0, gt=0.0)
    defaults: GenerationDefaults = Field(default_factory=GenerationDefaults)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "generation.v1":
            raise ValueError(f"Expected schema 'generation.v1', got '{v}'")
        return v

    @field_validator('api_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_url must start with http:// or https://, got '{v}'")
        return v.rstrip('/')


# ============================================================================
# PUBLIC API
# ============================================================================

def painter_config_from_dict(data: Optional[Dict[str, Any]] = None) -> PainterConfigV1:
    """Validate an in-memory painter config (missing sections use defaults).

    Raises
    ------
    ValueError
        If validation fails
    """
    try:
        return PainterConfigV1(**(data or {}))
    except Exception as e:
        raise ValueError(f"Painter config validation failed: {e}") from e


def load_painter_config(path: Union[str, Path]) -> PainterConfigV1:
    """Load and validate a painter config from YAML.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (message includes the path)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Painter config not found: {path}")

    data = fs.load_yaml(path)
    try:
        return PainterConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Painter config validation failed at {path}: {e}") from e


def load_generation_config(path: Union[str, Path]) -> GenerationConfigV1:
    """Load and validate a generation service config from YAML.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (message includes the path)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Generation config not found: {path}")

    data = fs.load_yaml(path)
    try:
        return GenerationConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Generation config validation failed at {path}: {e}") from e
