"""Projection painter orchestrator.

Drives one paint event per input sample through a fixed state machine:

    IDLE → CAMERA_POSITIONED → RENDERED → COMPOSITED → IDLE

    1. Drain the parameter queue into one brush snapshot
    2. Place the capture camera via the CapturePoseStrategy
    3. Render surface UVs into the capture buffer and wait on the readback
       barrier (bounded by render.readback_timeout_s)
    4. Resample + footprint + composite into the persistent texture
    5. Close the capture buffer's read window

Outcomes:
    IDLE       trigger released (≤ 0)
    UNCHANGED  same pose, trigger still held, no parameter change
    MISSED     strategy found no surface under the brush, or the render covered nothing
    PAINTED    texture updated
    ABORTED    render failed or timed out; texture untouched

Setup problems (no surface, no texture, bad config, unknown strategy) raise
ConfigurationError and leave the painter disabled. Events never overlap: a
re-entrant call raises PainterStateError.
"""

import enum
import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from src.utils import validators
from src.utils.logging_config import pop_context, push_context
from src.utils.profiler import StageTimings

from .camera import CaptureCamera, CapturePoseStrategy, Pose, strategy_from_config
from .capture import CaptureBuffer, QualityTier
from .compositor import CompositeStats, TexelCompositor, compositor_from_config
from .errors import ConfigurationError, PainterStateError, ReadbackError
from .parameters import Brush, ParameterQueue, brushes_equal
from .renderer import SurfaceIndexMapRenderer
from .resampler import GaussianResampler
from .surface import Surface

logger = logging.getLogger(__name__)


class PainterState(enum.Enum):
    IDLE = "idle"
    CAMERA_POSITIONED = "camera_positioned"
    RENDERED = "rendered"
    COMPOSITED = "composited"


class PaintOutcome(enum.Enum):
    IDLE = "idle"
    UNCHANGED = "unchanged"
    MISSED = "missed"
    PAINTED = "painted"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PaintEvent:
    """Everything one composite pass needs; discarded when the event ends."""
    event_id: int
    brush: Brush
    camera: CaptureCamera
    center_px: Tuple[float, float]
    radius_px: float


@dataclass(frozen=True)
class PaintResult:
    """What happened to one input sample."""
    outcome: PaintOutcome
    event_id: Optional[int] = None
    stats: Optional[CompositeStats] = None
    center_px: Optional[Tuple[float, float]] = None
    radius_px: Optional[float] = None
    covered_pixels: int = 0
    error: Optional[Exception] = None

    @property
    def painted(self) -> bool:
        return self.outcome is PaintOutcome.PAINTED


class ProjectionPainter:
    """Texture-space projection painter.

    Examples
    --------
    >>> painter = ProjectionPainter()
    >>> painter.initialize({"quality": "low"}, surface)
    >>> painter.parameters.publish(SetBrushColor("#00ff00"))
    >>> result = painter.on_input_sample(Pose.create([0.5, 0.5, 0.1], [0, 0, -1]), 1.0)
    >>> painter.shutdown()
    """

    def __init__(self):
        self.parameters = ParameterQueue()
        self.timings = StageTimings()
        self._lock = threading.Lock()
        self._state = PainterState.IDLE
        self._initialized = False
        self._disabled_reason: Optional[str] = None

        self.config: Optional[validators.PainterConfigV1] = None
        self.surface: Optional[Surface] = None
        self.buffer: Optional[CaptureBuffer] = None
        self.renderer: Optional[SurfaceIndexMapRenderer] = None
        self.resampler: Optional[GaussianResampler] = None
        self.compositor: Optional[TexelCompositor] = None
        self.strategy: Optional[CapturePoseStrategy] = None
        self.brush: Optional[Brush] = None

        self._event_counter = 0
        self._last_pose: Optional[Pose] = None
        self._last_brush: Optional[Brush] = None
        self._trigger_held = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> PainterState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._initialized and self._disabled_reason is None

    @property
    def event_count(self) -> int:
        return self._event_counter

    def initialize(
        self,
        config: Union[validators.PainterConfigV1, Dict[str, Any], None],
        surface: Optional[Surface],
        strategy: Optional[CapturePoseStrategy] = None,
        renderer: Optional[SurfaceIndexMapRenderer] = None,
    ) -> None:
        """Validate settings and allocate the capture pipeline.

        Parameters
        ----------
        config : PainterConfigV1 or dict or None
            Painter settings; dicts are validated, None uses defaults
        surface : Surface
            Target mesh + texture
        strategy : CapturePoseStrategy, optional
            Overrides the strategy named in the config
        renderer : SurfaceIndexMapRenderer, optional
            Overrides the renderer built from the config

        Raises
        ------
        ConfigurationError
            On any setup problem; the painter stays disabled
        PainterStateError
            If called while an event is in flight
        """
        if not self._lock.acquire(blocking=False):
            raise PainterStateError("Cannot initialize while a paint event is in flight")
        try:
            self._initialized = False
            try:
                self._setup(config, surface, strategy, renderer)
            except ConfigurationError as e:
                self._disabled_reason = str(e)
                logger.error(f"Painter disabled: {e}")
                raise
            self._disabled_reason = None
            self._initialized = True
        finally:
            self._lock.release()

        logger.info(
            f"Painter initialized: surface={self.surface.name} "
            f"texture={self.surface.width}x{self.surface.height} "
            f"capture={self.buffer.width}x{self.buffer.height} "
            f"strategy={self.strategy.name} compositor={self.compositor.name}"
        )

    def _setup(self, config, surface, strategy, renderer) -> None:
        if isinstance(config, validators.PainterConfigV1):
            cfg = config
        else:
            try:
                cfg = validators.painter_config_from_dict(config)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e

        if surface is None:
            raise ConfigurationError("No target surface set")
        if surface.texture is None:
            raise ConfigurationError(f"Surface '{surface.name}' has no texture")
        if len(surface.mesh.triangles) == 0:
            raise ConfigurationError(f"Surface '{surface.name}' has an empty mesh")

        try:
            if strategy is None:
                strategy = strategy_from_config(cfg.capture)
            brush = Brush.from_config(cfg.brush)
            resampler = GaussianResampler(cfg.resampler.radius)
            compositor = compositor_from_config(cfg.compositor, resampler)
        except (ValueError, FileNotFoundError, OSError) as e:
            raise ConfigurationError(f"Invalid painter configuration: {e}") from e

        if self.renderer is not None and self.renderer is not renderer:
            self.renderer.shutdown()
        if renderer is None:
            renderer = SurfaceIndexMapRenderer(
                cull_backfaces=cfg.render.cull_backfaces,
                async_readback=cfg.render.async_readback,
            )

        self.config = cfg
        self.surface = surface
        self.strategy = strategy
        self.brush = brush
        self.resampler = resampler
        self.compositor = compositor
        self.renderer = renderer
        self.buffer = CaptureBuffer.for_quality(QualityTier.from_name(cfg.quality))
        self._last_pose = None
        self._trigger_held = False

    def set_quality(self, tier: Union[QualityTier, str]) -> None:
        """Recreate the capture buffer at a new resolution (only between events)."""
        if not self.enabled:
            raise PainterStateError("Painter is not initialized")
        if isinstance(tier, str):
            tier = QualityTier.from_name(tier)
        if not self._lock.acquire(blocking=False):
            raise PainterStateError("Cannot change quality while a paint event is in flight")
        try:
            self.buffer = CaptureBuffer.for_quality(tier)
            self._last_pose = None
        finally:
            self._lock.release()
        logger.info(f"Capture quality set to {tier.name.lower()} ({tier.value}x{tier.value})")

    def shutdown(self) -> None:
        """Release the capture buffer, render worker and texture handle."""
        with self._lock:
            if self.renderer is not None:
                self.renderer.shutdown()
            if self.buffer is not None:
                self.buffer.invalidate()
            if self.surface is not None:
                self.surface.release()
            self.buffer = None
            self.renderer = None
            self.surface = None
            self._initialized = False
            self._state = PainterState.IDLE
        logger.info(f"Painter shut down after {self._event_counter} events ({self.timings})")

    # ------------------------------------------------------------------
    # Paint events
    # ------------------------------------------------------------------

    def on_input_sample(self, pose: Pose, trigger: float) -> PaintResult:
        """Process one input sample (brush pose + trigger value in [0, 1]).

        Raises
        ------
        ConfigurationError
            If setup failed or the surface texture has been released
        PainterStateError
            If not initialized, or called while another event is in flight
        """
        if self._disabled_reason is not None:
            raise ConfigurationError(f"Painter disabled: {self._disabled_reason}")
        if not self._initialized:
            raise PainterStateError("Painter is not initialized")
        if not self._lock.acquire(blocking=False):
            raise PainterStateError("Re-entrant paint event: previous event still in flight")

        try:
            return self._run_event(pose, trigger)
        finally:
            self._state = PainterState.IDLE
            self._lock.release()

    def _run_event(self, pose: Pose, trigger: float) -> PaintResult:
        brush, _ = self.parameters.drain(self.brush)
        self.brush = brush

        if trigger <= 0.0:
            self._trigger_held = False
            return PaintResult(PaintOutcome.IDLE)

        if (self._trigger_held and pose.is_close(self._last_pose)
                and self._last_brush is not None and brushes_equal(brush, self._last_brush)):
            return PaintResult(PaintOutcome.UNCHANGED)

        surface = self.surface
        if surface is None or surface.texture is None:
            raise ConfigurationError("Surface texture is not available")

        self._trigger_held = True
        self._last_pose = pose
        self._last_brush = brush
        self._event_counter += 1
        event_id = self._event_counter

        push_context(paint_event=event_id)
        try:
            return self._paint(event_id, pose, brush, surface)
        finally:
            pop_context(["paint_event"])

    def _paint(self, event_id: int, pose: Pose, brush: Brush, surface: Surface) -> PaintResult:
        buffer = self.buffer
        resolution = (buffer.width, buffer.height)

        with self.timings.measure("camera"):
            view = self.strategy.resolve(pose, brush.radius_world, surface, resolution)
        if view is None:
            logger.debug("Brush does not target the surface")
            return PaintResult(PaintOutcome.MISSED, event_id=event_id)

        camera = view.camera
        pixels, _, in_front = camera.project(view.center_world[None])
        if not in_front[0]:
            logger.debug("Brush center is behind the capture camera")
            return PaintResult(PaintOutcome.MISSED, event_id=event_id)
        center_px = (float(pixels[0, 0]), float(pixels[0, 1]))
        if brush.radius_px is not None:
            radius_px = float(brush.radius_px)
        else:
            radius_px = camera.pixel_radius(view.center_world, brush.radius_world)
        self._state = PainterState.CAMERA_POSITIONED

        event = PaintEvent(event_id, brush, camera, center_px, radius_px)

        try:
            with self.timings.measure("render"):
                covered = self._render_and_wait(surface, camera, buffer)
        except ReadbackError as e:
            buffer.invalidate()
            logger.error(f"Paint event aborted: {e}")
            return PaintResult(PaintOutcome.ABORTED, event_id=event_id, center_px=center_px,
                               radius_px=radius_px, error=e)
        self._state = PainterState.RENDERED

        if covered == 0:
            buffer.invalidate()
            logger.debug("Capture render covered no pixels")
            return PaintResult(PaintOutcome.MISSED, event_id=event_id, center_px=center_px,
                               radius_px=radius_px, covered_pixels=0)

        try:
            with self.timings.measure("composite"):
                stats = self.compositor.composite(event, buffer, surface.texture)
        finally:
            buffer.invalidate()
        self._state = PainterState.COMPOSITED

        logger.debug(
            f"Painted center=({center_px[0]:.1f}, {center_px[1]:.1f}) "
            f"radius={radius_px:.2f}px covered={covered} "
            f"samples={stats.samples} texels={stats.texels_written}"
        )
        return PaintResult(PaintOutcome.PAINTED, event_id=event_id, stats=stats,
                           center_px=center_px, radius_px=radius_px, covered_pixels=covered)

    def _render_and_wait(self, surface: Surface, camera: CaptureCamera, buffer: CaptureBuffer) -> int:
        timeout = self.config.render.readback_timeout_s
        try:
            future = self.renderer.submit(surface, camera, buffer)
            covered = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise ReadbackError(f"UV render did not complete within {timeout:.3f} s") from e
        except Exception as e:
            raise ReadbackError(f"UV render failed: {e}") from e
        if not buffer.readable:
            raise ReadbackError("UV render finished but the capture buffer was not published")
        return covered

    def __repr__(self) -> str:
        return (
            f"ProjectionPainter(state={self._state.value}, enabled={self.enabled}, "
            f"events={self._event_counter})"
        )
