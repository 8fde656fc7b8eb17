"""Exception taxonomy for the projection painter.

Configuration problems fail fast at setup; a failed render barrier aborts only
the current paint event. Degenerate inputs (zero radius, zero resample weight)
are not errors: they produce zero-strength no-op events.
"""


class PainterError(Exception):
    """Base exception for all painter errors."""

    pass


class ConfigurationError(PainterError):
    """Missing surface, texture, capture strategy or invalid settings.

    Raised at setup; the painter disables itself and never renders.
    """

    pass


class PainterStateError(PainterError):
    """API used in the wrong lifecycle state (not initialized, re-entrant event,
    reconfiguration while an event is in flight)."""

    pass


class CaptureBufferStateError(PainterError):
    """Capture buffer read outside its render → composite window."""

    pass


class ReadbackError(PainterError):
    """UV render did not complete (timed out or raised) before compositing."""

    pass
