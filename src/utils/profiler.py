"""Lightweight profiling: wall-clock timers for paint-event stages.

Provides:
    - timer(): Context manager for wall-clock timing with optional sink
    - logger_sink(): Sink that reports timings to a logger at DEBUG
    - StageTimings: Per-stage accumulator kept by the painter across events

Used to measure:
    - Capture camera placement
    - UV render + readback barrier
    - Resample/composite pass

No heavy dependencies (no cProfile overhead during interactive painting).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds). If None, prints to stdout.

    Examples
    --------
    >>> with timer("render", sink=logger_sink(logger)):
    ...     renderer.render(surface, camera, buffer)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            print(f"{name}: {elapsed:.3f} s")


def logger_sink(logger: logging.Logger, level: int = logging.DEBUG) -> Callable[[str, float], None]:
    """Build a timer sink that logs ``<name>: <ms> ms``."""
    def _sink(name: str, elapsed: float) -> None:
        logger.log(level, f"{name}: {elapsed * 1000.0:.2f} ms")
    return _sink


class StageTimings:
    """Accumulate wall-clock time per named stage.

    Examples
    --------
    >>> timings = StageTimings()
    >>> with timings.measure("composite"):
    ...     compositor.composite(event, buffer, texture)
    >>> timings.mean("composite")
    """

    def __init__(self):
        self.totals: Dict[str, float] = {}
        self.counts: Dict[str, int] = {}

    @contextmanager
    def measure(self, stage: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.totals[stage] = self.totals.get(stage, 0.0) + elapsed
            self.counts[stage] = self.counts.get(stage, 0) + 1

    def mean(self, stage: str) -> float:
        """Mean seconds per measurement, 0.0 for an unseen stage."""
        count = self.counts.get(stage, 0)
        return self.totals[stage] / count if count else 0.0

    def reset(self) -> None:
        self.totals.clear()
        self.counts.clear()

    def __repr__(self) -> str:
        stages = ', '.join(f"{k}={self.mean(k) * 1000.0:.2f}ms" for k in sorted(self.totals))
        return f"StageTimings({stages})"
