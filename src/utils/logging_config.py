"""Unified logging configuration for painter entrypoints.

Provides consistent logging across the demo CLI, the generation CLI and any
host application embedding the painter:
    - Console and file handlers with optional rotation
    - JSON output mode for ingestion
    - Contextual fields (app, surface, paint_event)
    - Warning capture (Python warnings → logging)

Public API:
    setup_logging(log_level="INFO", context={"app": "paint_demo"})
    get_logger(name)
    push_context(paint_event=42)
    pop_context(keys=["paint_event"])

Format examples:
    Human: 2026-03-02T10:11:12.345Z | DEBUG    | app=paint_demo paint_event=3 | Composited 12 texels
    JSON:  {"t":"2026-03-02T10:11:12.345Z","lvl":"DEBUG","paint_event":3,"msg":"..."}

Context uses contextvars, so fields pushed on the painting thread do not leak
into a render worker thread.
Idempotent: repeated setup_logging() calls don't duplicate handlers.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context_var = contextvars.ContextVar('painter_logging_context', default={})

_configured = False


class ContextFormatter(logging.Formatter):
    """Formatter that appends contextual fields to every record.

    Supports a human-readable mode (optionally colored) and a JSON-lines mode.
    """

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt_mode: str = "human", use_color: bool = True, tz: str = "UTC"):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()
        self.tz = tz

    def _timestamp(self, record: logging.LogRecord) -> datetime:
        if self.tz == "UTC":
            return datetime.fromtimestamp(record.created, tz=timezone.utc)
        return datetime.fromtimestamp(record.created)

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get({})
        ts = self._timestamp(record)
        if self.fmt_mode == "json":
            return self._format_json(record, ts, context)
        return self._format_human(record, ts, context)

    def _format_json(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        payload = {
            't': ts.isoformat(),
            'lvl': record.levelname,
            'name': record.name,
            'pid': os.getpid(),
            'msg': record.getMessage(),
        }
        payload.update(context)
        if record.exc_info:
            payload['exc'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

    def _format_human(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        ts_str = ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        parts = [ts_str, '|', level, '|']
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
            parts.append('|')
        parts.append(record.getMessage())

        line = ' '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    tz: str = "UTC",
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger (idempotent).

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Log file path; None disables file logging
    json : bool
        Emit JSON lines to the file handler instead of human lines
    color : bool
        ANSI colors on the console handler (only when stderr is a TTY)
    to_stderr : bool
        Attach a console handler on stderr
    rotate : dict, optional
        {"mode": "size", "max_bytes": ..., "backup_count": ...} or
        {"mode": "time", "when": "D", "interval": 1, "backup_count": ...}
    tz : str
        "UTC" (default) or "local"
    capture_warnings : bool
        Route Python warnings into logging
    quiet_libs : list[str], optional
        Logger names forced to WARNING (e.g. ["PIL", "urllib3"])
    context : dict, optional
        Initial contextual fields, e.g. {"app": "paint_demo"}

    Returns
    -------
    list[logging.Handler]
        Handlers attached to the root logger
    """
    global _configured

    root = logging.getLogger()
    if _configured:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    root.setLevel(level)

    handlers: List[logging.Handler] = []

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", color, tz))
        handlers.append(console)

    if log_file:
        handlers.append(_create_file_handler(log_file, rotate, json, tz))

    for handler in handlers:
        root.addHandler(handler)

    if context:
        push_context(**context)

    for lib in quiet_libs or []:
        logging.getLogger(lib).setLevel(logging.WARNING)

    if capture_warnings:
        logging.captureWarnings(True)

    _configured = True
    return handlers


def _create_file_handler(
    log_file: str,
    rotate: Optional[Dict[str, Any]],
    json_format: bool,
    tz: str
) -> logging.Handler:
    """Create a file handler, rotating when requested."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if rotate:
        mode = rotate.get('mode', 'size')
        if mode == 'size':
            handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=rotate.get('max_bytes', 10_000_000),
                backupCount=rotate.get('backup_count', 3)
            )
        elif mode == 'time':
            handler = logging.handlers.TimedRotatingFileHandler(
                log_path,
                when=rotate.get('when', 'D'),
                interval=rotate.get('interval', 1),
                backupCount=rotate.get('backup_count', 7)
            )
        else:
            raise ValueError(f"Unknown rotation mode: {mode}. Use 'size' or 'time'.")
    else:
        handler = logging.FileHandler(log_path)

    handler.setFormatter(ContextFormatter("json" if json_format else "human", use_color=False, tz=tz))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Get logger by name (typically ``__name__``)."""
    return logging.getLogger(name)


def push_context(**kwargs) -> None:
    """Add contextual fields to all subsequent log records of this context.

    Examples
    --------
    >>> push_context(app="paint_demo")
    >>> push_context(paint_event=7)
    >>> logger.info("Rendered")  # → "... | app=paint_demo paint_event=7 | Rendered"
    """
    current = _context_var.get({})
    _context_var.set({**current, **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; all of them when ``keys`` is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get({}))
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)


def current_context() -> Dict[str, Any]:
    """Snapshot of the active contextual fields."""
    return dict(_context_var.get({}))


def shutdown() -> None:
    """Flush and close all handlers. Call at the end of main()."""
    logging.shutdown()
