"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Color parsing and image formats (color)
    - Camera matrices, rotations and ray casting (geometry)
    - Atomic I/O and texture images (fs)
    - Torch ergonomics (torch_utils)
    - Profiling (profiler)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (projection_painter, generation).

Convenience imports:
    from src.utils import fs, color, geometry, validators
    from src.utils.logging_config import setup_logging, get_logger
"""

# Re-export commonly used modules for convenience
from . import color
from . import fs
from . import geometry
from . import logging_config
from . import profiler
from . import torch_utils
from . import validators

# Common functions for direct import
from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'fs',
    'geometry',
    'logging_config',
    'profiler',
    'torch_utils',
    'validators',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
]
