"""Projection Painter: texture-space painting on 3D surfaces.

This package contains the projection painting engine, a thin client for a
remote texture generation service, and the shared utilities both build on.

Architecture layers (strict one-way dependency):
    scripts/ → src/{projection_painter,generation}/ → src/utils/

Key invariants:
    - Textures are RGBA FP32 in [0,1], row 0 = v 0 (flipped at image I/O)
    - Capture buffers hold texture coordinates, never color
    - YAML-only configs, validated by pydantic schemas
    - Geometry in world units, brush footprints in capture pixels
"""

__version__ = "0.4.0"
