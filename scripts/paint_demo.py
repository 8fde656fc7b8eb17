"""Demo: paint scripted strokes onto a quad or sphere and save the texture.

Runs the projection painter headlessly:
    1. Load and validate the painter config
    2. Build the surface (unit quad or UV sphere) with a solid or loaded texture
    3. Replay a straight stroke as a sequence of input samples
    4. Save the painted texture (PNG, v-up rows flipped for viewing)

Stroke placement per capture strategy:
    - brush_offset / fixed_viewpoint: brush tip moves across the surface,
      pointing into it
    - pointer_ray: pointer origin moves in front of the surface, rays cast
      toward it

Refactored architecture:
    - paint_demo_main(...) → dict (callable from tests)
    - CLI entry point: if __name__ == "__main__"

CLI:
    python scripts/paint_demo.py --output outputs/quad.png
    python scripts/paint_demo.py --surface sphere --color "#2060ff" --steps 40 \\
                                 --output outputs/sphere.png
    python scripts/paint_demo.py --direct --output outputs/direct.png
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from src.projection_painter import (
    Brush,
    Pose,
    ProjectionPainter,
    RaySamplingPainter,
    SetBrushColor,
    Surface,
    make_unit_quad,
    make_uv_sphere,
)
from src.utils import fs, validators
from src.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _stroke_poses(surface_kind: str, strategy: str, steps: int):
    """Yield (pose, point_on_surface) along a horizontal stroke."""
    for t in np.linspace(0.2, 0.8, steps):
        if surface_kind == "quad":
            tip = np.array([t, 0.5, 0.0])
            normal = np.array([0.0, 0.0, 1.0])
        else:
            angle = (t - 0.5) * np.pi * 0.8
            normal = np.array([np.sin(angle), 0.0, np.cos(angle)])
            tip = normal * 0.5
        if strategy == "pointer_ray":
            yield Pose.create(tip + normal * 0.5, -normal), tip
        else:
            yield Pose.create(tip, -normal), tip


def paint_demo_main(
    output_path: str,
    config_path: Optional[str] = "configs/painter_v1.yaml",
    surface_kind: str = "quad",
    texture_size: int = 256,
    texture_path: Optional[str] = None,
    color: Optional[str] = None,
    steps: int = 20,
    direct: bool = False,
) -> Dict[str, Any]:
    """Paint one stroke and save the texture.

    Returns
    -------
    dict
        {"output_path", "painted_events", "texels_written"}
    """
    if config_path:
        cfg = validators.load_painter_config(config_path)
    else:
        cfg = validators.painter_config_from_dict()

    mesh = make_unit_quad() if surface_kind == "quad" else make_uv_sphere(radius=0.5)
    if texture_path:
        surface = Surface.from_texture(mesh, fs.load_texture(texture_path), name=surface_kind)
    else:
        surface = Surface.solid(mesh, texture_size, texture_size, name=surface_kind)

    texels = 0
    painted = 0
    if direct:
        brush = Brush.from_config(cfg.brush)
        if color:
            brush = SetBrushColor(color).apply(brush)
        painter = RaySamplingPainter()
        for pose, _ in _stroke_poses(surface_kind, "pointer_ray", steps):
            stats = painter.paint_ray(surface, pose.position, pose.forward, brush)
            if stats is not None and stats.texels_written:
                painted += 1
                texels += stats.texels_written
        fs.save_texture(surface.texture, output_path)
    else:
        painter = ProjectionPainter()
        painter.initialize(cfg, surface)
        if color:
            painter.parameters.publish(SetBrushColor(color))
        pose = None
        for pose, _ in _stroke_poses(surface_kind, cfg.capture.strategy, steps):
            result = painter.on_input_sample(pose, 1.0)
            if result.painted:
                painted += 1
                texels += result.stats.texels_written
        if pose is not None:
            painter.on_input_sample(pose, 0.0)
        fs.save_texture(surface.texture, output_path)
        logger.info(f"Stage timings: {painter.timings}")
        painter.shutdown()

    logger.info(f"Painted {painted}/{steps} events, {texels} texel writes → {output_path}")
    return {
        'output_path': str(Path(output_path)),
        'painted_events': painted,
        'texels_written': texels,
    }


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Paint a scripted stroke on a quad or sphere and save the texture"
    )
    parser.add_argument(
        "--output",
        type=str,
        required=True,
        help="Output PNG path",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="configs/painter_v1.yaml",
        help="Path to painter config",
    )
    parser.add_argument(
        "--surface",
        choices=("quad", "sphere"),
        default="quad",
        help="Target surface",
    )
    parser.add_argument(
        "--texture",
        type=str,
        default=None,
        help="Optional starting texture image (default: solid white)",
    )
    parser.add_argument(
        "--texture-size",
        type=int,
        default=256,
        help="Solid texture edge length in texels",
    )
    parser.add_argument(
        "--color",
        type=str,
        default=None,
        help="Brush color override, e.g. '#ff8800'",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=20,
        help="Input samples along the stroke",
    )
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Use the ray-sampling painter instead of the projection painter",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level",
    )

    args = parser.parse_args()

    setup_logging(log_level=args.log_level, context={"app": "paint_demo"}, quiet_libs=["PIL"])

    result = paint_demo_main(
        output_path=args.output,
        config_path=args.config,
        surface_kind=args.surface,
        texture_size=args.texture_size,
        texture_path=args.texture,
        color=args.color,
        steps=args.steps,
        direct=args.direct,
    )

    print("\n=== Paint Complete ===")
    print(f"Texture: {result['output_path']}")
    print(f"Painted events: {result['painted_events']}")


if __name__ == "__main__":
    main()
