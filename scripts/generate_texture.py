"""Request a texture from the remote txt2img service and save it.

CLI:
    python scripts/generate_texture.py --prompt "mossy stone wall" --output outputs/stone.png
    python scripts/generate_texture.py --list-models

The saved PNG can be painted on with:
    python scripts/paint_demo.py --texture outputs/stone.png --output outputs/stone_painted.png
"""

import argparse
import logging
import sys

from src.generation import GenerationClient, GenerationError, GenerationRequest
from src.utils import fs, validators
from src.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Generate a texture with a remote txt2img service")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/generation_v1.yaml",
        help="Path to generation config",
    )
    parser.add_argument("--prompt", type=str, default=None, help="Override the default prompt")
    parser.add_argument("--steps", type=int, default=None, help="Sampling steps")
    parser.add_argument("--width", type=int, default=None, help="Image width (px)")
    parser.add_argument("--height", type=int, default=None, help="Image height (px)")
    parser.add_argument("--model", type=str, default=None, help="Model name")
    parser.add_argument("--output", type=str, default=None, help="Output PNG path")
    parser.add_argument("--list-models", action="store_true", help="Print available models and exit")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")

    args = parser.parse_args()

    setup_logging(log_level=args.log_level, context={"app": "generate_texture"},
                  quiet_libs=["urllib3", "PIL"])

    cfg = validators.load_generation_config(args.config)
    client = GenerationClient.from_config(cfg)

    try:
        if args.list_models:
            for model in client.list_models():
                print(f"{model.model_name}\t{model.filename}")
            return

        if not args.output:
            parser.error("--output is required unless --list-models is given")

        defaults = cfg.defaults
        request = GenerationRequest(
            prompt=args.prompt or defaults.prompt,
            steps=args.steps or defaults.steps,
            width=args.width or defaults.width,
            height=args.height or defaults.height,
            model=args.model or defaults.model,
        )
        if request.model is None:
            client.list_models()

        image = client.generate(request)
        fs.atomic_save_image(image, args.output)
        logger.info(f"Saved {image.shape[1]}x{image.shape[0]} texture → {args.output}")
    except GenerationError as e:
        logger.error(f"Generation failed: {e}")
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
