"""Filesystem helpers: atomic writes, YAML handling, texture image I/O.

Provides:
    - Atomic writes: tmp file → fsync → rename (no half-written textures)
    - YAML load/save (PyYAML safe loader)
    - Texture load/save between image files and painter textures
    - In-memory image decoding (remote generation responses)

Texture orientation:
    Painter textures are indexed [row, col] with row = floor(v * H), i.e. row 0
    is v = 0 at the *bottom* of the image. Image files store the top row first,
    so load_texture()/save_texture() flip rows at the boundary.

Usage:
    from src.utils import fs
    texture = fs.load_texture("assets/crate.png")
    fs.save_texture(surface.texture, "outputs/crate_painted.png")
    cfg = fs.load_yaml("configs/painter_v1.yaml")
"""

import io
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml
from PIL import Image

from . import color as color_utils


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory (and parents) if missing, return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: Union[str, Path], data: bytes, tmp_suffix: str = ".tmp") -> None:
    """Write bytes to file atomically (tmp → fsync → rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Raises
    ------
    RuntimeError
        If the write or rename fails (tmp file is cleaned up)
    """
    path = Path(path)
    ensure_dir(path.parent)
    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_save_image(
    img: np.ndarray,
    path: Union[str, Path],
    pil_kwargs: Optional[Dict[str, Any]] = None
) -> None:
    """Save an image atomically.

    Parameters
    ----------
    img : np.ndarray
        (H, W), (H, W, 3) or (H, W, 4); uint8, or float in [0,1]
    path : Union[str, Path]
        Target path (extension selects the format)
    pil_kwargs : dict, optional
        Extra kwargs for PIL.Image.save
    """
    path = Path(path)
    ensure_dir(path.parent)
    pil_kwargs = pil_kwargs or {}

    if img.dtype != np.uint8:
        img = color_utils.to_uint8_image(img)
    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]

    pil_img = Image.fromarray(img)
    # Keep the real extension last so PIL can infer the format
    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    try:
        pil_img.save(tmp_path, **pil_kwargs)
        tmp_path.replace(path)
    except (OSError, ValueError) as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to save image {path} atomically: {e}") from e


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML file with the safe loader.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If parsing fails (message includes the path)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
    return data if data is not None else {}


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Serialize ``obj`` with safe_dump and write it atomically."""
    text = yaml.safe_dump(obj, default_flow_style=False, sort_keys=False, allow_unicode=True)
    atomic_write_bytes(path, text.encode('utf-8'))


def decode_image_bytes(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (PNG/JPEG/...) into (H, W, 4) FP32 RGBA.

    Rows are returned in file order (top row first).

    Raises
    ------
    ValueError
        If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as pil_img:
            rgba = np.asarray(pil_img.convert("RGBA"))
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Could not decode image bytes ({len(data)} bytes): {e}") from e
    return color_utils.to_float_image(rgba)


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Load an image file as (H, W, 4) FP32 RGBA, top row first."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    with Image.open(path) as pil_img:
        rgba = np.asarray(pil_img.convert("RGBA"))
    return color_utils.to_float_image(rgba)


def load_texture(path: Union[str, Path]) -> np.ndarray:
    """Load an image file as a painter texture (row 0 = v 0)."""
    return np.ascontiguousarray(np.flipud(load_image(path)))


def save_texture(texture: np.ndarray, path: Union[str, Path]) -> None:
    """Save a painter texture to an image file (flipped back to top-down)."""
    atomic_save_image(np.ascontiguousarray(np.flipud(texture)), path)
