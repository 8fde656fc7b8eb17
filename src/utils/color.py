"""Color parsing and pixel-format conversions.

Provides:
    - as_rgba(): Normalize user colors (tuples, arrays, "#RRGGBB[AA]") to RGBA FP32
    - to_float_image(): uint8 / float images → (H, W, 4) FP32 RGBA in [0,1]
    - to_uint8_image(): FP32 [0,1] → uint8 for saving

Invariants:
    - Textures are RGBA FP32 in [0,1] throughout the painter
    - uint8 only at I/O boundaries (load/save)
    - No color-space conversion: painting blends whatever space the texture is in
"""

from typing import Sequence, Union

import numpy as np

ColorLike = Union[str, Sequence[float], np.ndarray]


def as_rgba(color: ColorLike) -> np.ndarray:
    """Normalize a color to an RGBA FP32 array of shape (4,).

    Parameters
    ----------
    color : str or sequence of float
        "#RRGGBB" / "#RRGGBBAA" hex string, or 3/4 floats in [0,1].
        A missing alpha defaults to 1.0.

    Returns
    -------
    np.ndarray
        RGBA, shape (4,), FP32, clipped to [0,1]

    Raises
    ------
    ValueError
        If the color cannot be parsed
    """
    if isinstance(color, str):
        text = color.strip().lstrip('#')
        if len(text) not in (6, 8):
            raise ValueError(f"Hex color must be #RRGGBB or #RRGGBBAA, got '{color}'")
        try:
            channels = [int(text[i:i + 2], 16) / 255.0 for i in range(0, len(text), 2)]
        except ValueError as e:
            raise ValueError(f"Invalid hex color '{color}'") from e
    else:
        channels = [float(c) for c in np.asarray(color, dtype=np.float64).ravel()]

    if len(channels) == 3:
        channels.append(1.0)
    if len(channels) != 4:
        raise ValueError(f"Color must have 3 or 4 components, got {len(channels)}")

    rgba = np.asarray(channels, dtype=np.float32)
    if not np.all(np.isfinite(rgba)):
        raise ValueError(f"Color components must be finite, got {rgba.tolist()}")
    return np.clip(rgba, 0.0, 1.0)


def to_float_image(img: np.ndarray) -> np.ndarray:
    """Convert an image to (H, W, 4) FP32 RGBA in [0,1].

    Grayscale gets replicated to RGB, RGB gets an opaque alpha channel.
    uint8 input is scaled by 1/255; float input is clipped.
    """
    img = np.asarray(img)
    if img.dtype == np.uint8:
        out = img.astype(np.float32) / 255.0
    else:
        out = np.clip(img.astype(np.float32), 0.0, 1.0)

    if out.ndim == 2:
        out = np.repeat(out[:, :, np.newaxis], 3, axis=2)
    if out.ndim != 3 or out.shape[2] not in (3, 4):
        raise ValueError(f"Expected (H, W), (H, W, 3) or (H, W, 4) image, got {img.shape}")
    if out.shape[2] == 3:
        alpha = np.ones(out.shape[:2] + (1,), dtype=np.float32)
        out = np.concatenate([out, alpha], axis=2)
    return np.ascontiguousarray(out)


def to_uint8_image(img: np.ndarray) -> np.ndarray:
    """Convert an FP32 [0,1] image to uint8 with rounding."""
    return (np.clip(img, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
