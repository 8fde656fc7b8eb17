"""PyTorch ergonomics for the data-parallel compositor.

Provides:
    - resolve_device(): "auto" | "cpu" | "cuda[:N]" → torch.device
    - synchronize(): Barrier for asynchronous CUDA work before host readback

Texel math runs in FP64 on every device so the bounded compositor matches
the sequential scan bit-for-bit up to the final FP32 store.
"""

import logging

import torch

logger = logging.getLogger(__name__)


def resolve_device(name: str = "auto") -> torch.device:
    """Resolve a device string.

    Parameters
    ----------
    name : str
        "auto" (CUDA when available, else CPU), "cpu", or "cuda"/"cuda:N"

    Returns
    -------
    torch.device

    Raises
    ------
    ValueError
        If a CUDA device is requested but CUDA is unavailable
    """
    name = name.strip().lower()
    if name == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    if name.startswith("cuda") and not torch.cuda.is_available():
        raise ValueError(f"Device '{name}' requested but CUDA is not available")
    return torch.device(name)


def synchronize(device: torch.device) -> None:
    """Wait for queued kernels on ``device`` (no-op on CPU)."""
    if device.type == "cuda":
        torch.cuda.synchronize(device)
