"""
Image I/O.

Conversion between image files and the RGBA ``uint8`` buffers the codec
works on. Stego output is always written losslessly as PNG; any lossy
re-encoding of the carrier destroys all algorithms except, partially,
mobile-optimized.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from ..errors import ValidationError


logger = logging.getLogger(__name__)


PathLike = Union[str, Path]


def validate_pixels(pixels: np.ndarray) -> None:
    """
    Raises:
        ValidationError: Unless ``pixels`` is a non-empty ``(h, w, 4)`` uint8 array
    """
    if not isinstance(pixels, np.ndarray):
        raise ValidationError("Pixel buffer must be a numpy array")
    if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValidationError(
            "Pixel buffer must be an RGBA uint8 array of shape (height, width, 4)",
            details={"shape": list(pixels.shape), "dtype": str(pixels.dtype)},
        )
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ValidationError("Pixel buffer is empty")


def from_flat(buffer: Union[bytes, bytearray, np.ndarray], width: int, height: int) -> np.ndarray:
    """Reshape a flat RGBA byte buffer (canvas ImageData layout) into ``(h, w, 4)``."""
    data = np.frombuffer(bytes(buffer), dtype=np.uint8) if not isinstance(buffer, np.ndarray) else buffer
    if data.size != width * height * 4:
        raise ValidationError(
            f"Buffer holds {data.size} bytes, expected {width * height * 4}",
            details={"width": width, "height": height},
        )
    return data.astype(np.uint8).reshape(height, width, 4).copy()


def to_image(pixels: np.ndarray) -> Image.Image:
    validate_pixels(pixels)
    return Image.fromarray(pixels)


def load_rgba(path: PathLike) -> np.ndarray:
    """Load any PIL-readable image as an RGBA buffer."""
    with Image.open(path) as image:
        rgba = image.convert("RGBA")
        pixels = np.array(rgba, dtype=np.uint8)
    logger.debug(f"Loaded carrier {path} ({pixels.shape[1]}x{pixels.shape[0]})")
    return pixels


def save_png(pixels: np.ndarray, path: PathLike) -> Path:
    """Write the buffer as a lossless PNG, creating parent directories."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    to_image(pixels).save(target, format="PNG")
    logger.info(f"Saved stego image to {target}")
    return target


__all__ = [
    "validate_pixels",
    "from_flat",
    "to_image",
    "load_rgba",
    "save_png",
]
