"""
Transform Library.

Two-dimensional DCT/IDCT and Haar DWT/IDWT over fixed-size pixel blocks,
plus the parity-quantisation helpers the frequency-domain embedders use to
hide one bit per block.

The DCT is the separable orthonormal type-II transform (type-III inverse)
computed by OpenCV. The wavelet side delegates to PyWavelets with the
orthonormal Haar filter.

Parity embedding uses quantisation index modulation: a coefficient is moved
to the nearest multiple of ``step`` whose index parity equals the bit. Block
pixels are first pulled inside ``[margin, 255 - margin]`` so the inverse
transform never clips, which keeps the embedded parity readable after the
pixels are rounded back to integers.
"""

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np
import pywt


logger = logging.getLogger(__name__)


BLOCK_SIZE = 8

# Mid-frequency coefficient and quantisation step for DCT parity
DCT_COEFFICIENT = (2, 3)
DCT_STEP = 8.0

# Sub-band coefficient and quantisation step for Haar parity
DWT_COEFFICIENT = (1, 1)
DWT_STEP = 4.0

# Clamp margin guaranteeing no clipping after a parity move
PIXEL_MARGIN = 3

WAVELET = "haar"


@dataclass
class WaveletBands:
    """
    Single-level 2D wavelet decomposition.

    Attributes:
        ll: Approximation band
        lh: Horizontal detail band
        hl: Vertical detail band
        hh: Diagonal detail band
    """

    ll: np.ndarray
    lh: np.ndarray
    hl: np.ndarray
    hh: np.ndarray

    DETAIL_BANDS = ("lh", "hl", "hh")

    def band(self, name: str) -> np.ndarray:
        return getattr(self, name)


def dct(block: np.ndarray) -> np.ndarray:
    """
    Forward 2D DCT of an even-sized block.

    ``C[u, v] = alpha(u) alpha(v) sum f(x, y) cos((2x + 1) u pi / 2N) cos((2y + 1) v pi / 2N)``
    with ``alpha(0) = 1/sqrt(N)`` and ``alpha(k) = sqrt(2/N)`` otherwise.
    """
    return cv2.dct(np.ascontiguousarray(block, dtype=np.float64))


def idct(coefficients: np.ndarray) -> np.ndarray:
    """Inverse 2D DCT of a square coefficient block."""
    return cv2.idct(np.ascontiguousarray(coefficients, dtype=np.float64))


def dwt(signal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """One-level 1D Haar transform returning (approximation, detail)."""
    approx, detail = pywt.dwt(np.asarray(signal, dtype=np.float64), WAVELET, mode="periodization")
    return approx, detail


def idwt(approx: np.ndarray, detail: np.ndarray) -> np.ndarray:
    """Inverse of :func:`dwt`."""
    return pywt.idwt(approx, detail, WAVELET, mode="periodization")


def dwt2d(block: np.ndarray) -> WaveletBands:
    """One-level 2D Haar transform of a block."""
    ll, (lh, hl, hh) = pywt.dwt2(np.asarray(block, dtype=np.float64), WAVELET, mode="periodization")
    return WaveletBands(ll=ll, lh=lh, hl=hl, hh=hh)


def idwt2d(bands: WaveletBands) -> np.ndarray:
    """Inverse of :func:`dwt2d`."""
    return pywt.idwt2((bands.ll, (bands.lh, bands.hl, bands.hh)), WAVELET, mode="periodization")


def embed_parity(value: float, bit: int, step: float) -> float:
    """Move ``value`` to the nearest multiple of ``step`` with index parity ``bit``."""
    scaled = value / step
    index = math.floor(scaled + 0.5)
    if index % 2 != bit:
        index += 1 if scaled > index else -1
    return index * step


def read_parity(value: float, step: float) -> int:
    """Read the parity bit written by :func:`embed_parity`."""
    return math.floor(value / step + 0.5) % 2


def clamp_block(block: np.ndarray, margin: int = PIXEL_MARGIN) -> np.ndarray:
    return np.clip(np.asarray(block, dtype=np.float64), margin, 255 - margin)


def to_pixels(block: np.ndarray) -> np.ndarray:
    """Round a reconstructed block back to clamped 8-bit pixels."""
    return np.clip(np.rint(block), 0, 255).astype(np.uint8)


def embed_dct_bit(block: np.ndarray, bit: int) -> np.ndarray:
    """Hide ``bit`` in the mid-frequency DCT coefficient of an 8x8 block."""
    coefficients = dct(clamp_block(block))
    row, col = DCT_COEFFICIENT
    coefficients[row, col] = embed_parity(coefficients[row, col], bit, DCT_STEP)
    return to_pixels(idct(coefficients))


def extract_dct_bit(block: np.ndarray) -> int:
    row, col = DCT_COEFFICIENT
    return read_parity(dct(block)[row, col], DCT_STEP)


def embed_dwt_bit(block: np.ndarray, bit: int, band: str) -> np.ndarray:
    """Hide ``bit`` in one coefficient of the named Haar detail band."""
    bands = dwt2d(clamp_block(block))
    target = bands.band(band)
    row, col = DWT_COEFFICIENT
    target[row, col] = embed_parity(target[row, col], bit, DWT_STEP)
    return to_pixels(idwt2d(bands))


def extract_dwt_bit(block: np.ndarray, band: str) -> int:
    row, col = DWT_COEFFICIENT
    return read_parity(dwt2d(block).band(band)[row, col], DWT_STEP)


__all__ = [
    "BLOCK_SIZE",
    "WaveletBands",
    "dct",
    "idct",
    "dwt",
    "idwt",
    "dwt2d",
    "idwt2d",
    "embed_parity",
    "read_parity",
    "clamp_block",
    "to_pixels",
    "embed_dct_bit",
    "extract_dct_bit",
    "embed_dwt_bit",
    "extract_dwt_bit",
]
