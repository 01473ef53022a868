"""
Adaptive Strategy Selector.

Statistical analysis of the carrier image and the message, and the decision
table that picks the variant, per-channel capacity and redundancy used by
the adaptive-hybrid algorithm. The analysis is password independent; its
result is written in the clear right after the header so decoding never
has to repeat it.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass

import numpy as np

from .algorithms import Algorithm


logger = logging.getLogger(__name__)


# Gray-level difference that counts as an edge
EDGE_THRESHOLD = 30

HIGH_ENTROPY = 6.0
LOW_ENTROPY = 4.0
HIGH_EDGE_DENSITY = 0.3
LONG_MESSAGE = 1000
MAX_REDUNDANCY = 4


@dataclass
class ImageAnalysis:
    """
    Carrier statistics.

    Attributes:
        entropy: Shannon entropy (bits) of the gray-level histogram
        edge_density: Fraction of pixels with a gradient above the edge threshold
        capacity_estimate: Rough payload estimate in bits
    """
    entropy: float
    edge_density: float
    capacity_estimate: float


@dataclass
class MessageAnalysis:
    length: int
    entropy: float
    compressibility: float
    redundancy: float


@dataclass
class StrategySelection:
    """
    Outcome of the decision table.

    Attributes:
        variant: chaotic-lsb or hybrid-dct-dwt
        capacity: Bits per channel for the chaotic variant (1-3)
        redundancy: Copies of every payload bit (1-4)
        error_correction: Whether redundancy was raised for robustness
    """
    variant: Algorithm
    capacity: int
    redundancy: int
    error_correction: bool


def _gray(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.float64).mean(axis=-1)


def analyze_image(pixels: np.ndarray) -> ImageAnalysis:
    """Entropy and edge density of an RGBA buffer."""
    gray = _gray(pixels)
    total = gray.size
    if total == 0:
        return ImageAnalysis(entropy=0.0, edge_density=0.0, capacity_estimate=0.0)

    histogram = np.bincount(np.floor(gray).astype(np.int64).reshape(-1), minlength=256)
    probabilities = histogram[histogram > 0] / total
    entropy = float(-(probabilities * np.log2(probabilities)).sum())

    edges = 0
    if gray.shape[0] > 2 and gray.shape[1] > 2:
        interior = gray[1:-1, 1:-1]
        right = np.abs(interior - gray[1:-1, 2:]) > EDGE_THRESHOLD
        down = np.abs(interior - gray[2:, 1:-1]) > EDGE_THRESHOLD
        edges = int(np.count_nonzero(right | down))
    edge_density = edges / total

    analysis = ImageAnalysis(
        entropy=entropy,
        edge_density=edge_density,
        capacity_estimate=total * (entropy / 8) * (1 + edge_density),
    )
    logger.debug(f"Image analysis: entropy={entropy:.3f}, edge_density={edge_density:.3f}")
    return analysis


def analyze_message(text: str) -> MessageAnalysis:
    """Character entropy and compressibility ``max(0, (8 - H) / 8)``."""
    entropy = 0.0
    if text:
        for count in Counter(text).values():
            p = count / len(text)
            entropy -= p * math.log2(p)
    compressibility = max(0.0, (8 - entropy) / 8)
    return MessageAnalysis(
        length=len(text),
        entropy=entropy,
        compressibility=compressibility,
        redundancy=1 - compressibility,
    )


def select_strategy(image: ImageAnalysis, message: MessageAnalysis) -> StrategySelection:
    """
    Apply the decision table.

    - default: hybrid-dct-dwt, capacity 1
    - entropy > 6: hybrid-dct-dwt, capacity 2
    - entropy < 4: chaotic-lsb, capacity 1
    - edge density > 0.3: capacity + 1 (max 3), redundancy 2
    - message longer than 1000: redundancy doubled (max 4)
    """
    variant = Algorithm.HYBRID_DCT_DWT
    capacity = 1
    redundancy = 1
    error_correction = False

    if image.entropy > HIGH_ENTROPY:
        variant = Algorithm.HYBRID_DCT_DWT
        capacity = 2
    elif image.entropy < LOW_ENTROPY:
        variant = Algorithm.CHAOTIC_LSB
        capacity = 1

    if image.edge_density > HIGH_EDGE_DENSITY:
        capacity = min(3, capacity + 1)
        redundancy = 2
        error_correction = True

    if message.length > LONG_MESSAGE:
        redundancy = min(MAX_REDUNDANCY, redundancy * 2)
        error_correction = True

    selection = StrategySelection(variant, capacity, redundancy, error_correction)
    logger.info(f"Adaptive selection: {variant.value}, capacity={capacity}, redundancy={redundancy}")
    return selection


class AdaptiveStrategySelector:
    """
    Convenience wrapper running both analyses and the decision table.

    Example:
        >>> selection = AdaptiveStrategySelector().select(pixels, "message")
        >>> selection.variant
        <Algorithm.HYBRID_DCT_DWT: 'hybrid-dct-dwt'>
    """

    def select(self, pixels: np.ndarray, message: str) -> StrategySelection:
        return select_strategy(analyze_image(pixels), analyze_message(message))


__all__ = [
    "ImageAnalysis",
    "MessageAnalysis",
    "StrategySelection",
    "AdaptiveStrategySelector",
    "analyze_image",
    "analyze_message",
    "select_strategy",
]
