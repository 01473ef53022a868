"""
CryptiPic Steganography Layer.

Pixel-level embedding primitives and the leaf utilities they rely on.

Modules:
    chaotic: Chaotic position and key stream generation
    transforms: 2D DCT and Haar DWT over 8x8 blocks
    compression: Huffman, RLE and hybrid text compression
    algorithms: The eight embedding strategies and their registry
    analysis: Adaptive strategy selection from image and message statistics
    image: PIL conversion to and from RGBA buffers

Usage:
    >>> from cryptipic_core.stego import Algorithm, get_strategy
    >>> strategy = get_strategy(Algorithm.LSB)
"""

from .chaotic import ChaoticMapOptions, ChaoticMapType, ChaoticSequenceGenerator, chaotic_shuffle
from .compression import AdvancedCompressionManager, CompressionAlgorithm, CompressionResult
from .algorithms import Algorithm, EmbeddingStrategy, get_strategy, PAYLOAD_OFFSET
from .analysis import AdaptiveStrategySelector, analyze_image, analyze_message, select_strategy
from .image import load_rgba, save_png, from_flat

__all__ = [
    "ChaoticMapOptions",
    "ChaoticMapType",
    "ChaoticSequenceGenerator",
    "chaotic_shuffle",
    "AdvancedCompressionManager",
    "CompressionAlgorithm",
    "CompressionResult",
    "Algorithm",
    "EmbeddingStrategy",
    "get_strategy",
    "PAYLOAD_OFFSET",
    "AdaptiveStrategySelector",
    "analyze_image",
    "analyze_message",
    "select_strategy",
    "load_rgba",
    "save_png",
    "from_flat",
]
