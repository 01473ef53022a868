"""
Embedding Algorithms.

This module implements the eight embedding strategies that hide a payload
bit stream inside an RGBA pixel buffer, and the registry that selects one
by its 4-bit header id.

Buffer layout shared by every strategy:

    bytes 0..39   40-bit plain-LSB header (length, algorithm id, capacity)
    bytes 40..    payload area, interpreted by the strategy named in the header

Sequential strategies (lsb, multibit-lsb, mobile-optimized) walk the flat
byte buffer from offset 40, alpha bytes included. Chaotic and frequency
strategies only touch RGB channels and skip every pixel or 8x8 block that
overlaps the reserved header bytes.

Features:
    - Algorithm enum with the header id table
    - EmbeddingStrategy interface: total_positions, required_positions,
      embed, extract
    - Majority-vote recovery in the mobile-optimized strategy
    - Adaptive-hybrid wrapper carrying its chosen variant in a plain-LSB
      strategy byte right after the header

Usage:
    >>> strategy = get_strategy(Algorithm.MULTIBIT_LSB, capacity=3)
    >>> strategy.embed(pixels, bits)
    >>> strategy.extract(pixels, len(bits))
"""

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type, Union

import numpy as np

from ..errors import CapacityExceeded, CorruptedImage, UnsupportedAlgorithm
from .chaotic import ChaoticMapOptions, ChaoticSequenceGenerator, MAX_SAFE_RATIO
from .transforms import (
    BLOCK_SIZE,
    WaveletBands,
    embed_dct_bit,
    embed_dwt_bit,
    extract_dct_bit,
    extract_dwt_bit,
)


logger = logging.getLogger(__name__)


# Bytes occupied by the binary header
PAYLOAD_OFFSET = 40

# Colour channels used by chaotic and frequency strategies
RGB_CHANNELS = 3

MAX_CAPACITY = 8


class Algorithm(Enum):
    """Embedding algorithms, in header id order."""

    LSB = "lsb"
    DCT = "dct"
    DWT = "dwt"
    MULTIBIT_LSB = "multibit-lsb"
    MOBILE_OPTIMIZED = "mobile-optimized"
    CHAOTIC_LSB = "chaotic-lsb"
    HYBRID_DCT_DWT = "hybrid-dct-dwt"
    ADAPTIVE_HYBRID = "adaptive-hybrid"

    @property
    def header_id(self) -> int:
        return list(Algorithm).index(self)

    @classmethod
    def from_header_id(cls, header_id: int) -> "Algorithm":
        members = list(cls)
        if not 0 <= header_id < len(members):
            raise UnsupportedAlgorithm(
                f"Unknown algorithm id: {header_id}",
                details={"algorithm_id": header_id},
            )
        return members[header_id]

    @classmethod
    def parse(cls, value: Union[str, int, "Algorithm"]) -> "Algorithm":
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls.from_header_id(value)
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise UnsupportedAlgorithm(f"Unsupported algorithm: {value}") from exc


# =============================================================================
# Bit helpers
# =============================================================================


def bytes_to_bits(data: bytes) -> np.ndarray:
    """MSB-first bit array of ``data``."""
    return np.unpackbits(np.frombuffer(data, dtype=np.uint8))


def bits_to_bytes(bits: np.ndarray) -> bytes:
    """Inverse of :func:`bytes_to_bits`; a trailing partial byte is zero padded."""
    return np.packbits(np.asarray(bits, dtype=np.uint8)).tobytes()


def int_to_bits(value: int, width: int) -> np.ndarray:
    return np.array([(value >> (width - 1 - i)) & 1 for i in range(width)], dtype=np.uint8)


def bits_to_int(bits: np.ndarray) -> int:
    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return value


def write_lsb(flat: np.ndarray, offset: int, bits: np.ndarray) -> None:
    """Overwrite bit 0 of ``len(bits)`` consecutive bytes starting at ``offset``."""
    end = offset + len(bits)
    flat[offset:end] = (flat[offset:end] & 0xFE) | np.asarray(bits, dtype=np.uint8)


def read_lsb(flat: np.ndarray, offset: int, count: int) -> np.ndarray:
    return (flat[offset:offset + count] & 1).astype(np.uint8)


def _group_values(bits: np.ndarray, width: int) -> np.ndarray:
    """Pack a bit stream into ``width``-bit integers, zero padding the tail."""
    padded_length = math.ceil(len(bits) / width) * width
    padded = np.zeros(padded_length, dtype=np.uint8)
    padded[:len(bits)] = bits
    weights = 1 << np.arange(width - 1, -1, -1)
    return (padded.reshape(-1, width) * weights).sum(axis=1).astype(np.uint8)


def _ungroup_values(values: np.ndarray, width: int, count: int) -> np.ndarray:
    shifts = np.arange(width - 1, -1, -1)
    bits = (values.astype(np.uint16)[:, None] >> shifts) & 1
    return bits.reshape(-1)[:count].astype(np.uint8)


# =============================================================================
# Strategy interface
# =============================================================================


class EmbeddingStrategy(ABC):
    """
    Common interface of all embedding algorithms.

    Attributes:
        capacity: Bits per position where the algorithm uses it (1-8)
        password: Seeds chaotic position generation when given
        chaotic: Chaotic map parameters
        reserved_bytes: Leading bytes of the buffer the strategy must not touch
    """

    algorithm: Algorithm

    def __init__(
        self,
        capacity: int = 1,
        password: Optional[str] = None,
        chaotic: Optional[ChaoticMapOptions] = None,
        reserved_bytes: int = PAYLOAD_OFFSET,
    ):
        self.capacity = capacity
        self.password = password
        self.chaotic = chaotic or ChaoticMapOptions()
        self.reserved_bytes = reserved_bytes

    @abstractmethod
    def total_positions(self, pixels: np.ndarray) -> int:
        """Number of positions the carrier offers."""

    @abstractmethod
    def required_positions(self, pixels: np.ndarray, bit_count: int) -> int:
        """Number of positions ``bit_count`` payload bits occupy."""

    @abstractmethod
    def embed(self, pixels: np.ndarray, bits: np.ndarray) -> None:
        """Write ``bits`` into ``pixels`` in place."""

    @abstractmethod
    def extract(self, pixels: np.ndarray, bit_count: int) -> np.ndarray:
        """Read ``bit_count`` bits back out of ``pixels``."""

    def prepare_extract(self, pixels: np.ndarray) -> None:
        """Load any in-band parameters before extraction."""

    def fits(self, pixels: np.ndarray, bit_count: int) -> bool:
        total = self.total_positions(pixels)
        return total > 0 and self.required_positions(pixels, bit_count) <= total * MAX_SAFE_RATIO

    def check_capacity(self, pixels: np.ndarray, bit_count: int) -> None:
        """
        Raises:
            CapacityExceeded: If the payload needs more than a quarter of the positions
        """
        total = self.total_positions(pixels)
        required = self.required_positions(pixels, bit_count)
        if total <= 0 or required > total * MAX_SAFE_RATIO:
            raise CapacityExceeded(
                f"{self.algorithm.value} needs {required} of {total} positions "
                f"(limit {int(total * MAX_SAFE_RATIO)})",
                details={"required": required, "total": total, "algorithm": self.algorithm.value},
            )

    def _payload_area(self, pixels: np.ndarray) -> np.ndarray:
        return pixels.reshape(-1)[self.reserved_bytes:]


# =============================================================================
# Sequential strategies
# =============================================================================


class LsbStrategy(EmbeddingStrategy):
    """Overwrite bit 0 of each byte sequentially."""

    algorithm = Algorithm.LSB

    def total_positions(self, pixels):
        return self._payload_area(pixels).size

    def required_positions(self, pixels, bit_count):
        return bit_count

    def embed(self, pixels, bits):
        write_lsb(self._payload_area(pixels), 0, bits)

    def extract(self, pixels, bit_count):
        return read_lsb(self._payload_area(pixels), 0, bit_count)


class MultibitLsbStrategy(EmbeddingStrategy):
    """Pack ``capacity`` low bits per byte through a mask / inverse mask."""

    algorithm = Algorithm.MULTIBIT_LSB

    @property
    def mask(self) -> int:
        return (1 << self.capacity) - 1

    def total_positions(self, pixels):
        return self._payload_area(pixels).size

    def required_positions(self, pixels, bit_count):
        return math.ceil(bit_count / self.capacity)

    def embed(self, pixels, bits):
        area = self._payload_area(pixels)
        values = _group_values(bits, self.capacity)
        inverse_mask = ~self.mask & 0xFF
        area[:values.size] = (area[:values.size] & inverse_mask) | values

    def extract(self, pixels, bit_count):
        area = self._payload_area(pixels)
        count = self.required_positions(pixels, bit_count)
        return _ungroup_values(area[:count] & self.mask, self.capacity, bit_count)


class MobileOptimizedStrategy(EmbeddingStrategy):
    """
    Triple-redundant embedding for carriers that get recompressed.

    Each bit fills the ``capacity`` low bits of three consecutive bytes with
    all ones or all zeros, followed by one untouched spacer byte. Decoding
    reads every copy by majority of its masked bits, then takes the
    majority of the three copies.
    """

    algorithm = Algorithm.MOBILE_OPTIMIZED

    REDUNDANCY = 3
    STRIDE = REDUNDANCY + 1

    def total_positions(self, pixels):
        return self._payload_area(pixels).size

    def required_positions(self, pixels, bit_count):
        return bit_count * self.STRIDE

    def _copy_indices(self, bit_count: int) -> np.ndarray:
        starts = np.arange(bit_count) * self.STRIDE
        return (starts[:, None] + np.arange(self.REDUNDANCY)).reshape(-1)

    def embed(self, pixels, bits):
        area = self._payload_area(pixels)
        mask = (1 << self.capacity) - 1
        indices = self._copy_indices(len(bits))
        copies = np.repeat(np.asarray(bits, dtype=np.uint8), self.REDUNDANCY) * mask
        area[indices] = (area[indices] & (~mask & 0xFF)) | copies.astype(np.uint8)

    def extract(self, pixels, bit_count):
        area = self._payload_area(pixels)
        mask = (1 << self.capacity) - 1
        masked = area[self._copy_indices(bit_count)] & mask
        set_bits = np.unpackbits(masked.astype(np.uint8)[:, None], axis=1).sum(axis=1)
        copy_votes = (set_bits * 2 > self.capacity).reshape(bit_count, self.REDUNDANCY)
        return (copy_votes.sum(axis=1) * 2 > self.REDUNDANCY).astype(np.uint8)


# =============================================================================
# Chaotic strategies
# =============================================================================


class _ChaoticMixin:
    """Chaotic position helpers shared by pixel and block strategies."""

    def _positions(self, total: int, required: int) -> List[int]:
        generator = ChaoticSequenceGenerator(self.chaotic)
        positions = generator.generate_embedding_positions(total, required, self.password)
        logger.debug(f"Generated {len(positions)} chaotic positions over {total}")
        return positions


class ChaoticLsbStrategy(_ChaoticMixin, EmbeddingStrategy):
    """
    LSB embedding at chaotic pixel positions.

    Every selected pixel stores ``bits_per_channel`` (1-3) low bits in each
    of its R, G and B bytes. Pixels covering the reserved header bytes are
    excluded from the position space.
    """

    algorithm = Algorithm.CHAOTIC_LSB

    MAX_BITS_PER_CHANNEL = 3

    @property
    def bits_per_channel(self) -> int:
        return max(1, min(self.MAX_BITS_PER_CHANNEL, self.capacity))

    def _reserved_pixels(self) -> int:
        return math.ceil(self.reserved_bytes / 4)

    def total_positions(self, pixels):
        return max(0, pixels.reshape(-1).size // 4 - self._reserved_pixels())

    def required_positions(self, pixels, bit_count):
        return math.ceil(bit_count / (RGB_CHANNELS * self.bits_per_channel))

    def _byte_indices(self, pixels: np.ndarray, bit_count: int) -> np.ndarray:
        positions = self._positions(self.total_positions(pixels), self.required_positions(pixels, bit_count))
        pixel_indices = np.asarray(positions, dtype=np.int64) + self._reserved_pixels()
        return (pixel_indices[:, None] * 4 + np.arange(RGB_CHANNELS)).reshape(-1)

    def embed(self, pixels, bits):
        flat = pixels.reshape(-1)
        width = self.bits_per_channel
        mask = (1 << width) - 1
        values = _group_values(bits, width)
        indices = self._byte_indices(pixels, len(bits))[:values.size]
        flat[indices] = (flat[indices] & (~mask & 0xFF)) | values

    def extract(self, pixels, bit_count):
        flat = pixels.reshape(-1)
        width = self.bits_per_channel
        indices = self._byte_indices(pixels, bit_count)[:math.ceil(bit_count / width)]
        return _ungroup_values(flat[indices] & ((1 << width) - 1), width, bit_count)


# =============================================================================
# Frequency-domain strategies
# =============================================================================


class _BlockMixin:
    """8x8 block enumeration that skips blocks overlapping reserved bytes."""

    def _usable_blocks(self, pixels: np.ndarray) -> List[Tuple[int, int]]:
        height, width = pixels.shape[:2]
        reserved = set()
        for pixel in range(math.ceil(self.reserved_bytes / 4)):
            reserved.add(((pixel // width) // BLOCK_SIZE, (pixel % width) // BLOCK_SIZE))

        return [
            (row * BLOCK_SIZE, col * BLOCK_SIZE)
            for row in range(height // BLOCK_SIZE)
            for col in range(width // BLOCK_SIZE)
            if (row, col) not in reserved
        ]

    @staticmethod
    def _region(origin: Tuple[int, int], channel: int) -> Tuple[slice, slice, int]:
        y, x = origin
        return slice(y, y + BLOCK_SIZE), slice(x, x + BLOCK_SIZE), channel

    @staticmethod
    def _band(sequence: int, channel: int) -> str:
        return WaveletBands.DETAIL_BANDS[(sequence + channel) % len(WaveletBands.DETAIL_BANDS)]


class DctStrategy(_BlockMixin, EmbeddingStrategy):
    """One parity-quantised mid-frequency DCT coefficient per block and channel."""

    algorithm = Algorithm.DCT

    def total_positions(self, pixels):
        return len(self._usable_blocks(pixels)) * RGB_CHANNELS

    def required_positions(self, pixels, bit_count):
        return bit_count

    def embed(self, pixels, bits):
        blocks = self._usable_blocks(pixels)
        for i, bit in enumerate(bits):
            region = self._region(blocks[i // RGB_CHANNELS], i % RGB_CHANNELS)
            pixels[region] = embed_dct_bit(pixels[region], int(bit))

    def extract(self, pixels, bit_count):
        blocks = self._usable_blocks(pixels)
        return np.array(
            [extract_dct_bit(pixels[self._region(blocks[i // RGB_CHANNELS], i % RGB_CHANNELS)])
             for i in range(bit_count)],
            dtype=np.uint8,
        )


class DwtStrategy(_BlockMixin, EmbeddingStrategy):
    """One parity-quantised Haar detail coefficient per block and channel; the band rotates."""

    algorithm = Algorithm.DWT

    def total_positions(self, pixels):
        return len(self._usable_blocks(pixels)) * RGB_CHANNELS

    def required_positions(self, pixels, bit_count):
        return bit_count

    def embed(self, pixels, bits):
        blocks = self._usable_blocks(pixels)
        for i, bit in enumerate(bits):
            sequence, channel = divmod(i, RGB_CHANNELS)
            region = self._region(blocks[sequence], channel)
            pixels[region] = embed_dwt_bit(pixels[region], int(bit), self._band(sequence, channel))

    def extract(self, pixels, bit_count):
        blocks = self._usable_blocks(pixels)
        bits = []
        for i in range(bit_count):
            sequence, channel = divmod(i, RGB_CHANNELS)
            bits.append(extract_dwt_bit(pixels[self._region(blocks[sequence], channel)], self._band(sequence, channel)))
        return np.array(bits, dtype=np.uint8)


class HybridDctDwtStrategy(_ChaoticMixin, _BlockMixin, EmbeddingStrategy):
    """
    Chaotic-selected blocks alternating between DCT and DWT embedding.

    The k-th selected block uses DCT when k is even and DWT when k is odd;
    each block carries one bit per RGB channel.
    """

    algorithm = Algorithm.HYBRID_DCT_DWT

    def total_positions(self, pixels):
        return len(self._usable_blocks(pixels))

    def required_positions(self, pixels, bit_count):
        return math.ceil(bit_count / RGB_CHANNELS)

    def _selected_blocks(self, pixels: np.ndarray, bit_count: int) -> List[Tuple[int, int]]:
        blocks = self._usable_blocks(pixels)
        return [blocks[p] for p in self._positions(len(blocks), self.required_positions(pixels, bit_count))]

    def embed(self, pixels, bits):
        selected = self._selected_blocks(pixels, len(bits))
        for i, bit in enumerate(bits):
            order, channel = divmod(i, RGB_CHANNELS)
            region = self._region(selected[order], channel)
            if order % 2 == 0:
                pixels[region] = embed_dct_bit(pixels[region], int(bit))
            else:
                pixels[region] = embed_dwt_bit(pixels[region], int(bit), self._band(order, channel))

    def extract(self, pixels, bit_count):
        selected = self._selected_blocks(pixels, bit_count)
        bits = []
        for i in range(bit_count):
            order, channel = divmod(i, RGB_CHANNELS)
            block = pixels[self._region(selected[order], channel)]
            if order % 2 == 0:
                bits.append(extract_dct_bit(block))
            else:
                bits.append(extract_dwt_bit(block, self._band(order, channel)))
        return np.array(bits, dtype=np.uint8)


# =============================================================================
# Adaptive hybrid
# =============================================================================


class AdaptiveHybridStrategy(EmbeddingStrategy):
    """
    Wrapper around the variant chosen by the adaptive strategy selector.

    A plain-LSB strategy byte follows the header:

        bits 7-6  variant (0 = chaotic-lsb, 1 = hybrid-dct-dwt)
        bits 5-4  redundancy - 1
        bits 3-0  zero

    The payload is embedded by the variant with every bit repeated
    ``redundancy`` times; extraction majority-votes each group, a tie
    going to the first copy.
    """

    algorithm = Algorithm.ADAPTIVE_HYBRID

    VARIANTS = (Algorithm.CHAOTIC_LSB, Algorithm.HYBRID_DCT_DWT)
    STRATEGY_BITS = 8
    MAX_REDUNDANCY = 4

    def __init__(
        self,
        capacity: int = 1,
        password: Optional[str] = None,
        chaotic: Optional[ChaoticMapOptions] = None,
        reserved_bytes: int = PAYLOAD_OFFSET,
        variant: Algorithm = Algorithm.HYBRID_DCT_DWT,
        redundancy: int = 1,
    ):
        super().__init__(capacity, password, chaotic, reserved_bytes)
        self.configure(variant, redundancy)

    def configure(self, variant: Algorithm, redundancy: int) -> None:
        if variant not in self.VARIANTS:
            raise UnsupportedAlgorithm(f"Adaptive variant not supported: {variant.value}")
        if not 1 <= redundancy <= self.MAX_REDUNDANCY:
            raise ValueError(f"Redundancy must be between 1 and {self.MAX_REDUNDANCY}")
        self.variant = variant
        self.redundancy = redundancy

    def _inner(self) -> EmbeddingStrategy:
        return STRATEGIES[self.variant](
            capacity=self.capacity,
            password=self.password,
            chaotic=self.chaotic,
            reserved_bytes=self.reserved_bytes + self.STRATEGY_BITS,
        )

    def strategy_byte(self) -> int:
        return (self.VARIANTS.index(self.variant) << 6) | ((self.redundancy - 1) << 4)

    def prepare_extract(self, pixels):
        flat = pixels.reshape(-1)
        if flat.size < self.reserved_bytes + self.STRATEGY_BITS:
            raise CorruptedImage("Carrier too small for an adaptive strategy byte")
        value = bits_to_int(read_lsb(flat, self.reserved_bytes, self.STRATEGY_BITS))
        variant_index = value >> 6
        if variant_index >= len(self.VARIANTS) or value & 0x0F:
            raise CorruptedImage("Invalid adaptive strategy byte", details={"value": value})
        self.configure(self.VARIANTS[variant_index], ((value >> 4) & 0x03) + 1)
        logger.debug(f"Adaptive payload uses {self.variant.value} x{self.redundancy}")

    def total_positions(self, pixels):
        return self._inner().total_positions(pixels)

    def required_positions(self, pixels, bit_count):
        return self._inner().required_positions(pixels, bit_count * self.redundancy)

    def embed(self, pixels, bits):
        write_lsb(pixels.reshape(-1), self.reserved_bytes, int_to_bits(self.strategy_byte(), self.STRATEGY_BITS))
        self._inner().embed(pixels, np.repeat(np.asarray(bits, dtype=np.uint8), self.redundancy))

    def extract(self, pixels, bit_count):
        copies = self._inner().extract(pixels, bit_count * self.redundancy).reshape(bit_count, self.redundancy)
        ones = copies.sum(axis=1).astype(np.int64) * 2
        return np.where(ones == self.redundancy, copies[:, 0], ones > self.redundancy).astype(np.uint8)


# =============================================================================
# Registry
# =============================================================================


STRATEGIES: Dict[Algorithm, Type[EmbeddingStrategy]] = {
    Algorithm.LSB: LsbStrategy,
    Algorithm.DCT: DctStrategy,
    Algorithm.DWT: DwtStrategy,
    Algorithm.MULTIBIT_LSB: MultibitLsbStrategy,
    Algorithm.MOBILE_OPTIMIZED: MobileOptimizedStrategy,
    Algorithm.CHAOTIC_LSB: ChaoticLsbStrategy,
    Algorithm.HYBRID_DCT_DWT: HybridDctDwtStrategy,
    Algorithm.ADAPTIVE_HYBRID: AdaptiveHybridStrategy,
}


def get_strategy(
    algorithm: Union[int, str, Algorithm],
    capacity: int = 1,
    password: Optional[str] = None,
    chaotic: Optional[ChaoticMapOptions] = None,
) -> EmbeddingStrategy:
    """
    Build the strategy registered for an algorithm or header id.

    Raises:
        UnsupportedAlgorithm: If the id or name is unknown
        CorruptedImage: If capacity is outside 1-8
    """
    algorithm = Algorithm.parse(algorithm)
    if not 1 <= capacity <= MAX_CAPACITY:
        raise CorruptedImage(f"Invalid capacity: {capacity}", details={"capacity": capacity})
    return STRATEGIES[algorithm](capacity=capacity, password=password, chaotic=chaotic)


__all__ = [
    "PAYLOAD_OFFSET",
    "Algorithm",
    "EmbeddingStrategy",
    "LsbStrategy",
    "MultibitLsbStrategy",
    "MobileOptimizedStrategy",
    "ChaoticLsbStrategy",
    "DctStrategy",
    "DwtStrategy",
    "HybridDctDwtStrategy",
    "AdaptiveHybridStrategy",
    "STRATEGIES",
    "get_strategy",
    "bytes_to_bits",
    "bits_to_bytes",
    "int_to_bits",
    "bits_to_int",
    "write_lsb",
    "read_lsb",
]
