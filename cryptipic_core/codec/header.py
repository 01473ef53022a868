"""
Binary Header.

The 40-bit header is the only part of a carrier interpreted before anything
else. It is stored one bit per byte in bit 0 of the first 40 bytes of the
flat RGBA buffer, most significant bit first:

    bytes 0..31   payload length in bits
    bytes 32..35  algorithm id (see ``Algorithm``)
    bytes 36..39  capacity
"""

import logging
from dataclasses import dataclass

import numpy as np

from ..errors import CorruptedImage, NoHiddenMessage
from ..stego.algorithms import PAYLOAD_OFFSET, bits_to_int, int_to_bits, read_lsb, write_lsb


logger = logging.getLogger(__name__)


HEADER_BITS = PAYLOAD_OFFSET
LENGTH_BITS = 32
ALGORITHM_BITS = 4
CAPACITY_BITS = 4


@dataclass(frozen=True)
class BinaryHeader:
    """
    Attributes:
        length: Payload length in bits
        algorithm_id: 4-bit algorithm id
        capacity: 4-bit capacity
    """
    length: int
    algorithm_id: int
    capacity: int

    def to_bits(self) -> np.ndarray:
        if not 0 <= self.length < 2 ** LENGTH_BITS:
            raise ValueError(f"Payload length out of range: {self.length}")
        if not 0 <= self.algorithm_id < 2 ** ALGORITHM_BITS or not 0 <= self.capacity < 2 ** CAPACITY_BITS:
            raise ValueError("Algorithm id and capacity must fit in four bits")
        return np.concatenate([
            int_to_bits(self.length, LENGTH_BITS),
            int_to_bits(self.algorithm_id, ALGORITHM_BITS),
            int_to_bits(self.capacity, CAPACITY_BITS),
        ])

    @classmethod
    def from_bits(cls, bits: np.ndarray) -> "BinaryHeader":
        return cls(
            length=bits_to_int(bits[:LENGTH_BITS]),
            algorithm_id=bits_to_int(bits[LENGTH_BITS:LENGTH_BITS + ALGORITHM_BITS]),
            capacity=bits_to_int(bits[LENGTH_BITS + ALGORITHM_BITS:HEADER_BITS]),
        )


def write_header(pixels: np.ndarray, header: BinaryHeader) -> None:
    """Write ``header`` into bit 0 of the first 40 bytes of ``pixels``."""
    flat = pixels.reshape(-1)
    if flat.size < HEADER_BITS:
        raise CorruptedImage("Carrier too small to hold the binary header")
    write_lsb(flat, 0, header.to_bits())


def read_header(pixels: np.ndarray) -> BinaryHeader:
    """
    Raises:
        NoHiddenMessage: If the buffer cannot even hold a header
    """
    flat = pixels.reshape(-1)
    if flat.size < HEADER_BITS:
        raise NoHiddenMessage("Carrier too small to hold a binary header")
    header = BinaryHeader.from_bits(read_lsb(flat, 0, HEADER_BITS))
    logger.debug(f"Header: length={header.length}, algorithm={header.algorithm_id}, capacity={header.capacity}")
    return header


__all__ = [
    "HEADER_BITS",
    "BinaryHeader",
    "write_header",
    "read_header",
]
