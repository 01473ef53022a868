"""
Compression Manager.

Text compression applied to a message before it is encrypted and embedded.

Algorithms:
    - Huffman: frequency table, two-lowest merge tree, bitstring output with
      a serialised ``hex(charcode):count`` table as header
    - RLE: ``<count><char>`` runs with the count omitted for single chars
    - Hybrid: RLE followed by Huffman over the RLE text
    - Adaptive: best of the above, or no compression when that is smaller

A :class:`CompressionResult` can be serialised to a compact text token so
it travels inside the payload framing.

Usage:
    >>> manager = AdvancedCompressionManager()
    >>> result = manager.compress_message("aaaaaaaabbb")
    >>> manager.decompress_message(result)
    'aaaaaaaabbb'
"""

import base64
import logging
import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


HYBRID_HEADER_TAG = "RLE+HUFFMAN"

# RLE escape character and the characters it protects
ESCAPE = "\\"
_ESCAPED = set(ESCAPE + "0123456789")

# Upper bound on decompressed text, matching the message length limit
MAX_OUTPUT_CHARS = 100000


class CompressionAlgorithm(Enum):
    """Compression algorithms selectable through the options."""

    NONE = "none"
    HUFFMAN = "huffman"
    RLE = "rle"
    HYBRID = "hybrid"
    ADAPTIVE = "adaptive"


_TOKEN_TAGS = {
    CompressionAlgorithm.NONE: "N",
    CompressionAlgorithm.HUFFMAN: "H",
    CompressionAlgorithm.RLE: "R",
    CompressionAlgorithm.HYBRID: "Y",
}
_TAG_ALGORITHMS = {tag: algorithm for algorithm, tag in _TOKEN_TAGS.items()}


def pack_bits(bits: str) -> bytes:
    """Pack a '0'/'1' string into bytes, zero padded at the end."""
    if not bits:
        return b""
    padded = bits + "0" * (-len(bits) % 8)
    return int(padded, 2).to_bytes(len(padded) // 8, "big")


def unpack_bits(data: bytes, bit_count: int) -> str:
    if bit_count == 0:
        return ""
    bits = bin(int.from_bytes(data, "big"))[2:].zfill(len(data) * 8)
    return bits[:bit_count]


def shannon_entropy(text: str) -> float:
    """Shannon entropy in bits per character."""
    if not text:
        return 0.0
    length = len(text)
    entropy = 0.0
    for count in Counter(text).values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


@dataclass
class CompressionResult:
    """
    Result of a compression operation.

    Attributes:
        algorithm: Concrete algorithm used (never ADAPTIVE)
        data: Bitstring for Huffman/hybrid, text for RLE/none
        header: Serialised frequency table ('' for RLE/none)
        original_size: Input size in bits (8 per character)
        compressed_size: Output size in bits
    """

    algorithm: CompressionAlgorithm
    data: str
    header: str = ""
    original_size: int = 0
    compressed_size: int = 0

    @property
    def compression_ratio(self) -> float:
        if self.original_size == 0:
            return 0.0
        return (self.original_size - self.compressed_size) / self.original_size

    def info(self) -> Dict[str, object]:
        return {
            "algorithm": self.algorithm.value,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "compression_ratio": round(self.compression_ratio, 4),
        }

    def to_token(self) -> str:
        """Serialise to ``<tag>:<body>`` for payload framing."""
        tag = _TOKEN_TAGS[self.algorithm]
        if self.algorithm in (CompressionAlgorithm.NONE, CompressionAlgorithm.RLE):
            return f"{tag}:{self.data}"
        packed = base64.b64encode(pack_bits(self.data)).decode("ascii")
        return f"{tag}:{self.header}|{len(self.data)}|{packed}"

    @classmethod
    def from_token(cls, token: str) -> "CompressionResult":
        """
        Parse a token produced by :meth:`to_token`.

        Raises:
            ValueError: If the token is malformed
        """
        tag, separator, body = token.partition(":")
        if not separator or tag not in _TAG_ALGORITHMS:
            raise ValueError("Unknown compression token")

        algorithm = _TAG_ALGORITHMS[tag]
        if algorithm in (CompressionAlgorithm.NONE, CompressionAlgorithm.RLE):
            return cls(algorithm=algorithm, data=body, compressed_size=len(body) * 8)

        parts = body.rsplit("|", 2)
        if len(parts) != 3 or not parts[1].isdigit():
            raise ValueError("Malformed Huffman token")
        header, bit_count, packed = parts[0], int(parts[1]), parts[2]
        raw = base64.b64decode(packed.encode("ascii"), validate=True)
        if bit_count > len(raw) * 8:
            raise ValueError("Huffman token shorter than its bit count")
        bits = unpack_bits(raw, bit_count)
        return cls(algorithm=algorithm, data=bits, header=header, compressed_size=bit_count)


# ============================================================================
# Huffman Coding
# ============================================================================


@dataclass
class HuffmanNode:
    """Node of a Huffman tree; leaves carry a character."""

    freq: int
    char: Optional[str] = None
    left: Optional["HuffmanNode"] = None
    right: Optional["HuffmanNode"] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class HuffmanCoder:
    """
    Huffman coder with a serialised frequency table header.

    The tree is rebuilt identically on decompression: the table keeps the
    order of first occurrence, nodes are stably sorted by frequency and the
    two lowest are merged on every round.
    """

    def build_frequency_table(self, text: str) -> Dict[str, int]:
        table: Dict[str, int] = {}
        for char in text:
            table[char] = table.get(char, 0) + 1
        return table

    def build_tree(self, table: Dict[str, int]) -> Optional[HuffmanNode]:
        nodes = [HuffmanNode(freq=count, char=char) for char, count in table.items()]
        if not nodes:
            return None

        if len(nodes) == 1:
            # A lone symbol still needs a one-bit code
            return HuffmanNode(freq=nodes[0].freq, left=nodes[0])

        while len(nodes) > 1:
            nodes.sort(key=lambda node: node.freq)
            left = nodes.pop(0)
            right = nodes.pop(0)
            nodes.append(HuffmanNode(freq=left.freq + right.freq, left=left, right=right))

        return nodes[0]

    def generate_codes(self, root: Optional[HuffmanNode]) -> Dict[str, str]:
        codes: Dict[str, str] = {}
        if root is None:
            return codes

        stack: List[Tuple[HuffmanNode, str]] = [(root, "")]
        while stack:
            node, prefix = stack.pop()
            if node.is_leaf:
                codes[node.char] = prefix or "0"
                continue
            if node.right is not None:
                stack.append((node.right, prefix + "1"))
            if node.left is not None:
                stack.append((node.left, prefix + "0"))
        return codes

    def serialize_table(self, table: Dict[str, int]) -> str:
        return ",".join(f"{ord(char):04x}:{count}" for char, count in table.items())

    def parse_table(self, header: str) -> Dict[str, int]:
        table: Dict[str, int] = {}
        if not header:
            return table
        for pair in header.split(","):
            code, _, count = pair.partition(":")
            value = int(code, 16)
            if value > 0x10FFFF:
                raise ValueError(f"Invalid code point in Huffman header: {code}")
            table[chr(value)] = int(count)
        return table

    def compress(self, text: str) -> Tuple[str, str]:
        """Return ``(bitstring, header)`` for ``text``."""
        if not text:
            return "", ""
        table = self.build_frequency_table(text)
        codes = self.generate_codes(self.build_tree(table))
        bits = "".join(codes[char] for char in text)
        return bits, self.serialize_table(table)

    def decompress(self, bits: str, header: str) -> str:
        """
        Decode ``bits`` with the tree described by ``header``.

        Raises:
            ValueError: If the bitstream walks off the tree
        """
        if not bits:
            return ""
        root = self.build_tree(self.parse_table(header))
        if root is None:
            raise ValueError("Huffman header is empty")

        output: List[str] = []
        node = root
        for bit in bits:
            node = node.left if bit == "0" else node.right
            if node is None:
                raise ValueError("Invalid Huffman bitstream")
            if node.is_leaf:
                output.append(node.char)
                node = root
        return "".join(output)


# ============================================================================
# Run-Length Encoding
# ============================================================================


class RunLengthEncoder:
    """Run-length encoder over characters with backslash escaping."""

    def compress(self, text: str) -> str:
        if not text:
            return ""
        runs: List[str] = []
        current, count = text[0], 1
        for char in text[1:]:
            if char == current:
                count += 1
            else:
                runs.append(self._encode_run(current, count))
                current, count = char, 1
        runs.append(self._encode_run(current, count))
        return "".join(runs)

    def decompress(self, compressed: str) -> str:
        output: List[str] = []
        i = 0
        produced = 0
        length = len(compressed)
        while i < length:
            start = i
            while i < length and compressed[i] in "0123456789":
                i += 1
            count = int(compressed[start:i]) if i > start else 1
            produced += count
            if produced > MAX_OUTPUT_CHARS:
                raise ValueError("Run-length stream expands beyond the message limit")
            if i >= length:
                raise ValueError("Run-length stream ends inside a run")
            char = compressed[i]
            if char == ESCAPE:
                if i + 1 >= length:
                    raise ValueError("Dangling escape in run-length stream")
                char = compressed[i + 1]
                i += 2
            else:
                i += 1
            output.append(char * count)
        return "".join(output)

    def _encode_run(self, char: str, count: int) -> str:
        escaped = ESCAPE + char if char in _ESCAPED else char
        return f"{count}{escaped}" if count > 1 else escaped


# ============================================================================
# Hybrid Selection
# ============================================================================


class HybridCompressor:
    """Run every algorithm and keep the smallest bit count."""

    def __init__(self):
        self._huffman = HuffmanCoder()
        self._rle = RunLengthEncoder()

    @property
    def huffman(self) -> HuffmanCoder:
        return self._huffman

    @property
    def rle(self) -> RunLengthEncoder:
        return self._rle

    def compress(self, text: str) -> CompressionResult:
        results = [
            self.compress_huffman(text),
            self.compress_rle(text),
            self.compress_hybrid(text),
        ]
        # later candidates win ties
        return min(reversed(results), key=lambda result: result.compressed_size)

    def compress_huffman(self, text: str) -> CompressionResult:
        bits, header = self._huffman.compress(text)
        return CompressionResult(CompressionAlgorithm.HUFFMAN, bits, header, len(text) * 8, len(bits))

    def compress_rle(self, text: str) -> CompressionResult:
        encoded = self._rle.compress(text)
        return CompressionResult(CompressionAlgorithm.RLE, encoded, "", len(text) * 8, len(encoded) * 8)

    def compress_hybrid(self, text: str) -> CompressionResult:
        bits, header = self._huffman.compress(self._rle.compress(text))
        return CompressionResult(
            CompressionAlgorithm.HYBRID,
            bits,
            f"{HYBRID_HEADER_TAG}|{header}",
            len(text) * 8,
            len(bits),
        )

    def decompress(self, data: str, algorithm: CompressionAlgorithm, header: str) -> str:
        if algorithm == CompressionAlgorithm.NONE:
            return data
        if algorithm == CompressionAlgorithm.HUFFMAN:
            return self._huffman.decompress(data, header)
        if algorithm == CompressionAlgorithm.RLE:
            return self._rle.decompress(data)
        if algorithm == CompressionAlgorithm.HYBRID:
            tag, _, huffman_header = header.partition("|")
            if tag != HYBRID_HEADER_TAG:
                raise ValueError(f"Unknown hybrid header: {tag}")
            return self._rle.decompress(self._huffman.decompress(data, huffman_header))
        raise ValueError(f"Unknown compression algorithm: {algorithm}")


@dataclass
class CompressionRecommendation:
    """Advisory result of :meth:`AdvancedCompressionManager.recommend_strategy`."""

    algorithm: CompressionAlgorithm
    estimated_ratio: float
    reasoning: str
    entropy: float = 0.0
    unique_chars: int = 0


class AdvancedCompressionManager:
    """
    Entry point used by the envelope codec.

    Example:
        >>> manager = AdvancedCompressionManager()
        >>> result = manager.compress_message("hello hello", CompressionAlgorithm.HUFFMAN)
        >>> result.algorithm
        <CompressionAlgorithm.HUFFMAN: 'huffman'>
    """

    MIN_LEVEL = 1
    MAX_LEVEL = 9

    def __init__(self):
        self._hybrid = HybridCompressor()

    def compress_message(
        self,
        text: str,
        algorithm: CompressionAlgorithm = CompressionAlgorithm.ADAPTIVE,
        level: int = 5,
    ) -> CompressionResult:
        """
        Compress ``text`` with the requested algorithm.

        ``level`` is validated and recorded but the coders have no tunable
        effort. ADAPTIVE keeps the smallest serialised token, falling back
        to no compression for short messages where headers dominate.

        Raises:
            ValueError: If level is outside 1-9
        """
        if not self.MIN_LEVEL <= level <= self.MAX_LEVEL:
            raise ValueError(f"Compression level must be between 1 and 9, got {level}")

        if algorithm == CompressionAlgorithm.NONE:
            result = self._uncompressed(text)
        elif algorithm == CompressionAlgorithm.HUFFMAN:
            result = self._hybrid.compress_huffman(text)
        elif algorithm == CompressionAlgorithm.RLE:
            result = self._hybrid.compress_rle(text)
        elif algorithm == CompressionAlgorithm.HYBRID:
            result = self._hybrid.compress_hybrid(text)
        else:
            best = self._hybrid.compress(text)
            plain = self._uncompressed(text)
            result = best if len(best.to_token()) < len(plain.to_token()) else plain

        logger.debug(
            f"Compressed {len(text)} chars with {result.algorithm.value}, "
            f"ratio={result.compression_ratio:.2f}"
        )
        return result

    def decompress_message(self, result: CompressionResult) -> str:
        return self._hybrid.decompress(result.data, result.algorithm, result.header)

    def recommend_strategy(self, text: str) -> CompressionRecommendation:
        """Suggest an algorithm from entropy and repetition heuristics."""
        entropy = shannon_entropy(text)
        unique = len(set(text))

        if entropy < 3.0 and unique < 20:
            return CompressionRecommendation(
                CompressionAlgorithm.HUFFMAN, 0.4,
                "Low entropy and few unique characters favor Huffman coding", entropy, unique,
            )
        if self._has_consecutive_repeats(text):
            return CompressionRecommendation(
                CompressionAlgorithm.HYBRID, 0.6,
                "Consecutive repeats detected, hybrid RLE+Huffman recommended", entropy, unique,
            )
        if len(text) > 1000:
            return CompressionRecommendation(
                CompressionAlgorithm.HYBRID, 0.3,
                "Large message benefits from hybrid compression", entropy, unique,
            )
        return CompressionRecommendation(
            CompressionAlgorithm.HUFFMAN, 0.25,
            "Default Huffman coding for general text", entropy, unique,
        )

    @staticmethod
    def _uncompressed(text: str) -> CompressionResult:
        return CompressionResult(CompressionAlgorithm.NONE, text, "", len(text) * 8, len(text) * 8)

    @staticmethod
    def _has_consecutive_repeats(text: str) -> bool:
        run = 0
        for previous, char in zip(text, text[1:]):
            if char == previous:
                run += 1
                if run >= 3:
                    return True
            else:
                run = 0
        return False


__all__ = [
    "CompressionAlgorithm",
    "CompressionResult",
    "CompressionRecommendation",
    "HuffmanNode",
    "HuffmanCoder",
    "RunLengthEncoder",
    "HybridCompressor",
    "AdvancedCompressionManager",
    "shannon_entropy",
    "pack_bits",
    "unpack_bits",
]
