"""
Unit Tests for Message Compression

Tests Huffman coding, run-length encoding, hybrid selection, token
serialisation and the compression manager used by the codec.
"""

import random
import string

import pytest

from cryptipic_core.stego.compression import (
    AdvancedCompressionManager,
    CompressionAlgorithm,
    CompressionResult,
    HuffmanCoder,
    HybridCompressor,
    RunLengthEncoder,
    pack_bits,
    shannon_entropy,
    unpack_bits,
)


SAMPLES = [
    "",
    "a",
    "aaaaaaaa",
    "hello hello hello",
    "héllo 世界",
    "digits 1112223334 and \\ backslashes \\\\",
    "".join(random.Random(42).choice(string.printable) for _ in range(1000)),
]


class TestBitPacking:

    def test_pack_pads_to_whole_bytes(self):
        assert pack_bits("1") == b"\x80"
        assert pack_bits("") == b""

    def test_unpack_truncates(self):
        assert unpack_bits(b"\xa0", 3) == "101"
        assert unpack_bits(b"\x00\x01", 16) == "0000000000000001"


class TestHuffmanCoder:
    """Test cases for Huffman coding."""

    @pytest.fixture
    def coder(self):
        return HuffmanCoder()

    @pytest.mark.parametrize("text", SAMPLES)
    def test_round_trip(self, coder, text):
        bits, header = coder.compress(text)
        assert coder.decompress(bits, header) == text

    def test_single_symbol_gets_a_code(self, coder):
        bits, _ = coder.compress("zzzz")
        assert len(bits) == 4

    def test_frequent_symbols_get_shorter_codes(self, coder):
        table = coder.build_frequency_table("aaaaaaab")
        codes = coder.generate_codes(coder.build_tree(table))
        assert len(codes["a"]) <= len(codes["b"])

    def test_table_serialisation(self, coder):
        table = coder.build_frequency_table("a|b:c,c")
        assert coder.parse_table(coder.serialize_table(table)) == table

    def test_invalid_bitstream(self, coder):
        _, header = coder.compress("zzzz")
        with pytest.raises(ValueError):
            coder.decompress("1", header)
        with pytest.raises(ValueError):
            coder.decompress("0", "")

    def test_invalid_code_point(self, coder):
        with pytest.raises(ValueError):
            coder.parse_table("110000:1")


class TestRunLengthEncoder:
    """Test cases for run-length encoding."""

    @pytest.fixture
    def rle(self):
        return RunLengthEncoder()

    @pytest.mark.parametrize("text", SAMPLES)
    def test_round_trip(self, rle, text):
        assert rle.decompress(rle.compress(text)) == text

    def test_runs_are_counted(self, rle):
        assert rle.compress("aaab") == "3ab"

    def test_digits_are_escaped(self, rle):
        encoded = rle.compress("1111")
        assert encoded == "4\\1"
        assert rle.decompress(encoded) == "1111"

    @pytest.mark.parametrize("broken", ["3", "\\", "99999999999a"])
    def test_malformed_stream(self, rle, broken):
        with pytest.raises(ValueError):
            rle.decompress(broken)


class TestHybridCompressor:

    @pytest.mark.parametrize("text", SAMPLES)
    def test_every_algorithm_round_trips(self, text):
        compressor = HybridCompressor()
        for result in (
            compressor.compress_huffman(text),
            compressor.compress_rle(text),
            compressor.compress_hybrid(text),
            compressor.compress(text),
        ):
            assert compressor.decompress(result.data, result.algorithm, result.header) == text

    def test_picks_smallest(self):
        compressor = HybridCompressor()
        text = "a" * 200 + "b" * 200
        best = compressor.compress(text)
        sizes = [
            compressor.compress_huffman(text).compressed_size,
            compressor.compress_rle(text).compressed_size,
            compressor.compress_hybrid(text).compressed_size,
        ]
        assert best.compressed_size == min(sizes)

    def test_unknown_hybrid_header(self):
        with pytest.raises(ValueError):
            HybridCompressor().decompress("0", CompressionAlgorithm.HYBRID, "OTHER|a:1")


class TestCompressionResult:
    """Test cases for token serialisation."""

    @pytest.mark.parametrize("algorithm", [a for a in CompressionAlgorithm if a != CompressionAlgorithm.ADAPTIVE])
    @pytest.mark.parametrize("text", SAMPLES)
    def test_token_round_trip(self, algorithm, text):
        manager = AdvancedCompressionManager()
        result = manager.compress_message(text, algorithm)
        parsed = CompressionResult.from_token(result.to_token())
        assert parsed.algorithm == algorithm
        assert manager.decompress_message(parsed) == text

    @pytest.mark.parametrize("token", ["", "X:abc", "no separator", "H:abc", "H:a:1|99|AA=="])
    def test_malformed_token(self, token):
        with pytest.raises(ValueError):
            CompressionResult.from_token(token)

    def test_ratio(self):
        result = CompressionResult(CompressionAlgorithm.HUFFMAN, "0101", "", 80, 40)
        assert result.compression_ratio == 0.5
        assert result.info()["compression_ratio"] == 0.5
        assert CompressionResult(CompressionAlgorithm.NONE, "").compression_ratio == 0.0


class TestAdvancedCompressionManager:
    """Test cases for the manager used by the codec."""

    @pytest.fixture
    def manager(self):
        return AdvancedCompressionManager()

    @pytest.mark.parametrize("text", SAMPLES)
    def test_adaptive_round_trip(self, manager, text):
        result = manager.compress_message(text)
        assert result.algorithm != CompressionAlgorithm.ADAPTIVE
        assert manager.decompress_message(CompressionResult.from_token(result.to_token())) == text

    def test_adaptive_keeps_short_text_plain(self, manager):
        assert manager.compress_message("HELLO").algorithm == CompressionAlgorithm.NONE

    def test_adaptive_compresses_repetitive_text(self, manager):
        text = "abcabcabc " * 200
        result = manager.compress_message(text)
        assert result.algorithm != CompressionAlgorithm.NONE
        assert len(result.to_token()) < len(text)

    @pytest.mark.parametrize("level", [0, 10, -1])
    def test_invalid_level(self, manager, level):
        with pytest.raises(ValueError):
            manager.compress_message("text", level=level)

    def test_recommendations(self, manager):
        assert manager.recommend_strategy("aaaa bbbb").algorithm == CompressionAlgorithm.HUFFMAN
        assert manager.recommend_strategy("x" * 30 + string.ascii_letters).algorithm == CompressionAlgorithm.HYBRID
        assert manager.recommend_strategy(string.ascii_letters + string.digits).reasoning

    def test_entropy(self):
        assert shannon_entropy("") == 0.0
        assert shannon_entropy("aaaa") == 0.0
        assert shannon_entropy("ab") == pytest.approx(1.0)
