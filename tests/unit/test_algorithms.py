"""
Unit Tests for Embedding Strategies

Every strategy is exercised directly on raw bit streams, without the
envelope codec: embed, extract, capacity accounting and the registry.
"""

import numpy as np
import pytest

from cryptipic_core.errors import CapacityExceeded, CorruptedImage, UnsupportedAlgorithm
from cryptipic_core.stego.algorithms import (
    PAYLOAD_OFFSET,
    AdaptiveHybridStrategy,
    Algorithm,
    ChaoticLsbStrategy,
    LsbStrategy,
    MobileOptimizedStrategy,
    MultibitLsbStrategy,
    bits_to_bytes,
    bits_to_int,
    bytes_to_bits,
    get_strategy,
    int_to_bits,
)
from cryptipic_core.stego.chaotic import ChaoticMapOptions, ChaoticMapType


def random_bits(count, seed=1):
    return np.random.default_rng(seed).integers(0, 2, size=count, dtype=np.uint8)


class TestBitHelpers:

    def test_bytes_round_trip(self):
        data = b"\x00\xffCryptiPic"
        assert bits_to_bytes(bytes_to_bits(data)) == data

    def test_msb_first(self):
        assert bytes_to_bits(b"\x80").tolist() == [1, 0, 0, 0, 0, 0, 0, 0]

    def test_int_round_trip(self):
        assert int_to_bits(5, 4).tolist() == [0, 1, 0, 1]
        assert bits_to_int(int_to_bits(123456, 32)) == 123456


class TestAlgorithmEnum:

    def test_header_ids_follow_declaration_order(self):
        assert [a.header_id for a in Algorithm] == list(range(8))
        assert Algorithm.from_header_id(5) == Algorithm.CHAOTIC_LSB

    def test_parse(self):
        assert Algorithm.parse("DCT") == Algorithm.DCT
        assert Algorithm.parse(7) == Algorithm.ADAPTIVE_HYBRID

    @pytest.mark.parametrize("value", ["steghide", 8, -1])
    def test_unknown(self, value):
        with pytest.raises(UnsupportedAlgorithm):
            Algorithm.parse(value)


class TestSequentialStrategies:
    """Test cases for LSB, multi-bit LSB and mobile-optimized embedding."""

    def test_lsb_round_trip(self, small_image):
        strategy = LsbStrategy()
        bits = random_bits(2000)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 2000), bits)

    def test_lsb_leaves_header_area_untouched(self, small_image):
        carrier = small_image.copy()
        LsbStrategy().embed(carrier, random_bits(500))
        assert np.array_equal(carrier.reshape(-1)[:PAYLOAD_OFFSET], small_image.reshape(-1)[:PAYLOAD_OFFSET])

    def test_lsb_changes_only_bit_zero(self, small_image):
        carrier = small_image.copy()
        LsbStrategy().embed(carrier, random_bits(3000))
        diff = carrier.astype(np.int16) - small_image.astype(np.int16)
        assert np.abs(diff).max() <= 1

    @pytest.mark.parametrize("capacity", range(1, 9))
    def test_multibit_round_trip(self, small_image, capacity):
        strategy = MultibitLsbStrategy(capacity=capacity)
        bits = random_bits(1001, seed=capacity)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 1001), bits)

    def test_multibit_respects_mask(self, small_image):
        carrier = small_image.copy()
        MultibitLsbStrategy(capacity=3).embed(carrier, random_bits(900))
        high = carrier.reshape(-1) & 0xF8
        assert np.array_equal(high, small_image.reshape(-1) & 0xF8)

    @pytest.mark.parametrize("capacity", range(1, 9))
    def test_mobile_round_trip(self, small_image, capacity):
        strategy = MobileOptimizedStrategy(capacity=capacity)
        bits = random_bits(500, seed=capacity)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 500), bits)

    def test_mobile_survives_one_damaged_copy(self, small_image):
        strategy = MobileOptimizedStrategy(capacity=2)
        bits = random_bits(400)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)

        area = carrier.reshape(-1)[PAYLOAD_OFFSET:]
        first_copies = np.arange(400) * MobileOptimizedStrategy.STRIDE
        area[first_copies] ^= 0x03
        assert np.array_equal(strategy.extract(carrier, 400), bits)

    def test_mobile_survives_single_bit_noise(self, small_image):
        strategy = MobileOptimizedStrategy(capacity=3)
        bits = random_bits(400)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)

        area = carrier.reshape(-1)[PAYLOAD_OFFSET:]
        copies = strategy._copy_indices(400)
        area[copies] ^= 0x01
        assert np.array_equal(strategy.extract(carrier, 400), bits)

    def test_mobile_spacer_bytes_untouched(self, small_image):
        carrier = small_image.copy()
        MobileOptimizedStrategy(capacity=4).embed(carrier, random_bits(300))
        spacers = PAYLOAD_OFFSET + np.arange(300) * 4 + 3
        assert np.array_equal(carrier.reshape(-1)[spacers], small_image.reshape(-1)[spacers])


class TestChaoticLsbStrategy:

    @pytest.mark.parametrize("capacity", range(1, 9))
    def test_round_trip(self, small_image, capacity):
        strategy = ChaoticLsbStrategy(capacity=capacity, password="Str0ng!Pass")
        bits = random_bits(3000, seed=capacity)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 3000), bits)

    def test_bits_per_channel_is_clamped(self):
        assert ChaoticLsbStrategy(capacity=1).bits_per_channel == 1
        assert ChaoticLsbStrategy(capacity=8).bits_per_channel == 3

    @pytest.mark.parametrize("map_type", list(ChaoticMapType))
    def test_every_map(self, small_image, map_type):
        strategy = ChaoticLsbStrategy(chaotic=ChaoticMapOptions(map_type=map_type, iterations=5))
        bits = random_bits(1500)
        carrier = small_image.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 1500), bits)

    def test_alpha_and_header_untouched(self, small_image):
        carrier = small_image.copy()
        ChaoticLsbStrategy(capacity=2, password="pw").embed(carrier, random_bits(3000))
        assert np.array_equal(carrier[..., 3], small_image[..., 3])
        flat = carrier.reshape(-1)
        assert np.array_equal(flat[:PAYLOAD_OFFSET], small_image.reshape(-1)[:PAYLOAD_OFFSET])

    def test_wrong_password_scrambles(self, small_image):
        bits = random_bits(2000)
        carrier = small_image.copy()
        ChaoticLsbStrategy(password="right").embed(carrier, bits)
        assert not np.array_equal(ChaoticLsbStrategy(password="wrong").extract(carrier, 2000), bits)

    def test_capacity_limit(self, small_image):
        strategy = ChaoticLsbStrategy(capacity=1)
        limit = strategy.total_positions(small_image) // 4 * 3
        assert strategy.fits(small_image, limit)
        with pytest.raises(CapacityExceeded):
            strategy.check_capacity(small_image, limit + 3)


class TestBlockStrategies:
    """Test cases for DCT, DWT and hybrid embedding."""

    @pytest.mark.parametrize("algorithm", [Algorithm.DCT, Algorithm.DWT, Algorithm.HYBRID_DCT_DWT])
    @pytest.mark.parametrize("factory", ["pixel_factory", "smooth_factory"])
    def test_round_trip(self, request, algorithm, factory):
        pixels = request.getfixturevalue(factory)(128, 128)
        strategy = get_strategy(algorithm, password="Str0ng!Pass")
        bits = random_bits(150)
        carrier = pixels.copy()
        strategy.embed(carrier, bits)
        assert np.array_equal(strategy.extract(carrier, 150), bits)

    def test_alpha_untouched(self, medium_image):
        carrier = medium_image.copy()
        get_strategy(Algorithm.DWT).embed(carrier, random_bits(300))
        assert np.array_equal(carrier[..., 3], medium_image[..., 3])

    def test_reserved_block_skipped(self, small_image):
        strategy = get_strategy(Algorithm.DCT)
        blocks = strategy._usable_blocks(small_image)
        # the ten header pixels span the first two blocks of row 0
        assert (0, 0) not in blocks and (0, 8) not in blocks
        assert len(blocks) == (100 // 8) ** 2 - 2

    def test_header_bytes_preserved(self, medium_image):
        carrier = medium_image.copy()
        get_strategy(Algorithm.HYBRID_DCT_DWT).embed(carrier, random_bits(200))
        flat = carrier.reshape(-1)
        assert np.array_equal(flat[:PAYLOAD_OFFSET], medium_image.reshape(-1)[:PAYLOAD_OFFSET])

    def test_position_counts(self, medium_image):
        blocks = (256 // 8) ** 2 - 2
        assert get_strategy(Algorithm.DCT).total_positions(medium_image) == blocks * 3
        assert get_strategy(Algorithm.HYBRID_DCT_DWT).total_positions(medium_image) == blocks
        assert get_strategy(Algorithm.HYBRID_DCT_DWT).required_positions(medium_image, 7) == 3


class TestAdaptiveHybridStrategy:

    @pytest.mark.parametrize("variant", AdaptiveHybridStrategy.VARIANTS)
    @pytest.mark.parametrize("redundancy", [1, 2, 3, 4])
    def test_round_trip(self, medium_image, variant, redundancy):
        strategy = AdaptiveHybridStrategy(capacity=2, password="pw", variant=variant, redundancy=redundancy)
        bits = random_bits(120)
        carrier = medium_image.copy()
        strategy.embed(carrier, bits)

        reader = AdaptiveHybridStrategy(capacity=2, password="pw")
        reader.prepare_extract(carrier)
        assert reader.variant == variant
        assert reader.redundancy == redundancy
        assert np.array_equal(reader.extract(carrier, 120), bits)

    def test_strategy_byte_layout(self):
        strategy = AdaptiveHybridStrategy(variant=Algorithm.HYBRID_DCT_DWT, redundancy=3)
        assert strategy.strategy_byte() == 0b01100000

    def test_invalid_strategy_byte(self, medium_image):
        carrier = medium_image.copy()
        flat = carrier.reshape(-1)
        flat[PAYLOAD_OFFSET:PAYLOAD_OFFSET + 8] = (flat[PAYLOAD_OFFSET:PAYLOAD_OFFSET + 8] & 0xFE) | int_to_bits(0xC0, 8)
        with pytest.raises(CorruptedImage):
            AdaptiveHybridStrategy().prepare_extract(carrier)

    def test_majority_vote_repairs_one_copy(self, medium_image):
        strategy = AdaptiveHybridStrategy(variant=Algorithm.CHAOTIC_LSB, redundancy=3)
        bits = random_bits(90)
        carrier = medium_image.copy()
        strategy.embed(carrier, bits)

        inner = strategy._inner()
        repeated = np.repeat(bits, 3)
        repeated[::3] ^= 1
        inner.embed(carrier, repeated)
        assert np.array_equal(strategy.extract(carrier, 90), bits)

    def test_unsupported_variant(self):
        with pytest.raises(UnsupportedAlgorithm):
            AdaptiveHybridStrategy(variant=Algorithm.DCT)


class TestRegistry:

    def test_every_algorithm_registered(self):
        for algorithm in Algorithm:
            assert get_strategy(algorithm).algorithm == algorithm

    def test_lookup_by_header_id(self):
        assert isinstance(get_strategy(3, capacity=4), MultibitLsbStrategy)

    @pytest.mark.parametrize("capacity", [0, 9])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(CorruptedImage):
            get_strategy(Algorithm.LSB, capacity=capacity)

    def test_unknown_id(self):
        with pytest.raises(UnsupportedAlgorithm):
            get_strategy(12)
