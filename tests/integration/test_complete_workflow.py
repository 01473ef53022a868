"""
Integration Tests for the CryptiPic Complete Workflow

This module contains integration tests that run the envelope codec end
to end: strategy selection, compression, encryption, framing,
embedding and the reverse path, including decoys and expiry.
"""

import json

import numpy as np
import pytest

from cryptipic_core import (
    CapacityExceeded,
    DecoyNotFound,
    IncorrectPassword,
    IntegrityViolation,
    MessageExpired,
    NoHiddenMessage,
    RateLimitExceeded,
    ValidationError,
)
from cryptipic_core.codec import (
    DecodeStatus,
    CompressionOptions,
    DecoyMessage,
    EncryptionOptions,
    ExpiryOptions,
    OperationRateLimiter,
    SteganographyCodec,
    SteganographyOptions,
    ViewLedger,
    decode,
    encode,
    encode_with_decoys,
    estimate_capacity,
    load_options,
)
from cryptipic_core.codec.header import read_header
from cryptipic_core.stego import Algorithm, from_flat, load_rgba, save_png


PASSWORD = "Str0ng!Pass"
DECOY_PASSWORD = "Dec0y!Pass"

BLOCK_ALGORITHMS = [Algorithm.DCT, Algorithm.DWT, Algorithm.HYBRID_DCT_DWT, Algorithm.ADAPTIVE_HYBRID]
PIXEL_ALGORITHMS = [Algorithm.LSB, Algorithm.MULTIBIT_LSB, Algorithm.MOBILE_OPTIMIZED, Algorithm.CHAOTIC_LSB]


class TestScenarios:
    """The reference workflows on a 100x100 carrier."""

    def test_plain_lsb(self, small_image):
        stego = encode(small_image, "HELLO", options=SteganographyOptions(algorithm="lsb"))
        result = decode(stego)
        assert result.status == DecodeStatus.DECODED
        assert result.message == "HELLO"
        assert result.algorithm == Algorithm.LSB
        assert not result.metadata.is_decoy

    def test_password_multibit(self, small_image):
        options = SteganographyOptions(algorithm="multibit-lsb", capacity=3)
        stego = encode(small_image, "HELLO", PASSWORD, options)
        assert decode(stego, PASSWORD).message == "HELLO"
        with pytest.raises(IncorrectPassword):
            decode(stego, "Wr0ng!Pass")

    def test_decoys(self, small_image):
        decoy = DecoyMessage("Cover story", DECOY_PASSWORD, 1)
        stego = encode_with_decoys(small_image, "TopSecret", PASSWORD, [decoy])

        opened = decode(stego, DECOY_PASSWORD, decoy_index=1)
        assert opened.message == "Cover story"
        assert opened.decoy_index == 1
        assert opened.metadata.is_decoy

        assert decode(stego, PASSWORD).message == "TopSecret"


class TestAlgorithmRoundTrips:

    @pytest.mark.parametrize("algorithm", PIXEL_ALGORITHMS)
    @pytest.mark.parametrize("password", [None, PASSWORD])
    def test_pixel_algorithms(self, medium_image, algorithm, password):
        # Mobile-optimized spends four positions per bit and stops at a quarter of the carrier
        options = SteganographyOptions(algorithm=algorithm, capacity=2)
        stego = encode(medium_image, "Attack at dawn", password, options)
        result = decode(stego, password)
        assert result.message == "Attack at dawn"
        assert result.algorithm == algorithm

    @pytest.mark.parametrize("algorithm", BLOCK_ALGORITHMS)
    @pytest.mark.parametrize("password", [None, PASSWORD])
    def test_block_algorithms(self, large_smooth_image, algorithm, password):
        options = SteganographyOptions(algorithm=algorithm, capacity=1)
        stego = encode(large_smooth_image, "Attack at dawn", password, options)
        result = decode(stego, password)
        assert result.message == "Attack at dawn"
        assert result.algorithm == algorithm

    @pytest.mark.parametrize("capacity", [1, 4, 8])
    def test_multibit_capacities(self, small_image, capacity):
        options = SteganographyOptions(algorithm="multibit-lsb", capacity=capacity)
        stego = encode(small_image, "capacity check", options=options)
        assert decode(stego).message == "capacity check"
        assert read_header(stego).capacity == capacity

    def test_chaotic_settings_must_match(self, small_image):
        options = SteganographyOptions.from_dict({"algorithm": "chaotic-lsb", "chaotic": {"map_type": "tent"}})
        stego = encode(small_image, "tent positions", PASSWORD, options)
        assert decode(stego, PASSWORD, options=options).message == "tent positions"
        with pytest.raises(IncorrectPassword):
            decode(stego, PASSWORD)

    def test_unicode_and_long_messages(self, medium_image):
        message = "Grüße aus Köln 🌍 " * 40
        stego = encode(medium_image, message, PASSWORD)
        assert decode(stego, PASSWORD).message == message

    def test_flat_canvas_buffer(self, small_image):
        pixels = from_flat(small_image.tobytes(), 100, 100)
        assert pixels.shape == (100, 100, 4)
        stego = encode(pixels, "HELLO")
        assert decode(from_flat(stego.tobytes(), 100, 100)).message == "HELLO"
        with pytest.raises(ValidationError):
            from_flat(bytes(100), 100, 100)

    def test_png_file_round_trip(self, sample_image_file, temp_directory):
        pixels = load_rgba(sample_image_file)
        stego = encode(pixels, "on disk", PASSWORD)
        path = save_png(stego, temp_directory / "stego.png")
        assert decode(load_rgba(path), PASSWORD).message == "on disk"


class TestEncryption:
    """Test cases for every cipher through the full pipeline."""

    @pytest.mark.parametrize("cipher", ["aes", "chacha20", "enhanced-aes256"])
    def test_ciphers(self, medium_image, cipher):
        options = SteganographyOptions(encryption=EncryptionOptions(algorithm=cipher))
        stego = encode(medium_image, "classified", PASSWORD, options)
        result = decode(stego, PASSWORD)
        assert result.message == "classified"
        assert result.metadata.encryption == cipher
        with pytest.raises(IncorrectPassword):
            decode(stego, "Wr0ng!Pass")

    def test_quantum_resistant(self, pixel_factory):
        carrier = pixel_factory(512, 512)
        options = SteganographyOptions(encryption=EncryptionOptions(quantum_resistant=True))
        stego = encode(carrier, "post-quantum", PASSWORD, options)
        result = decode(stego, PASSWORD)
        assert result.message == "post-quantum"
        assert result.metadata.encryption == "quantum-resistant"

    def test_classification_travels_with_message(self, medium_image):
        options = SteganographyOptions(
            classification="secret",
            encryption=EncryptionOptions(algorithm="enhanced-aes256"),
        )
        stego = encode(medium_image, "eyes only", PASSWORD, options)
        assert decode(stego, PASSWORD).classification == "SECRET"

    def test_pending_without_password(self, small_image):
        stego = encode(small_image, "HELLO", PASSWORD)
        result = decode(stego)
        assert result.status == DecodeStatus.ENCRYPTED_PENDING
        assert result.encrypted_pending
        assert result.message is None
        assert result.metadata.encryption == "aes"

    def test_password_on_plain_message_is_ignored(self, small_image):
        stego = encode(small_image, "HELLO")
        assert decode(stego, PASSWORD).message == "HELLO"


class TestIntegrity:

    def test_tampered_payload(self, small_image):
        stego = encode(small_image, "HELLO", options=SteganographyOptions(algorithm="lsb"))
        length = read_header(stego).length
        # Low bit of the last payload character, just before the terminator
        stego.reshape(-1)[40 + length - 9] ^= 1
        with pytest.raises(IntegrityViolation):
            decode(stego)

    def test_clean_carrier(self, small_image):
        with pytest.raises(NoHiddenMessage):
            decode(small_image)

    def test_capacity_error_leaves_carrier_untouched(self, pixel_factory):
        carrier = pixel_factory(10, 10)
        original = carrier.copy()
        with pytest.raises(CapacityExceeded):
            encode(carrier, "x" * 500)
        np.testing.assert_array_equal(carrier, original)

    def test_encode_returns_a_copy(self, small_image):
        original = small_image.copy()
        stego = encode(small_image, "HELLO")
        np.testing.assert_array_equal(small_image, original)
        assert not np.array_equal(stego, original)

    def test_only_low_bits_change(self, small_image):
        stego = encode(small_image, "HELLO", options=SteganographyOptions(algorithm="multibit-lsb", capacity=2))
        diff = np.abs(stego.astype(np.int16) - small_image.astype(np.int16))
        assert diff.max() <= 3

    @pytest.mark.parametrize("message", ["", "x" * 100001, "abc\ud800"])
    def test_invalid_messages(self, small_image, message):
        with pytest.raises(ValidationError):
            encode(small_image, message)

    def test_invalid_carrier(self):
        with pytest.raises(ValidationError):
            encode(np.zeros((10, 10, 3), dtype=np.uint8), "HELLO")


class TestExpiry:
    """Test cases for time and view expiry."""

    def test_future_time(self, small_image):
        options = SteganographyOptions(expiry=ExpiryOptions("time", 4102444800000))
        stego = encode(small_image, "still valid", options=options)
        assert decode(stego).message == "still valid"

    def test_past_time(self, small_image):
        options = SteganographyOptions(expiry=ExpiryOptions("time", 1))
        stego = encode(small_image, "too late", PASSWORD, options)
        with pytest.raises(MessageExpired):
            decode(stego, PASSWORD)

    def test_view_limit_with_ledger(self, small_image):
        options = SteganographyOptions(expiry=ExpiryOptions("views", 2))
        stego = encode(small_image, "twice only", PASSWORD, options)
        ledger = ViewLedger()
        codec = SteganographyCodec(view_ledger=ledger)

        assert codec.decode(stego, PASSWORD).message == "twice only"
        assert codec.decode(stego, PASSWORD).message == "twice only"
        with pytest.raises(MessageExpired):
            codec.decode(stego, PASSWORD)

    def test_failed_decodes_do_not_count_views(self, small_image):
        options = SteganographyOptions(expiry=ExpiryOptions("views", 1))
        stego = encode(small_image, "once", PASSWORD, options)
        ledger = ViewLedger()
        with pytest.raises(IncorrectPassword):
            decode(stego, "Wr0ng!Pass", view_ledger=ledger)
        assert decode(stego, PASSWORD, view_ledger=ledger).message == "once"

    def test_views_unenforced_without_ledger(self, small_image):
        options = SteganographyOptions(expiry=ExpiryOptions("views", 1))
        stego = encode(small_image, "no ledger", options=options)
        for _ in range(3):
            assert decode(stego).message == "no ledger"

    def test_settings_file_expiry(self, small_image, temp_directory):
        path = temp_directory / "settings.json"
        path.write_text(json.dumps({"algorithm": "lsb", "expiry": {"type": "time", "value": 4102444800000}}))
        stego = encode(small_image, "from settings", options=load_options(path))
        assert decode(stego).message == "from settings"

        path.write_text(json.dumps({"algorithm": "lsb", "expiry": {"type": "time", "value": 4102444800000.0}}))
        with pytest.raises(ValidationError):
            encode(small_image, "from settings", options=load_options(path))


class TestDecoys:

    @pytest.fixture
    def decoy_image(self, medium_image):
        decoys = [
            DecoyMessage("Cover story", DECOY_PASSWORD, 1),
            DecoyMessage("Shopping list", None, 3),
        ]
        options = SteganographyOptions(algorithm="multibit-lsb", capacity=2)
        return encode_with_decoys(medium_image, "TopSecret", PASSWORD, decoys, options)

    def test_every_slot_opens(self, decoy_image):
        assert decode(decoy_image, PASSWORD).message == "TopSecret"
        assert decode(decoy_image, DECOY_PASSWORD, decoy_index=1).message == "Cover story"
        assert decode(decoy_image, decoy_index=3).message == "Shopping list"

    def test_missing_slot(self, decoy_image):
        with pytest.raises(DecoyNotFound):
            decode(decoy_image, DECOY_PASSWORD, decoy_index=2)

    def test_wrong_password_for_slot(self, decoy_image):
        with pytest.raises(DecoyNotFound):
            decode(decoy_image, PASSWORD, decoy_index=1)

    def test_pending_decoy(self, decoy_image):
        result = decode(decoy_image, decoy_index=1)
        assert result.encrypted_pending

    def test_decoy_rules(self, medium_image):
        with pytest.raises(ValidationError):
            encode_with_decoys(medium_image, "main", PASSWORD, [
                DecoyMessage("a", None, 1),
                DecoyMessage("b", None, 1),
            ])
        with pytest.raises(ValidationError):
            DecoyMessage("a", None, 4)

    def test_without_decoys_falls_back_to_encode(self, small_image):
        stego = encode_with_decoys(small_image, "HELLO", None, [])
        assert decode(stego).message == "HELLO"


class TestRateLimitingAndCapacity:

    def test_rate_limiter(self, small_image):
        limiter = OperationRateLimiter({"encode": 1, "decode": 1})
        codec = SteganographyCodec(rate_limiter=limiter, client_id="tester")
        stego = codec.encode(small_image, "HELLO")
        with pytest.raises(RateLimitExceeded):
            codec.encode(small_image, "HELLO")
        codec.decode(stego)
        with pytest.raises(RateLimitExceeded):
            codec.decode(stego)

    def test_estimate_capacity(self, small_image):
        capacities = estimate_capacity(small_image)
        assert set(capacities) == {a.value for a in Algorithm}
        assert capacities["lsb"] == (small_image.size - 40) // 4 // 8
        assert capacities["multibit-lsb"] > capacities["lsb"]

    def test_estimate_matches_encode(self, small_image):
        limit = estimate_capacity(small_image)["lsb"]
        assert limit > 0
        # A message whose framed size is well past the estimate is refused
        with pytest.raises(CapacityExceeded):
            encode(small_image, "".join(chr(0x4E00 + i) for i in range(limit)),
                   options=SteganographyOptions(algorithm="lsb", compression=CompressionOptions("none")))
