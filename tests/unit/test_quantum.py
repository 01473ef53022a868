"""
Unit Tests for the Quantum-Resistant Simulation

Tests the ring-LWE KEM, the WOTS/Merkle signature scheme and their
password-based composition.
"""

import base64
import json

import pytest

from cryptipic_core.crypto.quantum import (
    HashBasedSignatureSimulator,
    LatticeBasedSimulator,
    QuantumResistantManager,
)
from cryptipic_core.errors import CorruptedImage, IncorrectPassword, IntegrityViolation, ValidationError


class TestLatticeBasedSimulator:
    """Test cases for the KEM."""

    @pytest.fixture
    def kem(self):
        return LatticeBasedSimulator(security_level=128)

    def test_encapsulate_decapsulate(self, kem):
        pair = kem.generate_key_pair()
        encapsulation = kem.encapsulate(pair.public_key, b"payload")
        decapsulation = kem.decapsulate(pair.private_key, encapsulation.ciphertext)
        assert decapsulation.message == b"payload"
        assert decapsulation.shared_secret == encapsulation.shared_secret

    def test_seeded_key_generation_is_deterministic(self, kem):
        assert kem.generate_key_pair(b"\x01" * 32) == kem.generate_key_pair(b"\x01" * 32)
        assert kem.generate_key_pair(b"\x01" * 32) != kem.generate_key_pair(b"\x02" * 32)

    def test_wrong_private_key(self, kem):
        encapsulation = kem.encapsulate(kem.generate_key_pair(b"\x01" * 32).public_key, b"payload")
        other = kem.generate_key_pair(b"\x02" * 32)
        with pytest.raises(IntegrityViolation):
            kem.decapsulate(other.private_key, encapsulation.ciphertext)

    def test_level_mismatch(self, kem):
        pair = LatticeBasedSimulator(security_level=256).generate_key_pair()
        with pytest.raises(CorruptedImage):
            kem.encapsulate(pair.public_key, b"payload")

    def test_unsupported_level(self):
        with pytest.raises(ValidationError):
            LatticeBasedSimulator(security_level=64)


class TestHashBasedSignatureSimulator:
    """Test cases for WOTS signatures under a Merkle root."""

    @pytest.fixture
    def scheme(self):
        return HashBasedSignatureSimulator()

    @pytest.fixture
    def pair(self, scheme):
        return scheme.generate_key_pair(b"\x07" * 32)

    def test_sign_verify(self, scheme, pair):
        signature = scheme.sign(pair.private_key, b"message")
        assert scheme.verify(pair.public_key, b"message", signature)

    def test_other_message_fails(self, scheme, pair):
        signature = scheme.sign(pair.private_key, b"message")
        assert not scheme.verify(pair.public_key, b"massage", signature)

    def test_other_key_fails(self, scheme, pair):
        signature = scheme.sign(pair.private_key, b"message")
        other = scheme.generate_key_pair(b"\x08" * 32)
        assert not scheme.verify(other.public_key, b"message", signature)

    def test_garbage_never_raises(self, scheme, pair):
        assert not scheme.verify(pair.public_key, b"message", "not a signature")
        assert not scheme.verify("garbage", b"message", "AAAA")


class TestQuantumResistantManager:
    """Test cases for password-based quantum-resistant encryption."""

    @pytest.fixture
    def manager(self):
        return QuantumResistantManager(security_level=128, iterations=1000)

    def test_round_trip(self, manager):
        token = manager.encrypt("hello 世界", "Str0ng!Pass")
        assert manager.decrypt(token, "Str0ng!Pass") == "hello 世界"

    def test_wrong_password(self, manager):
        token = manager.encrypt("hello", "Str0ng!Pass")
        with pytest.raises(IncorrectPassword):
            manager.decrypt(token, "Wr0ng!Pass")

    def test_level_recorded(self, manager):
        token = manager.encrypt("hello", "Str0ng!Pass")
        with pytest.raises(CorruptedImage):
            QuantumResistantManager(security_level=256, iterations=1000).decrypt(token, "Str0ng!Pass")

    def test_tampered_signature(self, manager):
        document = json.loads(base64.b64decode(manager.encrypt("hello", "Str0ng!Pass")))
        signature = bytearray(base64.b64decode(document["sig"]))
        signature[10] ^= 0x01
        document["sig"] = base64.b64encode(bytes(signature)).decode()
        token = base64.b64encode(json.dumps(document).encode()).decode()
        with pytest.raises(IntegrityViolation):
            manager.decrypt(token, "Str0ng!Pass")

    def test_malformed_package(self, manager):
        with pytest.raises(CorruptedImage):
            manager.decrypt("not-a-package", "Str0ng!Pass")
