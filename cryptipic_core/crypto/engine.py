"""
CryptiPic Cryptographic Engine - Cipher Dispatch Module.

This module provides the single entry point the envelope codec uses for
password-based encryption. It maps an encryption algorithm name to one of
the concrete ciphers of the crypto layer and returns self-describing text
tokens that can be framed directly into a steganographic payload.

Supported algorithms:
    - aes: AES256Crypto (PBKDF2-SHA256, AES-CBC, PKCS7)
    - chacha20: ChaCha20-Poly1305 with a PBKDF2-derived key
    - enhanced-aes256: HMAC-protected defense envelope
    - quantum-resistant: lattice KEM + hash-based signature simulation

Example Usage:
    >>> from cryptipic_core.crypto import CryptoEngine, EncryptionAlgorithm
    >>> engine = CryptoEngine(strength=256)
    >>> result = engine.encrypt("Secret message", "password", EncryptionAlgorithm.AES)
    >>> engine.decrypt(result.token, "password", result.algorithm).plaintext
    'Secret message'
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..errors import CorruptedImage, IncorrectPassword, UnsupportedAlgorithm, ValidationError
from .aes256 import AES256Crypto, AESOptions
from .defense import ClassificationLevel, DefenseEnvelope
from .kdf import derive_key
from .quantum import QuantumResistantManager


logger = logging.getLogger(__name__)


class EncryptionAlgorithm(Enum):
    """Encryption algorithms selectable through SteganographyOptions."""

    AES = "aes"
    CHACHA20 = "chacha20"
    ENHANCED_AES256 = "enhanced-aes256"
    QUANTUM_RESISTANT = "quantum-resistant"

    @classmethod
    def parse(cls, value: Union[str, "EncryptionAlgorithm"]) -> "EncryptionAlgorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise UnsupportedAlgorithm(f"Unsupported encryption algorithm: {value}") from exc


def resolve_algorithm(algorithm: Union[str, EncryptionAlgorithm], quantum_resistant: bool = False) -> EncryptionAlgorithm:
    """Effective cipher: the quantum flag overrides the named algorithm."""
    if quantum_resistant:
        return EncryptionAlgorithm.QUANTUM_RESISTANT
    return EncryptionAlgorithm.parse(algorithm)


@dataclass
class EncryptionResult:
    """
    Result of an encryption operation.

    Attributes:
        token: ASCII token carrying ciphertext and its parameters
        algorithm: The algorithm used
        metadata: Parameters a decoder needs beyond the token itself
    """

    token: str
    algorithm: EncryptionAlgorithm
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DecryptionResult:
    """
    Result of a decryption operation.

    Attributes:
        plaintext: The decrypted text
        algorithm: The algorithm used
        classification: Classification carried by a defense envelope
    """

    plaintext: str
    algorithm: EncryptionAlgorithm
    classification: Optional[str] = None


class ChaCha20Crypto:
    """
    ChaCha20-Poly1305 with a PBKDF2-SHA256 key.

    Token: base64(salt 16 | nonce 12 | ciphertext + tag)
    """

    SALT_LENGTH = 16
    NONCE_LENGTH = 12

    def __init__(self, iterations: int = 10000):
        self.iterations = iterations

    def encrypt(self, plaintext: str, password: str) -> str:
        salt = os.urandom(self.SALT_LENGTH)
        nonce = os.urandom(self.NONCE_LENGTH)
        key = derive_key(password, salt, self.iterations)
        sealed = ChaCha20Poly1305(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(salt + nonce + sealed).decode("ascii")

    def decrypt(self, token: str, password: str) -> str:
        try:
            raw = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise CorruptedImage("Encrypted payload is not valid base64") from exc

        header = self.SALT_LENGTH + self.NONCE_LENGTH
        if len(raw) < header + 16:
            raise CorruptedImage("Encrypted payload is truncated")

        salt, nonce, sealed = raw[:self.SALT_LENGTH], raw[self.SALT_LENGTH:header], raw[header:]
        key = derive_key(password, salt, self.iterations)
        try:
            return ChaCha20Poly1305(key).decrypt(nonce, sealed, None).decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as exc:
            raise IncorrectPassword("Decryption failed: incorrect password") from exc


class CryptoEngine:
    """
    Cipher dispatcher for the envelope codec.

    Attributes:
        strength: AES key size in bits, also the quantum security level
        defense_iterations: PBKDF2 rounds for the defense envelope
        classification: Classification written into defense envelopes

    Example:
        >>> engine = CryptoEngine(defense_iterations=100000)
        >>> result = engine.encrypt("Data", "pw", "enhanced-aes256")
        >>> engine.decrypt(result.token, "pw", "enhanced-aes256", result.metadata).plaintext
        'Data'
    """

    def __init__(
        self,
        strength: int = 256,
        defense_iterations: int = 100000,
        classification: Union[str, ClassificationLevel] = ClassificationLevel.UNCLASSIFIED,
    ):
        self.strength = strength
        self.defense_iterations = defense_iterations
        self.classification = ClassificationLevel.parse(classification)

    def _defense(self, iterations: Optional[int] = None) -> DefenseEnvelope:
        return DefenseEnvelope(iterations=iterations or self.defense_iterations)

    def encrypt(
        self,
        plaintext: str,
        password: str,
        algorithm: Union[str, EncryptionAlgorithm] = EncryptionAlgorithm.AES,
    ) -> EncryptionResult:
        """
        Encrypt ``plaintext`` under ``password``.

        Raises:
            UnsupportedAlgorithm: If the algorithm name is unknown
        """
        algorithm = EncryptionAlgorithm.parse(algorithm)
        metadata: Dict[str, Any] = {}

        if algorithm == EncryptionAlgorithm.AES:
            token = AES256Crypto(AESOptions(key_size=self.strength)).encrypt(plaintext, password)
        elif algorithm == EncryptionAlgorithm.CHACHA20:
            token = ChaCha20Crypto().encrypt(plaintext, password)
        elif algorithm == EncryptionAlgorithm.ENHANCED_AES256:
            token = self._defense().encrypt(plaintext, password, self.classification)
            metadata["it"] = self.defense_iterations
        else:
            token = QuantumResistantManager(security_level=self.strength).encrypt(plaintext, password)
            metadata["lvl"] = self.strength

        logger.debug(f"Encrypted {len(plaintext)} chars with {algorithm.value}")
        return EncryptionResult(token=token, algorithm=algorithm, metadata=metadata)

    def decrypt(
        self,
        token: str,
        password: str,
        algorithm: Union[str, EncryptionAlgorithm] = EncryptionAlgorithm.AES,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DecryptionResult:
        """
        Decrypt a token produced by :meth:`encrypt`.

        Args:
            token: Token text
            password: Password used at encryption time
            algorithm: Algorithm recorded in the envelope metadata
            metadata: Extra parameters recorded at encryption time

        Raises:
            IncorrectPassword: If the password does not decrypt the token
            IntegrityViolation: If an HMAC or signature check fails
            CorruptedImage: If the token cannot be parsed
        """
        algorithm = EncryptionAlgorithm.parse(algorithm)
        metadata = metadata or {}

        if algorithm == EncryptionAlgorithm.AES:
            return DecryptionResult(AES256Crypto().decrypt(token, password), algorithm)

        if algorithm == EncryptionAlgorithm.CHACHA20:
            return DecryptionResult(ChaCha20Crypto().decrypt(token, password), algorithm)

        try:
            if algorithm == EncryptionAlgorithm.ENHANCED_AES256:
                cipher = self._defense(self._int_param(metadata, "it"))
            else:
                cipher = QuantumResistantManager(security_level=self._int_param(metadata, "lvl") or self.strength)
        except ValidationError as exc:
            raise CorruptedImage("Recorded encryption parameters are out of range") from exc

        if algorithm == EncryptionAlgorithm.ENHANCED_AES256:
            opened = cipher.decrypt(token, password)
            return DecryptionResult(opened.message, algorithm, opened.classification.value)

        return DecryptionResult(cipher.decrypt(token, password), algorithm)

    @staticmethod
    def _int_param(metadata: Dict[str, Any], key: str) -> Optional[int]:
        value = metadata.get(key)
        if value is None:
            return None
        if not isinstance(value, int):
            raise CorruptedImage(f"Encryption parameter {key} is malformed", details={key: value})
        return value


__all__ = [
    "EncryptionAlgorithm",
    "EncryptionResult",
    "DecryptionResult",
    "ChaCha20Crypto",
    "CryptoEngine",
    "resolve_algorithm",
]
