"""
CryptiPic Key Derivation Module

Password-based key derivation shared by every cipher in the crypto layer.
All keys are derived with PBKDF2-HMAC from the ``cryptography`` package;
the iteration count is part of each cipher's wire metadata so a decoder
can always re-derive the exact key the encoder used.

Module Structure:
- KdfType: Enum of supported PBKDF2 hash functions
- KdfResult: Dataclass containing derivation output and parameters
- PBKDF2Hasher: PBKDF2 key derivation with salt generation and verification
- derive_key: Convenience wrapper returning raw key bytes

Example Usage:
    >>> from cryptipic_core.crypto.kdf import PBKDF2Hasher
    >>> hasher = PBKDF2Hasher(iterations=10000)
    >>> result = hasher.hash("my_password")
    >>> hasher.verify("my_password", result)
    True
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


logger = logging.getLogger(__name__)


class KdfType(Enum):
    """
    Supported PBKDF2 variants.

    Enum Values:
        PBKDF2_SHA256: PBKDF2 with HMAC-SHA-256 (used by every cipher)
        PBKDF2_SHA512: PBKDF2 with HMAC-SHA-512
    """
    PBKDF2_SHA256 = "pbkdf2-sha256"
    PBKDF2_SHA512 = "pbkdf2-sha512"


@dataclass
class KdfResult:
    """
    Result of a key derivation operation.

    Attributes:
        derived_key: The derived key bytes
        salt: The salt used during derivation
        algorithm: The KDF algorithm used
        iterations: Number of PBKDF2 iterations performed
    """
    derived_key: bytes
    salt: bytes
    algorithm: KdfType
    iterations: int


class PBKDF2Hasher:
    """
    PBKDF2 implementation for password-based key derivation.

    The default matches the 10 000-round AES256Crypto format; the defense
    envelope derives with 100 000 rounds and more.

    Usage:
        >>> hasher = PBKDF2Hasher(algorithm="sha256", iterations=100000)
        >>> result = hasher.hash("my_password", salt_length=32)
        >>> len(result.derived_key)
        32
    """

    DEFAULT_ITERATIONS = 10000

    MIN_ITERATIONS = 1000

    DEFAULT_SALT_LENGTH = 32

    _HASHES = {
        "sha256": (hashes.SHA256, KdfType.PBKDF2_SHA256),
        "sha512": (hashes.SHA512, KdfType.PBKDF2_SHA512),
    }

    def __init__(self, algorithm: str = "sha256", iterations: int = DEFAULT_ITERATIONS):
        """
        Initialize PBKDF2 hasher with specified parameters.

        Args:
            algorithm: Hash algorithm to use for HMAC ("sha256" or "sha512")
            iterations: Number of PBKDF2 iterations

        Raises:
            ValueError: If algorithm is unsupported or iterations are too low
        """
        if algorithm not in self._HASHES:
            raise ValueError(
                f"Unsupported algorithm: {algorithm}. "
                "Must be 'sha256' or 'sha512'"
            )

        if iterations < self.MIN_ITERATIONS:
            raise ValueError(
                f"Iterations must be at least {self.MIN_ITERATIONS}, got {iterations}"
            )

        self._algorithm = algorithm
        self._iterations = iterations

    @property
    def iterations(self) -> int:
        return self._iterations

    def hash(
        self,
        password: str,
        salt: Optional[bytes] = None,
        key_length: int = 32,
        salt_length: int = DEFAULT_SALT_LENGTH,
    ) -> KdfResult:
        """
        Derive a key from a password.

        Args:
            password: The password string to derive the key from
            salt: Optional salt; a random ``salt_length`` salt is generated if None
            key_length: Length of the derived key in bytes
            salt_length: Length of a generated salt in bytes

        Returns:
            KdfResult with the derived key and the parameters used
        """
        if salt is None:
            salt = secrets.token_bytes(salt_length)

        hash_cls, kdf_type = self._HASHES[self._algorithm]
        kdf = PBKDF2HMAC(
            algorithm=hash_cls(),
            length=key_length,
            salt=salt,
            iterations=self._iterations,
            backend=default_backend(),
        )
        derived_key = kdf.derive(password.encode("utf-8"))

        return KdfResult(
            derived_key=derived_key,
            salt=salt,
            algorithm=kdf_type,
            iterations=self._iterations,
        )

    def verify(self, password: str, result: KdfResult) -> bool:
        """Re-derive with the stored salt and compare in constant time."""
        candidate = self.hash(password, salt=result.salt, key_length=len(result.derived_key))
        return hmac.compare_digest(candidate.derived_key, result.derived_key)


def derive_key(password: str, salt: bytes, iterations: int, key_length: int = 32) -> bytes:
    """Derive ``key_length`` bytes with PBKDF2-HMAC-SHA256."""
    return PBKDF2Hasher("sha256", iterations).hash(password, salt=salt, key_length=key_length).derived_key


__all__ = [
    "KdfType",
    "KdfResult",
    "PBKDF2Hasher",
    "derive_key",
]
