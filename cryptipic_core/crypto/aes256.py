"""
AES256Crypto

Password-based AES-CBC encryption producing a self-describing base64 token.
Every token carries its own parameters so that a decoder never needs the
encoder's options:

    base64( u32 metadata length | metadata JSON | salt | IV | ciphertext )

The metadata JSON records algorithm, mode, padding, key size, PBKDF2
iteration count and format version. Keys are derived with PBKDF2-SHA256
from a fresh 32-byte salt; the IV is a fresh 16 bytes per call.
"""

import base64
import binascii
import json
import logging
import os
import struct
from dataclasses import dataclass
from typing import Any, Dict

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import CorruptedImage, IncorrectPassword, ValidationError
from .kdf import PBKDF2Hasher, derive_key


logger = logging.getLogger(__name__)


SALT_LENGTH = 32
IV_LENGTH = 16
FORMAT_VERSION = "1.0.0"

SUPPORTED_KEY_SIZES = (128, 192, 256)

# PBKDF2 rounds a token may ask the decoder to run
MIN_ITERATIONS = PBKDF2Hasher.MIN_ITERATIONS
MAX_ITERATIONS = 500000


@dataclass(frozen=True)
class AESOptions:
    """
    Parameters of an AES256Crypto token.

    Attributes:
        key_size: Key length in bits (128, 192 or 256)
        iterations: PBKDF2 iteration count
    """
    key_size: int = 256
    iterations: int = 10000


class AES256Crypto:
    """
    AES-CBC with PKCS7 padding and PBKDF2-derived keys.

    Example:
        >>> crypto = AES256Crypto()
        >>> token = crypto.encrypt("attack at dawn", "password")
        >>> crypto.decrypt(token, "password")
        'attack at dawn'
    """

    def __init__(self, options: AESOptions = AESOptions()):
        if options.key_size not in SUPPORTED_KEY_SIZES:
            raise ValidationError(
                f"Unsupported AES key size: {options.key_size}",
                details={"supported": list(SUPPORTED_KEY_SIZES)},
            )
        self._options = options

    @property
    def options(self) -> AESOptions:
        return self._options

    def _metadata(self) -> Dict[str, Any]:
        return {
            "algorithm": f"AES-{self._options.key_size}",
            "mode": "CBC",
            "padding": "Pkcs7",
            "keySize": self._options.key_size,
            "iterations": self._options.iterations,
            "version": FORMAT_VERSION,
        }

    def encrypt(self, plaintext: str, password: str) -> str:
        """
        Encrypt ``plaintext`` under ``password``.

        Returns:
            Base64 token containing metadata, salt, IV and ciphertext
        """
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = derive_key(password, salt, self._options.iterations, self._options.key_size // 8)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend()).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        metadata = json.dumps(self._metadata(), separators=(",", ":")).encode("utf-8")
        combined = struct.pack(">I", len(metadata)) + metadata + salt + iv + ciphertext

        logger.debug(f"AES-{self._options.key_size} encrypted {len(plaintext)} chars")
        return base64.b64encode(combined).decode("ascii")

    def decrypt(self, token: str, password: str) -> str:
        """
        Decrypt a token produced by :meth:`encrypt`.

        Raises:
            CorruptedImage: If the token structure cannot be parsed or its
                recorded parameters are out of range
            IncorrectPassword: If padding or UTF-8 decoding fails
        """
        try:
            combined = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise CorruptedImage("Encrypted payload is not valid base64") from exc

        if len(combined) < 4:
            raise CorruptedImage("Encrypted payload is truncated")

        (metadata_length,) = struct.unpack(">I", combined[:4])
        offset = 4 + metadata_length
        if offset + SALT_LENGTH + IV_LENGTH > len(combined):
            raise CorruptedImage("Encrypted payload is truncated")

        try:
            metadata = json.loads(combined[4:offset].decode("utf-8"))
            key_size = int(metadata["keySize"])
            iterations = int(metadata["iterations"])
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise CorruptedImage("Encryption metadata is malformed") from exc

        if key_size not in SUPPORTED_KEY_SIZES:
            raise CorruptedImage("Encryption metadata is malformed", details={"keySize": key_size})
        if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            raise CorruptedImage(
                f"Recorded PBKDF2 iterations must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}",
                details={"iterations": iterations},
            )

        salt = combined[offset:offset + SALT_LENGTH]
        iv = combined[offset + SALT_LENGTH:offset + SALT_LENGTH + IV_LENGTH]
        ciphertext = combined[offset + SALT_LENGTH + IV_LENGTH:]

        if not ciphertext or len(ciphertext) % IV_LENGTH:
            raise CorruptedImage("Ciphertext length is not a whole number of blocks")

        key = derive_key(password, salt, iterations, key_size // 8)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend()).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise IncorrectPassword("Decryption failed: incorrect password") from exc


__all__ = [
    "AESOptions",
    "AES256Crypto",
    "SUPPORTED_KEY_SIZES",
]
