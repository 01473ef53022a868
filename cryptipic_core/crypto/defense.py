"""
Defense Envelope

HMAC-protected, high-iteration AES-CBC encryption of a JSON envelope that
carries the message together with its provenance metadata.

Wire format (colon separated, all ASCII):

    <salt hex>:<iv hex>:<ciphertext base64>:<hmac hex>

The HMAC-SHA256 covers ``salt hex:iv hex:ciphertext base64`` and is keyed
with the PBKDF2-derived AES key. Decryption verifies the HMAC in constant
time *before* touching the ciphertext; a mismatch is reported as an
integrity violation and no plaintext is ever returned with it.

Envelope plaintext:

    {"metadata": {...}, "message": str, "timestamp": ISO-8601,
     "classification": ClassificationLevel}
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import CorruptedImage, IntegrityViolation, ValidationError
from .kdf import derive_key


logger = logging.getLogger(__name__)


MIN_ITERATIONS = 100000
MAX_ITERATIONS = 500000
DEFAULT_ITERATIONS = 100000
DEFAULT_SALT_LENGTH = 32
IV_LENGTH = 16


class ClassificationLevel(Enum):
    """Handling caveat attached to every defense envelope."""

    UNCLASSIFIED = "UNCLASSIFIED"
    CUI = "CUI"
    CONFIDENTIAL = "CONFIDENTIAL"
    SECRET = "SECRET"
    TOP_SECRET = "TOP_SECRET"

    @classmethod
    def parse(cls, value: Any) -> "ClassificationLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise ValidationError(f"Unknown classification level: {value}") from exc


@dataclass
class MessageMetadata:
    """
    Provenance record stored inside the envelope.

    Attributes:
        id: Unique message identifier
        author: Free-form author name
        department: Free-form originating department
        version: Envelope metadata version
        checksum: SHA-256 hex digest of the message text
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    author: str = ""
    department: str = ""
    version: str = "1.0"
    checksum: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageMetadata":
        return cls(
            id=str(data.get("id", "")),
            author=str(data.get("author", "")),
            department=str(data.get("department", "")),
            version=str(data.get("version", "1.0")),
            checksum=str(data.get("checksum", "")),
        )


@dataclass
class DefenseMessage:
    """Decrypted contents of a defense envelope."""
    message: str
    metadata: MessageMetadata
    timestamp: str
    classification: ClassificationLevel

    @property
    def checksum_valid(self) -> bool:
        expected = hashlib.sha256(self.message.encode("utf-8", "surrogatepass")).hexdigest()
        return hmac.compare_digest(expected, self.metadata.checksum)


class DefenseEnvelope:
    """
    Encrypts and decrypts defense envelopes.

    Attributes:
        iterations: PBKDF2 iteration count (100 000 to 500 000)
        salt_length: Random salt length in bytes

    Example:
        >>> envelope = DefenseEnvelope(iterations=100000)
        >>> token = envelope.encrypt("status report", "Str0ng!Pass")
        >>> envelope.decrypt(token, "Str0ng!Pass").message
        'status report'
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS, salt_length: int = DEFAULT_SALT_LENGTH):
        if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            raise ValidationError(
                f"Defense iterations must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}",
                details={"iterations": iterations},
            )
        if salt_length < 16:
            raise ValidationError("Defense salt must be at least 16 bytes", details={"salt_length": salt_length})

        self.iterations = iterations
        self.salt_length = salt_length

    @staticmethod
    def _mac(key: bytes, combined: str) -> str:
        return hmac.new(key, combined.encode("ascii"), hashlib.sha256).hexdigest()

    def encrypt(
        self,
        message: str,
        password: str,
        classification: ClassificationLevel = ClassificationLevel.UNCLASSIFIED,
        metadata: Optional[MessageMetadata] = None,
    ) -> str:
        """Wrap ``message`` in an envelope and encrypt it under ``password``."""
        classification = ClassificationLevel.parse(classification)
        metadata = metadata or MessageMetadata()
        metadata.checksum = hashlib.sha256(message.encode("utf-8")).hexdigest()

        envelope = {
            "metadata": metadata.to_dict(),
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "classification": classification.value,
        }

        salt = os.urandom(self.salt_length)
        iv = os.urandom(IV_LENGTH)
        key = derive_key(password, salt, self.iterations)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(json.dumps(envelope).encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend()).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        combined = f"{salt.hex()}:{iv.hex()}:{base64.b64encode(ciphertext).decode('ascii')}"
        logger.debug(f"Defense envelope sealed ({classification.value}, {self.iterations} iterations)")
        return f"{combined}:{self._mac(key, combined)}"

    def decrypt(self, token: str, password: str) -> DefenseMessage:
        """
        Verify and decrypt a defense envelope.

        Raises:
            CorruptedImage: If the token does not have four well-formed parts
                or the authenticated plaintext is not a valid envelope
            IntegrityViolation: If the HMAC or the message checksum does not match
        """
        parts = token.split(":")
        if len(parts) != 4:
            raise CorruptedImage("Invalid defense envelope format", details={"parts": len(parts)})

        salt_hex, iv_hex, ciphertext_b64, mac_hex = parts
        try:
            salt = bytes.fromhex(salt_hex)
            iv = bytes.fromhex(iv_hex)
            ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise CorruptedImage("Defense envelope fields are not valid encodings") from exc

        if len(iv) != IV_LENGTH or not salt:
            raise CorruptedImage("Defense envelope salt or IV has the wrong length")

        key = derive_key(password, salt, self.iterations)
        expected = self._mac(key, f"{salt_hex}:{iv_hex}:{ciphertext_b64}")
        if not hmac.compare_digest(expected, mac_hex.lower()):
            logger.warning("Defense envelope HMAC mismatch")
            raise IntegrityViolation("Data integrity verification failed")

        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend()).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            envelope = json.loads((unpadder.update(padded) + unpadder.finalize()).decode("utf-8"))
            message = envelope["message"]
            metadata = MessageMetadata.from_dict(envelope["metadata"])
            classification = ClassificationLevel.parse(envelope.get("classification", "UNCLASSIFIED"))
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise CorruptedImage("Invalid message envelope") from exc

        if not isinstance(message, str):
            raise CorruptedImage("Invalid message envelope")

        opened = DefenseMessage(
            message=message,
            metadata=metadata,
            timestamp=str(envelope.get("timestamp", "")),
            classification=classification,
        )
        if not opened.checksum_valid:
            logger.warning("Defense envelope checksum mismatch")
            raise IntegrityViolation("Message checksum verification failed")
        return opened


__all__ = [
    "ClassificationLevel",
    "MessageMetadata",
    "DefenseMessage",
    "DefenseEnvelope",
]
