"""
Message Envelope.

Framing of the text that is actually embedded:

    "ENC:" | "RAW:"  +  compact JSON metadata  +  "::"  +  payload  +  "\\0"

The payload is the compression token (``RAW``) or the cipher token of the
compression token (``ENC``). The metadata carries an envelope signature, a
truncated HMAC-SHA256 over the metadata without the signature and the
payload. It is keyed with a fixed envelope key, so it detects corruption
and tampering of the framed bytes before any decryption is attempted but
says nothing about the password.

Metadata keys:

    ver   envelope version
    alg   embedding algorithm name
    enc   cipher name, or null for RAW payloads
    kp    cipher parameters needed to decrypt (optional)
    exp   expiry {"type", "value"} or null
    dec   decoy flag
    idx   decoy index, 0 for the main message
    cap   capacity
    cls   classification
    ts    creation time, epoch milliseconds
    sig   envelope signature
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import CorruptedImage, IntegrityViolation, NoHiddenMessage


logger = logging.getLogger(__name__)


ENVELOPE_VERSION = "2.0"
PREFIX_ENCRYPTED = "ENC:"
PREFIX_RAW = "RAW:"
SEPARATOR = "::"
TERMINATOR = "\0"

SIGNATURE_KEY = b"cryptipic-envelope-v2"
SIGNATURE_LENGTH = 32


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class EnvelopeMetadata:
    """Metadata framed in front of the payload."""

    algorithm: str
    encryption: Optional[str] = None
    cipher_params: Dict[str, Any] = field(default_factory=dict)
    expiry: Optional[Dict[str, Any]] = None
    is_decoy: bool = False
    decoy_index: int = 0
    capacity: int = 1
    classification: str = "UNCLASSIFIED"
    timestamp: int = field(default_factory=now_ms)
    version: str = ENVELOPE_VERSION

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ver": self.version,
            "alg": self.algorithm,
            "enc": self.encryption,
            "exp": self.expiry,
            "dec": self.is_decoy,
            "idx": self.decoy_index,
            "cap": self.capacity,
            "cls": self.classification,
            "ts": self.timestamp,
        }
        if self.cipher_params:
            data["kp"] = self.cipher_params
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnvelopeMetadata":
        """
        Raises:
            CorruptedImage: If required keys are missing or mistyped
        """
        try:
            metadata = cls(
                algorithm=str(data["alg"]),
                encryption=data.get("enc"),
                cipher_params=dict(data.get("kp") or {}),
                expiry=data.get("exp"),
                is_decoy=bool(data.get("dec", False)),
                decoy_index=int(data.get("idx") or 0),
                capacity=int(data.get("cap", 1)),
                classification=str(data.get("cls", "UNCLASSIFIED")),
                timestamp=int(data.get("ts", 0)),
                version=str(data.get("ver", ENVELOPE_VERSION)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptedImage("Envelope metadata is incomplete") from exc

        if metadata.expiry is not None and not isinstance(metadata.expiry, dict):
            raise CorruptedImage("Envelope expiry is malformed")
        return metadata


def _canonical(metadata: Dict[str, Any]) -> str:
    return json.dumps(metadata, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def compute_signature(metadata: EnvelopeMetadata, payload: str) -> str:
    message = f"{_canonical(metadata.to_dict())}{SEPARATOR}{payload}".encode("utf-8")
    return hmac.new(SIGNATURE_KEY, message, hashlib.sha256).hexdigest()[:SIGNATURE_LENGTH]


@dataclass
class MessageEnvelope:
    """
    A framed payload.

    Attributes:
        encrypted: ENC (True) or RAW (False) prefix
        metadata: Envelope metadata
        payload: Compression token or cipher token
        signature: Envelope signature; computed by :meth:`sign`
    """

    encrypted: bool
    metadata: EnvelopeMetadata
    payload: str
    signature: str = ""

    @property
    def prefix(self) -> str:
        return PREFIX_ENCRYPTED if self.encrypted else PREFIX_RAW

    @property
    def timestamp(self) -> int:
        return self.metadata.timestamp

    @property
    def classification(self) -> str:
        return self.metadata.classification

    def sign(self) -> "MessageEnvelope":
        self.signature = compute_signature(self.metadata, self.payload)
        return self

    def verify(self) -> None:
        """
        Raises:
            IntegrityViolation: If the signature does not match
        """
        expected = compute_signature(self.metadata, self.payload)
        if not hmac.compare_digest(expected, self.signature):
            logger.warning("Envelope signature mismatch")
            raise IntegrityViolation("Envelope signature verification failed")

    def frame(self) -> bytes:
        """Serialise to the embedded byte form, terminator included."""
        metadata = dict(self.metadata.to_dict(), sig=self.signature)
        text = f"{self.prefix}{json.dumps(metadata, separators=(',', ':'), ensure_ascii=False)}{SEPARATOR}{self.payload}{TERMINATOR}"
        return text.encode("utf-8")

    @classmethod
    def parse(cls, data: bytes) -> "MessageEnvelope":
        """
        Parse framed bytes.

        Raises:
            NoHiddenMessage: If the bytes are not UTF-8 or lack a known prefix
            CorruptedImage: If the metadata or separator cannot be parsed
        """
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NoHiddenMessage("No hidden message found") from exc

        if text.startswith(PREFIX_ENCRYPTED):
            encrypted = True
        elif text.startswith(PREFIX_RAW):
            encrypted = False
        else:
            raise NoHiddenMessage("No hidden message found")

        if text.endswith(TERMINATOR):
            text = text[:-len(TERMINATOR)]

        body = text[len(PREFIX_RAW):]
        try:
            metadata, end = json.JSONDecoder().raw_decode(body)
        except json.JSONDecodeError as exc:
            raise CorruptedImage("Envelope metadata is not valid JSON") from exc

        if not isinstance(metadata, dict):
            raise CorruptedImage("Envelope metadata is not an object")
        if not body.startswith(SEPARATOR, end):
            raise CorruptedImage("Envelope separator missing")

        signature = metadata.pop("sig", "")
        return cls(
            encrypted=encrypted,
            metadata=EnvelopeMetadata.from_dict(metadata),
            payload=body[end + len(SEPARATOR):],
            signature=str(signature),
        )


__all__ = [
    "ENVELOPE_VERSION",
    "PREFIX_ENCRYPTED",
    "PREFIX_RAW",
    "EnvelopeMetadata",
    "MessageEnvelope",
    "compute_signature",
    "now_ms",
]
