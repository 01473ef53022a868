"""
CryptiPic Envelope Codec.

Options, framing and the encode / decode state machine built on top of the
stego and crypto layers.

Modules:
    options: SteganographyOptions and JSON settings files
    header: 40-bit binary header
    envelope: Signed payload framing
    audit: Injected audit collectors
    validation: Input validation and caller-owned rate limiting
    codec: Encode, decode and decoy multiplexing

Usage:
    >>> from cryptipic_core.codec import encode, decode
    >>> stego = encode(pixels, "HELLO")
    >>> decode(stego).message
    'HELLO'
"""

from .options import (
    ExpiryType,
    EncryptionOptions,
    CompressionOptions,
    ChaoticOptions,
    ExpiryOptions,
    SteganographyOptions,
    DEFAULT_OPTIONS,
    load_options,
    save_options,
)
from .header import BinaryHeader, read_header, write_header
from .envelope import EnvelopeMetadata, MessageEnvelope
from .audit import (
    AuditEvent,
    AuditEventType,
    AuditLevel,
    AuditCollector,
    NullAuditCollector,
    MemoryAuditCollector,
    LoggingAuditCollector,
    JsonLinesAuditCollector,
)
from .validation import SecurityValidator, ValidationReport, RateLimiter, OperationRateLimiter
from .codec import (
    DecodeStatus,
    DecodeResult,
    DecoyMessage,
    ViewLedger,
    SteganographyCodec,
    encode,
    encode_with_decoys,
    decode,
    estimate_capacity,
)

__all__ = [
    # Options
    "ExpiryType",
    "EncryptionOptions",
    "CompressionOptions",
    "ChaoticOptions",
    "ExpiryOptions",
    "SteganographyOptions",
    "DEFAULT_OPTIONS",
    "load_options",
    "save_options",
    # Framing
    "BinaryHeader",
    "read_header",
    "write_header",
    "EnvelopeMetadata",
    "MessageEnvelope",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditLevel",
    "AuditCollector",
    "NullAuditCollector",
    "MemoryAuditCollector",
    "LoggingAuditCollector",
    "JsonLinesAuditCollector",
    # Validation
    "SecurityValidator",
    "ValidationReport",
    "RateLimiter",
    "OperationRateLimiter",
    # Codec
    "DecodeStatus",
    "DecodeResult",
    "DecoyMessage",
    "ViewLedger",
    "SteganographyCodec",
    "encode",
    "encode_with_decoys",
    "decode",
    "estimate_capacity",
]
