"""
CryptiPic Error Taxonomy.

Every failure the core reports to a caller is one of the typed errors in
this module. They share the shape of the crypto engine errors: a human
readable message, an optional numeric code and a details dictionary that
front ends may use for user-facing messaging.

Propagation rules:
    - Capacity and header validation failures are raised before any pixel
      buffer is touched.
    - Integrity failures (HMAC or signature mismatch) are fail-closed: no
      plaintext is ever returned alongside them.
    - Only the mobile-redundant algorithm recovers locally from noise.
"""

from typing import Optional, Dict, Any


class CryptiPicError(Exception):
    """
    Base exception for all CryptiPic errors.

    Attributes:
        message: Human readable description
        code: Stable numeric error code
        details: Additional context for the caller
    """

    default_code: Optional[int] = None

    def __init__(self, message: str, code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        base = f"{type(self).__name__}: {self.message}"
        if self.code:
            base += f" (Code: {self.code})"
        return base


class CapacityExceeded(CryptiPicError):
    """Payload needs more embedding positions than the carrier safely offers."""

    default_code = 1001


class NoHiddenMessage(CryptiPicError):
    """The header does not describe a plausible payload."""

    default_code = 1002


class CorruptedImage(CryptiPicError):
    """A payload was found but its framing could not be parsed."""

    default_code = 1003


class IncorrectPassword(CryptiPicError):
    """Decryption failed with the supplied password."""

    default_code = 1004


class MessageExpired(CryptiPicError):
    """The message carries an expiry that has passed."""

    default_code = 1005


class DecoyNotFound(CryptiPicError):
    """No payload carries the requested decoy index."""

    default_code = 1006


class IntegrityViolation(CryptiPicError):
    """HMAC or signature verification failed."""

    default_code = 1007


class UnsupportedAlgorithm(CryptiPicError):
    """The algorithm id or name is not known to this build."""

    default_code = 1008


class ValidationError(CryptiPicError):
    """Options, message or password rejected by input validation."""

    default_code = 1009


class RateLimitExceeded(CryptiPicError):
    """The caller-owned rate limiter refused the operation."""

    default_code = 1010


__all__ = [
    "CryptiPicError",
    "CapacityExceeded",
    "NoHiddenMessage",
    "CorruptedImage",
    "IncorrectPassword",
    "MessageExpired",
    "DecoyNotFound",
    "IntegrityViolation",
    "UnsupportedAlgorithm",
    "ValidationError",
    "RateLimitExceeded",
]
