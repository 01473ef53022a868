"""
Input Validation and Rate Limiting.

Checks applied to caller input before the codec touches a pixel buffer:

    - Password strength (length, character classes, common passwords)
    - Message size and suspicious content
    - Option ranges (compression level, chaotic iterations, key strength,
      capacity, seed)

and a sliding-window rate limiter whose state is owned by the caller. The
core never keeps a global limiter; front ends create one per process or per
session and pass it into ``encode`` / ``decode``.

Usage:
    >>> report = SecurityValidator.validate_password("Str0ng!Pass")
    >>> report.valid
    True
    >>> limiter = OperationRateLimiter()
    >>> limiter.check("session-1", "encode")
"""

import logging
import re
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..errors import RateLimitExceeded, ValidationError
from ..stego.algorithms import MAX_CAPACITY
from ..stego.compression import AdvancedCompressionManager
from .options import ExpiryType, SteganographyOptions


logger = logging.getLogger(__name__)


MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_MESSAGE_LENGTH = 100000

MIN_CHAOTIC_ITERATIONS = 100
MAX_CHAOTIC_ITERATIONS = 10000
ALLOWED_STRENGTHS = (128, 192, 256)
MAX_DECOY_INDEX = 3

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

COMMON_PASSWORDS = frozenset([
    "password", "12345678", "qwerty123", "admin123", "password123",
    "letmein123", "welcome123", "monkey123", "123456789", "password1",
])

XSS_PATTERNS = [
    re.compile(r"<script\b", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"onload\s*=", re.IGNORECASE),
    re.compile(r"onerror\s*=", re.IGNORECASE),
    re.compile(r"onclick\s*=", re.IGNORECASE),
]

SQL_PATTERNS = [
    re.compile(r"(\bor\b|\band\b)\s+\w+\s*=\s*\w+", re.IGNORECASE),
    re.compile(r"union\s+select", re.IGNORECASE),
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"delete\s+from", re.IGNORECASE),
    re.compile(r"insert\s+into", re.IGNORECASE),
]


@dataclass
class ValidationReport:
    """
    Outcome of a validation check.

    Attributes:
        valid: True when there are no errors
        errors: Problems that must block the operation
        warnings: Problems worth reporting that do not block it
    """
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self, subject: str) -> None:
        """
        Raises:
            ValidationError: If the report holds errors
        """
        if self.errors:
            raise ValidationError(
                f"Invalid {subject}: {'; '.join(self.errors)}",
                details={"errors": list(self.errors)},
            )


class SecurityValidator:
    """Stateless validation checks for passwords, messages and options."""

    @staticmethod
    def validate_password(password: str) -> ValidationReport:
        report = ValidationReport()

        if len(password) < MIN_PASSWORD_LENGTH:
            report.errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(password) > MAX_PASSWORD_LENGTH:
            report.errors.append(f"Password too long (max {MAX_PASSWORD_LENGTH} characters)")
        if not re.search(r"[a-z]", password):
            report.errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", password):
            report.errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[0-9]", password):
            report.errors.append("Password must contain at least one number")
        if not SPECIAL_CHARACTERS.search(password):
            report.errors.append("Password must contain at least one special character")
        if password.lower() in COMMON_PASSWORDS:
            report.errors.append("Password is too common and easily guessable")

        return report

    @staticmethod
    def validate_message(message: str) -> ValidationReport:
        """
        Empty and oversized messages are errors. Script or SQL fragments are
        reported as warnings only, since the payload is never interpreted by
        the core.
        """
        report = ValidationReport()

        if not isinstance(message, str):
            report.errors.append("Message must be text")
            return report
        if len(message) == 0:
            report.errors.append("Message cannot be empty")
        if len(message) > MAX_MESSAGE_LENGTH:
            report.errors.append(f"Message too long (max {MAX_MESSAGE_LENGTH:,} characters)")

        try:
            message.encode("utf-8")
        except UnicodeEncodeError:
            report.errors.append("Message is not valid Unicode text")

        if any(pattern.search(message) for pattern in XSS_PATTERNS):
            report.warnings.append("Message contains potentially unsafe content")
        if any(pattern.search(message) for pattern in SQL_PATTERNS):
            report.warnings.append("Message contains potentially unsafe database commands")

        return report

    @staticmethod
    def validate_options(options: SteganographyOptions) -> ValidationReport:
        report = ValidationReport()

        level = options.compression.level
        if not AdvancedCompressionManager.MIN_LEVEL <= level <= AdvancedCompressionManager.MAX_LEVEL:
            report.errors.append("Compression level must be between 1 and 9")

        iterations = options.chaotic.iterations
        if not MIN_CHAOTIC_ITERATIONS <= iterations <= MAX_CHAOTIC_ITERATIONS:
            report.errors.append("Chaotic iterations must be between 100 and 10,000")

        seed = options.chaotic.seed
        if seed is not None and not 0 < seed < 1:
            report.errors.append("Chaotic seed must lie strictly between 0 and 1")

        if options.encryption.strength not in ALLOWED_STRENGTHS:
            report.errors.append("Encryption strength must be 128, 192, or 256 bits")

        if not 1 <= options.capacity <= MAX_CAPACITY:
            report.errors.append(f"Capacity must be between 1 and {MAX_CAPACITY} bits")

        if not 1 <= options.quality <= 100:
            report.errors.append("Quality must be between 1 and 100")

        if options.decoy_index is not None and not 0 <= options.decoy_index <= MAX_DECOY_INDEX:
            report.errors.append(f"Decoy index must be between 1 and {MAX_DECOY_INDEX}")

        if options.expiry is not None:
            value = options.expiry.value
            if not isinstance(value, int) or isinstance(value, bool):
                report.errors.append("Expiry value must be a whole number")
            elif options.expiry.type == ExpiryType.VIEWS and value < 1:
                report.errors.append("View expiry must allow at least one view")
            elif value < 0:
                report.errors.append("Expiry time must not be negative")

        return report


# ============================================================================
# Rate Limiting
# ============================================================================


class RateLimiter:
    """
    Sliding-window rate limiter keyed by an identifier.

    Request timestamps are kept per identifier in a deque; entries older than
    the window are dropped before each check.

    Example:
        >>> limiter = RateLimiter(max_requests=10, window_seconds=60)
        >>> allowed, remaining = limiter.is_allowed("session-1")
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 60):
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._request_history: Dict[str, deque] = {}
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def _prune(self, identifier: str, now: datetime) -> deque:
        history = self._request_history.setdefault(identifier, deque())
        window_start = now - timedelta(seconds=self._window_seconds)
        while history and history[0] <= window_start:
            history.popleft()
        return history

    def is_allowed(self, identifier: str) -> Tuple[bool, int]:
        """
        Record a request if the identifier is under its limit.

        Returns:
            Tuple of (allowed, remaining requests in the window)
        """
        with self._lock:
            now = datetime.now(timezone.utc)
            history = self._prune(identifier, now)
            if len(history) >= self._max_requests:
                return False, 0
            history.append(now)
            return True, self._max_requests - len(history)

    def get_remaining(self, identifier: str) -> int:
        with self._lock:
            if identifier not in self._request_history:
                return self._max_requests
            history = self._prune(identifier, datetime.now(timezone.utc))
            return max(0, self._max_requests - len(history))

    def reset(self, identifier: str) -> None:
        with self._lock:
            if identifier in self._request_history:
                self._request_history[identifier].clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "tracked_identifiers": len(self._request_history),
                "max_requests": self._max_requests,
                "window_seconds": self._window_seconds,
            }


# Requests per minute; encoding is the more expensive operation
OPERATION_LIMITS = {
    "encode": 10,
    "decode": 20,
}


class OperationRateLimiter:
    """
    One :class:`RateLimiter` per codec operation.

    Attributes:
        limits: Requests allowed per window, by operation name
        window_seconds: Window length shared by all operations
    """

    def __init__(self, limits: Optional[Dict[str, int]] = None, window_seconds: int = 60):
        self.limits = dict(limits or OPERATION_LIMITS)
        self.window_seconds = window_seconds
        self._limiters = {
            operation: RateLimiter(max_requests=limit, window_seconds=window_seconds)
            for operation, limit in self.limits.items()
        }

    def check(self, identifier: str, operation: str) -> int:
        """
        Count one request against ``operation``.

        Returns:
            Requests remaining in the window

        Raises:
            RateLimitExceeded: If the identifier has used up its allowance
            ValueError: If the operation has no configured limit
        """
        if operation not in self._limiters:
            raise ValueError(f"No rate limit configured for operation: {operation}")

        allowed, remaining = self._limiters[operation].is_allowed(identifier)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {identifier} on {operation}")
            raise RateLimitExceeded(
                f"Too many {operation} requests; try again later",
                details={"operation": operation, "limit": self.limits[operation]},
            )
        return remaining

    def remaining(self, identifier: str, operation: str) -> int:
        return self._limiters[operation].get_remaining(identifier)

    def reset(self, identifier: str) -> None:
        for limiter in self._limiters.values():
            limiter.reset(identifier)


__all__ = [
    "ValidationReport",
    "SecurityValidator",
    "RateLimiter",
    "OperationRateLimiter",
    "OPERATION_LIMITS",
    "COMMON_PASSWORDS",
    "MAX_MESSAGE_LENGTH",
]
