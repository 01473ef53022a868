"""
Audit Collectors.

Encode and decode report what happened to an injected collector instead of
a module-level log singleton. A caller that does not care passes nothing
and gets the null collector; the CLI and tests use the in-memory, logging
or JSON Lines collectors.

Events never contain passwords, plaintext or key material, only the
operation, outcome and non-secret parameters (algorithm, sizes, error
class).

Usage:
    >>> collector = MemoryAuditCollector()
    >>> encode(pixels, "hi", audit=collector)
    >>> [e.event_type.value for e in collector.events]
    ['encode.started', 'encode.completed']
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Kinds of audit events emitted by the codec."""

    ENCODE_STARTED = "encode.started"
    ENCODE_COMPLETED = "encode.completed"
    ENCODE_FAILED = "encode.failed"
    DECODE_STARTED = "decode.started"
    DECODE_COMPLETED = "decode.completed"
    DECODE_FAILED = "decode.failed"
    STAGE = "stage"


class AuditLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class AuditEvent:
    """
    A single audit record.

    Attributes:
        event_id: Unique identifier (UUID4)
        event_type: What happened
        timestamp: When it happened (UTC)
        level: Severity
        details: Non-secret context
    """

    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    level: AuditLevel
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, event_type: AuditEventType, level: AuditLevel = AuditLevel.INFO, **details: Any) -> "AuditEvent":
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            level=level,
            details=details,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "details": self.details,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AuditCollector(ABC):
    """Interface of audit sinks injected into encode and decode."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        """Store or forward one event."""

    def emit(self, event_type: AuditEventType, level: AuditLevel = AuditLevel.INFO, **details: Any) -> AuditEvent:
        event = AuditEvent.create(event_type, level, **details)
        self.record(event)
        return event


class NullAuditCollector(AuditCollector):
    """Discards every event."""

    def record(self, event: AuditEvent) -> None:
        return None


class MemoryAuditCollector(AuditCollector):
    """Keeps events in a list; handy for tests and for returning results to a UI."""

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def of_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingAuditCollector(AuditCollector):
    """Forwards events to a standard library logger."""

    _LEVELS = {
        AuditLevel.DEBUG: logging.DEBUG,
        AuditLevel.INFO: logging.INFO,
        AuditLevel.WARNING: logging.WARNING,
        AuditLevel.ERROR: logging.ERROR,
    }

    def __init__(self, target: Optional[logging.Logger] = None):
        self._logger = target or logging.getLogger("cryptipic.audit")

    def record(self, event: AuditEvent) -> None:
        self._logger.log(self._LEVELS[event.level], f"[AUDIT] {event.event_type.value}: {event.details}")


class JsonLinesAuditCollector(AuditCollector):
    """
    Appends events to a JSON Lines file.

    Each line is one ``AuditEvent.to_json()`` object. The parent directory
    is created on construction; writes are serialised with a lock.
    """

    def __init__(self, log_path: Union[str, Path]):
        self._log_path = Path(log_path)
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def log_path(self) -> Path:
        return self._log_path

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            with self._log_path.open("a", encoding="utf-8") as handle:
                handle.write(event.to_json() + "\n")


__all__ = [
    "AuditEventType",
    "AuditLevel",
    "AuditEvent",
    "AuditCollector",
    "NullAuditCollector",
    "MemoryAuditCollector",
    "LoggingAuditCollector",
    "JsonLinesAuditCollector",
]
