from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

_CONTEXT_KEYS = {"profile_id", "tenant_id", "correlation_id"}


@dataclass
class AuditEvent:
    timestamp: datetime
    level: str
    message: str
    profile_id: Optional[str] = None
    tenant_id: Optional[str] = None
    correlation_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def format_line(self) -> str:
        """Render the event the way the debug log viewer lists it."""
        details = " ".join(f"{key}={value}" for key, value in self.extra.items())
        line = f"[{self.timestamp:%H:%M:%S}] {self.level:<7} {self.message}"
        if self.profile_id:
            line += f" profile={self.profile_id}"
        if details:
            line += f" {details}"
        return line


class InMemoryAuditStore:
    """Thread-safe bounded buffer of audit events for a log viewer to read."""

    def __init__(self, max_events: int = 2000):
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def list(self, limit: int = 100) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)[:limit]

    def lines(self) -> List[str]:
        # Oldest first, matching how a scrolling log reads.
        with self._lock:
            events = list(self._events)
        return [event.format_line() for event in reversed(events)]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class JsonAuditLogger:
    """Structured logger for credential and directory events.

    Writes one JSON object per event to stdout and optionally mirrors events
    into an :class:`InMemoryAuditStore`. Instances are passed to the services
    that need them; there is no module-level default instance.
    """

    def __init__(
        self,
        name: str = "intune_commander.audit",
        level: int = logging.INFO,
        store: Optional[InMemoryAuditStore] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        if self.store is not None and self.logger.isEnabledFor(level):
            self.store.append(self._build_event(level, message, **kwargs))
        self.logger.log(level, message, extra={"extra": kwargs})

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def _build_event(self, level: int, message: str, **kwargs: Any) -> AuditEvent:
        return AuditEvent(
            timestamp=datetime.now(timezone.utc),
            level=logging.getLevelName(level),
            message=message,
            profile_id=kwargs.get("profile_id"),
            tenant_id=kwargs.get("tenant_id"),
            correlation_id=kwargs.get("correlation_id"),
            extra={k: v for k, v in kwargs.items() if k not in _CONTEXT_KEYS},
        )


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update(extra)

        return json.dumps(payload, default=str)
