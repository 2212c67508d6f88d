"""
Append-only audit trail of business events.

Audit writes are best-effort from the order saga's point of view: a failed
write is logged and never fails the operation that triggered it.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from ordersaga.orders.models import AuditEntry

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_CANCELLED = "order.cancelled"


class AuditRecorder(ABC):
    """Records business events. Entries are never modified or removed."""

    @abstractmethod
    async def record(
        self, event_type: str, subject_id: str, payload: Mapping[str, Any] | None = None
    ) -> AuditEntry:
        """Append one event."""


class InMemoryAuditRecorder(AuditRecorder):
    def __init__(self):
        self._entries: list[AuditEntry] = []
        self._lock = asyncio.Lock()

    async def record(
        self, event_type: str, subject_id: str, payload: Mapping[str, Any] | None = None
    ) -> AuditEntry:
        entry = AuditEntry(
            event_type=event_type,
            subject_id=subject_id,
            payload=MappingProxyType(dict(payload or {})),
            timestamp=datetime.now(UTC),
        )
        async with self._lock:
            self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def for_subject(self, subject_id: str) -> list[AuditEntry]:
        return [e for e in self._entries if e.subject_id == subject_id]

    def of_type(self, event_type: str) -> list[AuditEntry]:
        return [e for e in self._entries if e.event_type == event_type]
