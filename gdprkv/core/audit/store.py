from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Tuple

from gdprkv.core.audit.models import AuditEvent


class AuditEventStore(Protocol):
    def put(self, event: AuditEvent) -> None: ...

    def find_latest(self, subject_id: str) -> Optional[AuditEvent]: ...

    def find_all_by_subject(self, subject_id: str) -> List[AuditEvent]: ...

    def find_older_than(self, cutoff_millis: int) -> List[AuditEvent]: ...

    def delete(self, event: AuditEvent) -> None: ...

    def list_subject_ids(self) -> List[str]: ...


class InMemoryAuditEventStore:
    """Process-local event store keyed by (subject_id, ts_ulid)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: Dict[Tuple[str, str], AuditEvent] = {}

    def put(self, event: AuditEvent) -> None:
        with self._lock:
            self._events[(event.subject_id, event.ts_ulid)] = event

    def find_latest(self, subject_id: str) -> Optional[AuditEvent]:
        with self._lock:
            keys = [k for k in self._events if k[0] == subject_id]
            if not keys:
                return None
            return self._events[max(keys)]

    def find_all_by_subject(self, subject_id: str) -> List[AuditEvent]:
        with self._lock:
            keys = sorted(k for k in self._events if k[0] == subject_id)
            return [self._events[k] for k in keys]

    def find_older_than(self, cutoff_millis: int) -> List[AuditEvent]:
        with self._lock:
            return [e for _, e in sorted(self._events.items()) if e.timestamp < int(cutoff_millis)]

    def delete(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.pop((event.subject_id, event.ts_ulid), None)

    def list_subject_ids(self) -> List[str]:
        with self._lock:
            return sorted({k[0] for k in self._events})
