from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple

from gdprkv.core.audit.models import AuditEvent
from gdprkv.core.audit.store import InMemoryAuditEventStore
from gdprkv.core.privacy.models import Record
from gdprkv.core.privacy.store import InMemoryRecordStore


# 2025-08-27T21:00:00Z
T0 = 1_756_328_400_000


class ManualClock:
    def __init__(self, start_ms: int = T0):
        self._t = int(start_ms)
        self._lock = threading.Lock()

    def now_millis(self) -> int:
        with self._lock:
            return self._t

    def set(self, ms: int) -> None:
        with self._lock:
            self._t = int(ms)

    def advance(self, ms: int) -> None:
        with self._lock:
            self._t += int(ms)


@dataclass
class RecordingLogger:
    infos: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def debug(self, *_a, **_k): ...

    def info(self, msg, *_a, **_k):
        self.infos.append(str(msg))

    def warning(self, msg, *_a, **_k):
        self.warnings.append(str(msg))

    def error(self, msg, *_a, **_k):
        self.errors.append(str(msg))

    def exception(self, msg, *_a, **_k):
        self.errors.append(str(msg))


class FlakyRecordStore(InMemoryRecordStore):
    """Raises on delete for the listed (subject_id, record_key) pairs."""

    def __init__(self, fail_delete: Optional[Set[Tuple[str, str]]] = None):
        super().__init__()
        self.fail_delete = set(fail_delete or ())
        self.fail_query_buckets: Set[str] = set()
        self.fail_save_keys: Set[Tuple[str, str]] = set()

    def delete(self, record: Record, *, expected_version: int) -> bool:
        if (record.subject_id, record.record_key) in self.fail_delete:
            raise RuntimeError("storage unavailable")
        return super().delete(record, expected_version=expected_version)

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]:
        if bucket in self.fail_query_buckets:
            raise RuntimeError("index query failed")
        return super().find_due_for_purge(bucket, cutoff_millis)

    def save(self, record: Record, *, expected_version: Optional[int]) -> Record:
        if (record.subject_id, record.record_key) in self.fail_save_keys:
            raise RuntimeError("write throttled")
        return super().save(record, expected_version=expected_version)


class StaleIndexRecordStore(InMemoryRecordStore):
    """Purge index returns every stored record in the bucket regardless of state."""

    def __init__(self, stale: List[Record]):
        super().__init__()
        self.stale = list(stale)

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]:
        return [r for r in self.stale if r.purge_bucket == bucket]


class RacingRecordStore(InMemoryRecordStore):
    """Runs `after_query` once, after the purge index has picked its candidates."""

    def __init__(self) -> None:
        super().__init__()
        self.after_query: Optional[Callable[[], None]] = None

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]:
        out = super().find_due_for_purge(bucket, cutoff_millis)
        if out and self.after_query is not None:
            hook, self.after_query = self.after_query, None
            hook()
        return out


class FlakyAuditStore(InMemoryAuditEventStore):
    def __init__(self, fail_delete_subjects: Optional[Set[str]] = None):
        super().__init__()
        self.fail_delete_subjects = set(fail_delete_subjects or ())

    def delete(self, event: AuditEvent) -> None:
        if event.subject_id in self.fail_delete_subjects:
            raise RuntimeError("delete refused")
        super().delete(event)
