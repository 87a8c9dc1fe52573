from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from typing import Any, Dict, Iterator, List, Optional

from gdprkv.core.audit.hasher import ZERO_HASH
from gdprkv.core.audit.models import AuditEvent, EventType, IntegrityReport
from gdprkv.core.audit.store import AuditEventStore
from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.errors import require_text


_SUFFIX_WIDTH = 32


def new_ts_ulid(now_ms: int) -> str:
    return f"{int(now_ms):013d}_{uuid.uuid4().hex.upper()}"


def next_ts_ulid(now_ms: int, latest: Optional[str]) -> str:
    """
    Sort key for a new event that always orders after `latest`.

    Falls back to bumping the latest key's suffix when the clock did not advance
    (same millisecond, fixed test clock, or backwards skew).
    """
    candidate = new_ts_ulid(now_ms)
    if latest is None or candidate > latest:
        return candidate
    prefix, _, suffix = latest.partition("_")
    try:
        bumped = int(suffix, 16) + 1
    except ValueError:
        bumped = 0
    if bumped >= 16**_SUFFIX_WIDTH:
        # suffix space exhausted for this prefix; extend the key instead
        return latest + "0"
    return f"{prefix}_{bumped:0{_SUFFIX_WIDTH}X}"


class _KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


class AuditHashChain:
    """
    Append-only, per-subject, tamper-evident audit log.

    `append` reads the subject's latest event and links the new one to it. With
    `serialize_appends` the read-then-write step is held under a per-subject lock,
    which keeps a single process from forking a chain. Writers in other processes
    sharing the same store can still fork it; `verify` reports that case.
    """

    def __init__(
        self,
        *,
        store: AuditEventStore,
        clock: Optional[Clock] = None,
        serialize_appends: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.serialize_appends = bool(serialize_appends)
        self.logger = logger or logging.getLogger("gdprkv.audit")
        self._locks = _KeyedLocks()

    def append(
        self,
        subject_id: str,
        event_type: EventType,
        request_id: str,
        *,
        item_key: Optional[str] = None,
        purpose: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        require_text("subject_id", subject_id)
        require_text("request_id", request_id)
        if self.serialize_appends:
            with self._locks.hold(subject_id):
                return self._append_unlocked(subject_id, event_type, request_id, item_key, purpose, details)
        return self._append_unlocked(subject_id, event_type, request_id, item_key, purpose, details)

    def _append_unlocked(
        self,
        subject_id: str,
        event_type: EventType,
        request_id: str,
        item_key: Optional[str],
        purpose: Optional[str],
        details: Optional[Dict[str, Any]],
    ) -> AuditEvent:
        latest = self.store.find_latest(subject_id)
        prev_hash = latest.hash if latest is not None else ZERO_HASH
        now = int(self.clock.now_millis())
        event = AuditEvent.build(
            subject_id=subject_id,
            ts_ulid=next_ts_ulid(now, latest.ts_ulid if latest is not None else None),
            event_type=EventType(event_type),
            request_id=request_id,
            timestamp=now,
            prev_hash=prev_hash,
            item_key=item_key,
            purpose=purpose,
            details=details,
        )
        self.store.put(event)
        return event

    def events(self, subject_id: str) -> List[AuditEvent]:
        return self.store.find_all_by_subject(subject_id)

    def verify(self, subject_id: str, *, require_genesis: bool = True) -> IntegrityReport:
        """
        Replay a subject's chain in sort order and recompute every hash.

        `broken_at` is the zero-based index of the first bad event. Set
        `require_genesis=False` when the head may have been pruned by retention.
        """
        events = self.store.find_all_by_subject(subject_id)
        if not events:
            return IntegrityReport(subject_id=subject_id, ok=True, checked=0, message="no events")

        seen_prev: set = set()
        checked = 0
        for idx, ev in enumerate(events):
            if idx == 0:
                expected_prev = ZERO_HASH if require_genesis else ev.prev_hash
            else:
                expected_prev = events[idx - 1].hash
            if ev.prev_hash != expected_prev:
                message = "fork: prev_hash reused" if ev.prev_hash in seen_prev else "prev_hash mismatch"
                if idx == 0:
                    message = "missing genesis"
                return IntegrityReport(
                    subject_id=subject_id, ok=False, checked=checked, broken_at=idx, message=message, head_hash=events[-1].hash
                )
            if not ev.verify_hash():
                return IntegrityReport(
                    subject_id=subject_id, ok=False, checked=checked, broken_at=idx, message="hash mismatch", head_hash=events[-1].hash
                )
            seen_prev.add(ev.prev_hash)
            checked += 1
        return IntegrityReport(subject_id=subject_id, ok=True, checked=checked, message="ok", head_hash=events[-1].hash)
