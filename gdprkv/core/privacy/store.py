from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Tuple

from gdprkv.core.errors import SubjectAlreadyExistsError, SubjectNotFoundError, VersionConflictError
from gdprkv.core.privacy.models import Policy, Record, Subject


class RecordStore(Protocol):
    def find_by_key(self, subject_id: str, record_key: str) -> Optional[Record]: ...

    def find_all_by_subject(self, subject_id: str) -> List[Record]: ...

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]: ...

    def save(self, record: Record, *, expected_version: Optional[int]) -> Record: ...

    def delete(self, record: Record, *, expected_version: int) -> bool:
        """Remove the row only if it is still tombstoned at `expected_version`; False when nothing was removed."""
        ...


class PolicyStore(Protocol):
    def find_by_purpose(self, purpose: str) -> Optional[Policy]: ...

    def upsert(self, policy: Policy) -> None: ...


class SubjectStore(Protocol):
    def find_by_id(self, subject_id: str) -> Optional[Subject]: ...

    def create(self, subject: Subject) -> Subject: ...

    def update(self, subject: Subject) -> Subject: ...


class InMemoryRecordStore:
    """
    Records keyed by (subject_id, record_key) plus a purge-due index keyed by
    purge_bucket. Stored and returned models are copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[Tuple[str, str], Record] = {}

    def find_by_key(self, subject_id: str, record_key: str) -> Optional[Record]:
        with self._lock:
            r = self._rows.get((subject_id, record_key))
            return r.model_copy(deep=True) if r is not None else None

    def find_all_by_subject(self, subject_id: str) -> List[Record]:
        with self._lock:
            keys = sorted(k for k in self._rows if k[0] == subject_id)
            return [self._rows[k].model_copy(deep=True) for k in keys]

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]:
        with self._lock:
            out = [
                r
                for r in self._rows.values()
                if r.purge_bucket == bucket and r.purge_due_at is not None and r.purge_due_at <= int(cutoff_millis)
            ]
            out.sort(key=lambda r: (r.purge_due_at, r.subject_id, r.record_key))
            return [r.model_copy(deep=True) for r in out]

    def save(self, record: Record, *, expected_version: Optional[int]) -> Record:
        key = (record.subject_id, record.record_key)
        with self._lock:
            current = self._rows.get(key)
            if expected_version is None:
                if current is not None:
                    raise VersionConflictError(
                        "Record already exists.", subject_id=record.subject_id, record_key=record.record_key
                    )
            elif current is None or int(current.version) != int(expected_version):
                raise VersionConflictError(
                    subject_id=record.subject_id,
                    record_key=record.record_key,
                    expected_version=expected_version,
                    actual_version=None if current is None else current.version,
                )
            self._rows[key] = record.model_copy(deep=True)
            return record

    def delete(self, record: Record, *, expected_version: int) -> bool:
        key = (record.subject_id, record.record_key)
        with self._lock:
            current = self._rows.get(key)
            if current is None or not current.tombstoned or int(current.version) != int(expected_version):
                return False
            del self._rows[key]
            return True


class InMemoryPolicyStore:
    def __init__(self, policies: Optional[List[Policy]] = None) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, Policy] = {}
        for p in policies or []:
            self.upsert(p)

    def find_by_purpose(self, purpose: str) -> Optional[Policy]:
        with self._lock:
            return self._rows.get(purpose)

    def upsert(self, policy: Policy) -> None:
        with self._lock:
            self._rows[policy.purpose] = policy


class InMemorySubjectStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[str, Subject] = {}

    def find_by_id(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            s = self._rows.get(subject_id)
            return s.model_copy() if s is not None else None

    def create(self, subject: Subject) -> Subject:
        with self._lock:
            if subject.subject_id in self._rows:
                raise SubjectAlreadyExistsError(subject.subject_id)
            self._rows[subject.subject_id] = subject.model_copy()
            return subject

    def update(self, subject: Subject) -> Subject:
        with self._lock:
            if subject.subject_id not in self._rows:
                raise SubjectNotFoundError(subject.subject_id)
            self._rows[subject.subject_id] = subject.model_copy()
            return subject
