from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.errors import InvalidPurposeError, RecordNotFoundError, SubjectNotFoundError, require_text
from gdprkv.core.privacy.models import Policy, Record
from gdprkv.core.privacy.store import PolicyStore, RecordStore, SubjectStore


class RecordLifecycle:
    """
    Policy-driven record writes and the tombstone transition.

    Does not emit audit events; callers record requested/outcome events around
    each call. Optimistic-concurrency failures surface as VersionConflictError
    and are not retried here.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        policies: PolicyStore,
        subjects: SubjectStore,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.records = records
        self.policies = policies
        self.subjects = subjects
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("gdprkv.records")

    def _require_subject(self, subject_id: str) -> None:
        if self.subjects.find_by_id(subject_id) is None:
            raise SubjectNotFoundError(subject_id)

    def _require_policy(self, purpose: str) -> Policy:
        policy = self.policies.find_by_purpose(purpose)
        if policy is None:
            raise InvalidPurposeError(purpose)
        return policy

    def put_record(self, subject_id: str, record_key: str, purpose: str, value: Any, request_id: str) -> Record:
        require_text("subject_id", subject_id)
        require_text("record_key", record_key)
        require_text("purpose", purpose)
        require_text("request_id", request_id)

        self._require_subject(subject_id)
        policy = self._require_policy(purpose)

        now = int(self.clock.now_millis())
        existing = self.records.find_by_key(subject_id, record_key)
        # A write always produces an active record; tombstone metadata is cleared.
        record = Record(
            subject_id=subject_id,
            record_key=record_key,
            purpose=purpose,
            value=value,
            version=(existing.version + 1) if existing is not None else 1,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
            retention_days=policy.retention_days,
            request_id=request_id,
        )
        self.records.save(record, expected_version=existing.version if existing is not None else None)
        if existing is not None and existing.tombstoned:
            self.logger.info(f"record {subject_id}/{record_key} revived by put (version={record.version})")
        return record

    def delete_record(self, subject_id: str, record_key: str, request_id: str) -> Record:
        return self.tombstone_record(subject_id, record_key, request_id)[0]

    def tombstone_record(self, subject_id: str, record_key: str, request_id: str) -> Tuple[Record, bool]:
        """Returns the record and whether this call tombstoned it (False when it already was)."""
        require_text("subject_id", subject_id)
        require_text("record_key", record_key)
        require_text("request_id", request_id)

        self._require_subject(subject_id)
        existing = self.records.find_by_key(subject_id, record_key)
        if existing is None:
            raise RecordNotFoundError(subject_id, record_key)
        if existing.tombstoned:
            return existing, False

        policy = self._require_policy(existing.purpose)
        now = int(self.clock.now_millis())
        tombstoned = existing.mark_tombstoned(now=now, retention_days=policy.retention_days, request_id=request_id)
        self.records.save(tombstoned, expected_version=existing.version)
        return tombstoned, True

    def get_record(self, subject_id: str, record_key: str) -> Record:
        self._require_subject(subject_id)
        record = self.records.find_by_key(subject_id, record_key)
        if record is None:
            raise RecordNotFoundError(subject_id, record_key)
        return record

    def find_all_by_subject(self, subject_id: str) -> List[Record]:
        require_text("subject_id", subject_id)
        return self.records.find_all_by_subject(subject_id)
