from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.errors import SubjectNotFoundError, require_text
from gdprkv.core.privacy.lifecycle import RecordLifecycle
from gdprkv.core.privacy.models import Subject
from gdprkv.core.privacy.store import SubjectStore


class SubjectService:
    def __init__(self, *, subjects: SubjectStore, clock: Optional[Clock] = None):
        self.subjects = subjects
        self.clock = clock or SystemClock()

    def create_subject(self, subject_id: str, request_id: str, residency: Optional[str] = None) -> Subject:
        require_text("subject_id", subject_id)
        require_text("request_id", request_id)
        subject = Subject(
            subject_id=subject_id,
            created_at=int(self.clock.now_millis()),
            version=1,
            residency=residency,
            request_id=request_id,
        )
        # raises SubjectAlreadyExistsError on a second create
        return self.subjects.create(subject)

    def exists(self, subject_id: str) -> bool:
        require_text("subject_id", subject_id)
        return self.subjects.find_by_id(subject_id) is not None

    def get_subject(self, subject_id: str) -> Subject:
        require_text("subject_id", subject_id)
        subject = self.subjects.find_by_id(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return subject


@dataclass(frozen=True)
class ErasureResult:
    subject: Subject
    records_tombstoned: int
    total_records: int


class SubjectErasureOrchestrator:
    """
    Right-to-erasure workflow: flag the subject, then tombstone each of its
    active records through RecordLifecycle.

    Not transactional. If tombstoning one record fails the error propagates,
    earlier records stay tombstoned and the subject stays flagged. Every step
    is idempotent, so re-running the whole erasure converges.
    """

    def __init__(
        self,
        *,
        subjects: SubjectStore,
        lifecycle: RecordLifecycle,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.subjects = subjects
        self.lifecycle = lifecycle
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("gdprkv.erasure")

    def delete_subject(self, subject_id: str, request_id: str) -> ErasureResult:
        require_text("subject_id", subject_id)
        require_text("request_id", request_id)

        subject = self.subjects.find_by_id(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)

        now = int(self.clock.now_millis())
        updated = subject.model_copy(
            update={
                "erasure_in_progress": True,
                "erasure_requested_at": now,
                "request_id": request_id,
                "version": int(subject.version) + 1,
            }
        )
        self.subjects.update(updated)

        records = self.lifecycle.find_all_by_subject(subject_id)
        tombstoned = 0
        for record in records:
            if record.tombstoned:
                continue
            self.lifecycle.delete_record(record.subject_id, record.record_key, request_id)
            tombstoned += 1

        self.logger.info(f"subject {subject_id} erasure: tombstoned={tombstoned} total={len(records)}")
        return ErasureResult(subject=updated, records_tombstoned=tombstoned, total_records=len(records))
