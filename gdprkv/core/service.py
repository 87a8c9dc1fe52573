from __future__ import annotations

import logging
from typing import Any, List, Optional

from gdprkv.core.audit.chain import AuditHashChain
from gdprkv.core.audit.models import AuditEvent, IntegrityReport
from gdprkv.core.audit.recorder import AuditLogRecorder
from gdprkv.core.audit.store import AuditEventStore, InMemoryAuditEventStore
from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.errors import require_text
from gdprkv.core.privacy.lifecycle import RecordLifecycle
from gdprkv.core.privacy.models import Policy, Record, Subject
from gdprkv.core.privacy.store import (
    InMemoryPolicyStore,
    InMemoryRecordStore,
    InMemorySubjectStore,
    PolicyStore,
    RecordStore,
    SubjectStore,
)
from gdprkv.core.privacy.subjects import ErasureResult, SubjectErasureOrchestrator, SubjectService
from gdprkv.core.trace import resolve_request_id


class GdprKvService:
    """
    Audited entry points for subject and record operations.

    Every mutating call records a "requested" event, runs the operation, then
    records the success event, or the failure event before re-raising.
    """

    def __init__(
        self,
        *,
        audit_store: AuditEventStore,
        records: RecordStore,
        policies: PolicyStore,
        subjects: SubjectStore,
        clock: Optional[Clock] = None,
        serialize_appends: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("gdprkv.service")
        self.audit_store = audit_store
        self.records = records
        self.policies = policies
        self.subjects = subjects

        self.chain = AuditHashChain(store=audit_store, clock=self.clock, serialize_appends=serialize_appends)
        self.audit = AuditLogRecorder(self.chain)
        self.lifecycle = RecordLifecycle(records=records, policies=policies, subjects=subjects, clock=self.clock)
        self.subject_service = SubjectService(subjects=subjects, clock=self.clock)
        self.erasure = SubjectErasureOrchestrator(subjects=subjects, lifecycle=self.lifecycle, clock=self.clock)

    @classmethod
    def in_memory(cls, *, policies: Optional[List[Policy]] = None, clock: Optional[Clock] = None, **kw: Any) -> "GdprKvService":
        return cls(
            audit_store=InMemoryAuditEventStore(),
            records=InMemoryRecordStore(),
            policies=InMemoryPolicyStore(policies),
            subjects=InMemorySubjectStore(),
            clock=clock,
            **kw,
        )

    # ---- subjects ----
    def create_subject(self, subject_id: str, *, residency: Optional[str] = None, request_id: Optional[str] = None) -> Subject:
        require_text("subject_id", subject_id)
        rid = resolve_request_id(request_id)
        self.audit.create_subject_requested(subject_id, rid)
        try:
            subject = self.subject_service.create_subject(subject_id, rid, residency=residency)
        except Exception as e:
            self.audit.create_subject_failed(subject_id, rid, str(e))
            raise
        self.audit.create_subject_completed(subject)
        return subject

    def get_subject(self, subject_id: str) -> Subject:
        return self.subject_service.get_subject(subject_id)

    def delete_subject(self, subject_id: str, *, request_id: Optional[str] = None) -> ErasureResult:
        require_text("subject_id", subject_id)
        rid = resolve_request_id(request_id)
        self.audit.erasure_requested(subject_id, rid)
        try:
            result = self.erasure.delete_subject(subject_id, rid)
            self.audit.erasure_started(subject_id, rid, result.total_records)
        except Exception as e:
            self.audit.erasure_failed(subject_id, rid, str(e))
            self.logger.warning(f"subject {subject_id} erasure failed: {e}")
            raise
        self.audit.erasure_completed(subject_id, rid, result.records_tombstoned)
        return result

    # ---- records ----
    def put_record(self, subject_id: str, record_key: str, purpose: str, value: Any, *, request_id: Optional[str] = None) -> Record:
        require_text("subject_id", subject_id)
        require_text("record_key", record_key)
        require_text("purpose", purpose)
        rid = resolve_request_id(request_id)
        self.audit.put_requested(subject_id, record_key, purpose, rid)
        try:
            record = self.lifecycle.put_record(subject_id, record_key, purpose, value, rid)
        except Exception as e:
            self.audit.put_failed(subject_id, record_key, purpose, rid, str(e))
            raise
        self.audit.put_success(record)
        return record

    def delete_record(self, subject_id: str, record_key: str, *, request_id: Optional[str] = None) -> Record:
        require_text("subject_id", subject_id)
        require_text("record_key", record_key)
        rid = resolve_request_id(request_id)
        self.audit.delete_requested(subject_id, record_key, rid)
        try:
            record, changed = self.lifecycle.tombstone_record(subject_id, record_key, rid)
        except Exception as e:
            self.audit.delete_failed(subject_id, record_key, rid, str(e))
            raise
        if changed:
            self.audit.delete_success(record)
        else:
            self.audit.delete_already_tombstoned(subject_id, record_key, rid)
        return record

    def get_record(self, subject_id: str, record_key: str) -> Record:
        return self.lifecycle.get_record(subject_id, record_key)

    def list_records(self, subject_id: str) -> List[Record]:
        return self.lifecycle.find_all_by_subject(subject_id)

    # ---- audit ----
    def list_audit_events(self, subject_id: str) -> List[AuditEvent]:
        require_text("subject_id", subject_id)
        return self.chain.events(subject_id)

    def verify_chain(self, subject_id: str, *, require_genesis: bool = True) -> IntegrityReport:
        require_text("subject_id", subject_id)
        return self.chain.verify(subject_id, require_genesis=require_genesis)

    def seed_policies(self, policies: List[Policy]) -> None:
        for p in policies:
            self.policies.upsert(p)
