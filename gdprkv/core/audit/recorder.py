from __future__ import annotations

from typing import Any, Dict, Optional

from gdprkv.core.audit.chain import AuditHashChain
from gdprkv.core.audit.models import AuditEvent, EventType


def _error_details(error: Optional[str]) -> Optional[Dict[str, Any]]:
    return {"error": error} if error else None


class AuditLogRecorder:
    """Named helpers over `AuditHashChain.append`, one per outcome the callers record."""

    def __init__(self, chain: AuditHashChain):
        self.chain = chain

    # ---- subjects ----
    def create_subject_requested(self, subject_id: str, request_id: str) -> AuditEvent:
        return self.chain.append(subject_id, EventType.CREATE_SUBJECT_REQUESTED, request_id)

    def create_subject_completed(self, subject: Any) -> AuditEvent:
        return self.chain.append(subject.subject_id, EventType.CREATE_SUBJECT_COMPLETED, subject.request_id)

    def create_subject_failed(self, subject_id: str, request_id: str, error: Optional[str]) -> AuditEvent:
        return self.chain.append(subject_id, EventType.CREATE_SUBJECT_FAILED, request_id, details=_error_details(error))

    # ---- records ----
    def put_requested(self, subject_id: str, record_key: str, purpose: str, request_id: str) -> AuditEvent:
        return self.chain.append(subject_id, EventType.PUT_REQUESTED, request_id, item_key=record_key, purpose=purpose)

    def put_success(self, record: Any) -> AuditEvent:
        event_type = EventType.PUT_UPDATE_ITEM_SUCCESS if int(record.version) > 1 else EventType.PUT_NEW_ITEM_SUCCESS
        return self.chain.append(
            record.subject_id,
            event_type,
            record.request_id,
            item_key=record.record_key,
            purpose=record.purpose,
            details={"version": int(record.version)},
        )

    def put_failed(self, subject_id: str, record_key: str, purpose: str, request_id: str, error: Optional[str]) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.PUT_FAILED, request_id, item_key=record_key, purpose=purpose, details=_error_details(error)
        )

    def delete_requested(self, subject_id: str, record_key: str, request_id: str) -> AuditEvent:
        return self.chain.append(subject_id, EventType.DELETE_ITEM_REQUESTED, request_id, item_key=record_key)

    def delete_success(self, record: Any) -> AuditEvent:
        return self.chain.append(
            record.subject_id,
            EventType.DELETE_ITEM_SUCCESSFUL,
            record.request_id,
            item_key=record.record_key,
            purpose=record.purpose,
            details={"version": int(record.version), "purge_due_at": record.purge_due_at},
        )

    def delete_already_tombstoned(self, subject_id: str, record_key: str, request_id: str) -> AuditEvent:
        return self.chain.append(subject_id, EventType.DELETE_ITEM_ALREADY_TOMBSTONED, request_id, item_key=record_key)

    def delete_failed(self, subject_id: str, record_key: str, request_id: str, error: Optional[str]) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.DELETE_ITEM_FAILURE, request_id, item_key=record_key, details=_error_details(error)
        )

    # ---- erasure ----
    def erasure_requested(self, subject_id: str, request_id: str) -> AuditEvent:
        return self.chain.append(subject_id, EventType.SUBJECT_ERASURE_REQUESTED, request_id)

    def erasure_started(self, subject_id: str, request_id: str, record_count: int) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.SUBJECT_ERASURE_STARTED, request_id, details={"record_count": int(record_count)}
        )

    def erasure_completed(self, subject_id: str, request_id: str, records_deleted: int) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.SUBJECT_ERASURE_COMPLETED, request_id, details={"records_deleted": int(records_deleted)}
        )

    def erasure_failed(self, subject_id: str, request_id: str, error: Optional[str]) -> AuditEvent:
        return self.chain.append(subject_id, EventType.SUBJECT_ERASURE_FAILED, request_id, details=_error_details(error))

    # ---- purge ----
    def purge_identified(self, subject_id: str, record_key: str, job_request_id: str, purpose: Optional[str] = None) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.PURGE_CANDIDATE_IDENTIFIED, job_request_id, item_key=record_key, purpose=purpose
        )

    def purge_successful(self, subject_id: str, record_key: str, job_request_id: str, purpose: Optional[str] = None) -> AuditEvent:
        return self.chain.append(
            subject_id, EventType.PURGE_CANDIDATE_SUCCESSFUL, job_request_id, item_key=record_key, purpose=purpose
        )

    def purge_failed(
        self, subject_id: str, record_key: str, job_request_id: str, error: Optional[str], purpose: Optional[str] = None
    ) -> AuditEvent:
        return self.chain.append(
            subject_id,
            EventType.PURGE_CANDIDATE_FAILED,
            job_request_id,
            item_key=record_key,
            purpose=purpose,
            details=_error_details(error),
        )
