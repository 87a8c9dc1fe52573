from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from gdprkv.core.audit.hasher import compute_event_hash


class EventType(str, Enum):
    CREATE_SUBJECT = "CREATE_SUBJECT"
    CREATE_SUBJECT_REQUESTED = "CREATE_SUBJECT_REQUESTED"
    CREATE_SUBJECT_COMPLETED = "CREATE_SUBJECT_COMPLETED"
    CREATE_SUBJECT_FAILED = "CREATE_SUBJECT_FAILED"

    PUT_REQUESTED = "PUT_REQUESTED"
    PUT_FAILED = "PUT_FAILED"
    PUT_SUCCESS = "PUT_SUCCESS"
    PUT_NEW_ITEM_SUCCESS = "PUT_NEW_ITEM_SUCCESS"
    PUT_UPDATE_ITEM_SUCCESS = "PUT_UPDATE_ITEM_SUCCESS"

    GET_REQUESTED = "GET_REQUESTED"
    GET_FAILURE = "GET_FAILURE"
    GET_SUCCESS = "GET_SUCCESS"

    DELETE_ITEM_REQUESTED = "DELETE_ITEM_REQUESTED"
    DELETE_ITEM_FAILURE = "DELETE_ITEM_FAILURE"
    DELETE_ITEM_ALREADY_TOMBSTONED = "DELETE_ITEM_ALREADY_TOMBSTONED"
    DELETE_ITEM_SUCCESSFUL = "DELETE_ITEM_SUCCESSFUL"

    DELETE_SUBJECT_REQUESTED = "DELETE_SUBJECT_REQUESTED"
    DELETE_SUBJECT_NO_SUBJECT = "DELETE_SUBJECT_NO_SUBJECT"
    DELETE_SUBJECT_FAILURE = "DELETE_SUBJECT_FAILURE"
    DELETE_SUBJECT_SUCCESS = "DELETE_SUBJECT_SUCCESS"

    SUBJECT_ERASURE_REQUESTED = "SUBJECT_ERASURE_REQUESTED"
    SUBJECT_ERASURE_STARTED = "SUBJECT_ERASURE_STARTED"
    SUBJECT_ERASURE_FAILED = "SUBJECT_ERASURE_FAILED"
    SUBJECT_ERASURE_COMPLETED = "SUBJECT_ERASURE_COMPLETED"

    PURGE_CANDIDATE_IDENTIFIED = "PURGE_CANDIDATE_IDENTIFIED"
    PURGE_CANDIDATE_SUCCESSFUL = "PURGE_CANDIDATE_SUCCESSFUL"
    PURGE_CANDIDATE_FAILED = "PURGE_CANDIDATE_FAILED"


class AuditEvent(BaseModel):
    """
    One immutable entry in a subject's audit chain.

    Sort order within a subject is the lexicographic order of `ts_ulid`.
    `hash` covers every other field, so any edit is detectable by `verify_hash()`.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    subject_id: str
    ts_ulid: str
    event_type: EventType
    request_id: str
    timestamp: int
    prev_hash: str
    hash: str
    item_key: Optional[str] = None
    purpose: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        subject_id: str,
        ts_ulid: str,
        event_type: EventType,
        request_id: str,
        timestamp: int,
        prev_hash: str,
        item_key: Optional[str] = None,
        purpose: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "AuditEvent":
        details = dict(details or {})
        h = compute_event_hash(
            subject_id=subject_id,
            ts_ulid=ts_ulid,
            event_type=EventType(event_type).value,
            request_id=request_id,
            item_key=item_key,
            purpose=purpose,
            timestamp=timestamp,
            details=details,
            prev_hash=prev_hash,
        )
        return cls(
            subject_id=subject_id,
            ts_ulid=ts_ulid,
            event_type=event_type,
            request_id=request_id,
            timestamp=int(timestamp),
            prev_hash=prev_hash,
            hash=h,
            item_key=item_key,
            purpose=purpose,
            details=details,
        )

    def compute_hash(self) -> str:
        return compute_event_hash(
            subject_id=self.subject_id,
            ts_ulid=self.ts_ulid,
            event_type=self.event_type.value,
            request_id=self.request_id,
            item_key=self.item_key,
            purpose=self.purpose,
            timestamp=self.timestamp,
            details=self.details,
            prev_hash=self.prev_hash,
        )

    def verify_hash(self) -> bool:
        return self.compute_hash() == self.hash


class IntegrityReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: str
    ok: bool
    checked: int
    broken_at: Optional[int] = None
    message: str = ""
    head_hash: Optional[str] = None
