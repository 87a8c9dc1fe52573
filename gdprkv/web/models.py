from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PutSubjectRequest(BaseModel):
    residency: Optional[str] = Field(default=None, max_length=64)


class SubjectResponse(BaseModel):
    subject_id: str
    created_at: int
    residency: Optional[str] = None
    erasure_in_progress: bool = False
    erasure_requested_at: Optional[int] = None


class SubjectDeletionResponse(BaseModel):
    subject: SubjectResponse
    records_tombstoned: int
    total_records: int


class PutRecordRequest(BaseModel):
    purpose: str = Field(min_length=1, max_length=256)
    value: Any = None


class RecordResponse(BaseModel):
    subject_id: str
    record_key: str
    purpose: str
    value: Any = None
    version: int
    created_at: int
    updated_at: int
    retention_days: int
    tombstoned: bool = False
    tombstoned_at: Optional[int] = None
    purge_due_at: Optional[int] = None


class AuditEventResponse(BaseModel):
    subject_id: str
    ts_ulid: str
    event_type: str
    request_id: str
    timestamp: int
    prev_hash: str
    hash: str
    item_key: Optional[str] = None
    purpose: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class AuditEventListResponse(BaseModel):
    subject_id: str
    events: List[AuditEventResponse]


class ChainVerifyResponse(BaseModel):
    subject_id: str
    ok: bool
    checked: int
    broken_at: Optional[int] = None
    message: str = ""
    head_hash: Optional[str] = None


class ErrorResponse(BaseModel):
    code: str
    message: str
