"""
Explicit model <-> storage row mapping.

Rows are plain dicts keyed by column name; JSON payloads are stored as text.
Domain models carry no storage concerns.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from gdprkv.core.audit.hasher import canonical_json
from gdprkv.core.audit.models import AuditEvent, EventType
from gdprkv.core.privacy.models import Policy, Record, Subject


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _load_json(text: Optional[str]) -> Any:
    if text is None:
        return None
    return json.loads(text)


def _opt_int(v: Any) -> Optional[int]:
    return None if v is None else int(v)


# ---- audit events ----
def audit_event_to_row(ev: AuditEvent) -> Dict[str, Any]:
    return {
        "subject_id": ev.subject_id,
        "ts_ulid": ev.ts_ulid,
        "event_type": ev.event_type.value,
        "request_id": ev.request_id,
        "timestamp": int(ev.timestamp),
        "prev_hash": ev.prev_hash,
        "hash": ev.hash,
        "item_key": ev.item_key,
        "purpose": ev.purpose,
        "details_json": canonical_json(ev.details),
    }


def audit_event_from_row(row: Mapping[str, Any]) -> AuditEvent:
    return AuditEvent(
        subject_id=str(row["subject_id"]),
        ts_ulid=str(row["ts_ulid"]),
        event_type=EventType(str(row["event_type"])),
        request_id=str(row["request_id"]),
        timestamp=int(row["timestamp"]),
        prev_hash=str(row["prev_hash"]),
        hash=str(row["hash"]),
        item_key=row["item_key"],
        purpose=row["purpose"],
        details=_load_json(row["details_json"]) or {},
    )


# ---- records ----
def record_to_row(r: Record) -> Dict[str, Any]:
    return {
        "subject_id": r.subject_id,
        "record_key": r.record_key,
        "purpose": r.purpose,
        "value_json": _dump_json(r.value),
        "version": int(r.version),
        "created_at": int(r.created_at),
        "updated_at": int(r.updated_at),
        "retention_days": int(r.retention_days),
        "request_id": r.request_id,
        "tombstoned": 1 if r.tombstoned else 0,
        "tombstoned_at": _opt_int(r.tombstoned_at),
        "purge_due_at": _opt_int(r.purge_due_at),
        "purge_bucket": r.purge_bucket,
    }


def record_from_row(row: Mapping[str, Any]) -> Record:
    return Record(
        subject_id=str(row["subject_id"]),
        record_key=str(row["record_key"]),
        purpose=str(row["purpose"]),
        value=_load_json(row["value_json"]),
        version=int(row["version"]),
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
        retention_days=int(row["retention_days"]),
        request_id=str(row["request_id"]),
        tombstoned=bool(row["tombstoned"]),
        tombstoned_at=_opt_int(row["tombstoned_at"]),
        purge_due_at=_opt_int(row["purge_due_at"]),
        purge_bucket=row["purge_bucket"],
    )


# ---- policies ----
def policy_to_row(p: Policy) -> Dict[str, Any]:
    return {
        "purpose": p.purpose,
        "retention_days": int(p.retention_days),
        "description": p.description,
        "last_updated_at": _opt_int(p.last_updated_at),
    }


def policy_from_row(row: Mapping[str, Any]) -> Policy:
    return Policy(
        purpose=str(row["purpose"]),
        retention_days=int(row["retention_days"]),
        description=str(row["description"] or ""),
        last_updated_at=_opt_int(row["last_updated_at"]),
    )


# ---- subjects ----
def subject_to_row(s: Subject) -> Dict[str, Any]:
    return {
        "subject_id": s.subject_id,
        "created_at": int(s.created_at),
        "version": int(s.version),
        "residency": s.residency,
        "erasure_in_progress": 1 if s.erasure_in_progress else 0,
        "erasure_requested_at": _opt_int(s.erasure_requested_at),
        "request_id": s.request_id,
    }


def subject_from_row(row: Mapping[str, Any]) -> Subject:
    return Subject(
        subject_id=str(row["subject_id"]),
        created_at=int(row["created_at"]),
        version=int(row["version"]),
        residency=row["residency"],
        erasure_in_progress=bool(row["erasure_in_progress"]),
        erasure_requested_at=_opt_int(row["erasure_requested_at"]),
        request_id=row["request_id"],
    )
