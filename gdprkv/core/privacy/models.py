from __future__ import annotations

import time
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gdprkv.core.clock import MILLIS_PER_DAY, MILLIS_PER_HOUR


def calculate_purge_due_at(tombstoned_at: int, retention_days: int) -> int:
    if int(retention_days) < 0:
        raise ValueError("retention_days must be >= 0")
    return int(tombstoned_at) + MILLIS_PER_DAY * int(retention_days)


def format_purge_bucket(purge_due_at: int) -> str:
    # h#yyyyMMddTHH, UTC
    return time.strftime("h#%Y%m%dT%H", time.gmtime(int(purge_due_at) // 1000))


def purge_buckets(now_millis: int, lookback_hours: int) -> List[str]:
    """Bucket labels for the current hour and each of the previous `lookback_hours` hours."""
    if int(lookback_hours) < 0:
        raise ValueError("lookback_hours must be >= 0")
    return [format_purge_bucket(int(now_millis) - i * MILLIS_PER_HOUR) for i in range(int(lookback_hours) + 1)]


class Policy(BaseModel):
    model_config = ConfigDict(extra="forbid")

    purpose: str
    retention_days: int = Field(ge=1)
    description: str = ""
    last_updated_at: Optional[int] = None

    @field_validator("purpose")
    @classmethod
    def _purpose_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("purpose must be non-blank")
        return v


class Subject(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: str
    created_at: int
    version: int = 1
    residency: Optional[str] = None
    erasure_in_progress: bool = False
    erasure_requested_at: Optional[int] = None
    request_id: Optional[str] = None


class Record(BaseModel):
    """
    One subject-owned, purpose-tagged value.

    Tombstone metadata (`tombstoned_at`, `purge_due_at`, `purge_bucket`) is set
    together with `tombstoned=True` and cleared together with it. The model does
    not refuse inconsistent combinations because storage may hand them back;
    the purge sweeper re-checks before deleting.
    """

    model_config = ConfigDict(extra="forbid")

    subject_id: str
    record_key: str
    purpose: str
    value: Any = None
    version: int
    created_at: int
    updated_at: int
    retention_days: int
    request_id: str
    tombstoned: bool = False
    tombstoned_at: Optional[int] = None
    purge_due_at: Optional[int] = None
    purge_bucket: Optional[str] = None

    def mark_tombstoned(self, *, now: int, retention_days: int, request_id: str) -> "Record":
        due = calculate_purge_due_at(now, retention_days)
        return self.model_copy(
            update={
                "tombstoned": True,
                "tombstoned_at": int(now),
                "retention_days": int(retention_days),
                "purge_due_at": due,
                "purge_bucket": format_purge_bucket(due),
                "version": int(self.version) + 1,
                "updated_at": int(now),
                "request_id": request_id,
            }
        )

    def is_safe_to_purge(self, cutoff_millis: int) -> bool:
        if not self.tombstoned:
            return False
        if self.purge_due_at is None:
            return False
        return int(self.purge_due_at) <= int(cutoff_millis)
