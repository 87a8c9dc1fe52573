from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from gdprkv.core.clock import MILLIS_PER_DAY
from gdprkv.core.privacy.models import (
    Policy,
    Record,
    calculate_purge_due_at,
    format_purge_bucket,
    purge_buckets,
)

from .helpers.fakes import T0


def _record(**over):
    base = dict(
        subject_id="s1",
        record_key="k1",
        purpose="FULFILLMENT",
        value={"email": "a@example.com"},
        version=1,
        created_at=T0,
        updated_at=T0,
        retention_days=30,
        request_id="r1",
    )
    base.update(over)
    return Record(**base)


def test_purge_due_at_is_tombstone_time_plus_days():
    assert calculate_purge_due_at(T0, 30) == T0 + 30 * 86_400_000
    assert calculate_purge_due_at(T0, 0) == T0


def test_negative_retention_rejected():
    with pytest.raises(ValueError):
        calculate_purge_due_at(T0, -1)


def test_bucket_label_is_utc_hour():
    # 2025-08-27T21:00:00Z
    assert format_purge_bucket(T0) == "h#20250827T21"
    assert format_purge_bucket(T0 + 59 * 60 * 1000 + 59_999) == "h#20250827T21"
    assert format_purge_bucket(T0 + 3 * 3_600_000) == "h#20250828T00"


def test_purge_buckets_cover_current_hour_and_lookback():
    assert purge_buckets(T0, 0) == ["h#20250827T21"]
    assert purge_buckets(T0 + 30 * 60 * 1000, 2) == ["h#20250827T21", "h#20250827T20", "h#20250827T19"]
    assert len(purge_buckets(T0, 24)) == 25


def test_mark_tombstoned_sets_metadata_consistently():
    r = _record()
    t1 = T0 + 1000
    tomb = r.mark_tombstoned(now=t1, retention_days=30, request_id="r2")
    assert tomb.tombstoned is True
    assert tomb.tombstoned_at == t1
    assert tomb.purge_due_at == t1 + 30 * MILLIS_PER_DAY
    assert tomb.purge_bucket == format_purge_bucket(tomb.purge_due_at)
    assert tomb.version == 2
    assert tomb.updated_at == t1
    assert tomb.request_id == "r2"
    # original untouched
    assert r.tombstoned is False
    assert r.version == 1


def test_safe_to_purge_requires_tombstone_and_due_time():
    r = _record()
    assert not r.is_safe_to_purge(T0 + 10**12)
    tomb = r.mark_tombstoned(now=T0, retention_days=1, request_id="r2")
    assert not tomb.is_safe_to_purge(tomb.purge_due_at - 1)
    assert tomb.is_safe_to_purge(tomb.purge_due_at)
    assert not tomb.model_copy(update={"purge_due_at": None}).is_safe_to_purge(T0 + 10**12)


def test_policy_requires_positive_retention():
    with pytest.raises(PydanticValidationError):
        Policy(purpose="X", retention_days=0)
    with pytest.raises(PydanticValidationError):
        Policy(purpose="  ", retention_days=1)
