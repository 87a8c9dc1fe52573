from __future__ import annotations

import pytest

from gdprkv.core.errors import SubjectAlreadyExistsError, SubjectNotFoundError
from gdprkv.core.privacy.lifecycle import RecordLifecycle
from gdprkv.core.privacy.models import Policy
from gdprkv.core.privacy.store import InMemoryPolicyStore, InMemorySubjectStore
from gdprkv.core.privacy.subjects import SubjectErasureOrchestrator, SubjectService

from .helpers.fakes import T0, FlakyRecordStore, ManualClock


def _setup():
    clock = ManualClock()
    subjects = InMemorySubjectStore()
    records = FlakyRecordStore()
    policies = InMemoryPolicyStore([Policy(purpose="P", retention_days=30)])
    lifecycle = RecordLifecycle(records=records, policies=policies, subjects=subjects, clock=clock)
    svc = SubjectService(subjects=subjects, clock=clock)
    orch = SubjectErasureOrchestrator(subjects=subjects, lifecycle=lifecycle, clock=clock)
    return svc, orch, lifecycle, records, subjects, clock


def test_create_subject_once():
    svc, *_ = _setup()
    s = svc.create_subject("s1", "r1", residency="EU")
    assert s.version == 1
    assert s.created_at == T0
    assert s.residency == "EU"
    assert svc.exists("s1")
    assert not svc.exists("s2")
    with pytest.raises(SubjectAlreadyExistsError):
        svc.create_subject("s1", "r2")


def test_erasure_marks_subject_and_tombstones_active_records():
    svc, orch, lc, records, subjects, clock = _setup()
    svc.create_subject("s1", "r0")
    for k in ["a", "b", "c"]:
        lc.put_record("s1", k, "P", k, "r1")
    lc.delete_record("s1", "b", "r2")
    clock.advance(1000)

    res = orch.delete_subject("s1", "erase-1")

    assert res.total_records == 3
    assert res.records_tombstoned == 2
    assert res.subject.erasure_in_progress is True
    assert res.subject.erasure_requested_at == T0 + 1000
    stored = subjects.find_by_id("s1")
    assert stored.erasure_in_progress is True
    assert stored.version == 2
    assert all(r.tombstoned for r in records.find_all_by_subject("s1"))
    # previously tombstoned record is untouched
    assert records.find_by_key("s1", "b").request_id == "r2"


def test_erasure_of_unknown_subject():
    _, orch, *_ = _setup()
    with pytest.raises(SubjectNotFoundError):
        orch.delete_subject("ghost", "r1")


def test_partial_failure_leaves_earlier_records_tombstoned_and_rerun_converges():
    svc, orch, lc, records, subjects, _ = _setup()
    svc.create_subject("s1", "r0")
    for k in ["a", "b", "c"]:
        lc.put_record("s1", k, "P", k, "r1")
    records.fail_save_keys = {("s1", "b")}

    with pytest.raises(RuntimeError):
        orch.delete_subject("s1", "erase-1")

    assert records.find_by_key("s1", "a").tombstoned is True
    assert records.find_by_key("s1", "b").tombstoned is False
    assert records.find_by_key("s1", "c").tombstoned is False
    assert subjects.find_by_id("s1").erasure_in_progress is True

    records.fail_save_keys = set()
    res = orch.delete_subject("s1", "erase-2")
    assert res.records_tombstoned == 2
    assert res.total_records == 3
    assert all(r.tombstoned for r in records.find_all_by_subject("s1"))
