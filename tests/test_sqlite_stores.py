from __future__ import annotations

import pytest

from gdprkv.core.audit.chain import AuditHashChain
from gdprkv.core.audit.models import EventType
from gdprkv.core.errors import SubjectAlreadyExistsError, SubjectNotFoundError, VersionConflictError
from gdprkv.core.persistence.sqlite_stores import (
    SqliteAuditEventStore,
    SqliteDatabase,
    SqlitePolicyStore,
    SqliteRecordStore,
    SqliteSubjectStore,
)
from gdprkv.core.privacy.models import Policy, Subject
from gdprkv.core.privacy.purge import PurgeSweeper
from gdprkv.core.service import GdprKvService

from .helpers.fakes import T0, ManualClock, RecordingLogger


def _sqlite_service(tmp_path, clock):
    db = SqliteDatabase(db_path=str(tmp_path / "db" / "gdprkv.sqlite"))
    svc = GdprKvService(
        audit_store=SqliteAuditEventStore(db),
        records=SqliteRecordStore(db),
        policies=SqlitePolicyStore(db),
        subjects=SqliteSubjectStore(db),
        clock=clock,
    )
    svc.seed_policies([Policy(purpose="P", retention_days=1, description="test")])
    return svc, db


def test_subject_create_once_and_update_requires_existing(tmp_path):
    store = SqliteSubjectStore(SqliteDatabase(db_path=str(tmp_path / "x.sqlite")))
    s = Subject(subject_id="s1", created_at=T0, residency="EU", request_id="r")
    store.create(s)
    with pytest.raises(SubjectAlreadyExistsError):
        store.create(s)
    with pytest.raises(SubjectNotFoundError):
        store.update(Subject(subject_id="nope", created_at=T0))
    store.update(s.model_copy(update={"erasure_in_progress": True, "version": 2}))
    got = store.find_by_id("s1")
    assert got.erasure_in_progress is True
    assert got.version == 2
    assert got.residency == "EU"


def test_record_roundtrip_and_version_conditions(tmp_path):
    clock = ManualClock()
    svc, db = _sqlite_service(tmp_path, clock)
    svc.subject_service.create_subject("s1", "r0")
    r1 = svc.put_record("s1", "k1", "P", {"nested": [1, 2, {"x": None}]}, request_id="p1")
    got = svc.records.find_by_key("s1", "k1")
    assert got == r1

    with pytest.raises(VersionConflictError):
        svc.records.save(r1, expected_version=None)
    with pytest.raises(VersionConflictError):
        svc.records.save(r1.model_copy(update={"version": 5}), expected_version=4)

    r2 = svc.put_record("s1", "k1", "P", "v2", request_id="p2")
    assert svc.records.find_by_key("s1", "k1").version == r2.version == 2


def test_purge_index_query_and_sweep(tmp_path):
    clock = ManualClock()
    svc, _ = _sqlite_service(tmp_path, clock)
    svc.subject_service.create_subject("s1", "r0")
    svc.put_record("s1", "k1", "P", 1, request_id="p1")
    svc.put_record("s1", "k2", "P", 2, request_id="p1")
    tomb = svc.delete_record("s1", "k1", request_id="d1")

    assert svc.records.find_due_for_purge(tomb.purge_bucket, tomb.purge_due_at - 1) == []
    due = svc.records.find_due_for_purge(tomb.purge_bucket, tomb.purge_due_at)
    assert [r.record_key for r in due] == ["k1"]

    clock.set(tomb.purge_due_at + 1)
    res = PurgeSweeper(records=svc.records, audit=svc.audit, clock=clock, logger=RecordingLogger()).run_once()
    assert res.purged == 1
    assert [r.record_key for r in svc.records.find_all_by_subject("s1")] == ["k2"]


def test_audit_chain_persists_and_verifies(tmp_path):
    clock = ManualClock()
    db = SqliteDatabase(db_path=str(tmp_path / "a.sqlite"))
    store = SqliteAuditEventStore(db)
    chain = AuditHashChain(store=store, clock=clock)
    for i in range(5):
        chain.append("s1", EventType.PUT_REQUESTED, f"r{i}", item_key="k", details={"i": i, "note": "ü"})
    chain.append("s2", EventType.PUT_REQUESTED, "x")

    reopened = AuditHashChain(store=SqliteAuditEventStore(SqliteDatabase(db_path=str(tmp_path / "a.sqlite"))))
    rep = reopened.verify("s1")
    assert rep.ok is True
    assert rep.checked == 5
    assert store.list_subject_ids() == ["s1", "s2"]
    assert store.find_latest("s1").request_id == "r4"

    db.execute("UPDATE audit_events SET details_json=? WHERE request_id=?", ('{"i":99,"note":"ü"}', "r2"))
    assert reopened.verify("s1").ok is False


def test_find_older_than_is_strict(tmp_path):
    clock = ManualClock()
    store = SqliteAuditEventStore(SqliteDatabase(db_path=str(tmp_path / "a.sqlite")))
    chain = AuditHashChain(store=store, clock=clock)
    chain.append("s1", EventType.PUT_REQUESTED, "r0")
    clock.advance(10)
    chain.append("s1", EventType.PUT_REQUESTED, "r1")
    assert [e.request_id for e in store.find_older_than(T0 + 10)] == ["r0"]
    assert store.find_older_than(T0) == []


def test_record_delete_requires_tombstone_at_expected_version(tmp_path):
    clock = ManualClock()
    svc, _ = _sqlite_service(tmp_path, clock)
    svc.subject_service.create_subject("s1", "r0")
    live = svc.put_record("s1", "k1", "P", 1, request_id="p1")
    assert svc.records.delete(live, expected_version=live.version) is False

    tomb = svc.delete_record("s1", "k1", request_id="d1")
    svc.put_record("s1", "k1", "P", 2, request_id="p2")
    assert svc.records.delete(tomb, expected_version=tomb.version) is False
    assert svc.records.find_by_key("s1", "k1").value == 2

    again = svc.delete_record("s1", "k1", request_id="d2")
    assert svc.records.delete(again, expected_version=again.version) is True
    assert svc.records.find_by_key("s1", "k1") is None
