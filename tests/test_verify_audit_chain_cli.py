from __future__ import annotations

import importlib.util
import json
import os

from gdprkv.core.audit.chain import AuditHashChain
from gdprkv.core.audit.models import EventType
from gdprkv.core.persistence.sqlite_stores import SqliteAuditEventStore, SqliteDatabase

from .helpers.fakes import ManualClock

_SCRIPT = os.path.join(os.path.dirname(os.path.dirname(__file__)), "scripts", "verify_audit_chain.py")


def _load_cli():
    spec = importlib.util.spec_from_file_location("verify_audit_chain", _SCRIPT)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def _seed(db_path):
    db = SqliteDatabase(db_path=db_path)
    chain = AuditHashChain(store=SqliteAuditEventStore(db), clock=ManualClock())
    for s in ["alice", "bob"]:
        for i in range(3):
            chain.append(s, EventType.PUT_REQUESTED, f"{s}-{i}")
    return db


def test_intact_store_exits_zero(tmp_path, capsys):
    db_path = str(tmp_path / "g.sqlite")
    _seed(db_path)
    assert _load_cli().main(["--db", db_path]) == 0
    out = capsys.readouterr().out
    assert "alice: OK checked=3" in out
    assert "bob: OK checked=3" in out


def test_tampered_subject_exits_one(tmp_path, capsys):
    db_path = str(tmp_path / "g.sqlite")
    db = _seed(db_path)
    db.execute("UPDATE audit_events SET request_id='forged' WHERE request_id='bob-1'")

    assert _load_cli().main(["--db", db_path, "--json", "bob"]) == 1
    report = json.loads(capsys.readouterr().out.strip())
    assert report["subject_id"] == "bob"
    assert report["ok"] is False
    assert report["broken_at"] == 1


def test_missing_database_exits_one(tmp_path):
    assert _load_cli().main(["--db", str(tmp_path / "nope.sqlite")]) == 1
