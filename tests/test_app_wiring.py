from __future__ import annotations

from app import build_runtime
from gdprkv.core.clock import MILLIS_PER_DAY
from gdprkv.core.config.models import GdprKvConfig
from gdprkv.core.ops_log import OpsLogger

from .helpers.fakes import ManualClock, RecordingLogger


class _ChildLogger(RecordingLogger):
    def getChild(self, _name):
        return self


def test_memory_runtime_seeds_policies_and_runs_jobs(tmp_path):
    cfg = GdprKvConfig.model_validate(
        {
            "storage": {"backend": "memory"},
            "policies": [{"purpose": "SHORT", "retention_days": 1}],
            "audit_retention": {"retention_days": 1},
        }
    )
    clock = ManualClock()
    ops = OpsLogger(path=str(tmp_path / "ops.jsonl"))
    rt = build_runtime(cfg, logger=_ChildLogger(), ops=ops, clock=clock)

    assert rt.service.policies.find_by_purpose("SHORT").retention_days == 1
    assert [j.name for j in rt.jobs] == ["purge-sweeper", "audit-retention"]
    assert not any(j.schedule.enabled for j in rt.jobs)

    rt.service.create_subject("s1", request_id="c1")
    rt.service.put_record("s1", "k1", "SHORT", 1, request_id="p1")
    rt.service.delete_record("s1", "k1", request_id="d1")
    clock.advance(MILLIS_PER_DAY + 1)

    sweep = rt.jobs[0].run_now()
    assert sweep.purged == 1
    retention = rt.jobs[1].run_now()
    assert retention.deleted > 0
    assert [r["event"] for r in ops.read_all()] == ["purge.sweep", "audit.retention"]


def test_sqlite_runtime_uses_configured_path(tmp_path):
    db_path = tmp_path / "data" / "kv.sqlite"
    cfg = GdprKvConfig.model_validate({"storage": {"backend": "sqlite", "sqlite_path": str(db_path)}})
    rt = build_runtime(cfg, logger=_ChildLogger(), clock=ManualClock())
    assert db_path.exists()
    assert rt.service.policies.find_by_purpose("FULFILLMENT") is not None
