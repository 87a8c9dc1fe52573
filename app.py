from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from dataclasses import dataclass, field
from typing import List, Optional

import uvicorn

from gdprkv.core.audit.retention import AuditRetentionJob
from gdprkv.core.audit.store import InMemoryAuditEventStore
from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.config.io import ConfigFsPaths
from gdprkv.core.config.manager import ConfigManager
from gdprkv.core.config.models import GdprKvConfig
from gdprkv.core.errors import ConfigError
from gdprkv.core.jobs.scheduler import JobSchedule, PeriodicJob
from gdprkv.core.logger import setup_logging
from gdprkv.core.ops_log import OpsLogger
from gdprkv.core.persistence.sqlite_stores import (
    SqliteAuditEventStore,
    SqliteDatabase,
    SqlitePolicyStore,
    SqliteRecordStore,
    SqliteSubjectStore,
)
from gdprkv.core.privacy.models import Policy
from gdprkv.core.privacy.purge import PurgeSweeper
from gdprkv.core.privacy.store import InMemoryPolicyStore, InMemoryRecordStore, InMemorySubjectStore
from gdprkv.core.service import GdprKvService
from gdprkv.web.api import create_app


@dataclass
class Runtime:
    cfg: GdprKvConfig
    service: GdprKvService
    sweeper: PurgeSweeper
    retention: AuditRetentionJob
    jobs: List[PeriodicJob] = field(default_factory=list)

    def start_jobs(self) -> None:
        for job in self.jobs:
            job.start()

    def stop_jobs(self) -> None:
        for job in self.jobs:
            job.stop()


def build_service(cfg: GdprKvConfig, *, clock: Clock, logger: logging.Logger) -> GdprKvService:
    if cfg.storage.backend == "memory":
        service = GdprKvService(
            audit_store=InMemoryAuditEventStore(),
            records=InMemoryRecordStore(),
            policies=InMemoryPolicyStore(),
            subjects=InMemorySubjectStore(),
            clock=clock,
            serialize_appends=cfg.audit.serialize_appends,
            logger=logger.getChild("service"),
        )
    else:
        db = SqliteDatabase(db_path=cfg.storage.sqlite_path)
        service = GdprKvService(
            audit_store=SqliteAuditEventStore(db),
            records=SqliteRecordStore(db),
            policies=SqlitePolicyStore(db),
            subjects=SqliteSubjectStore(db),
            clock=clock,
            serialize_appends=cfg.audit.serialize_appends,
            logger=logger.getChild("service"),
        )
    now = int(clock.now_millis())
    service.seed_policies(
        [
            Policy(purpose=p.purpose, retention_days=p.retention_days, description=p.description, last_updated_at=now)
            for p in cfg.policies
        ]
    )
    return service


def build_runtime(
    cfg: GdprKvConfig,
    *,
    logger: logging.Logger,
    ops: Optional[OpsLogger] = None,
    clock: Optional[Clock] = None,
) -> Runtime:
    clock = clock or SystemClock()
    service = build_service(cfg, clock=clock, logger=logger)

    sweeper = PurgeSweeper(
        records=service.records,
        audit=service.audit,
        lookback_hours=cfg.purge_sweeper.lookback_hours,
        clock=clock,
        logger=logger.getChild("purge"),
        ops_logger=ops,
    )
    retention = AuditRetentionJob(
        store=service.audit_store,
        retention_days=cfg.audit_retention.retention_days,
        clock=clock,
        logger=logger.getChild("audit.retention"),
        ops_logger=ops,
    )
    jobs = [
        PeriodicJob(
            name="purge-sweeper",
            fn=sweeper.run_once,
            schedule=JobSchedule(enabled=cfg.purge_sweeper.enabled, interval_seconds=cfg.purge_sweeper.interval_seconds),
            logger=logger.getChild("jobs"),
        ),
        PeriodicJob(
            name="audit-retention",
            fn=retention.run_once,
            schedule=JobSchedule(enabled=cfg.audit_retention.enabled, interval_seconds=cfg.audit_retention.interval_seconds),
            logger=logger.getChild("jobs"),
        ),
    ]
    return Runtime(cfg=cfg, service=service, sweeper=sweeper, retention=retention, jobs=jobs)


def main() -> int:
    ap = argparse.ArgumentParser(description="GDPR key-value store with tamper-evident audit log")
    ap.add_argument("--root", default=".", help="Directory holding config/gdprkv.json.")
    ap.add_argument("--host", default=None, help="Override web.bind_host.")
    ap.add_argument("--port", type=int, default=None, help="Override web.port.")
    ap.add_argument("--run-jobs-once", action="store_true", help="Run purge sweep and audit retention once, then exit.")
    args = ap.parse_args()

    try:
        cfg = ConfigManager(fs=ConfigFsPaths(args.root)).load()
    except ConfigError as e:
        print(f"config error: {e.user_message}")
        for err in e.context.get("errors", []):
            print(f"  {err}")
        return 2
    # relative storage paths resolve against --root
    storage = cfg.storage.model_copy(update={"sqlite_path": os.path.join(args.root, cfg.storage.sqlite_path)})
    cfg = cfg.model_copy(update={"storage": storage})

    logger = setup_logging(os.path.join(args.root, cfg.logging.log_dir), level=cfg.logging.level)
    ops = OpsLogger(path=os.path.join(args.root, cfg.logging.log_dir, "ops.jsonl"))
    runtime = build_runtime(cfg, logger=logger, ops=ops)

    if args.run_jobs_once:
        sweep = runtime.sweeper.run_once()
        ret = runtime.retention.run_once()
        logger.info(f"purged={sweep.purged} failed={sweep.failed} audit_deleted={ret.deleted}")
        return 0 if sweep.failed == 0 and ret.failed == 0 else 1

    runtime.start_jobs()
    host = args.host or cfg.web.bind_host
    port = int(args.port or cfg.web.port)
    server = uvicorn.Server(uvicorn.Config(create_app(runtime.service, logger=logger.getChild("web")), host=host, port=port, log_level="info"))

    def _shutdown(*_a) -> None:  # noqa: ANN001
        server.should_exit = True

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, _shutdown)

    logger.info(f"GDPR KV listening on http://{host}:{port} (storage={cfg.storage.backend})")
    try:
        server.run()
    finally:
        runtime.stop_jobs()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
