from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from gdprkv.core.audit.store import AuditEventStore
from gdprkv.core.clock import MILLIS_PER_DAY, Clock, SystemClock
from gdprkv.core.ops_log import OpsLogger


@dataclass(frozen=True)
class RetentionRunResult:
    job_request_id: str
    cutoff_millis: int
    found: int
    deleted: int
    failed: int
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_request_id": self.job_request_id,
            "cutoff_millis": self.cutoff_millis,
            "found": self.found,
            "deleted": self.deleted,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
        }


class AuditRetentionJob:
    """
    Deletes audit events whose timestamp is strictly older than
    `now - retention_days` days. Per-event failures are logged and counted;
    they never abort the run.
    """

    def __init__(
        self,
        *,
        store: AuditEventStore,
        retention_days: int = 730,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        ops_logger: Optional[OpsLogger] = None,
    ):
        if int(retention_days) < 1:
            raise ValueError("retention_days must be >= 1")
        self.store = store
        self.retention_days = int(retention_days)
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("gdprkv.audit.retention")
        self.ops = ops_logger

    def run_once(self) -> RetentionRunResult:
        job_request_id = "audit-retention-" + str(uuid.uuid4())
        start = int(self.clock.now_millis())
        cutoff = start - self.retention_days * MILLIS_PER_DAY
        self.logger.info(f"[{job_request_id}] audit retention started (retention_days={self.retention_days}, cutoff={cutoff})")

        old_events = self.store.find_older_than(cutoff)
        self.logger.info(f"[{job_request_id}] found {len(old_events)} audit events to delete")

        deleted = 0
        failed = 0
        for ev in old_events:
            try:
                self.store.delete(ev)
                deleted += 1
            except Exception as e:  # noqa: BLE001
                failed += 1
                self.logger.warning(f"[{job_request_id}] failed to delete audit event {ev.subject_id}/{ev.ts_ulid}: {e}")

        result = RetentionRunResult(
            job_request_id=job_request_id,
            cutoff_millis=cutoff,
            found=len(old_events),
            deleted=deleted,
            failed=failed,
            duration_ms=int(self.clock.now_millis()) - start,
        )
        self.logger.info(
            f"[{job_request_id}] audit retention completed in {result.duration_ms}ms: deleted={deleted}, failed={failed}"
        )
        if self.ops is not None:
            self.ops.log(
                trace_id=job_request_id,
                event="audit.retention",
                outcome="ok" if failed == 0 else "partial",
                details=result.to_dict(),
            )
        return result
