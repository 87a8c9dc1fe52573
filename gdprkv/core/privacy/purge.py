from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gdprkv.core.audit.recorder import AuditLogRecorder
from gdprkv.core.clock import Clock, SystemClock
from gdprkv.core.ops_log import OpsLogger
from gdprkv.core.privacy.models import purge_buckets
from gdprkv.core.privacy.store import RecordStore


@dataclass
class BucketResult:
    bucket: str
    candidates: int = 0
    purged: int = 0
    failed: int = 0
    skipped: int = 0
    error: Optional[str] = None


@dataclass
class PurgeRunResult:
    job_request_id: str
    now_millis: int
    buckets: List[BucketResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def candidates(self) -> int:
        return sum(b.candidates for b in self.buckets)

    @property
    def purged(self) -> int:
        return sum(b.purged for b in self.buckets)

    @property
    def failed(self) -> int:
        return sum(b.failed for b in self.buckets)

    @property
    def skipped(self) -> int:
        return sum(b.skipped for b in self.buckets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_request_id": self.job_request_id,
            "now_millis": self.now_millis,
            "buckets_checked": len(self.buckets),
            "candidates": self.candidates,
            "purged": self.purged,
            "failed": self.failed,
            "skipped": self.skipped,
            "bucket_errors": [b.bucket for b in self.buckets if b.error],
            "duration_ms": self.duration_ms,
        }


class PurgeSweeper:
    """
    Physically deletes tombstoned records whose purge_due_at has passed.

    Each run scans the hourly purge buckets from the current hour back
    `lookback_hours` hours. Index hits are only candidates: each one is
    re-checked (`tombstoned` and `purge_due_at <= now`) before deletion, and
    the delete itself only succeeds if the stored row is still tombstoned at
    the version the index returned.
    Failures are counted and audited per record; a failed record stays
    tombstoned and due, so the next run picks it up again.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        audit: AuditLogRecorder,
        lookback_hours: int = 24,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        ops_logger: Optional[OpsLogger] = None,
    ):
        if int(lookback_hours) < 0:
            raise ValueError("lookback_hours must be >= 0")
        self.records = records
        self.audit = audit
        self.lookback_hours = int(lookback_hours)
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("gdprkv.purge")
        self.ops = ops_logger

    def run_once(self) -> PurgeRunResult:
        start = int(self.clock.now_millis())
        job_request_id = "purge-job-" + str(uuid.uuid4())
        self.logger.info(f"[{job_request_id}] purge sweeper started at {start} (lookback={self.lookback_hours}h)")

        now = int(self.clock.now_millis())
        buckets = purge_buckets(now, self.lookback_hours)
        self.logger.info(f"[{job_request_id}] checking {len(buckets)} purge buckets: {buckets}")

        result = PurgeRunResult(job_request_id=job_request_id, now_millis=now)
        for bucket in buckets:
            try:
                result.buckets.append(self._purge_bucket(bucket, now, job_request_id))
            except Exception as e:  # noqa: BLE001
                self.logger.error(f"[{job_request_id}] failed to process purge bucket {bucket}: {e}", exc_info=True)
                result.buckets.append(BucketResult(bucket=bucket, error=str(e)))

        result.duration_ms = int(self.clock.now_millis()) - start
        self.logger.info(
            f"[{job_request_id}] purge sweeper completed in {result.duration_ms}ms: "
            f"candidates={result.candidates}, purged={result.purged}, failed={result.failed}, skipped={result.skipped}"
        )
        if self.ops is not None:
            self.ops.log(
                trace_id=job_request_id,
                event="purge.sweep",
                outcome="ok" if result.failed == 0 else "partial",
                details=result.to_dict(),
            )
        return result

    def _purge_bucket(self, bucket: str, cutoff: int, job_request_id: str) -> BucketResult:
        candidates = self.records.find_due_for_purge(bucket, cutoff)
        out = BucketResult(bucket=bucket, candidates=len(candidates))
        if not candidates:
            self.logger.debug(f"[{job_request_id}] no records due in bucket {bucket}")
            return out
        self.logger.info(f"[{job_request_id}] found {len(candidates)} records due for purge in bucket {bucket}")

        for record in candidates:
            if not record.is_safe_to_purge(cutoff):
                out.skipped += 1
                self.logger.warning(
                    f"[{job_request_id}] skipping {record.subject_id}/{record.record_key}: not safe to delete "
                    f"(tombstoned={record.tombstoned}, purge_due_at={record.purge_due_at})"
                )
                continue
            try:
                self.audit.purge_identified(record.subject_id, record.record_key, job_request_id, purpose=record.purpose)
                if not self.records.delete(record, expected_version=record.version):
                    out.skipped += 1
                    self.logger.warning(
                        f"[{job_request_id}] skipping {record.subject_id}/{record.record_key}: "
                        f"changed since index query (expected version {record.version})"
                    )
                    continue
                self.audit.purge_successful(record.subject_id, record.record_key, job_request_id, purpose=record.purpose)
                out.purged += 1
            except Exception as e:  # noqa: BLE001
                out.failed += 1
                self.logger.error(f"[{job_request_id}] failed to purge {record.subject_id}/{record.record_key}: {e}")
                self._audit_failure(record.subject_id, record.record_key, record.purpose, job_request_id, str(e))
        return out

    def _audit_failure(self, subject_id: str, record_key: str, purpose: str, job_request_id: str, error: str) -> None:
        try:
            self.audit.purge_failed(subject_id, record_key, job_request_id, error, purpose=purpose)
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"[{job_request_id}] could not audit purge failure for {subject_id}/{record_key}: {e}")
