from __future__ import annotations

import os
import sqlite3
import threading
from typing import Any, Dict, List, Optional

from gdprkv.core.audit.models import AuditEvent
from gdprkv.core.errors import SubjectAlreadyExistsError, SubjectNotFoundError, VersionConflictError
from gdprkv.core.persistence.mapping import (
    audit_event_from_row,
    audit_event_to_row,
    policy_from_row,
    policy_to_row,
    record_from_row,
    record_to_row,
    subject_from_row,
    subject_to_row,
)
from gdprkv.core.privacy.models import Policy, Record, Subject


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS audit_events (
      subject_id TEXT NOT NULL,
      ts_ulid TEXT NOT NULL,
      event_type TEXT NOT NULL,
      request_id TEXT NOT NULL,
      timestamp INTEGER NOT NULL,
      prev_hash TEXT NOT NULL,
      hash TEXT NOT NULL,
      item_key TEXT,
      purpose TEXT,
      details_json TEXT NOT NULL,
      PRIMARY KEY (subject_id, ts_ulid)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_events_ts ON audit_events(timestamp);",
    """
    CREATE TABLE IF NOT EXISTS records (
      subject_id TEXT NOT NULL,
      record_key TEXT NOT NULL,
      purpose TEXT NOT NULL,
      value_json TEXT,
      version INTEGER NOT NULL,
      created_at INTEGER NOT NULL,
      updated_at INTEGER NOT NULL,
      retention_days INTEGER NOT NULL,
      request_id TEXT NOT NULL,
      tombstoned INTEGER NOT NULL DEFAULT 0,
      tombstoned_at INTEGER,
      purge_due_at INTEGER,
      purge_bucket TEXT,
      PRIMARY KEY (subject_id, record_key)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_records_purge_due ON records(purge_bucket, purge_due_at);",
    """
    CREATE TABLE IF NOT EXISTS policies (
      purpose TEXT PRIMARY KEY,
      retention_days INTEGER NOT NULL,
      description TEXT NOT NULL DEFAULT '',
      last_updated_at INTEGER
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS subjects (
      subject_id TEXT PRIMARY KEY,
      created_at INTEGER NOT NULL,
      version INTEGER NOT NULL,
      residency TEXT,
      erasure_in_progress INTEGER NOT NULL DEFAULT 0,
      erasure_requested_at INTEGER,
      request_id TEXT
    );
    """,
]


def _insert_sql(table: str, row: Dict[str, Any], *, verb: str = "INSERT") -> str:
    cols = ",".join(row.keys())
    marks = ",".join("?" for _ in row)
    return f"{verb} INTO {table}({cols}) VALUES ({marks})"


class SqliteDatabase:
    """
    Single-file SQLite backing for every storage port.

    Each call opens its own connection under a process-wide lock.
    """

    def __init__(self, *, db_path: str):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        self._init_db()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._conn()
            try:
                for ddl in _SCHEMA:
                    conn.execute(ddl)
                conn.commit()
            finally:
                conn.close()

    def query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._conn()
            try:
                return list(conn.execute(sql, params).fetchall())
            finally:
                conn.close()

    def execute(self, sql: str, params: tuple = ()) -> int:
        with self._lock:
            conn = self._conn()
            try:
                cur = conn.execute(sql, params)
                conn.commit()
                return int(cur.rowcount)
            finally:
                conn.close()


class SqliteAuditEventStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def put(self, event: AuditEvent) -> None:
        row = audit_event_to_row(event)
        self.db.execute(_insert_sql("audit_events", row, verb="INSERT OR REPLACE"), tuple(row.values()))

    def find_latest(self, subject_id: str) -> Optional[AuditEvent]:
        rows = self.db.query(
            "SELECT * FROM audit_events WHERE subject_id=? ORDER BY ts_ulid DESC LIMIT 1",
            (subject_id,),
        )
        return audit_event_from_row(rows[0]) if rows else None

    def find_all_by_subject(self, subject_id: str) -> List[AuditEvent]:
        rows = self.db.query("SELECT * FROM audit_events WHERE subject_id=? ORDER BY ts_ulid ASC", (subject_id,))
        return [audit_event_from_row(r) for r in rows]

    def find_older_than(self, cutoff_millis: int) -> List[AuditEvent]:
        rows = self.db.query(
            "SELECT * FROM audit_events WHERE timestamp < ? ORDER BY subject_id, ts_ulid",
            (int(cutoff_millis),),
        )
        return [audit_event_from_row(r) for r in rows]

    def delete(self, event: AuditEvent) -> None:
        self.db.execute("DELETE FROM audit_events WHERE subject_id=? AND ts_ulid=?", (event.subject_id, event.ts_ulid))

    def list_subject_ids(self) -> List[str]:
        rows = self.db.query("SELECT DISTINCT subject_id FROM audit_events ORDER BY subject_id")
        return [str(r["subject_id"]) for r in rows]


class SqliteRecordStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def find_by_key(self, subject_id: str, record_key: str) -> Optional[Record]:
        rows = self.db.query("SELECT * FROM records WHERE subject_id=? AND record_key=?", (subject_id, record_key))
        return record_from_row(rows[0]) if rows else None

    def find_all_by_subject(self, subject_id: str) -> List[Record]:
        rows = self.db.query("SELECT * FROM records WHERE subject_id=? ORDER BY record_key ASC", (subject_id,))
        return [record_from_row(r) for r in rows]

    def find_due_for_purge(self, bucket: str, cutoff_millis: int) -> List[Record]:
        rows = self.db.query(
            "SELECT * FROM records WHERE purge_bucket=? AND purge_due_at <= ? ORDER BY purge_due_at, subject_id, record_key",
            (bucket, int(cutoff_millis)),
        )
        return [record_from_row(r) for r in rows]

    def save(self, record: Record, *, expected_version: Optional[int]) -> Record:
        row = record_to_row(record)
        if expected_version is None:
            try:
                self.db.execute(_insert_sql("records", row), tuple(row.values()))
            except sqlite3.IntegrityError:
                raise VersionConflictError(
                    "Record already exists.", subject_id=record.subject_id, record_key=record.record_key
                ) from None
            return record

        cols = [c for c in row if c not in ("subject_id", "record_key")]
        sets = ",".join(f"{c}=?" for c in cols)
        params = tuple(row[c] for c in cols) + (record.subject_id, record.record_key, int(expected_version))
        changed = self.db.execute(
            f"UPDATE records SET {sets} WHERE subject_id=? AND record_key=? AND version=?",
            params,
        )
        if changed == 0:
            raise VersionConflictError(
                subject_id=record.subject_id, record_key=record.record_key, expected_version=expected_version
            )
        return record

    def delete(self, record: Record, *, expected_version: int) -> bool:
        changed = self.db.execute(
            "DELETE FROM records WHERE subject_id=? AND record_key=? AND version=? AND tombstoned=1",
            (record.subject_id, record.record_key, int(expected_version)),
        )
        return changed > 0


class SqlitePolicyStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def find_by_purpose(self, purpose: str) -> Optional[Policy]:
        rows = self.db.query("SELECT * FROM policies WHERE purpose=?", (purpose,))
        return policy_from_row(rows[0]) if rows else None

    def upsert(self, policy: Policy) -> None:
        row = policy_to_row(policy)
        self.db.execute(_insert_sql("policies", row, verb="INSERT OR REPLACE"), tuple(row.values()))


class SqliteSubjectStore:
    def __init__(self, db: SqliteDatabase):
        self.db = db

    def find_by_id(self, subject_id: str) -> Optional[Subject]:
        rows = self.db.query("SELECT * FROM subjects WHERE subject_id=?", (subject_id,))
        return subject_from_row(rows[0]) if rows else None

    def create(self, subject: Subject) -> Subject:
        row = subject_to_row(subject)
        try:
            self.db.execute(_insert_sql("subjects", row), tuple(row.values()))
        except sqlite3.IntegrityError:
            raise SubjectAlreadyExistsError(subject.subject_id) from None
        return subject

    def update(self, subject: Subject) -> Subject:
        row = subject_to_row(subject)
        cols = [c for c in row if c != "subject_id"]
        sets = ",".join(f"{c}=?" for c in cols)
        changed = self.db.execute(
            f"UPDATE subjects SET {sets} WHERE subject_id=?",
            tuple(row[c] for c in cols) + (subject.subject_id,),
        )
        if changed == 0:
            raise SubjectNotFoundError(subject.subject_id)
        return subject
