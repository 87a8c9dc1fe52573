from __future__ import annotations

import argparse
import json
import os
import sys

from gdprkv.core.audit.chain import AuditHashChain
from gdprkv.core.config.io import ConfigFsPaths
from gdprkv.core.config.manager import ConfigManager
from gdprkv.core.persistence.sqlite_stores import SqliteAuditEventStore, SqliteDatabase


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Verify per-subject audit hash chains in the SQLite store")
    ap.add_argument("subjects", nargs="*", help="Subject ids to verify (default: every subject with events)")
    ap.add_argument("--db", default=None, help="SQLite path (defaults to storage.sqlite_path from config/gdprkv.json)")
    ap.add_argument("--root", default=".", help="Directory holding config/gdprkv.json")
    ap.add_argument("--allow-pruned", action="store_true", help="Accept chains whose head was removed by audit retention")
    ap.add_argument("--json", action="store_true", help="Print one JSON report per line")
    args = ap.parse_args(argv)

    db_path = args.db
    if db_path is None:
        cfg = ConfigManager(fs=ConfigFsPaths(args.root), read_only=True).load()
        db_path = os.path.join(args.root, cfg.storage.sqlite_path)
    if not os.path.exists(db_path):
        print(f"no database at {db_path}", file=sys.stderr)
        return 1

    store = SqliteAuditEventStore(SqliteDatabase(db_path=db_path))
    chain = AuditHashChain(store=store)
    subjects = args.subjects or store.list_subject_ids()

    all_ok = True
    for subject_id in subjects:
        report = chain.verify(subject_id, require_genesis=not args.allow_pruned)
        all_ok = all_ok and report.ok
        if args.json:
            print(json.dumps(report.model_dump(), sort_keys=True))
        else:
            status = "OK" if report.ok else f"BROKEN at {report.broken_at} ({report.message})"
            print(f"{subject_id}: {status} checked={report.checked}")
    return 0 if all_ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
