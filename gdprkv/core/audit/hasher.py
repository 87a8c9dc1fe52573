from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional


# Genesis prev_hash for the first event of every subject chain.
ZERO_HASH = "0" * 64


def canonical_json(obj: Optional[Dict[str, Any]]) -> str:
    # Deterministic JSON (no whitespace, sorted keys)
    return json.dumps(obj or {}, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def canonical_string(
    *,
    subject_id: str,
    ts_ulid: str,
    event_type: str,
    request_id: str,
    item_key: Optional[str],
    purpose: Optional[str],
    timestamp: int,
    details: Optional[Dict[str, Any]],
    prev_hash: str,
) -> str:
    parts = [
        subject_id,
        ts_ulid,
        event_type,
        request_id,
        item_key or "",
        purpose or "",
        str(int(timestamp)),
        canonical_json(details),
        prev_hash,
    ]
    return "|".join(parts)


def compute_event_hash(**fields: Any) -> str:
    return hashlib.sha256(canonical_string(**fields).encode("utf-8")).hexdigest()
