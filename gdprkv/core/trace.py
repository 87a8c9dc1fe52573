from __future__ import annotations

import contextlib
import contextvars
import uuid
from typing import Iterator, Optional

_REQUEST_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("gdprkv.request_id", default=None)


def new_request_id() -> str:
    return str(uuid.uuid4())


def current_request_id(default: Optional[str] = None) -> Optional[str]:
    request_id = _REQUEST_ID.get()
    return request_id if request_id else default


def resolve_request_id(request_id: Optional[str] = None) -> str:
    """Explicit id wins, then the bound context id, then a fresh uuid4."""
    if request_id and str(request_id).strip():
        return str(request_id).strip()
    existing = current_request_id()
    if existing:
        return existing
    return new_request_id()


@contextlib.contextmanager
def request_context(request_id: Optional[str]) -> Iterator[str]:
    rid = resolve_request_id(request_id)
    token = _REQUEST_ID.set(rid)
    try:
        yield rid
    finally:
        _REQUEST_ID.reset(token)
