from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gdprkv.core.errors import GdprKvError, http_status_for
from gdprkv.core.service import GdprKvService
from gdprkv.core.trace import request_context
from gdprkv.web.models import (
    AuditEventListResponse,
    AuditEventResponse,
    ChainVerifyResponse,
    PutRecordRequest,
    PutSubjectRequest,
    RecordResponse,
    SubjectDeletionResponse,
    SubjectResponse,
)

REQUEST_ID_HEADER = "X-Request-Id"


def _subject_response(subject) -> SubjectResponse:
    return SubjectResponse.model_validate(subject.model_dump())


def _record_response(record) -> RecordResponse:
    return RecordResponse.model_validate(record.model_dump())


def create_app(service: GdprKvService, logger: Optional[logging.Logger] = None) -> FastAPI:
    app = FastAPI(title="GDPR KV", version="0.1.0")
    log = logger or logging.getLogger("gdprkv.web")

    @app.exception_handler(GdprKvError)
    async def gdprkv_error_handler(request: Request, exc: GdprKvError):
        status = http_status_for(exc)
        if status >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc.code}")
            return JSONResponse(status_code=500, content={"code": "INTERNAL_ERROR", "message": "Internal error."})
        return JSONResponse(status_code=status, content={"code": exc.code, "message": exc.user_message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"code": "VALIDATION_ERROR", "message": "Invalid request."})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception(f"{request.method} {request.url.path} raised an unexpected error")
        return JSONResponse(status_code=500, content={"code": "INTERNAL_ERROR", "message": "Internal error."})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # ---- subjects ----
    @app.put("/subjects/{subject_id}", response_model=SubjectResponse)
    def put_subject(
        subject_id: str,
        response: Response,
        body: Optional[PutSubjectRequest] = None,
        x_request_id: Optional[str] = Header(default=None),
    ):
        with request_context(x_request_id) as rid:
            subject = service.create_subject(subject_id, residency=body.residency if body else None, request_id=rid)
        response.headers[REQUEST_ID_HEADER] = rid
        return _subject_response(subject)

    @app.delete("/subjects/{subject_id}", response_model=SubjectDeletionResponse)
    def delete_subject(subject_id: str, response: Response, x_request_id: Optional[str] = Header(default=None)):
        with request_context(x_request_id) as rid:
            result = service.delete_subject(subject_id, request_id=rid)
        response.headers[REQUEST_ID_HEADER] = rid
        return SubjectDeletionResponse(
            subject=_subject_response(result.subject),
            records_tombstoned=result.records_tombstoned,
            total_records=result.total_records,
        )

    # ---- records ----
    @app.put("/subjects/{subject_id}/records/{record_key}", response_model=RecordResponse)
    def put_record(
        subject_id: str,
        record_key: str,
        body: PutRecordRequest,
        response: Response,
        x_request_id: Optional[str] = Header(default=None),
    ):
        with request_context(x_request_id) as rid:
            record = service.put_record(subject_id, record_key, body.purpose, body.value, request_id=rid)
        response.headers[REQUEST_ID_HEADER] = rid
        response.headers["ETag"] = str(record.version)
        return _record_response(record)

    @app.get("/subjects/{subject_id}/records", response_model=List[RecordResponse])
    def list_records(subject_id: str):
        return [_record_response(r) for r in service.list_records(subject_id)]

    @app.get("/subjects/{subject_id}/records/{record_key}", response_model=RecordResponse)
    def get_record(subject_id: str, record_key: str, response: Response):
        record = service.get_record(subject_id, record_key)
        response.headers["ETag"] = str(record.version)
        return _record_response(record)

    @app.delete("/subjects/{subject_id}/records/{record_key}", response_model=RecordResponse)
    def delete_record(
        subject_id: str,
        record_key: str,
        response: Response,
        x_request_id: Optional[str] = Header(default=None),
    ):
        with request_context(x_request_id) as rid:
            record = service.delete_record(subject_id, record_key, request_id=rid)
        response.headers[REQUEST_ID_HEADER] = rid
        response.headers["ETag"] = str(record.version)
        return _record_response(record)

    # ---- audit ----
    @app.get("/subjects/{subject_id}/audit-events", response_model=AuditEventListResponse)
    def list_audit_events(subject_id: str):
        events = service.list_audit_events(subject_id)
        return AuditEventListResponse(
            subject_id=subject_id,
            events=[AuditEventResponse.model_validate(e.model_dump(mode="json")) for e in events],
        )

    @app.get("/subjects/{subject_id}/audit-events/verify", response_model=ChainVerifyResponse)
    def verify_audit_events(subject_id: str, require_genesis: bool = True):
        report = service.verify_chain(subject_id, require_genesis=require_genesis)
        return ChainVerifyResponse.model_validate(report.model_dump())

    return app
