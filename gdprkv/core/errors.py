from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass(eq=False)
class GdprKvError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = False
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.user_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": dict(self.context or {}),
        }


# ---- Domain errors ----
class InvalidPurposeError(GdprKvError):
    def __init__(self, purpose: str, **ctx: Any):
        super().__init__("INVALID_PURPOSE", f"Purpose {purpose} is not configured", severity=Severity.WARN, context={"purpose": purpose, **ctx})


class SubjectNotFoundError(GdprKvError):
    def __init__(self, subject_id: str, **ctx: Any):
        super().__init__("SUBJECT_NOT_FOUND", f"Subject {subject_id} does not exist", severity=Severity.WARN, context={"subject_id": subject_id, **ctx})


class SubjectAlreadyExistsError(GdprKvError):
    def __init__(self, subject_id: str, **ctx: Any):
        super().__init__("SUBJECT_ALREADY_EXISTS", f"Subject {subject_id} already exists", severity=Severity.WARN, context={"subject_id": subject_id, **ctx})


class RecordNotFoundError(GdprKvError):
    def __init__(self, subject_id: str, record_key: str, **ctx: Any):
        super().__init__(
            "RECORD_NOT_FOUND",
            f"Record {record_key} for subject {subject_id} does not exist",
            severity=Severity.WARN,
            context={"subject_id": subject_id, "record_key": record_key, **ctx},
        )


class VersionConflictError(GdprKvError):
    def __init__(self, user_message: str = "Concurrent modification detected.", **ctx: Any):
        super().__init__("VERSION_CONFLICT", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ValidationError(GdprKvError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("VALIDATION_ERROR", user_message, severity=Severity.WARN, context=ctx)


class ConfigError(GdprKvError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("CONFIG_ERROR", user_message, severity=Severity.CRITICAL, context=ctx)


_STATUS_BY_CODE = {
    "INVALID_PURPOSE": 400,
    "VALIDATION_ERROR": 400,
    "SUBJECT_NOT_FOUND": 404,
    "RECORD_NOT_FOUND": 404,
    "SUBJECT_ALREADY_EXISTS": 409,
    "VERSION_CONFLICT": 409,
}


def http_status_for(err: GdprKvError) -> int:
    return _STATUS_BY_CODE.get(err.code, 500)


def require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be non-blank", field=name)
    return value
