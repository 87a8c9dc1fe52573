from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuditRetentionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = False
    interval_seconds: float = Field(default=86400.0, gt=0)
    retention_days: int = Field(default=730, ge=1)


class PurgeSweeperConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = False
    interval_seconds: float = Field(default=900.0, gt=0)
    lookback_hours: int = Field(default=24, ge=0)


class AuditConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    serialize_appends: bool = True


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: Literal["memory", "sqlite"] = "sqlite"
    sqlite_path: str = "runtime/gdprkv.sqlite"


class WebConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    bind_host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class PolicySeed(BaseModel):
    model_config = ConfigDict(extra="forbid")
    purpose: str
    retention_days: int = Field(ge=1)
    description: str = ""

    @field_validator("purpose")
    @classmethod
    def _purpose_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("purpose must be non-blank")
        return v


def _default_policies() -> List[PolicySeed]:
    return [
        PolicySeed(purpose="FULFILLMENT", retention_days=30, description="Order fulfilment and delivery"),
        PolicySeed(purpose="MARKETING", retention_days=7, description="Marketing communications"),
        PolicySeed(purpose="ANALYTICS", retention_days=90, description="Product analytics"),
    ]


class GdprKvConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    audit_retention: AuditRetentionConfig = Field(default_factory=AuditRetentionConfig)
    purge_sweeper: PurgeSweeperConfig = Field(default_factory=PurgeSweeperConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    policies: List[PolicySeed] = Field(default_factory=_default_policies)

    @field_validator("policies")
    @classmethod
    def _unique_purposes(cls, v: List[PolicySeed]) -> List[PolicySeed]:
        seen = set()
        for p in v:
            if p.purpose in seen:
                raise ValueError(f"duplicate policy purpose: {p.purpose}")
            seen.add(p.purpose)
        return v
