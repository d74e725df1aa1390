"""Configuration contract for the scoped access service.

Pydantic-validated settings shared by the reconciler, the storage
adapters and the gRPC transport. ``load_config_from_env()`` is the only
place that reads ``os.environ``; everything else receives a config object.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .constants import PRIMARY_ROOT_ID, STANDARD_DIRECTORIES, STORAGE_AUTHORITY, TREE_MARKER


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ScopedAccessConfig(BaseModel):
    """Settings for the scoped access reconciler and its collaborators."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the service",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Storage backends
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for the decision cache and grant registry (None = in-memory)",
    )
    decisions_key: str = Field(
        default="scopedaccess:decisions",
        description="Redis hash holding cached permission decisions",
    )
    grants_prefix: str = Field(
        default="scopedaccess:grants",
        description="Key prefix of the per-package Redis sets holding active grants",
    )

    # Locator parsing
    storage_authority: str = Field(
        default=STORAGE_AUTHORITY,
        description="Authority an active grant locator must carry",
    )
    tree_marker: str = Field(
        default=TREE_MARKER,
        description="First path segment of a tree locator",
    )
    primary_root_id: str = Field(
        default=PRIMARY_ROOT_ID,
        description="Volume token that denotes the primary volume",
    )
    standard_directories: list[str] = Field(
        default_factory=lambda: list(STANDARD_DIRECTORIES),
        description="Directories eligible for directory-level grants",
    )

    # Transport
    grpc_address: str = Field(
        default="[::]:50061",
        description="Listen address of the gRPC service",
    )
    tls_cert_path: str = Field(
        default="",
        description="Server certificate path (empty = insecure port)",
    )
    tls_key_path: str = Field(
        default="",
        description="Server private key path",
    )
    tls_ca_path: str = Field(
        default="",
        description="CA certificate path; when set, clients must present a certificate",
    )

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert_path and self.tls_key_path)

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("standard_directories")
    @classmethod
    def validate_standard_directories(cls, v: list[str]) -> list[str]:
        if not v or any(not d for d in v):
            raise ValueError("standard_directories must be a non-empty list of non-empty names")
        return v

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def load_config_from_env() -> ScopedAccessConfig:
    """Load configuration from environment variables.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - REDIS_URL: Redis connection URL (unset = in-memory backends)
    - SCOPED_ACCESS_DECISIONS_KEY: Redis hash for cached decisions
    - SCOPED_ACCESS_GRANTS_PREFIX: Redis key prefix for active grants
    - SCOPED_ACCESS_AUTHORITY: Expected storage authority of grant locators
    - SCOPED_ACCESS_STANDARD_DIRECTORIES: Comma-separated directory names
    - SCOPED_ACCESS_GRPC_ADDRESS: gRPC listen address
    - SCOPED_ACCESS_TLS_CERT / SCOPED_ACCESS_TLS_KEY / SCOPED_ACCESS_TLS_CA: TLS material paths

    Returns:
        ScopedAccessConfig with values from environment or defaults.
    """
    import os

    defaults = ScopedAccessConfig()

    dirs_raw = os.getenv("SCOPED_ACCESS_STANDARD_DIRECTORIES", "")
    dirs = [d.strip() for d in dirs_raw.split(",") if d.strip()] or defaults.standard_directories

    return ScopedAccessConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_flag(os.getenv("LOG_JSON", "false")),
        redis_url=os.getenv("REDIS_URL") or None,
        decisions_key=os.getenv("SCOPED_ACCESS_DECISIONS_KEY", defaults.decisions_key),
        grants_prefix=os.getenv("SCOPED_ACCESS_GRANTS_PREFIX", defaults.grants_prefix),
        storage_authority=os.getenv("SCOPED_ACCESS_AUTHORITY", defaults.storage_authority),
        standard_directories=dirs,
        grpc_address=os.getenv("SCOPED_ACCESS_GRPC_ADDRESS", defaults.grpc_address),
        tls_cert_path=os.getenv("SCOPED_ACCESS_TLS_CERT", ""),
        tls_key_path=os.getenv("SCOPED_ACCESS_TLS_KEY", ""),
        tls_ca_path=os.getenv("SCOPED_ACCESS_TLS_CA", ""),
    )


__all__ = [
    "LogLevel",
    "ScopedAccessConfig",
    "load_config_from_env",
]
