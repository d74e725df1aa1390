"""Reconciliation of scoped storage access grants with cached prompt decisions."""

from .config import LogLevel, ScopedAccessConfig, load_config_from_env
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    ScopedAccessError,
    UnsupportedOperationError,
    UpstreamUnavailableError,
)
from .logging import get_package_logger, safe_preview, setup_logging
from .models import (
    PRIMARY,
    Decision,
    ExternalVolume,
    Grant,
    PackageRow,
    PermissionRow,
    PermissionStatus,
    PrimaryVolume,
    RawGrantEntry,
    Volume,
    volume_from_uuid,
)
from .parser import GrantRecordParser, ParseResult, Rejection, parse_grants
from .reconciler import Reconciler
from .registry import GrantRegistry, InMemoryGrantRegistry, RedisGrantRegistry
from .stores import DecisionStore, InMemoryDecisionStore, RedisDecisionStore
from .view import PermissionView

__all__ = [
    "PRIMARY",
    "ConfigurationError",
    "Decision",
    "DecisionStore",
    "ExternalVolume",
    "Grant",
    "GrantRecordParser",
    "GrantRegistry",
    "InMemoryDecisionStore",
    "InMemoryGrantRegistry",
    "InvalidRequestError",
    "LogLevel",
    "PackageRow",
    "ParseResult",
    "PermissionRow",
    "PermissionStatus",
    "PermissionView",
    "PrimaryVolume",
    "RawGrantEntry",
    "Reconciler",
    "RedisDecisionStore",
    "RedisGrantRegistry",
    "Rejection",
    "ScopedAccessConfig",
    "ScopedAccessError",
    "UnsupportedOperationError",
    "UpstreamUnavailableError",
    "Volume",
    "get_package_logger",
    "load_config_from_env",
    "parse_grants",
    "safe_preview",
    "setup_logging",
    "volume_from_uuid",
]
