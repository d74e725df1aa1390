"""Data models for scoped access reconciliation.

Internal values (volumes, grants, decisions) are frozen dataclasses so
they can live in sets and dict keys. Result rows are Pydantic models
because they cross the transport boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from .constants import COL_DIRECTORY, COL_GRANTED, COL_PACKAGE, COL_VOLUME_UUID


# ── Volumes ─────────────────────────────────────────


@dataclass(frozen=True)
class PrimaryVolume:
    """The device's default storage volume."""

    @property
    def uuid(self) -> None:
        return None

    def __str__(self) -> str:
        return "primary"


@dataclass(frozen=True)
class ExternalVolume:
    """A secondary volume identified by its UUID."""

    uuid: str

    def __post_init__(self) -> None:
        if not self.uuid:
            raise ValueError("ExternalVolume requires a non-empty uuid")

    def __str__(self) -> str:
        return self.uuid


Volume = Union[PrimaryVolume, ExternalVolume]

PRIMARY = PrimaryVolume()


def volume_from_uuid(uuid: Optional[str]) -> Volume:
    """Build a Volume from its wire form (``None`` = primary)."""
    return PRIMARY if uuid is None else ExternalVolume(uuid)


# ── Statuses ────────────────────────────────────────


class PermissionStatus(IntEnum):
    """Cached response to a permission prompt.

    Values match the integers persisted by the decision cache.
    """

    NEVER_ASK = -1
    ASK = 0
    ASK_AGAIN = 1
    GRANTED = 2

    @property
    def label(self) -> str:
        return self.name

    @property
    def is_denial(self) -> bool:
        """Whether the user affirmatively denied the request."""
        return self in (PermissionStatus.NEVER_ASK, PermissionStatus.ASK_AGAIN)


# ── Source records ──────────────────────────────────


@dataclass(frozen=True)
class RawGrantEntry:
    """An active grant as reported by the grant registry."""

    package: str
    uri: str


@dataclass(frozen=True)
class Grant:
    """An active permission held by a package.

    ``directory`` is ``None`` for a whole-volume grant.
    """

    package: str
    volume: Volume
    directory: Optional[str] = None

    @property
    def whole_volume(self) -> bool:
        return self.directory is None


@dataclass(frozen=True)
class Decision:
    """A cached prior response to a permission prompt.

    ``directory`` holds the cache's internal key, see
    :func:`scopedaccess.constants.get_internal_directory_name`.
    """

    package: str
    volume: Volume
    directory: Optional[str]
    status: PermissionStatus

    def __str__(self) -> str:
        return f"Decision[{self.package}/{self.volume}>{self.directory}: {self.status.label}]"


# ── Result rows ─────────────────────────────────────


class PackageRow(BaseModel):
    """Row of the ``packages`` table."""

    model_config = ConfigDict(frozen=True)

    package: str

    def to_wire(self) -> dict[str, Any]:
        return {COL_PACKAGE: self.package}


class PermissionRow(BaseModel):
    """Row of the ``permissions`` table.

    ``volume_uuid`` is ``None`` for the primary volume and ``directory`` is
    ``None`` for a whole-volume entry.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    volume_uuid: Optional[str] = None
    directory: Optional[str] = None
    granted: bool

    def to_wire(self) -> dict[str, Any]:
        return {
            COL_PACKAGE: self.package,
            COL_VOLUME_UUID: self.volume_uuid,
            COL_DIRECTORY: self.directory,
            COL_GRANTED: 1 if self.granted else 0,
        }


__all__ = [
    "PRIMARY",
    "Decision",
    "ExternalVolume",
    "Grant",
    "PackageRow",
    "PermissionRow",
    "PermissionStatus",
    "PrimaryVolume",
    "RawGrantEntry",
    "Volume",
    "volume_from_uuid",
]
