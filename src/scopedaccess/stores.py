"""Decision cache backends.

The decision cache records prior responses to permission prompts, one
status per ``(package, volume, directory)``. Whole-volume decisions are
stored under the internal root directory key.

Backends:
- ``InMemoryDecisionStore``: process-local, for embedding and tests.
- ``RedisDecisionStore``: one Redis hash shared by all service instances.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol, runtime_checkable

import redis

from .constants import get_internal_directory_name
from .exceptions import UpstreamUnavailableError
from .models import Decision, PermissionStatus, Volume, volume_from_uuid

logger = logging.getLogger(__name__)


@runtime_checkable
class DecisionStore(Protocol):
    """Read/write access to cached permission decisions."""

    def all_decisions(self) -> list[Decision]: ...

    def all_packages(self) -> set[str]: ...

    def set_status(
        self,
        package: str,
        volume: Volume,
        directory: str,
        status: PermissionStatus,
    ) -> None: ...


def _check_key(package: str, directory: str) -> None:
    if not package:
        raise ValueError("package cannot be empty")
    if not directory:
        raise ValueError("directory cannot be empty; use the root directory key for whole volumes")


class InMemoryDecisionStore:
    """Decision cache held in a dict."""

    def __init__(self) -> None:
        self._statuses: dict[tuple[str, Volume, str], PermissionStatus] = {}

    def all_decisions(self) -> list[Decision]:
        return [
            Decision(package=pkg, volume=volume, directory=directory, status=status)
            for (pkg, volume, directory), status in self._statuses.items()
        ]

    def all_packages(self) -> set[str]:
        return {pkg for pkg, _, _ in self._statuses}

    def get_status(self, package: str, volume: Volume, directory: str) -> Optional[PermissionStatus]:
        return self._statuses.get((package, volume, directory))

    def set_status(
        self,
        package: str,
        volume: Volume,
        directory: str,
        status: PermissionStatus,
    ) -> None:
        _check_key(package, directory)
        self._statuses[(package, volume, directory)] = PermissionStatus(status)

    def clear(self) -> None:
        self._statuses.clear()


class RedisDecisionStore:
    """Decision cache stored in a single Redis hash.

    Field: JSON ``[package, volume_uuid, directory]``; value: integer status.
    """

    def __init__(self, client: redis.Redis, key: str = "scopedaccess:decisions") -> None:
        self._client = client
        self._key = key

    @classmethod
    def from_url(cls, url: str, key: str = "scopedaccess:decisions") -> RedisDecisionStore:
        return cls(redis.from_url(url, decode_responses=True), key=key)

    @staticmethod
    def _field(package: str, volume: Volume, directory: str) -> str:
        return json.dumps([package, volume.uuid, directory])

    def _decode(self, field: str, value: str) -> Optional[Decision]:
        try:
            package, uuid, directory = json.loads(field)
            # A null directory is the whole volume, same key as ROOT_DIRECTORY
            directory = get_internal_directory_name(directory)
            if not isinstance(package, str) or not package or (uuid is not None and not isinstance(uuid, str)):
                raise ValueError("invalid package or volume")
            if not isinstance(directory, str) or not directory:
                raise ValueError(f"invalid directory {directory!r}")
            status = PermissionStatus(int(value))
            return Decision(
                package=package,
                volume=volume_from_uuid(uuid),
                directory=directory,
                status=status,
            )
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning("Invalid decision entry %s=%s in %s: %s", field, value, self._key, e)
            return None

    def all_decisions(self) -> list[Decision]:
        try:
            raw = self._client.hgetall(self._key)
        except redis.RedisError as e:
            raise UpstreamUnavailableError(f"Decision store unavailable: {e}", key=self._key) from e

        decisions: dict[tuple[str, Volume, str], Decision] = {}
        for field, value in sorted(raw.items()):
            decision = self._decode(field, value)
            if decision is None:
                continue
            key = (decision.package, decision.volume, decision.directory)
            # One decision per triple; the field this store writes wins
            if key in decisions:
                logger.warning("Duplicate decision entry %s in %s", field, self._key)
                if field != self._field(*key):
                    continue
            decisions[key] = decision
        return list(decisions.values())

    def all_packages(self) -> set[str]:
        return {d.package for d in self.all_decisions()}

    def set_status(
        self,
        package: str,
        volume: Volume,
        directory: str,
        status: PermissionStatus,
    ) -> None:
        _check_key(package, directory)
        try:
            self._client.hset(self._key, self._field(package, volume, directory), int(status))
        except redis.RedisError as e:
            raise UpstreamUnavailableError(f"Decision store unavailable: {e}", key=self._key) from e
        logger.debug("Stored %s for %s/%s>%s", PermissionStatus(status).label, package, volume, directory)


__all__ = [
    "DecisionStore",
    "InMemoryDecisionStore",
    "RedisDecisionStore",
]
