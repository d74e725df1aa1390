"""Active grant registry backends.

The grant registry is the authority that enforces storage access. The
reconciler only reads from it: ``active_grants_for(None)`` lists the
grants of every package.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

import redis

from .exceptions import UpstreamUnavailableError
from .models import RawGrantEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class GrantRegistry(Protocol):
    """Read-only access to active grants."""

    def active_grants_for(self, package: Optional[str]) -> list[RawGrantEntry]: ...


class InMemoryGrantRegistry:
    """Grant registry held in memory, keyed by package."""

    def __init__(self) -> None:
        self._grants: dict[str, list[str]] = {}

    def grant(self, package: str, uri: str) -> None:
        uris = self._grants.setdefault(package, [])
        if uri not in uris:
            uris.append(uri)

    def revoke(self, package: str, uri: str) -> None:
        uris = self._grants.get(package, [])
        if uri in uris:
            uris.remove(uri)
        if not uris:
            self._grants.pop(package, None)

    def active_grants_for(self, package: Optional[str]) -> list[RawGrantEntry]:
        packages = [package] if package is not None else list(self._grants)
        return [RawGrantEntry(package=pkg, uri=uri) for pkg in packages for uri in self._grants.get(pkg, [])]


class RedisGrantRegistry:
    """Grant registry stored as one Redis set of URIs per package.

    Keys: ``{prefix}:{package}``.
    """

    def __init__(self, client: redis.Redis, prefix: str = "scopedaccess:grants") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "scopedaccess:grants") -> RedisGrantRegistry:
        return cls(redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, package: str) -> str:
        return f"{self._prefix}:{package}"

    def _package_of(self, key: str) -> str:
        return key[len(self._prefix) + 1 :]

    def active_grants_for(self, package: Optional[str]) -> list[RawGrantEntry]:
        try:
            if package is not None:
                keys = [self._key(package)]
            else:
                keys = sorted(self._client.scan_iter(match=f"{self._prefix}:*"))

            entries = []
            for key in keys:
                pkg = self._package_of(key)
                for uri in sorted(self._client.smembers(key)):
                    entries.append(RawGrantEntry(package=pkg, uri=uri))
        except redis.RedisError as e:
            raise UpstreamUnavailableError(f"Grant registry unavailable: {e}", prefix=self._prefix) from e

        logger.debug("Grant registry returned %d entries for %s", len(entries), package or "all packages")
        return entries


__all__ = [
    "GrantRegistry",
    "InMemoryGrantRegistry",
    "RedisGrantRegistry",
]
