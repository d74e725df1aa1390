"""Decoding of active-grant locators into structured grants.

A registry feed is heterogeneous: entries from other authorities or with
unexpected paths are normal. ``parse_grants`` never raises for a bad
entry; it returns the accepted grants together with one ``Rejection`` per
dropped entry so callers decide how to report them.

Accepted locator shape::

    content://<authority>/tree/<volume>[:<directory>][/...]

``<volume>`` equal to the primary root id maps to the primary volume.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import unquote, urlsplit

from .config import ScopedAccessConfig
from .constants import PRIMARY_ROOT_ID, STORAGE_AUTHORITY, TREE_MARKER
from .models import PRIMARY, ExternalVolume, Grant, RawGrantEntry, Volume

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rejection:
    """A raw grant entry that failed structural validation."""

    entry: RawGrantEntry
    reason: str


@dataclass
class ParseResult:
    grants: list[Grant] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)


def _path_segments(path: str) -> list[str]:
    return [unquote(s) for s in path.split("/") if s]


def _split_volume_and_directory(segment: str) -> list[str]:
    """Split ``volume:directory`` dropping trailing empty parts.

    ``"ABCD-1234:"`` yields ``["ABCD-1234"]`` (whole volume).
    """
    parts = segment.split(":")
    while parts and parts[-1] == "":
        parts.pop()
    return parts


def _parse_entry(
    entry: RawGrantEntry,
    authority: str,
    tree_marker: str,
    primary_root_id: str,
) -> Grant | str:
    """Return a Grant, or the rejection reason."""
    if not entry.package:
        return "missing package"

    uri = urlsplit(entry.uri)
    if uri.netloc != authority:
        return f"wrong authority {uri.netloc!r}"

    segments = _path_segments(uri.path)
    if len(segments) < 2:
        return "wrong path segments"
    if segments[0] != tree_marker:
        return f"wrong path tree {segments[0]!r}"

    parts = _split_volume_and_directory(segments[1])
    if len(parts) not in (1, 2):
        return "could not parse volume and directory"

    volume_token = parts[0]
    if not volume_token:
        return "empty volume"
    directory: Optional[str] = parts[1] if len(parts) == 2 else None

    volume: Volume = PRIMARY if volume_token == primary_root_id else ExternalVolume(volume_token)
    if directory is None and volume is PRIMARY:
        return "whole-volume grant without a volume uuid"

    return Grant(package=entry.package, volume=volume, directory=directory)


def parse_grants(
    entries: Iterable[RawGrantEntry],
    *,
    authority: str = STORAGE_AUTHORITY,
    tree_marker: str = TREE_MARKER,
    primary_root_id: str = PRIMARY_ROOT_ID,
) -> ParseResult:
    """Convert registry entries into grants.

    Args:
        entries: Raw entries from a grant registry.
        authority: Storage authority the locator must carry.
        tree_marker: Expected first path segment.
        primary_root_id: Volume token denoting the primary volume.

    Returns:
        ParseResult with one Grant per accepted entry and one Rejection per
        dropped entry, both in input order.
    """
    result = ParseResult()
    for entry in entries:
        parsed = _parse_entry(entry, authority, tree_marker, primary_root_id)
        if isinstance(parsed, Grant):
            result.grants.append(parsed)
        else:
            result.rejections.append(Rejection(entry=entry, reason=parsed))
    return result


class GrantRecordParser:
    """Configured wrapper around :func:`parse_grants` that logs rejections."""

    def __init__(
        self,
        *,
        authority: str = STORAGE_AUTHORITY,
        tree_marker: str = TREE_MARKER,
        primary_root_id: str = PRIMARY_ROOT_ID,
    ) -> None:
        self.authority = authority
        self.tree_marker = tree_marker
        self.primary_root_id = primary_root_id

    @classmethod
    def from_config(cls, config: ScopedAccessConfig) -> GrantRecordParser:
        return cls(
            authority=config.storage_authority,
            tree_marker=config.tree_marker,
            primary_root_id=config.primary_root_id,
        )

    def parse(self, entries: Iterable[RawGrantEntry]) -> list[Grant]:
        result = parse_grants(
            entries,
            authority=self.authority,
            tree_marker=self.tree_marker,
            primary_root_id=self.primary_root_id,
        )
        for rejection in result.rejections:
            logger.warning("Ignoring grant %s of %s: %s", rejection.entry.uri, rejection.entry.package, rejection.reason)
        return result.grants


__all__ = [
    "GrantRecordParser",
    "ParseResult",
    "Rejection",
    "parse_grants",
]
