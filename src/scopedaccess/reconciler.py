"""Reconciliation of active grants with cached prompt decisions.

Two sources describe scoped directory access:

- the grant registry, for permissions currently in effect, and
- the decision cache, for earlier answers to permission prompts
  (notably denials).

They are never kept in sync with each other, so every query re-reads
both and merges them with this precedence:

1. A whole-volume grant covers every directory of that volume.
2. An active grant wins over a cached denial of the same location.
3. Directory grants outside the standard directories are ignored.

The reconciler holds no state between calls.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .constants import STANDARD_DIRECTORIES, get_external_directory_name, get_internal_directory_name
from .exceptions import InvalidRequestError
from .logging import get_package_logger
from .models import Grant, PackageRow, PermissionRow, PermissionStatus, Volume
from .parser import GrantRecordParser
from .registry import GrantRegistry
from .stores import DecisionStore

logger = logging.getLogger(__name__)


def _volume_sort_key(volume: Volume) -> tuple[bool, str]:
    # Primary volume first
    return (volume.uuid is not None, volume.uuid or "")


class Reconciler:
    """Merges the grant registry and the decision cache into permission rows.

    Args:
        registry: Source of active grants.
        store: Decision cache.
        parser: Decoder for registry entries (default: standard markers).
        standard_directories: Directories eligible for directory-level grants.

    Example::

        reconciler = Reconciler(registry, store)
        reconciler.list_permissions("com.example.gallery")
        # [PermissionRow(package="com.example.gallery", volume_uuid="1234-ABCD",
        #                directory=None, granted=True), ...]
    """

    def __init__(
        self,
        registry: GrantRegistry,
        store: DecisionStore,
        *,
        parser: Optional[GrantRecordParser] = None,
        standard_directories: Iterable[str] = STANDARD_DIRECTORIES,
    ) -> None:
        self._registry = registry
        self._store = store
        self._parser = parser or GrantRecordParser()
        self._standard_directories = frozenset(standard_directories)

    # ── Packages ─────────────────────────────────────

    def list_packages(self) -> Optional[list[PackageRow]]:
        """List every package with a cached decision or an active grant.

        Returns:
            One row per package, sorted by name, or ``None`` when neither
            source knows any package.
        """
        packages = set(self._store.all_packages())
        granted = self._registry.active_grants_for(None)
        packages.update(entry.package for entry in granted)

        if not packages:
            logger.debug("list_packages(): nothing to do")
            return None

        logger.debug("list_packages(): %d packages (%d active grants)", len(packages), len(granted))
        return [PackageRow(package=pkg) for pkg in sorted(packages)]

    # ── Permissions ──────────────────────────────────

    def _partition_grants(
        self,
        grants: list[Grant],
    ) -> tuple[set[Volume], dict[Volume, set[str]]]:
        granted_volumes: set[Volume] = set()
        granted_dirs_by_volume: dict[Volume, set[str]] = {}

        for grant in grants:
            if grant.whole_volume:
                granted_volumes.add(grant.volume)
                continue
            if grant.directory not in self._standard_directories:
                logger.debug("Ignoring non-standard directory on %s", grant)
                continue
            granted_dirs_by_volume.setdefault(grant.volume, set()).add(grant.directory)

        return granted_volumes, granted_dirs_by_volume

    def list_permissions(self, package: str) -> list[PermissionRow]:
        """Reconciled permissions of a single package.

        Granted rows come first (whole volumes, then individual
        directories), followed by denied rows from the decision cache.

        Args:
            package: Package name to report on.

        Returns:
            List of PermissionRow, possibly empty.
        """
        if not package:
            raise InvalidRequestError("package cannot be empty")

        log = get_package_logger(__name__, package)

        raw = self._registry.active_grants_for(package)
        grants = [g for g in self._parser.parse(raw) if g.package == package]
        granted_volumes, granted_dirs_by_volume = self._partition_grants(grants)
        log.debug(
            "granted_volumes=%s, granted_directories=%s",
            granted_volumes,
            granted_dirs_by_volume,
        )

        rows: list[PermissionRow] = []

        for volume in sorted(granted_volumes, key=_volume_sort_key):
            rows.append(PermissionRow(package=package, volume_uuid=volume.uuid, directory=None, granted=True))

        for volume in sorted(granted_dirs_by_volume, key=_volume_sort_key):
            dirs = granted_dirs_by_volume[volume]
            if volume in granted_volumes:
                log.warning("Ignoring individual grants to %s: %s", volume, sorted(dirs))
                continue
            for directory in sorted(dirs):
                rows.append(PermissionRow(package=package, volume_uuid=volume.uuid, directory=directory, granted=True))

        denied: list[PermissionRow] = []
        for decision in self._store.all_decisions():
            if decision.package != package:
                continue
            if not decision.status.is_denial:
                log.debug("Ignoring %s because of its status", decision)
                continue
            if decision.volume in granted_volumes:
                log.debug("Ignoring %s because whole volume is granted", decision)
                continue
            if decision.directory is not None and decision.directory in granted_dirs_by_volume.get(
                decision.volume, ()
            ):
                log.warning("Ignoring %s because it was granted already", decision)
                continue
            denied.append(
                PermissionRow(
                    package=package,
                    volume_uuid=decision.volume.uuid,
                    directory=get_external_directory_name(decision.directory),
                    granted=False,
                )
            )

        denied.sort(key=lambda r: (r.volume_uuid is not None, r.volume_uuid or "", r.directory or ""))
        rows.extend(denied)

        log.debug("total permissions: %d", len(rows))
        return rows

    # ── Updates ──────────────────────────────────────

    def apply_grant(
        self,
        package: str,
        volume: Volume,
        directory: Optional[str],
        *,
        granted: bool = True,
    ) -> int:
        """Record that a permission should be granted.

        Only marks the decision as ``ASK`` so the package is prompted again
        instead of being reported as denied. Issuing the grant itself is
        left to the grant registry's owner.

        Args:
            package: Package the permission belongs to.
            volume: Target volume.
            directory: External directory name, or ``None`` for the whole volume.
            granted: Requested state. Revoking is not supported.

        Returns:
            Number of rows affected (0 or 1).
        """
        if not granted:
            # TODO: revoke the active grant through the registry owner once it exposes a revoke call
            logger.warning("Disabling permission is not supported yet (%s/%s>%s)", package, volume, directory)
            return 0

        if not package:
            raise InvalidRequestError("package cannot be empty")

        self._store.set_status(package, volume, get_internal_directory_name(directory), PermissionStatus.ASK)
        logger.info("Marked %s/%s>%s as %s", package, volume, directory, PermissionStatus.ASK.label)
        return 1


__all__ = ["Reconciler"]
