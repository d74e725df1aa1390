"""Storage markers and directory naming for scoped access.

Provides:
- Locator markers (storage authority, tree segment, primary root id).
- ``STANDARD_DIRECTORIES``: top-level directories eligible for scoped access.
- Internal/external directory name mapping used by the decision cache.
"""

from __future__ import annotations

from typing import Optional

# ── Locator markers ─────────────────────────────────
STORAGE_AUTHORITY = "com.android.externalstorage.documents"
TREE_MARKER = "tree"
PRIMARY_ROOT_ID = "primary"

# ── Standard directories ────────────────────────────
DIRECTORY_MUSIC = "Music"
DIRECTORY_PODCASTS = "Podcasts"
DIRECTORY_RINGTONES = "Ringtones"
DIRECTORY_ALARMS = "Alarms"
DIRECTORY_NOTIFICATIONS = "Notifications"
DIRECTORY_PICTURES = "Pictures"
DIRECTORY_MOVIES = "Movies"
DIRECTORY_DOWNLOADS = "Download"
DIRECTORY_DCIM = "DCIM"
DIRECTORY_DOCUMENTS = "Documents"

STANDARD_DIRECTORIES: tuple[str, ...] = (
    DIRECTORY_MUSIC,
    DIRECTORY_PODCASTS,
    DIRECTORY_RINGTONES,
    DIRECTORY_ALARMS,
    DIRECTORY_NOTIFICATIONS,
    DIRECTORY_PICTURES,
    DIRECTORY_MOVIES,
    DIRECTORY_DOWNLOADS,
    DIRECTORY_DCIM,
    DIRECTORY_DOCUMENTS,
)

# Key the decision cache uses for a whole-volume decision
DIRECTORY_ROOT = "ROOT_DIRECTORY"

# ── Tables ──────────────────────────────────────────
TABLE_PACKAGES = "packages"
TABLE_PERMISSIONS = "permissions"

COL_PACKAGE = "package"
COL_VOLUME_UUID = "volume_uuid"
COL_DIRECTORY = "directory"
COL_GRANTED = "granted"

TABLE_PACKAGES_COLUMNS = (COL_PACKAGE,)
TABLE_PERMISSIONS_COLUMNS = (COL_PACKAGE, COL_VOLUME_UUID, COL_DIRECTORY, COL_GRANTED)


def get_internal_directory_name(name: Optional[str]) -> str:
    """Map an externally visible directory name to the cache key.

    ``None`` (whole volume) becomes :data:`DIRECTORY_ROOT`.
    """
    return DIRECTORY_ROOT if name is None else name


def get_external_directory_name(name: Optional[str]) -> Optional[str]:
    """Map a cache key back to the externally visible directory name."""
    return None if name is None or name == DIRECTORY_ROOT else name


__all__ = [
    "COL_DIRECTORY",
    "COL_GRANTED",
    "COL_PACKAGE",
    "COL_VOLUME_UUID",
    "DIRECTORY_DOWNLOADS",
    "DIRECTORY_ROOT",
    "PRIMARY_ROOT_ID",
    "STANDARD_DIRECTORIES",
    "STORAGE_AUTHORITY",
    "TABLE_PACKAGES",
    "TABLE_PACKAGES_COLUMNS",
    "TABLE_PERMISSIONS",
    "TABLE_PERMISSIONS_COLUMNS",
    "TREE_MARKER",
    "get_external_directory_name",
    "get_internal_directory_name",
]
