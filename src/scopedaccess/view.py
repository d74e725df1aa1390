"""Table-style access to reconciled permissions.

Exposes two tables:

- ``packages``: read-only, one row per package with a grant or a decision.
- ``permissions``: readable per package; updatable to request a grant.

Table names are routed through a mapping owned by each ``PermissionView``
instance. Queries always return full rows: projection, selection and sort
order are accepted for compatibility and ignored.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel

from .constants import COL_GRANTED, TABLE_PACKAGES, TABLE_PERMISSIONS
from .exceptions import InvalidRequestError, UnsupportedOperationError
from .models import volume_from_uuid
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


class TableHandler(Protocol):
    """Handler behind one table name."""

    def query(self, selection_args: Optional[Sequence[Optional[str]]]) -> Optional[list[BaseModel]]: ...

    def update(self, values: Mapping[str, Any], selection_args: Optional[Sequence[Optional[str]]]) -> int: ...


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


class PackagesTable:
    """Read-only ``packages`` table."""

    def __init__(self, reconciler: Reconciler) -> None:
        self._reconciler = reconciler

    def query(self, selection_args: Optional[Sequence[Optional[str]]]) -> Optional[list[BaseModel]]:
        return self._reconciler.list_packages()

    def update(self, values: Mapping[str, Any], selection_args: Optional[Sequence[Optional[str]]]) -> int:
        raise UnsupportedOperationError(f"update(): unsupported table {TABLE_PACKAGES}")


class PermissionsTable:
    """``permissions`` table filtered by package."""

    def __init__(self, reconciler: Reconciler) -> None:
        self._reconciler = reconciler

    def query(self, selection_args: Optional[Sequence[Optional[str]]]) -> Optional[list[BaseModel]]:
        if not selection_args:
            raise InvalidRequestError("selections cannot be empty")
        # Only one package is supported per query
        if len(selection_args) > 1:
            logger.warning("Using just first entry of %s", list(selection_args))
        package = selection_args[0]
        if not package:
            raise InvalidRequestError("package cannot be empty")
        return list(self._reconciler.list_permissions(package))

    def update(self, values: Mapping[str, Any], selection_args: Optional[Sequence[Optional[str]]]) -> int:
        if COL_GRANTED not in values:
            raise InvalidRequestError(f"update(): missing '{COL_GRANTED}' value")

        granted = _as_bool(values[COL_GRANTED])
        has_args = selection_args is not None and len(selection_args) == 3

        if granted and not has_args:
            raise InvalidRequestError(
                "Must have exactly 3 args: package_name, (nullable) uuid, (nullable) directory: "
                f"{list(selection_args) if selection_args is not None else None}"
            )
        package, uuid, directory = selection_args if has_args else ("", None, None)
        if granted and not package:
            raise InvalidRequestError("package cannot be empty")
        return self._reconciler.apply_grant(
            package or "",
            volume_from_uuid(uuid or None),
            directory or None,
            granted=granted,
        )


def default_tables(reconciler: Reconciler) -> dict[str, TableHandler]:
    """Build the standard table mapping for a reconciler."""
    return {
        TABLE_PACKAGES: PackagesTable(reconciler),
        TABLE_PERMISSIONS: PermissionsTable(reconciler),
    }


class PermissionView:
    """Queryable view over a reconciler's results.

    Args:
        tables: Mapping of table name to handler.

    Example::

        view = PermissionView.for_reconciler(reconciler)
        view.query("packages")
        view.query("permissions", ["com.example.gallery"])
        view.update("permissions", {"granted": True}, ["com.example.gallery", None, "Pictures"])
    """

    def __init__(self, tables: Mapping[str, TableHandler]) -> None:
        self._tables = dict(tables)

    @classmethod
    def for_reconciler(cls, reconciler: Reconciler) -> PermissionView:
        return cls(default_tables(reconciler))

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(self._tables)

    def _handler(self, table: str, operation: str) -> TableHandler:
        handler = self._tables.get(table)
        if handler is None:
            raise UnsupportedOperationError(f"{operation}(): unsupported table {table!r}", table=table)
        return handler

    def query(
        self,
        table: str,
        selection_args: Optional[Sequence[Optional[str]]] = None,
        *,
        projection: Optional[Sequence[str]] = None,
        selection: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Optional[list[BaseModel]]:
        """Return all rows of ``table`` (``None`` when there is nothing to report)."""
        logger.debug("query(%s): proj=%s, sel=%s, args=%s", table, projection, selection, selection_args)
        if projection or selection or sort_order:
            logger.debug("query(%s): projection, selection and sort order are ignored", table)
        return self._handler(table, "query").query(selection_args)

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        selection_args: Optional[Sequence[Optional[str]]] = None,
    ) -> int:
        """Apply a permission change; returns the number of rows affected."""
        logger.debug("update(%s): %s = %s", table, selection_args, dict(values))
        return self._handler(table, "update").update(values, selection_args)

    def insert(self, table: str, values: Mapping[str, Any]) -> None:
        raise UnsupportedOperationError(f"insert(): unsupported table {table!r}", table=table)

    def delete(self, table: str, selection_args: Optional[Sequence[Optional[str]]] = None) -> int:
        raise UnsupportedOperationError(f"delete(): unsupported table {table!r}", table=table)


__all__ = [
    "PackagesTable",
    "PermissionView",
    "PermissionsTable",
    "TableHandler",
    "default_tables",
]
