"""gRPC transport for the permission view.

The service ``scopedaccess.ScopedAccess`` is registered through a generic
handler with JSON payloads, so no generated stubs are needed:

    Query   {"table": str, "selection_args": [str|null, ...]?}  -> {"rows": [...] | null}
    Update  {"table": str, "values": {...}, "selection_args": [...]} -> {"count": int}
    Insert  {"table": str, "values": {...}}                     -> always UNIMPLEMENTED
    Delete  {"table": str, "selection_args": [...]}            -> always UNIMPLEMENTED

Errors carry an ``error-code`` trailing metadata entry which
``ScopedAccessClient`` turns back into the matching exception.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import grpc
import grpc.aio

from .config import ScopedAccessConfig, load_config_from_env
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    error_registry,
    grpc_error_handler,
)
from .parser import GrantRecordParser
from .reconciler import Reconciler
from .registry import GrantRegistry, InMemoryGrantRegistry, RedisGrantRegistry
from .stores import DecisionStore, InMemoryDecisionStore, RedisDecisionStore
from .view import PermissionView

logger = logging.getLogger(__name__)

SERVICE_NAME = "scopedaccess.ScopedAccess"
RPC_METHODS = ("Query", "Update", "Insert", "Delete")

_INVALID = "_invalid"


def _serialize(message: dict[str, Any]) -> bytes:
    return json.dumps(message, ensure_ascii=False).encode("utf-8")


def _deserialize(data: bytes) -> dict[str, Any]:
    # Never raises: a failure here would surface as a bare INTERNAL status
    if not data:
        return {}
    try:
        message = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return {_INVALID: f"malformed request body: {e}"}
    if not isinstance(message, dict):
        return {_INVALID: "request must be a JSON object"}
    return message


def _check_request(request: dict[str, Any]) -> dict[str, Any]:
    if _INVALID in request:
        raise InvalidRequestError(request[_INVALID])
    return request


def _table(request: dict[str, Any]) -> str:
    table = request.get("table")
    if not isinstance(table, str) or not table:
        raise InvalidRequestError("'table' is required")
    return table


def _selection_args(request: dict[str, Any]) -> Optional[list[Optional[str]]]:
    args = request.get("selection_args")
    if args is None:
        return None
    if not isinstance(args, list):
        raise InvalidRequestError("'selection_args' must be a list")
    return args


# ── Server ──────────────────────────────────────────


class ScopedAccessServicer:
    """Async handlers forwarding to a :class:`PermissionView`.

    The view and its Redis backends are synchronous, so every call runs in
    a worker thread and the event loop keeps serving other RPCs meanwhile.
    """

    def __init__(self, view: PermissionView) -> None:
        self._view = view

    @grpc_error_handler
    async def Query(self, request: dict[str, Any], context: grpc.aio.ServicerContext) -> dict[str, Any]:
        request = _check_request(request)
        rows = await asyncio.to_thread(self._view.query, _table(request), _selection_args(request))
        return {"rows": None if rows is None else [row.to_wire() for row in rows]}

    @grpc_error_handler
    async def Update(self, request: dict[str, Any], context: grpc.aio.ServicerContext) -> dict[str, Any]:
        request = _check_request(request)
        values = request.get("values") or {}
        if not isinstance(values, dict):
            raise InvalidRequestError("'values' must be an object")
        count = await asyncio.to_thread(self._view.update, _table(request), values, _selection_args(request))
        return {"count": count}

    @grpc_error_handler
    async def Insert(self, request: dict[str, Any], context: grpc.aio.ServicerContext) -> dict[str, Any]:
        request = _check_request(request)
        self._view.insert(_table(request), request.get("values") or {})
        return {}

    @grpc_error_handler
    async def Delete(self, request: dict[str, Any], context: grpc.aio.ServicerContext) -> dict[str, Any]:
        request = _check_request(request)
        count = self._view.delete(_table(request), _selection_args(request))
        return {"count": count}


def generic_handler(servicer: ScopedAccessServicer) -> grpc.GenericRpcHandler:
    """Build the generic RPC handler for a servicer."""
    return grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            name: grpc.unary_unary_rpc_method_handler(
                getattr(servicer, name),
                request_deserializer=_deserialize,
                response_serializer=_serialize,
            )
            for name in RPC_METHODS
        },
    )


def _read_file(path: str) -> bytes:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"TLS file not found: {path}")
    return p.read_bytes()


def create_server_credentials(config: ScopedAccessConfig) -> Optional[grpc.ServerCredentials]:
    """Server TLS credentials, or ``None`` when TLS is not configured.

    A configured CA enforces mutual TLS.
    """
    if not config.tls_enabled:
        return None

    server_key = _read_file(config.tls_key_path)
    server_cert = _read_file(config.tls_cert_path)
    ca_cert = _read_file(config.tls_ca_path) if config.tls_ca_path else None

    logger.info("TLS server credentials loaded (mTLS=%s)", ca_cert is not None)
    return grpc.ssl_server_credentials(
        [(server_key, server_cert)],
        root_certificates=ca_cert,
        require_client_auth=ca_cert is not None,
    )


def build_backends(config: ScopedAccessConfig) -> tuple[GrantRegistry, DecisionStore]:
    """Redis backends when ``redis_url`` is set, in-memory otherwise."""
    if config.redis_url:
        return (
            RedisGrantRegistry.from_url(config.redis_url, prefix=config.grants_prefix),
            RedisDecisionStore.from_url(config.redis_url, key=config.decisions_key),
        )
    logger.warning("REDIS_URL not set: using in-memory grant registry and decision store")
    return InMemoryGrantRegistry(), InMemoryDecisionStore()


def build_view(
    config: ScopedAccessConfig,
    registry: Optional[GrantRegistry] = None,
    store: Optional[DecisionStore] = None,
) -> PermissionView:
    """Wire a reconciler and its view from configuration."""
    if registry is None or store is None:
        default_registry, default_store = build_backends(config)
        registry = registry or default_registry
        store = store or default_store

    reconciler = Reconciler(
        registry,
        store,
        parser=GrantRecordParser.from_config(config),
        standard_directories=config.standard_directories,
    )
    return PermissionView.for_reconciler(reconciler)


def create_server(view: PermissionView, config: ScopedAccessConfig) -> grpc.aio.Server:
    """Create (but do not start) an async gRPC server for ``view``."""
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((generic_handler(ScopedAccessServicer(view)),))

    credentials = create_server_credentials(config)
    if credentials is None:
        server.add_insecure_port(config.grpc_address)
    else:
        server.add_secure_port(config.grpc_address, credentials)
    return server


async def serve(config: Optional[ScopedAccessConfig] = None) -> None:
    """Run the service until terminated."""
    config = config or load_config_from_env()
    server = create_server(build_view(config), config)
    await server.start()
    logger.info("Scoped access service listening on %s (tls=%s)", config.grpc_address, config.tls_enabled)
    try:
        await server.wait_for_termination()
    finally:
        await server.stop(grace=5)


# ── Client ──────────────────────────────────────────


def _error_from_rpc(error: grpc.RpcError) -> Exception:
    code = None
    trailing = getattr(error, "trailing_metadata", None)
    if callable(trailing):
        code = dict(trailing() or ()).get("error-code")

    error_cls = error_registry.get(code) if code else None
    details = error.details() if hasattr(error, "details") else str(error)
    if error_cls is None:
        return error
    # Server messages are formatted as "[CODE] message"
    prefix = f"[{code}] "
    message = details[len(prefix) :] if details and details.startswith(prefix) else details
    return error_cls(message)


class ScopedAccessClient:
    """Synchronous client for the scoped access service.

    Usage::

        with ScopedAccessClient("localhost:50061") as client:
            client.query("permissions", ["com.example.gallery"])
    """

    def __init__(self, target: str = "localhost:50061", *, channel: Optional[grpc.Channel] = None) -> None:
        self._channel = channel or grpc.insecure_channel(target)

    def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        stub = self._channel.unary_unary(
            f"/{SERVICE_NAME}/{method}",
            request_serializer=_serialize,
            response_deserializer=_deserialize,
        )
        try:
            return stub(payload)
        except grpc.RpcError as e:
            translated = _error_from_rpc(e)
            if translated is e:
                raise
            raise translated from e

    def query(
        self,
        table: str,
        selection_args: Optional[Sequence[Optional[str]]] = None,
    ) -> Optional[list[dict[str, Any]]]:
        payload: dict[str, Any] = {"table": table}
        if selection_args is not None:
            payload["selection_args"] = list(selection_args)
        return self._call("Query", payload).get("rows")

    def update(
        self,
        table: str,
        values: dict[str, Any],
        selection_args: Optional[Sequence[Optional[str]]] = None,
    ) -> int:
        payload: dict[str, Any] = {"table": table, "values": values}
        if selection_args is not None:
            payload["selection_args"] = list(selection_args)
        return int(self._call("Update", payload).get("count", 0))

    def close(self) -> None:
        self._channel.close()

    def __enter__(self) -> ScopedAccessClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = [
    "RPC_METHODS",
    "SERVICE_NAME",
    "ScopedAccessClient",
    "ScopedAccessServicer",
    "build_backends",
    "build_view",
    "create_server",
    "create_server_credentials",
    "generic_handler",
    "serve",
]
