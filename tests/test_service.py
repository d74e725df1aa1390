"""Tests for the gRPC transport."""

from __future__ import annotations

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import grpc
import pytest

from scopedaccess import (
    PRIMARY,
    InMemoryDecisionStore,
    InMemoryGrantRegistry,
    InvalidRequestError,
    PermissionStatus,
    PermissionView,
    Reconciler,
    RedisDecisionStore,
    RedisGrantRegistry,
    ScopedAccessConfig,
    UnsupportedOperationError,
    UpstreamUnavailableError,
)
from scopedaccess.exceptions import ConfigurationError
from scopedaccess.service import (
    SERVICE_NAME,
    ScopedAccessClient,
    ScopedAccessServicer,
    _check_request,
    _deserialize,
    build_backends,
    build_view,
    create_server_credentials,
    generic_handler,
)

AUTHORITY = "com.android.externalstorage.documents"


@pytest.fixture
def store() -> InMemoryDecisionStore:
    return InMemoryDecisionStore()


@pytest.fixture
def registry() -> InMemoryGrantRegistry:
    return InMemoryGrantRegistry()


@pytest.fixture
def servicer(registry, store) -> ScopedAccessServicer:
    return ScopedAccessServicer(PermissionView.for_reconciler(Reconciler(registry, store)))


@pytest.fixture
def context() -> MagicMock:
    ctx = MagicMock()
    ctx.abort = AsyncMock()
    return ctx


class TestServicer:
    """Handlers called directly with a mock context."""

    @pytest.mark.asyncio
    async def test_query_packages_none(self, servicer, context) -> None:
        response = await servicer.Query({"table": "packages"}, context)
        assert response == {"rows": None}
        context.abort.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_permissions(self, servicer, context, registry, store) -> None:
        registry.grant("a", f"content://{AUTHORITY}/tree/V1:")
        store.set_status("a", PRIMARY, "Download", PermissionStatus.NEVER_ASK)
        response = await servicer.Query({"table": "permissions", "selection_args": ["a"]}, context)
        assert response == {
            "rows": [
                {"package": "a", "volume_uuid": "V1", "directory": None, "granted": 1},
                {"package": "a", "volume_uuid": None, "directory": "Download", "granted": 0},
            ]
        }

    @pytest.mark.asyncio
    async def test_query_without_package_aborts(self, servicer, context) -> None:
        await servicer.Query({"table": "permissions"}, context)
        context.set_trailing_metadata.assert_called_once_with([("error-code", "INVALID_REQUEST")])
        context.abort.assert_awaited_once()
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_missing_table_aborts(self, servicer, context) -> None:
        await servicer.Query({}, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_update(self, servicer, context, store) -> None:
        response = await servicer.Update(
            {"table": "permissions", "values": {"granted": True}, "selection_args": ["a", None, "Music"]},
            context,
        )
        assert response == {"count": 1}
        assert store.get_status("a", PRIMARY, "Music") == PermissionStatus.ASK

    @pytest.mark.asyncio
    async def test_update_revoke_returns_zero(self, servicer, context) -> None:
        response = await servicer.Update(
            {"table": "permissions", "values": {"granted": False}, "selection_args": ["a", None, "Music"]},
            context,
        )
        assert response == {"count": 0}

    @pytest.mark.asyncio
    async def test_insert_unimplemented(self, servicer, context) -> None:
        await servicer.Insert({"table": "permissions", "values": {}}, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.UNIMPLEMENTED

    @pytest.mark.asyncio
    async def test_delete_unimplemented(self, servicer, context) -> None:
        await servicer.Delete({"table": "permissions"}, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.UNIMPLEMENTED

    @pytest.mark.asyncio
    async def test_upstream_failure_maps_to_unavailable(self, context, store) -> None:
        registry = MagicMock()
        registry.active_grants_for.side_effect = UpstreamUnavailableError("registry down")
        servicer = ScopedAccessServicer(PermissionView.for_reconciler(Reconciler(registry, store)))
        await servicer.Query({"table": "permissions", "selection_args": ["a"]}, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.UNAVAILABLE
        assert "registry down" in context.abort.await_args.args[1]

    @pytest.mark.asyncio
    async def test_unexpected_error_maps_to_internal(self, context) -> None:
        view = MagicMock()
        view.query.side_effect = RuntimeError("boom")
        await ScopedAccessServicer(view).Query({"table": "packages"}, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.INTERNAL

    @pytest.mark.asyncio
    async def test_blocking_backend_does_not_stall_event_loop(self, context, registry) -> None:
        class SlowStore(InMemoryDecisionStore):
            def all_decisions(self):
                time.sleep(0.4)
                return super().all_decisions()

        servicer = ScopedAccessServicer(PermissionView.for_reconciler(Reconciler(registry, SlowStore())))
        loop = asyncio.get_running_loop()
        ticks: list[float] = []
        done = asyncio.Event()

        async def ticker() -> None:
            while not done.is_set():
                ticks.append(loop.time())
                await asyncio.sleep(0.02)

        task = asyncio.create_task(ticker())
        response = await servicer.Query({"table": "permissions", "selection_args": ["a"]}, context)
        done.set()
        await task

        assert response == {"rows": []}
        gaps = [b - a for a, b in zip(ticks, ticks[1:])]
        assert len(ticks) > 5
        assert max(gaps) < 0.2

    @pytest.mark.asyncio
    async def test_malformed_body_aborts_with_invalid_request(self, servicer, context) -> None:
        await servicer.Query(_deserialize(b"{not json"), context)
        context.set_trailing_metadata.assert_called_once_with([("error-code", "INVALID_REQUEST")])
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_non_object_body_aborts_with_invalid_request(self, servicer, context) -> None:
        await servicer.Update(_deserialize(b"[1, 2]"), context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT
        assert "JSON object" in context.abort.await_args.args[1]


class TestWireFormat:
    """Handler registration and payload decoding."""

    def test_generic_handler_exposes_methods(self, servicer) -> None:
        handler = generic_handler(servicer)
        details = MagicMock()
        details.method = f"/{SERVICE_NAME}/Query"
        method_handler = handler.service(details)
        assert method_handler is not None
        assert method_handler.request_deserializer(b'{"table": "packages"}') == {"table": "packages"}
        assert json.loads(method_handler.response_serializer({"rows": None})) == {"rows": None}

    def test_unknown_method(self, servicer) -> None:
        details = MagicMock()
        details.method = f"/{SERVICE_NAME}/Drop"
        assert generic_handler(servicer).service(details) is None

    @pytest.mark.parametrize("body", [b"[1, 2]", b"{not json", b"\xff\xfe", b'"text"'])
    def test_deserialize_never_raises(self, body: bytes) -> None:
        request = _deserialize(body)
        assert isinstance(request, dict)
        with pytest.raises(InvalidRequestError):
            _check_request(request)

    def test_check_request_passes_valid_body(self) -> None:
        assert _check_request(_deserialize(b'{"table": "packages"}')) == {"table": "packages"}

    def test_deserialize_empty(self) -> None:
        assert _deserialize(b"") == {}


class _FakeRpcError(grpc.RpcError):
    def __init__(self, code: str | None, details: str) -> None:
        self._code = code
        self._details = details

    def trailing_metadata(self):
        return (("error-code", self._code),) if self._code else ()

    def details(self) -> str:
        return self._details


class TestClient:
    """Synchronous client over a mock channel."""

    def test_query(self) -> None:
        channel = MagicMock()
        stub = channel.unary_unary.return_value
        stub.return_value = {"rows": [{"package": "a"}]}
        client = ScopedAccessClient(channel=channel)

        assert client.query("packages") == [{"package": "a"}]
        assert channel.unary_unary.call_args.args[0] == f"/{SERVICE_NAME}/Query"
        stub.assert_called_once_with({"table": "packages"})

    def test_update(self) -> None:
        channel = MagicMock()
        stub = channel.unary_unary.return_value
        stub.return_value = {"count": 1}
        client = ScopedAccessClient(channel=channel)

        assert client.update("permissions", {"granted": True}, ["a", None, "Music"]) == 1
        stub.assert_called_once_with(
            {"table": "permissions", "values": {"granted": True}, "selection_args": ["a", None, "Music"]}
        )

    def test_error_code_translated(self) -> None:
        channel = MagicMock()
        channel.unary_unary.return_value.side_effect = _FakeRpcError(
            "INVALID_REQUEST", "[INVALID_REQUEST] selections cannot be empty"
        )
        client = ScopedAccessClient(channel=channel)

        with pytest.raises(InvalidRequestError, match="^selections cannot be empty$"):
            client.query("permissions")

    def test_unsupported_translated(self) -> None:
        channel = MagicMock()
        channel.unary_unary.return_value.side_effect = _FakeRpcError("UNSUPPORTED_OPERATION", "[UNSUPPORTED_OPERATION] x")
        with pytest.raises(UnsupportedOperationError):
            ScopedAccessClient(channel=channel).query("grants")

    def test_unknown_error_reraised(self) -> None:
        channel = MagicMock()
        error = _FakeRpcError(None, "connection refused")
        channel.unary_unary.return_value.side_effect = error
        with pytest.raises(grpc.RpcError) as exc_info:
            ScopedAccessClient(channel=channel).query("packages")
        assert exc_info.value is error

    def test_context_manager_closes_channel(self) -> None:
        channel = MagicMock()
        with ScopedAccessClient(channel=channel):
            pass
        channel.close.assert_called_once()


class TestWiring:
    """Backend selection and TLS credentials."""

    def test_in_memory_backends_without_redis(self) -> None:
        registry, store = build_backends(ScopedAccessConfig())
        assert isinstance(registry, InMemoryGrantRegistry)
        assert isinstance(store, InMemoryDecisionStore)

    def test_redis_backends(self) -> None:
        config = ScopedAccessConfig(redis_url="redis://localhost:6379/0")
        with patch("redis.from_url"):
            registry, store = build_backends(config)
        assert isinstance(registry, RedisGrantRegistry)
        assert isinstance(store, RedisDecisionStore)

    def test_build_view_uses_configured_directories(self, registry, store) -> None:
        config = ScopedAccessConfig(standard_directories=["Custom"])
        registry.grant("a", f"content://{AUTHORITY}/tree/V1:Custom")
        registry.grant("a", f"content://{AUTHORITY}/tree/V1:Music")
        view = build_view(config, registry, store)
        assert [r.directory for r in view.query("permissions", ["a"])] == ["Custom"]

    def test_no_tls_credentials_by_default(self) -> None:
        assert create_server_credentials(ScopedAccessConfig()) is None

    def test_missing_tls_file(self, tmp_path) -> None:
        config = ScopedAccessConfig(
            tls_cert_path=str(tmp_path / "server.crt"),
            tls_key_path=str(tmp_path / "server.key"),
        )
        with pytest.raises(ConfigurationError):
            create_server_credentials(config)
