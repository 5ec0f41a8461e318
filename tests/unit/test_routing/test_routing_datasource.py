"""Unit tests for the routing data source and lazy connections.

Covers the end-to-end routing properties with mock engines: read-only units
land on replicas, read-write and undeclared units land on the primary, and
pool failures propagate unchanged.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from replication_router.context import Intent, get_intent
from replication_router.datasource import AsyncRoutingDataSource, LazyConnection, RoutingDataSource
from replication_router.exceptions import PoolTimeoutError
from replication_router.interceptor import IntentInterceptor, transactional
from replication_router.registry import AsyncEndpointRegistry, Endpoint, EndpointKind, SyncEndpointRegistry
from replication_router.resolver import RoutingResolver

if TYPE_CHECKING:
    from sqlalchemy import Engine


@pytest.fixture
def datasource(registry: SyncEndpointRegistry) -> RoutingDataSource:
    """Create a routing data source over the mock registry."""
    return RoutingDataSource(registry)


def test_read_unit_acquires_from_replica(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that acquisitions in a read-only unit come from a replica pool."""
    with IntentInterceptor().scope(read_only=True):
        connection = datasource.acquire_connection()

    assert connection in [engine.connect.return_value for engine in mock_replica_engines]  # type: ignore[attr-defined]
    mock_primary_engine.connect.assert_not_called()  # type: ignore[attr-defined]


def test_write_unit_acquires_from_primary(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that acquisitions in a read-write unit come from the primary pool."""
    with IntentInterceptor().scope(read_only=False):
        connection = datasource.connect()

    assert connection is mock_primary_engine.connect.return_value  # type: ignore[attr-defined]
    for engine in mock_replica_engines:
        engine.connect.assert_not_called()  # type: ignore[attr-defined]


def test_undeclared_unit_acquires_from_primary(datasource: RoutingDataSource, mock_primary_engine: Engine) -> None:
    """Test that acquisitions without a declared intent go to the primary."""
    assert datasource.acquire_connection() is mock_primary_engine.connect.return_value  # type: ignore[attr-defined]


def test_primary_and_two_replicas_scenario(datasource: RoutingDataSource) -> None:
    """Test reads, writes and undeclared work against P, R1 and R2."""
    replica_kinds = {EndpointKind.replica(1), EndpointKind.replica(2)}

    @transactional(read_only=True)
    def read_unit() -> list[EndpointKind]:
        return [datasource.resolve_endpoint().kind for _ in range(3)]

    @transactional
    def write_unit() -> list[EndpointKind]:
        return [datasource.resolve_endpoint().kind for _ in range(2)]

    assert set(read_unit()) <= replica_kinds
    assert write_unit() == [EndpointKind.PRIMARY, EndpointKind.PRIMARY]
    assert datasource.resolve_endpoint().kind == EndpointKind.PRIMARY


def test_pool_timeout_propagates_unchanged(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that a pool failure is neither retried nor redirected."""
    error = SQLAlchemyTimeoutError("QueuePool limit of size 1 overflow 0 reached")
    for engine in mock_replica_engines:
        engine.connect.side_effect = error  # type: ignore[attr-defined]

    with pytest.raises(PoolTimeoutError) as exc_info:
        with IntentInterceptor().scope(read_only=True):
            datasource.acquire_connection()

    assert exc_info.value is error
    assert sum(engine.connect.call_count for engine in mock_replica_engines) == 1  # type: ignore[attr-defined]
    mock_primary_engine.connect.assert_not_called()  # type: ignore[attr-defined]
    assert get_intent() is Intent.UNSET


def test_get_engine_follows_current_intent(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that the engine is resolved from the intent at call time."""
    interceptor = IntentInterceptor()

    with interceptor.scope(read_only=True):
        assert datasource.get_engine() in mock_replica_engines
        with interceptor.scope(read_only=False):
            assert datasource.get_engine() is mock_primary_engine
        assert datasource.get_engine() in mock_replica_engines


def test_disabled_resolver_keeps_reads_on_primary(registry: SyncEndpointRegistry, mock_primary_engine: Engine) -> None:
    """Test that a data source with routing disabled always uses the primary."""
    datasource = RoutingDataSource(registry, RoutingResolver(enabled=False))

    with IntentInterceptor().scope(read_only=True):
        assert datasource.get_engine() is mock_primary_engine


def test_concurrent_units_never_observe_each_other(datasource: RoutingDataSource) -> None:
    """Test that concurrent read and write units each route by their own intent."""
    read_units, write_units, acquisitions = 8, 8, 25
    barrier = threading.Barrier(read_units + write_units)
    results: dict[str, list[EndpointKind]] = {}
    errors: list[BaseException] = []

    def unit(name: str, read_only: bool) -> None:
        try:
            with IntentInterceptor().scope(read_only=read_only):
                barrier.wait()
                results[name] = [datasource.resolve_endpoint().kind for _ in range(acquisitions)]
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=unit, args=(f"read-{i}", True)) for i in range(read_units)]
    threads += [threading.Thread(target=unit, args=(f"write-{i}", False)) for i in range(write_units)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    assert len(results) == read_units + write_units
    for name, kinds in results.items():
        if name.startswith("read"):
            assert EndpointKind.PRIMARY not in kinds
        else:
            assert set(kinds) == {EndpointKind.PRIMARY}


async def test_concurrent_tasks_never_observe_each_other(datasource: RoutingDataSource) -> None:
    """Test that interleaved asyncio tasks each route by their own intent."""

    async def unit(read_only: bool) -> list[EndpointKind]:
        kinds: list[EndpointKind] = []
        with IntentInterceptor().scope(read_only=read_only):
            for _ in range(10):
                kinds.append(datasource.resolve_endpoint().kind)
                await asyncio.sleep(0)
        return kinds

    results = await asyncio.gather(*(unit(read_only=i % 2 == 0) for i in range(20)))

    for i, kinds in enumerate(results):
        if i % 2 == 0:
            assert EndpointKind.PRIMARY not in kinds
        else:
            assert set(kinds) == {EndpointKind.PRIMARY}


def test_lazy_connection_defers_resolution(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that a lazy connection routes with the intent active at first use."""
    interceptor = IntentInterceptor()

    with interceptor.scope(read_only=True):
        lazy = datasource.lazy_connection()
        assert isinstance(lazy, LazyConnection)
        assert lazy.is_bound is False

    with interceptor.scope(read_only=False):
        lazy.execute("SELECT 1")

    assert lazy.is_bound is True
    assert lazy.endpoint is not None
    assert lazy.endpoint.kind == EndpointKind.PRIMARY
    mock_primary_engine.connect.return_value.execute.assert_called_once_with("SELECT 1", None)  # type: ignore[attr-defined]
    for engine in mock_replica_engines:
        engine.connect.assert_not_called()  # type: ignore[attr-defined]


def test_lazy_connection_keeps_its_connection(datasource: RoutingDataSource, mock_primary_engine: Engine) -> None:
    """Test that a bound lazy connection reuses the same physical connection."""
    with datasource.lazy_connection() as lazy:
        lazy.execute("SELECT 1")
        lazy.execute("SELECT 2", {"a": 1})
        lazy.commit()
        physical = lazy.connection

    mock_primary_engine.connect.assert_called_once()  # type: ignore[attr-defined]
    physical.commit.assert_called_once()  # type: ignore[attr-defined]
    physical.close.assert_called_once()  # type: ignore[attr-defined]
    assert lazy.is_bound is False


def test_unused_lazy_connection_never_checks_out(
    datasource: RoutingDataSource,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that a lazy connection that is never used never touches a pool."""
    with datasource.lazy_connection() as lazy:
        lazy.rollback()

    mock_primary_engine.connect.assert_not_called()  # type: ignore[attr-defined]
    for engine in mock_replica_engines:
        engine.connect.assert_not_called()  # type: ignore[attr-defined]


def _async_engine(name: str) -> Any:
    engine = MagicMock(name=name)
    engine.connect = MagicMock(name=f"{name}.connect")
    return engine


@pytest.fixture
def async_registry() -> AsyncEndpointRegistry:
    """Create an async registry with a primary and two replicas."""
    return AsyncEndpointRegistry(
        Endpoint(EndpointKind.PRIMARY, _async_engine("primary"), name="primary"),
        [Endpoint(EndpointKind.replica(n), _async_engine(f"replica{n}"), name=f"replica{n}") for n in (1, 2)],
    )


async def test_async_acquire_connection_routes_by_intent(async_registry: AsyncEndpointRegistry) -> None:
    """Test that async acquisitions follow the declared intent."""
    for endpoint in async_registry.endpoints:
        endpoint.engine.connect = AsyncMock(return_value=f"{endpoint.name}-connection")
    datasource = AsyncRoutingDataSource(async_registry)

    @transactional(read_only=True)
    async def read_unit() -> Any:
        return await datasource.acquire_connection()

    @transactional
    async def write_unit() -> Any:
        return await datasource.acquire_connection()

    assert await read_unit() in {"replica1-connection", "replica2-connection"}
    assert await write_unit() == "primary-connection"


async def test_async_connect_resolves_immediately(async_registry: AsyncEndpointRegistry) -> None:
    """Test that connect() resolves at call time and returns the unstarted connection."""
    datasource = AsyncRoutingDataSource(async_registry)

    with IntentInterceptor().scope(read_only=False):
        connection = datasource.connect()

    assert connection is async_registry.default_endpoint.engine.connect.return_value


async def test_async_lazy_connection_defers_resolution(async_registry: AsyncEndpointRegistry) -> None:
    """Test that an async lazy connection routes at first execute."""
    physical = MagicMock()
    physical.execute = AsyncMock(return_value="result")
    physical.close = AsyncMock()
    async_registry.default_endpoint.engine.connect = AsyncMock(return_value=physical)
    datasource = AsyncRoutingDataSource(async_registry)

    with IntentInterceptor().scope(read_only=True):
        lazy = datasource.lazy_connection()

    async with lazy:
        with IntentInterceptor().scope(read_only=False):
            assert await lazy.execute("SELECT 1") == "result"
        assert lazy.endpoint is not None
        assert lazy.endpoint.kind == EndpointKind.PRIMARY

    physical.close.assert_awaited_once()
    assert lazy.is_bound is False


async def test_async_pool_timeout_propagates_unchanged(async_registry: AsyncEndpointRegistry) -> None:
    """Test that async pool failures reach the caller unchanged."""
    error = SQLAlchemyTimeoutError("QueuePool limit reached")
    async_registry.default_endpoint.engine.connect = AsyncMock(side_effect=error)
    datasource = AsyncRoutingDataSource(async_registry)

    with pytest.raises(PoolTimeoutError) as exc_info:
        with IntentInterceptor().scope(read_only=False):
            await datasource.acquire_connection()

    assert exc_info.value is error
    assert get_intent() is Intent.UNSET
