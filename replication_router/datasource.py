"""Routing data source: the single connection-acquisition entry point.

Every checkout asks the resolver where the current unit of work should go and
delegates to that endpoint's pool. Pool failures (exhaustion, timeouts,
unreachable hosts) propagate unchanged. There is no retry and no failover to
another endpoint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from replication_router.context import get_intent
from replication_router.resolver import RoutingResolver

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy import Connection, CursorResult, Engine
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from replication_router.registry import Endpoint, EndpointRegistry

__all__ = (
    "AsyncLazyConnection",
    "AsyncRoutingDataSource",
    "LazyConnection",
    "RoutingDataSource",
)


class RoutingDataSource:
    """Routes connection checkouts across sync engines.

    Example:
        Checking out a connection for the current unit of work::

            datasource = RoutingDataSource(SyncEndpointRegistry.from_config(config))

            with interceptor.scope(read_only=True), datasource.connect() as connection:
                connection.execute(text("SELECT 1"))
    """

    __slots__ = ("_registry", "_resolver")

    def __init__(self, registry: EndpointRegistry[Engine], resolver: Optional[RoutingResolver] = None) -> None:
        """Initialize the data source.

        Args:
            registry: The endpoint registry.
            resolver: The routing resolver. Defaults to uniform random replica selection.
        """
        self._registry = registry
        self._resolver = resolver or RoutingResolver()

    @property
    def registry(self) -> EndpointRegistry[Engine]:
        return self._registry

    @property
    def resolver(self) -> RoutingResolver:
        return self._resolver

    def resolve_endpoint(self) -> Endpoint[Engine]:
        """Resolve the endpoint for the next checkout in the current unit of work.

        Returns:
            The endpoint to use.
        """
        return self._registry.resolve(self._resolver.decide(get_intent(), self._registry))

    def get_engine(self) -> Engine:
        """Resolve the engine for the next checkout in the current unit of work.

        Returns:
            The engine of the resolved endpoint.
        """
        return self.resolve_endpoint().engine

    def acquire_connection(self) -> Connection:
        """Check out a connection from the resolved endpoint's pool.

        Raises:
            sqlalchemy.exc.TimeoutError: If the pool is exhausted, unchanged.

        Returns:
            A connection, usable as a context manager.
        """
        return self.get_engine().connect()

    connect = acquire_connection

    def lazy_connection(self) -> LazyConnection:
        """Create a connection proxy that resolves on first use.

        Returns:
            An unbound :class:`LazyConnection`.
        """
        return LazyConnection(self)


class LazyConnection:
    """Connection proxy that defers routing until the connection is first used.

    Nothing is resolved or checked out when the proxy is created. The first
    :meth:`execute` (or access to :attr:`connection`) resolves the endpoint with
    the intent active at that moment and checks out a connection, which is then
    kept until :meth:`close`.
    """

    __slots__ = ("_connection", "_datasource", "_endpoint")

    def __init__(self, datasource: RoutingDataSource) -> None:
        self._datasource = datasource
        self._connection: Optional[Connection] = None
        self._endpoint: Optional[Endpoint[Engine]] = None

    @property
    def is_bound(self) -> bool:
        """Whether a physical connection has been checked out."""
        return self._connection is not None

    @property
    def endpoint(self) -> Optional[Endpoint[Engine]]:
        """The endpoint this proxy is bound to, or ``None`` if not bound yet."""
        return self._endpoint

    @property
    def connection(self) -> Connection:
        """The physical connection, checked out on first access."""
        if self._connection is None:
            endpoint = self._datasource.resolve_endpoint()
            self._connection = endpoint.engine.connect()
            self._endpoint = endpoint
        return self._connection

    def execute(self, statement: Any, parameters: Any = None, **kwargs: Any) -> CursorResult[Any]:
        return self.connection.execute(statement, parameters, **kwargs)

    def commit(self) -> None:
        if self._connection is not None:
            self._connection.commit()

    def rollback(self) -> None:
        if self._connection is not None:
            self._connection.rollback()

    def close(self) -> None:
        """Return the physical connection to its pool, if one was checked out."""
        if self._connection is not None:
            self._connection.close()
        self._connection = None
        self._endpoint = None

    def __enter__(self) -> LazyConnection:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class AsyncRoutingDataSource:
    """Routes connection checkouts across async engines."""

    __slots__ = ("_registry", "_resolver")

    def __init__(self, registry: EndpointRegistry[AsyncEngine], resolver: Optional[RoutingResolver] = None) -> None:
        """Initialize the async data source.

        Args:
            registry: The endpoint registry.
            resolver: The routing resolver. Defaults to uniform random replica selection.
        """
        self._registry = registry
        self._resolver = resolver or RoutingResolver()

    @property
    def registry(self) -> EndpointRegistry[AsyncEngine]:
        return self._registry

    @property
    def resolver(self) -> RoutingResolver:
        return self._resolver

    def resolve_endpoint(self) -> Endpoint[AsyncEngine]:
        """Resolve the endpoint for the next checkout in the current unit of work.

        Returns:
            The endpoint to use.
        """
        return self._registry.resolve(self._resolver.decide(get_intent(), self._registry))

    def get_engine(self) -> AsyncEngine:
        """Resolve the async engine for the next checkout in the current unit of work.

        Returns:
            The engine of the resolved endpoint.
        """
        return self.resolve_endpoint().engine

    def connect(self) -> AsyncConnection:
        """Resolve now and return a not-yet-started connection.

        Use as ``async with datasource.connect() as connection``.

        Returns:
            An :class:`~sqlalchemy.ext.asyncio.AsyncConnection` for the resolved endpoint.
        """
        return self.get_engine().connect()

    async def acquire_connection(self) -> AsyncConnection:
        """Check out a connection from the resolved endpoint's pool.

        Raises:
            sqlalchemy.exc.TimeoutError: If the pool is exhausted, unchanged.

        Returns:
            A started connection. The caller closes it.
        """
        return await self.get_engine().connect()

    def lazy_connection(self) -> AsyncLazyConnection:
        """Create a connection proxy that resolves on first use.

        Returns:
            An unbound :class:`AsyncLazyConnection`.
        """
        return AsyncLazyConnection(self)


class AsyncLazyConnection:
    """Async connection proxy that defers routing until the connection is first used."""

    __slots__ = ("_connection", "_datasource", "_endpoint")

    def __init__(self, datasource: AsyncRoutingDataSource) -> None:
        self._datasource = datasource
        self._connection: Optional[AsyncConnection] = None
        self._endpoint: Optional[Endpoint[AsyncEngine]] = None

    @property
    def is_bound(self) -> bool:
        return self._connection is not None

    @property
    def endpoint(self) -> Optional[Endpoint[AsyncEngine]]:
        return self._endpoint

    async def get_connection(self) -> AsyncConnection:
        """Get the physical connection, checking it out on first call."""
        if self._connection is None:
            endpoint = self._datasource.resolve_endpoint()
            self._connection = await endpoint.engine.connect()
            self._endpoint = endpoint
        return self._connection

    async def execute(self, statement: Any, parameters: Any = None, **kwargs: Any) -> CursorResult[Any]:
        connection = await self.get_connection()
        return await connection.execute(statement, parameters, **kwargs)

    async def commit(self) -> None:
        if self._connection is not None:
            await self._connection.commit()

    async def rollback(self) -> None:
        if self._connection is not None:
            await self._connection.rollback()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        self._endpoint = None

    async def __aenter__(self) -> AsyncLazyConnection:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()
