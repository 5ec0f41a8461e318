"""Session maker factories for read/write routing.

This module wires the pieces together: it builds the endpoint registry from a
:class:`~replication_router.config.RoutingConfig`, picks the replica selector,
and creates routing-aware sessions on demand.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar, Union, overload

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from replication_router.config import RoutingConfig
from replication_router.datasource import AsyncRoutingDataSource, RoutingDataSource
from replication_router.interceptor import IntentInterceptor, transactional
from replication_router.registry import AsyncEndpointRegistry, SyncEndpointRegistry
from replication_router.resolver import RoutingResolver
from replication_router.selectors import get_selector
from replication_router.session import RoutingAsyncSession, RoutingSyncSession

__all__ = (
    "RoutingAsyncSessionMaker",
    "RoutingSyncSessionMaker",
)

CallableT = TypeVar("CallableT", bound=Callable[..., Any])


def _create_resolver(routing_config: RoutingConfig) -> RoutingResolver:
    return RoutingResolver(
        selector=get_selector(routing_config.routing_strategy),
        enabled=routing_config.enabled,
    )


class RoutingSyncSessionMaker:
    """Factory for creating sync routing sessions.

    Example:
        Creating a routing session maker::

            maker = RoutingSyncSessionMaker(
                routing_config=RoutingConfig.from_urls(
                    "postgresql+psycopg://primary/db",
                    ["postgresql+psycopg://replica1/db", "postgresql+psycopg://replica2/db"],
                ),
            )


            @maker.transactional(read_only=True)
            def list_users() -> list[User]:
                with maker() as session:
                    return list(session.scalars(select(User)))
    """

    __slots__ = (
        "_datasource",
        "_interceptor",
        "_registry",
        "_routing_config",
        "_session_config",
    )

    def __init__(
        self,
        routing_config: RoutingConfig,
        session_config: Optional[dict[str, Any]] = None,
        create_engine_callable: Callable[..., Engine] = create_engine,
    ) -> None:
        """Initialize the session maker.

        Args:
            routing_config: Configuration for read/write routing.
            session_config: Configuration options for session creation.
            create_engine_callable: Callable to create engines (for testing).
        """
        self._routing_config = routing_config
        self._session_config = session_config or {}
        self._registry = SyncEndpointRegistry.from_config(routing_config, create_engine_callable)
        self._datasource = RoutingDataSource(self._registry, _create_resolver(routing_config))
        self._interceptor = IntentInterceptor(routing_config.nesting_policy)

    def __call__(self) -> RoutingSyncSession:
        """Create a new routing session.

        Returns:
            A new :class:`RoutingSyncSession` instance.
        """
        session_config = self._session_config.copy()
        # Remove bind from session config - routing handles this
        session_config.pop("bind", None)
        return RoutingSyncSession(datasource=self._datasource, **session_config)

    @overload
    def transactional(self, func: CallableT, /) -> CallableT: ...

    @overload
    def transactional(self, func: None = None, /, *, read_only: bool = False) -> Callable[[CallableT], CallableT]: ...

    def transactional(
        self,
        func: Optional[CallableT] = None,
        /,
        *,
        read_only: bool = False,
    ) -> Union[CallableT, Callable[[CallableT], CallableT]]:
        """Decorate a unit of work using this maker's nesting policy.

        See :func:`replication_router.interceptor.transactional`.
        """
        decorator = transactional(read_only=read_only, interceptor=self._interceptor)
        if func is None:
            return decorator
        return decorator(func)

    @property
    def routing_config(self) -> RoutingConfig:
        return self._routing_config

    @property
    def registry(self) -> SyncEndpointRegistry:
        return self._registry

    @property
    def datasource(self) -> RoutingDataSource:
        return self._datasource

    @property
    def interceptor(self) -> IntentInterceptor:
        return self._interceptor

    @property
    def primary_engine(self) -> Engine:
        """Get the primary engine.

        Returns:
            The primary database engine.
        """
        return self._registry.default_endpoint.engine

    @property
    def replica_engines(self) -> list[Engine]:
        """Get the replica engines.

        Returns:
            List of replica database engines.
        """
        return [endpoint.engine for endpoint in self._registry.replica_endpoints]

    def close_all(self) -> None:
        """Close all engines and release connections.

        Call this when shutting down to properly release database connections.
        """
        self._registry.close()


class RoutingAsyncSessionMaker:
    """Factory for creating async routing sessions.

    Example:
        Creating an async routing session maker::

            maker = RoutingAsyncSessionMaker(
                routing_config=RoutingConfig.from_urls(
                    "postgresql+asyncpg://primary/db",
                    ["postgresql+asyncpg://replica1/db"],
                ),
            )


            @maker.transactional(read_only=True)
            async def list_users() -> list[User]:
                async with maker() as session:
                    return list(await session.scalars(select(User)))
    """

    __slots__ = (
        "_datasource",
        "_interceptor",
        "_registry",
        "_routing_config",
        "_session_config",
    )

    def __init__(
        self,
        routing_config: RoutingConfig,
        session_config: Optional[dict[str, Any]] = None,
        create_engine_callable: Callable[..., AsyncEngine] = create_async_engine,
    ) -> None:
        """Initialize the async session maker.

        Args:
            routing_config: Configuration for read/write routing.
            session_config: Configuration options for session creation.
            create_engine_callable: Callable to create async engines (for testing).
        """
        self._routing_config = routing_config
        self._session_config = session_config or {}
        self._registry = AsyncEndpointRegistry.from_config(routing_config, create_engine_callable)
        self._datasource = AsyncRoutingDataSource(self._registry, _create_resolver(routing_config))
        self._interceptor = IntentInterceptor(routing_config.nesting_policy)

    def __call__(self) -> RoutingAsyncSession:
        """Create a new async routing session.

        Returns:
            A new :class:`RoutingAsyncSession` instance.
        """
        session_config = self._session_config.copy()
        # Remove bind from session config - routing handles this
        session_config.pop("bind", None)
        return RoutingAsyncSession(datasource=self._datasource, **session_config)

    @overload
    def transactional(self, func: CallableT, /) -> CallableT: ...

    @overload
    def transactional(self, func: None = None, /, *, read_only: bool = False) -> Callable[[CallableT], CallableT]: ...

    def transactional(
        self,
        func: Optional[CallableT] = None,
        /,
        *,
        read_only: bool = False,
    ) -> Union[CallableT, Callable[[CallableT], CallableT]]:
        """Decorate a unit of work using this maker's nesting policy.

        See :func:`replication_router.interceptor.transactional`.
        """
        decorator = transactional(read_only=read_only, interceptor=self._interceptor)
        if func is None:
            return decorator
        return decorator(func)

    @property
    def routing_config(self) -> RoutingConfig:
        return self._routing_config

    @property
    def registry(self) -> AsyncEndpointRegistry:
        return self._registry

    @property
    def datasource(self) -> AsyncRoutingDataSource:
        return self._datasource

    @property
    def interceptor(self) -> IntentInterceptor:
        return self._interceptor

    @property
    def primary_engine(self) -> AsyncEngine:
        """Get the primary async engine.

        Returns:
            The primary database async engine.
        """
        return self._registry.default_endpoint.engine

    @property
    def replica_engines(self) -> list[AsyncEngine]:
        """Get the replica async engines.

        Returns:
            List of replica database async engines.
        """
        return [endpoint.engine for endpoint in self._registry.replica_endpoints]

    async def close_all(self) -> None:
        """Close all engines and release connections.

        Call this when shutting down to properly release database connections.
        """
        await self._registry.close()
