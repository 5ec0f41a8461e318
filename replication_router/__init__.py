"""Replication-aware query routing for SQLAlchemy.

Routes each connection checkout to the primary or to a read replica based on
the intent declared by the enclosing unit of work.

Example:
    Basic usage::

        from replication_router import RoutingConfig, RoutingSyncSessionMaker

        maker = RoutingSyncSessionMaker(
            routing_config=RoutingConfig.from_urls(
                "postgresql+psycopg://app@primary:5432/db",
                [
                    "postgresql+psycopg://app@replica1:5432/db",
                    "postgresql+psycopg://app@replica2:5432/db",
                ],
            ),
        )


        @maker.transactional(read_only=True)
        def count_users() -> int:
            with maker() as session:
                return session.scalar(select(func.count()).select_from(User))
"""

from replication_router.__metadata__ import __version__
from replication_router.config import EndpointConfig, EndpointRole, NestingPolicy, RoutingConfig, RoutingStrategy
from replication_router.context import Intent, clear_intent, get_intent, intent_context, set_intent
from replication_router.datasource import AsyncLazyConnection, AsyncRoutingDataSource, LazyConnection, RoutingDataSource
from replication_router.exceptions import ConfigurationError, PoolTimeoutError, ReplicationRouterError
from replication_router.interceptor import IntentInterceptor, TransactionalUnit, transactional
from replication_router.maker import RoutingAsyncSessionMaker, RoutingSyncSessionMaker
from replication_router.registry import (
    AsyncEndpointRegistry,
    Endpoint,
    EndpointKind,
    EndpointRegistry,
    SyncEndpointRegistry,
)
from replication_router.resolver import RoutingResolver
from replication_router.selectors import RandomSelector, ReplicaSelector, WeightedRandomSelector
from replication_router.session import RoutingAsyncSession, RoutingSyncSession

__all__ = (
    "AsyncEndpointRegistry",
    "AsyncLazyConnection",
    "AsyncRoutingDataSource",
    "ConfigurationError",
    "Endpoint",
    "EndpointConfig",
    "EndpointKind",
    "EndpointRegistry",
    "EndpointRole",
    "Intent",
    "IntentInterceptor",
    "LazyConnection",
    "NestingPolicy",
    "PoolTimeoutError",
    "RandomSelector",
    "ReplicaSelector",
    "ReplicationRouterError",
    "RoutingAsyncSession",
    "RoutingAsyncSessionMaker",
    "RoutingConfig",
    "RoutingDataSource",
    "RoutingResolver",
    "RoutingStrategy",
    "RoutingSyncSession",
    "RoutingSyncSessionMaker",
    "SyncEndpointRegistry",
    "TransactionalUnit",
    "WeightedRandomSelector",
    "__version__",
    "clear_intent",
    "get_intent",
    "intent_context",
    "set_intent",
    "transactional",
)
