"""Endpoint registry for read/write routing.

The registry owns the fixed endpoint topology: one primary and a non-empty,
ordered set of replicas, each backed by its own engine (and therefore its own
connection pool). It is built once at startup and is read-only afterwards, so
concurrent lookups need no synchronization.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, ClassVar, Generic, TypeVar, Union

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from replication_router.config import EndpointRole
from replication_router.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from replication_router.config import EndpointConfig, RoutingConfig

__all__ = (
    "AsyncEndpointRegistry",
    "Endpoint",
    "EndpointKind",
    "EndpointRegistry",
    "SyncEndpointRegistry",
)

logger = logging.getLogger("replication_router")

EngineT = TypeVar("EngineT", bound="Union[Engine, AsyncEngine]")


@dataclass(frozen=True)
class EndpointKind:
    """Identifies a physical endpoint: ``PRIMARY`` or ``REPLICA_<n>``.

    Example:
        Referring to endpoints::

            EndpointKind.PRIMARY
            EndpointKind.replica(2)  # REPLICA_2
    """

    role: EndpointRole
    index: int = 0

    PRIMARY: ClassVar[EndpointKind]

    @classmethod
    def replica(cls, number: int) -> EndpointKind:
        """Get the kind of the ``number``-th replica (1-based).

        Args:
            number: Replica number, starting at 1.

        Raises:
            ValueError: If ``number`` is lower than 1.

        Returns:
            The replica kind.
        """
        if number < 1:
            msg = f"Replica numbers start at 1, got {number}"
            raise ValueError(msg)
        return cls(EndpointRole.REPLICA, number)

    @property
    def is_primary(self) -> bool:
        return self.role is EndpointRole.PRIMARY

    def __str__(self) -> str:
        if self.is_primary:
            return "PRIMARY"
        return f"REPLICA_{self.index}"


EndpointKind.PRIMARY = EndpointKind(EndpointRole.PRIMARY)


@dataclass(frozen=True)
class Endpoint(Generic[EngineT]):
    """A physical database target and the engine that pools its connections."""

    kind: EndpointKind
    engine: EngineT
    name: str = ""
    weight: int = 1


class EndpointRegistry(Generic[EngineT]):
    """Fixed endpoint topology: one primary and at least one replica.

    Use :meth:`SyncEndpointRegistry.from_config` or
    :meth:`AsyncEndpointRegistry.from_config` to build engines from a
    :class:`~replication_router.config.RoutingConfig`.
    """

    __slots__ = ("_default_endpoint", "_lookup", "_replica_endpoints")

    def __init__(self, primary: Endpoint[EngineT], replicas: Sequence[Endpoint[EngineT]]) -> None:
        """Initialize the registry.

        Args:
            primary: The primary endpoint, used as the default.
            replicas: The replica endpoints, in selection order.

        Raises:
            ConfigurationError: If the topology is invalid.
        """
        if not primary.kind.is_primary:
            msg = f"Default endpoint must be PRIMARY, got {primary.kind}"
            raise ConfigurationError(msg)
        if not replicas:
            msg = "At least one replica endpoint is required"
            raise ConfigurationError(msg)
        lookup: dict[EndpointKind, Endpoint[EngineT]] = {primary.kind: primary}
        for replica in replicas:
            if replica.kind.is_primary:
                msg = "Exactly one primary endpoint is allowed"
                raise ConfigurationError(msg)
            if replica.kind in lookup:
                msg = f"Endpoint {replica.kind} is registered more than once"
                raise ConfigurationError(msg)
            lookup[replica.kind] = replica
        missing = [str(endpoint.kind) for endpoint in lookup.values() if endpoint.engine is None]
        if missing:
            msg = f"Endpoint(s) without an engine: {', '.join(missing)}"
            raise ConfigurationError(msg)

        self._default_endpoint = primary
        self._replica_endpoints = tuple(replicas)
        self._lookup: Mapping[EndpointKind, Endpoint[EngineT]] = MappingProxyType(lookup)

    @property
    def default_endpoint(self) -> Endpoint[EngineT]:
        """Get the primary endpoint."""
        return self._default_endpoint

    @property
    def replica_endpoints(self) -> tuple[Endpoint[EngineT], ...]:
        """Get the replica endpoints, in registration order."""
        return self._replica_endpoints

    @property
    def endpoints(self) -> tuple[Endpoint[EngineT], ...]:
        """Get every endpoint, primary first."""
        return (self._default_endpoint, *self._replica_endpoints)

    def resolve(self, kind: EndpointKind) -> Endpoint[EngineT]:
        """Look up a registered endpoint.

        Args:
            kind: The endpoint kind.

        Raises:
            ConfigurationError: If ``kind`` is not registered.

        Returns:
            The endpoint.
        """
        try:
            return self._lookup[kind]
        except KeyError:
            msg = f"No endpoint registered for {kind}"
            raise ConfigurationError(msg) from None

    def replica_count(self) -> int:
        """Get the number of registered replicas (always at least 1)."""
        return len(self._replica_endpoints)

    def replica_at(self, index: int) -> Endpoint[EngineT]:
        """Get a replica by its 0-based position.

        Args:
            index: Position in :attr:`replica_endpoints`.

        Raises:
            ConfigurationError: If ``index`` is out of range.

        Returns:
            The replica endpoint.
        """
        if not 0 <= index < len(self._replica_endpoints):
            msg = f"Replica index {index} out of range for {len(self._replica_endpoints)} replica(s)"
            raise ConfigurationError(msg)
        return self._replica_endpoints[index]

    def __contains__(self, kind: object) -> bool:
        return kind in self._lookup

    def __repr__(self) -> str:
        kinds = ", ".join(str(kind) for kind in self._lookup)
        return f"{self.__class__.__name__}({kinds})"


def _build_endpoints(
    config: RoutingConfig,
    create_engine_callable: Callable[..., EngineT],
) -> tuple[Endpoint[EngineT], list[Endpoint[EngineT]]]:
    """Create one engine per configured endpoint.

    Args:
        config: The routing configuration.
        create_engine_callable: Callable to create engines.

    Returns:
        The primary endpoint and the replica endpoints.
    """

    def _create(kind: EndpointKind, endpoint_config: EndpointConfig) -> Endpoint[EngineT]:
        engine = create_engine_callable(
            endpoint_config.connection_string,
            **config.get_engine_kwargs(endpoint_config),
        )
        logger.debug("Created engine for %s endpoint %r", kind, endpoint_config.name)
        return Endpoint(kind=kind, engine=engine, name=endpoint_config.name, weight=endpoint_config.weight)

    created: list[Endpoint[EngineT]] = []
    try:
        created.append(_create(EndpointKind.PRIMARY, config.primary))
        for number, replica_config in enumerate(config.replicas, start=1):
            created.append(_create(EndpointKind.replica(number), replica_config))
    except Exception:
        for endpoint in created:
            # fresh pools hold no connections, so the sync dispose is enough for async engines too
            getattr(endpoint.engine, "sync_engine", endpoint.engine).dispose()
            logger.debug("Disposed engine for %s endpoint %r", endpoint.kind, endpoint.name)
        raise
    return created[0], created[1:]


class SyncEndpointRegistry(EndpointRegistry[Engine]):
    """Endpoint registry backed by sync engines."""

    __slots__ = ()

    @classmethod
    def from_config(
        cls,
        config: RoutingConfig,
        create_engine_callable: Callable[..., Engine] = create_engine,
    ) -> SyncEndpointRegistry:
        """Build the registry and its engines from configuration.

        Args:
            config: The routing configuration.
            create_engine_callable: Callable to create engines (for testing).

        Returns:
            The registry.
        """
        primary, replicas = _build_endpoints(config, create_engine_callable)
        return cls(primary, replicas)

    def close(self) -> None:
        """Drain and close every pool.

        Call this when shutting down to properly release database connections.
        """
        for endpoint in self.endpoints:
            endpoint.engine.dispose()
            logger.debug("Disposed engine for %s endpoint %r", endpoint.kind, endpoint.name)


class AsyncEndpointRegistry(EndpointRegistry[AsyncEngine]):
    """Endpoint registry backed by async engines."""

    __slots__ = ()

    @classmethod
    def from_config(
        cls,
        config: RoutingConfig,
        create_engine_callable: Callable[..., AsyncEngine] = create_async_engine,
    ) -> AsyncEndpointRegistry:
        """Build the registry and its async engines from configuration.

        Args:
            config: The routing configuration.
            create_engine_callable: Callable to create async engines (for testing).

        Returns:
            The registry.
        """
        primary, replicas = _build_endpoints(config, create_engine_callable)
        return cls(primary, replicas)

    async def close(self) -> None:
        """Drain and close every pool.

        Call this when shutting down to properly release database connections.
        """
        for endpoint in self.endpoints:
            await endpoint.engine.dispose()
            logger.debug("Disposed engine for %s endpoint %r", endpoint.kind, endpoint.name)
