"""Endpoint topology configuration for the replication router.

This module provides the configuration classes that describe the physical
endpoints (one primary, one or more replicas), their pool sizing, and how the
router distributes read traffic across replicas.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum, auto
from typing import Any, Union

from replication_router.exceptions import ConfigurationError

__all__ = (
    "EndpointConfig",
    "EndpointRole",
    "NestingPolicy",
    "RoutingConfig",
    "RoutingStrategy",
)


class EndpointRole(str, Enum):
    """Role tag of a configured endpoint."""

    PRIMARY = "primary"
    """The single writable endpoint."""

    REPLICA = "replica"
    """A read-only endpoint."""


class RoutingStrategy(Enum):
    """Strategy for selecting read replicas.

    Determines how the routing layer chooses which replica services a read.
    """

    RANDOM = auto()
    """Select replicas uniformly at random."""

    WEIGHTED_RANDOM = auto()
    """Select replicas at random, proportionally to :attr:`EndpointConfig.weight`."""


class NestingPolicy(Enum):
    """What a unit-of-work scope does to the intent when it exits."""

    RESTORE = auto()
    """Restore the intent that was active when the scope was entered."""

    CLEAR = auto()
    """Clear the intent unconditionally.

    A read-write unit that calls a nested read-only unit is left without a
    declared intent afterwards, so its remaining work goes to the primary.
    """


_POOL_OPTIONS = ("pool_size", "max_overflow", "pool_timeout", "pool_recycle", "pool_pre_ping")


@dataclass
class EndpointConfig:
    """Configuration for a single physical endpoint.

    Attributes:
        connection_string: Database connection string for the endpoint.
        role: ``primary`` or ``replica``.
        name: Human-readable name, unique within a :class:`RoutingConfig`.
        weight: Relative weight for :attr:`RoutingStrategy.WEIGHTED_RANDOM`.
    """

    connection_string: str
    """Connection string for the endpoint."""

    role: Union[EndpointRole, str] = EndpointRole.REPLICA
    """Role of the endpoint. Strings are coerced to :class:`EndpointRole`."""

    name: str = ""
    """Optional human-readable name. Defaults to ``primary`` / ``replica<n>``."""

    pool_size: Union[int, None] = None
    """Number of connections kept open in the pool."""

    max_overflow: Union[int, None] = None
    """Connections allowed beyond ``pool_size`` under load."""

    pool_timeout: Union[float, None] = None
    """Seconds to wait for a connection before the pool gives up."""

    pool_recycle: Union[int, None] = None
    """Recycle connections after this many seconds."""

    pool_pre_ping: Union[bool, None] = None
    """Test connections for liveness on checkout."""

    weight: int = 1
    """Relative weight for weighted replica selection (higher weight = more traffic)."""

    engine_options: dict[str, Any] = field(default_factory=dict)
    """Extra keyword arguments passed to the engine factory for this endpoint."""

    def __post_init__(self) -> None:
        if not self.connection_string:
            msg = "Endpoint connection string must not be empty"
            raise ConfigurationError(msg)
        try:
            self.role = EndpointRole(str(getattr(self.role, "value", self.role)).lower())
        except ValueError as exc:
            msg = f"Unknown endpoint role {self.role!r}, expected 'primary' or 'replica'"
            raise ConfigurationError(msg) from exc
        if self.weight < 1:
            msg = f"Endpoint weight must be at least 1, got {self.weight}"
            raise ConfigurationError(msg)

    @property
    def is_primary(self) -> bool:
        return self.role == EndpointRole.PRIMARY

    def get_engine_kwargs(self) -> dict[str, Any]:
        """Return the engine keyword arguments for this endpoint.

        Only pool options that were explicitly set are included, so dialects
        that use a non-queue pool (in-memory SQLite) are not handed options they
        reject.

        Returns:
            Keyword arguments for the engine factory.
        """
        kwargs = {option: getattr(self, option) for option in _POOL_OPTIONS if getattr(self, option) is not None}
        kwargs.update(self.engine_options)
        return kwargs


def _default_endpoints() -> list[EndpointConfig]:
    """Return an empty list of endpoint configurations."""
    return []


@dataclass
class RoutingConfig:
    """Replication routing configuration.

    Describes the full endpoint topology. Validation runs on construction: there
    must be exactly one primary and at least one replica, so a misconfigured
    process fails before it can serve traffic.

    Example:
        Primary with two replicas::

            config = RoutingConfig(
                endpoints=[
                    EndpointConfig("postgresql+psycopg://app@primary:5432/db", role="primary", pool_size=10),
                    EndpointConfig("postgresql+psycopg://app@replica1:5432/db", pool_size=20),
                    EndpointConfig("postgresql+psycopg://app@replica2:5432/db", pool_size=20),
                ],
            )

        The same topology from plain connection strings::

            config = RoutingConfig.from_urls(
                "postgresql+psycopg://app@primary:5432/db",
                [
                    "postgresql+psycopg://app@replica1:5432/db",
                    "postgresql+psycopg://app@replica2:5432/db",
                ],
            )
    """

    endpoints: list[EndpointConfig] = field(default_factory=_default_endpoints)
    """All configured endpoints, primary and replicas, in registration order."""

    routing_strategy: RoutingStrategy = RoutingStrategy.RANDOM
    """Strategy for selecting read replicas."""

    enabled: bool = True
    """Enable/disable routing.

    When ``False``, all traffic goes to the primary database.
    Useful for testing or temporarily disabling replicas.
    """

    nesting_policy: NestingPolicy = NestingPolicy.RESTORE
    """Intent handling when a nested unit of work exits."""

    engine_config: dict[str, Any] = field(default_factory=dict)
    """Engine options shared by every endpoint. Per-endpoint options take precedence."""

    def __post_init__(self) -> None:
        primaries = [endpoint for endpoint in self.endpoints if endpoint.is_primary]
        if len(primaries) != 1:
            msg = f"Exactly one primary endpoint is required, got {len(primaries)}"
            raise ConfigurationError(msg)
        if len(primaries) == len(self.endpoints):
            msg = "At least one replica endpoint is required"
            raise ConfigurationError(msg)

        named: list[EndpointConfig] = []
        replica_number = 0
        for endpoint in self.endpoints:
            if endpoint.is_primary:
                default_name = "primary"
            else:
                replica_number += 1
                default_name = f"replica{replica_number}"
            named.append(replace(endpoint, name=endpoint.name or default_name))
        self.endpoints = named

        names = [endpoint.name for endpoint in self.endpoints]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"Endpoint names must be unique, duplicated: {', '.join(duplicates)}"
            raise ConfigurationError(msg)

    @property
    def primary(self) -> EndpointConfig:
        """Get the primary endpoint configuration."""
        return next(endpoint for endpoint in self.endpoints if endpoint.is_primary)

    @property
    def replicas(self) -> list[EndpointConfig]:
        """Get the replica endpoint configurations, in registration order."""
        return [endpoint for endpoint in self.endpoints if not endpoint.is_primary]

    def get_engine_kwargs(self, endpoint: EndpointConfig) -> dict[str, Any]:
        """Merge the shared engine options with the endpoint's own options.

        Args:
            endpoint: The endpoint to build options for.

        Returns:
            Keyword arguments for the engine factory.
        """
        return {**self.engine_config, **endpoint.get_engine_kwargs()}

    @classmethod
    def from_urls(
        cls,
        primary_connection_string: str,
        read_replicas: list[str],
        **kwargs: Any,
    ) -> RoutingConfig:
        """Build a configuration from plain connection strings.

        Args:
            primary_connection_string: Connection string for the primary.
            read_replicas: Connection strings for the replicas.
            **kwargs: Additional :class:`RoutingConfig` fields.

        Returns:
            The routing configuration.
        """
        endpoints = [EndpointConfig(primary_connection_string, role=EndpointRole.PRIMARY)]
        endpoints.extend(EndpointConfig(url, role=EndpointRole.REPLICA) for url in read_replicas)
        return cls(endpoints=endpoints, **kwargs)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> RoutingConfig:
        """Build a configuration from named endpoint descriptors.

        Example:
            Loading parsed settings::

                config = RoutingConfig.from_mapping(
                    {
                        "routing_strategy": "random",
                        "endpoints": {
                            "primary": {"role": "primary", "url": "postgresql://primary/db", "pool_size": 10},
                            "replica1": {"role": "replica", "url": "postgresql://replica1/db"},
                        },
                    }
                )

        Args:
            mapping: Parsed settings. ``endpoints`` maps endpoint names to descriptors
                holding ``url`` (or ``connection_string``), ``role`` and pool options.

        Raises:
            ConfigurationError: If a descriptor or option is not recognized.

        Returns:
            The routing configuration.
        """
        descriptors = mapping.get("endpoints")
        if not isinstance(descriptors, Mapping) or not descriptors:
            msg = "Routing settings must contain a non-empty 'endpoints' mapping"
            raise ConfigurationError(msg)

        endpoint_fields = {f.name for f in fields(EndpointConfig)}
        endpoints: list[EndpointConfig] = []
        for name, descriptor in descriptors.items():
            options = dict(descriptor)
            if "url" in options:
                options["connection_string"] = options.pop("url")
            unknown = sorted(set(options) - endpoint_fields)
            if unknown:
                msg = f"Unknown option(s) for endpoint {name!r}: {', '.join(unknown)}"
                raise ConfigurationError(msg)
            if "connection_string" not in options:
                msg = f"Endpoint {name!r} has no connection string"
                raise ConfigurationError(msg)
            options.setdefault("name", name)
            endpoints.append(EndpointConfig(**options))

        kwargs: dict[str, Any] = {}
        if "routing_strategy" in mapping:
            kwargs["routing_strategy"] = _parse_enum(RoutingStrategy, mapping["routing_strategy"])
        if "nesting_policy" in mapping:
            kwargs["nesting_policy"] = _parse_enum(NestingPolicy, mapping["nesting_policy"])
        if "enabled" in mapping:
            kwargs["enabled"] = bool(mapping["enabled"])
        if "engine_config" in mapping:
            kwargs["engine_config"] = dict(mapping["engine_config"])
        return cls(endpoints=endpoints, **kwargs)


def _parse_enum(enum_cls: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls[str(value).upper()]
    except KeyError as exc:
        choices = ", ".join(member.name.lower() for member in enum_cls)
        msg = f"Invalid {enum_cls.__name__} {value!r}, expected one of: {choices}"
        raise ConfigurationError(msg) from exc
