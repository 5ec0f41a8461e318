"""Replica selectors for read/write routing.

This module provides the strategies for selecting which replica services a
read. Selectors keep no cursor or other state between calls, so they can be
shared by any number of threads and tasks without locking.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from replication_router.config import RoutingStrategy

if TYPE_CHECKING:
    from replication_router.registry import Endpoint, EndpointRegistry


__all__ = (
    "RandomSelector",
    "ReplicaSelector",
    "WeightedRandomSelector",
    "get_selector",
)


class ReplicaSelector(ABC):
    """Abstract base class for replica selection strategies.

    Attributes:
        _random: Source of randomness. Defaults to the :mod:`random` module.
    """

    __slots__ = ("_random",)

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        """Initialize the selector.

        Args:
            rng: Optional :class:`random.Random` instance, mostly for deterministic tests.
        """
        self._random: Any = rng or random

    @abstractmethod
    def select(self, registry: EndpointRegistry[Any]) -> Endpoint[Any]:
        """Select the replica to use for one read.

        Args:
            registry: The registry holding the replicas.

        Returns:
            The selected replica endpoint.
        """
        ...


class RandomSelector(ReplicaSelector):
    """Uniform random replica selection.

    Every replica has the same probability on every call, independently of
    previous calls.

    Example:
        Selecting a replica::

            selector = RandomSelector()
            endpoint = selector.select(registry)
    """

    __slots__ = ()

    def select(self, registry: EndpointRegistry[Any]) -> Endpoint[Any]:
        """Select a replica uniformly at random.

        Returns:
            A randomly selected replica endpoint.
        """
        return registry.replica_at(self._random.randrange(registry.replica_count()))


class WeightedRandomSelector(ReplicaSelector):
    """Weighted random replica selection.

    Replicas are chosen with probability proportional to their configured
    weight, which helps when replicas have uneven capacity.
    """

    __slots__ = ()

    def select(self, registry: EndpointRegistry[Any]) -> Endpoint[Any]:
        """Select a replica proportionally to its weight.

        Returns:
            A randomly selected replica endpoint.
        """
        replicas = registry.replica_endpoints
        return self._random.choices(replicas, weights=[replica.weight for replica in replicas])[0]  # type: ignore[no-any-return]


def get_selector(strategy: RoutingStrategy, rng: Optional[random.Random] = None) -> ReplicaSelector:
    """Create a replica selector for the given strategy.

    Args:
        strategy: The routing strategy to use.
        rng: Optional source of randomness.

    Returns:
        The appropriate selector instance.
    """
    if strategy == RoutingStrategy.WEIGHTED_RANDOM:
        return WeightedRandomSelector(rng)
    return RandomSelector(rng)
