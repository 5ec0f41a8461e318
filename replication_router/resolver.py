"""Routing decision for read/write routing.

The resolver maps the declared intent of the current unit of work to the
endpoint that should service the next connection checkout:

1. ``WRITE`` routes to the primary.
2. ``READ`` routes to a replica chosen by the configured selector.
3. ``UNSET`` routes to the primary. An undeclared operation is never served
   from a replica.

Each decision is independent. There is no stickiness within a unit of work,
so a read-only unit that checks out three connections may be served by three
different replicas.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from replication_router.context import Intent
from replication_router.registry import EndpointKind
from replication_router.selectors import RandomSelector, ReplicaSelector

if TYPE_CHECKING:
    from replication_router.registry import EndpointRegistry

__all__ = ("RoutingResolver",)

logger = logging.getLogger("replication_router")


class RoutingResolver:
    """Stateless decision function from ``(intent, replica set)`` to an endpoint kind.

    Attributes:
        _selector: Strategy used to pick a replica for reads.
        _enabled: When ``False`` every decision is the primary.
    """

    __slots__ = ("_enabled", "_selector")

    def __init__(self, selector: Optional[ReplicaSelector] = None, enabled: bool = True) -> None:
        """Initialize the resolver.

        Args:
            selector: Replica selection strategy. Defaults to :class:`RandomSelector`.
            enabled: Enable/disable routing to replicas.
        """
        self._selector = selector or RandomSelector()
        self._enabled = enabled

    @property
    def selector(self) -> ReplicaSelector:
        return self._selector

    @property
    def enabled(self) -> bool:
        return self._enabled

    def decide(self, intent: Intent, registry: EndpointRegistry[Any]) -> EndpointKind:
        """Decide which endpoint services the next connection checkout.

        Args:
            intent: The intent of the current unit of work.
            registry: The endpoint registry.

        Returns:
            The kind of the endpoint to use.
        """
        if intent is Intent.WRITE:
            logger.debug("Routing WRITE to %s", EndpointKind.PRIMARY)
            return EndpointKind.PRIMARY
        if intent is Intent.READ:
            if not self._enabled:
                logger.debug("Routing disabled, sending READ to %s", EndpointKind.PRIMARY)
                return EndpointKind.PRIMARY
            kind = self._selector.select(registry).kind
            logger.debug("Routing READ to %s", kind)
            return kind
        logger.warning("No intent declared for the current unit of work, defaulting to %s", EndpointKind.PRIMARY)
        return EndpointKind.PRIMARY
