"""Routing-aware session classes for read/write routing.

This module provides SQLAlchemy session classes that route through a
:class:`~replication_router.datasource.RoutingDataSource` in ``get_bind()``.
SQLAlchemy only calls ``get_bind()`` when a statement or a flush actually needs
a connection, so the routing decision is made at first use, with whatever
intent is active at that moment.
"""

from typing import TYPE_CHECKING, Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Mapper

    from replication_router.datasource import AsyncRoutingDataSource, RoutingDataSource


__all__ = (
    "RoutingAsyncSession",
    "RoutingSyncSession",
)


class RoutingSyncSession(Session):
    """Synchronous session with intent-based routing via ``get_bind()``.

    The routing decision is made per statement from the intent of the current
    unit of work:

    1. ``WRITE`` or no declared intent: the primary engine
    2. ``READ``: a replica engine chosen by the resolver

    The statement itself is never inspected.

    Attributes:
        _datasource: The routing data source.
    """

    _datasource: "RoutingDataSource"

    def __init__(self, datasource: "RoutingDataSource", **kwargs: Any) -> None:
        """Initialize the routing session.

        Args:
            datasource: The routing data source.
            **kwargs: Additional arguments passed to the parent Session.
        """
        kwargs.pop("bind", None)
        kwargs.pop("binds", None)
        super().__init__(**kwargs)
        self._datasource = datasource

    @property
    def datasource(self) -> "RoutingDataSource":
        return self._datasource

    def get_bind(
        self,
        mapper: Optional[Union["Mapper[Any]", type[Any]]] = None,
        clause: Optional[Any] = None,
        **kwargs: Any,
    ) -> "Engine":
        """Route to the primary or a replica based on the declared intent.

        Args:
            mapper: Optional mapper for the operation.
            clause: The SQL clause being executed.
            **kwargs: Additional keyword arguments.

        Returns:
            The engine of the resolved endpoint.
        """
        return self._datasource.get_engine()


class RoutingAsyncSession(AsyncSession):
    """Async session with intent-based routing.

    This session class wraps :class:`RoutingSyncSession`. The actual routing
    happens in the underlying sync session's ``get_bind()``, which receives the
    sync engine of the resolved async endpoint.

    Example:
        Creating a routing async session::

            session = RoutingAsyncSession(datasource=AsyncRoutingDataSource(registry))
    """

    sync_session_class: "type[Session]" = RoutingSyncSession

    def __init__(self, datasource: "AsyncRoutingDataSource", **kwargs: Any) -> None:
        """Initialize the async routing session.

        Args:
            datasource: The async routing data source.
            **kwargs: Additional arguments passed to the parent AsyncSession.
        """
        kwargs.pop("bind", None)
        kwargs.pop("binds", None)
        super().__init__(
            sync_session_class=RoutingSyncSession,
            datasource=_SyncDataSourceWrapper(datasource),
            **kwargs,
        )
        self._datasource = datasource

    @property
    def datasource(self) -> "AsyncRoutingDataSource":
        return self._datasource


class _SyncDataSourceWrapper:
    """Wrapper to adapt an async data source for the sync session.

    This wrapper hands out the sync engine of the resolved async engine.
    """

    __slots__ = ("_async_datasource",)

    def __init__(self, async_datasource: "AsyncRoutingDataSource") -> None:
        self._async_datasource = async_datasource

    def get_engine(self) -> "Engine":
        """Get the sync engine for the resolved endpoint.

        Returns:
            The sync engine behind the resolved async engine.
        """
        return self._async_datasource.get_engine().sync_engine
