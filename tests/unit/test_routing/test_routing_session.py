"""Unit tests for routing sessions.

Tests the session classes that implement read/write routing via get_bind().
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest
from sqlalchemy import insert, select, table

from replication_router.context import Intent, intent_context
from replication_router.datasource import RoutingDataSource
from replication_router.interceptor import IntentInterceptor
from replication_router.session import RoutingSyncSession

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from replication_router.registry import SyncEndpointRegistry


@pytest.fixture
def routing_session(registry: SyncEndpointRegistry) -> RoutingSyncSession:
    """Create a routing session for testing."""
    return RoutingSyncSession(datasource=RoutingDataSource(registry))


def test_routing_session_initialization(registry: SyncEndpointRegistry) -> None:
    """Test RoutingSyncSession initialization."""
    datasource = RoutingDataSource(registry)

    session = RoutingSyncSession(datasource=datasource, expire_on_commit=False)

    assert session.datasource is datasource
    assert session.expire_on_commit is False


def test_routing_session_ignores_bind_arguments(registry: SyncEndpointRegistry) -> None:
    """Test that explicit binds are dropped in favor of routing."""
    session = RoutingSyncSession(
        datasource=RoutingDataSource(registry),
        bind=MagicMock(name="ignored_bind"),
        binds={object: MagicMock(name="ignored_binds")},
    )

    assert session.bind is None


def test_get_bind_in_read_unit_returns_replica(
    routing_session: RoutingSyncSession,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that a read-only unit binds to a replica."""
    with IntentInterceptor().scope(read_only=True):
        engine = routing_session.get_bind()

    assert engine in mock_replica_engines


def test_get_bind_in_write_unit_returns_primary(
    routing_session: RoutingSyncSession,
    mock_primary_engine: Engine,
) -> None:
    """Test that a read-write unit binds to the primary."""
    with IntentInterceptor().scope(read_only=False):
        engine = routing_session.get_bind()

    assert engine is mock_primary_engine


def test_get_bind_without_intent_returns_primary(
    routing_session: RoutingSyncSession,
    mock_primary_engine: Engine,
) -> None:
    """Test that work outside any unit binds to the primary."""
    assert routing_session.get_bind() is mock_primary_engine


def test_get_bind_ignores_statement_type(
    routing_session: RoutingSyncSession,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that routing follows the intent and never the statement."""
    users = table("users")

    with intent_context(Intent.READ):
        assert routing_session.get_bind(clause=insert(users)) in mock_replica_engines

    with intent_context(Intent.WRITE):
        assert routing_session.get_bind(clause=select(1)) is mock_primary_engine


def test_get_bind_is_resolved_per_call(
    routing_session: RoutingSyncSession,
    mock_primary_engine: Engine,
    mock_replica_engines: list[Engine],
) -> None:
    """Test that one session follows intent changes between statements."""
    with intent_context(Intent.WRITE):
        assert routing_session.get_bind() is mock_primary_engine
        with intent_context(Intent.READ):
            assert routing_session.get_bind() in mock_replica_engines
        assert routing_session.get_bind() is mock_primary_engine
