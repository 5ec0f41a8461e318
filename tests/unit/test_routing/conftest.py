"""Fixtures for routing unit tests.

Engines are mocks: routing never needs a live database, only something that
can be told apart and that records ``connect()`` / ``dispose()`` calls.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from replication_router.registry import Endpoint, EndpointKind, SyncEndpointRegistry

if TYPE_CHECKING:
    from sqlalchemy import Engine


@pytest.fixture
def mock_primary_engine() -> Engine:
    """Create a mock primary engine."""
    engine = MagicMock(name="primary_engine")
    engine.url = "postgresql://primary:5432/db"
    return engine


@pytest.fixture
def mock_replica_engines() -> list[Engine]:
    """Create mock replica engines."""
    engines: list[Engine] = []
    for i in range(1, 3):
        engine: Engine = MagicMock(name=f"replica_engine_{i}")
        engine.url = f"postgresql://replica{i}:5432/db"  # type: ignore[assignment, attr-defined]
        engines.append(engine)
    return engines


@pytest.fixture
def registry(mock_primary_engine: Engine, mock_replica_engines: list[Engine]) -> SyncEndpointRegistry:
    """Create a registry with a primary and two replicas."""
    return SyncEndpointRegistry(
        Endpoint(kind=EndpointKind.PRIMARY, engine=mock_primary_engine, name="primary"),
        [
            Endpoint(kind=EndpointKind.replica(number), engine=engine, name=f"replica{number}")
            for number, engine in enumerate(mock_replica_engines, start=1)
        ],
    )
