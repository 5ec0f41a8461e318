"""Pytest configuration shared by unit and integration tests.

The routing intent lives in a ``ContextVar``. That state is process-local, so it
can leak between tests when related tests run on the same worker.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from replication_router.context import clear_intent


@pytest.fixture(autouse=True)
def _reset_routing_intent() -> Iterator[None]:
    """Ensure routing ContextVar state never leaks between tests."""
    clear_intent()
    try:
        yield
    finally:
        clear_intent()


@pytest.fixture(autouse=True, scope="session")
def configure_logging() -> None:
    """Configure logging levels to suppress verbose database output."""
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
