"""Context variable and context manager holding the declared intent.

This module provides the per-unit-of-work state for routing decisions. The
intent lives in a :class:`~contextvars.ContextVar`, so every thread has its own
value and every asyncio task works on a copy of its parent's context.
"""

from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from enum import Enum

__all__ = (
    "Intent",
    "clear_intent",
    "get_intent",
    "intent_context",
    "intent_var",
    "set_intent",
)


class Intent(Enum):
    """Declared access mode of the current unit of work."""

    READ = "read"
    """Read-only unit. Connections come from a replica."""

    WRITE = "write"
    """Read-write unit. Connections come from the primary."""

    UNSET = "unset"
    """No declared intent. Connections come from the primary."""


intent_var: ContextVar[Intent] = ContextVar("replication_intent", default=Intent.UNSET)
"""Context variable holding the intent of the current unit of work.

Reads return :attr:`Intent.UNSET` until a unit of work declares its intent.
"""


def get_intent() -> Intent:
    """Get the intent visible to the current unit of work.

    Returns:
        The declared intent, or :attr:`Intent.UNSET`.
    """
    return intent_var.get()


def set_intent(intent: Intent) -> "Token[Intent]":
    """Declare the intent of the current unit of work.

    Args:
        intent: The access mode to declare.

    Returns:
        A token that restores the previous value via ``intent_var.reset(token)``.
    """
    return intent_var.set(intent)


def clear_intent() -> None:
    """Reset the intent to :attr:`Intent.UNSET`.

    Safe to call any number of times.
    """
    intent_var.set(Intent.UNSET)


@contextmanager
def intent_context(intent: Intent) -> Generator[None, None, None]:
    """Declare an intent for the duration of the block.

    The previous intent is restored on exit, including when the block raises.

    Example:
        Route a block of reads to the replicas::

            from replication_router.context import Intent, intent_context

            with intent_context(Intent.READ):
                users = session.scalars(select(User)).all()

    Args:
        intent: The access mode to declare.

    Yields:
        None
    """
    token = intent_var.set(intent)
    try:
        yield
    finally:
        intent_var.reset(token)
