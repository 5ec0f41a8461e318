from __future__ import annotations

from typing import Any

# Raised by the pool on exhaustion. Propagated unchanged, never wrapped.
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

__all__ = (
    "ConfigurationError",
    "PoolTimeoutError",
    "ReplicationRouterError",
)


class ReplicationRouterError(Exception):
    """Base exception class from which all replication router exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``ReplicationRouterError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ConfigurationError(ReplicationRouterError):
    """Improper endpoint topology or an unknown endpoint lookup.

    Raised while building the configuration or the endpoint registry, and when
    a lookup names an endpoint kind that was never registered.

    Args:
        *args: Variable length argument list passed to parent class.
        detail: Detailed error message.
    """
