"""Unit-of-work interception for read/write routing.

The interceptor brackets a unit of work: it declares the unit's intent before
the body runs and releases it afterwards on every exit path, so a unit's intent
can never leak into the next unit scheduled on the same thread or task.

Example:
    Declaring intent with the decorator::

        from replication_router import transactional


        @transactional(read_only=True)
        def list_users(session: Session) -> list[User]:
            return list(session.scalars(select(User)))


        @transactional
        async def rename_user(session: AsyncSession, user_id: str, name: str) -> None:
            user = await session.get(User, user_id)
            user.name = name
            await session.commit()
"""

from __future__ import annotations

import functools
import inspect
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol, TypeVar, Union, overload, runtime_checkable

from replication_router.config import NestingPolicy
from replication_router.context import Intent, clear_intent, intent_var

if TYPE_CHECKING:
    from collections.abc import Awaitable, Generator

__all__ = (
    "IntentInterceptor",
    "TransactionalUnit",
    "transactional",
)

logger = logging.getLogger("replication_router")

ReturnT = TypeVar("ReturnT")
CallableT = TypeVar("CallableT", bound=Callable[..., Any])


@runtime_checkable
class TransactionalUnit(Protocol):
    """Anything that declares whether its unit of work is read-only."""

    read_only: bool


class IntentInterceptor:
    """Declares the intent of a unit of work around its execution.

    A read-only unit runs with :attr:`Intent.READ`, any other unit runs with
    :attr:`Intent.WRITE`. What happens on exit depends on the nesting policy:

    * :attr:`NestingPolicy.RESTORE` puts back the intent that was active on
      entry. A read-write unit calling a nested read-only unit is still
      read-write once the nested unit returns.
    * :attr:`NestingPolicy.CLEAR` always resets to :attr:`Intent.UNSET`, so the
      outer unit's remaining work falls back to the primary.
    """

    __slots__ = ("_nesting_policy",)

    def __init__(self, nesting_policy: NestingPolicy = NestingPolicy.RESTORE) -> None:
        self._nesting_policy = nesting_policy

    @property
    def nesting_policy(self) -> NestingPolicy:
        return self._nesting_policy

    @contextmanager
    def scope(self, read_only: bool, name: str = "") -> Generator[Intent, None, None]:
        """Run a block as a unit of work with the given access mode.

        Args:
            read_only: Whether the unit is declared read-only.
            name: Optional unit name used in log records.

        Yields:
            The declared intent.
        """
        intent = Intent.READ if read_only else Intent.WRITE
        logger.debug("Entering %s unit of work %s", intent.name, name or "<anonymous>")
        token = intent_var.set(intent)
        try:
            yield intent
        finally:
            if self._nesting_policy is NestingPolicy.RESTORE:
                intent_var.reset(token)
            else:
                clear_intent()
            logger.debug("Leaving %s unit of work %s", intent.name, name or "<anonymous>")

    def invoke(
        self,
        unit: TransactionalUnit,
        body: Callable[..., ReturnT],
        *args: Any,
        **kwargs: Any,
    ) -> ReturnT:
        """Run ``body`` under the access mode declared by ``unit``.

        Args:
            unit: Object exposing the unit's ``read_only`` flag.
            body: The unit's body.
            *args: Positional arguments for ``body``.
            **kwargs: Keyword arguments for ``body``.

        Returns:
            Whatever ``body`` returns.
        """
        with self.scope(unit.read_only, name=_describe(body)):
            return body(*args, **kwargs)

    async def ainvoke(
        self,
        unit: TransactionalUnit,
        body: Callable[..., Awaitable[ReturnT]],
        *args: Any,
        **kwargs: Any,
    ) -> ReturnT:
        """Await ``body`` under the access mode declared by ``unit``.

        Args:
            unit: Object exposing the unit's ``read_only`` flag.
            body: The unit's async body.
            *args: Positional arguments for ``body``.
            **kwargs: Keyword arguments for ``body``.

        Returns:
            Whatever ``body`` resolves to.
        """
        with self.scope(unit.read_only, name=_describe(body)):
            return await body(*args, **kwargs)

    def wrap(self, func: CallableT, read_only: bool = False) -> CallableT:
        """Wrap a sync or async function so every call is a unit of work.

        The wrapper exposes ``read_only``, so it satisfies
        :class:`TransactionalUnit` itself.

        Generator functions are rejected: their body runs after the call
        returns, outside any scope the wrapper could hold open.

        Args:
            func: The function or async callable object to wrap.
            read_only: Whether calls are declared read-only.

        Raises:
            TypeError: If ``func`` is a generator or async generator function.

        Returns:
            The wrapped function.
        """
        if _is_generator_callable(func):
            msg = f"Cannot declare a unit of work on generator function {_describe(func)}"
            raise TypeError(msg)
        if _is_async_callable(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                return await self.ainvoke(async_wrapper, func, *args, **kwargs)  # type: ignore[arg-type]

            wrapper: Any = async_wrapper
        else:

            @functools.wraps(func)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                return self.invoke(sync_wrapper, func, *args, **kwargs)  # type: ignore[arg-type]

            wrapper = sync_wrapper
        wrapper.read_only = read_only
        return wrapper  # type: ignore[no-any-return]


_default_interceptor = IntentInterceptor()


@overload
def transactional(func: CallableT, /) -> CallableT: ...


@overload
def transactional(
    func: None = None,
    /,
    *,
    read_only: bool = False,
    interceptor: Optional[IntentInterceptor] = None,
) -> Callable[[CallableT], CallableT]: ...


def transactional(
    func: Optional[CallableT] = None,
    /,
    *,
    read_only: bool = False,
    interceptor: Optional[IntentInterceptor] = None,
) -> Union[CallableT, Callable[[CallableT], CallableT]]:
    """Mark a function as a unit of work.

    Can be applied bare (``@transactional``, read-write) or with arguments
    (``@transactional(read_only=True)``). Works on plain and ``async def``
    functions.

    Args:
        func: The function, when used without arguments.
        read_only: Whether calls are declared read-only.
        interceptor: Interceptor to use. Defaults to one with
            :attr:`NestingPolicy.RESTORE`.

    Returns:
        The wrapped function, or a decorator.
    """
    used_interceptor = interceptor or _default_interceptor

    def decorator(function: CallableT) -> CallableT:
        return used_interceptor.wrap(function, read_only=read_only)

    if func is not None:
        return decorator(func)
    return decorator


def _describe(body: Callable[..., Any]) -> str:
    return getattr(body, "__qualname__", None) or repr(body)


def _is_async_callable(func: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, "__call__", None))


def _is_generator_callable(func: Callable[..., Any]) -> bool:
    call = getattr(func, "__call__", None)
    return any(
        inspect.isgeneratorfunction(candidate) or inspect.isasyncgenfunction(candidate) for candidate in (func, call)
    )
