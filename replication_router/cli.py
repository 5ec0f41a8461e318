from __future__ import annotations

import asyncio
from collections import Counter
from typing import TYPE_CHECKING, Any, Optional, Union

from click import Context, IntRange, group, option, pass_context, version_option
from rich import get_console
from rich.markup import escape
from rich.table import Table
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from replication_router.__metadata__ import __project__, __version__
from replication_router.config import RoutingConfig
from replication_router.context import get_intent
from replication_router.exceptions import ConfigurationError
from replication_router.interceptor import IntentInterceptor
from replication_router.registry import AsyncEndpointRegistry, EndpointKind, SyncEndpointRegistry
from replication_router.resolver import RoutingResolver
from replication_router.selectors import get_selector
from replication_router.utils import module_loader

if TYPE_CHECKING:
    from click import Group

    from replication_router.registry import Endpoint

__all__ = ("get_router_group",)


def _mask(connection_string: str) -> str:
    return make_url(connection_string).render_as_string(hide_password=True)


def _is_async(config: RoutingConfig) -> bool:
    return any(
        getattr(make_url(endpoint.connection_string).get_dialect(), "is_async", False) for endpoint in config.endpoints
    )


def _build_registry(config: RoutingConfig) -> Union[SyncEndpointRegistry, AsyncEndpointRegistry]:
    if _is_async(config):
        return AsyncEndpointRegistry.from_config(config)
    return SyncEndpointRegistry.from_config(config)


def _close_registry(registry: Union[SyncEndpointRegistry, AsyncEndpointRegistry]) -> None:
    if isinstance(registry, AsyncEndpointRegistry):
        asyncio.run(registry.close())
    else:
        registry.close()


def _ping_sync(registry: SyncEndpointRegistry) -> list[tuple[Endpoint[Any], Optional[str]]]:
    results: list[tuple[Endpoint[Any], Optional[str]]] = []
    for endpoint in registry.endpoints:
        try:
            with endpoint.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            results.append((endpoint, (str(exc).splitlines() or [type(exc).__name__])[0]))
        else:
            results.append((endpoint, None))
    return results


async def _ping_async(registry: AsyncEndpointRegistry) -> list[tuple[Endpoint[Any], Optional[str]]]:
    results: list[tuple[Endpoint[Any], Optional[str]]] = []
    for endpoint in registry.endpoints:
        try:
            async with endpoint.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            results.append((endpoint, (str(exc).splitlines() or [type(exc).__name__])[0]))
        else:
            results.append((endpoint, None))
    return results


def get_router_group() -> Group:
    """Build the ``replication-router`` command group."""
    console = get_console()

    @group(name="replication-router")
    @version_option(version=__version__, prog_name=__project__)
    @option(
        "--config",
        help="Dotted path to a RoutingConfig (e.g. 'myapp.db:routing_config')",
        required=True,
        type=str,
    )
    @pass_context
    def router_group(ctx: Context, config: str) -> None:
        """Replication router commands."""
        ctx.ensure_object(dict)
        try:
            routing_config = module_loader.import_string(config)
        except (ImportError, ConfigurationError) as e:
            console.print(f"[red]Error loading config: {escape(str(e))}[/]")
            ctx.exit(1)
        if not isinstance(routing_config, RoutingConfig):
            console.print(f"[red]{config!r} is not a RoutingConfig[/]")
            ctx.exit(1)
        ctx.obj["config"] = routing_config

    @router_group.command(name="endpoints", help="List the configured endpoints.")
    @pass_context
    def show_endpoints(ctx: Context) -> None:  # pyright: ignore[reportUnusedFunction]
        """List the configured endpoints."""
        routing_config: RoutingConfig = ctx.obj["config"]
        table = Table("Kind", "Name", "Role", "URL", "Pool size", "Weight")
        kinds = [EndpointKind.PRIMARY] + [EndpointKind.replica(n) for n in range(1, len(routing_config.replicas) + 1)]
        for kind, endpoint in zip(kinds, [routing_config.primary, *routing_config.replicas]):
            pool_size = routing_config.get_engine_kwargs(endpoint).get("pool_size")
            table.add_row(
                str(kind),
                endpoint.name,
                str(getattr(endpoint.role, "value", endpoint.role)),
                _mask(endpoint.connection_string),
                "-" if pool_size is None else str(pool_size),
                str(endpoint.weight),
            )
        console.print(table)

    @router_group.command(name="ping", help="Open a connection to every endpoint and run SELECT 1.")
    @pass_context
    def ping_endpoints(ctx: Context) -> None:  # pyright: ignore[reportUnusedFunction]
        """Check connectivity of every endpoint."""
        routing_config: RoutingConfig = ctx.obj["config"]
        console.rule("[yellow]Pinging endpoints[/]", align="left")
        registry = _build_registry(routing_config)
        try:
            if isinstance(registry, AsyncEndpointRegistry):
                results = asyncio.run(_ping_async(registry))
            else:
                results = _ping_sync(registry)
        finally:
            _close_registry(registry)
        for endpoint, error in results:
            if error is None:
                console.print(f"[green]✓[/] {endpoint.kind} ({endpoint.name})")
            else:
                console.print(f"[red]✗[/] {endpoint.kind} ({endpoint.name}): {escape(error)}")
        if any(error is not None for _, error in results):
            ctx.exit(1)

    @router_group.command(name="route", help="Show where resolutions land for a declared intent.")
    @option("--read-only/--read-write", default=True, help="Intent of the simulated unit of work.")
    @option("--samples", type=IntRange(min=1), default=1000, show_default=True, help="Number of resolutions.")
    @pass_context
    def simulate_routing(ctx: Context, read_only: bool, samples: int) -> None:  # pyright: ignore[reportUnusedFunction]
        """Resolve repeatedly and report the distribution over endpoints."""
        routing_config: RoutingConfig = ctx.obj["config"]
        registry = _build_registry(routing_config)
        resolver = RoutingResolver(get_selector(routing_config.routing_strategy), enabled=routing_config.enabled)
        counts: Counter[EndpointKind] = Counter()
        try:
            with IntentInterceptor().scope(read_only=read_only, name="cli-route"):
                for _ in range(samples):
                    counts[resolver.decide(get_intent(), registry)] += 1
        finally:
            _close_registry(registry)
        table = Table("Kind", "Name", "Resolutions", "Share")
        for endpoint in registry.endpoints:
            count = counts[endpoint.kind]
            table.add_row(str(endpoint.kind), endpoint.name, str(count), f"{count / samples:.1%}")
        console.print(table)

    return router_group
