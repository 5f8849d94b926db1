"""
Redis Writer CLI.

Operator commands: run the service, manage subscriber filter records and
inspect what a subscriber would receive.
"""

import asyncio

import typer
from redis.asyncio import Redis
from redis.exceptions import RedisError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shared.config.settings import Settings, get_settings
from shared.infrastructure.redis.constants import (
    KEY_EVENT_INDEX,
    KEY_SUBSCRIPTIONS,
    get_event_key,
    get_subscriber_list_key,
)
from redis_writer.components.connection.errors import SubscriptionDecodeError
from redis_writer.components.events.types import FORWARDED_EVENT_TYPES
from redis_writer.components.subscriptions.registry import SubscriptionInfo

app = typer.Typer(
    name="redis-writer",
    help="Redis Writer: forwards monitoring events into Redis",
    add_completion=False,
)
console = Console()


def create_client(settings: Settings) -> Redis:
    """Async Redis client for one-off operator commands."""
    return Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        unix_socket_path=settings.redis_path or None,
        password=settings.redis_password or None,
        socket_timeout=settings.redis_socket_timeout,
        decode_responses=True,
    )


def _run_with_client(operation):
    """Run an async operation against a fresh client, mapping Redis errors to exit 1."""

    async def _main():
        client = create_client(get_settings())
        try:
            return await operation(client)
        finally:
            await client.aclose()

    try:
        return asyncio.run(_main())
    except RedisError as e:
        console.print(f"[red]✗ Redis error: {e}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Service
# =============================================================================

@app.command()
def run(
    host: str = typer.Option(None, help="Bind address (default: HTTP_HOST)"),
    port: int = typer.Option(None, help="Bind port (default: HTTP_PORT)"),
):
    """Run the writer with its health and metrics endpoints."""
    import uvicorn

    settings = get_settings()
    errors = settings.validate_store_target()
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(1)

    uvicorn.run(
        "redis_writer.main:app",
        host=host or settings.http_host,
        port=port or settings.http_port,
        log_config=None,
    )


# =============================================================================
# Subscription Commands
# =============================================================================

@app.command()
def subscribe(
    subscriber_id: str = typer.Argument(..., help="Subscriber id"),
    types: list[str] = typer.Option(..., "--type", "-t", help="Event type to receive (repeatable)"),
):
    """Create or replace a subscriber's event-type filter."""
    unknown = sorted(set(types) - FORWARDED_EVENT_TYPES)
    if unknown:
        console.print(f"[red]✗ Unknown event types: {', '.join(unknown)}[/red]")
        console.print(f"[dim]Known types: {', '.join(sorted(FORWARDED_EVENT_TYPES))}[/dim]")
        raise typer.Exit(1)

    info = SubscriptionInfo(subscriber_id=subscriber_id, event_types=frozenset(types))

    async def _subscribe(client: Redis):
        await client.hset(KEY_SUBSCRIPTIONS, subscriber_id, info.to_record())

    _run_with_client(_subscribe)
    console.print(f"[green]✓ Subscribed '{subscriber_id}' to {', '.join(sorted(info.event_types))}[/green]")


@app.command()
def unsubscribe(
    subscriber_id: str = typer.Argument(..., help="Subscriber id"),
):
    """Remove a subscriber's filter record."""

    async def _unsubscribe(client: Redis):
        return await client.hdel(KEY_SUBSCRIPTIONS, subscriber_id)

    removed = _run_with_client(_unsubscribe)
    if not removed:
        console.print(f"[yellow]No subscription for '{subscriber_id}'[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Unsubscribed '{subscriber_id}'[/green]")


@app.command()
def subscriptions():
    """Show the subscription table as the writer would load it."""

    async def _load(client: Redis):
        records = await client.hgetall(KEY_SUBSCRIPTIONS)
        index = await client.get(KEY_EVENT_INDEX)
        return records, index

    records, index = _run_with_client(_load)

    table = Table(title="Subscriptions")
    table.add_column("Subscriber", style="cyan")
    table.add_column("Event Types")
    table.add_column("Status")

    bad = 0
    for subscriber_id in sorted(records):
        try:
            info = SubscriptionInfo.from_record(subscriber_id, records[subscriber_id])
        except SubscriptionDecodeError as e:
            bad += 1
            table.add_row(subscriber_id, escape(str(records[subscriber_id])), f"[red]invalid: {escape(str(e))}[/red]")
            continue
        table.add_row(subscriber_id, ", ".join(sorted(info.event_types)), "[green]ok[/green]")

    console.print(table)
    console.print(f"Event index: {index or 0}")
    if bad:
        console.print(f"[yellow]{bad} record(s) will be skipped by the writer[/yellow]")


@app.command()
def tail(
    subscriber_id: str = typer.Argument(..., help="Subscriber id"),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Max events to pop"),
):
    """Pop up to N events from a subscriber's list, oldest first."""

    async def _tail(client: Redis):
        entries = []
        for _ in range(count):
            # LPUSH adds at the head, so the oldest index is at the tail
            index = await client.rpop(get_subscriber_list_key(subscriber_id))
            if index is None:
                break
            entries.append((index, await client.get(get_event_key(index))))
        return entries

    entries = _run_with_client(_tail)
    if not entries:
        console.print(f"[yellow]No pending events for '{subscriber_id}'[/yellow]")
        return

    for index, body in entries:
        if body is None:
            console.print(f"[dim]#{index} (expired)[/dim]")
        else:
            console.print(f"[cyan]#{index}[/cyan] {escape(body)}")


if __name__ == "__main__":
    app()
