"""activity command: show the latest activity log entries."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("activity")
@click.option("--limit", default=50, show_default=True, help="Maximum number of entries to show.")
@click.pass_context
def activity_cmd(ctx, limit: int):
    """Show the activity log, newest first, with today's event count."""
    from prhook_store.memory import MemoryStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, MemoryStore):
        raise click.UsageError("No durable store configured. Add 'store: sqlite' to .prhook.yml.")

    entries = store.list_activity(limit)
    if not entries:
        console.print("[yellow]No activity recorded.[/yellow]")
        return

    table = Table(title="Activity", show_header=True, header_style="bold cyan")
    table.add_column("Time", width=20)
    table.add_column("Event", width=18)
    table.add_column("Message")

    for e in entries:
        table.add_row(e.timestamp.isoformat()[:19].replace("T", " "), e.event_type, e.message)

    console.print(table)
    console.print(f"  Events today: {store.count_activity_today()}")
