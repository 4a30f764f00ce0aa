"""reviews command: list tracked reviews from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATUS_STYLE = {
    "pending": "dim",
    "in_progress": "cyan",
    "completed": "green",
    "error": "red",
}


@click.command("reviews")
@click.option("--repo", default=None, help="Only show reviews for this repository (owner/name).")
@click.option("--limit", default=20, show_default=True, help="Maximum number of reviews to show.")
@click.pass_context
def reviews_cmd(ctx, repo: str | None, limit: int):
    """Show tracked pull request reviews, most recent first.

    Only useful with a durable store (store: sqlite in .prhook.yml); the
    in-memory store starts empty for every command.
    """
    from prhook_store.memory import MemoryStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, MemoryStore):
        raise click.UsageError("No durable store configured. Add 'store: sqlite' to .prhook.yml.")

    records = store.list_reviews()
    if repo:
        records = [r for r in records if r.repository == repo]
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    table = Table(title="Reviews", show_header=True, header_style="bold cyan")
    table.add_column("Repository", max_width=30)
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("SHA", width=8)
    table.add_column("Status", width=12)
    table.add_column("Findings", justify="right", width=9)
    table.add_column("Reviewed At", width=20)

    for r in records[:limit]:
        style = _STATUS_STYLE.get(r.status, "white")
        table.add_row(
            r.repository,
            f"#{r.pr_number}",
            r.pr_title[:40],
            r.head_sha[:7],
            f"[{style}]{r.status}[/{style}]",
            str(len(r.findings)),
            r.reviewed_at.isoformat()[:19].replace("T", " "),
        )

    console.print(table)
