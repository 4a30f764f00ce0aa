"""CLI entry point for prhook.

Commands:
  serve     run the webhook server
  reviews   list tracked reviews from the configured store
  activity  show the latest activity log entries
  sign      compute the signature header for a payload file
"""

from __future__ import annotations

import importlib.metadata

import click
from rich.console import Console

from prhook_cli.commands.activity import activity_cmd
from prhook_cli.commands.reviews import reviews_cmd
from prhook_cli.commands.serve import serve_cmd
from prhook_cli.commands.sign import sign_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prhook.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .prhook.db)
      (default)     → MemoryStore (lives as long as the process)
    """
    store_type = config.get("store", "memory")

    if store_type == "sqlite":
        from prhook_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prhook.db"))

    if store_type != "memory":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to the in-memory store.[/yellow]")

    from prhook_store.memory import MemoryStore

    return MemoryStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("prhook"),
    prog_name="prhook",
)
@click.option(
    "--config",
    "config_path",
    default=".prhook.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRHOOK_CONFIG",
)
@click.pass_context
def main(ctx: click.Context, config_path: str):
    """GitHub webhook server that reviews pull requests with AI."""
    from prhook_core.config import load_config

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(serve_cmd)
main.add_command(reviews_cmd)
main.add_command(activity_cmd)
main.add_command(sign_cmd)
