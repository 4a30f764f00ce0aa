"""serve command: run the webhook server."""

from __future__ import annotations

import logging

import click
from aiohttp import web
from rich.logging import RichHandler


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


@click.command("serve")
@click.option("--host", default=None, help="Interface to bind (default from config: 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Port to listen on (default from config: 5000).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def serve_cmd(ctx, host: str | None, port: int | None, verbose: bool):
    """Receive GitHub pull_request webhooks and review each change.

    Requires WEBHOOK_SECRET and GITHUB_TOKEN, plus the API key of the
    configured model provider (ANTHROPIC_API_KEY or OPENAI_API_KEY).
    """
    from prhook_cli.server import create_app
    from prhook_core.dispatcher import WebhookDispatcher
    from prhook_core.gh.pull_request import GitHubChangeSource
    from prhook_core.orchestrator import ReviewOrchestrator, get_analyzer

    config = ctx.obj["config"]
    store = ctx.obj["store"]
    if host is not None:
        config["host"] = host
    if port is not None:
        config["port"] = port

    if not config.get("webhook_secret"):
        raise click.UsageError("WEBHOOK_SECRET is not set. Deliveries cannot be verified without it.")
    if not config.get("github_token"):
        raise click.UsageError("GITHUB_TOKEN is not set.")
    model = config["model"]
    if model == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY is not set (model: anthropic).")
    if model == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY is not set (model: openai).")

    try:
        analyzer = get_analyzer(config)
    except (ValueError, ImportError) as e:
        raise click.UsageError(str(e))

    _configure_logging(verbose)

    orchestrator = ReviewOrchestrator(
        store,
        GitHubChangeSource(config["github_token"], timeout=config["github_timeout"]),
        analyzer,
        github_timeout=config["github_timeout"],
        analysis_timeout=config["analysis_timeout"],
    )
    dispatcher = WebhookDispatcher(store, orchestrator, config["webhook_secret"])
    app = create_app(dispatcher, store, config)

    logging.getLogger(__name__).info("Listening on %s:%s (model: %s)", config["host"], config["port"], model)
    web.run_app(app, host=config["host"], port=config["port"], print=None)
