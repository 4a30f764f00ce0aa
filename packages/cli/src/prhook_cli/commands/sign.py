"""sign command: compute a webhook signature for manual testing."""

from __future__ import annotations

import click


@click.command("sign")
@click.argument("payload", type=click.File("rb"))
@click.pass_context
def sign_cmd(ctx, payload):
    """Print the X-Hub-Signature-256 value for PAYLOAD using WEBHOOK_SECRET.

    Example:

    \b
        curl -X POST localhost:5000/webhook -H "X-GitHub-Event: pull_request"
        -H "X-Hub-Signature-256: $(prhook sign event.json)" --data-binary @event.json
    """
    from prhook_core.signature import compute_signature

    secret = ctx.obj["config"].get("webhook_secret")
    if not secret:
        raise click.UsageError("WEBHOOK_SECRET is not set.")
    click.echo(compute_signature(payload.read(), secret))
