"""HTTP endpoint for prhook.

Routes:
  POST /webhook          GitHub webhook deliveries
  GET  /reviews          all tracked reviews, newest first
  GET  /activity?limit=N latest activity entries (default 50)
  GET  /webhook/status   delivery statistics for the dashboard
  GET  /health           liveness probe

Responses are JSON with camelCase keys.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiohttp import web

from prhook_core.config import webhook_url

if TYPE_CHECKING:
    from prhook_core.dispatcher import WebhookDispatcher
    from prhook_store.base import BaseStore
    from prhook_store.models import ActivityLogEntry, ReviewRecord

logger = logging.getLogger(__name__)

DISPATCHER_KEY = web.AppKey("dispatcher", object)
STORE_KEY = web.AppKey("store", object)
CONFIG_KEY = web.AppKey("config", dict)

# GitHub sends X-Hub-Signature-256; X-Signature is accepted for other senders.
SIGNATURE_HEADERS = ("X-Hub-Signature-256", "X-Signature")
DEFAULT_ACTIVITY_LIMIT = 50


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(value):
    if isinstance(value, dict):
        return {_camel(k): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


def review_to_json(record: ReviewRecord) -> dict:
    return _camelize(record.to_dict())


def activity_to_json(entry: ActivityLogEntry) -> dict:
    data = entry.to_dict()
    # Metadata is free-form and already camelCase; leave it untouched.
    metadata = data.pop("metadata")
    return {**_camelize(data), "metadata": metadata}


async def handle_webhook(request: web.Request) -> web.Response:
    # Read the raw bytes first: the signature covers them exactly.
    raw_body = await request.read()
    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if request.headers.get(h)), None)
    dispatcher: WebhookDispatcher = request.app[DISPATCHER_KEY]
    try:
        decision = dispatcher.handle(raw_body, signature, request.headers.get("X-GitHub-Event"))
    except Exception:
        logger.exception("Webhook error")
        return web.json_response({"error": "Internal server error"}, status=500)
    return web.json_response(decision.body, status=decision.status)


async def handle_reviews(request: web.Request) -> web.Response:
    store: BaseStore = request.app[STORE_KEY]
    return web.json_response([review_to_json(r) for r in store.list_reviews()])


async def handle_activity(request: web.Request) -> web.Response:
    raw_limit = request.query.get("limit")
    try:
        limit = int(raw_limit) if raw_limit is not None else DEFAULT_ACTIVITY_LIMIT
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)
    if limit < 0:
        return web.json_response({"error": "limit must not be negative"}, status=400)
    store: BaseStore = request.app[STORE_KEY]
    return web.json_response([activity_to_json(e) for e in store.list_activity(limit)])


async def handle_status(request: web.Request) -> web.Response:
    store: BaseStore = request.app[STORE_KEY]
    config = request.app[CONFIG_KEY]
    latest = store.list_activity(1)
    status = {
        # "configured" means a delivery has arrived at least once; whether
        # a secret is set is reported separately.
        "configured": bool(latest),
        "secretConfigured": bool(config.get("webhook_secret")),
        "eventsToday": store.count_activity_today(),
        "url": webhook_url(config),
    }
    if latest:
        status["lastEventTime"] = latest[0].timestamp.isoformat()
    return web.json_response(status)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy", "service": "prhook"})


async def _on_cleanup(app: web.Application) -> None:
    await app[DISPATCHER_KEY].drain()
    app[STORE_KEY].close()


def create_app(dispatcher: WebhookDispatcher, store: BaseStore, config: dict) -> web.Application:
    app = web.Application()
    app[DISPATCHER_KEY] = dispatcher
    app[STORE_KEY] = store
    app[CONFIG_KEY] = config

    app.router.add_post("/webhook", handle_webhook)
    app.router.add_get("/reviews", handle_reviews)
    app.router.add_get("/activity", handle_activity)
    app.router.add_get("/webhook/status", handle_status)
    app.router.add_get("/health", handle_health)

    app.on_cleanup.append(_on_cleanup)
    return app
