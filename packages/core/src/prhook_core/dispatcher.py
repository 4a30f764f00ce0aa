"""Webhook dispatch: authenticate, acknowledge, then work in the background.

The caller gets its answer before any store write or network call happens.
Everything after the acknowledgement runs as a background task, one per
delivery. Tasks for the same pull request are serialised by a per-PR lock, so
lookup-or-create and the review run never interleave for one natural key.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prhook_core.errors import InvalidPayloadError
from prhook_core.events import WebhookEvent
from prhook_core.signature import verify_signature

if TYPE_CHECKING:
    from prhook_core.orchestrator import ReviewOrchestrator
    from prhook_store.base import BaseStore

logger = logging.getLogger(__name__)

PULL_REQUEST_EVENT = "pull_request"


@dataclass(frozen=True)
class AckDecision:
    """The HTTP status and JSON body to answer a delivery with."""

    status: int
    body: dict = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status == 202


class WebhookDispatcher:
    def __init__(self, store: BaseStore, orchestrator: ReviewOrchestrator, secret: str | None):
        self.store = store
        self.orchestrator = orchestrator
        self.secret = secret
        self._tasks: set[asyncio.Task] = set()
        # key -> (lock, number of tasks holding or waiting on it)
        self._locks: dict[tuple[str, int], tuple[asyncio.Lock, int]] = {}

    def handle(self, raw_body: bytes | None, signature: str | None, event_name: str | None = None) -> AckDecision:
        """Decide how to answer a delivery and schedule any follow-up work.

        Must be called from a running event loop. Returns without awaiting
        anything; accepted deliveries are processed by a background task.
        """
        if not signature or not raw_body:
            logger.error("Missing signature or body (signature=%s, body=%s)", bool(signature), bool(raw_body))
            return AckDecision(400, {"error": "Missing signature or body"})

        if not self.secret:
            logger.error("WEBHOOK_SECRET not configured")
            return AckDecision(500, {"error": "Webhook secret not configured"})

        if not verify_signature(raw_body, signature, self.secret):
            logger.error("Invalid webhook signature")
            return AckDecision(401, {"error": "Invalid signature"})

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.error("Webhook body is not valid JSON")
            return AckDecision(400, {"error": "Invalid webhook payload"})

        if event_name and event_name != PULL_REQUEST_EVENT:
            logger.info("Ignoring %s event", event_name)
            return AckDecision(200, {"message": f"Event acknowledged but not processed: {event_name}"})
        if not event_name and isinstance(payload, dict) and "pull_request" not in payload:
            logger.info("Ignoring non-pull_request event")
            return AckDecision(200, {"message": "Event acknowledged but not a pull_request event"})

        try:
            event = WebhookEvent.from_payload(payload)
        except InvalidPayloadError as e:
            logger.error("Invalid webhook payload: %s", e)
            return AckDecision(400, {"error": "Invalid webhook payload"})

        logger.info(
            "Webhook received: %s on PR #%d from %s", event.action, event.pr_number, event.repository.full_name
        )
        self._spawn(self.process(event))
        return AckDecision(202, {"message": "Webhook received, processing started"})

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Error in webhook processing", exc_info=error)

    async def drain(self) -> None:
        """Wait for every background task scheduled so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @contextlib.asynccontextmanager
    async def _pr_lock(self, key: tuple[str, int]):
        """Hold the lock for one pull request; drop it once nobody needs it."""
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    async def process(self, event: WebhookEvent) -> None:
        """Record the delivery and, for actionable actions, run a review."""
        repo = event.repository
        self.store.append_activity(
            "webhook_received",
            f"Webhook received: {event.action} on PR #{event.pr_number}",
            {"action": event.action, "prNumber": event.pr_number, "repository": repo.full_name},
        )

        if not event.is_actionable:
            logger.info("Skipping action: %s", event.action)
            return

        self.store.append_activity(
            "pr_opened",
            f"PR #{event.pr_number} {event.action}: {event.title}",
            {"prNumber": event.pr_number, "repository": repo.full_name, "author": event.author},
        )

        async with self._pr_lock((repo.full_name, event.pr_number)):
            review = self.store.get_review_by_natural_key(event.pr_number, repo.full_name)
            if review is None:
                review = self.store.create_review(
                    pr_number=event.pr_number,
                    pr_title=event.title,
                    repository=repo.full_name,
                    repository_owner=repo.owner,
                    author=event.author,
                    status="pending",
                    pr_url=event.pr_url,
                    head_sha=event.head_sha,
                )
                logger.info("Created review %s for %s#%d", review.id, repo.full_name, event.pr_number)
            else:
                self.store.update_review(
                    review.id, status="in_progress", head_sha=event.head_sha, pr_title=event.title or review.pr_title
                )

            try:
                await self.orchestrator.run(review.id, repo.owner, repo.name, event.pr_number)
            except Exception:
                logger.exception("Error processing PR review for %s#%d", repo.full_name, event.pr_number)
