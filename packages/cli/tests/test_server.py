"""Tests for the aiohttp webhook endpoint."""

from __future__ import annotations

import json

import pytest

from prhook_cli.server import create_app
from prhook_core.dispatcher import WebhookDispatcher
from prhook_core.gh.pull_request import ChangeDetails, ChangedFile
from prhook_core.orchestrator import ReviewOrchestrator
from prhook_core.providers.base import AnalysisResult
from prhook_core.signature import compute_signature
from prhook_store.memory import MemoryStore
from prhook_store.models import Finding

SECRET = "s3cr3t"


class StubChangeSource:
    def __init__(self):
        self.comments = []

    def fetch_change_details(self, owner, repo, number):
        return ChangeDetails(title="Add feature", description="", head_sha="c" * 40)

    def fetch_changed_files(self, owner, repo, number):
        return [ChangedFile("src/app.py", "modified", "+x = 1")]

    def post_comment(self, owner, repo, number, body):
        self.comments.append(body)


class StubAnalyzer:
    def analyze(self, title, description, files, repository):
        return AnalysisResult(
            summary="Looks fine.",
            findings=[Finding(severity="info", title="Naming", description="Rename x.", file="src/app.py", line=1)],
        )


def _payload(action="opened", number=5):
    return {
        "action": action,
        "pull_request": {
            "number": number,
            "title": "Add feature",
            "html_url": f"https://github.com/o/r/pull/{number}",
            "user": {"login": "octocat"},
            "head": {"sha": "c" * 40},
        },
        "repository": {"name": "r", "owner": {"login": "o"}, "full_name": "o/r"},
    }


def _headers(body: bytes, secret: str = SECRET, header: str = "X-Hub-Signature-256", event="pull_request"):
    headers = {header: compute_signature(body, secret), "Content-Type": "application/json"}
    if event:
        headers["X-GitHub-Event"] = event
    return headers


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def dispatcher(store):
    orchestrator = ReviewOrchestrator(store, StubChangeSource(), StubAnalyzer())
    return WebhookDispatcher(store, orchestrator, SECRET)


@pytest.fixture
def config():
    return {"host": "0.0.0.0", "port": 5000, "public_url": None, "webhook_secret": SECRET}


@pytest.fixture
async def client(aiohttp_client, dispatcher, store, config):
    return await aiohttp_client(create_app(dispatcher, store, config))


class TestWebhookEndpoint:
    async def test_valid_delivery_accepted(self, client, dispatcher, store):
        body = json.dumps(_payload()).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body))
        assert resp.status == 202

        await dispatcher.drain()
        review = store.get_review_by_natural_key(5, "o/r")
        assert review.status == "completed"

    async def test_signature_checked_against_raw_bytes(self, client, dispatcher, store):
        # Unusual whitespace would not survive a parse/re-serialise cycle.
        body = json.dumps(_payload(), indent=7, separators=(" ,", " :  ")).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body))
        assert resp.status == 202
        await dispatcher.drain()

    async def test_x_signature_header_accepted(self, client, dispatcher):
        body = json.dumps(_payload()).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body, header="X-Signature"))
        assert resp.status == 202
        await dispatcher.drain()

    async def test_invalid_signature_rejected(self, client, dispatcher, store):
        body = json.dumps(_payload()).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body, secret="wrong"))
        assert resp.status == 401
        assert (await resp.json())["error"] == "Invalid signature"
        await dispatcher.drain()
        assert store.list_reviews() == []
        assert store.list_activity() == []

    async def test_missing_signature_rejected(self, client):
        resp = await client.post("/webhook", data=b'{"action": "opened"}')
        assert resp.status == 400

    async def test_missing_secret_is_500(self, aiohttp_client, store, config):
        orchestrator = ReviewOrchestrator(store, StubChangeSource(), StubAnalyzer())
        app = create_app(WebhookDispatcher(store, orchestrator, None), store, config)
        client = await aiohttp_client(app)
        body = json.dumps(_payload()).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body))
        assert resp.status == 500

    async def test_ping_acknowledged(self, client):
        body = json.dumps({"zen": "Design for failure.", "hook_id": 1}).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body, event="ping"))
        assert resp.status == 200

    async def test_closed_action_acknowledged_without_review(self, client, dispatcher, store):
        body = json.dumps(_payload(action="closed")).encode()
        resp = await client.post("/webhook", data=body, headers=_headers(body))
        assert resp.status in (200, 202)
        await dispatcher.drain()
        assert store.list_reviews() == []
        assert [e.event_type for e in store.list_activity()] == ["webhook_received"]


class TestReadEndpoints:
    async def test_reviews_newest_first_camel_case(self, client, dispatcher):
        for number in (1, 2):
            body = json.dumps(_payload(number=number)).encode()
            await client.post("/webhook", data=body, headers=_headers(body))
            await dispatcher.drain()

        resp = await client.get("/reviews")
        assert resp.status == 200
        reviews = await resp.json()
        assert [r["prNumber"] for r in reviews] == [2, 1]
        assert reviews[0]["status"] == "completed"
        assert reviews[0]["headSha"] == "c" * 40
        assert reviews[0]["findings"][0]["title"] == "Naming"

    async def test_activity_limit(self, client, store):
        for i in range(5):
            store.append_activity("webhook_received", f"event {i}", {"prNumber": i})
        resp = await client.get("/activity", params={"limit": "2"})
        entries = await resp.json()
        assert [e["message"] for e in entries] == ["event 4", "event 3"]
        assert entries[0]["eventType"] == "webhook_received"
        assert entries[0]["metadata"] == {"prNumber": 4}

    async def test_activity_default_limit(self, client, store):
        for i in range(60):
            store.append_activity("webhook_received", f"event {i}")
        resp = await client.get("/activity")
        assert len(await resp.json()) == 50

    @pytest.mark.parametrize("limit", ["abc", "-1"])
    async def test_activity_bad_limit(self, client, limit):
        resp = await client.get("/activity", params={"limit": limit})
        assert resp.status == 400

    async def test_status_before_any_event(self, client):
        resp = await client.get("/webhook/status")
        status = await resp.json()
        assert status == {
            "configured": False,
            "secretConfigured": True,
            "eventsToday": 0,
            "url": "http://localhost:5000/webhook",
        }

    async def test_status_after_event(self, client, store):
        entry = store.append_activity("webhook_received", "event")
        resp = await client.get("/webhook/status")
        status = await resp.json()
        assert status["configured"] is True
        assert status["eventsToday"] == 1
        assert status["lastEventTime"] == entry.timestamp.isoformat()

    async def test_health(self, client):
        resp = await client.get("/health")
        assert (await resp.json())["status"] == "healthy"
