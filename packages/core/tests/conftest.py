"""Shared fixtures: an in-memory store and scriptable fake collaborators."""

from __future__ import annotations

import json

import pytest

from prhook_core.gh.pull_request import ChangeDetails, ChangedFile
from prhook_core.providers.base import AnalysisResult
from prhook_core.signature import compute_signature
from prhook_store.memory import MemoryStore
from prhook_store.models import Finding

SECRET = "s3cr3t"
HEAD_SHA = "c" * 40


class FakeChangeSource:
    """Records calls; each method can be made to raise via ``fail``."""

    def __init__(self, files=None):
        self.files = files if files is not None else [ChangedFile("src/app.py", "modified", "@@ -1 +1 @@\n-a\n+b")]
        self.fail: dict[str, Exception] = {}
        self.comments: list[tuple] = []
        self.calls: list[str] = []

    def _maybe_fail(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def fetch_change_details(self, owner, repo, number):
        self._maybe_fail("fetch_change_details")
        return ChangeDetails(title="Add feature", description="Adds a feature", head_sha=HEAD_SHA)

    def fetch_changed_files(self, owner, repo, number):
        self._maybe_fail("fetch_changed_files")
        return list(self.files)

    def post_comment(self, owner, repo, number, body):
        self._maybe_fail("post_comment")
        self.comments.append((owner, repo, number, body))


class FakeAnalyzer:
    def __init__(self, result=None, error=None):
        self.result = result or AnalysisResult(
            summary="Solid change with one concern.",
            findings=[
                Finding(severity="warning", title="Missing test", description="No test covers this."),
                Finding(severity="critical", title="Injection", description="Unsafe query.", file="src/app.py"),
            ],
        )
        self.error = error
        self.calls: list[dict] = []

    def analyze(self, title, description, files, repository):
        self.calls.append({"title": title, "description": description, "files": files, "repository": repository})
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def change_source():
    return FakeChangeSource()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


def make_payload(action="opened", number=5, full_name="o/r", sha=HEAD_SHA, title="Add feature") -> dict:
    owner, name = full_name.split("/")
    return {
        "action": action,
        "pull_request": {
            "number": number,
            "title": title,
            "html_url": f"https://github.com/{full_name}/pull/{number}",
            "user": {"login": "octocat"},
            "head": {"sha": sha},
        },
        "repository": {"name": name, "owner": {"login": owner}, "full_name": full_name},
    }


def signed(payload: dict, secret: str = SECRET) -> tuple[bytes, str]:
    body = json.dumps(payload).encode()
    return body, compute_signature(body, secret)


@pytest.fixture
def payload():
    """Factory for pull_request webhook payloads."""
    return make_payload


@pytest.fixture
def sign():
    """Serialise a payload and sign it with the test secret."""
    return signed
