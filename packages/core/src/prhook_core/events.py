"""Typed view of an inbound pull_request webhook payload."""

from __future__ import annotations

from dataclasses import dataclass

from prhook_core.errors import InvalidPayloadError

ACTIONABLE_ACTIONS = ("opened", "synchronize", "reopened")


@dataclass(frozen=True)
class Repository:
    name: str
    owner: str
    full_name: str


@dataclass(frozen=True)
class WebhookEvent:
    action: str
    pr_number: int
    title: str
    author: str
    head_sha: str
    pr_url: str
    repository: Repository

    @property
    def is_actionable(self) -> bool:
        return self.action in ACTIONABLE_ACTIONS

    @classmethod
    def from_payload(cls, payload: dict) -> WebhookEvent:
        """Build an event from a decoded pull_request payload.

        Raises InvalidPayloadError if the PR number or repository is missing
        or mistyped, or if a display field is present but not a string.
        Absent display fields fall back to empty strings.
        """
        if not isinstance(payload, dict):
            raise InvalidPayloadError("Payload is not a JSON object")

        pr = payload.get("pull_request")
        repo = payload.get("repository")
        if not isinstance(pr, dict):
            raise InvalidPayloadError("Payload has no pull_request object")
        if not isinstance(repo, dict):
            raise InvalidPayloadError("Payload has no repository object")

        number = pr.get("number")
        # bool is an int subclass; a PR number is never a bool.
        if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
            raise InvalidPayloadError("pull_request.number is missing or invalid")

        name = repo.get("name")
        owner_obj = repo.get("owner")
        owner = owner_obj.get("login") if isinstance(owner_obj, dict) else None
        if not _nonempty_str(name) or not _nonempty_str(owner):
            raise InvalidPayloadError("repository name or owner is missing or invalid")
        full_name = repo.get("full_name")
        if full_name in (None, ""):
            full_name = f"{owner}/{name}"
        if not _nonempty_str(full_name):
            raise InvalidPayloadError("repository full_name is invalid")

        user = pr.get("user") if isinstance(pr.get("user"), dict) else {}
        head = pr.get("head") if isinstance(pr.get("head"), dict) else {}

        return cls(
            action=_optional_str(payload, "action"),
            pr_number=number,
            title=_optional_str(pr, "title"),
            author=_optional_str(user, "login"),
            head_sha=_optional_str(head, "sha"),
            pr_url=_optional_str(pr, "html_url"),
            repository=Repository(name=name, owner=owner, full_name=full_name),
        )


def _nonempty_str(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _optional_str(obj: dict, key: str) -> str:
    """Return obj[key] as a string, "" when absent; reject any other type."""
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPayloadError(f"{key} must be a string")
    return value
