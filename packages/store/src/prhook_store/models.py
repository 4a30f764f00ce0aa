"""Review and activity data models.

These are the only shapes persisted by a store. Everything else in prhook
holds review ids and re-reads the store, so the dataclasses here are the
single source of truth for what a review looks like.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

SEVERITIES = ("critical", "warning", "info")
STATUSES = ("pending", "in_progress", "completed", "error")
EVENT_TYPES = ("webhook_received", "pr_opened", "review_completed", "comment_posted")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Finding:
    """A single issue surfaced by analysis. Never patched once written."""

    severity: str  # "critical" | "warning" | "info"
    title: str
    description: str
    file: str | None = None
    line: int | None = None
    suggestion: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Finding:
        return cls(
            severity=data.get("severity", "info"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            file=data.get("file"),
            line=data.get("line"),
            suggestion=data.get("suggestion"),
        )


@dataclass
class ReviewRecord:
    """One tracked review per (repository, pr_number).

    ``reviewed_at`` is set on creation and refreshed whenever a review run
    reaches a terminal state.
    """

    id: str
    pr_number: int
    pr_title: str
    repository: str  # full name, e.g. "owner/repo"
    repository_owner: str
    author: str
    status: str  # "pending" | "in_progress" | "completed" | "error"
    pr_url: str
    head_sha: str
    findings: list[Finding] = field(default_factory=list)
    summary: str | None = None
    reviewed_at: datetime = field(default_factory=utcnow)

    @property
    def natural_key(self) -> tuple[str, int]:
        return (self.repository, self.pr_number)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reviewed_at"] = self.reviewed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ReviewRecord:
        return cls(
            id=data["id"],
            pr_number=data["pr_number"],
            pr_title=data.get("pr_title", ""),
            repository=data["repository"],
            repository_owner=data.get("repository_owner", ""),
            author=data.get("author", ""),
            status=data.get("status", "pending"),
            pr_url=data.get("pr_url", ""),
            head_sha=data.get("head_sha", ""),
            findings=[Finding.from_dict(f) for f in data.get("findings") or []],
            summary=data.get("summary"),
            reviewed_at=datetime.fromisoformat(data["reviewed_at"]),
        )


@dataclass(frozen=True)
class ActivityLogEntry:
    """An append-only audit entry."""

    id: str
    event_type: str
    message: str
    metadata: dict | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "message": self.message,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }
