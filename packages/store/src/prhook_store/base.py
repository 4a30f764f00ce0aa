"""Abstract store interface.

The dispatcher and orchestrator depend on BaseStore, never on a concrete
backend, so the in-memory and SQLite stores are interchangeable. Every
operation is atomic per call: callers never observe a partially applied write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from prhook_store.models import EVENT_TYPES, STATUSES

if TYPE_CHECKING:
    from prhook_store.models import ActivityLogEntry, ReviewRecord

# Fields a caller may pass to create_review / update_review.
REVIEW_FIELDS = frozenset(
    {
        "pr_number",
        "pr_title",
        "repository",
        "repository_owner",
        "author",
        "status",
        "pr_url",
        "head_sha",
        "findings",
        "summary",
        "reviewed_at",
    }
)


def check_review_fields(fields: dict) -> None:
    """Raise ValueError for unknown field names or an invalid status."""
    unknown = set(fields) - REVIEW_FIELDS
    if unknown:
        raise ValueError(f"Unknown review field(s): {', '.join(sorted(unknown))}")
    if "status" in fields and fields["status"] not in STATUSES:
        raise ValueError(f"Invalid review status: {fields['status']!r}")


def check_event_type(event_type: str) -> None:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Invalid activity event type: {event_type!r}")


def start_of_today() -> datetime:
    """Midnight of the current local day, timezone-aware."""
    return datetime.now().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)


class BaseStore(ABC):
    """Keyed storage for review records plus an append-only activity log."""

    @abstractmethod
    def create_review(self, **fields) -> ReviewRecord:
        """Insert a new review with a fresh id, timestamp, no findings and no summary."""

    @abstractmethod
    def get_review(self, review_id: str) -> ReviewRecord | None:
        """Return the review with this id, or None."""

    @abstractmethod
    def get_review_by_natural_key(self, pr_number: int, repository: str) -> ReviewRecord | None:
        """Return the review tracking ``repository`` PR ``pr_number``, or None."""

    @abstractmethod
    def list_reviews(self) -> list[ReviewRecord]:
        """Return every review, most recently reviewed first."""

    @abstractmethod
    def update_review(self, review_id: str, **fields) -> ReviewRecord | None:
        """Merge ``fields`` into the review and return the result.

        An unknown id is a no-op returning None rather than an error, so
        late writes from a review run tolerate records removed by retention.
        """

    @abstractmethod
    def append_activity(self, event_type: str, message: str, metadata: dict | None = None) -> ActivityLogEntry:
        """Append an activity entry. Always succeeds."""

    @abstractmethod
    def list_activity(self, limit: int = 50) -> list[ActivityLogEntry]:
        """Return at most ``limit`` activity entries, newest first."""

    @abstractmethod
    def count_activity_today(self) -> int:
        """Count activity entries recorded since the start of the local day."""

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
