"""MemoryStore: the default, process-local store.

Suitable for a single server process: state lives as long as the process
does. A threading.Lock makes each operation atomic even when called from
worker threads, and records are copied on the way in and out so no caller
can mutate stored state behind the store's back.
"""

from __future__ import annotations

import copy
import itertools
import threading
import uuid
from dataclasses import replace

from prhook_store.base import BaseStore, check_event_type, check_review_fields, start_of_today
from prhook_store.models import ActivityLogEntry, ReviewRecord, utcnow


def _detached(record: ReviewRecord) -> ReviewRecord:
    return replace(record, findings=list(record.findings))


def _detached_entry(entry: ActivityLogEntry) -> ActivityLogEntry:
    if entry.metadata is None:
        return entry
    return replace(entry, metadata=copy.deepcopy(entry.metadata))


class MemoryStore(BaseStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._reviews: dict[str, ReviewRecord] = {}
        # (repository, pr_number) -> review id
        self._by_key: dict[tuple[str, int], str] = {}
        # Insertion sequence numbers break timestamp ties when sorting.
        self._review_seq: dict[str, int] = {}
        self._activity: list[tuple[int, ActivityLogEntry]] = []
        self._seq = itertools.count()

    def create_review(self, **fields) -> ReviewRecord:
        check_review_fields(fields)
        fields.setdefault("status", "pending")
        fields["findings"] = list(fields.get("findings") or [])
        fields.setdefault("summary", None)
        fields.setdefault("reviewed_at", utcnow())
        record = ReviewRecord(id=str(uuid.uuid4()), **fields)
        with self._lock:
            if record.natural_key in self._by_key:
                raise ValueError(f"A review already exists for {record.repository}#{record.pr_number}")
            self._reviews[record.id] = record
            self._by_key[record.natural_key] = record.id
            self._review_seq[record.id] = next(self._seq)
            return _detached(record)

    def get_review(self, review_id: str) -> ReviewRecord | None:
        with self._lock:
            record = self._reviews.get(review_id)
            return _detached(record) if record else None

    def get_review_by_natural_key(self, pr_number: int, repository: str) -> ReviewRecord | None:
        with self._lock:
            review_id = self._by_key.get((repository, pr_number))
            return _detached(self._reviews[review_id]) if review_id else None

    def list_reviews(self) -> list[ReviewRecord]:
        with self._lock:
            records = sorted(
                self._reviews.values(),
                key=lambda r: (r.reviewed_at, self._review_seq[r.id]),
                reverse=True,
            )
            return [_detached(r) for r in records]

    def update_review(self, review_id: str, **fields) -> ReviewRecord | None:
        check_review_fields(fields)
        if "findings" in fields:
            fields["findings"] = list(fields["findings"] or [])
        with self._lock:
            current = self._reviews.get(review_id)
            if current is None:
                return None
            updated = replace(current, **fields)
            if updated.natural_key != current.natural_key:
                if updated.natural_key in self._by_key:
                    raise ValueError(f"A review already exists for {updated.repository}#{updated.pr_number}")
                del self._by_key[current.natural_key]
                self._by_key[updated.natural_key] = review_id
            self._reviews[review_id] = updated
            return _detached(updated)

    def append_activity(self, event_type: str, message: str, metadata: dict | None = None) -> ActivityLogEntry:
        check_event_type(event_type)
        entry = ActivityLogEntry(
            id=str(uuid.uuid4()),
            event_type=event_type,
            message=message,
            metadata=copy.deepcopy(metadata) if metadata is not None else None,
        )
        with self._lock:
            self._activity.append((next(self._seq), entry))
        return _detached_entry(entry)

    def list_activity(self, limit: int = 50) -> list[ActivityLogEntry]:
        if limit <= 0:
            return []
        with self._lock:
            ordered = sorted(self._activity, key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [_detached_entry(entry) for _, entry in ordered[:limit]]

    def count_activity_today(self) -> int:
        since = start_of_today()
        with self._lock:
            return sum(1 for _, entry in self._activity if entry.timestamp >= since)
