"""SQLiteStore: durable file-based store.

Selected with ``store: sqlite`` in .prhook.yml. Reviews and activity live in
two tables; findings and activity metadata are JSON columns because they are
always read and replaced as a whole. A UNIQUE index on (repository, pr_number)
enforces one review per pull request at the database level.

Schema:
  reviews   one row per tracked pull request
  activity  append-only audit log (seq gives a stable tie-break order)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from dataclasses import asdict
from datetime import datetime, timezone

from prhook_store.base import BaseStore, check_event_type, check_review_fields, start_of_today
from prhook_store.models import ActivityLogEntry, Finding, ReviewRecord, utcnow

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    seq               INTEGER PRIMARY KEY AUTOINCREMENT,
    id                TEXT NOT NULL UNIQUE,
    pr_number         INTEGER NOT NULL,
    pr_title          TEXT,
    repository        TEXT NOT NULL,
    repository_owner  TEXT,
    author            TEXT,
    status            TEXT NOT NULL,
    pr_url            TEXT,
    head_sha          TEXT,
    findings_json     TEXT DEFAULT '[]',
    summary           TEXT,
    reviewed_at       TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_reviews_pr ON reviews (repository, pr_number);

CREATE TABLE IF NOT EXISTS activity (
    seq            INTEGER PRIMARY KEY AUTOINCREMENT,
    id             TEXT NOT NULL UNIQUE,
    event_type     TEXT NOT NULL,
    message        TEXT NOT NULL,
    metadata_json  TEXT,
    timestamp      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_activity_ts ON activity (timestamp);
"""


class SQLiteStore(BaseStore):
    """Stores reviews and activity in a local SQLite database file.

    The path defaults to `.prhook.db` in the current working directory.
    Configure via .prhook.yml: `store_path: /path/to/prhook.db`.
    """

    def __init__(self, db_path: str = ".prhook.db"):
        # The orchestrator may be driven from worker threads, so one
        # connection is shared behind a lock rather than bound to a thread.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def create_review(self, **fields) -> ReviewRecord:
        check_review_fields(fields)
        record = ReviewRecord(
            id=str(uuid.uuid4()),
            pr_number=fields["pr_number"],
            pr_title=fields.get("pr_title", ""),
            repository=fields["repository"],
            repository_owner=fields.get("repository_owner", ""),
            author=fields.get("author", ""),
            status=fields.get("status", "pending"),
            pr_url=fields.get("pr_url", ""),
            head_sha=fields.get("head_sha", ""),
            findings=list(fields.get("findings") or []),
            summary=fields.get("summary"),
            reviewed_at=fields.get("reviewed_at") or utcnow(),
        )
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO reviews
                          (id, pr_number, pr_title, repository, repository_owner, author,
                           status, pr_url, head_sha, findings_json, summary, reviewed_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            record.id,
                            record.pr_number,
                            record.pr_title,
                            record.repository,
                            record.repository_owner,
                            record.author,
                            record.status,
                            record.pr_url,
                            record.head_sha,
                            _findings_json(record.findings),
                            record.summary,
                            _iso(record.reviewed_at),
                        ),
                    )
            except sqlite3.IntegrityError:
                raise ValueError(f"A review already exists for {record.repository}#{record.pr_number}")
        return record

    def get_review(self, review_id: str) -> ReviewRecord | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM reviews WHERE id=?", (review_id,)).fetchone()
        return self._row_to_review(row) if row else None

    def get_review_by_natural_key(self, pr_number: int, repository: str) -> ReviewRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM reviews WHERE repository=? AND pr_number=?",
                (repository, pr_number),
            ).fetchone()
        return self._row_to_review(row) if row else None

    def list_reviews(self) -> list[ReviewRecord]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM reviews ORDER BY reviewed_at DESC, seq DESC").fetchall()
        return [self._row_to_review(r) for r in rows]

    def update_review(self, review_id: str, **fields) -> ReviewRecord | None:
        check_review_fields(fields)
        assignments = []
        params: list = []
        for key, value in fields.items():
            if key == "findings":
                assignments.append("findings_json=?")
                params.append(_findings_json(value or []))
            elif key == "reviewed_at":
                assignments.append("reviewed_at=?")
                params.append(_iso(value))
            else:
                assignments.append(f"{key}=?")
                params.append(value)

        with self._lock:
            # One transaction covers the write and the read-back.
            try:
                with self._conn:
                    if assignments:
                        self._conn.execute(
                            f"UPDATE reviews SET {', '.join(assignments)} WHERE id=?",
                            (*params, review_id),
                        )
                    row = self._conn.execute("SELECT * FROM reviews WHERE id=?", (review_id,)).fetchone()
            except sqlite3.IntegrityError:
                raise ValueError(f"Update of review {review_id} collides with an existing review")
        return self._row_to_review(row) if row else None

    def append_activity(self, event_type: str, message: str, metadata: dict | None = None) -> ActivityLogEntry:
        check_event_type(event_type)
        entry = ActivityLogEntry(id=str(uuid.uuid4()), event_type=event_type, message=message, metadata=metadata)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO activity (id, event_type, message, metadata_json, timestamp) VALUES (?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.event_type,
                    entry.message,
                    json.dumps(metadata) if metadata is not None else None,
                    _iso(entry.timestamp),
                ),
            )
        return entry

    def list_activity(self, limit: int = 50) -> list[ActivityLogEntry]:
        if limit <= 0:
            return []
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM activity ORDER BY timestamp DESC, seq DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_activity(r) for r in rows]

    def count_activity_today(self) -> int:
        since = _iso(start_of_today())
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM activity WHERE timestamp >= ?", (since,)).fetchone()
        return row[0]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> ReviewRecord:
        findings_data = json.loads(row["findings_json"] or "[]")
        return ReviewRecord(
            id=row["id"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"] or "",
            repository=row["repository"],
            repository_owner=row["repository_owner"] or "",
            author=row["author"] or "",
            status=row["status"],
            pr_url=row["pr_url"] or "",
            head_sha=row["head_sha"] or "",
            findings=[Finding.from_dict(f) for f in findings_data],
            summary=row["summary"],
            reviewed_at=datetime.fromisoformat(row["reviewed_at"]),
        )

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=row["id"],
            event_type=row["event_type"],
            message=row["message"],
            metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else None,
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )


def _findings_json(findings: list[Finding]) -> str:
    return json.dumps([asdict(f) for f in findings])


def _iso(value: datetime) -> str:
    # Fixed-width UTC strings so lexical order in SQL matches time order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
