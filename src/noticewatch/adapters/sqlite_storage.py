"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from noticewatch.core.models import AnnouncedRecord


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - notices: append-only log of announced notice links
        """

        with self._connect() as conn:
            # Existence of a row for a link is the dedup predicate.
            # Fields:
            # - link: notice URL, the only identity of a notice (PRIMARY KEY)
            # - title: title at the time of the announcement
            # - date: the date string as scraped
            # - announced_at: UTC timestamp of the confirmed send
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notices (
                    link TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    date TEXT NOT NULL,
                    announced_at TIMESTAMP NOT NULL
                )
                """
            )

    def has_been_announced(self, link: str) -> bool:
        """Check if a notice link has already been recorded."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM notices WHERE link = ?",
                (link,),
            ).fetchone()
        return row is not None

    def record_announced(self, record: AnnouncedRecord) -> None:
        """Insert the record once; an existing row for the link is never updated."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO notices (link, title, date, announced_at)
                VALUES (?, ?, ?, ?)
                """,
                (record.link, record.title, record.date, record.announced_at.isoformat()),
            )

    def get_announced(self, link: str) -> Optional[dict]:
        """Return the stored row for a link, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT link, title, date, announced_at FROM notices WHERE link = ?",
                (link,),
            ).fetchone()
        return dict(row) if row else None

    def count_announced(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM notices").fetchone()
        return int(row["total"])
