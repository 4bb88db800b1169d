"""Mention cursor persistence (at-least-once resumption point)."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def load_cursor(conn: DuckDBPyConnection, bot_id: str) -> str | None:
    row = conn.execute(
        "SELECT last_seen_event_id FROM ingest_cursor WHERE bot_id = ?",
        [bot_id],
    ).fetchone()
    return row[0] if row else None


def save_cursor(conn: DuckDBPyConnection, bot_id: str, event_id: str) -> None:
    """Insert or replace the cursor for bot_id."""
    conn.execute(
        """
        INSERT INTO ingest_cursor (bot_id, last_seen_event_id, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT (bot_id) DO UPDATE SET
            last_seen_event_id = excluded.last_seen_event_id,
            updated_at = excluded.updated_at
        """,
        [bot_id, event_id, int(time.time() * 1000)],
    )
