"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequence for ledger fact ordering
CREATE SEQUENCE IF NOT EXISTS ledger_seq START 1;

-- Ledger fact log (append-only, event sourcing). The market/bet/balance view is rebuilt from it.
CREATE TABLE IF NOT EXISTS ledger_events (
    seq             BIGINT PRIMARY KEY DEFAULT nextval('ledger_seq'),
    fact            VARCHAR NOT NULL,
    market_id       VARCHAR,
    account         VARCHAR,
    recorded_at     BIGINT NOT NULL,
    payload         JSON NOT NULL
);

-- Mention cursor per bot account (last successfully dispatched mention)
CREATE TABLE IF NOT EXISTS ingest_cursor (
    bot_id              VARCHAR PRIMARY KEY,
    last_seen_event_id  VARCHAR,
    updated_at          BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True for inspection commands while the bot holds the write lock."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
