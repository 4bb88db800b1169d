"""Ledger fact append and query - event sourcing log."""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from pydantic import BaseModel

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


class Fact(str, Enum):
    """Kinds of ledger facts. Values are what is stored in ledger_events.fact."""

    MARKET_CREATED = "MarketCreated"
    BET_PLACED = "BetPlaced"
    MARKET_RESOLVED = "MarketResolved"
    WITHDRAWAL = "Withdrawal"
    WITHDRAWAL_STRANDED = "WithdrawalStranded"
    WITHDRAWAL_RECOVERED = "WithdrawalRecovered"


class LedgerEvent(BaseModel):
    """One row of the fact log."""

    seq: int | None = None  # assigned by the log on append
    fact: Fact
    market_id: str | None = None
    account: str | None = None
    recorded_at: int  # epoch seconds (ledger clock)
    payload: dict[str, Any]


def append_fact(conn: DuckDBPyConnection, event: LedgerEvent) -> int:
    """Append a fact and return its sequence number."""
    row = conn.execute(
        """
        INSERT INTO ledger_events (fact, market_id, account, recorded_at, payload)
        VALUES (?, ?, ?, ?, ?)
        RETURNING seq
        """,
        [
            event.fact.value,
            event.market_id,
            event.account,
            event.recorded_at,
            json.dumps(event.payload, sort_keys=True),
        ],
    ).fetchone()
    return int(row[0])


def stream_facts(
    conn: DuckDBPyConnection,
    market_id: str | None = None,
    after_seq: int | None = None,
) -> Iterator[LedgerEvent]:
    """Yield facts in append order, optionally filtered by market or sequence."""
    conditions = []
    params: list[Any] = []
    if market_id:
        conditions.append("market_id = ?")
        params.append(market_id)
    if after_seq is not None:
        conditions.append("seq > ?")
        params.append(after_seq)
    where = " AND ".join(conditions) if conditions else "1=1"
    sql = f"SELECT seq, fact, market_id, account, recorded_at, payload FROM ledger_events WHERE {where} ORDER BY seq ASC"
    for seq, fact, mid, account, recorded_at, payload_json in conn.execute(sql, params).fetchall():
        payload = json.loads(payload_json) if isinstance(payload_json, str) else payload_json
        yield LedgerEvent(
            seq=seq,
            fact=Fact(fact),
            market_id=mid,
            account=account,
            recorded_at=recorded_at,
            payload=payload,
        )


def count_facts(conn: DuckDBPyConnection) -> int:
    return conn.execute("SELECT COUNT(*) FROM ledger_events").fetchone()[0]


def log_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return fact log statistics: total count, seq range, count by fact kind."""
    total = count_facts(conn)
    range_row = conn.execute("SELECT MIN(recorded_at), MAX(recorded_at), MAX(seq) FROM ledger_events").fetchone()
    by_fact = conn.execute(
        "SELECT fact, COUNT(*) AS cnt FROM ledger_events GROUP BY fact ORDER BY cnt DESC"
    ).fetchall()
    return {
        "total_facts": total,
        "min_recorded_at": range_row[0],
        "max_recorded_at": range_row[1],
        "last_seq": range_row[2],
        "by_fact": [{"fact": r[0], "count": r[1]} for r in by_fact],
    }
