"""Fact log statistics, Parquet export, cursor table."""

import duckdb

from wagerbot.storage.cursor import load_cursor, save_cursor
from wagerbot.storage.export import export_facts_to_parquet
from wagerbot.storage.ledger_log import Fact, LedgerEvent, append_fact, log_stats, stream_facts


def _fact(fact, market_id, ts):
    return LedgerEvent(fact=fact, market_id=market_id, account="a", recorded_at=ts, payload={"n": ts})


def test_append_assigns_increasing_seq(temp_db):
    s1 = append_fact(temp_db, _fact(Fact.MARKET_CREATED, "m1", 10))
    s2 = append_fact(temp_db, _fact(Fact.MARKET_CREATED, "m2", 20))
    assert s2 > s1
    events = list(stream_facts(temp_db, market_id="m2"))
    assert [e.seq for e in events] == [s2]
    assert events[0].payload == {"n": 20}
    assert [e.market_id for e in stream_facts(temp_db, after_seq=s1)] == ["m2"]


def test_log_stats(temp_db):
    append_fact(temp_db, _fact(Fact.MARKET_CREATED, "m1", 10))
    append_fact(temp_db, _fact(Fact.BET_PLACED, "m1", 20))
    append_fact(temp_db, _fact(Fact.BET_PLACED, "m1", 30))
    stats = log_stats(temp_db)
    assert stats["total_facts"] == 3
    assert stats["min_recorded_at"] == 10
    assert stats["max_recorded_at"] == 30
    assert stats["by_fact"][0] == {"fact": "BetPlaced", "count": 2}


def test_export_parquet(temp_db, tmp_path):
    append_fact(temp_db, _fact(Fact.MARKET_CREATED, "m1", 10))
    append_fact(temp_db, _fact(Fact.MARKET_CREATED, "m2", 20))
    out = tmp_path / "out" / "facts.parquet"
    assert export_facts_to_parquet(temp_db, out, market_id="m1") == 1
    rows = duckdb.sql(f"SELECT market_id FROM read_parquet('{out}')").fetchall()
    assert rows == [("m1",)]


def test_cursor_upsert(temp_db):
    assert load_cursor(temp_db, "bot") is None
    save_cursor(temp_db, "bot", "100")
    save_cursor(temp_db, "bot", "200")
    assert load_cursor(temp_db, "bot") == "200"
    assert load_cursor(temp_db, "other") is None
