"""Shared fixtures: temporary DuckDB, controllable ledger clock."""

import tempfile
from pathlib import Path

import pytest

from wagerbot.settlement.ledger import LedgerPolicy, MarketLedger
from wagerbot.storage.db import get_connection, init_schema

T0 = 1_700_000_000


class Clock:
    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(temp_db, clock):
    return MarketLedger.open(temp_db, policy=LedgerPolicy(), clock=clock)
