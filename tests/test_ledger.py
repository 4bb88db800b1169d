"""Market ledger lifecycle, invariants and replay."""

import pytest

from wagerbot.errors import (
    AlreadyExists,
    AlreadyResolved,
    AmountOutOfRange,
    InvalidDuration,
    InvalidPrediction,
    LedgerCallFailure,
    MarketExpired,
    MarketResolved,
    NoFunds,
    NotFound,
    NotYetExpired,
    Unauthorized,
)
from wagerbot.settlement.ledger import SECONDS_PER_DAY, LedgerPolicy, MarketLedger
from wagerbot.storage.ledger_log import Fact, count_facts, stream_facts
from wagerbot.units import to_wei


def test_create_then_info(ledger, clock):
    start = clock.now
    ledger.create_market("m1", "ETH above 5k by June", 7, creator="alice")
    info = ledger.get_market_info("m1")
    assert info.market_id == "m1"
    assert info.prediction_text == "ETH above 5k by June"
    assert info.deadline == start + 7 * SECONDS_PER_DAY
    assert not info.resolved
    assert info.total_agree == info.total_disagree == 0
    assert info.bet_count == 0


def test_create_rejects_bad_input(ledger):
    ledger.create_market("m1", "prediction", 7)
    with pytest.raises(AlreadyExists):
        ledger.create_market("m1", "prediction", 7)
    with pytest.raises(InvalidPrediction):
        ledger.create_market("m2", "   ", 7)
    with pytest.raises(InvalidDuration):
        ledger.create_market("m2", "prediction", 0)
    with pytest.raises(InvalidDuration):
        ledger.create_market("m2", "prediction", 366)
    assert not ledger.market_exists("m2")


def test_totals_match_bets(ledger):
    ledger.create_market("m1", "prediction", 7)
    stakes = [("a", "0.1", True), ("b", "0.2", False), ("a", "0.3", True), ("c", "1", False)]
    for bettor, amount, position in stakes:
        ledger.place_bet("m1", position, to_wei(amount), bettor)
    info = ledger.get_market_info("m1")
    assert info.total_agree == to_wei("0.4")
    assert info.total_disagree == to_wei("1.2")
    assert info.bet_count == 4
    assert [b.amount for b in ledger.get_user_bets("m1", "a")] == [to_wei("0.1"), to_wei("0.3")]
    assert ledger.check_invariants() == []


def test_bet_rejections(ledger, clock):
    with pytest.raises(NotFound):
        ledger.place_bet("nope", True, to_wei("1"), "a")
    ledger.create_market("m1", "prediction", 1)
    with pytest.raises(AmountOutOfRange):
        ledger.place_bet("m1", True, to_wei("20"), "a")
    with pytest.raises(AmountOutOfRange):
        ledger.place_bet("m1", True, to_wei("0.0001"), "a")
    clock.advance(SECONDS_PER_DAY)
    with pytest.raises(MarketExpired):
        ledger.place_bet("m1", True, to_wei("1"), "a")
    ledger.resolve_market("m1", True, caller="operator")
    with pytest.raises(MarketResolved):
        ledger.place_bet("m1", True, to_wei("1"), "a")


def test_get_user_bets_unknown_market(ledger):
    with pytest.raises(NotFound):
        ledger.get_user_bets("nope", "a")


def test_duplicate_request_id_is_idempotent(ledger, temp_db):
    ledger.create_market("m1", "prediction", 7)
    first = ledger.place_bet("m1", True, to_wei("0.1"), "a", request_id="tweet-1")
    before = count_facts(temp_db)
    again = ledger.place_bet("m1", True, to_wei("0.1"), "a", request_id="tweet-1")
    assert again == first
    assert count_facts(temp_db) == before
    assert ledger.get_market_info("m1").bet_count == 1


def test_resolve_example_and_withdraw(ledger, clock):
    ledger.create_market("m1", "prediction", 7)
    ledger.place_bet("m1", True, to_wei("0.1"), "A")
    ledger.place_bet("m1", False, to_wei("0.05"), "B")
    with pytest.raises(NotYetExpired):
        ledger.resolve_market("m1", True, caller="operator")
    clock.advance(7 * SECONDS_PER_DAY)
    result = ledger.resolve_market("m1", True, caller="operator")
    assert result.fee == to_wei("0.001")
    assert ledger.pending_withdrawal("A") == to_wei("0.149")
    assert ledger.pending_withdrawal("B") == 0
    assert ledger.pending_withdrawal("platform") == to_wei("0.001")
    info = ledger.get_market_info("m1")
    assert info.resolved and info.outcome is True

    assert ledger.withdraw("A") == to_wei("0.149")
    assert ledger.pending_withdrawal("A") == 0
    with pytest.raises(NoFunds):
        ledger.withdraw("A")
    with pytest.raises(NoFunds):
        ledger.withdraw("B")


def test_resolve_twice_changes_nothing(ledger, clock, temp_db):
    ledger.create_market("m1", "prediction", 1)
    ledger.place_bet("m1", True, to_wei("1"), "A")
    clock.advance(SECONDS_PER_DAY)
    ledger.resolve_market("m1", False, caller="operator")
    snapshot = ledger.snapshot()
    facts = count_facts(temp_db)
    with pytest.raises(AlreadyResolved):
        ledger.resolve_market("m1", True, caller="operator")
    assert ledger.snapshot() == snapshot
    assert count_facts(temp_db) == facts
    # no winning stake: refunded
    assert ledger.pending_withdrawal("A") == to_wei("1")


def test_only_resolver_may_resolve(ledger, clock):
    ledger.create_market("m1", "prediction", 1)
    clock.advance(SECONDS_PER_DAY)
    with pytest.raises(Unauthorized):
        ledger.resolve_market("m1", True, caller="mallory")
    assert not ledger.get_market_info("m1").resolved


def test_resolve_unknown_market(ledger):
    with pytest.raises(NotFound):
        ledger.resolve_market("nope", True, caller="operator")


def test_replay_rebuilds_same_state(ledger, clock, temp_db):
    ledger.create_market("m1", "prediction one", 2)
    ledger.create_market("m2", "prediction two", 30)
    ledger.place_bet("m1", True, to_wei("0.5"), "a", request_id="1")
    ledger.place_bet("m1", False, to_wei("0.25"), "b", request_id="2")
    ledger.place_bet("m2", True, to_wei("3"), "c", request_id="3")
    clock.advance(2 * SECONDS_PER_DAY)
    ledger.resolve_market("m1", False, caller="operator")
    ledger.withdraw("b")

    reopened = MarketLedger.open(temp_db, policy=LedgerPolicy(), clock=clock)
    assert reopened.snapshot() == ledger.snapshot()
    assert reopened.check_invariants() == []
    # request ids survive replay
    reopened.place_bet("m2", True, to_wei("3"), "c", request_id="3")
    assert reopened.get_market_info("m2").bet_count == 1


def test_fact_log_order(ledger, clock, temp_db):
    ledger.create_market("m1", "prediction", 1)
    ledger.place_bet("m1", True, to_wei("1"), "a")
    clock.advance(SECONDS_PER_DAY)
    ledger.resolve_market("m1", True, caller="operator")
    facts = [e.fact for e in stream_facts(temp_db)]
    assert facts == [Fact.MARKET_CREATED, Fact.BET_PLACED, Fact.MARKET_RESOLVED]
    assert ledger.last_seq == max(e.seq for e in stream_facts(temp_db))


def test_subscribers_see_committed_facts(ledger):
    seen = []
    ledger.subscribe(lambda event: seen.append(event.fact))
    ledger.create_market("m1", "prediction", 1)
    assert seen == [Fact.MARKET_CREATED]


def test_rejected_write_leaves_view_untouched(ledger, temp_db):
    temp_db.execute("DROP TABLE ledger_events")
    with pytest.raises(LedgerCallFailure):
        ledger.create_market("m1", "prediction", 1)
    assert not ledger.market_exists("m1")


def test_custom_policy_bounds(temp_db, clock):
    policy = LedgerPolicy(min_bet=to_wei("1"), max_bet=to_wei("2"), fee_rate_bps=0, resolver_account="judge")
    ledger = MarketLedger.open(temp_db, policy=policy, clock=clock)
    ledger.create_market("m1", "prediction", 1)
    with pytest.raises(AmountOutOfRange):
        ledger.place_bet("m1", True, to_wei("0.5"), "a")
    ledger.place_bet("m1", True, to_wei("1"), "a")
    ledger.place_bet("m1", False, to_wei("1"), "b")
    clock.advance(SECONDS_PER_DAY)
    ledger.resolve_market("m1", True, caller="judge")
    assert ledger.pending_withdrawal("a") == to_wei("2")
