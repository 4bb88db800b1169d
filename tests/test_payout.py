"""Payout computation: pro rata shares, fee, refunds, conservation."""

import pytest

from wagerbot.models import Bet
from wagerbot.settlement.payout import compute_payouts
from wagerbot.units import to_wei


def _bet(bettor, amount, position):
    return Bet(bettor=bettor, amount=amount, position=position, timestamp=0)


def test_two_bettor_example():
    bets = [_bet("A", to_wei("0.1"), True), _bet("B", to_wei("0.05"), False)]
    result = compute_payouts(bets, True, 200)
    assert result.payouts == {"A": to_wei("0.149")}
    assert result.fee == to_wei("0.001")
    assert result.dust == 0
    assert not result.refunded


def test_no_winning_stake_refunds_everyone():
    bets = [_bet("A", 100, True), _bet("B", 50, True)]
    result = compute_payouts(bets, False, 200)
    assert result.refunded
    assert result.payouts == {"A": 100, "B": 50}
    assert result.fee == 0


def test_no_bets():
    result = compute_payouts([], True, 200)
    assert result.payouts == {}
    assert result.total_paid == 0


def test_truncation_dust_conserves_pool():
    bets = [_bet("A", 1, True), _bet("B", 1, True), _bet("C", 1, True), _bet("D", 10, False)]
    result = compute_payouts(bets, True, 0)
    assert result.payouts == {"A": 4, "B": 4, "C": 4}
    assert result.dust == 1
    assert result.total_paid + result.fee + result.dust == 13


def test_same_bettor_credits_aggregate():
    bets = [_bet("A", 100, True), _bet("A", 100, True), _bet("B", 200, False)]
    result = compute_payouts(bets, True, 0)
    assert result.payouts == {"A": 400}


def test_losers_get_nothing():
    bets = [_bet("A", 100, True), _bet("B", 200, False)]
    result = compute_payouts(bets, False, 1000)
    assert "A" not in result.payouts
    assert result.fee == 10
    assert result.payouts["B"] == 290


@pytest.mark.parametrize("bps", [-1, 10_001])
def test_fee_rate_bounds(bps):
    with pytest.raises(ValueError):
        compute_payouts([], True, bps)
