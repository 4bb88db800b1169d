"""Proportional, fee-adjusted payout computation for a resolved market."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

BPS_DENOMINATOR = 10_000


class Stake(Protocol):
    @property
    def bettor(self) -> str: ...
    @property
    def amount(self) -> int: ...
    @property
    def position(self) -> bool: ...


@dataclass(frozen=True)
class PayoutResult:
    """Credits produced by one resolution. Amounts are integer wei."""

    payouts: dict[str, int] = field(default_factory=dict)  # bettor -> total credit
    fee: int = 0
    dust: int = 0  # truncation remainder, left unassigned
    winning_pool: int = 0
    losing_pool: int = 0
    refunded: bool = False

    @property
    def total_paid(self) -> int:
        return sum(self.payouts.values())


def compute_payouts(bets: Iterable[Stake], outcome: bool, fee_rate_bps: int) -> PayoutResult:
    """
    Split the pool of a resolved market.
    No winning stake: every bet is refunded in full and no fee is taken.
    Otherwise the fee is cut from the losing pool and the rest is shared by winning
    bets pro rata to stake, truncating per bet. Sum(payouts) + fee + dust == pool.
    """
    if not 0 <= fee_rate_bps <= BPS_DENOMINATOR:
        raise ValueError(f"fee_rate_bps out of range: {fee_rate_bps}")
    bets = list(bets)
    winning_pool = sum(b.amount for b in bets if b.position == outcome)
    losing_pool = sum(b.amount for b in bets if b.position != outcome)

    payouts: dict[str, int] = {}
    if winning_pool == 0:
        for b in bets:
            payouts[b.bettor] = payouts.get(b.bettor, 0) + b.amount
        return PayoutResult(
            payouts=payouts,
            winning_pool=0,
            losing_pool=losing_pool,
            refunded=True,
        )

    fee = losing_pool * fee_rate_bps // BPS_DENOMINATOR
    distributable = losing_pool - fee
    shared = 0
    for b in bets:
        if b.position != outcome:
            continue
        share = b.amount * distributable // winning_pool
        shared += share
        payouts[b.bettor] = payouts.get(b.bettor, 0) + b.amount + share
    return PayoutResult(
        payouts=payouts,
        fee=fee,
        dust=distributable - shared,
        winning_pool=winning_pool,
        losing_pool=losing_pool,
    )
