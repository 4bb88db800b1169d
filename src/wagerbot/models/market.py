"""Market, Bet, MarketInfo - ledger entities. Amounts are integer wei."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Bet(BaseModel):
    """One stake by one account on one side."""

    bettor: str
    amount: int = Field(..., gt=0, description="Stake in wei")
    position: bool = Field(..., description="True = agree, False = disagree")
    timestamp: int  # epoch seconds
    request_id: str | None = None  # originating feed event id


class Market(BaseModel):
    """A prediction open for wagering, keyed by the originating conversation."""

    market_id: str
    prediction_text: str
    creator: str
    deadline: int  # epoch seconds
    created_at: int
    active: bool = True
    resolved: bool = False
    outcome: bool = False  # meaningful only when resolved
    bets: list[Bet] = Field(default_factory=list)
    total_agree: int = 0
    total_disagree: int = 0

    @property
    def total_pool(self) -> int:
        return self.total_agree + self.total_disagree

    def is_expired(self, now: int) -> bool:
        return now >= self.deadline


class MarketInfo(BaseModel):
    """Read view returned by get_market_info."""

    market_id: str
    prediction_text: str
    deadline: int
    resolved: bool
    outcome: bool
    total_agree: int
    total_disagree: int
    bet_count: int


class UserBet(BaseModel):
    amount: int
    position: bool


class StrandedWithdrawal(BaseModel):
    """A withdrawal debited from the ledger whose transfer has not succeeded."""

    withdrawal_seq: int
    account: str
    amount: int
    error: str
    recorded_at: int
