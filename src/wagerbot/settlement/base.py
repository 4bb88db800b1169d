"""Settlement backend protocols - the ledger as seen by the command pipeline."""

from __future__ import annotations

from typing import Protocol

from wagerbot.models import Bet, Market, MarketInfo, UserBet
from wagerbot.settlement.payout import PayoutResult


class LedgerProtocol(Protocol):
    """Operations the router and operator commands need from a settlement backend."""

    def create_market(self, market_id: str, prediction_text: str, duration_days: int, creator: str = "") -> Market: ...
    def place_bet(
        self,
        market_id: str,
        position: bool,
        amount: int,
        bettor: str,
        request_id: str | None = None,
    ) -> Bet: ...
    def resolve_market(self, market_id: str, outcome: bool, caller: str) -> PayoutResult: ...
    def get_market_info(self, market_id: str) -> MarketInfo: ...
    def get_user_bets(self, market_id: str, account: str) -> list[UserBet]: ...
    def market_exists(self, market_id: str) -> bool: ...
    def withdraw(self, account: str) -> int: ...
    def now(self) -> int: ...


class TransferProtocol(Protocol):
    """External value transfer (the chain or a payment rail)."""

    async def send(self, account: str, amount: int) -> str:
        """Transfer amount to account and return a transfer reference."""
        ...
