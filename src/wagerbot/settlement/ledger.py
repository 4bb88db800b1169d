"""Market ledger - authoritative market/bet/balance state, event-sourced from the fact log."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable

import duckdb
import structlog
from pydantic import BaseModel, Field

from wagerbot.errors import (
    AlreadyExists,
    AlreadyResolved,
    AmountOutOfRange,
    Inactive,
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
from wagerbot.models import Bet, Market, MarketInfo, StrandedWithdrawal, UserBet
from wagerbot.settlement.payout import PayoutResult, compute_payouts
from wagerbot.storage.ledger_log import Fact, LedgerEvent, append_fact, stream_facts
from wagerbot.units import to_wei

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86_400
MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365


class LedgerPolicy(BaseModel):
    """Settlement parameters, fixed for the process lifetime."""

    model_config = {"frozen": True}

    min_bet: int = Field(default_factory=lambda: to_wei("0.001"), gt=0)
    max_bet: int = Field(default_factory=lambda: to_wei("10"), gt=0)
    fee_rate_bps: int = Field(200, ge=0, le=10_000)
    platform_account: str = "platform"
    resolver_account: str = "operator"


class LedgerView:
    """Materialized state. Only ever changed by apply(), one fact at a time."""

    def __init__(self) -> None:
        self.markets: dict[str, Market] = {}
        self.pending: dict[str, int] = {}
        self.request_ids: dict[str, tuple[str, int]] = {}  # request_id -> (market_id, bet index)
        self.resolutions: dict[str, dict[str, Any]] = {}
        self.stranded: dict[int, StrandedWithdrawal] = {}
        self.last_seq = 0

    def apply(self, event: LedgerEvent) -> None:
        p = event.payload
        if event.fact is Fact.MARKET_CREATED:
            self.markets[event.market_id] = Market(
                market_id=event.market_id,
                prediction_text=p["prediction_text"],
                creator=p["creator"],
                deadline=p["deadline"],
                created_at=event.recorded_at,
            )
        elif event.fact is Fact.BET_PLACED:
            market = self.markets[event.market_id]
            bet = Bet(**p)
            market.bets.append(bet)
            if bet.position:
                market.total_agree += bet.amount
            else:
                market.total_disagree += bet.amount
            if bet.request_id:
                self.request_ids[bet.request_id] = (market.market_id, len(market.bets) - 1)
        elif event.fact is Fact.MARKET_RESOLVED:
            market = self.markets[event.market_id]
            market.resolved = True
            market.outcome = p["outcome"]
            self.resolutions[market.market_id] = p
            for account, amount in p["payouts"].items():
                self._credit(account, amount)
            if p["fee"]:
                self._credit(p["platform_account"], p["fee"])
        elif event.fact is Fact.WITHDRAWAL:
            self.pending[event.account] = self.pending.get(event.account, 0) - p["amount"]
        elif event.fact is Fact.WITHDRAWAL_STRANDED:
            self.stranded[p["withdrawal_seq"]] = StrandedWithdrawal(
                withdrawal_seq=p["withdrawal_seq"],
                account=event.account,
                amount=p["amount"],
                error=p["error"],
                recorded_at=event.recorded_at,
            )
        elif event.fact is Fact.WITHDRAWAL_RECOVERED:
            self.stranded.pop(p["withdrawal_seq"], None)
        if event.seq is not None:
            self.last_seq = event.seq

    def _credit(self, account: str, amount: int) -> None:
        self.pending[account] = self.pending.get(account, 0) + amount


class MarketLedger:
    """
    Create/bet/resolve/withdraw with lifecycle invariants enforced.
    Each mutation validates against the view, appends one fact, then applies it, so
    a rejected log write leaves the view untouched. Reopening replays the log.
    """

    def __init__(
        self,
        conn: DuckDBPyConnection,
        policy: LedgerPolicy | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._conn = conn
        self.policy = policy or LedgerPolicy()
        self._clock = clock or (lambda: int(time.time()))
        self._view = LedgerView()
        self._listeners: list[Callable[[LedgerEvent], None]] = []

    @classmethod
    def open(
        cls,
        conn: DuckDBPyConnection,
        policy: LedgerPolicy | None = None,
        clock: Callable[[], int] | None = None,
    ) -> MarketLedger:
        """Build a ledger and rebuild its view from the fact log."""
        ledger = cls(conn, policy=policy, clock=clock)
        ledger.replay()
        return ledger

    def replay(self) -> int:
        """Rebuild the view from scratch. Returns the number of facts applied."""
        view = LedgerView()
        count = 0
        for event in stream_facts(self._conn):
            view.apply(event)
            count += 1
        self._view = view
        log.info("ledger_replayed", facts=count, markets=len(view.markets))
        return count

    def subscribe(self, listener: Callable[[LedgerEvent], None]) -> None:
        """Call listener with every fact committed from now on."""
        self._listeners.append(listener)

    def now(self) -> int:
        return self._clock()

    def _commit(self, event: LedgerEvent) -> LedgerEvent:
        try:
            seq = append_fact(self._conn, event)
        except duckdb.Error as e:
            log.error("ledger_append_failed", fact=event.fact.value, market_id=event.market_id, error=str(e))
            raise LedgerCallFailure("ledger write rejected", fact=event.fact.value) from e
        event = event.model_copy(update={"seq": seq})
        self._view.apply(event)
        log.info("ledger_fact", fact=event.fact.value, seq=seq, market_id=event.market_id, account=event.account)
        for listener in self._listeners:
            listener(event)
        return event

    def _market(self, market_id: str) -> Market:
        market = self._view.markets.get(market_id)
        if market is None:
            raise NotFound(f"market {market_id} not found", market_id=market_id)
        return market

    # Mutations

    def create_market(
        self,
        market_id: str,
        prediction_text: str,
        duration_days: int,
        creator: str = "",
    ) -> Market:
        if market_id in self._view.markets:
            raise AlreadyExists(f"market {market_id} already exists", market_id=market_id)
        text = (prediction_text or "").strip()
        if not text:
            raise InvalidPrediction("prediction text is empty", market_id=market_id)
        if isinstance(duration_days, bool) or not MIN_DURATION_DAYS <= duration_days <= MAX_DURATION_DAYS:
            raise InvalidDuration(
                f"duration must be {MIN_DURATION_DAYS}-{MAX_DURATION_DAYS} days",
                duration_days=duration_days,
            )
        now = self.now()
        self._commit(
            LedgerEvent(
                fact=Fact.MARKET_CREATED,
                market_id=market_id,
                account=creator or None,
                recorded_at=now,
                payload={
                    "prediction_text": text,
                    "creator": creator,
                    "deadline": now + duration_days * SECONDS_PER_DAY,
                },
            )
        )
        return self.get_market(market_id)

    def place_bet(
        self,
        market_id: str,
        position: bool,
        amount: int,
        bettor: str,
        request_id: str | None = None,
    ) -> Bet:
        """Record a stake. A repeated request_id returns the original bet and writes nothing."""
        if request_id and request_id in self._view.request_ids:
            mid, idx = self._view.request_ids[request_id]
            log.info("bet_duplicate_request", request_id=request_id, market_id=mid)
            return self._view.markets[mid].bets[idx].model_copy()
        market = self._market(market_id)
        if not market.active:
            raise Inactive(f"market {market_id} is not active", market_id=market_id)
        if market.resolved:
            raise MarketResolved(f"market {market_id} is resolved", market_id=market_id)
        now = self.now()
        if market.is_expired(now):
            raise MarketExpired(f"market {market_id} has expired", market_id=market_id)
        if amount < self.policy.min_bet or amount > self.policy.max_bet:
            raise AmountOutOfRange(
                "bet amount out of range",
                amount=amount,
                min_bet=self.policy.min_bet,
                max_bet=self.policy.max_bet,
            )
        bet = Bet(bettor=bettor, amount=amount, position=position, timestamp=now, request_id=request_id)
        self._commit(
            LedgerEvent(
                fact=Fact.BET_PLACED,
                market_id=market_id,
                account=bettor,
                recorded_at=now,
                payload=bet.model_dump(),
            )
        )
        return bet

    def resolve_market(self, market_id: str, outcome: bool, caller: str) -> PayoutResult:
        """Fix the outcome and credit payouts. Only the resolver account may call this."""
        if caller != self.policy.resolver_account:
            raise Unauthorized(f"{caller} may not resolve markets", caller=caller)
        market = self._market(market_id)
        if market.resolved:
            raise AlreadyResolved(f"market {market_id} already resolved", market_id=market_id)
        now = self.now()
        if not market.is_expired(now):
            raise NotYetExpired(
                f"market {market_id} open until {market.deadline}",
                market_id=market_id,
                deadline=market.deadline,
            )
        result = compute_payouts(market.bets, outcome, self.policy.fee_rate_bps)
        self._commit(
            LedgerEvent(
                fact=Fact.MARKET_RESOLVED,
                market_id=market_id,
                account=caller,
                recorded_at=now,
                payload={
                    "outcome": outcome,
                    "payouts": result.payouts,
                    "fee": result.fee,
                    "dust": result.dust,
                    "refunded": result.refunded,
                    "platform_account": self.policy.platform_account,
                    "fee_rate_bps": self.policy.fee_rate_bps,
                },
            )
        )
        if result.dust:
            log.warning("payout_dust_unassigned", market_id=market_id, dust=result.dust)
        return result

    def debit(self, account: str) -> LedgerEvent:
        """Zero the pending balance of account and return the Withdrawal fact."""
        balance = self._view.pending.get(account, 0)
        if balance <= 0:
            raise NoFunds(f"no pending balance for {account}", account=account)
        return self._commit(
            LedgerEvent(
                fact=Fact.WITHDRAWAL,
                account=account,
                recorded_at=self.now(),
                payload={"amount": balance},
            )
        )

    def withdraw(self, account: str) -> int:
        """Debit the full pending balance; the caller owns the value transfer."""
        return self.debit(account).payload["amount"]

    def record_stranded(self, withdrawal_seq: int, account: str, amount: int, error: str) -> None:
        self._commit(
            LedgerEvent(
                fact=Fact.WITHDRAWAL_STRANDED,
                account=account,
                recorded_at=self.now(),
                payload={"withdrawal_seq": withdrawal_seq, "amount": amount, "error": error},
            )
        )

    def record_recovered(self, withdrawal_seq: int) -> None:
        stranded = self._view.stranded.get(withdrawal_seq)
        if stranded is None:
            raise NotFound(f"no stranded withdrawal {withdrawal_seq}", withdrawal_seq=withdrawal_seq)
        self._commit(
            LedgerEvent(
                fact=Fact.WITHDRAWAL_RECOVERED,
                account=stranded.account,
                recorded_at=self.now(),
                payload={"withdrawal_seq": withdrawal_seq, "amount": stranded.amount},
            )
        )

    # Reads

    def market_exists(self, market_id: str) -> bool:
        return market_id in self._view.markets

    def get_market(self, market_id: str) -> Market:
        return self._market(market_id).model_copy(deep=True)

    def get_market_info(self, market_id: str) -> MarketInfo:
        m = self._market(market_id)
        return MarketInfo(
            market_id=m.market_id,
            prediction_text=m.prediction_text,
            deadline=m.deadline,
            resolved=m.resolved,
            outcome=m.outcome,
            total_agree=m.total_agree,
            total_disagree=m.total_disagree,
            bet_count=len(m.bets),
        )

    def get_user_bets(self, market_id: str, account: str) -> list[UserBet]:
        m = self._market(market_id)
        return [UserBet(amount=b.amount, position=b.position) for b in m.bets if b.bettor == account]

    def list_markets(self) -> list[Market]:
        return [m.model_copy(deep=True) for m in self._view.markets.values()]

    def pending_withdrawal(self, account: str) -> int:
        return self._view.pending.get(account, 0)

    def stranded_withdrawals(self) -> list[StrandedWithdrawal]:
        return sorted(self._view.stranded.values(), key=lambda s: s.withdrawal_seq)

    @property
    def last_seq(self) -> int:
        return self._view.last_seq

    def snapshot(self) -> dict[str, Any]:
        """Plain-data dump of the whole view (for comparison and diagnostics)."""
        return {
            "markets": {k: m.model_dump() for k, m in sorted(self._view.markets.items())},
            "pending": dict(sorted(self._view.pending.items())),
            "stranded": {k: s.model_dump() for k, s in sorted(self._view.stranded.items())},
            "last_seq": self._view.last_seq,
        }

    def check_invariants(self) -> list[str]:
        """Return human-readable invariant violations (empty when consistent)."""
        problems: list[str] = []
        for m in self._view.markets.values():
            agree = sum(b.amount for b in m.bets if b.position)
            disagree = sum(b.amount for b in m.bets if not b.position)
            if (agree, disagree) != (m.total_agree, m.total_disagree):
                problems.append(f"{m.market_id}: totals {m.total_agree}/{m.total_disagree} != bets {agree}/{disagree}")
            late = [b for b in m.bets if b.timestamp >= m.deadline]
            if late:
                problems.append(f"{m.market_id}: {len(late)} bet(s) at or after deadline")
            res = self._view.resolutions.get(m.market_id)
            if res is not None:
                paid = sum(res["payouts"].values()) + res["fee"] + res["dust"]
                if paid != m.total_pool:
                    problems.append(f"{m.market_id}: resolution pays {paid} of pool {m.total_pool}")
        for account, balance in self._view.pending.items():
            if balance < 0:
                problems.append(f"{account}: negative pending balance {balance}")
        return problems
