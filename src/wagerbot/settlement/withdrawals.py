"""Withdrawals - ledger debit followed by external transfer, with stranded tracking."""

from __future__ import annotations

import structlog

from wagerbot.errors import NotFound, WithdrawalTransferFailed
from wagerbot.settlement.base import TransferProtocol
from wagerbot.settlement.ledger import MarketLedger

log = structlog.get_logger(__name__)


class WithdrawalService:
    """
    Debit-then-transfer. The ledger balance is zeroed before the transfer runs; a
    failed transfer is recorded as a stranded withdrawal and raised, never
    re-credited. Stranded withdrawals are retried explicitly with retry().
    """

    def __init__(self, ledger: MarketLedger, transfer: TransferProtocol) -> None:
        self.ledger = ledger
        self.transfer = transfer

    async def withdraw(self, account: str) -> tuple[int, str]:
        """Return (amount, transfer reference). Raises NoFunds or WithdrawalTransferFailed."""
        fact = self.ledger.debit(account)
        amount = fact.payload["amount"]
        try:
            ref = await self.transfer.send(account, amount)
        except Exception as e:
            log.error("withdrawal_stranded", account=account, amount=amount, withdrawal_seq=fact.seq, error=str(e))
            self.ledger.record_stranded(fact.seq, account, amount, str(e))
            raise WithdrawalTransferFailed(
                f"transfer of {amount} to {account} failed after debit",
                withdrawal_seq=fact.seq,
            ) from e
        log.info("withdrawal_transferred", account=account, amount=amount, ref=ref)
        return amount, ref

    async def retry(self, withdrawal_seq: int) -> str:
        """Retry the transfer of a stranded withdrawal."""
        stranded = {s.withdrawal_seq: s for s in self.ledger.stranded_withdrawals()}.get(withdrawal_seq)
        if stranded is None:
            raise NotFound(f"no stranded withdrawal {withdrawal_seq}", withdrawal_seq=withdrawal_seq)
        try:
            ref = await self.transfer.send(stranded.account, stranded.amount)
        except Exception as e:
            log.error("withdrawal_retry_failed", withdrawal_seq=withdrawal_seq, error=str(e))
            raise WithdrawalTransferFailed(
                f"retry of withdrawal {withdrawal_seq} failed",
                withdrawal_seq=withdrawal_seq,
            ) from e
        self.ledger.record_recovered(withdrawal_seq)
        log.info("withdrawal_recovered", withdrawal_seq=withdrawal_seq, account=stranded.account, ref=ref)
        return ref
