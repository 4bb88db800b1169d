"""Error taxonomy - validation, ledger state, upstream feed, backend failures."""

from __future__ import annotations


class WagerError(Exception):
    """Base for all wagerbot errors. `code` is stable and safe to show users."""

    code: str = "error"

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context


# Validation: user-facing, never retried


class ValidationError(WagerError):
    code = "validation_error"


class InvalidPrediction(ValidationError):
    code = "invalid_prediction"


class InvalidDuration(ValidationError):
    code = "invalid_duration"


class AmountOutOfRange(ValidationError):
    code = "amount_out_of_range"


# Ledger state: user-facing


class StateError(WagerError):
    code = "state_error"


class NotFound(StateError):
    code = "not_found"


class AlreadyExists(StateError):
    code = "already_exists"


class Inactive(StateError):
    code = "inactive"


class MarketResolved(StateError):
    """Bet rejected because the market is already resolved."""

    code = "resolved"


class MarketExpired(StateError):
    """Bet rejected because the deadline has passed."""

    code = "expired"


class AlreadyResolved(StateError):
    code = "already_resolved"


class NotYetExpired(StateError):
    code = "not_yet_expired"


class NoFunds(StateError):
    code = "no_funds"


class Unauthorized(StateError):
    code = "unauthorized"


# Upstream feed: internal only, never replied


class UpstreamError(WagerError):
    code = "upstream_error"


class UpstreamRateLimited(UpstreamError):
    code = "upstream_rate_limited"

    def __init__(self, message: str = "", retry_after: float | None = None, **context: object) -> None:
        super().__init__(message, **context)
        self.retry_after = retry_after


class UpstreamTransient(UpstreamError):
    code = "upstream_transient"


class UpstreamPermission(UpstreamError):
    code = "upstream_permission"


# Settlement backend


class LedgerCallFailure(WagerError):
    """The backend rejected a write. The cause is for operators, not for replies."""

    code = "ledger_call_failure"


class WithdrawalTransferFailed(WagerError):
    """Value transfer failed after the pending balance was already debited."""

    code = "withdrawal_transfer_failed"
