"""Poll interval policy - pure state transitions, no timers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# keeps growth_factor ** steps finite
_MAX_GROWTH_STEPS = 64


class PollKind(str, Enum):
    FOUND = "found"
    EMPTY = "empty"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class PollOutcome:
    """What the last poll observed."""

    kind: PollKind
    found_count: int = 0

    @classmethod
    def found(cls, count: int) -> PollOutcome:
        if count <= 0:
            return cls.empty()
        return cls(PollKind.FOUND, count)

    @classmethod
    def empty(cls) -> PollOutcome:
        return cls(PollKind.EMPTY)

    @classmethod
    def rate_limited(cls) -> PollOutcome:
        return cls(PollKind.RATE_LIMITED)


@dataclass(frozen=True)
class BackoffPolicy:
    """Interval bounds in seconds."""

    base_interval: float = 60.0
    first_idle_interval: float = 300.0
    max_interval: float = 900.0
    cooldown_interval: float = 900.0
    growth_factor: float = 2.0
    empty_threshold: int = 3


@dataclass(frozen=True)
class BackoffState:
    interval: float
    consecutive_empty_polls: int = 0
    ever_matched: bool = False

    @classmethod
    def initial(cls, policy: BackoffPolicy) -> BackoffState:
        return cls(interval=policy.base_interval)


def next_backoff(state: BackoffState, outcome: PollOutcome, policy: BackoffPolicy) -> BackoffState:
    """
    found        -> base interval, counter reset, ever_matched set
    empty, never -> first_idle_interval (nothing has ever been seen)
    empty        -> counter + 1; at the threshold and beyond, grow geometrically to max
    rate limited -> cooldown_interval whatever the prior state
    """
    if outcome.kind is PollKind.RATE_LIMITED:
        return BackoffState(
            interval=policy.cooldown_interval,
            consecutive_empty_polls=state.consecutive_empty_polls,
            ever_matched=state.ever_matched,
        )
    if outcome.kind is PollKind.FOUND:
        return BackoffState(interval=policy.base_interval, consecutive_empty_polls=0, ever_matched=True)
    if not state.ever_matched:
        return BackoffState(
            interval=policy.first_idle_interval,
            consecutive_empty_polls=state.consecutive_empty_polls,
            ever_matched=False,
        )
    empties = state.consecutive_empty_polls + 1
    if empties < policy.empty_threshold:
        interval = policy.base_interval
    else:
        steps = min(empties - policy.empty_threshold + 1, _MAX_GROWTH_STEPS)
        interval = min(policy.base_interval * policy.growth_factor**steps, policy.max_interval)
    return BackoffState(interval=interval, consecutive_empty_polls=empties, ever_matched=True)
