"""Mention ingestion orchestrator - adaptive polling, ordering, dispatch, cursor checkpoints."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable

import structlog

from wagerbot.bot.router import CommandRouter
from wagerbot.errors import UpstreamPermission, UpstreamRateLimited, UpstreamTransient
from wagerbot.ingestion.backoff import BackoffPolicy, BackoffState, PollOutcome, next_backoff
from wagerbot.ingestion.base import FeedProtocol
from wagerbot.models import Mention
from wagerbot.storage.cursor import load_cursor, save_cursor

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _id_key(event_id: str) -> tuple[int, int | str]:
    """Order ids numerically when they are numeric (snowflake ids), else lexically."""
    return (0, int(event_id)) if event_id.isdigit() else (1, event_id)


def is_after_cursor(event_id: str, cursor: str | None) -> bool:
    if cursor is None:
        return True
    a, b = _id_key(event_id), _id_key(cursor)
    if a[0] != b[0]:
        # Mixed id schemes cannot be ordered; leave dedupe to the feed's since_id.
        return event_id != cursor
    return a > b


def select_dispatchable(
    mentions: Iterable[Mention],
    *,
    bot_user_id: str | None,
    process_start_ms: int,
    cursor: str | None,
) -> list[Mention]:
    """Drop own posts, mentions older than process start and already-seen ids; oldest first."""
    seen: set[str] = set()
    out: list[Mention] = []
    for m in mentions:
        if m.id in seen:
            continue
        seen.add(m.id)
        if bot_user_id and m.author_id == bot_user_id:
            continue
        if m.created_at < process_start_ms:
            continue
        if not is_after_cursor(m.id, cursor):
            continue
        out.append(m)
    out.sort(key=lambda m: (m.created_at, _id_key(m.id)))
    return out


@dataclass(frozen=True)
class IngestorState:
    """Scheduler state, replaced (never mutated) once per cycle."""

    cursor: str | None
    backoff: BackoffState


@dataclass
class IngestorStats:
    polls: int = 0
    dispatched: int = 0
    failed: int = 0
    rate_limited: int = 0


class MentionIngestor:
    """Polls the feed, dispatches mentions one at a time through the router, posts replies."""

    def __init__(
        self,
        feed: FeedProtocol,
        router: CommandRouter,
        *,
        policy: BackoffPolicy | None = None,
        conn: DuckDBPyConnection | None = None,
        bot_id: str = "default",
        dispatch_delay_sec: float = 0.0,
        process_start_ms: int | None = None,
        clock_ms: Callable[[], int] | None = None,
    ):
        self.feed = feed
        self.router = router
        self.policy = policy or BackoffPolicy()
        self.bot_id = bot_id
        self.dispatch_delay_sec = dispatch_delay_sec
        self._conn = conn
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self.process_start_ms = process_start_ms if process_start_ms is not None else self._clock_ms()
        self.state = IngestorState(cursor=self._load_cursor(), backoff=BackoffState.initial(self.policy))
        self.stats = IngestorStats()
        self._start_ts: float | None = None

    def _load_cursor(self) -> str | None:
        if self._conn is None:
            return None
        return load_cursor(self._conn, self.bot_id)

    def _checkpoint(self, cursor: str) -> None:
        if self._conn is not None:
            save_cursor(self._conn, self.bot_id, cursor)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run until stop_event is set. The in-flight mention always finishes first."""
        stop = stop_event or asyncio.Event()
        self._start_ts = time.time()
        log.info(
            "ingestion_started",
            cursor=self.state.cursor,
            process_start_ms=self.process_start_ms,
            interval=self.state.backoff.interval,
        )
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.state.backoff.interval)
                break
            except asyncio.TimeoutError:
                pass
            self.state = await self.run_cycle(self.state, stop)
        log.info("ingestion_stopped", **self.get_status())

    async def run_cycle(self, state: IngestorState, stop: asyncio.Event | None = None) -> IngestorState:
        """One poll: fetch, filter, dispatch in order. Returns the next state."""
        self.stats.polls += 1
        try:
            bot_user_id = await self.feed.bot_user_id()
            mentions = await self.feed.fetch_events_since(state.cursor)
        except UpstreamRateLimited as e:
            self.stats.rate_limited += 1
            log.warning("poll_rate_limited", retry_after=e.retry_after)
            return IngestorState(state.cursor, next_backoff(state.backoff, PollOutcome.rate_limited(), self.policy))
        except UpstreamPermission as e:
            log.error("poll_permission_denied", error=e.message)
            return state
        except UpstreamTransient as e:
            log.warning("poll_failed", error=e.message)
            return state

        batch = select_dispatchable(
            mentions,
            bot_user_id=bot_user_id,
            process_start_ms=self.process_start_ms,
            cursor=state.cursor,
        )
        if len(batch) != len(mentions):
            log.debug("mentions_filtered", fetched=len(mentions), kept=len(batch))
        cursor = state.cursor
        # after a failure the cursor stays put so the failed mention is redelivered
        held = False
        for i, mention in enumerate(batch):
            if stop is not None and stop.is_set():
                log.info("ingestion_draining", remaining=len(batch) - i)
                break
            try:
                await self._dispatch(mention)
            except UpstreamRateLimited as e:
                self.stats.rate_limited += 1
                log.warning("batch_aborted_rate_limited", event_id=mention.id, remaining=len(batch) - i, retry_after=e.retry_after)
                return IngestorState(cursor, next_backoff(state.backoff, PollOutcome.rate_limited(), self.policy))
            except Exception as e:
                self.stats.failed += 1
                held = True
                log.error(
                    "dispatch_failed",
                    event_id=mention.id,
                    error=str(e),
                    error_type=type(e).__name__,
                    cursor_held_at=cursor,
                )
                continue
            if not held:
                cursor = mention.id
                self._checkpoint(cursor)
            self.stats.dispatched += 1
            if self.dispatch_delay_sec and i < len(batch) - 1:
                await asyncio.sleep(self.dispatch_delay_sec)

        backoff = next_backoff(state.backoff, PollOutcome.found(len(batch)), self.policy)
        if backoff.interval != state.backoff.interval:
            log.debug("poll_interval_changed", interval=backoff.interval, empty_polls=backoff.consecutive_empty_polls)
        return IngestorState(cursor, backoff)

    async def _dispatch(self, mention: Mention) -> None:
        reply = await self.router.dispatch(mention)
        await self.feed.post_reply(mention.id, reply.text)
        log.info("mention_dispatched", event_id=mention.id, author_id=mention.author_id, kind=reply.kind.value, ok=reply.ok)

    def get_status(self) -> dict[str, Any]:
        """Return current status: counters, cursor, interval, elapsed_sec."""
        elapsed = (time.time() - self._start_ts) if self._start_ts else 0
        return {
            "polls": self.stats.polls,
            "dispatched": self.stats.dispatched,
            "failed": self.stats.failed,
            "rate_limited": self.stats.rate_limited,
            "cursor": self.state.cursor,
            "interval": self.state.backoff.interval,
            "elapsed_sec": round(elapsed, 1),
        }
