"""Mention ingestor: filtering, ordering, cursor, rate limits."""

import asyncio

import pytest

from wagerbot.errors import UpstreamPermission, UpstreamRateLimited, UpstreamTransient
from wagerbot.ingestion.backoff import BackoffPolicy
from wagerbot.ingestion.manager import MentionIngestor, is_after_cursor, select_dispatchable
from wagerbot.models import CommandKind, Mention, Reply
from wagerbot.storage.cursor import load_cursor

START_MS = 1_000_000
POLICY = BackoffPolicy()


class FakeFeed:
    def __init__(self, mentions=None, bot_id="bot"):
        self.mentions = list(mentions or [])
        self.bot_id = bot_id
        self.replies = []
        self.cursors = []
        self.fetch_error = None
        self.reply_failures = {}

    async def bot_user_id(self):
        return self.bot_id

    async def fetch_events_since(self, cursor):
        self.cursors.append(cursor)
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.mentions)

    async def fetch_root(self, thread_root_id):
        return None

    async def post_reply(self, event_id, text):
        if event_id in self.reply_failures:
            raise self.reply_failures.pop(event_id)
        self.replies.append((event_id, text))


class FakeRouter:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.dispatched = []

    async def dispatch(self, mention):
        if mention.id in self.failures:
            raise self.failures.pop(mention.id)
        self.dispatched.append(mention.id)
        return Reply(event_id=mention.id, kind=CommandKind.HELP, text=f"re {mention.id}")


def _m(id, created_at, author="u1"):
    return Mention(id=id, author_id=author, text="@wagerbot help", created_at=created_at)


def _ingestor(feed, router, **kwargs):
    kwargs.setdefault("process_start_ms", START_MS)
    return MentionIngestor(feed, router, policy=POLICY, **kwargs)


def _cycle(ingestor):
    ingestor.state = asyncio.run(ingestor.run_cycle(ingestor.state))
    return ingestor.state


def test_is_after_cursor():
    assert is_after_cursor("10", None)
    assert is_after_cursor("10", "9")
    assert not is_after_cursor("9", "10")
    assert not is_after_cursor("10", "10")


def test_select_dispatchable_filters_and_orders():
    mentions = [
        _m("30", START_MS + 300),
        _m("10", START_MS - 1),
        _m("20", START_MS + 200),
        _m("25", START_MS + 250, author="bot"),
        _m("20", START_MS + 200),
        _m("5", START_MS + 400),
    ]
    out = select_dispatchable(mentions, bot_user_id="bot", process_start_ms=START_MS, cursor="6")
    assert [m.id for m in out] == ["20", "30"]


def test_premature_mention_never_dispatched():
    feed = FakeFeed([_m("1", START_MS - 5_000), _m("2", START_MS + 10)])
    router = FakeRouter()
    ingestor = _ingestor(feed, router)
    _cycle(ingestor)
    _cycle(ingestor)
    assert router.dispatched == ["2"]


def test_dispatch_in_creation_order_and_reply():
    feed = FakeFeed([_m("3", START_MS + 300), _m("2", START_MS + 200)])
    router = FakeRouter()
    ingestor = _ingestor(feed, router)
    state = _cycle(ingestor)
    assert router.dispatched == ["2", "3"]
    assert feed.replies == [("2", "re 2"), ("3", "re 3")]
    assert state.cursor == "3"
    assert state.backoff.ever_matched
    assert state.backoff.interval == POLICY.base_interval
    assert ingestor.get_status()["dispatched"] == 2


def test_own_posts_are_skipped():
    feed = FakeFeed([_m("2", START_MS + 10, author="bot")])
    router = FakeRouter()
    state = _cycle(_ingestor(feed, router))
    assert router.dispatched == []
    assert state.cursor is None


def test_empty_polls_before_first_match():
    ingestor = _ingestor(FakeFeed(), FakeRouter())
    _cycle(ingestor)
    state = _cycle(ingestor)
    assert state.backoff.interval == POLICY.first_idle_interval


def test_cursor_persists_across_restart(temp_db):
    mentions = [_m("2", START_MS + 200), _m("3", START_MS + 300)]
    router = FakeRouter()
    _cycle(_ingestor(FakeFeed(mentions), router, conn=temp_db, bot_id="wagerbot"))
    assert load_cursor(temp_db, "wagerbot") == "3"

    feed = FakeFeed(mentions + [_m("4", START_MS + 400)])
    restarted = _ingestor(feed, router, conn=temp_db, bot_id="wagerbot")
    assert restarted.state.cursor == "3"
    _cycle(restarted)
    assert feed.cursors == ["3"]
    assert router.dispatched == ["2", "3", "4"]


def test_rate_limit_aborts_batch_and_keeps_cursor():
    feed = FakeFeed([_m("2", START_MS + 200), _m("3", START_MS + 300), _m("4", START_MS + 400)])
    router = FakeRouter({"3": UpstreamRateLimited("429")})
    ingestor = _ingestor(feed, router)
    state = _cycle(ingestor)
    assert router.dispatched == ["2"]
    assert state.cursor == "2"
    assert state.backoff.interval == POLICY.cooldown_interval
    assert ingestor.stats.rate_limited == 1


def test_failed_mention_is_retried_next_poll():
    feed = FakeFeed([_m("2", START_MS + 200), _m("3", START_MS + 300)])
    router = FakeRouter({"2": RuntimeError("boom")})
    ingestor = _ingestor(feed, router)
    state = _cycle(ingestor)
    assert router.dispatched == ["3"]
    assert state.cursor is None
    assert ingestor.stats.failed == 1
    state = _cycle(ingestor)
    assert router.dispatched == ["3", "2", "3"]
    assert state.cursor == "3"


def test_failed_reply_holds_cursor(temp_db):
    feed = FakeFeed([_m("2", START_MS + 200), _m("3", START_MS + 300)])
    feed.reply_failures["2"] = UpstreamTransient("503")
    router = FakeRouter()
    ingestor = _ingestor(feed, router, conn=temp_db, bot_id="wagerbot")
    assert _cycle(ingestor).cursor is None
    assert load_cursor(temp_db, "wagerbot") is None
    assert feed.replies == [("3", "re 3")]
    assert _cycle(ingestor).cursor == "3"
    assert ("2", "re 2") in feed.replies
    assert load_cursor(temp_db, "wagerbot") == "3"


def test_cursor_stops_at_last_success_before_failure():
    feed = FakeFeed([_m("2", START_MS + 200), _m("3", START_MS + 300), _m("4", START_MS + 400)])
    router = FakeRouter({"3": UpstreamTransient("503")})
    state = _cycle(_ingestor(feed, router))
    assert router.dispatched == ["2", "4"]
    assert state.cursor == "2"


def test_fetch_rate_limited_cools_down():
    feed = FakeFeed()
    feed.fetch_error = UpstreamRateLimited("429", retry_after=30)
    ingestor = _ingestor(feed, FakeRouter())
    state = _cycle(ingestor)
    assert state.backoff.interval == POLICY.cooldown_interval
    assert state.cursor is None


@pytest.mark.parametrize("error", [UpstreamTransient("timeout"), UpstreamPermission("403")])
def test_fetch_failure_leaves_state(error):
    feed = FakeFeed()
    feed.fetch_error = error
    ingestor = _ingestor(feed, FakeRouter())
    before = ingestor.state
    assert _cycle(ingestor) == before


def test_stop_drains_before_next_mention():
    feed = FakeFeed([_m("2", START_MS + 200)])
    router = FakeRouter()
    ingestor = _ingestor(feed, router)

    async def go():
        stop = asyncio.Event()
        stop.set()
        return await ingestor.run_cycle(ingestor.state, stop)

    state = asyncio.run(go())
    assert router.dispatched == []
    assert state.cursor is None


def test_run_returns_when_stopped():
    ingestor = _ingestor(FakeFeed([_m("2", START_MS + 200)]), FakeRouter())

    async def go():
        stop = asyncio.Event()
        stop.set()
        await ingestor.run(stop)

    asyncio.run(go())
    assert ingestor.get_status()["polls"] == 0
