"""Mention command routing - classify, dispatch to the ledger, build the reply."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Awaitable, Callable

import structlog

from wagerbot.bot import replies
from wagerbot.bot.parser import DEFAULT_MAX_BET, DEFAULT_MIN_BET, parse_bet
from wagerbot.errors import (
    AlreadyExists,
    LedgerCallFailure,
    StateError,
    UpstreamError,
    ValidationError,
)
from wagerbot.ingestion.base import FeedProtocol
from wagerbot.models import CommandKind, Mention, Reply
from wagerbot.settlement.base import LedgerProtocol

log = structlog.get_logger(__name__)

_HANDLE_RE = re.compile(r"@\w+")
_BET_RE = re.compile(r"\bbet", re.IGNORECASE)
_UNIT_RE = re.compile(r"(?<![a-z])(?:ether|eth)\b", re.IGNORECASE)
_CREATE_RE = re.compile(r"\bcreate\b|\bnew (?:bet|market)\b", re.IGNORECASE)
_STATUS_RE = re.compile(r"\b(?:status|info|stats)\b", re.IGNORECASE)
_HELP_RE = re.compile(r"\b(?:help|how|commands)\b", re.IGNORECASE)


def strip_handles(text: str) -> str:
    return " ".join(_HANDLE_RE.sub(" ", text).split())


def is_bet_command(text: str) -> bool:
    """A wager: mentions betting and names a currency unit for the parser to decide on."""
    return bool(_BET_RE.search(text) and _UNIT_RE.search(text))


def is_create_command(text: str) -> bool:
    return bool(_CREATE_RE.search(text))


def is_status_command(text: str) -> bool:
    return bool(_STATUS_RE.search(text))


def is_help_command(text: str) -> bool:
    return bool(_HELP_RE.search(text))


# Evaluated strictly in this order; the first predicate that holds wins.
COMMAND_RULES: tuple[tuple[CommandKind, Callable[[str], bool]], ...] = (
    (CommandKind.BET, is_bet_command),
    (CommandKind.CREATE, is_create_command),
    (CommandKind.STATUS, is_status_command),
    (CommandKind.HELP, is_help_command),
)


def classify(text: str) -> CommandKind:
    cleaned = strip_handles(text)
    for kind, predicate in COMMAND_RULES:
        if predicate(cleaned):
            return kind
    return CommandKind.UNKNOWN


class CommandRouter:
    """
    Turns one mention into ledger calls and a Reply.
    Ledger and validation failures become replies; upstream feed errors propagate
    so the ingestor can back off.
    """

    def __init__(
        self,
        ledger: LedgerProtocol,
        feed: FeedProtocol,
        *,
        bot_username: str = "wagerbot",
        min_bet: Decimal = DEFAULT_MIN_BET,
        max_bet: Decimal = DEFAULT_MAX_BET,
        default_duration_days: int = 30,
    ) -> None:
        self.ledger = ledger
        self.feed = feed
        self.bot_username = bot_username
        self.min_bet = min_bet
        self.max_bet = max_bet
        self.default_duration_days = default_duration_days
        self._handlers: dict[CommandKind, Callable[[Mention, str], Awaitable[tuple[str, bool]]]] = {
            CommandKind.BET: self._handle_bet,
            CommandKind.CREATE: self._handle_create,
            CommandKind.STATUS: self._handle_status,
            CommandKind.HELP: self._handle_help,
            CommandKind.UNKNOWN: self._handle_unknown,
        }

    async def dispatch(self, mention: Mention) -> Reply:
        text = strip_handles(mention.text)
        kind = classify(text)
        log.info("mention_classified", event_id=mention.id, kind=kind.value, market_id=mention.market_id)
        try:
            body, ok = await self._handlers[kind](mention, text)
        except UpstreamError:
            raise
        except (ValidationError, StateError) as e:
            log.info("command_rejected", event_id=mention.id, kind=kind.value, code=e.code, error=e.message)
            return Reply(
                event_id=mention.id,
                kind=kind,
                text=replies.ledger_error(e, self.min_bet, self.max_bet),
                ok=False,
            )
        except LedgerCallFailure as e:
            log.error("ledger_call_failed", event_id=mention.id, kind=kind.value, error=str(e.__cause__ or e))
            return Reply(event_id=mention.id, kind=kind, text=replies.GENERIC_FAILURE, ok=False)
        except Exception:
            log.exception("command_failed", event_id=mention.id, kind=kind.value)
            return Reply(event_id=mention.id, kind=kind, text=replies.GENERIC_FAILURE, ok=False)
        return Reply(event_id=mention.id, kind=kind, text=body, ok=ok)

    async def _ensure_market(self, mention: Mention) -> bool:
        """Create the conversation's market from its root post if needed. False when there is no root."""
        market_id = mention.market_id
        if self.ledger.market_exists(market_id):
            return True
        root = await self.feed.fetch_root(market_id)
        if root is None or not root.text.strip():
            return False
        try:
            self.ledger.create_market(
                market_id,
                root.text,
                self.default_duration_days,
                creator=root.author_id or mention.author_id,
            )
            log.info("market_auto_created", market_id=market_id, event_id=mention.id)
        except AlreadyExists:
            pass
        return True

    async def _handle_bet(self, mention: Mention, text: str) -> tuple[str, bool]:
        parsed = parse_bet(text, self.min_bet, self.max_bet)
        if not parsed.valid:
            return replies.parse_error(parsed, self.bot_username, self.min_bet, self.max_bet), False
        if not await self._ensure_market(mention):
            return replies.root_not_found(), False
        self.ledger.place_bet(
            mention.market_id,
            parsed.position,
            parsed.amount_wei,
            bettor=mention.author_id,
            request_id=mention.id,
        )
        return replies.bet_recorded(parsed, self.ledger.get_market_info(mention.market_id)), True

    async def _handle_create(self, mention: Mention, text: str) -> tuple[str, bool]:
        market_id = mention.market_id
        if self.ledger.market_exists(market_id):
            return replies.market_exists(), True
        root = await self.feed.fetch_root(market_id)
        if root is None or not root.text.strip():
            return replies.root_not_found(), False
        try:
            market = self.ledger.create_market(
                market_id,
                root.text,
                self.default_duration_days,
                creator=root.author_id or mention.author_id,
            )
        except AlreadyExists:
            return replies.market_exists(), True
        return replies.market_created(
            market.prediction_text,
            self.default_duration_days,
            self.min_bet,
            self.max_bet,
            self.bot_username,
        ), True

    async def _handle_status(self, mention: Mention, text: str) -> tuple[str, bool]:
        if not self.ledger.market_exists(mention.market_id):
            return replies.no_market(), False
        info = self.ledger.get_market_info(mention.market_id)
        return replies.status(info, self.ledger.now()), True

    async def _handle_help(self, mention: Mention, text: str) -> tuple[str, bool]:
        return replies.help_text(self.bot_username, self.min_bet, self.max_bet), True

    async def _handle_unknown(self, mention: Mention, text: str) -> tuple[str, bool]:
        return replies.unknown(self.bot_username), False
