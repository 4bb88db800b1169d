"""Canonical schema (Pydantic) - Market, Bet, Mention, command values."""

from wagerbot.models.command import CommandKind, ParsedBet, ParseError, Reply
from wagerbot.models.market import Bet, Market, MarketInfo, StrandedWithdrawal, UserBet
from wagerbot.models.mention import Mention, RootPost

__all__ = [
    "Bet",
    "Market",
    "MarketInfo",
    "UserBet",
    "StrandedWithdrawal",
    "Mention",
    "RootPost",
    "CommandKind",
    "ParsedBet",
    "ParseError",
    "Reply",
]
