"""Free-text bet parsing - amount, side, bounds. Pure and deterministic."""

from __future__ import annotations

import re
from decimal import Decimal

from wagerbot.models import ParsedBet, ParseError

DEFAULT_MIN_BET = Decimal("0.001")
DEFAULT_MAX_BET = Decimal("10")

_NUMBER = r"(\d+(?:\.\d+)?|\.\d+)"
_UNIT = r"(?:ether|eth)"

# Tried in order; the first pattern with a match decides the amount.
# A number glued to a digit or separator on its left ("0,5") is not an amount.
AMOUNT_PATTERNS = (
    re.compile(r"(?<![\d.,])" + _NUMBER + r"\s*" + _UNIT + r"\b", re.IGNORECASE),
    re.compile(r"\b" + _UNIT + r"\s*" + _NUMBER, re.IGNORECASE),
)

AGREE_WORDS = ("true", "agree", "yes", "correct", "right", "will happen", "believe")
DISAGREE_WORDS = (
    "false",
    "disagree",
    "no",
    "wrong",
    "incorrect",
    "wont happen",
    "won't happen",
    "will not happen",
    "doubt",
)


def _word_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(r"\b(?:" + alternatives + r")\b", re.IGNORECASE)


AGREE_RE = _word_pattern(AGREE_WORDS)
DISAGREE_RE = _word_pattern(DISAGREE_WORDS)


def extract_amount(text: str) -> Decimal | None:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return Decimal(match.group(1))
    return None


def extract_position(text: str) -> bool | None:
    """True for agree, False for disagree, None when unclear. Agree wins a tie."""
    if AGREE_RE.search(text):
        return True
    if DISAGREE_RE.search(text):
        return False
    return None


def parse_bet(
    text: str,
    min_bet: Decimal = DEFAULT_MIN_BET,
    max_bet: Decimal = DEFAULT_MAX_BET,
) -> ParsedBet:
    """Parse e.g. 'I bet 0.1 ETH that this is true' into amount and position."""
    amount = extract_amount(text)
    if amount is None:
        return ParsedBet(error=ParseError.AMOUNT_MISSING)
    if amount < min_bet or amount > max_bet:
        return ParsedBet(amount=amount, error=ParseError.AMOUNT_OUT_OF_RANGE)
    position = extract_position(text)
    if position is None:
        return ParsedBet(amount=amount, error=ParseError.POSITION_UNCLEAR)
    return ParsedBet(amount=amount, position=position, valid=True)
