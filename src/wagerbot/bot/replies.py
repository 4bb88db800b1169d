"""Reply text builders. Every reply fits in one post."""

from __future__ import annotations

import math
from decimal import Decimal

from wagerbot.errors import WagerError
from wagerbot.models import MarketInfo, ParsedBet, ParseError
from wagerbot.units import format_eth

MAX_REPLY_CHARS = 280
GENERIC_FAILURE = "❌ Sorry, something went wrong. Please try again."


def clip(text: str, limit: int = MAX_REPLY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def format_position(position: bool) -> str:
    return "✅ AGREE" if position else "❌ DISAGREE"


def odds(total_agree: int, total_disagree: int, for_agree: bool) -> str:
    """Pool odds as '1:x.xx' (total pool over one side)."""
    total = total_agree + total_disagree
    if total == 0:
        return "1:1"
    side = total_agree if for_agree else total_disagree
    if side == 0:
        return "-"
    return f"1:{total / side:.2f}"


def bet_example(bot_username: str) -> str:
    return f'"@{bot_username} I bet 0.1 ETH that this is true"'


def parse_error(parsed: ParsedBet, bot_username: str, min_bet: Decimal, max_bet: Decimal) -> str:
    if parsed.error is ParseError.AMOUNT_MISSING:
        reason = "No valid bet amount found. Use a format like '0.1 ETH'."
    elif parsed.error is ParseError.AMOUNT_OUT_OF_RANGE:
        reason = f"Bets must be between {min_bet} and {max_bet} ETH."
    else:
        reason = "Position unclear. Say 'agree/true' or 'disagree/false'."
    return clip(f"❌ {reason}\n\nExample: {bet_example(bot_username)}")


def bet_recorded(parsed: ParsedBet, info: MarketInfo) -> str:
    return clip(
        f"🎯 Bet recorded: {parsed.amount} ETH {format_position(parsed.position)}\n\n"
        f"📊 Pool: AGREE {format_eth(info.total_agree)} ETH / "
        f"DISAGREE {format_eth(info.total_disagree)} ETH, {info.bet_count} bet(s)"
    )


def market_created(prediction: str, duration_days: int, min_bet: Decimal, max_bet: Decimal, bot_username: str) -> str:
    snippet = prediction if len(prediction) <= 80 else prediction[:80] + "..."
    return clip(
        f'🚀 Market created: "{snippet}"\n'
        f"⏰ {duration_days} days · 💰 {min_bet}-{max_bet} ETH\n"
        f"Bet with: {bet_example(bot_username)}"
    )


def market_exists() -> str:
    return "💫 A market already exists for this prediction. You can place bets now."


def root_not_found() -> str:
    return "❌ Could not find the original prediction post."


def no_market() -> str:
    return "❌ No market exists for this prediction yet. Reply with 'create market' to start one!"


def status(info: MarketInfo, now: int) -> str:
    if info.resolved:
        state = f"✅ RESOLVED · Outcome: {'TRUE' if info.outcome else 'FALSE'}"
    else:
        days_left = max(0, math.ceil((info.deadline - now) / 86_400))
        state = f"🔄 ACTIVE · ⏰ {days_left} days left"
    total = info.total_agree + info.total_disagree
    return clip(
        f"📊 Market status\n{state}\n"
        f"AGREE {format_eth(info.total_agree)} ETH ({odds(info.total_agree, info.total_disagree, True)})\n"
        f"DISAGREE {format_eth(info.total_disagree)} ETH ({odds(info.total_agree, info.total_disagree, False)})\n"
        f"Total {format_eth(total)} ETH · {info.bet_count} bet(s)"
    )


def help_text(bot_username: str, min_bet: Decimal, max_bet: Decimal) -> str:
    handle = f"@{bot_username}"
    return clip(
        f"🤖 Commands:\n"
        f"• {handle} I bet [amount] ETH that this is true/false\n"
        f"• {handle} create market\n"
        f"• {handle} status\n"
        f"• {handle} help\n"
        f"Limits: {min_bet}-{max_bet} ETH"
    )


def unknown(bot_username: str) -> str:
    return f'🤔 I didn\'t understand that. Reply with "@{bot_username} help" to see available commands!'


_ERROR_TEXT = {
    "not_found": no_market(),
    "inactive": "❌ This market is closed.",
    "resolved": "❌ This market has already been resolved.",
    "expired": "❌ Betting on this market has closed.",
    "already_resolved": "❌ This market has already been resolved.",
    "invalid_prediction": "❌ The original post has no prediction text.",
    "invalid_duration": "❌ Markets must run between 1 and 365 days.",
}


def ledger_error(error: WagerError, min_bet: Decimal, max_bet: Decimal) -> str:
    if error.code == "amount_out_of_range":
        return f"❌ Bets must be between {min_bet} and {max_bet} ETH."
    return _ERROR_TEXT.get(error.code, GENERIC_FAILURE)
