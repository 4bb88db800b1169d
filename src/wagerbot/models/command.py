"""ParsedBet, CommandKind, Reply - command pipeline values."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from wagerbot.units import to_wei


class CommandKind(str, Enum):
    BET = "bet"
    CREATE = "create"
    STATUS = "status"
    HELP = "help"
    UNKNOWN = "unknown"


class ParseError(str, Enum):
    AMOUNT_MISSING = "amount_missing"
    AMOUNT_OUT_OF_RANGE = "amount_out_of_range"
    POSITION_UNCLEAR = "position_unclear"


class ParsedBet(BaseModel):
    """Result of parsing free text into a wager."""

    model_config = {"frozen": True}

    amount: Decimal = Decimal(0)
    position: bool = False
    valid: bool = False
    error: ParseError | None = None

    @property
    def amount_wei(self) -> int:
        return to_wei(self.amount)


class Reply(BaseModel):
    """Response payload for one mention."""

    event_id: str
    kind: CommandKind
    text: str
    ok: bool = True
