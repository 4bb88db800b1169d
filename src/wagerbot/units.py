"""Currency unit conversion. Ledger amounts are integer wei."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

WEI_PER_ETH = 10**18


def to_wei(value: Decimal | str | int | float) -> int:
    """Convert an ETH amount to wei, truncating anything below one wei."""
    try:
        dec = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"not a decimal amount: {value!r}") from e
    return int((dec * WEI_PER_ETH).to_integral_value(rounding=ROUND_DOWN))


def from_wei(amount: int) -> Decimal:
    return Decimal(amount) / WEI_PER_ETH


def format_eth(amount: int, places: int = 4) -> str:
    """Human display of a wei amount, e.g. 149000000000000000 -> '0.149'."""
    quant = Decimal(1).scaleb(-places)
    text = format(from_wei(amount).quantize(quant, rounding=ROUND_DOWN), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
