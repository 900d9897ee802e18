"""Human readable coin amounts for logs and notifications."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from .config import PayoutSettings


def readable_coins(
    settings: PayoutSettings,
    amount: int,
    digits: Optional[int] = None,
    with_symbol: bool = True,
) -> str:
    places = settings.coin_decimal_places
    if places is None:
        places = len(str(settings.coin_units)) - 1
    if digits is not None:
        places = digits
    value = Decimal(int(amount or 0)) / Decimal(settings.coin_units)
    text = f"{value:.{places}f}"
    return f"{text} {settings.symbol}" if with_symbol else text
