"""Conversions between broker fixed-point amounts and floats, plus ticker helpers"""

import math
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Any, Mapping, Optional, Union

from .models import Money, NANO_FACTOR

_NANO_QUANTUM = Decimal("0.000000001")

# Exchange ticker renames; the old symbol maps to the current one
TICKER_ALIASES = {
    "TRAY": "TPAY",
}


def money_to_float(money: Optional[Union[Money, Mapping[str, Any]]]) -> float:
    """Convert a fixed-point amount to float. Missing amounts are zero."""
    if money is None:
        return 0.0
    if isinstance(money, Mapping):
        units = money.get('units') or 0
        nano = money.get('nano') or 0
    else:
        units, nano = money.units, money.nano
    return float(Decimal(int(units)) + Decimal(int(nano)) * _NANO_QUANTUM)


def float_to_money(value: float, currency: Optional[str] = None) -> Money:
    """
    Convert a float to a fixed-point amount at nano resolution.

    units is floored so nano always stays in [0, 1e9): -1.25 becomes
    units=-2, nano=750000000.
    """
    amount = Decimal(str(value)).quantize(_NANO_QUANTUM, rounding=ROUND_HALF_EVEN)
    units = math.floor(amount)
    nano = int((amount - units) * NANO_FACTOR)
    return Money(units=units, nano=nano, currency=currency)


def normalize_ticker(ticker: Optional[str]) -> Optional[str]:
    """Strip whitespace and a trailing '@', then apply exchange aliases"""
    if not ticker:
        return ticker
    normalized = ticker.strip()
    if normalized.endswith('@'):
        normalized = normalized[:-1]
    return TICKER_ALIASES.get(normalized, normalized)


def tickers_equal(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return normalize_ticker(a) == normalize_ticker(b)


def sum_values(values: Optional[Mapping[str, Any]]) -> float:
    """Sum numeric values of a mapping, ignoring non-numbers and NaN"""
    if not values:
        return 0.0
    total = 0.0
    for value in values.values():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isnan(value):
            continue
        total += value
    return total


def position_value(value: Optional[float]) -> float:
    """Position value with missing or NaN treated as zero"""
    if value is None or math.isnan(value):
        return 0.0
    return value
