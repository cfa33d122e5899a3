"""
Refund & Commission Calculator
==============================

Pure functions over integer **minor units** (pence).  Rates are applied
with ``decimal`` arithmetic and rounded ROUND_HALF_UP to whole minor
units, so there is no float drift in persisted amounts.

Formulas
--------
* commission = round_half_up(total_paid x rate);  payout = total_paid - commission
* passenger refund = round_half_up(total_paid x partial_rate) when the
  cancellation lands strictly more than ``cutoff_hours`` before
  departure, else 0
* driver refund = total_paid (never partial)

Complexity: O(1) per call.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Rate = Union[Decimal, float, str]

DEFAULT_CUTOFF_HOURS = 48
DEFAULT_PARTIAL_RATE = Decimal("0.75")

_ONE = Decimal(1)


def _rate(value: Rate) -> Decimal:
    # str() first so 0.1 stays 0.1 rather than its binary expansion
    rate = value if isinstance(value, Decimal) else Decimal(str(value))
    if rate < 0 or rate > 1:
        raise ValueError(f"Rate must be within [0, 1], got {value}")
    return rate


def _round_minor(amount: Decimal) -> int:
    return int(amount.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_minor_units(amount: Union[Decimal, float, str]) -> int:
    """Convert a major-unit amount (e.g. ``"20.50"``) to minor units."""
    return _round_minor(Decimal(str(amount)) * 100)


def format_minor_units(amount: int, currency: str = "GBP") -> str:
    symbol = {"GBP": "£", "EUR": "€", "USD": "$"}.get(currency, "")
    return f"{symbol}{amount // 100}.{amount % 100:02d}"


def commission_split(total_paid: int, rate_at_acceptance: Rate) -> tuple[int, int]:
    """Return ``(commission, payout)``; the two always sum to *total_paid*."""
    if total_paid < 0:
        raise ValueError("total_paid must be non-negative")
    commission = _round_minor(Decimal(total_paid) * _rate(rate_at_acceptance))
    return commission, total_paid - commission


def passenger_cancellation_refund(
    total_paid: int,
    departure_time: datetime,
    now: datetime,
    cutoff_hours: int = DEFAULT_CUTOFF_HOURS,
    partial_rate: Rate = DEFAULT_PARTIAL_RATE,
) -> int:
    if departure_time - now > timedelta(hours=cutoff_hours):
        return _round_minor(Decimal(total_paid) * _rate(partial_rate))
    return 0


def driver_cancellation_refund(total_paid: int) -> int:
    return total_paid
