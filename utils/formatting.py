from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from utils.fees import to_decimal

# Currencies displayed without minor units
WHOLE_UNIT_CURRENCIES = {"PKR", "KES", "UGX", "JPY"}


def format_currency(amount: Any, currency: str = "PKR") -> str:
    """Format an amount the way receipts and reminders print it: ``PKR 12,500``."""
    value = to_decimal(amount)
    code = (currency or "PKR").upper()
    if code in WHOLE_UNIT_CURRENCIES:
        whole = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{code} {whole:,}"
    cents = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{code} {cents:,}"


def format_date(value: date | datetime | None) -> str:
    if not value:
        return ""
    return value.strftime("%b %d, %Y").replace(" 0", " ")


def month_label(bucket: str) -> str:
    """``2025-03`` -> ``Mar 25`` (chart axis label)."""
    try:
        return datetime.strptime(bucket + "-01", "%Y-%m-%d").strftime("%b %y")
    except ValueError:
        return bucket
