from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Protocol

ZERO = Decimal("0")

PURITY_BUCKETS = ("18K", "22K", "24K")
DEFAULT_PURITY_BUCKET = "22K"


class RateTable(Protocol):
    rate_18k: Decimal
    rate_22k: Decimal
    rate_24k: Decimal


def _as_decimal(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def purity_bucket(purity) -> str:
    normalized = "".join(str(purity or "").split()).upper()
    return normalized if normalized in PURITY_BUCKETS else DEFAULT_PURITY_BUCKET


def _table_rate(rates: RateTable | None, bucket: str) -> Decimal:
    if rates is None:
        return ZERO
    return _as_decimal(getattr(rates, f"rate_{bucket.lower()}", None))


def reference_rate(rates: RateTable | None, purity) -> Decimal:
    """Reference price for the purity bucket, falling back to 22K."""
    for bucket in (purity_bucket(purity), DEFAULT_PURITY_BUCKET):
        value = _table_rate(rates, bucket)
        if value > 0:
            return value
    return ZERO


def resolve_metal_rate(purity, *, manual_rate=None, applied_rate=None, rates: RateTable | None = None) -> Decimal:
    for candidate in (manual_rate, applied_rate):
        value = _as_decimal(candidate)
        if value > 0:
            return value
    return reference_rate(rates, purity)
