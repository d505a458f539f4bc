"""Currency conversion utilities for PEPS.

Internal gateway unit: kobo (smallest NGN unit, 100 kobo = ₦1).
API / display unit: Naira (Decimal, e.g. Decimal("1500.00") = ₦1,500).
Loyalty points: 1 point = ₦1.

Conversion chain
----------------
Naira × 100 → Kobo
Kobo  ÷ 100 → Naira
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# ─── constants ───────────────────────────────────────────────────────────────

KOBO_PER_NAIRA: int = 100
NAIRA_PER_POINT: int = 1
TWO_PLACES = Decimal("0.01")


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce a money value to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_naira(value: Decimal | int | float | str) -> Decimal:
    """Round to two decimal places (kobo precision), half-up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def naira_to_kobo(naira: Decimal | int | float | str) -> int:
    """Convert Naira to kobo (round half-up). ₦1 = 100 kobo."""
    return int(
        (to_decimal(naira) * KOBO_PER_NAIRA).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def kobo_to_naira(kobo: int) -> Decimal:
    """Convert kobo to Naira. 100 kobo = ₦1."""
    return (Decimal(kobo) / KOBO_PER_NAIRA).quantize(TWO_PLACES)
