"""Argentine (es-AR) rendering helpers for amounts and dates."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal


def _is_whole(amount: float) -> bool:
    return float(amount).is_integer()


def plain_amount(amount: float) -> str:
    """Render ``amount`` as a bare decimal string (``5000``, ``99.5``).

    Whole values drop the ``.0`` suffix so a user typing ``"5000"`` matches a
    stored ``5000.0``.
    """

    if _is_whole(amount):
        return str(int(amount))
    return repr(float(amount))


def format_money(amount: float) -> str:
    """Return ``amount`` with es-AR grouping: ``1.234.567,5``.

    At most two decimals are shown (half-even rounding) and trailing zeros
    are dropped. This is a display rule for pesos: browser es-AR formatting
    would keep up to three decimals, so ``99.125`` renders ``99,12`` here,
    not ``99,125``. Stored amounts are never rounded.
    """

    quantized = Decimal(repr(float(amount))).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
    sign = "-" if quantized < 0 else ""
    integer_part, _, fraction = f"{abs(quantized):.2f}".partition(".")
    grouped = f"{int(integer_part):,}".replace(",", ".")
    fraction = fraction.rstrip("0")
    return f"{sign}{grouped},{fraction}" if fraction else f"{sign}{grouped}"


def format_day_month(iso_date: str) -> str:
    """``"2024-01-05"`` → ``"05/01"``."""

    d = date.fromisoformat(iso_date)
    return f"{d.day:02d}/{d.month:02d}"


def wire_number(amount: float) -> int | float:
    # JSON integers for whole amounts; the sheet shows "5000", not "5000.0".
    return int(amount) if _is_whole(amount) else float(amount)


_MONTH_ABBR = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic")


def format_short_date(iso_date: str) -> str:
    """``"2024-01-05"`` → ``"05 ene"`` (es-AR day + short month)."""

    d = date.fromisoformat(iso_date)
    return f"{d.day:02d} {_MONTH_ABBR[d.month - 1]}"
