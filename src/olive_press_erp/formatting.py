"""Numeric coercion and display helpers shared by every layer.

``to_number`` is the one coercion primitive of the package: every numeric
field read from a workbook row, a command or a caller-supplied record passes
through it, so that missing, blank or malformed values degrade to zero instead
of raising. The remaining helpers format numbers, ratios and dates the way the
factory reads them (Turkish grouping, day-first dates).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Optional


ZERO = Decimal("0")
_CENTS = Decimal("0.01")
_THOUSANDTHS = Decimal("0.001")
NOT_APPLICABLE = "N/A"


def to_number(value: Any) -> Decimal:
    """Coerce an arbitrary field value into a finite :class:`Decimal`.

    Args:
        value (Any): Raw field value. Workbook cells may hold ``int``,
            ``float``, ``str`` or ``None``; callers may also pass ``Decimal``
            or ``bool``.

    Returns:
        Decimal: The numeric value, or ``Decimal("0")`` for ``None``, blank or
            non-numeric strings, NaN, infinities and unsupported types.
    """

    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, bool):
        number = Decimal(int(value))
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        # repr() yields the shortest round-tripping text, so 0.1 stays 0.1.
        number = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return ZERO
        try:
            number = Decimal(text)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not number.is_finite():
        return ZERO
    return number


def round_to_two(value: Any) -> Decimal:
    """Round a monetary value to cents, half away from zero.

    Applied where a derived total is stored, never to intermediate terms.
    """

    with localcontext() as ctx:
        ctx.prec = 60
        return to_number(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


def format_number(value: Any, unit: str = "") -> str:
    """Render a number with Turkish grouping and up to three decimals.

    ``1234.5`` becomes ``"1.234,5"`` and ``format_number(10, "₺")`` becomes
    ``"10₺"``. Invalid input renders as zero.
    """

    with localcontext() as ctx:
        ctx.prec = 60
        rounded = to_number(value).quantize(_THOUSANDTHS, rounding=ROUND_HALF_UP)

    integer, _, fraction = f"{rounded:,f}".partition(".")
    integer = integer.replace(",", ".")
    fraction = fraction.rstrip("0")
    text = f"{integer},{fraction}" if fraction else integer
    if text == "-0":
        text = "0"
    return text + unit


def format_money(value: Any, currency: str = "₺") -> str:
    return format_number(value, currency)


def oil_ratio(olive_kg: Any, oil_litre: Any) -> Optional[Decimal]:
    """Return kilograms of olives per litre of oil, or ``None`` when undefined.

    The ratio only exists when both quantities are strictly positive; any
    other combination is reported as not applicable rather than dividing by
    zero.
    """

    olive = to_number(olive_kg)
    oil = to_number(oil_litre)
    if olive > 0 and oil > 0:
        return olive / oil
    return None


def format_ratio(ratio: Optional[Decimal]) -> str:
    if ratio is None:
        return NOT_APPLICABLE
    return str(ratio.quantize(_CENTS, rounding=ROUND_HALF_UP))


def format_oil_ratio(olive_kg: Any, oil_litre: Any) -> str:
    """Short ratio form used in tables and receipts (``"5.00"`` or ``"N/A"``)."""

    return format_ratio(oil_ratio(olive_kg, oil_litre))


def format_oil_ratio_display(olive_kg: Any, oil_litre: Any) -> str:
    """Long ratio form, e.g. ``"150 kg olives / 30 L oil = 5.00"``."""

    ratio = oil_ratio(olive_kg, oil_litre)
    if ratio is None:
        return NOT_APPLICABLE
    return (
        f"{format_number(olive_kg)} kg olives / "
        f"{format_number(oil_litre)} L oil = {format_ratio(ratio)}"
    )


def parse_date(value: Any) -> Optional[datetime]:
    """Parse ISO strings, dates and datetimes; return ``None`` when impossible."""

    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def to_input_date_string(value: Any) -> str:
    """Format a date as ``YYYY-MM-DD`` for form inputs, or ``""``."""

    parsed = parse_date(value)
    return parsed.strftime("%Y-%m-%d") if parsed is not None else ""


def format_date(value: Any) -> str:
    """Format a date day-first (``DD.MM.YYYY``), or ``""`` when unparseable."""

    parsed = parse_date(value)
    return parsed.strftime("%d.%m.%Y") if parsed is not None else ""


__all__ = [
    "ZERO",
    "NOT_APPLICABLE",
    "to_number",
    "round_to_two",
    "format_number",
    "format_money",
    "oil_ratio",
    "format_ratio",
    "format_oil_ratio",
    "format_oil_ratio_display",
    "parse_date",
    "to_input_date_string",
    "format_date",
]
