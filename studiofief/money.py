"""Integer-cent helpers.

Every amount in the application is an integer number of cents. Rounding is
half-up on exact decimal arithmetic, never on floats.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

DIGITS = "0123456789"


def _d(val, default="0"):
    if val is None:
        return Decimal(default)
    s = str(val).strip().replace(",", ".")
    if s == "":
        return Decimal(default)
    try:
        return Decimal(s)
    except InvalidOperation:
        return Decimal(default)


def round_half_up(value) -> int:
    return int(_d(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_percent(amount_cents: int, percent) -> int:
    """round(amount * percent / 100), half-up."""
    return round_half_up(Decimal(int(amount_cents)) * _d(percent) / Decimal("100"))


def clamp_percent(value) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return 0
    return min(100, max(0, v))


def parse_euro_to_cents(value):
    """Parse a euro amount ("12,5", "1 200.00", 12.5) into cents.

    Returns None for empty, negative or unparseable input. A third decimal
    digit >= 5 rounds the cents up; further digits are ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        if value < 0:
            return None
        try:
            return round_half_up(Decimal(str(value)) * 100)
        except (InvalidOperation, ValueError, OverflowError):
            return None

    raw = str(value).strip()
    if not raw or "-" in raw:
        return None

    whole, fraction, has_sep = "", "", False
    for ch in raw:
        if ch in DIGITS:
            if has_sep:
                fraction += ch
            else:
                whole += ch
        elif ch in ".," and not has_sep:
            has_sep = True

    if not whole and not fraction:
        return None

    cents = int(whole or "0") * 100 + int(fraction[:2].ljust(2, "0"))
    if len(fraction) > 2 and int(fraction[2]) >= 5:
        cents += 1
    return cents


def parse_cents_input(raw):
    """Integers are cents; anything with a decimal part is read as euros."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw != raw:  # NaN
            return None
        if raw.is_integer():
            return int(raw)
        return parse_euro_to_cents(raw)
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        if "." in s or "," in s:
            return parse_euro_to_cents(s)
        try:
            return int(s)
        except ValueError:
            return None
    return None


def format_cents(cents, currency: str = "EUR") -> str:
    try:
        value = int(cents)
    except (TypeError, ValueError):
        return f"0.00 {currency}"
    sign = "-" if value < 0 else ""
    euros, rem = divmod(abs(value), 100)
    return f"{sign}{euros}.{rem:02d} {currency}"


def format_cents_display(cents, currency: str = "EUR") -> str:
    """French display: 1\u202f234,56\xa0€, as Intl fr-FR renders it."""
    if cents is None or cents == "":
        return "—"
    try:
        value = int(cents)
    except (TypeError, ValueError):
        return "—"
    sign = "-" if value < 0 else ""
    euros, rem = divmod(abs(value), 100)
    grouped = f"{euros:,}".replace(",", "\u202f")
    symbol = "€" if currency == "EUR" else currency
    return f"{sign}{grouped},{rem:02d}\xa0{symbol}"


def to_day(dt: datetime):
    if dt is None:
        return None
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)
