"""Number parsing utilities for money typed by operators (e.g. "10.000", "Rp 1,5 jt")."""
import re
from decimal import Decimal, InvalidOperation

NON_NUMERIC_PATTERN = re.compile(r"[^0-9.,-]")
# A dot or comma followed by exactly three digits is a thousands separator
THOUSANDS_SEPARATOR_PATTERN = re.compile(r"(\d)[.,](?=\d{3}(?:[.,]|$))")


def parse_decimal(value) -> Decimal:
    """
    Parse a loosely formatted number to Decimal.

    Rules:
    - Currency symbols, spaces and other text are ignored
    - '.' or ',' followed by exactly three digits groups thousands
    - A remaining ',' is the decimal separator

    Examples:
        parse_decimal("10.000") -> Decimal("10000")
        parse_decimal("Rp 1.250.000") -> Decimal("1250000")
        parse_decimal("2,5") -> Decimal("2.5")

    Raises:
        ValueError: if no number can be read.
    """
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return Decimal(value)

    if value is None:
        raise ValueError('Empty amount')

    cleaned = NON_NUMERIC_PATTERN.sub('', str(value).strip())
    if not cleaned:
        raise ValueError(f'Invalid amount: {value!r}')

    normalized = THOUSANDS_SEPARATOR_PATTERN.sub(r'\1', cleaned).replace(',', '.', 1)
    try:
        number = Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid amount: {value!r}')

    if not number.is_finite():
        raise ValueError(f'Invalid amount: {value!r}')
    return number


def parse_money(value, decimals: int = 0) -> int:
    """
    Parse a money value into an integer of minor currency units.

    Args:
        value: int, Decimal or formatted string
        decimals: Digits of the minor unit (0 for IDR, 2 for cents)

    Raises:
        ValueError: if the value is not a number or has more precision than the currency.
    """
    number = parse_decimal(value)
    scaled = number * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f'Amount {value!r} has more than {decimals} decimal places')
    return int(scaled)
