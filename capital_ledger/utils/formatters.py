"""
Formatting utilities for ledger replies and JSON payloads.
Money is stored as integers of the smallest currency unit.
"""
from decimal import Decimal
from typing import Optional


def num_id(value, decimals: Optional[int] = None) -> str:
    """
    Format a number with '.' thousands and ',' decimal separators.

    Trailing zero decimals are dropped unless `decimals` is fixed.

    Examples:
        num_id(1500) -> "1.500"
        num_id(Decimal("2.50")) -> "2,5"
        num_id(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    num = Decimal(str(value))
    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    sign = '-' if num < 0 else ''
    num_str = format(abs(num), 'f')

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
        if decimals is None:
            decimal_part = decimal_part.rstrip('0')
    else:
        integer_part, decimal_part = num_str, ''

    grouped = f"{int(integer_part):,}".replace(',', '.')
    if decimal_part:
        return f"{sign}{grouped},{decimal_part}"
    return f"{sign}{grouped}"


def money(minor_units: Optional[int], symbol: str = 'Rp', decimals: int = 0) -> str:
    """
    Format an amount of minor units as currency.

    Examples:
        money(10000) -> "Rp 10.000"
        money(-3000) -> "-Rp 3.000"
        money(12345, symbol='$', decimals=2) -> "$ 123,45"
    """
    if minor_units is None:
        return "-"
    value = Decimal(minor_units) / (Decimal(10) ** decimals) if decimals else Decimal(minor_units)
    text = num_id(abs(value), decimals if decimals else None)
    prefix = '-' if minor_units < 0 else ''
    return f"{prefix}{symbol} {text}"


def describe_payment(result, balance, symbol: str = 'Rp', decimals: int = 0, max_lines: int = 10) -> str:
    """
    Render the confirmation shown after a capital payment.

    Args:
        result: PaymentResult from apply_payment
        balance: Balance of the store after the payment
        max_lines: Settled entries listed before collapsing the rest

    Returns:
        Multi-line text: amounts, resulting balance and which debts were paid.
    """
    def fmt(amount):
        return money(amount, symbol, decimals)

    lines = [
        'PAYMENT RECORDED',
        f'Amount: {fmt(result.amount)}',
        f'Applied: {fmt(result.applied)}',
    ]
    if result.remaining > 0:
        lines.append(f'Left as credit: {fmt(result.remaining)}')

    if balance.balance < 0:
        lines.append(f'Outstanding debt: {fmt(abs(balance.balance))}')
    elif balance.balance > 0:
        lines.append(f'Credit balance: {fmt(balance.balance)}')
    else:
        lines.append('Status: capital debt fully paid')

    lines.append('')
    lines.append('SETTLED')
    if not result.allocations:
        lines.append('No open debts, all of it is credit.')
    for settlement in result.allocations[:max_lines]:
        # Units covered by this portion at the entry's unit cost
        qty_paid = Decimal(settlement.amount) / Decimal(settlement.cost_price) if settlement.cost_price > 0 else Decimal(0)
        lines.append(
            f'{settlement.item} x{num_id(qty_paid.quantize(Decimal("0.001")))} '
            f'@ {fmt(settlement.cost_price)} = {fmt(settlement.amount)}'
        )
    hidden = len(result.allocations) - max_lines
    if hidden > 0:
        lines.append(f'... and {hidden} more')

    return '\n'.join(lines)
