"""Balance service - read-only payable ledger reporting."""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

MAX_PAYMENTS_LIMIT = 500


@dataclass(frozen=True)
class Balance:
    """Store-level totals. Negative balance = net debt, positive = prepaid credit."""
    total_payable: int
    total_paid: int
    balance: int

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class ProductBalance:
    product_id: int
    item: str
    unit: Optional[str]
    payable_total: int
    paid_total: int
    balance: int

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class PaymentRecord:
    id: int
    created_at: Optional[datetime]
    amount: int
    remaining_amount: int
    note: Optional[str]

    def to_dict(self):
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data


def get_balance(ledger, store_id: int) -> Balance:
    """
    Get payable totals for a store.

    Always computed from committed rows; nothing is cached between calls.

    Args:
        ledger: LedgerStore handle
        store_id: Store ID (REQUIRED for store isolation)

    Returns:
        Balance with:
        - total_payable: sum of entry amounts
        - total_paid: sum of payment amounts
        - balance: total_paid - total_payable
    """
    total_payable, total_paid = ledger.get_totals(store_id)
    return Balance(
        total_payable=total_payable,
        total_paid=total_paid,
        balance=total_paid - total_payable
    )


def get_product_summary(ledger, store_id: int) -> List[ProductBalance]:
    """Per-product payable breakdown, largest outstanding balance first."""
    return [
        ProductBalance(
            product_id=row['product_id'],
            item=row['item'],
            unit=row['unit'],
            payable_total=row['payable_total'],
            paid_total=row['paid_total'],
            balance=row['payable_total'] - row['paid_total']
        )
        for row in ledger.get_product_totals(store_id)
    ]


def list_payments(ledger, store_id: int, limit: int = 50) -> List[PaymentRecord]:
    """Most recent payments of a store; limit is clamped to 1..MAX_PAYMENTS_LIMIT."""
    limit = max(1, min(int(limit), MAX_PAYMENTS_LIMIT))
    return [PaymentRecord(**row) for row in ledger.get_recent_payments(store_id, limit)]
