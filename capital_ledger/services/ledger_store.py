"""Ledger storage access layer.

The allocation engine never talks to a global connection pool. Every call
receives a ``LedgerStore`` handle and opens exactly one transaction on it:

    with ledger.transaction(timeout=5) as tx:
        payment = tx.insert_payment(...)
        for entry in tx.lock_unpaid_entries(store_id):
            ...

Rows returned by the ``lock_*`` methods are exclusively locked until the
transaction commits or rolls back, and always come back in FIFO order
(created_at ASC, id ASC). Callers mutate ``amount_paid`` and
``remaining_amount`` on the returned rows directly; the transaction persists
them on commit.
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError

from capital_ledger.exceptions import LedgerTimeoutError
from capital_ledger.models import (
    PayableAllocation, PayableEntry, PayablePayment, Product, StockTransaction, Store
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs raised when lock_timeout / statement_timeout expire
PG_TIMEOUT_CODES = {'55P03', '57014'}


class LedgerStore:
    """Interface of a storage handle used by the allocation engine."""

    def transaction(self, timeout: Optional[float] = None):
        """Context manager yielding a transaction; commits on success, rolls back on error."""
        raise NotImplementedError

    def store_exists(self, store_id: int) -> bool:
        raise NotImplementedError

    def product_store_id(self, product_id: int) -> Optional[int]:
        """Return the store a product belongs to, or None if it does not exist."""
        raise NotImplementedError

    def transaction_store_id(self, transaction_id: int) -> Optional[int]:
        """Return the store a stock transaction belongs to, or None if it does not exist."""
        raise NotImplementedError

    def get_totals(self, store_id: int) -> Tuple[int, int]:
        """Return (sum of entry amounts, sum of payment amounts) for a store."""
        raise NotImplementedError

    def get_product_totals(self, store_id: int) -> List[Dict]:
        """Per-product payable/paid totals, largest outstanding balance first."""
        raise NotImplementedError

    def get_recent_payments(self, store_id: int, limit: int) -> List[Dict]:
        raise NotImplementedError


class SqlLedgerTransaction:
    """Operations available inside one SQL ledger transaction."""

    def __init__(self, session):
        self.session = session

    def insert_payment(self, store_id, amount, note=None, sender=None, raw=None) -> PayablePayment:
        payment = PayablePayment(
            store_id=store_id,
            amount=amount,
            remaining_amount=amount,
            note=note,
            sender=sender,
            raw=raw
        )
        self.session.add(payment)
        self.session.flush()
        return payment

    def insert_entry(self, transaction_id, product_id, item, qty, cost_price, amount) -> PayableEntry:
        entry = PayableEntry(
            transaction_id=transaction_id,
            product_id=product_id,
            item=item,
            qty=qty,
            cost_price=cost_price,
            amount=amount,
            amount_paid=0
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def insert_allocation(self, payment_id, entry_id, amount) -> PayableAllocation:
        allocation = PayableAllocation(payment_id=payment_id, entry_id=entry_id, amount=amount)
        self.session.add(allocation)
        return allocation

    def lock_unpaid_entries(self, store_id) -> List[PayableEntry]:
        """Lock every entry of the store that still has an outstanding amount."""
        return (
            self.session.query(PayableEntry)
            .join(Product, Product.id == PayableEntry.product_id)
            .filter(
                Product.store_id == store_id,
                PayableEntry.amount_paid < PayableEntry.amount
            )
            .order_by(PayableEntry.created_at.asc(), PayableEntry.id.asc())
            .with_for_update(of=PayableEntry)
            .populate_existing()
            .all()
        )

    def lock_open_payments(self, store_id) -> List[PayablePayment]:
        """Lock every payment of the store with unconsumed credit."""
        return (
            self.session.query(PayablePayment)
            .filter(
                PayablePayment.store_id == store_id,
                PayablePayment.remaining_amount > 0
            )
            .order_by(PayablePayment.created_at.asc(), PayablePayment.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )

    def find_transaction(self, transaction_id, store_id) -> Optional[StockTransaction]:
        return (
            self.session.query(StockTransaction)
            .filter(
                StockTransaction.id == transaction_id,
                StockTransaction.store_id == store_id
            )
            .first()
        )

    def lock_transaction_entries(self, transaction_id) -> List[PayableEntry]:
        """Lock every entry of a transaction; the FK cascade removes all of them on delete."""
        return (
            self.session.query(PayableEntry)
            .filter(PayableEntry.transaction_id == transaction_id)
            .order_by(PayableEntry.created_at.asc(), PayableEntry.id.asc())
            .with_for_update(of=PayableEntry)
            .populate_existing()
            .all()
        )

    def allocations_for_entries(self, entry_ids: Iterable[int]) -> List[PayableAllocation]:
        entry_ids = list(entry_ids)
        if not entry_ids:
            return []
        return (
            self.session.query(PayableAllocation)
            .filter(PayableAllocation.entry_id.in_(entry_ids))
            .order_by(PayableAllocation.id.asc())
            .all()
        )

    def lock_payments(self, payment_ids: Iterable[int]) -> List[PayablePayment]:
        payment_ids = list(payment_ids)
        if not payment_ids:
            return []
        return (
            self.session.query(PayablePayment)
            .filter(PayablePayment.id.in_(payment_ids))
            .order_by(PayablePayment.created_at.asc(), PayablePayment.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )

    def delete_transaction(self, transaction: StockTransaction) -> None:
        # FK cascades remove the entries and their allocations
        self.session.delete(transaction)
        self.session.flush()


class SqlLedgerStore(LedgerStore):
    """LedgerStore backed by an SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self, timeout: Optional[float] = None):
        session = self.session
        try:
            if timeout:
                self._set_local_timeouts(timeout)
            yield SqlLedgerTransaction(session)
            session.commit()
        except OperationalError as e:
            session.rollback()
            if _is_timeout(e):
                logger.warning(f"Ledger transaction timed out after {timeout}s: {e.orig}")
                raise LedgerTimeoutError() from e
            raise
        except Exception:
            session.rollback()
            raise

    def _set_local_timeouts(self, timeout: float) -> None:
        """Bound lock waits and statements for the current transaction (PostgreSQL only)."""
        bind = self.session.get_bind()
        if bind.dialect.name != 'postgresql':
            logger.debug(f"Ledger timeout ignored on dialect {bind.dialect.name}")
            return
        millis = max(int(timeout * 1000), 1)
        # SET LOCAL does not accept bind parameters
        self.session.execute(text(f"SET LOCAL lock_timeout = {millis}"))
        self.session.execute(text(f"SET LOCAL statement_timeout = {millis}"))

    def store_exists(self, store_id) -> bool:
        return self.session.query(Store.id).filter(Store.id == store_id).first() is not None

    def product_store_id(self, product_id) -> Optional[int]:
        row = self.session.query(Product.store_id).filter(Product.id == product_id).first()
        return row.store_id if row else None

    def transaction_store_id(self, transaction_id) -> Optional[int]:
        row = (
            self.session.query(StockTransaction.store_id)
            .filter(StockTransaction.id == transaction_id)
            .first()
        )
        return row.store_id if row else None

    def get_totals(self, store_id) -> Tuple[int, int]:
        total_payable = (
            self.session.query(func.coalesce(func.sum(PayableEntry.amount), 0))
            .join(Product, Product.id == PayableEntry.product_id)
            .filter(Product.store_id == store_id)
            .scalar()
        )
        total_paid = (
            self.session.query(func.coalesce(func.sum(PayablePayment.amount), 0))
            .filter(PayablePayment.store_id == store_id)
            .scalar()
        )
        return int(total_payable or 0), int(total_paid or 0)

    def get_product_totals(self, store_id) -> List[Dict]:
        payable_total = func.coalesce(func.sum(PayableEntry.amount), 0)
        paid_total = func.coalesce(func.sum(PayableEntry.amount_paid), 0)

        rows = (
            self.session.query(
                Product.id.label('product_id'),
                Product.name.label('item'),
                Product.unit.label('unit'),
                payable_total.label('payable_total'),
                paid_total.label('paid_total')
            )
            .outerjoin(PayableEntry, PayableEntry.product_id == Product.id)
            .filter(Product.store_id == store_id)
            .group_by(Product.id, Product.name, Product.unit)
            .order_by((payable_total - paid_total).desc(), Product.name.asc())
            .all()
        )

        return [
            {
                'product_id': row.product_id,
                'item': row.item,
                'unit': row.unit,
                'payable_total': int(row.payable_total),
                'paid_total': int(row.paid_total),
            }
            for row in rows
        ]

    def get_recent_payments(self, store_id, limit) -> List[Dict]:
        payments = (
            self.session.query(PayablePayment)
            .filter(PayablePayment.store_id == store_id)
            .order_by(PayablePayment.created_at.desc(), PayablePayment.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                'id': p.id,
                'created_at': p.created_at,
                'amount': p.amount,
                'remaining_amount': p.remaining_amount,
                'note': p.note,
            }
            for p in payments
        ]


def _is_timeout(error: OperationalError) -> bool:
    return getattr(error.orig, 'pgcode', None) in PG_TIMEOUT_CODES
