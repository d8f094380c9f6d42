"""In-memory LedgerStore.

Honours the same contract as ``SqlLedgerStore``: rows handed out by the
``lock_*`` methods stay exclusively locked until commit or rollback, and
nothing a transaction writes is visible to others before it commits.
Locking is per store, which is what the SQL row locks amount to given that
every locking query is pre-filtered to a single store.
"""
import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from capital_ledger.exceptions import LedgerTimeoutError
from capital_ledger.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class EntryRow:
    id: int
    created_at: datetime
    transaction_id: int
    product_id: int
    item: str
    qty: Decimal
    cost_price: int
    amount: int
    amount_paid: int = 0


@dataclass
class PaymentRow:
    id: int
    created_at: datetime
    store_id: int
    amount: int
    remaining_amount: int
    note: Optional[str] = None
    sender: Optional[str] = None
    raw: Optional[str] = None


@dataclass
class AllocationRow:
    id: int
    created_at: datetime
    payment_id: int
    entry_id: int
    amount: int


@dataclass
class ProductRow:
    id: int
    store_id: int
    name: str
    unit: Optional[str] = None


@dataclass
class SaleRow:
    id: int
    store_id: int
    product_id: int


def _utcnow():
    return datetime.now(timezone.utc)


class InMemoryLedgerStore(LedgerStore):
    """Thread-safe in-memory ledger with per-store exclusive locks."""

    def __init__(self, clock=_utcnow):
        self.clock = clock
        self._mutex = threading.Lock()
        self._ids = itertools.count(1)
        self._store_locks: Dict[int, threading.Lock] = {}
        self.stores: Dict[int, str] = {}
        self.products: Dict[int, ProductRow] = {}
        self.sales: Dict[int, SaleRow] = {}
        self.entries: Dict[int, EntryRow] = {}
        self.payments: Dict[int, PaymentRow] = {}
        self.allocations: Dict[int, AllocationRow] = {}

    # Fixture helpers

    def add_store(self, name: str) -> int:
        with self._mutex:
            store_id = next(self._ids)
            self.stores[store_id] = name
            self._store_locks[store_id] = threading.Lock()
        return store_id

    def add_product(self, store_id: int, name: str, unit: Optional[str] = None) -> int:
        with self._mutex:
            product_id = next(self._ids)
            self.products[product_id] = ProductRow(product_id, store_id, name, unit)
        return product_id

    def add_sale(self, product_id: int, store_id: Optional[int] = None) -> int:
        with self._mutex:
            sale_id = next(self._ids)
            product = self.products[product_id]
            store_id = product.store_id if store_id is None else store_id
            self.sales[sale_id] = SaleRow(sale_id, store_id, product_id)
        return sale_id

    # LedgerStore interface

    @contextmanager
    def transaction(self, timeout: Optional[float] = None):
        tx = MemoryLedgerTransaction(self, timeout)
        try:
            yield tx
            tx.commit()
        finally:
            tx.release()

    def store_exists(self, store_id) -> bool:
        with self._mutex:
            return store_id in self.stores

    def product_store_id(self, product_id) -> Optional[int]:
        with self._mutex:
            product = self.products.get(product_id)
            return product.store_id if product else None

    def transaction_store_id(self, transaction_id) -> Optional[int]:
        with self._mutex:
            sale = self.sales.get(transaction_id)
            return sale.store_id if sale else None

    def get_totals(self, store_id) -> Tuple[int, int]:
        with self._mutex:
            total_payable = sum(e.amount for e in self.entries.values() if self._entry_store(e) == store_id)
            total_paid = sum(p.amount for p in self.payments.values() if p.store_id == store_id)
        return total_payable, total_paid

    def get_product_totals(self, store_id) -> List[Dict]:
        with self._mutex:
            rows = []
            for product in self.products.values():
                if product.store_id != store_id:
                    continue
                entries = [e for e in self.entries.values() if e.product_id == product.id]
                rows.append({
                    'product_id': product.id,
                    'item': product.name,
                    'unit': product.unit,
                    'payable_total': sum(e.amount for e in entries),
                    'paid_total': sum(e.amount_paid for e in entries),
                })
        rows.sort(key=lambda r: r['item'])
        rows.sort(key=lambda r: r['payable_total'] - r['paid_total'], reverse=True)
        return rows

    def get_recent_payments(self, store_id, limit) -> List[Dict]:
        with self._mutex:
            payments = [p for p in self.payments.values() if p.store_id == store_id]
        payments.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [
            {
                'id': p.id,
                'created_at': p.created_at,
                'amount': p.amount,
                'remaining_amount': p.remaining_amount,
                'note': p.note,
            }
            for p in payments[:limit]
        ]

    # Internals shared with transactions

    def _entry_store(self, entry: EntryRow) -> Optional[int]:
        product = self.products.get(entry.product_id)
        return product.store_id if product else None

    def _next_id(self) -> int:
        with self._mutex:
            return next(self._ids)


class MemoryLedgerTransaction:
    """Buffered unit of work over an InMemoryLedgerStore."""

    def __init__(self, ledger: InMemoryLedgerStore, timeout: Optional[float]):
        self.ledger = ledger
        self.timeout = timeout
        self._held: List[threading.Lock] = []
        self._held_stores = set()
        # Private copies of locked or inserted rows, written back on commit
        self._entries: Dict[int, EntryRow] = {}
        self._payments: Dict[int, PaymentRow] = {}
        self._allocations: List[AllocationRow] = []
        self._deleted_sales = set()

    def _lock_store(self, store_id) -> None:
        if store_id in self._held_stores:
            return
        lock = self.ledger._store_locks[store_id]
        acquired = lock.acquire(timeout=self.timeout) if self.timeout else lock.acquire()
        if not acquired:
            logger.warning(f"Timed out after {self.timeout}s waiting for store {store_id}")
            raise LedgerTimeoutError()
        self._held.append(lock)
        self._held_stores.add(store_id)

    def insert_payment(self, store_id, amount, note=None, sender=None, raw=None) -> PaymentRow:
        payment = PaymentRow(
            id=self.ledger._next_id(),
            created_at=self.ledger.clock(),
            store_id=store_id,
            amount=amount,
            remaining_amount=amount,
            note=note,
            sender=sender,
            raw=raw
        )
        self._payments[payment.id] = payment
        return payment

    def insert_entry(self, transaction_id, product_id, item, qty, cost_price, amount) -> EntryRow:
        entry = EntryRow(
            id=self.ledger._next_id(),
            created_at=self.ledger.clock(),
            transaction_id=transaction_id,
            product_id=product_id,
            item=item,
            qty=qty,
            cost_price=cost_price,
            amount=amount
        )
        self._entries[entry.id] = entry
        return entry

    def insert_allocation(self, payment_id, entry_id, amount) -> AllocationRow:
        allocation = AllocationRow(
            id=self.ledger._next_id(),
            created_at=self.ledger.clock(),
            payment_id=payment_id,
            entry_id=entry_id,
            amount=amount
        )
        self._allocations.append(allocation)
        return allocation

    def _own_entry(self, entry: EntryRow) -> EntryRow:
        if entry.id not in self._entries:
            self._entries[entry.id] = replace(entry)
        return self._entries[entry.id]

    def _own_payment(self, payment: PaymentRow) -> PaymentRow:
        if payment.id not in self._payments:
            self._payments[payment.id] = replace(payment)
        return self._payments[payment.id]

    def lock_unpaid_entries(self, store_id) -> List[EntryRow]:
        self._lock_store(store_id)
        ledger = self.ledger
        with ledger._mutex:
            candidates = [
                self._own_entry(e) for e in ledger.entries.values()
                if ledger._entry_store(e) == store_id
            ]
            candidates += [
                e for e in self._entries.values()
                if e.id not in ledger.entries and ledger._entry_store(e) == store_id
            ]
        rows = [e for e in candidates if e.amount_paid < e.amount]
        return sorted(rows, key=lambda e: (e.created_at, e.id))

    def lock_open_payments(self, store_id) -> List[PaymentRow]:
        self._lock_store(store_id)
        ledger = self.ledger
        with ledger._mutex:
            candidates = [
                self._own_payment(p) for p in ledger.payments.values()
                if p.store_id == store_id
            ]
            candidates += [
                p for p in self._payments.values()
                if p.id not in ledger.payments and p.store_id == store_id
            ]
        rows = [p for p in candidates if p.remaining_amount > 0]
        return sorted(rows, key=lambda p: (p.created_at, p.id))

    def find_transaction(self, transaction_id, store_id) -> Optional[SaleRow]:
        with self.ledger._mutex:
            sale = self.ledger.sales.get(transaction_id)
        if sale is None or sale.store_id != store_id:
            return None
        return sale

    def lock_transaction_entries(self, transaction_id) -> List[EntryRow]:
        ledger = self.ledger
        with ledger._mutex:
            stores = {
                ledger._entry_store(e) for e in ledger.entries.values()
                if e.transaction_id == transaction_id
            }
            sale = ledger.sales.get(transaction_id)
            if sale is not None:
                stores.add(sale.store_id)
        for store_id in sorted(s for s in stores if s is not None):
            self._lock_store(store_id)
        with ledger._mutex:
            rows = [
                self._own_entry(e) for e in ledger.entries.values()
                if e.transaction_id == transaction_id
            ]
        return sorted(rows, key=lambda e: (e.created_at, e.id))

    def allocations_for_entries(self, entry_ids) -> List[AllocationRow]:
        entry_ids = set(entry_ids)
        with self.ledger._mutex:
            rows = [a for a in self.ledger.allocations.values() if a.entry_id in entry_ids]
        return sorted(rows, key=lambda a: a.id)

    def lock_payments(self, payment_ids) -> List[PaymentRow]:
        payment_ids = set(payment_ids)
        ledger = self.ledger
        with ledger._mutex:
            stores = {ledger.payments[pid].store_id for pid in payment_ids}
        for store_id in sorted(stores):
            self._lock_store(store_id)
        with ledger._mutex:
            rows = [self._own_payment(ledger.payments[pid]) for pid in payment_ids]
        return sorted(rows, key=lambda p: (p.created_at, p.id))

    def delete_transaction(self, transaction) -> None:
        self._deleted_sales.add(transaction.id)

    def commit(self) -> None:
        ledger = self.ledger
        with ledger._mutex:
            ledger.entries.update(self._entries)
            ledger.payments.update(self._payments)
            for allocation in self._allocations:
                ledger.allocations[allocation.id] = allocation
            for sale_id in self._deleted_sales:
                # Cascade: sale -> entries -> allocations
                ledger.sales.pop(sale_id, None)
                doomed = {eid for eid, e in ledger.entries.items() if e.transaction_id == sale_id}
                for entry_id in doomed:
                    del ledger.entries[entry_id]
                for allocation_id in [a.id for a in ledger.allocations.values() if a.entry_id in doomed]:
                    del ledger.allocations[allocation_id]

    def release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_stores.clear()
