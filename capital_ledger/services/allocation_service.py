"""Allocation engine - FIFO matching of capital payments against payable entries.

Two entry points mutate the ledger:

- ``apply_payment``: new capital comes in and settles the oldest open
  entries of the store first.
- ``record_debt``: a credit sale creates a new entry that is immediately
  offset by the oldest unconsumed payments of the store.

Both run inside a single ``LedgerStore`` transaction and share one matching
routine, so tie-breaking (created_at ASC, id ASC) is identical in both
directions. Conservation invariants:

    entry.amount_paid       == sum(allocations of entry)     <= entry.amount
    payment.remaining_amount == payment.amount - sum(allocations of payment) >= 0
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from capital_ledger.exceptions import (
    InvalidAmountError, NotFoundError, StoreMismatchError, StoreNotFoundError
)
from capital_ledger.utils.metrics import record_allocations

logger = logging.getLogger(__name__)

# Largest value a BIGINT money column can hold
MAX_MINOR_UNITS = 2 ** 63 - 1

Row = TypeVar('Row')
Settled = TypeVar('Settled')


@dataclass(frozen=True)
class EntrySettlement:
    """Part of an entry settled by a payment."""
    entry_id: int
    item: str
    qty: Decimal
    cost_price: int
    amount: int


@dataclass(frozen=True)
class PaymentSettlement:
    """Part of a payment's credit consumed by (or returned from) an entry."""
    payment_id: int
    amount: int


@dataclass
class PaymentResult:
    payment_id: int
    amount: int
    remaining: int
    allocations: List[EntrySettlement] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return self.amount - self.remaining


@dataclass
class DebtResult:
    entry_id: int
    amount: int
    remaining: int
    allocations: List[PaymentSettlement] = field(default_factory=list)


@dataclass
class ReleaseResult:
    transaction_id: int
    released: List[PaymentSettlement] = field(default_factory=list)

    @property
    def total_released(self) -> int:
        return sum(r.amount for r in self.released)


def _require_positive_amount(value, field_name='amount') -> int:
    # bool is an int subclass; money must be a real whole number of minor units
    if isinstance(value, bool) or not isinstance(value, int) or not 0 < value <= MAX_MINOR_UNITS:
        raise InvalidAmountError(value, field_name)
    return value


def _require_quantity(value) -> Decimal:
    try:
        qty = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(value, 'qty')
    if not qty.is_finite() or qty <= 0:
        raise InvalidAmountError(value, 'qty')
    return qty


def _require_store(ledger, store_id) -> None:
    if store_id is None or not ledger.store_exists(store_id):
        raise StoreNotFoundError(store_id)


def _match_fifo(
    amount: int,
    rows: Sequence[Row],
    available: Callable[[Row], int],
    settle: Callable[[Row, int], Settled]
) -> Tuple[int, List[Settled]]:
    """
    Walk `rows` (already locked, oldest first) consuming up to `amount`.

    Args:
        amount: Amount to distribute (payment credit or new debt)
        rows: Counterpart rows in FIFO order
        available: Returns how much of a row can still be matched
        settle: Persists one match of (row, portion) and returns its record

    Returns:
        (unmatched remainder, list of settle() results)
    """
    remaining = amount
    settled = []
    for row in rows:
        if remaining <= 0:
            break
        open_amount = available(row)
        if open_amount <= 0:
            continue
        portion = min(open_amount, remaining)
        settled.append(settle(row, portion))
        remaining -= portion
    return remaining, settled


def apply_payment(
    ledger,
    amount: int,
    store_id: int,
    note: Optional[str] = None,
    sender: Optional[str] = None,
    raw: Optional[str] = None,
    timeout: Optional[float] = None
) -> PaymentResult:
    """
    Record a capital contribution and settle the store's oldest debts with it.

    Args:
        ledger: LedgerStore handle
        amount: Payment amount in minor currency units (> 0)
        store_id: Store receiving the capital
        note, sender, raw: Free-text audit metadata
        timeout: Max seconds to wait for row locks

    Returns:
        PaymentResult; `remaining` is left on the payment as credit for future debts.

    Raises:
        InvalidAmountError: amount is not a positive integer
        StoreNotFoundError: store_id does not exist
        LedgerTimeoutError: locks not acquired within timeout
    """
    _require_positive_amount(amount)
    _require_store(ledger, store_id)

    with ledger.transaction(timeout=timeout) as tx:
        payment = tx.insert_payment(store_id, amount, note=note, sender=sender, raw=raw)
        entries = tx.lock_unpaid_entries(store_id)

        def settle(entry, portion):
            tx.insert_allocation(payment.id, entry.id, portion)
            entry.amount_paid += portion
            return EntrySettlement(
                entry_id=entry.id,
                item=entry.item,
                qty=entry.qty,
                cost_price=entry.cost_price,
                amount=portion
            )

        remaining, allocations = _match_fifo(
            amount,
            entries,
            available=lambda entry: entry.amount - entry.amount_paid,
            settle=settle
        )
        payment.remaining_amount = remaining
        payment_id = payment.id

    logger.info(
        f"[LEDGER] Payment {payment_id} store={store_id} amount={amount} "
        f"settled {len(allocations)} entries, remaining={remaining}"
    )
    record_allocations('payment', amount - remaining)
    return PaymentResult(payment_id=payment_id, amount=amount, remaining=remaining, allocations=allocations)


def record_debt(
    ledger,
    transaction_id: int,
    product_id: int,
    item: str,
    qty,
    cost_price: int,
    amount: int,
    store_id: int,
    timeout: Optional[float] = None
) -> DebtResult:
    """
    Create the payable entry of a credit sale and offset it with existing credit.

    Args:
        ledger: LedgerStore handle
        transaction_id: Originating stock transaction (sale); must belong to store_id
        product_id: Sold product; must belong to store_id
        item: Item name shown in settlement breakdowns
        qty: Quantity sold (> 0)
        cost_price: Unit cost in minor units (>= 0)
        amount: Total cost owed in minor units (> 0)
        store_id: Store the sale belongs to
        timeout: Max seconds to wait for row locks

    Returns:
        DebtResult; `remaining` is the entry's outstanding debt after credit is used.

    Raises:
        InvalidAmountError, NotFoundError, StoreNotFoundError, StoreMismatchError, LedgerTimeoutError
    """
    _require_positive_amount(amount)
    if isinstance(cost_price, bool) or not isinstance(cost_price, int) or not 0 <= cost_price <= MAX_MINOR_UNITS:
        raise InvalidAmountError(cost_price, 'cost_price')
    qty = _require_quantity(qty)
    _require_store(ledger, store_id)

    product_store = ledger.product_store_id(product_id)
    if product_store is None:
        raise NotFoundError(f"Product {product_id} not found", payload={'product_id': product_id})
    if product_store != store_id:
        raise StoreMismatchError(product_id, store_id)

    sale_store = ledger.transaction_store_id(transaction_id)
    if sale_store is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", payload={'transaction_id': transaction_id})
    if sale_store != store_id:
        raise StoreMismatchError(transaction_id, store_id, resource='transaction')

    with ledger.transaction(timeout=timeout) as tx:
        entry = tx.insert_entry(transaction_id, product_id, item, qty, cost_price, amount)
        payments = tx.lock_open_payments(store_id)

        def settle(payment, portion):
            tx.insert_allocation(payment.id, entry.id, portion)
            payment.remaining_amount -= portion
            entry.amount_paid += portion
            return PaymentSettlement(payment_id=payment.id, amount=portion)

        remaining, allocations = _match_fifo(
            amount,
            payments,
            available=lambda payment: payment.remaining_amount,
            settle=settle
        )
        entry_id = entry.id

    logger.info(
        f"[LEDGER] Debt entry {entry_id} store={store_id} tx={transaction_id} amount={amount} "
        f"offset by {len(allocations)} payments, outstanding={remaining}"
    )
    record_allocations('debt', amount - remaining)
    return DebtResult(entry_id=entry_id, amount=amount, remaining=remaining, allocations=allocations)


def release_sale_debt(
    ledger,
    transaction_id: int,
    store_id: int,
    timeout: Optional[float] = None
) -> ReleaseResult:
    """
    Delete a sale transaction, returning credit its entries had consumed.

    Deleting the transaction cascades to all of its entries and their allocations;
    the allocated amounts go back to the payments' remaining_amount first so
    payment conservation still holds once the allocation rows are gone.
    Freed credit is not re-matched here; it offsets the next recorded debt.

    Raises:
        StoreNotFoundError: store_id does not exist
        NotFoundError: transaction not found in the store
    """
    _require_store(ledger, store_id)

    with ledger.transaction(timeout=timeout) as tx:
        transaction = tx.find_transaction(transaction_id, store_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction {transaction_id} not found",
                payload={'transaction_id': transaction_id}
            )

        entries = tx.lock_transaction_entries(transaction_id)
        allocations = tx.allocations_for_entries([e.id for e in entries])

        returned = {}
        for allocation in allocations:
            returned[allocation.payment_id] = returned.get(allocation.payment_id, 0) + allocation.amount

        released = []
        for payment in tx.lock_payments(returned.keys()):
            payment.remaining_amount += returned[payment.id]
            released.append(PaymentSettlement(payment_id=payment.id, amount=returned[payment.id]))

        tx.delete_transaction(transaction)

    result = ReleaseResult(transaction_id=transaction_id, released=released)
    logger.info(
        f"[LEDGER] Released tx={transaction_id} store={store_id}: "
        f"{len(entries)} entries removed, {result.total_released} credit returned"
    )
    return result
