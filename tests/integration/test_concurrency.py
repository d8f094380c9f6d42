"""
Concurrency tests for the allocation engine.
Threads run against the in-memory store, which enforces the same per-store
exclusive locking as SELECT ... FOR UPDATE on the SQL store.
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from capital_ledger.exceptions import LedgerTimeoutError
from capital_ledger.services.allocation_service import apply_payment, record_debt
from capital_ledger.services.balance_service import get_balance


def _run_together(*calls):
    """Start every call at the same moment and return their results in order."""
    barrier = threading.Barrier(len(calls))

    def wrapped(call):
        barrier.wait()
        return call()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(wrapped, call) for call in calls]
        return [f.result(timeout=10) for f in futures]


class TestConcurrentPayments:
    """Concurrent payments against shared entries."""

    def test_two_payments_never_overpay_one_entry(self, memory_world, debt, invariants):
        """Two 5000 payments against one 8000 entry: one ends at 0, the other at 2000."""
        world = memory_world
        store = world.add_store()
        entry = debt(world, store, 8000)

        results = _run_together(
            lambda: apply_payment(world.ledger, 5000, store),
            lambda: apply_payment(world.ledger, 5000, store),
        )

        assert sorted(r.remaining for r in results) == [0, 2000]
        assert sum(r.applied for r in results) == 8000
        assert world.entry(entry.entry_id).amount_paid == 8000
        invariants(world, [store])

    def test_same_scenario_sequential_on_sql(self, sql_world, debt, invariants):
        """Serialised order on the SQL store gives the same split."""
        world = sql_world
        store = world.add_store()
        entry = debt(world, store, 8000)

        first = apply_payment(world.ledger, 5000, store)
        second = apply_payment(world.ledger, 5000, store)

        assert (first.remaining, second.remaining) == (0, 2000)
        assert world.entry(entry.entry_id).amount_paid == 8000
        invariants(world, [store])

    def test_concurrent_debts_share_credit_without_double_spend(self, memory_world, invariants):
        world = memory_world
        store = world.add_store()
        credit = apply_payment(world.ledger, 6000, store)
        product = world.add_product(store)
        sales = [world.add_sale(product) for _ in range(4)]

        results = _run_together(*[
            (lambda sale=sale: record_debt(world.ledger, sale, product, 'Tissue', 1, 2500, 2500, store))
            for sale in sales
        ])

        consumed = sum(r.amount - r.remaining for r in results)
        assert consumed == 6000
        assert world.payment(credit.payment_id).remaining_amount == 0
        invariants(world, [store])

    def test_mixed_operations_across_stores_keep_invariants(self, memory_world, invariants):
        """Random payments and debts in parallel over three stores."""
        world = memory_world
        rng = random.Random(20240601)
        stores = [world.add_store(f'S{i}') for i in range(3)]
        products = {s: world.add_product(s) for s in stores}

        calls = []
        expected_paid = {s: 0 for s in stores}
        expected_payable = {s: 0 for s in stores}
        for _ in range(40):
            store = rng.choice(stores)
            amount = rng.randint(1, 50) * 100
            if rng.random() < 0.5:
                expected_paid[store] += amount
                calls.append(lambda s=store, a=amount: apply_payment(world.ledger, a, s))
            else:
                expected_payable[store] += amount
                sale = world.add_sale(products[store])
                calls.append(
                    lambda s=store, a=amount, sale=sale: record_debt(
                        world.ledger, sale, products[s], 'Tissue', 1, a, a, s
                    )
                )

        with ThreadPoolExecutor(max_workers=8) as pool:
            for future in [pool.submit(call) for call in calls]:
                future.result(timeout=10)

        invariants(world, stores)
        for store in stores:
            balance = get_balance(world.ledger, store)
            assert balance.total_paid == expected_paid[store]
            assert balance.total_payable == expected_payable[store]


class TestLockingContract:
    """Lock waits, store independence and timeouts."""

    def test_other_store_not_blocked_while_store_locked(self, memory_world, debt):
        world = memory_world
        store_a = world.add_store('A')
        store_b = world.add_store('B')
        debt(world, store_b, 1000)

        with world.ledger.transaction() as tx:
            tx.lock_unpaid_entries(store_a)
            with ThreadPoolExecutor(max_workers=1) as pool:
                result = pool.submit(apply_payment, world.ledger, 1000, store_b, timeout=1).result(timeout=5)

        assert result.remaining == 0

    def test_lock_wait_times_out_without_writing(self, memory_world, debt):
        world = memory_world
        store = world.add_store()
        debt(world, store, 1000)

        with world.ledger.transaction() as tx:
            tx.lock_unpaid_entries(store)
            with ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(apply_payment, world.ledger, 1000, store, timeout=0.2)
                with pytest.raises(LedgerTimeoutError):
                    future.result(timeout=5)

        assert world.payments(store) == []

    def test_waiting_payment_sees_committed_state(self, memory_world, debt, invariants):
        """A payment blocked behind another proceeds against the fresh amounts."""
        world = memory_world
        store = world.add_store()
        entry = debt(world, store, 3000)

        with ThreadPoolExecutor(max_workers=1) as pool:
            with world.ledger.transaction() as tx:
                rows = tx.lock_unpaid_entries(store)
                future = pool.submit(apply_payment, world.ledger, 3000, store)
                rows[0].amount_paid = 1000
                payment = tx.insert_payment(store, 1000)
                tx.insert_allocation(payment.id, rows[0].id, 1000)
                payment.remaining_amount = 0
            waiting = future.result(timeout=5)

        assert waiting.remaining == 1000
        assert world.entry(entry.entry_id).amount_paid == 3000
        invariants(world, [store])
