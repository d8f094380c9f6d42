import pytest
import os
import tempfile
import uuid
from decimal import Decimal

# Tests run against a throwaway SQLite file unless a database is configured
if 'DATABASE_URL' not in os.environ:
    _db_dir = tempfile.mkdtemp(prefix='capital-ledger-tests-')
    os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_db_dir, 'ledger.sqlite3')}"

from capital_ledger import create_app
from capital_ledger import database
from capital_ledger.database import get_session
from capital_ledger.models import (
    Store, Product, PayableMode, StockTransaction, TransactionType,
    PayableEntry, PayablePayment, PayableAllocation
)
from capital_ledger.services.ledger_store import SqlLedgerStore
from capital_ledger.services.memory_ledger_store import InMemoryLedgerStore


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    database.create_tables()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


class SqlWorld:
    """Builds stores/products/sales in the SQL database and reads ledger rows back."""

    kind = 'sql'

    def __init__(self, session):
        self.session = session
        self.ledger = SqlLedgerStore(session)

    def add_store(self, name='Store'):
        store = Store(name=f'{name} {uuid.uuid4().hex[:8]}', is_active=True)
        self.session.add(store)
        self.session.commit()
        return store.id

    def add_product(self, store_id, name='Tissue', unit='pcs', mode=PayableMode.CREDIT):
        product = Product(store_id=store_id, name=name, unit=unit, payable_mode=mode, is_active=True)
        self.session.add(product)
        self.session.commit()
        return product.id

    def add_sale(self, product_id, qty=1, cost_price=None, store_id=None):
        product = self.session.get(Product, product_id)
        sale = StockTransaction(
            type=TransactionType.OUT,
            product_id=product.id,
            store_id=store_id or product.store_id,
            item=product.name,
            qty=Decimal(str(qty)),
            unit_price=0,
            total=0,
            cost_price=cost_price,
            cost_total=cost_price * qty if cost_price is not None else None
        )
        self.session.add(sale)
        self.session.commit()
        return sale.id

    def entries(self, store_id):
        return (
            self.session.query(PayableEntry)
            .join(Product, Product.id == PayableEntry.product_id)
            .filter(Product.store_id == store_id)
            .order_by(PayableEntry.id)
            .all()
        )

    def payments(self, store_id):
        return (
            self.session.query(PayablePayment)
            .filter(PayablePayment.store_id == store_id)
            .order_by(PayablePayment.id)
            .all()
        )

    def entry(self, entry_id):
        self.session.expire_all()
        return self.session.query(PayableEntry).filter_by(id=entry_id).first()

    def payment(self, payment_id):
        self.session.expire_all()
        return self.session.query(PayablePayment).filter_by(id=payment_id).first()

    def allocations(self):
        """(payment_id, entry_id, amount, payment store, entry store) of every allocation."""
        rows = (
            self.session.query(
                PayableAllocation.payment_id,
                PayableAllocation.entry_id,
                PayableAllocation.amount,
                PayablePayment.store_id,
                Product.store_id
            )
            .join(PayablePayment, PayablePayment.id == PayableAllocation.payment_id)
            .join(PayableEntry, PayableEntry.id == PayableAllocation.entry_id)
            .join(Product, Product.id == PayableEntry.product_id)
            .all()
        )
        return [tuple(r) for r in rows]


class MemoryWorld:
    """Same helpers over an InMemoryLedgerStore."""

    kind = 'memory'

    def __init__(self):
        self.ledger = InMemoryLedgerStore()

    def add_store(self, name='Store'):
        return self.ledger.add_store(name)

    def add_product(self, store_id, name='Tissue', unit='pcs', mode=PayableMode.CREDIT):
        return self.ledger.add_product(store_id, name, unit)

    def add_sale(self, product_id, qty=1, cost_price=None, store_id=None):
        return self.ledger.add_sale(product_id, store_id)

    def entries(self, store_id):
        rows = [e for e in self.ledger.entries.values() if self.ledger.products[e.product_id].store_id == store_id]
        return sorted(rows, key=lambda e: e.id)

    def payments(self, store_id):
        return sorted((p for p in self.ledger.payments.values() if p.store_id == store_id), key=lambda p: p.id)

    def entry(self, entry_id):
        return self.ledger.entries.get(entry_id)

    def payment(self, payment_id):
        return self.ledger.payments.get(payment_id)

    def allocations(self):
        rows = []
        for a in self.ledger.allocations.values():
            entry = self.ledger.entries[a.entry_id]
            rows.append((
                a.payment_id,
                a.entry_id,
                a.amount,
                self.ledger.payments[a.payment_id].store_id,
                self.ledger.products[entry.product_id].store_id
            ))
        return rows


@pytest.fixture(params=['sql', 'memory'])
def world(request):
    """Ledger world backed by SQLite or by the in-memory store."""
    if request.param == 'sql':
        return SqlWorld(request.getfixturevalue('session'))
    return MemoryWorld()


@pytest.fixture
def sql_world(session):
    return SqlWorld(session)


@pytest.fixture
def memory_world():
    return MemoryWorld()


def add_debt(world, store_id, amount, item='Tissue', cost_price=None, qty=1):
    """Create product + sale + entry for `amount` through record_debt."""
    from capital_ledger.services.allocation_service import record_debt

    cost_price = cost_price if cost_price is not None else amount // qty
    product_id = world.add_product(store_id, name=item)
    sale_id = world.add_sale(product_id, qty=qty, cost_price=cost_price)
    return record_debt(
        world.ledger,
        transaction_id=sale_id,
        product_id=product_id,
        item=item,
        qty=qty,
        cost_price=cost_price,
        amount=amount,
        store_id=store_id
    )


def assert_invariants(world, store_ids):
    """Conservation and isolation invariants over the given stores."""
    allocations = world.allocations()

    for alloc in allocations:
        payment_id, entry_id, amount, payment_store, entry_store = alloc
        assert amount > 0
        assert payment_store == entry_store

    for store_id in store_ids:
        for entry in world.entries(store_id):
            allocated = sum(a[2] for a in allocations if a[1] == entry.id)
            assert 0 <= entry.amount_paid <= entry.amount
            assert entry.amount_paid == allocated

        for payment in world.payments(store_id):
            allocated = sum(a[2] for a in allocations if a[0] == payment.id)
            assert 0 <= payment.remaining_amount <= payment.amount
            assert payment.remaining_amount == payment.amount - allocated


@pytest.fixture
def debt():
    """Factory: debt(world, store_id, amount, item=...) -> DebtResult."""
    return add_debt


@pytest.fixture
def invariants():
    """Checker: invariants(world, [store_id, ...])."""
    return assert_invariants
