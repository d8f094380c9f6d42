"""
Unit tests for SQLAlchemy models and storage constraints.
"""

import pytest
import uuid
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from capital_ledger.exceptions import InvalidAmountError, StoreNotFoundError, LedgerError
from capital_ledger.models import (
    Store, Product, PayableMode, PayableEntry, PayablePayment,
    StockTransaction, TransactionType
)


class TestProductModel:

    def test_defaults_to_credit_mode(self, session):
        store = Store(name=f'Store {uuid.uuid4().hex[:8]}')
        session.add(store)
        session.flush()
        product = Product(store_id=store.id, name='Tissue', default_buy_price=1500)
        session.add(product)
        session.commit()

        assert product.payable_mode == PayableMode.CREDIT
        assert product.is_credit is True
        assert product.cost_price == 1500

    def test_last_buy_price_wins(self):
        product = Product(name='Rice', default_buy_price=1000, last_buy_price=1200)
        assert product.cost_price == 1200


class TestPayableConstraints:
    """Positivity constraints enforced by storage."""

    @pytest.fixture
    def sale(self, session):
        store = Store(name=f'Store {uuid.uuid4().hex[:8]}')
        session.add(store)
        session.flush()
        product = Product(store_id=store.id, name='Tissue')
        session.add(product)
        session.flush()
        sale = StockTransaction(
            type=TransactionType.OUT, product_id=product.id, store_id=store.id,
            item='Tissue', qty=Decimal('1'), cost_price=100, cost_total=100
        )
        session.add(sale)
        session.commit()
        return sale

    def test_payment_amount_must_be_positive(self, session, sale):
        session.add(PayablePayment(store_id=sale.store_id, amount=0, remaining_amount=0))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_entry_amount_must_be_positive(self, session, sale):
        session.add(PayableEntry(
            transaction_id=sale.id, product_id=sale.product_id, item='Tissue',
            qty=Decimal('1'), cost_price=0, amount=0
        ))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_deleting_sale_cascades_to_entry(self, session, sale):
        entry = PayableEntry(
            transaction_id=sale.id, product_id=sale.product_id, item='Tissue',
            qty=Decimal('1'), cost_price=100, amount=100
        )
        session.add(entry)
        session.commit()
        entry_id = entry.id

        session.delete(sale)
        session.commit()

        session.expire_all()
        assert session.query(PayableEntry).filter_by(id=entry_id).count() == 0


class TestExceptions:

    def test_to_dict_carries_status_and_payload(self):
        error = StoreNotFoundError(42)
        assert error.status_code == 404
        assert error.to_dict() == {'store_id': 42, 'message': 'Store 42 not found', 'status': 'error'}

    def test_invalid_amount_is_client_error(self):
        error = InvalidAmountError(-1)
        assert isinstance(error, LedgerError)
        assert error.status_code == 400
