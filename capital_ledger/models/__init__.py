"""Models package - exports all SQLAlchemy models."""
from capital_ledger.models.store import Store
from capital_ledger.models.product import Product, PayableMode
from capital_ledger.models.stock_transaction import StockTransaction, TransactionType

# Payable ledger
from capital_ledger.models.payable_entry import PayableEntry
from capital_ledger.models.payable_payment import PayablePayment
from capital_ledger.models.payable_allocation import PayableAllocation

__all__ = [
    'Store', 'Product', 'PayableMode',
    'StockTransaction', 'TransactionType',
    'PayableEntry', 'PayablePayment', 'PayableAllocation',
]
