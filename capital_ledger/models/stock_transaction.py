"""Stock transaction model - the sale/purchase rows that originate payable entries."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, String, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK
import enum


class TransactionType(enum.Enum):
    """Stock transaction type enum."""
    IN = "IN"
    OUT = "OUT"
    DAMAGE = "DAMAGE"


class StockTransaction(Base):
    """Stock movement recorded from chat or dashboard."""
    
    __tablename__ = 'stock_transaction'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    type = Column(Enum(TransactionType, name='transaction_type'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    store_id = Column(BigInteger, ForeignKey('store.id'), nullable=False)
    item = Column(String, nullable=False)
    qty = Column(Numeric(14, 3), nullable=False)
    # Money columns in minor currency units
    unit_price = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False, default=0)
    cost_price = Column(BigInteger, nullable=True)
    cost_total = Column(BigInteger, nullable=True)
    note = Column(Text, nullable=True)
    sender = Column(String, nullable=True)
    raw = Column(Text, nullable=True)
    
    # Relationships
    product = relationship('Product')
    # Deleting a transaction removes its payable entries (and their allocations)
    payable_entries = relationship(
        'PayableEntry',
        back_populates='transaction',
        cascade='all, delete-orphan',
        passive_deletes=True
    )
    
    def __repr__(self):
        return f"<StockTransaction(id={self.id}, type={self.type.value}, item='{self.item}')>"
