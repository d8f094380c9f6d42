"""Payable entry model - cost owed to the capital fund for one credit sale."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, String, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK


class PayableEntry(Base):
    """Debt obligation created when inventory is sold on credit."""
    
    __tablename__ = 'payable_entry'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payable_entry_amount_positive'),
        CheckConstraint('amount_paid >= 0', name='ck_payable_entry_paid_non_negative'),
        Index('ix_payable_entry_created', 'created_at', 'id'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    transaction_id = Column(
        BigInteger,
        ForeignKey('stock_transaction.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    item = Column(String, nullable=False)
    qty = Column(Numeric(14, 3), nullable=False)
    cost_price = Column(BigInteger, nullable=False)
    amount = Column(BigInteger, nullable=False)
    amount_paid = Column(BigInteger, nullable=False, default=0, server_default='0')
    
    # Relationships
    transaction = relationship('StockTransaction', back_populates='payable_entries')
    product = relationship('Product')
    allocations = relationship(
        'PayableAllocation',
        back_populates='entry',
        cascade='all, delete-orphan',
        passive_deletes=True
    )
    
    def __repr__(self):
        return f"<PayableEntry(id={self.id}, item='{self.item}', amount={self.amount}, paid={self.amount_paid})>"
    
    @property
    def outstanding(self) -> int:
        return self.amount - self.amount_paid
