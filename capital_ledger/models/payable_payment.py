"""Payable payment model - a capital contribution that offsets entries."""
from sqlalchemy import Column, BigInteger, DateTime, String, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK


class PayablePayment(Base):
    """Capital contribution; remaining_amount is unconsumed credit."""
    
    __tablename__ = 'payable_payment'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payable_payment_amount_positive'),
        CheckConstraint('remaining_amount >= 0', name='ck_payable_payment_remaining_non_negative'),
        Index('ix_payable_payment_created', 'created_at', 'id'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    store_id = Column(BigInteger, ForeignKey('store.id'), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    remaining_amount = Column(BigInteger, nullable=False)
    note = Column(Text, nullable=True)
    sender = Column(String, nullable=True)
    raw = Column(Text, nullable=True)
    
    # Relationships
    store = relationship('Store')
    allocations = relationship(
        'PayableAllocation',
        back_populates='payment',
        cascade='all, delete-orphan',
        passive_deletes=True
    )
    
    def __repr__(self):
        return f"<PayablePayment(id={self.id}, amount={self.amount}, remaining={self.remaining_amount})>"
