"""Payable allocation model - append-only link between a payment and an entry."""
from sqlalchemy import Column, BigInteger, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK


class PayableAllocation(Base):
    """One matching event: `amount` of a payment settled against an entry."""
    
    __tablename__ = 'payable_allocation'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payable_allocation_amount_positive'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    payment_id = Column(
        BigInteger,
        ForeignKey('payable_payment.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    entry_id = Column(
        BigInteger,
        ForeignKey('payable_entry.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    amount = Column(BigInteger, nullable=False)
    
    # Relationships
    payment = relationship('PayablePayment', back_populates='allocations')
    entry = relationship('PayableEntry', back_populates='allocations')
    
    def __repr__(self):
        return f"<PayableAllocation(id={self.id}, payment={self.payment_id}, entry={self.entry_id}, amount={self.amount})>"
