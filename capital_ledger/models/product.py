"""Product model."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK
import enum


class PayableMode(enum.Enum):
    """How sales of a product settle their cost."""
    CREDIT = "credit"  # Sales create payable entries
    CASH = "cash"      # Cost settled immediately, no ledger entry


class Product(Base):
    """Product model."""
    
    __tablename__ = 'product'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    store_id = Column(BigInteger, ForeignKey('store.id'), nullable=False)
    name = Column(String, nullable=False)
    unit = Column(String(40), nullable=True)
    # Prices in minor currency units
    default_buy_price = Column(BigInteger, nullable=True)
    last_buy_price = Column(BigInteger, nullable=True)
    payable_mode = Column(
        Enum(PayableMode, name='payable_mode', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PayableMode.CREDIT
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships
    store = relationship('Store', back_populates='products')
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', mode={self.payable_mode.value})>"
    
    @property
    def cost_price(self):
        """Current unit cost: last purchase price, falling back to the default."""
        if self.last_buy_price is not None:
            return self.last_buy_price
        return self.default_buy_price
    
    @property
    def is_credit(self) -> bool:
        return self.payable_mode != PayableMode.CASH
