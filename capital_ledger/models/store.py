"""Store model - tenancy boundary for products, sales and the payable ledger."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from capital_ledger.database import Base, BigIntPK


class Store(Base):
    """Store model - each business unit with its own ledger."""
    
    __tablename__ = 'store'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships
    products = relationship('Product', back_populates='store')
    
    def __repr__(self):
        return f"<Store(id={self.id}, name='{self.name}')>"
