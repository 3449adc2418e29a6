"""
Virtual Trading - Portfolio Model
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from virtrade.db.database import Base


class Portfolio(Base):
    """Named grouping of trading transactions in a single currency."""

    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    currency = Column(String(3), nullable=False)

    # Valuation
    invested_amount = Column(Numeric(20, 4), default=Decimal("0"), nullable=False)
    current_amount = Column(Numeric(20, 4), default=Decimal("0"), nullable=False)
    profit_loss = Column(Numeric(20, 4), default=Decimal("0"), nullable=False)
    valued_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transactions = relationship("TradingTransaction", back_populates="portfolio")

    def __repr__(self):
        return f"<Portfolio {self.name} ({self.currency}) owner={self.email}>"
