"""
Virtual Trading - Trading Transaction Model
"""
from datetime import datetime
from decimal import Decimal
from urllib.parse import quote
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from virtrade.db.database import Base


class TradingDeed(str, enum.Enum):
    """Direction of a trade."""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: str) -> "TradingDeed":
        """Parse 'buy'/'sell' in any case; anything else raises ValueError."""
        name = str(value).strip().upper()
        if name not in cls.__members__:
            raise ValueError(f"Unexpected trading deed: {value}")
        return cls[name]


class TradingTransaction(Base):
    """Executed trade. Positions are derived by folding these rows."""

    __tablename__ = "trading_transactions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), nullable=False, index=True)

    # Symbol info
    symbol = Column(String(32), nullable=False, index=True)
    symbol_name = Column(String(255), nullable=True)

    # Trade details
    deed = Column(SQLEnum(TradingDeed), nullable=False)
    quantity = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    price = Column(Numeric(20, 4), nullable=False)
    cost = Column(Numeric(20, 4), nullable=False)  # gross +/- fee

    # Optional grouping
    portfolio_id = Column(Integer, ForeignKey("portfolios.id", ondelete="SET NULL"), nullable=True, index=True)

    # Timestamps
    transaction_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    portfolio = relationship("Portfolio", back_populates="transactions")

    @property
    def encoded_symbol(self) -> str:
        return quote(self.symbol, safe="")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.deed == TradingDeed.BUY else -self.quantity

    def __repr__(self):
        return f"<TradingTransaction {self.deed.value} {self.symbol} qty={self.quantity}>"
