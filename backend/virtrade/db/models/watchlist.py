"""
Virtual Trading - Watch List Model
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from virtrade.db.database import Base


class WatchList(Base):
    """Symbol an account is watching."""

    __tablename__ = "watch_lists"
    __table_args__ = (
        UniqueConstraint("email", "symbol", name="uq_watch_list_email_symbol"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(32), nullable=False)
    symbol_name = Column(String(255), nullable=True)
    currency = Column(String(3), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<WatchList {self.email} {self.symbol}>"
