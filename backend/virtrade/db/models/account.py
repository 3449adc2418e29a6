"""
Virtual Trading - Account and Trader Models
"""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, Date, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from virtrade.db.database import Base


class RiskTolerance(str, enum.Enum):
    """Trader risk tolerance level."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def parse(cls, value: str) -> "RiskTolerance":
        """Parse a case-insensitive name; unknown values raise ValueError."""
        name = str(value).strip().upper()
        if name not in cls.__members__:
            raise ValueError(f"Unexpected risk tolerance: {value}")
        return cls[name]


class Account(Base):
    """Account keyed by email."""

    __tablename__ = "accounts"

    email = Column(String(255), primary_key=True)
    hashed_password = Column(String(255), nullable=False, default="")

    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)

    # Admin access workflow
    admin_requested_at = Column(DateTime, nullable=True)
    admin_granted_at = Column(DateTime, nullable=True)

    # Deactivation
    deactivation_reason = Column(String(500), nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    trader = relationship("Trader", back_populates="account", uselist=False, cascade="all, delete-orphan")

    def deactivate(self, reason: str) -> None:
        self.is_active = False
        self.deactivation_reason = reason
        self.deactivated_at = datetime.utcnow()

    def __repr__(self):
        return f"<Account {self.email} active={self.is_active}>"


class Trader(Base):
    """Trader profile, one per account."""

    __tablename__ = "traders"

    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), primary_key=True)

    full_name = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    hide_date_of_birth = Column(Boolean, default=False, nullable=False)
    risk_tolerance = Column(SQLEnum(RiskTolerance), default=RiskTolerance.MEDIUM, nullable=False)

    # Preferences
    auto_transfer_to_bank = Column(Boolean, default=False, nullable=False)
    allow_reset = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    account = relationship("Account", back_populates="trader")

    def __repr__(self):
        return f"<Trader {self.email} ({self.risk_tolerance.value})>"
