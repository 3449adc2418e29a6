"""
Virtual Trading - ISO Reference Data Model
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from virtrade.db.database import Base


class IsoData(Base):
    """Country and currency reference data (ISO 3166 / ISO 4217)."""

    __tablename__ = "iso_data"

    country_alpha2_code = Column(String(2), primary_key=True)
    country_alpha3_code = Column(String(3), nullable=True)
    country_name = Column(String(100), nullable=False)

    currency_alpha_code = Column(String(3), nullable=False, index=True)
    currency_numeric_code = Column(String(3), nullable=True)
    currency_name = Column(String(100), nullable=True)
    currency_minor_units = Column(Integer, nullable=True)

    active = Column(Boolean, default=True, nullable=False)

    # Audit
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    activated_by = Column(String(255), nullable=True)
    activated_at = Column(DateTime, nullable=True)
    deactivated_by = Column(String(255), nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<IsoData {self.country_alpha2_code} {self.currency_alpha_code}>"
