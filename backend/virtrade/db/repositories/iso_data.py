"""
ISO Data Repository

Currency reference lookups.
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from virtrade.db.models.iso_data import IsoData
from virtrade.utils.currency import normalize_currency, DEFAULT_MINOR_UNITS


class IsoDataRepository:
    """Repository for IsoData reference rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_country(self, alpha2_code: str) -> Optional[IsoData]:
        result = await self.db.execute(
            select(IsoData).where(IsoData.country_alpha2_code == alpha2_code.upper())
        )
        return result.scalar_one_or_none()

    async def find_by_currency(self, currency: str) -> list[IsoData]:
        result = await self.db.execute(
            select(IsoData).where(IsoData.currency_alpha_code == normalize_currency(currency))
        )
        return list(result.scalars().all())

    async def is_active_currency(self, currency: str) -> bool:
        """True when at least one active country uses the currency."""
        result = await self.db.execute(
            select(IsoData.country_alpha2_code).where(
                and_(
                    IsoData.currency_alpha_code == normalize_currency(currency),
                    IsoData.active.is_(True),
                )
            ).limit(1)
        )
        return result.first() is not None

    async def active_currencies(self) -> list[str]:
        result = await self.db.execute(
            select(IsoData.currency_alpha_code)
            .where(IsoData.active.is_(True))
            .distinct()
            .order_by(IsoData.currency_alpha_code)
        )
        return list(result.scalars().all())

    async def minor_units(self, currency: str) -> int:
        """ISO 4217 minor units for a currency, defaulting to 2."""
        for row in await self.find_by_currency(currency):
            if row.currency_minor_units is not None:
                return row.currency_minor_units
        return DEFAULT_MINOR_UNITS
