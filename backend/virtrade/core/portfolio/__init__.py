"""
Portfolio Management
"""
from virtrade.core.portfolio.service import (
    PortfolioService,
    PortfolioDetails,
    ResetResult,
    Valuation,
    valuate,
)

__all__ = [
    "PortfolioService",
    "PortfolioDetails",
    "ResetResult",
    "Valuation",
    "valuate",
]
