"""
Persistence for settings, claims, snapshots, eligibility, distributions and payouts.
"""

from backend_dividends.database.database import (
    Database,
    DatabaseBackend,
    SQLAlchemyBackend,
    get_database,
)
from backend_dividends.database.models import (
    AutoClaimSettings,
    ClaimTotals,
    DividendClaim,
    DividendDistribution,
    DividendPayout,
    HolderEligibility,
    HolderSnapshot,
)

__all__ = [
    "AutoClaimSettings",
    "ClaimTotals",
    "Database",
    "DatabaseBackend",
    "DividendClaim",
    "DividendDistribution",
    "DividendPayout",
    "HolderEligibility",
    "HolderSnapshot",
    "SQLAlchemyBackend",
    "get_database",
]
