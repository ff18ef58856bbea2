"""
SQLAlchemy table definitions for the dividends ledger.

Timestamps are Unix seconds (Integer). Percentages are stored as decimal strings
so that neither SQLite nor PostgreSQL rounds them; lamports and token base units
are BigInteger.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AutoClaimSettingsRow(Base):
    __tablename__ = "auto_claim_settings"

    id = Column(Integer, primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    claim_interval_minutes = Column(Integer, nullable=False, default=10)
    distribution_percentage = Column(String(32), nullable=False, default="30")
    min_claim_amount_lamports = Column(BigInteger, nullable=False, default=1_000_000)
    fee_source_account = Column(String(64), nullable=True)
    token_mint_address = Column(String(64), nullable=True)
    next_claim_scheduled = Column(Integer, nullable=True)
    last_successful_claim = Column(Integer, nullable=True)
    sell_threshold_percent = Column(String(32), nullable=False, default="30")
    auto_payout_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(Integer, nullable=True)


class DividendClaimRow(Base):
    """
    One row per claim cycle attempt. At most one row may be 'processing': the
    partial unique index is the cross-process mutual exclusion marker.
    """

    __tablename__ = "dividend_claims"
    __table_args__ = (
        Index(
            "uq_dividend_claims_single_processing",
            "status",
            unique=True,
            sqlite_where=text("status = 'processing'"),
            postgresql_where=text("status = 'processing'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    status = Column(String(16), nullable=False, index=True)
    claim_timestamp = Column(Integer, nullable=False, index=True)
    claimed_amount = Column(BigInteger, nullable=False, default=0)
    distribution_amount = Column(BigInteger, nullable=False, default=0)
    transaction_id = Column(String(128), nullable=True)
    total_supply = Column(BigInteger, nullable=False, default=0)
    eligible_holder_count = Column(Integer, nullable=False, default=0)
    holder_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    failure_stage = Column(String(32), nullable=True)
    completed_at = Column(Integer, nullable=True)


class HolderSnapshotRow(Base):
    __tablename__ = "holder_snapshots"
    __table_args__ = (UniqueConstraint("claim_id", "holder_address", name="uq_holder_snapshots_claim_holder"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("dividend_claims.id"), nullable=False, index=True)
    holder_address = Column(String(64), nullable=False, index=True)
    token_balance = Column(BigInteger, nullable=False)
    percentage_of_supply = Column(String(32), nullable=False)
    initial_balance = Column(BigInteger, nullable=False)
    retention_percentage = Column(String(32), nullable=False)
    is_eligible = Column(Boolean, nullable=False)


class HolderEligibilityRow(Base):
    __tablename__ = "holder_eligibility"
    __table_args__ = (
        UniqueConstraint("token_mint_address", "holder_address", name="uq_holder_eligibility_mint_holder"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_mint_address = Column(String(64), nullable=False, index=True)
    holder_address = Column(String(64), nullable=False, index=True)
    current_balance = Column(BigInteger, nullable=False, default=0)
    initial_balance = Column(BigInteger, nullable=False, default=0)
    retention_percentage = Column(String(32), nullable=False, default="100")
    is_eligible = Column(Boolean, nullable=False, default=True, index=True)
    permanently_blacklisted = Column(Boolean, nullable=False, default=False, index=True)
    violation_count = Column(Integer, nullable=False, default=0)
    blacklist_reason = Column(Text, nullable=True)
    blacklisted_at = Column(Integer, nullable=True)
    first_seen_at = Column(Integer, nullable=True)
    last_checked_at = Column(Integer, nullable=True)


class DividendDistributionRow(Base):
    __tablename__ = "dividend_distributions"
    __table_args__ = (
        UniqueConstraint("claim_id", "holder_address", name="uq_dividend_distributions_claim_holder"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("dividend_claims.id"), nullable=False, index=True)
    holder_address = Column(String(64), nullable=False, index=True)
    token_balance = Column(BigInteger, nullable=False)
    share_percentage = Column(String(32), nullable=False)
    dividend_amount = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    created_at = Column(Integer, nullable=True)


class DividendPayoutRow(Base):
    """Append-only: one row per transfer attempt."""

    __tablename__ = "dividend_payouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    distribution_id = Column(Integer, ForeignKey("dividend_distributions.id"), nullable=False, index=True)
    claim_id = Column(Integer, ForeignKey("dividend_claims.id"), nullable=False, index=True)
    holder_address = Column(String(64), nullable=False)
    payout_amount = Column(BigInteger, nullable=False)
    payout_status = Column(String(16), nullable=False)
    transaction_signature = Column(String(128), nullable=True, index=True)
    error_message = Column(Text, nullable=True)
    paid_at = Column(Integer, nullable=True)
    created_at = Column(Integer, nullable=True)
