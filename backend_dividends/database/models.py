"""
Domain models for dividend entities.

Settings, claims, per-claim holder snapshots, cross-claim holder eligibility,
distributions and payouts. Used by the ledger and evaluator; no ORM coupling so
backends stay swappable. Native amounts are integer lamports, token amounts are
integer base units, timestamps are Unix seconds.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

LAMPORTS_PER_SOL = 1_000_000_000

CLAIM_PROCESSING = "processing"
CLAIM_COMPLETED = "completed"
CLAIM_FAILED = "failed"
CLAIM_STATUSES = (CLAIM_PROCESSING, CLAIM_COMPLETED, CLAIM_FAILED)

DISTRIBUTION_PENDING = "pending"
DISTRIBUTION_COMPLETED = "completed"
DISTRIBUTION_FAILED = "failed"
# Reserved for a transfer; never picked up again automatically
DISTRIBUTION_SUBMITTED = "submitted"

PAYOUT_COMPLETED = "completed"
PAYOUT_FAILED = "failed"
PAYOUT_UNCONFIRMED = "unconfirmed"


def lamports_to_sol(lamports: int | None) -> Decimal:
    return Decimal(lamports or 0) / Decimal(LAMPORTS_PER_SOL)


def sol_to_lamports(sol: Decimal | float | str) -> int:
    """Convert SOL to lamports, truncating sub-lamport dust."""
    return int(Decimal(str(sol)) * LAMPORTS_PER_SOL)


def iso_or_none(ts: int | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in data.items()}


@dataclass
class AutoClaimSettings:
    """Singleton policy row. Admin owns policy fields; the scheduler owns the timestamps."""

    enabled: bool = False
    claim_interval_minutes: int = 10
    distribution_percentage: Decimal = Decimal("30")
    min_claim_amount_lamports: int = 1_000_000
    fee_source_account: str | None = None
    token_mint_address: str | None = None
    next_claim_scheduled: int | None = None
    last_successful_claim: int | None = None
    sell_threshold_percent: Decimal = Decimal("30")
    auto_payout_enabled: bool = False
    updated_at: int | None = None

    @property
    def min_claim_amount_sol(self) -> Decimal:
        return lamports_to_sol(self.min_claim_amount_lamports)

    @property
    def required_retention_percent(self) -> Decimal:
        return Decimal(100) - self.sell_threshold_percent

    def to_dict(self) -> dict[str, Any]:
        data = _jsonable(asdict(self))
        data["min_claim_amount_sol"] = str(self.min_claim_amount_sol)
        data["next_claim_scheduled_iso"] = iso_or_none(self.next_claim_scheduled)
        data["last_successful_claim_iso"] = iso_or_none(self.last_successful_claim)
        return data


@dataclass
class DividendClaim:
    """One claim cycle attempt. Never deleted."""

    id: int | None
    status: str
    claim_timestamp: int
    claimed_amount: int = 0
    """Lamports realized by the fee claim action."""
    distribution_amount: int = 0
    transaction_id: str | None = None
    total_supply: int = 0
    eligible_holder_count: int = 0
    holder_count: int = 0
    error_message: str | None = None
    failure_stage: str | None = None
    """Pipeline stage that failed: fee_claim, snapshot, eligibility, distribution, persistence, abandoned."""
    completed_at: int | None = None

    @property
    def funds_claimed(self) -> bool:
        """True when the fee source already moved funds for this claim."""
        return bool(self.transaction_id) and self.claimed_amount > 0

    @property
    def needs_reconciliation(self) -> bool:
        """Failed after a fee-claim transaction was sent; funds may sit undistributed."""
        return self.status == CLAIM_FAILED and bool(self.transaction_id)

    @property
    def claimed_amount_sol(self) -> Decimal:
        return lamports_to_sol(self.claimed_amount)

    @property
    def distribution_amount_sol(self) -> Decimal:
        return lamports_to_sol(self.distribution_amount)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["funds_claimed"] = self.funds_claimed
        data["needs_reconciliation"] = self.needs_reconciliation
        data["claimed_amount_sol"] = str(self.claimed_amount_sol)
        data["distribution_amount_sol"] = str(self.distribution_amount_sol)
        data["claim_timestamp_iso"] = iso_or_none(self.claim_timestamp)
        return data


@dataclass
class HolderSnapshot:
    """Immutable per-claim record of one holder."""

    claim_id: int
    holder_address: str
    token_balance: int
    percentage_of_supply: Decimal
    initial_balance: int
    retention_percentage: Decimal
    is_eligible: bool
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class HolderEligibility:
    """Cross-claim loyalty state of a holder for one token mint."""

    token_mint_address: str
    holder_address: str
    current_balance: int
    initial_balance: int
    retention_percentage: Decimal = Decimal("100")
    is_eligible: bool = True
    permanently_blacklisted: bool = False
    violation_count: int = 0
    blacklist_reason: str | None = None
    blacklisted_at: int | None = None
    first_seen_at: int | None = None
    last_checked_at: int | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class DividendDistribution:
    claim_id: int
    holder_address: str
    token_balance: int
    share_percentage: Decimal
    """Share of the eligible pool, not of total supply."""
    dividend_amount: int
    status: str = DISTRIBUTION_PENDING
    created_at: int | None = None
    id: int | None = None

    @property
    def dividend_amount_sol(self) -> Decimal:
        return lamports_to_sol(self.dividend_amount)

    def to_dict(self) -> dict[str, Any]:
        data = _jsonable(asdict(self))
        data["dividend_amount_sol"] = str(self.dividend_amount_sol)
        return data


@dataclass
class DividendPayout:
    """Realized value transfer for one distribution attempt."""

    distribution_id: int
    claim_id: int
    holder_address: str
    payout_amount: int
    payout_status: str
    transaction_signature: str | None = None
    error_message: str | None = None
    paid_at: int | None = None
    created_at: int | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["payout_amount_sol"] = str(lamports_to_sol(self.payout_amount))
        return data


@dataclass
class ClaimTotals:
    """Aggregates over the claim ledger for reporting."""

    total_claims: int = 0
    completed_claims: int = 0
    failed_claims: int = 0
    total_claimed: int = 0
    total_distributed: int = 0
    distribution_count: int = 0
    payout_count: int = 0
    total_paid: int = 0
    last_claim_at: int | None = None
    status_counts: dict[str, int] = field(default_factory=dict)
