"""
Claim Ledger: the claim state machine and its audit trail.

    processing --> completed
    processing --> failed

Transitions are one-directional and compare-and-set against the stored status.
A processing claim is the mutual-exclusion marker for the whole cycle. The
ledger is the only writer of claims, snapshots and distributions; funds already
collected are never rolled back here, a failed claim with funds_claimed is
reported by list_unreconciled() instead.
"""

from __future__ import annotations

import time
from typing import Callable, Sequence

from backend_dividends.core.exceptions import ClaimStateError
from backend_dividends.database.database import Database
from backend_dividends.database.models import (
    CLAIM_COMPLETED,
    CLAIM_FAILED,
    CLAIM_PROCESSING,
    DISTRIBUTION_PENDING,
    DividendClaim,
    DividendDistribution,
    HolderSnapshot,
)
from backend_dividends.distribution.calculator import HolderShare
from backend_dividends.dividends_logging import bind_claim, get_logger
from backend_dividends.loyalty.evaluator import EvaluationResult

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    CLAIM_PROCESSING: frozenset({CLAIM_COMPLETED, CLAIM_FAILED}),
    CLAIM_COMPLETED: frozenset(),
    CLAIM_FAILED: frozenset(),
}

STAGE_FEE_CLAIM = "fee_claim"
STAGE_SNAPSHOT = "snapshot"
STAGE_ELIGIBILITY = "eligibility"
STAGE_DISTRIBUTION = "distribution"
STAGE_PERSISTENCE = "persistence"
STAGE_ABANDONED = "abandoned"

MAX_ERROR_MESSAGE_LEN = 2000


class ClaimLedger:
    def __init__(self, db: Database, *, clock: Callable[[], float] = time.time) -> None:
        self._db = db
        self._clock = clock

    def active_claim(self) -> DividendClaim | None:
        return self._db.get_processing_claim()

    def get_claim(self, claim_id: int) -> DividendClaim:
        return self._db.require_claim(claim_id)

    def list_claims(self, *, limit: int = 50, status: str | None = None) -> list[DividendClaim]:
        return self._db.list_claims(limit=limit, status=status)

    def open_claim(self) -> DividendClaim:
        """Create the processing row. Raises ClaimInProgressError when one already exists."""
        claim = self._db.create_claim(int(self._clock()))
        bind_claim(claim.id).info("claim_opened")
        return claim

    def record_fee_claim(
        self,
        claim_id: int,
        *,
        claimed_amount: int,
        transaction_id: str,
        distribution_amount: int,
    ) -> DividendClaim:
        claim = self._db.update_claim_if_status(
            claim_id,
            CLAIM_PROCESSING,
            claimed_amount=int(claimed_amount),
            transaction_id=transaction_id,
            distribution_amount=int(distribution_amount),
        )
        bind_claim(claim_id).info(
            "claim_fees_recorded",
            claimed_lamports=claimed_amount,
            distribution_lamports=distribution_amount,
            transaction_id=transaction_id,
        )
        return claim

    def record_snapshot(self, claim_id: int, evaluation: EvaluationResult) -> list[HolderSnapshot]:
        """Write one row per holder of the snapshot, eligible or not. Only once per claim."""
        self._require_processing(claim_id)
        if self._db.get_snapshots(claim_id):
            raise ClaimStateError(f"Claim {claim_id} already has a holder snapshot")
        rows = [
            HolderSnapshot(
                claim_id=claim_id,
                holder_address=h.address,
                token_balance=h.balance,
                percentage_of_supply=h.percentage_of_supply,
                initial_balance=h.initial_balance,
                retention_percentage=h.retention_percentage,
                is_eligible=h.is_eligible,
            )
            for h in evaluation.holders
        ]
        self._db.insert_snapshots(rows)
        bind_claim(claim_id).info("claim_snapshot_recorded", holders=len(rows))
        return rows

    def record_distributions(self, claim_id: int, shares: Sequence[HolderShare]) -> list[DividendDistribution]:
        """Create the pending distribution rows. Exactly once per claim."""
        self._require_processing(claim_id)
        if self._db.get_distributions(claim_id):
            raise ClaimStateError(f"Claim {claim_id} already has distributions")
        now = int(self._clock())
        rows = self._db.insert_distributions(
            [
                DividendDistribution(
                    claim_id=claim_id,
                    holder_address=s.address,
                    token_balance=s.token_balance,
                    share_percentage=s.share_percentage,
                    dividend_amount=s.amount,
                    status=DISTRIBUTION_PENDING,
                    created_at=now,
                )
                for s in shares
            ]
        )
        bind_claim(claim_id).info(
            "claim_distributions_recorded",
            distributions=len(rows),
            total_lamports=sum(r.dividend_amount for r in rows),
        )
        return rows

    def complete(
        self,
        claim_id: int,
        *,
        total_supply: int,
        holder_count: int,
        eligible_holder_count: int,
    ) -> DividendClaim:
        """processing -> completed, refusing if the distributions do not add up to the pool."""
        claim = self._require_processing(claim_id)
        distributed = sum(d.dividend_amount for d in self._db.get_distributions(claim_id))
        if distributed != claim.distribution_amount:
            raise ClaimStateError(
                f"Claim {claim_id} distributions total {distributed} lamports, expected {claim.distribution_amount}"
            )
        claim = self.transition(
            claim_id,
            CLAIM_COMPLETED,
            total_supply=int(total_supply),
            holder_count=int(holder_count),
            eligible_holder_count=int(eligible_holder_count),
            completed_at=int(self._clock()),
        )
        bind_claim(claim_id).info(
            "claim_completed",
            claimed_lamports=claim.claimed_amount,
            distribution_lamports=claim.distribution_amount,
            eligible_holders=eligible_holder_count,
        )
        return claim

    def fail(
        self,
        claim_id: int,
        error_message: str,
        stage: str,
        *,
        transaction_id: str | None = None,
    ) -> DividendClaim:
        fields: dict[str, object] = {
            "error_message": (error_message or "unknown error")[:MAX_ERROR_MESSAGE_LEN],
            "failure_stage": stage,
            "completed_at": int(self._clock()),
        }
        if transaction_id:
            fields["transaction_id"] = transaction_id
        claim = self.transition(claim_id, CLAIM_FAILED, **fields)
        bind_claim(claim_id).warning(
            "claim_failed",
            stage=stage,
            error=claim.error_message,
            funds_claimed=claim.funds_claimed,
        )
        return claim

    def transition(self, claim_id: int, to_status: str, **fields: object) -> DividendClaim:
        claim = self._db.require_claim(claim_id)
        if to_status not in ALLOWED_TRANSITIONS.get(claim.status, frozenset()):
            raise ClaimStateError(f"Claim {claim_id} cannot move from '{claim.status}' to '{to_status}'")
        return self._db.update_claim_if_status(claim_id, claim.status, status=to_status, **fields)

    def recover_stale(self, max_age_sec: float) -> list[DividendClaim]:
        """Fail processing claims older than max_age_sec so a crashed cycle does not block new ones."""
        now = self._clock()
        recovered: list[DividendClaim] = []
        claim = self._db.get_processing_claim()
        if claim is not None and now - claim.claim_timestamp >= max_age_sec:
            try:
                recovered.append(
                    self.fail(
                        claim.id,
                        f"Abandoned in processing for {int(now - claim.claim_timestamp)}s",
                        STAGE_ABANDONED,
                    )
                )
            except ClaimStateError:
                logger.info("stale_claim_already_terminal", claim_id=claim.id)
        if recovered:
            logger.warning("stale_claims_recovered", claim_ids=[c.id for c in recovered])
        return recovered

    def list_unreconciled(self, *, limit: int = 100) -> list[DividendClaim]:
        """Failed claims that sent a fee-claim transaction: funds that may never have been distributed."""
        return [c for c in self._db.list_claims(limit=limit, status=CLAIM_FAILED) if c.needs_reconciliation]

    def _require_processing(self, claim_id: int) -> DividendClaim:
        claim = self._db.require_claim(claim_id)
        if claim.status != CLAIM_PROCESSING:
            raise ClaimStateError(f"Claim {claim_id} is '{claim.status}', expected '{CLAIM_PROCESSING}'")
        return claim
