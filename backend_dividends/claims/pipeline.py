"""
One claim cycle: fee claim -> holder snapshot -> loyalty filter -> distribution -> ledger.

The processing claim row is created before the fee-source claim so that it
guards the whole cycle. Any exception after that point marks the claim failed
with the stage it failed in; the schedule then advances by one interval.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

from backend_dividends.claims.ledger import (
    STAGE_DISTRIBUTION,
    STAGE_ELIGIBILITY,
    STAGE_FEE_CLAIM,
    STAGE_PERSISTENCE,
    STAGE_SNAPSHOT,
    ClaimLedger,
)
from backend_dividends.claims.orchestrator import FeeClaimFailure, FeeClaimNoOp, FeeClaimOrchestrator
from backend_dividends.core.exceptions import ClaimInProgressError, NoHoldersError
from backend_dividends.database.models import AutoClaimSettings, iso_or_none
from backend_dividends.database.settings_repository import SettingsRepository
from backend_dividends.distribution.calculator import compute_distribution, distribution_pool
from backend_dividends.dividends_logging import get_logger
from backend_dividends.loyalty.evaluator import LoyaltyEvaluator
from backend_dividends.solana_client.token_holders import LedgerQueryService

logger = get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

REASON_DISABLED = "disabled"
REASON_NOT_DUE = "not-due"
REASON_IN_PROGRESS = "in-progress"


@dataclass
class CycleResult:
    status: str
    reason: str | None = None
    claim_id: int | None = None
    claimed_amount: int = 0
    distribution_amount: int = 0
    holder_count: int = 0
    eligible_holder_count: int = 0
    transaction_id: str | None = None
    next_claim_time: int | None = None
    error: str | None = None
    failure_stage: str | None = None
    payouts: dict[str, Any] | None = None

    @classmethod
    def skipped(cls, reason: str, **kwargs: Any) -> CycleResult:
        return cls(status=STATUS_SKIPPED, reason=reason, **kwargs)

    @property
    def ran(self) -> bool:
        return self.status != STATUS_SKIPPED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["next_claim_time_iso"] = iso_or_none(self.next_claim_time)
        return data


class ClaimPipeline:
    def __init__(
        self,
        settings_repo: SettingsRepository,
        orchestrator: FeeClaimOrchestrator,
        ledger_query: LedgerQueryService,
        evaluator: LoyaltyEvaluator,
        ledger: ClaimLedger,
        *,
        payout_executor: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings_repo = settings_repo
        self._orchestrator = orchestrator
        self._ledger_query = ledger_query
        self._evaluator = evaluator
        self._ledger = ledger
        self._payout_executor = payout_executor
        self._clock = clock

    def run(self, settings: AutoClaimSettings) -> CycleResult:
        """
        Execute one cycle for the given settings. Scheduling decisions
        (enabled, due, single active cycle) are the caller's job.
        Raises PersistenceError only when the claim row itself cannot be created.
        """
        now = int(self._clock())
        preflight = self._orchestrator.check(settings)
        if isinstance(preflight, FeeClaimNoOp):
            updated = self._settings_repo.advance_schedule(now, successful=False)
            logger.info("cycle_skipped", reason=preflight.reason, next_claim_time=updated.next_claim_scheduled)
            return CycleResult.skipped(preflight.reason, next_claim_time=updated.next_claim_scheduled)
        if isinstance(preflight, FeeClaimFailure):
            updated = self._settings_repo.advance_schedule(now, successful=False)
            logger.warning("cycle_failed", stage=STAGE_FEE_CLAIM, error=preflight.reason)
            return CycleResult(
                status=STATUS_FAILED,
                reason=STAGE_FEE_CLAIM,
                error=preflight.reason,
                failure_stage=STAGE_FEE_CLAIM,
                next_claim_time=updated.next_claim_scheduled,
            )

        try:
            claim = self._ledger.open_claim()
        except ClaimInProgressError as e:
            logger.info("cycle_skipped", reason=REASON_IN_PROGRESS, detail=e.message)
            return CycleResult.skipped(REASON_IN_PROGRESS)

        result = CycleResult(status=STATUS_FAILED, claim_id=claim.id)
        outcome = self._orchestrator.execute(settings)
        if isinstance(outcome, FeeClaimFailure):
            self._ledger.fail(claim.id, outcome.reason, STAGE_FEE_CLAIM, transaction_id=outcome.transaction_id)
            result.transaction_id = outcome.transaction_id
            result.error = outcome.reason
            result.failure_stage = STAGE_FEE_CLAIM
            result.reason = STAGE_FEE_CLAIM
            return self._finish(result, now, successful=False)

        stage = STAGE_PERSISTENCE
        try:
            result.claimed_amount = outcome.claimed_amount
            result.transaction_id = outcome.transaction_id
            result.distribution_amount = distribution_pool(outcome.claimed_amount, settings.distribution_percentage)
            self._ledger.record_fee_claim(
                claim.id,
                claimed_amount=outcome.claimed_amount,
                transaction_id=outcome.transaction_id,
                distribution_amount=result.distribution_amount,
            )

            stage = STAGE_SNAPSHOT
            mint = settings.token_mint_address or ""
            holder_set = self._ledger_query.get_holders(mint)
            if not holder_set.holders:
                raise NoHoldersError(f"No holders returned for mint {mint}")
            result.holder_count = len(holder_set.holders)

            stage = STAGE_ELIGIBILITY
            evaluation = self._evaluator.evaluate(holder_set.holders, mint, settings.sell_threshold_percent)

            stage = STAGE_SNAPSHOT
            self._ledger.record_snapshot(claim.id, evaluation)

            stage = STAGE_DISTRIBUTION
            shares = compute_distribution(
                [(h.address, h.balance) for h in evaluation.eligible], result.distribution_amount
            )
            result.eligible_holder_count = len(shares)

            stage = STAGE_PERSISTENCE
            self._ledger.record_distributions(claim.id, shares)
            self._ledger.complete(
                claim.id,
                total_supply=holder_set.total_supply,
                holder_count=result.holder_count,
                eligible_holder_count=result.eligible_holder_count,
            )
        except Exception as e:
            logger.exception("cycle_stage_failed", claim_id=claim.id, stage=stage, error=str(e))
            self._ledger.fail(claim.id, str(e), stage, transaction_id=result.transaction_id)
            result.error = str(e)
            result.failure_stage = stage
            result.reason = stage
            return self._finish(result, now, successful=False)

        result.status = STATUS_COMPLETED
        result = self._finish(result, now, successful=True)
        if settings.auto_payout_enabled and self._payout_executor is not None:
            result.payouts = self._run_payouts(claim.id)
        return result

    def _finish(self, result: CycleResult, now: int, *, successful: bool) -> CycleResult:
        updated = self._settings_repo.advance_schedule(now, successful=successful)
        result.next_claim_time = updated.next_claim_scheduled
        logger.info(
            "cycle_finished",
            status=result.status,
            claim_id=result.claim_id,
            claimed_lamports=result.claimed_amount,
            distribution_lamports=result.distribution_amount,
            holders=result.holder_count,
            eligible_holders=result.eligible_holder_count,
            failure_stage=result.failure_stage,
            next_claim_time=result.next_claim_time,
        )
        return result

    def _run_payouts(self, claim_id: int) -> dict[str, Any]:
        """Payout problems never change the claim's status."""
        try:
            return self._payout_executor.pay_claim(claim_id).to_dict()
        except Exception as e:
            logger.warning("auto_payout_failed", claim_id=claim_id, error=str(e))
            return {"claim_id": claim_id, "error": str(e)}
