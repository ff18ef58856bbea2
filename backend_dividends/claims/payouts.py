"""
Payout executor: turn pending distributions of a completed claim into transfers.

A distribution is moved to submitted before its transfer is sent, so a crash or
a failed write after broadcast can never leave it pending for another send.
Every attempt is recorded as a DividendPayout row. A transfer that failed before
broadcast marks the distribution failed (retryable); a broadcast transfer that
was not confirmed stays submitted for manual reconciliation. Payout outcomes
never touch the claim's own status.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from backend_dividends.core.exceptions import ClaimStateError, ExternalServiceError, PayoutError, PersistenceError
from backend_dividends.database.database import Database
from backend_dividends.database.models import (
    CLAIM_COMPLETED,
    DISTRIBUTION_COMPLETED,
    DISTRIBUTION_FAILED,
    DISTRIBUTION_PENDING,
    DISTRIBUTION_SUBMITTED,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
    PAYOUT_UNCONFIRMED,
    DividendDistribution,
    DividendPayout,
)
from backend_dividends.dividends_logging import bind_claim, get_logger
from backend_dividends.solana_client.transfers import TransferSubmittedError, ValueTransferClient

logger = get_logger(__name__)

# Network fee kept aside per transfer
DEFAULT_FEE_RESERVE_LAMPORTS = 5000


@dataclass
class PayoutSummary:
    claim_id: int
    attempted: int = 0
    paid: int = 0
    failed: int = 0
    unconfirmed: int = 0
    """Broadcast but not confirmed; left submitted, never re-sent."""
    unsettled: int = 0
    """Sent and confirmed, but the result could not be written; left submitted."""
    skipped: int = 0
    total_paid: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PayoutExecutor:
    def __init__(
        self,
        db: Database,
        transfer_client: ValueTransferClient,
        *,
        fee_reserve_lamports: int = DEFAULT_FEE_RESERVE_LAMPORTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._transfers = transfer_client
        self._fee_reserve = fee_reserve_lamports
        self._clock = clock
        self._lock = threading.Lock()

    def pay_claim(self, claim_id: int, *, retry_failed: bool = False) -> PayoutSummary:
        """
        Pay every pending distribution of a completed claim (and previously
        failed ones when retry_failed). Raises ClaimNotFoundError,
        ClaimStateError, or PayoutError when the paying wallet cannot cover
        the batch; no transfer is attempted in those cases.
        """
        claim = self._db.require_claim(claim_id)
        if claim.status != CLAIM_COMPLETED:
            raise ClaimStateError(f"Claim {claim_id} is '{claim.status}'; only completed claims are paid out")
        log = bind_claim(claim_id)
        with self._lock:
            todo = self._db.get_distributions(claim_id, status=DISTRIBUTION_PENDING)
            if retry_failed:
                todo += self._db.get_distributions(claim_id, status=DISTRIBUTION_FAILED)
            summary = PayoutSummary(claim_id=claim_id)
            payable = [d for d in todo if d.dividend_amount > 0]
            required = sum(d.dividend_amount for d in payable) + self._fee_reserve * len(payable)
            if payable:
                try:
                    available = self._transfers.get_source_balance()
                except ExternalServiceError as e:
                    raise PayoutError(f"Cannot read payout wallet balance: {e.message}") from e
                if available < required:
                    raise PayoutError(
                        f"Payout wallet holds {available} lamports, {required} required for {len(payable)} transfers"
                    )

            for dist in todo:
                if dist.dividend_amount <= 0:
                    self._db.update_distribution_status(
                        dist.id, DISTRIBUTION_COMPLETED, expected_status=dist.status
                    )
                    summary.skipped += 1
                    continue
                # Reserve before sending; another payer that got here first wins
                if not self._db.update_distribution_status(
                    dist.id, DISTRIBUTION_SUBMITTED, expected_status=dist.status
                ):
                    log.info("payout_already_taken", distribution_id=dist.id)
                    summary.skipped += 1
                    continue
                summary.attempted += 1
                self._pay_one(claim_id, dist, summary, log)
        log.info(
            "payouts_finished",
            attempted=summary.attempted,
            paid=summary.paid,
            failed=summary.failed,
            unconfirmed=summary.unconfirmed,
            unsettled=summary.unsettled,
            skipped=summary.skipped,
            total_paid_lamports=summary.total_paid,
        )
        return summary

    def _pay_one(self, claim_id: int, dist: DividendDistribution, summary: PayoutSummary, log: Any) -> None:
        try:
            signature = self._transfers.transfer(dist.holder_address, dist.dividend_amount)
        except TransferSubmittedError as e:
            summary.unconfirmed += 1
            summary.errors.append(f"{dist.holder_address}: {e.message}")
            log.warning("payout_unconfirmed", holder=dist.holder_address[:16], signature=e.signature)
            self._settle(claim_id, dist, PAYOUT_UNCONFIRMED, None, summary, log, signature=e.signature, error=e.message)
            return
        except ExternalServiceError as e:
            summary.failed += 1
            summary.errors.append(f"{dist.holder_address}: {e.message}")
            log.warning("payout_failed", holder=dist.holder_address[:16], error=e.message)
            self._settle(claim_id, dist, PAYOUT_FAILED, DISTRIBUTION_FAILED, summary, log, error=e.message)
            return
        if self._settle(claim_id, dist, PAYOUT_COMPLETED, DISTRIBUTION_COMPLETED, summary, log, signature=signature):
            summary.paid += 1
            summary.total_paid += dist.dividend_amount

    def _settle(
        self,
        claim_id: int,
        dist: DividendDistribution,
        payout_status: str,
        distribution_status: str | None,
        summary: PayoutSummary,
        log: Any,
        *,
        signature: str | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Record the attempt and move the distribution out of submitted. When the
        write fails the distribution stays submitted, so it is never re-sent.
        """
        now = int(self._clock())
        try:
            self._db.insert_payout(
                DividendPayout(
                    distribution_id=dist.id,
                    claim_id=claim_id,
                    holder_address=dist.holder_address,
                    payout_amount=dist.dividend_amount,
                    payout_status=payout_status,
                    transaction_signature=signature,
                    error_message=error,
                    paid_at=now if payout_status == PAYOUT_COMPLETED else None,
                    created_at=now,
                )
            )
            if distribution_status is not None:
                self._db.update_distribution_status(
                    dist.id, distribution_status, expected_status=DISTRIBUTION_SUBMITTED
                )
        except PersistenceError as e:
            if payout_status == PAYOUT_COMPLETED:
                summary.unsettled += 1
                summary.errors.append(f"{dist.holder_address}: sent {signature} but not recorded: {e.message}")
            log.error(
                "payout_settle_failed",
                distribution_id=dist.id,
                holder=dist.holder_address[:16],
                payout_status=payout_status,
                signature=signature,
                error=e.message,
            )
            return False
        return True
