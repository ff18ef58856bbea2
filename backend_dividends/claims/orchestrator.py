"""
Fee Claim Orchestrator.

claim_fees() returns a FeeClaimSuccess, FeeClaimNoOp or FeeClaimFailure and
never raises for fee-source problems. The pipeline uses check() and execute()
separately so that the processing claim row exists before any funds move.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from backend_dividends.database.models import AutoClaimSettings
from backend_dividends.dividends_logging import get_logger
from backend_dividends.solana_client.fee_source import FeeClaimSubmittedError, FeeSourceClient

logger = get_logger(__name__)

NOOP_NOT_CONFIGURED = "not-configured"
NOOP_BELOW_MINIMUM = "below-minimum"


@dataclass(frozen=True)
class FeeClaimSuccess:
    claimed_amount: int
    transaction_id: str


@dataclass(frozen=True)
class FeeClaimNoOp:
    reason: str
    balance: int | None = None


@dataclass(frozen=True)
class FeeClaimFailure:
    reason: str
    transaction_id: str | None = None


FeeClaimOutcome = Union[FeeClaimSuccess, FeeClaimNoOp, FeeClaimFailure]


class FeeClaimOrchestrator:
    def __init__(self, fee_source: FeeSourceClient) -> None:
        self._fee_source = fee_source

    def check(self, settings: AutoClaimSettings) -> FeeClaimNoOp | FeeClaimFailure | None:
        """Pre-flight: None when a claim should be attempted."""
        account = (settings.fee_source_account or "").strip()
        if not account or not (settings.token_mint_address or "").strip():
            logger.info("fee_claim_not_configured", has_account=bool(account))
            return FeeClaimNoOp(NOOP_NOT_CONFIGURED)
        try:
            balance = self._fee_source.check_balance(account)
        except Exception as e:
            logger.warning("fee_balance_check_failed", account=account[:16], error=str(e))
            return FeeClaimFailure(f"Balance check failed: {e}")
        if balance < settings.min_claim_amount_lamports:
            logger.info(
                "fee_claim_below_minimum",
                balance_lamports=balance,
                min_lamports=settings.min_claim_amount_lamports,
            )
            return FeeClaimNoOp(NOOP_BELOW_MINIMUM, balance=balance)
        return None

    def execute(self, settings: AutoClaimSettings) -> FeeClaimSuccess | FeeClaimFailure:
        """Run the external claim; the amount comes from the claim result, not from check()."""
        account = (settings.fee_source_account or "").strip()
        try:
            result = self._fee_source.claim(account)
        except FeeClaimSubmittedError as e:
            logger.warning("fee_claim_unconfirmed", transaction_id=e.transaction_id, error=e.message)
            return FeeClaimFailure(e.message, transaction_id=e.transaction_id)
        except Exception as e:
            logger.warning("fee_claim_failed", account=account[:16], error=str(e))
            return FeeClaimFailure(f"Fee claim failed: {e}")
        if result.amount <= 0:
            logger.warning("fee_claim_empty", transaction_id=result.transaction_id)
            return FeeClaimFailure("Fee claim returned no funds", transaction_id=result.transaction_id)
        logger.info("fee_claim_succeeded", claimed_lamports=result.amount, transaction_id=result.transaction_id)
        return FeeClaimSuccess(claimed_amount=result.amount, transaction_id=result.transaction_id)

    def claim_fees(self, settings: AutoClaimSettings) -> FeeClaimOutcome:
        preflight = self.check(settings)
        if preflight is not None:
            return preflight
        return self.execute(settings)
