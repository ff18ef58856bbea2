"""
Claim cycle: orchestration of the fee claim, the claim ledger state machine,
the end-to-end pipeline and payouts.
"""

from backend_dividends.claims.ledger import ClaimLedger
from backend_dividends.claims.orchestrator import (
    FeeClaimFailure,
    FeeClaimNoOp,
    FeeClaimOrchestrator,
    FeeClaimSuccess,
)
from backend_dividends.claims.payouts import PayoutExecutor, PayoutSummary
from backend_dividends.claims.pipeline import ClaimPipeline, CycleResult
from backend_dividends.claims.reporting import DividendReporter

__all__ = [
    "ClaimLedger",
    "ClaimPipeline",
    "CycleResult",
    "DividendReporter",
    "FeeClaimFailure",
    "FeeClaimNoOp",
    "FeeClaimOrchestrator",
    "FeeClaimSuccess",
    "PayoutExecutor",
    "PayoutSummary",
]
