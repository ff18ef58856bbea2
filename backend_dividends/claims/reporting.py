"""Read-side views over the claim ledger for the admin API."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from backend_dividends.claims.ledger import ClaimLedger
from backend_dividends.database.database import Database
from backend_dividends.database.models import iso_or_none, lamports_to_sol
from backend_dividends.database.settings_repository import SettingsRepository
from backend_dividends.loyalty.evaluator import LoyaltyEvaluator
from backend_dividends.solana_client.price_oracle import PriceOracle

CENTS = Decimal("0.01")


class DividendReporter:
    def __init__(
        self,
        db: Database,
        ledger: ClaimLedger,
        evaluator: LoyaltyEvaluator,
        settings_repo: SettingsRepository,
        price_oracle: PriceOracle | None = None,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._evaluator = evaluator
        self._settings_repo = settings_repo
        self._price_oracle = price_oracle

    def claim_detail(self, claim_id: int) -> dict[str, Any]:
        """Claim with its snapshot, distributions and payouts; raises ClaimNotFoundError."""
        claim = self._ledger.get_claim(claim_id)
        distributions = self._db.get_distributions(claim_id)
        distributed = sum(d.dividend_amount for d in distributions)
        return {
            "claim": claim.to_dict(),
            "snapshots": [s.to_dict() for s in self._db.get_snapshots(claim_id)],
            "distributions": [d.to_dict() for d in distributions],
            "payouts": [p.to_dict() for p in self._db.get_payouts(claim_id)],
            "distributed_total": distributed,
            "balanced": distributed == claim.distribution_amount if distributions else None,
        }

    def stats(self) -> dict[str, Any]:
        settings = self._settings_repo.get()
        totals = self._db.claim_totals()
        latest = self._db.list_claims(limit=1)
        data: dict[str, Any] = {
            "total_claims": totals.total_claims,
            "completed_claims": totals.completed_claims,
            "failed_claims": totals.failed_claims,
            "claims_by_status": totals.status_counts,
            "total_claimed_lamports": totals.total_claimed,
            "total_claimed_sol": str(lamports_to_sol(totals.total_claimed)),
            "total_distributed_lamports": totals.total_distributed,
            "total_distributed_sol": str(lamports_to_sol(totals.total_distributed)),
            "distribution_count": totals.distribution_count,
            "payout_count": totals.payout_count,
            "total_paid_lamports": totals.total_paid,
            "last_claim_at": iso_or_none(totals.last_claim_at),
            "latest_claim": latest[0].to_dict() if latest else None,
            "unreconciled_claims": len(self._ledger.list_unreconciled()),
            "settings": settings.to_dict(),
            "loyalty": None,
        }
        if settings.token_mint_address:
            data["loyalty"] = self._evaluator.loyalty_stats(settings.token_mint_address)
        if self._price_oracle is not None:
            quote = self._price_oracle.get_sol_price_usd()
            data["sol_price"] = quote.to_dict()
            data["total_claimed_usd"] = str(
                (lamports_to_sol(totals.total_claimed) * quote.price_usd).quantize(CENTS)
            )
            data["total_distributed_usd"] = str(
                (lamports_to_sol(totals.total_distributed) * quote.price_usd).quantize(CENTS)
            )
        return data
