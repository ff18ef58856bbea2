"""
Loyalty / eligibility evaluation (retention-based anti-dump filter).

Each holder of a mint has a baseline: the balance recorded the first time the
holder was seen. Retention is current / baseline * 100, capped at 100. A holder
below (100 - sell_threshold_percent) is permanently blacklisted and stays
excluded, even if the balance recovers, until an admin reset.

This module is the only writer of HolderEligibility.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Sequence

from backend_dividends.core.exceptions import HolderNotFoundError
from backend_dividends.database.database import Database
from backend_dividends.database.models import HolderEligibility
from backend_dividends.dividends_logging import get_logger
from backend_dividends.solana_client.token_holders import TokenHolder

logger = get_logger(__name__)

FULL_RETENTION = Decimal(100)
RETENTION_QUANT = Decimal("0.0001")
DEFAULT_SELL_THRESHOLD_PERCENT = Decimal(30)


@dataclass(frozen=True)
class EvaluatedHolder:
    address: str
    balance: int
    percentage_of_supply: Decimal
    initial_balance: int
    retention_percentage: Decimal
    is_eligible: bool
    blacklisted: bool
    newly_blacklisted: bool = False


@dataclass
class EvaluationResult:
    holders: list[EvaluatedHolder] = field(default_factory=list)
    """Every holder of the snapshot, in snapshot order."""
    sold_out: list[str] = field(default_factory=list)
    """Known holders missing from the snapshot and blacklisted for it."""

    @property
    def eligible(self) -> list[EvaluatedHolder]:
        return [h for h in self.holders if h.is_eligible]

    @property
    def newly_blacklisted(self) -> list[str]:
        return [h.address for h in self.holders if h.newly_blacklisted] + list(self.sold_out)


def retention_percentage(current_balance: int, initial_balance: int) -> Decimal:
    """current / initial * 100, capped at 100; a zero baseline counts as no retention."""
    if initial_balance <= 0:
        return Decimal(0)
    pct = Decimal(current_balance) * 100 / Decimal(initial_balance)
    return min(pct, FULL_RETENTION)


def required_retention(sell_threshold_percent: Decimal) -> Decimal:
    return FULL_RETENTION - Decimal(sell_threshold_percent)


class LoyaltyEvaluator:
    def __init__(
        self,
        db: Database,
        *,
        clock: Callable[[], float] = time.time,
        detect_sold_out: bool = True,
    ) -> None:
        self._db = db
        self._clock = clock
        self._detect_sold_out = detect_sold_out

    def evaluate(
        self,
        holders: Sequence[TokenHolder],
        token_mint: str,
        sell_threshold_percent: Decimal = DEFAULT_SELL_THRESHOLD_PERCENT,
    ) -> EvaluationResult:
        """
        Evaluate every holder of the snapshot against its baseline and persist
        the updated eligibility records in one transaction.
        """
        now = int(self._clock())
        threshold = required_retention(sell_threshold_percent)
        known = self._db.get_eligibility_map(token_mint)
        result = EvaluationResult()
        updates: list[HolderEligibility] = []
        seen: set[str] = set()

        for holder in holders:
            seen.add(holder.address)
            record = known.get(holder.address)
            if record is None:
                record = HolderEligibility(
                    token_mint_address=token_mint,
                    holder_address=holder.address,
                    current_balance=holder.balance,
                    initial_balance=holder.balance,
                    first_seen_at=now,
                )
                retention = FULL_RETENTION
            else:
                retention = retention_percentage(holder.balance, record.initial_balance)

            passes = retention >= threshold
            newly_blacklisted = False
            changes: dict[str, Any] = {
                "current_balance": holder.balance,
                "retention_percentage": retention.quantize(RETENTION_QUANT),
                "last_checked_at": now,
            }
            if record.permanently_blacklisted:
                changes["is_eligible"] = False
            elif passes:
                changes["is_eligible"] = True
            else:
                newly_blacklisted = True
                changes.update(
                    is_eligible=False,
                    permanently_blacklisted=True,
                    violation_count=record.violation_count + 1,
                    blacklist_reason=(
                        f"Retention {retention.quantize(Decimal('0.01'))}% below required {threshold}%"
                    ),
                    blacklisted_at=now,
                )
            record = replace(record, **changes)
            updates.append(record)
            if newly_blacklisted:
                logger.info(
                    "holder_blacklisted",
                    holder=holder.address[:16],
                    mint=token_mint,
                    retention=str(changes["retention_percentage"]),
                    required=str(threshold),
                    violations=record.violation_count,
                )
            else:
                logger.debug(
                    "holder_evaluated",
                    holder=holder.address[:16],
                    retention=str(changes["retention_percentage"]),
                    eligible=record.is_eligible,
                )
            result.holders.append(
                EvaluatedHolder(
                    address=holder.address,
                    balance=holder.balance,
                    percentage_of_supply=holder.percentage,
                    initial_balance=record.initial_balance,
                    retention_percentage=record.retention_percentage,
                    is_eligible=record.is_eligible,
                    blacklisted=record.permanently_blacklisted,
                    newly_blacklisted=newly_blacklisted,
                )
            )

        if self._detect_sold_out:
            for address, record in known.items():
                if address in seen or record.permanently_blacklisted:
                    continue
                updates.append(
                    replace(
                        record,
                        current_balance=0,
                        retention_percentage=Decimal(0).quantize(RETENTION_QUANT),
                        is_eligible=False,
                        permanently_blacklisted=True,
                        violation_count=record.violation_count + 1,
                        blacklist_reason="Sold entire balance (retention 0.00%)",
                        blacklisted_at=now,
                        last_checked_at=now,
                    )
                )
                result.sold_out.append(address)
                logger.info("holder_sold_out_blacklisted", holder=address[:16], mint=token_mint)

        self._db.upsert_eligibility(updates)
        logger.info(
            "loyalty_evaluated",
            mint=token_mint,
            holders=len(result.holders),
            eligible=len(result.eligible),
            newly_blacklisted=len(result.newly_blacklisted),
            required_retention=str(threshold),
        )
        return result

    # --- admin operations ---

    def reset_holder(
        self,
        token_mint: str,
        holder_address: str,
        *,
        new_balance: int | None = None,
        reason: str | None = None,
    ) -> HolderEligibility:
        """Clear the blacklist and violations and restart the baseline from new_balance (or the last seen balance)."""
        record = self._db.get_eligibility(token_mint, holder_address)
        if record is None:
            raise HolderNotFoundError(f"Holder {holder_address} has no eligibility record for {token_mint}")
        baseline = record.current_balance if new_balance is None else int(new_balance)
        updated = replace(
            record,
            initial_balance=baseline,
            current_balance=baseline,
            retention_percentage=FULL_RETENTION.quantize(RETENTION_QUANT),
            is_eligible=True,
            permanently_blacklisted=False,
            violation_count=0,
            blacklist_reason=None,
            blacklisted_at=None,
            last_checked_at=int(self._clock()),
        )
        self._db.upsert_eligibility([updated])
        logger.info(
            "holder_reset",
            holder=holder_address[:16],
            mint=token_mint,
            new_baseline=baseline,
            reason=reason or "admin_reset",
        )
        return updated

    def list_holders(self, token_mint: str, *, limit: int = 100, blacklisted_only: bool = False) -> list[HolderEligibility]:
        return self._db.list_eligibility(token_mint, limit=limit, blacklisted_only=blacklisted_only)

    def loyalty_stats(self, token_mint: str) -> dict[str, Any]:
        records = self._db.list_eligibility(token_mint)
        total = len(records)
        eligible = sum(1 for r in records if r.is_eligible and not r.permanently_blacklisted)
        blacklisted = sum(1 for r in records if r.permanently_blacklisted)
        if total:
            rate = (Decimal(eligible) * 100 / total).quantize(Decimal("0.01"))
            avg = (sum((r.retention_percentage for r in records), Decimal(0)) / total).quantize(Decimal("0.01"))
        else:
            rate = Decimal("0.00")
            avg = Decimal("0.00")
        return {
            "token_mint_address": token_mint,
            "total_holders": total,
            "eligible_holders": eligible,
            "ineligible_holders": total - eligible,
            "blacklisted_holders": blacklisted,
            "eligibility_rate": str(rate),
            "average_retention": str(avg),
        }
