"""
Settings Repository: the AutoClaimSettings singleton.

Admin actions edit policy fields through update(); the scheduler only moves
next_claim_scheduled / last_successful_claim through advance_schedule(). Both
write just the columns they change, so neither overwrites the other's fields
with a stale read.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from solders.pubkey import Pubkey

from backend_dividends.config.settings import AppSettings
from backend_dividends.core.exceptions import InvalidSettingsError
from backend_dividends.database.database import Database
from backend_dividends.database.models import AutoClaimSettings, sol_to_lamports
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

POLICY_FIELDS = frozenset(
    {
        "enabled",
        "claim_interval_minutes",
        "distribution_percentage",
        "min_claim_amount_sol",
        "fee_source_account",
        "token_mint_address",
        "sell_threshold_percent",
        "auto_payout_enabled",
        "next_claim_scheduled",
    }
)


def validate_address(value: str, field_name: str) -> str:
    """Validate a base58 Solana public key. Raises InvalidSettingsError."""
    value = (value or "").strip()
    if not value:
        raise InvalidSettingsError(f"{field_name} must be non-empty")
    try:
        Pubkey.from_string(value)
    except Exception as e:
        raise InvalidSettingsError(f"{field_name} is not a valid Solana address: {e}") from e
    return value


def _percentage(value: Any, field_name: str) -> Decimal:
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidSettingsError(f"{field_name} must be a number") from e
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise InvalidSettingsError(f"{field_name} must be between 0 and 100")
    return pct


class SettingsRepository:
    """Reads, validates and persists AutoClaimSettings."""

    def __init__(
        self,
        db: Database,
        defaults: AppSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._defaults = defaults or AppSettings()
        self._clock = clock

    def default_settings(self) -> AutoClaimSettings:
        d = self._defaults
        return AutoClaimSettings(
            enabled=False,
            claim_interval_minutes=d.default_claim_interval_minutes,
            distribution_percentage=d.default_distribution_percentage,
            min_claim_amount_lamports=sol_to_lamports(d.default_min_claim_amount_sol),
            sell_threshold_percent=d.default_sell_threshold_percent,
        )

    def get(self) -> AutoClaimSettings:
        """Return the settings row, creating it with defaults when missing."""
        settings = self._db.get_settings()
        if settings is None:
            settings = self._db.save_settings(self.default_settings())
            logger.info("settings_defaults_created", claim_interval_minutes=settings.claim_interval_minutes)
        return settings

    def update(self, **fields: Any) -> AutoClaimSettings:
        """
        Apply admin changes to policy fields. Unknown fields and out-of-range
        values raise InvalidSettingsError; nothing is written in that case.
        """
        unknown = set(fields) - POLICY_FIELDS
        if unknown:
            raise InvalidSettingsError(f"Unknown settings fields: {sorted(unknown)}")
        current = self.get()
        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if value is None and name not in ("fee_source_account", "token_mint_address", "next_claim_scheduled"):
                continue
            if name == "enabled" or name == "auto_payout_enabled":
                changes[name] = bool(value)
            elif name == "claim_interval_minutes":
                try:
                    minutes = int(value)
                except (TypeError, ValueError) as e:
                    raise InvalidSettingsError("claim_interval_minutes must be an integer") from e
                if minutes < 1:
                    raise InvalidSettingsError("claim_interval_minutes must be at least 1")
                changes[name] = minutes
            elif name in ("distribution_percentage", "sell_threshold_percent"):
                changes[name] = _percentage(value, name)
            elif name == "min_claim_amount_sol":
                try:
                    amount = Decimal(str(value))
                except (InvalidOperation, ValueError) as e:
                    raise InvalidSettingsError("min_claim_amount_sol must be a number") from e
                if not amount.is_finite() or amount < 0:
                    raise InvalidSettingsError("min_claim_amount_sol must be >= 0")
                changes["min_claim_amount_lamports"] = sol_to_lamports(amount)
            elif name in ("fee_source_account", "token_mint_address"):
                changes[name] = validate_address(value, name) if value else None
            elif name == "next_claim_scheduled":
                changes[name] = int(value) if value is not None else None
        if not changes:
            return current
        updated = self._db.update_settings_fields(**changes)
        logger.info("settings_updated", fields=sorted(changes))
        return updated

    def advance_schedule(self, now: int, *, successful: bool) -> AutoClaimSettings:
        """Set next_claim_scheduled = now + interval; on success also stamp last_successful_claim."""
        current = self.get()
        changes: dict[str, Any] = {"next_claim_scheduled": int(now) + current.claim_interval_minutes * 60}
        if successful:
            changes["last_successful_claim"] = int(now)
        updated = self._db.update_settings_fields(**changes)
        logger.debug(
            "settings_schedule_advanced",
            next_claim_scheduled=updated.next_claim_scheduled,
            successful=successful,
        )
        return updated
