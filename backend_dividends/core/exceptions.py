"""
Domain exceptions. Every error carries a stable machine-readable code that the
admin API returns alongside the message.
"""

from __future__ import annotations


class DividendError(Exception):
    """Base class for all dividends engine errors."""

    code = "dividend_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "detail": self.message}


class ConfigurationError(DividendError):
    """Missing or malformed environment configuration (keys, URLs)."""

    code = "configuration_error"


class InvalidSettingsError(DividendError):
    """Admin tried to store AutoClaimSettings outside their valid ranges."""

    code = "invalid_settings"


class ExternalServiceError(DividendError):
    """Fee source, chain RPC or price API unreachable, timed out, or returned an error."""

    code = "external_service_error"

    def __init__(self, message: str, service: str = "unknown") -> None:
        super().__init__(message)
        self.service = service


class NoHoldersError(DividendError):
    """Ledger query returned no holders at all; a data or configuration problem."""

    code = "no_holders"


class NoEligibleHoldersError(DividendError):
    """Holders exist but none passed the loyalty filter."""

    code = "no_eligible_holders"


class ClaimStateError(DividendError):
    """Claim status transition not allowed from its current state."""

    code = "invalid_claim_transition"


class ClaimInProgressError(DividendError):
    """Another claim is already processing."""

    code = "claim_in_progress"


class PersistenceError(DividendError):
    code = "persistence_error"


class ClaimNotFoundError(DividendError):
    code = "claim_not_found"


class HolderNotFoundError(DividendError):
    code = "holder_not_found"


class PayoutError(DividendError):
    """Value transfer to a holder failed."""

    code = "payout_error"
