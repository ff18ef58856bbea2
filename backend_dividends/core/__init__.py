from backend_dividends.core.exceptions import (
    ClaimInProgressError,
    ClaimNotFoundError,
    ClaimStateError,
    ConfigurationError,
    DividendError,
    ExternalServiceError,
    HolderNotFoundError,
    InvalidSettingsError,
    NoEligibleHoldersError,
    NoHoldersError,
    PayoutError,
    PersistenceError,
)

__all__ = [
    "ClaimInProgressError",
    "ClaimNotFoundError",
    "ClaimStateError",
    "ConfigurationError",
    "DividendError",
    "ExternalServiceError",
    "HolderNotFoundError",
    "InvalidSettingsError",
    "NoEligibleHoldersError",
    "NoHoldersError",
    "PayoutError",
    "PersistenceError",
]
