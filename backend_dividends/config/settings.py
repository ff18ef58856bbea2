"""
Typed application settings built from environment variables.

Policy values (interval, percentage, thresholds) live in the database row
AutoClaimSettings and are edited by admins; the DEFAULT_* values here only seed
that row the first time it is read.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from backend_dividends.config.env import get_solana_rpc_url, load_dividends_env

DEFAULT_DATABASE_URL = "sqlite:///dividends.db"
DEFAULT_PUMPPORTAL_API_URL = "https://pumpportal.fun/api/trade-local"
DEFAULT_PRICE_API_URL = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
DEFAULT_FALLBACK_SOL_PRICE_USD = Decimal("200")
DEFAULT_POLL_INTERVAL_SEC = 120.0
DEFAULT_STALE_CLAIM_TIMEOUT_SEC = 3600.0
DEFAULT_RPC_TIMEOUT_SEC = 30.0

DEFAULT_CLAIM_INTERVAL_MINUTES = 10
DEFAULT_DISTRIBUTION_PERCENTAGE = Decimal("30")
DEFAULT_MIN_CLAIM_AMOUNT_SOL = Decimal("0.001")
DEFAULT_SELL_THRESHOLD_PERCENT = Decimal("30")


def _parse_bool_env(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _parse_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_decimal_env(name: str, default: Decimal) -> Decimal:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        return default


def get_database_url() -> str:
    """DIVIDENDS_DB_URL, then DATABASE_URL (PostgreSQL); else SQLite from DIVIDENDS_DB_PATH."""
    load_dividends_env()
    url = (os.getenv("DIVIDENDS_DB_URL") or os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = (os.getenv("DIVIDENDS_DB_PATH") or "").strip()
    if path:
        return f"sqlite:///{path}"
    return DEFAULT_DATABASE_URL


@dataclass(frozen=True)
class AppSettings:
    """Process-level configuration. Secrets stay as raw strings until a signer is built."""

    database_url: str = DEFAULT_DATABASE_URL
    rpc_url: str = ""
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    stale_claim_timeout_sec: float = DEFAULT_STALE_CLAIM_TIMEOUT_SEC
    creator_private_key: str = ""
    payout_private_key: str = ""
    pumpportal_api_url: str = DEFAULT_PUMPPORTAL_API_URL
    priority_fee_sol: Decimal = Decimal("0.001")
    price_api_url: str = DEFAULT_PRICE_API_URL
    fallback_sol_price_usd: Decimal = DEFAULT_FALLBACK_SOL_PRICE_USD
    dry_run: bool = False
    scheduler_autostart: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    default_claim_interval_minutes: int = DEFAULT_CLAIM_INTERVAL_MINUTES
    default_distribution_percentage: Decimal = DEFAULT_DISTRIBUTION_PERCENTAGE
    default_min_claim_amount_sol: Decimal = DEFAULT_MIN_CLAIM_AMOUNT_SOL
    default_sell_threshold_percent: Decimal = DEFAULT_SELL_THRESHOLD_PERCENT


def get_settings() -> AppSettings:
    """Build AppSettings from the current environment (and .env)."""
    load_dividends_env()
    return AppSettings(
        database_url=get_database_url(),
        rpc_url=get_solana_rpc_url(),
        rpc_timeout_sec=max(1.0, _parse_float_env("RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC)),
        poll_interval_sec=max(1.0, _parse_float_env("SCHEDULER_POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC)),
        stale_claim_timeout_sec=max(
            60.0, _parse_float_env("STALE_CLAIM_TIMEOUT_SEC", DEFAULT_STALE_CLAIM_TIMEOUT_SEC)
        ),
        creator_private_key=(os.getenv("CREATOR_PRIVATE_KEY") or "").strip(),
        payout_private_key=(os.getenv("PAYOUT_PRIVATE_KEY") or os.getenv("CREATOR_PRIVATE_KEY") or "").strip(),
        pumpportal_api_url=(os.getenv("PUMPPORTAL_API_URL") or DEFAULT_PUMPPORTAL_API_URL).strip(),
        priority_fee_sol=_parse_decimal_env("PRIORITY_FEE_SOL", Decimal("0.001")),
        price_api_url=(os.getenv("PRICE_API_URL") or DEFAULT_PRICE_API_URL).strip(),
        fallback_sol_price_usd=_parse_decimal_env("FALLBACK_SOL_PRICE_USD", DEFAULT_FALLBACK_SOL_PRICE_USD),
        dry_run=_parse_bool_env("DIVIDENDS_DRY_RUN"),
        scheduler_autostart=_parse_bool_env("SCHEDULER_AUTOSTART"),
        api_host=(os.getenv("API_HOST") or "0.0.0.0").strip(),
        api_port=_parse_int_env("API_PORT", 8000),
        default_claim_interval_minutes=max(
            1, _parse_int_env("DEFAULT_CLAIM_INTERVAL_MINUTES", DEFAULT_CLAIM_INTERVAL_MINUTES)
        ),
        default_distribution_percentage=_parse_decimal_env(
            "DEFAULT_DISTRIBUTION_PERCENTAGE", DEFAULT_DISTRIBUTION_PERCENTAGE
        ),
        default_min_claim_amount_sol=_parse_decimal_env(
            "DEFAULT_MIN_CLAIM_AMOUNT_SOL", DEFAULT_MIN_CLAIM_AMOUNT_SOL
        ),
        default_sell_threshold_percent=_parse_decimal_env(
            "DEFAULT_SELL_THRESHOLD_PERCENT", DEFAULT_SELL_THRESHOLD_PERCENT
        ),
    )
