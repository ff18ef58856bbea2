"""Signer loading: base58 secret key or JSON array of 64 bytes."""

from __future__ import annotations

import json

import base58
from solders.keypair import Keypair

from backend_dividends.core.exceptions import ConfigurationError
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)


def load_keypair(private_key: str, env_name: str = "CREATOR_PRIVATE_KEY") -> Keypair:
    """Load a Keypair; raises ConfigurationError naming env_name when the value is missing or invalid."""
    raw = (private_key or "").strip()
    if not raw:
        raise ConfigurationError(f"{env_name} is not set")
    if raw.startswith("["):
        try:
            arr = json.loads(raw)
            if len(arr) >= 64:
                return Keypair.from_bytes(bytes(arr[:64]))
        except (json.JSONDecodeError, TypeError, ValueError):
            pass
    try:
        return Keypair.from_bytes(base58.b58decode(raw))
    except Exception as e:
        logger.warning("keypair_load_failed", env=env_name, error=str(e))
        raise ConfigurationError(f"Invalid {env_name}") from e
