"""
Configuration management for the dividends engine.

Loads settings from environment variables and the optional .env file at the
project root. Exposes a single source of truth for service configuration.
"""

from backend_dividends.config.env import get_solana_rpc_url, load_dividends_env  # noqa: F401
from backend_dividends.config.settings import AppSettings, get_settings  # noqa: F401

__all__ = ["AppSettings", "get_settings", "get_solana_rpc_url", "load_dividends_env"]
