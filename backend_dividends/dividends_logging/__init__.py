"""Structured logging for the dividends engine (structlog, JSON by default)."""

from backend_dividends.dividends_logging.logger import bind_claim, get_logger

__all__ = ["bind_claim", "get_logger"]
