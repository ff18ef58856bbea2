"""
Price Oracle: SOL/USD for reporting only.

Never raises; any failure yields the configured fallback price so display
code and the claim pipeline are never blocked on it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import httpx

from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_CACHE_TTL_SEC = 60.0
MAX_SANE_PRICE_USD = Decimal("100000")


@dataclass(frozen=True)
class PriceQuote:
    price_usd: Decimal
    source: str
    """'api', 'cache' or 'fallback'."""
    fetched_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"price_usd": str(self.price_usd), "source": self.source, "fetched_at": self.fetched_at}


def _extract_price(data: Any) -> Decimal | None:
    """Accept CoinGecko shape {"solana": {"usd": x}} or a flat {"price": x}."""
    if not isinstance(data, dict):
        return None
    raw = None
    if isinstance(data.get("solana"), dict):
        raw = data["solana"].get("usd")
    elif "price" in data:
        raw = data.get("price")
    if raw is None:
        return None
    try:
        price = Decimal(str(raw))
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0 or price > MAX_SANE_PRICE_USD:
        return None
    return price


class PriceOracle:
    def __init__(
        self,
        api_url: str,
        fallback_price_usd: Decimal = Decimal("200"),
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        cache_ttl_sec: float = DEFAULT_CACHE_TTL_SEC,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api_url = api_url
        self._fallback = fallback_price_usd
        self._http = http_client or httpx.Client(timeout=timeout_sec)
        self._cache_ttl_sec = cache_ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: PriceQuote | None = None

    def get_sol_price_usd(self) -> PriceQuote:
        now = self._clock()
        with self._lock:
            if self._cached is not None and now - self._cached.fetched_at < self._cache_ttl_sec:
                return PriceQuote(self._cached.price_usd, "cache", self._cached.fetched_at)
        try:
            resp = self._http.get(self._api_url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            price = _extract_price(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("sol_price_fetch_failed", error=str(e), fallback=str(self._fallback))
            return PriceQuote(self._fallback, "fallback", now)
        if price is None:
            logger.warning("sol_price_invalid", fallback=str(self._fallback))
            return PriceQuote(self._fallback, "fallback", now)
        quote = PriceQuote(price, "api", now)
        with self._lock:
            self._cached = quote
        return quote

