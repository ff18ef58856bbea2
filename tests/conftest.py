"""
Pytest fixtures for dividends tests. Uses a temporary SQLite DB, a fake clock
and in-memory fee source / holder query / transfer doubles.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from backend_dividends.config.settings import AppSettings
from backend_dividends.database import get_database
from backend_dividends.solana_client.fee_source import InMemoryFeeSource
from backend_dividends.solana_client.price_oracle import PriceOracle
from backend_dividends.solana_client.token_holders import InMemoryLedgerQueryService
from backend_dividends.solana_client.transfers import InMemoryTransferClient

# Valid Solana pubkeys (base58, 32 bytes)
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
FEE_ACCOUNT = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
HOLDER_A = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
HOLDER_B = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"
HOLDER_C = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

SOL = 1_000_000_000
START_TIME = 1_700_000_000.0


class FakeClock:
    """Deterministic time source; advance() moves it forward."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(tmp_path):
    return get_database(f"sqlite:///{tmp_path / 'dividends.db'}")


@pytest.fixture
def app_settings(tmp_path):
    return AppSettings(database_url=f"sqlite:///{tmp_path / 'dividends.db'}", poll_interval_sec=120.0)


@pytest.fixture
def fee_source():
    return InMemoryFeeSource({FEE_ACCOUNT: 10 * SOL})


@pytest.fixture
def ledger_query():
    return InMemoryLedgerQueryService({MINT: {HOLDER_A: 700, HOLDER_B: 300}})


@pytest.fixture
def transfer_client():
    return InMemoryTransferClient(balance=100 * SOL)


@pytest.fixture
def price_oracle(clock):
    """Oracle whose HTTP client is offline, so it always answers with the fallback price."""
    http = MagicMock(spec=httpx.Client)
    http.get.side_effect = httpx.ConnectError("offline")
    return PriceOracle("https://price.invalid", Decimal("200"), http_client=http, clock=clock)


@pytest.fixture
def runtime(app_settings, db, fee_source, ledger_query, transfer_client, price_oracle, clock):
    from backend_dividends.agent_worker.runtime import build_runtime

    return build_runtime(
        app_settings,
        db=db,
        fee_source=fee_source,
        ledger_query=ledger_query,
        transfer_client=transfer_client,
        price_oracle=price_oracle,
        clock=clock,
    )


@pytest.fixture
def configured(runtime):
    """Runtime whose settings are enabled and point at MINT / FEE_ACCOUNT."""
    runtime.settings_repo.update(
        enabled=True,
        fee_source_account=FEE_ACCOUNT,
        token_mint_address=MINT,
        distribution_percentage=Decimal("30"),
        sell_threshold_percent=Decimal("30"),
    )
    return runtime


@pytest.fixture
def client(runtime):
    """FastAPI TestClient over the in-memory runtime."""
    from fastapi.testclient import TestClient

    from backend_dividends.api_server.server import create_app

    return TestClient(create_app(runtime))
