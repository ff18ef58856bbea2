"""
Dividends worker runtime: wire the service graph from env and run the scheduler loop.

Usage:
    python -m backend_dividends.agent_worker.runtime

Env: DATABASE_URL / DIVIDENDS_DB_URL, SOLANA_RPC_URL, CREATOR_PRIVATE_KEY,
PAYOUT_PRIVATE_KEY, SCHEDULER_POLL_INTERVAL_SEC, DIVIDENDS_DRY_RUN, LOG_LEVEL.
DIVIDENDS_DRY_RUN=1 swaps the fee source and transfers for in-memory doubles.
"""

from __future__ import annotations

import signal
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from backend_dividends.claims.ledger import ClaimLedger
from backend_dividends.claims.orchestrator import FeeClaimOrchestrator
from backend_dividends.claims.payouts import PayoutExecutor
from backend_dividends.claims.pipeline import ClaimPipeline
from backend_dividends.claims.reporting import DividendReporter
from backend_dividends.config.env import mask_url
from backend_dividends.config.settings import AppSettings, get_settings
from backend_dividends.database import Database, get_database
from backend_dividends.database.settings_repository import SettingsRepository
from backend_dividends.dividends_logging import get_logger
from backend_dividends.loyalty.evaluator import LoyaltyEvaluator
from backend_dividends.scheduler.engine import DividendScheduler, SchedulerConfig
from backend_dividends.solana_client.fee_source import FeeSourceClient, InMemoryFeeSource, PumpPortalFeeSource
from backend_dividends.solana_client.keys import load_keypair
from backend_dividends.solana_client.price_oracle import PriceOracle
from backend_dividends.solana_client.rpc import RpcClient
from backend_dividends.solana_client.token_holders import LedgerQueryService, RpcLedgerQueryService
from backend_dividends.solana_client.transfers import (
    InMemoryTransferClient,
    SolanaTransferClient,
    ValueTransferClient,
)

logger = get_logger(__name__)


@dataclass
class DividendsRuntime:
    """Every collaborator of the engine, built once per process."""

    app_settings: AppSettings
    db: Database
    settings_repo: SettingsRepository
    ledger: ClaimLedger
    evaluator: LoyaltyEvaluator
    orchestrator: FeeClaimOrchestrator
    pipeline: ClaimPipeline
    scheduler: DividendScheduler
    reporter: DividendReporter
    payouts: PayoutExecutor | None = None
    price_oracle: PriceOracle | None = None


def _build_fee_source(app_settings: AppSettings, rpc: RpcClient) -> FeeSourceClient:
    if app_settings.dry_run:
        logger.warning("fee_source_dry_run")
        return InMemoryFeeSource()
    keypair = load_keypair(app_settings.creator_private_key, "CREATOR_PRIVATE_KEY")
    return PumpPortalFeeSource(
        rpc,
        keypair,
        api_url=app_settings.pumpportal_api_url,
        priority_fee_sol=app_settings.priority_fee_sol,
        timeout_sec=app_settings.rpc_timeout_sec,
    )


def _build_transfer_client(app_settings: AppSettings) -> ValueTransferClient | None:
    if app_settings.dry_run:
        return InMemoryTransferClient()
    if not app_settings.payout_private_key:
        logger.warning("payout_signer_missing", message="PAYOUT_PRIVATE_KEY not set; payouts disabled")
        return None
    keypair = load_keypair(app_settings.payout_private_key, "PAYOUT_PRIVATE_KEY")
    return SolanaTransferClient(app_settings.rpc_url, keypair, timeout_sec=app_settings.rpc_timeout_sec)


def build_runtime(
    app_settings: AppSettings | None = None,
    *,
    db: Database | None = None,
    fee_source: FeeSourceClient | None = None,
    ledger_query: LedgerQueryService | None = None,
    transfer_client: ValueTransferClient | None = None,
    price_oracle: PriceOracle | None = None,
    clock: Callable[[], float] = time.time,
) -> DividendsRuntime:
    """
    Build the service graph. Any collaborator passed in is used as-is, which
    is how tests inject in-memory doubles; the rest come from env.
    """
    app_settings = app_settings or get_settings()
    db = db or get_database(app_settings.database_url)
    rpc: RpcClient | None = None
    if fee_source is None or ledger_query is None:
        rpc = RpcClient(app_settings.rpc_url, app_settings.rpc_timeout_sec)
    if fee_source is None:
        fee_source = _build_fee_source(app_settings, rpc)
    if ledger_query is None:
        ledger_query = RpcLedgerQueryService(rpc)
    if transfer_client is None:
        transfer_client = _build_transfer_client(app_settings)
    if price_oracle is None:
        price_oracle = PriceOracle(app_settings.price_api_url, app_settings.fallback_sol_price_usd)

    settings_repo = SettingsRepository(db, app_settings, clock=clock)
    ledger = ClaimLedger(db, clock=clock)
    evaluator = LoyaltyEvaluator(db, clock=clock)
    orchestrator = FeeClaimOrchestrator(fee_source)
    payouts = PayoutExecutor(db, transfer_client, clock=clock) if transfer_client is not None else None
    pipeline = ClaimPipeline(
        settings_repo,
        orchestrator,
        ledger_query,
        evaluator,
        ledger,
        payout_executor=payouts,
        clock=clock,
    )
    scheduler = DividendScheduler(
        pipeline,
        settings_repo,
        ledger,
        config=SchedulerConfig(
            poll_interval_sec=app_settings.poll_interval_sec,
            stale_claim_timeout_sec=app_settings.stale_claim_timeout_sec,
        ),
        clock=clock,
    )
    reporter = DividendReporter(db, ledger, evaluator, settings_repo, price_oracle)
    logger.info(
        "runtime_built",
        rpc=mask_url(app_settings.rpc_url),
        dry_run=app_settings.dry_run,
        payouts_enabled=payouts is not None,
    )
    return DividendsRuntime(
        app_settings=app_settings,
        db=db,
        settings_repo=settings_repo,
        ledger=ledger,
        evaluator=evaluator,
        orchestrator=orchestrator,
        pipeline=pipeline,
        scheduler=scheduler,
        reporter=reporter,
        payouts=payouts,
        price_oracle=price_oracle,
    )


def run_loop(runtime: DividendsRuntime) -> None:
    """Run the scheduler loop in the foreground until SIGTERM or KeyboardInterrupt."""
    stop_event = threading.Event()

    def request_shutdown(*args: Any, **kwargs: Any) -> None:
        logger.info("runtime_shutdown_signal")
        stop_event.set()

    try:
        signal.signal(signal.SIGTERM, request_shutdown)
    except (AttributeError, ValueError):
        # Windows or not in the main thread
        pass

    recovered = runtime.scheduler.recover_stale_claims()
    if recovered:
        logger.warning("runtime_recovered_stale_claims", claim_ids=recovered)
    try:
        runtime.scheduler.run_forever(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        logger.info("runtime_shutdown_signal")


def main() -> int:
    """CLI entrypoint: build from env and run the scheduler loop."""
    try:
        run_loop(build_runtime())
        return 0
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        return 0
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
