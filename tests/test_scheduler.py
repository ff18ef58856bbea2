"""
Tests for the dividend scheduler: due checks, single-flight cycles, lifecycle.
"""

from __future__ import annotations

import threading
import time

from backend_dividends.claims.pipeline import STATUS_COMPLETED, STATUS_SKIPPED
from backend_dividends.core.exceptions import PersistenceError
from backend_dividends.database.models import AutoClaimSettings, CLAIM_FAILED
from backend_dividends.scheduler import SchedulerConfig, should_run
from backend_dividends.solana_client.fee_source import FeeClaimResult, InMemoryFeeSource

from conftest import FEE_ACCOUNT, SOL, START_TIME


def test_should_run_rules():
    assert should_run(AutoClaimSettings(enabled=False), 100) == (False, "disabled")
    assert should_run(AutoClaimSettings(enabled=True, next_claim_scheduled=200), 100) == (False, "not-due")
    assert should_run(AutoClaimSettings(enabled=True, next_claim_scheduled=100), 100) == (True, None)
    assert should_run(AutoClaimSettings(enabled=True), 100) == (True, None)
    assert should_run(AutoClaimSettings(enabled=False, next_claim_scheduled=200), 100, force=True) == (True, None)


def test_config_clamps():
    config = SchedulerConfig(poll_interval_sec=0, stale_claim_timeout_sec=1)
    assert config.poll_interval_sec == 1.0
    assert config.stale_claim_timeout_sec == 60.0


def test_disabled_cycle_has_no_side_effects(runtime, db, fee_source):
    result = runtime.scheduler.run_cycle()
    assert result.status == STATUS_SKIPPED
    assert result.reason == "disabled"
    assert db.list_claims() == []
    assert runtime.settings_repo.get().next_claim_scheduled is None


def test_not_due_is_idempotent(configured, db, clock):
    first = configured.scheduler.run_cycle()
    assert first.status == STATUS_COMPLETED

    clock.advance(60)
    for _ in range(3):
        again = configured.scheduler.run_cycle()
        assert again.status == STATUS_SKIPPED
        assert again.reason == "not-due"
    assert len(db.list_claims()) == 1

    clock.advance(600)
    assert configured.scheduler.run_cycle().reason != "not-due"


def test_forced_trigger_bypasses_schedule(configured, db, fee_source, clock):
    configured.scheduler.run_cycle()
    fee_source.balances[FEE_ACCOUNT] = 5 * SOL
    result = configured.scheduler.run_cycle(force=True)
    assert result.status == STATUS_COMPLETED
    assert len(db.list_claims()) == 2


def test_existing_processing_claim_blocks_cycle(configured, db):
    held = configured.ledger.open_claim()
    result = configured.scheduler.run_cycle(force=True)
    assert result.status == STATUS_SKIPPED
    assert result.reason == "in-progress"
    assert result.claim_id == held.id
    assert len(db.list_claims()) == 1


class BlockingFeeSource(InMemoryFeeSource):
    """claim() waits until released so a second trigger can race the first."""

    def __init__(self, balances):
        super().__init__(balances)
        self.entered = threading.Event()
        self.release = threading.Event()

    def claim(self, account: str) -> FeeClaimResult:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().claim(account)


def test_concurrent_trigger_rejected(app_settings, db, ledger_query, transfer_client, price_oracle, clock):
    from backend_dividends.agent_worker.runtime import build_runtime

    source = BlockingFeeSource({FEE_ACCOUNT: 10 * SOL})
    rt = build_runtime(
        app_settings,
        db=db,
        fee_source=source,
        ledger_query=ledger_query,
        transfer_client=transfer_client,
        price_oracle=price_oracle,
        clock=clock,
    )
    from conftest import MINT

    rt.settings_repo.update(enabled=True, fee_source_account=FEE_ACCOUNT, token_mint_address=MINT)

    results = []
    worker = threading.Thread(target=lambda: results.append(rt.scheduler.run_cycle(force=True)))
    worker.start()
    assert source.entered.wait(timeout=5)

    second = rt.scheduler.run_cycle(force=True)
    assert second.status == STATUS_SKIPPED
    assert second.reason == "in-progress"
    assert rt.scheduler.status()["claim_in_progress"] is True

    source.release.set()
    worker.join(timeout=5)
    assert results[0].status == STATUS_COMPLETED
    assert len(db.list_claims()) == 1
    assert len(source.claims) == 1


def test_tick_never_raises(configured, monkeypatch):
    def boom():
        raise RuntimeError("db gone")

    monkeypatch.setattr(configured.settings_repo, "get", boom)
    assert configured.scheduler.tick() is None


def test_start_stop_status(configured):
    scheduler = configured.scheduler
    assert scheduler.running is False
    assert scheduler.start() is True
    assert scheduler.start() is False
    assert scheduler.running is True

    deadline = time.monotonic() + 5
    while scheduler.status()["last_run"] is None and time.monotonic() < deadline:
        time.sleep(0.05)

    status = scheduler.status()
    assert status["running"] is True
    assert status["enabled"] is True
    assert status["last_result"]["status"] == STATUS_COMPLETED
    assert status["poll_interval_sec"] == 120.0

    assert scheduler.stop() is True
    assert scheduler.running is False
    assert scheduler.stop() is False


def test_start_recovers_stale_claims(configured, db, clock):
    stale = configured.ledger.open_claim()
    clock.advance(7200)
    assert configured.scheduler.recover_stale_claims() == [stale.id]
    assert db.get_claim(stale.id).status == CLAIM_FAILED
    assert db.get_claim(stale.id).failure_stage == "abandoned"


def test_status_without_runs(runtime):
    status = runtime.scheduler.status()
    assert status["running"] is False
    assert status["claim_in_progress"] is False
    assert status["last_result"] is None
    assert status["next_run"] is None
    assert status["claim_interval_minutes"] == 10


def test_tick_logs_claim_row_write_failure(configured, db, monkeypatch):
    def no_row(*args, **kwargs):
        raise PersistenceError("db locked")

    monkeypatch.setattr(db, "create_claim", no_row)
    assert configured.scheduler.tick() is None
    assert configured.scheduler.status()["claim_in_progress"] is False
