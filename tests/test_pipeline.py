"""
End-to-end claim cycles over in-memory doubles: fee claim, snapshot, loyalty
filter, distribution and ledger.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_dividends.claims.pipeline import STATUS_COMPLETED, STATUS_FAILED, STATUS_SKIPPED
from backend_dividends.core.exceptions import PersistenceError
from backend_dividends.database.models import CLAIM_COMPLETED, CLAIM_FAILED, DISTRIBUTION_PENDING
from backend_dividends.solana_client.token_holders import TokenHolder

from conftest import FEE_ACCOUNT, HOLDER_A, HOLDER_B, HOLDER_C, MINT, SOL, START_TIME


def _run(runtime):
    return runtime.scheduler.run_cycle(force=True)


def test_worked_example_seller_excluded(configured, ledger_query, db):
    """10 SOL claimed at 30% -> 3 SOL pool; B dropped from 600 to 300 and gets nothing."""
    configured.evaluator.evaluate(
        [TokenHolder(address=HOLDER_A, balance=700), TokenHolder(address=HOLDER_B, balance=600)], MINT
    )

    result = _run(configured)

    assert result.status == STATUS_COMPLETED
    assert result.claimed_amount == 10 * SOL
    assert result.distribution_amount == 3 * SOL
    assert result.holder_count == 2
    assert result.eligible_holder_count == 1

    claim = db.get_claim(result.claim_id)
    assert claim.status == CLAIM_COMPLETED
    assert claim.transaction_id == "sim-claim-1"
    assert claim.eligible_holder_count == 1
    assert claim.total_supply == 1000

    dists = db.get_distributions(result.claim_id)
    assert [(d.holder_address, d.dividend_amount) for d in dists] == [(HOLDER_A, 3 * SOL)]
    assert dists[0].status == DISTRIBUTION_PENDING
    assert dists[0].share_percentage == Decimal("100.000000")

    snapshots = {s.holder_address: s for s in db.get_snapshots(result.claim_id)}
    assert set(snapshots) == {HOLDER_A, HOLDER_B}
    assert snapshots[HOLDER_B].is_eligible is False
    assert snapshots[HOLDER_B].initial_balance == 600
    assert snapshots[HOLDER_B].retention_percentage == Decimal("50.0000")
    assert db.get_eligibility(MINT, HOLDER_B).permanently_blacklisted is True


def test_first_claim_splits_pool_by_balance(configured, db):
    result = _run(configured)
    assert result.status == STATUS_COMPLETED
    by_addr = {d.holder_address: d.dividend_amount for d in db.get_distributions(result.claim_id)}
    assert by_addr == {HOLDER_A: 2_100_000_000, HOLDER_B: 900_000_000}
    assert sum(by_addr.values()) == db.get_claim(result.claim_id).distribution_amount


def test_snapshot_has_one_row_per_holder(configured, ledger_query, db):
    ledger_query.set_balances(MINT, {HOLDER_A: 5, HOLDER_B: 3, HOLDER_C: 1})
    result = _run(configured)
    assert len(db.get_snapshots(result.claim_id)) == 3
    assert result.holder_count == 3


def test_single_ledger_query_per_claim(configured, ledger_query):
    _run(configured)
    assert ledger_query.calls == [MINT]


def test_amount_comes_from_claim_not_balance_check(configured, fee_source, db):
    fee_source.accrue_before_claim = 2 * SOL
    result = _run(configured)
    assert result.claimed_amount == 12 * SOL
    assert db.get_claim(result.claim_id).distribution_amount == 3_600_000_000


def test_no_eligible_holders_fails_after_funds_claimed(configured, ledger_query, db):
    configured.evaluator.evaluate(
        [TokenHolder(address=HOLDER_A, balance=7000), TokenHolder(address=HOLDER_B, balance=3000)], MINT
    )
    result = _run(configured)

    assert result.status == STATUS_FAILED
    assert result.failure_stage == "distribution"
    claim = db.get_claim(result.claim_id)
    assert claim.status == CLAIM_FAILED
    assert claim.funds_claimed is True
    assert claim.failure_stage == "distribution"
    assert db.get_distributions(result.claim_id) == []
    assert len(db.get_snapshots(result.claim_id)) == 2
    assert [c.id for c in configured.ledger.list_unreconciled()] == [result.claim_id]


def test_no_holders_fails_at_snapshot(configured, ledger_query, db):
    ledger_query.set_balances(MINT, {})
    result = _run(configured)
    assert result.status == STATUS_FAILED
    assert result.failure_stage == "snapshot"
    claim = db.get_claim(result.claim_id)
    assert claim.status == CLAIM_FAILED
    assert claim.claimed_amount == 10 * SOL
    assert claim.needs_reconciliation is True


def test_holder_query_error_fails_claim(configured, ledger_query, db):
    from backend_dividends.core.exceptions import ExternalServiceError

    ledger_query.error = ExternalServiceError("rpc down", service="solana_rpc")
    result = _run(configured)
    assert result.status == STATUS_FAILED
    assert result.failure_stage == "snapshot"
    assert "rpc down" in db.get_claim(result.claim_id).error_message


def test_not_configured_is_noop_without_claim_row(runtime, db, clock):
    runtime.settings_repo.update(enabled=True)
    result = _run(runtime)
    assert result.status == STATUS_SKIPPED
    assert result.reason == "not-configured"
    assert db.list_claims() == []
    assert runtime.settings_repo.get().next_claim_scheduled == int(START_TIME) + 600


def test_below_minimum_is_noop(configured, fee_source, db):
    fee_source.balances[FEE_ACCOUNT] = 500
    result = _run(configured)
    assert result.status == STATUS_SKIPPED
    assert result.reason == "below-minimum"
    assert db.list_claims() == []
    assert fee_source.claims == []
    assert configured.settings_repo.get().last_successful_claim is None


def test_balance_check_failure_creates_no_claim(configured, fee_source, db):
    fee_source.balance_error = RuntimeError("rpc timeout")
    result = _run(configured)
    assert result.status == STATUS_FAILED
    assert result.failure_stage == "fee_claim"
    assert result.claim_id is None
    assert db.list_claims() == []


def test_fee_claim_failure_marks_claim_failed(configured, fee_source, db, ledger_query):
    fee_source.claim_error = RuntimeError("pumpportal 500")
    result = _run(configured)
    assert result.status == STATUS_FAILED
    claim = db.get_claim(result.claim_id)
    assert claim.status == CLAIM_FAILED
    assert claim.failure_stage == "fee_claim"
    assert claim.funds_claimed is False
    assert ledger_query.calls == []
    assert configured.ledger.list_unreconciled() == []


def test_unconfirmed_claim_keeps_transaction_id(configured, fee_source, db):
    from backend_dividends.solana_client.fee_source import FeeClaimSubmittedError

    fee_source.claim_error = FeeClaimSubmittedError("not confirmed in 60s", transaction_id="sig-123")
    result = _run(configured)
    claim = db.get_claim(result.claim_id)
    assert claim.transaction_id == "sig-123"
    assert claim.needs_reconciliation is True


def test_success_advances_schedule_and_stamps_last_claim(configured, clock):
    result = _run(configured)
    settings = configured.settings_repo.get()
    assert result.next_claim_time == int(START_TIME) + 600
    assert settings.next_claim_scheduled == int(START_TIME) + 600
    assert settings.last_successful_claim == int(START_TIME)


def test_failure_advances_schedule_only(configured, ledger_query):
    ledger_query.set_balances(MINT, {})
    _run(configured)
    settings = configured.settings_repo.get()
    assert settings.next_claim_scheduled == int(START_TIME) + 600
    assert settings.last_successful_claim is None


def test_auto_payout_after_completion(configured, transfer_client, db):
    configured.settings_repo.update(auto_payout_enabled=True)
    result = _run(configured)
    assert result.status == STATUS_COMPLETED
    assert result.payouts["paid"] == 2
    assert sorted(t[0] for t in transfer_client.transfers) == sorted([HOLDER_A, HOLDER_B])
    assert db.get_claim(result.claim_id).status == CLAIM_COMPLETED


def test_auto_payout_failure_keeps_claim_completed(configured, transfer_client, db):
    configured.settings_repo.update(auto_payout_enabled=True)
    transfer_client.balance = 1
    result = _run(configured)
    assert result.status == STATUS_COMPLETED
    assert "error" in result.payouts
    assert db.get_claim(result.claim_id).status == CLAIM_COMPLETED


def _failing_write(*args, **kwargs):
    raise PersistenceError("disk full")


@pytest.mark.parametrize(
    ("write", "stage"),
    [("insert_snapshots", "snapshot"), ("insert_distributions", "persistence")],
)
def test_write_failure_fails_claim_at_its_stage(configured, db, monkeypatch, write, stage):
    monkeypatch.setattr(db, write, _failing_write)
    result = _run(configured)
    assert result.status == STATUS_FAILED
    assert result.failure_stage == stage
    assert "disk full" in result.error

    claim = db.get_claim(result.claim_id)
    assert claim.status == CLAIM_FAILED
    assert claim.failure_stage == stage
    assert claim.needs_reconciliation is True
    assert db.get_distributions(result.claim_id) == []
    settings = configured.settings_repo.get()
    assert settings.next_claim_scheduled == int(START_TIME) + 600
    assert settings.last_successful_claim is None


def test_claim_row_write_failure_propagates_from_manual_run(configured, db, monkeypatch):
    monkeypatch.setattr(db, "create_claim", _failing_write)
    with pytest.raises(PersistenceError):
        _run(configured)
    assert db.list_claims() == []
