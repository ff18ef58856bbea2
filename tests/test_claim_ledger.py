"""
Tests for the claim ledger: single processing claim, one-way transitions,
write-once snapshots and distributions, stale recovery.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_dividends.claims.ledger import STAGE_ABANDONED, ClaimLedger
from backend_dividends.core.exceptions import ClaimInProgressError, ClaimNotFoundError, ClaimStateError
from backend_dividends.database.models import CLAIM_COMPLETED, CLAIM_FAILED, CLAIM_PROCESSING
from backend_dividends.distribution import compute_distribution
from backend_dividends.loyalty.evaluator import EvaluatedHolder, EvaluationResult

from conftest import HOLDER_A, HOLDER_B


@pytest.fixture
def ledger(db, clock):
    return ClaimLedger(db, clock=clock)


def _evaluation():
    return EvaluationResult(
        holders=[
            EvaluatedHolder(HOLDER_A, 700, Decimal("70"), 700, Decimal("100"), True, False),
            EvaluatedHolder(HOLDER_B, 300, Decimal("30"), 600, Decimal("50"), False, True, True),
        ]
    )


def _funded(ledger, amount=1_000):
    claim = ledger.open_claim()
    ledger.record_fee_claim(claim.id, claimed_amount=amount * 10, transaction_id="tx-1", distribution_amount=amount)
    return claim


def test_open_claim_is_processing(ledger):
    claim = ledger.open_claim()
    assert claim.status == CLAIM_PROCESSING
    assert ledger.active_claim().id == claim.id


def test_second_processing_claim_rejected(ledger):
    ledger.open_claim()
    with pytest.raises(ClaimInProgressError):
        ledger.open_claim()


def test_new_claim_allowed_after_terminal(ledger):
    first = ledger.open_claim()
    ledger.fail(first.id, "boom", "snapshot")
    second = ledger.open_claim()
    assert second.id != first.id
    assert ledger.active_claim().id == second.id


def test_full_lifecycle(ledger, db):
    claim = _funded(ledger)
    ledger.record_snapshot(claim.id, _evaluation())
    ledger.record_distributions(claim.id, compute_distribution([(HOLDER_A, 700)], 1_000))
    done = ledger.complete(claim.id, total_supply=1_000, holder_count=2, eligible_holder_count=1)

    assert done.status == CLAIM_COMPLETED
    assert done.completed_at is not None
    assert len(db.get_snapshots(claim.id)) == 2
    assert ledger.active_claim() is None


def test_complete_refuses_unbalanced_distributions(ledger):
    claim = _funded(ledger, amount=1_000)
    ledger.record_distributions(claim.id, compute_distribution([(HOLDER_A, 700)], 999))
    with pytest.raises(ClaimStateError):
        ledger.complete(claim.id, total_supply=1, holder_count=1, eligible_holder_count=1)
    assert ledger.get_claim(claim.id).status == CLAIM_PROCESSING


def test_distributions_written_once(ledger):
    claim = _funded(ledger)
    shares = compute_distribution([(HOLDER_A, 700)], 1_000)
    ledger.record_distributions(claim.id, shares)
    with pytest.raises(ClaimStateError):
        ledger.record_distributions(claim.id, shares)


def test_snapshot_written_once(ledger):
    claim = _funded(ledger)
    ledger.record_snapshot(claim.id, _evaluation())
    with pytest.raises(ClaimStateError):
        ledger.record_snapshot(claim.id, _evaluation())


def test_terminal_claims_do_not_move(ledger):
    claim = _funded(ledger)
    ledger.fail(claim.id, "boom", "distribution")
    with pytest.raises(ClaimStateError):
        ledger.transition(claim.id, CLAIM_COMPLETED)
    with pytest.raises(ClaimStateError):
        ledger.fail(claim.id, "again", "distribution")
    with pytest.raises(ClaimStateError):
        ledger.record_distributions(claim.id, compute_distribution([(HOLDER_A, 1)], 1))


def test_fail_keeps_audit_fields(ledger):
    claim = _funded(ledger)
    failed = ledger.fail(claim.id, "no eligible holders", "distribution")
    assert failed.status == CLAIM_FAILED
    assert failed.error_message == "no eligible holders"
    assert failed.failure_stage == "distribution"
    assert failed.funds_claimed is True
    assert failed.transaction_id == "tx-1"


def test_unknown_claim(ledger):
    with pytest.raises(ClaimNotFoundError):
        ledger.get_claim(999)


def test_recover_stale(ledger, clock):
    claim = ledger.open_claim()
    assert ledger.recover_stale(3600) == []
    clock.advance(3601)
    recovered = ledger.recover_stale(3600)
    assert [c.id for c in recovered] == [claim.id]
    assert recovered[0].failure_stage == STAGE_ABANDONED
    assert ledger.active_claim() is None


def test_list_unreconciled(ledger):
    funded = _funded(ledger)
    ledger.fail(funded.id, "boom", "snapshot")
    unfunded = ledger.open_claim()
    ledger.fail(unfunded.id, "rpc down", "fee_claim")
    assert [c.id for c in ledger.list_unreconciled()] == [funded.id]
