"""
Tests for the admin API over an in-memory runtime.
"""

from __future__ import annotations

from backend_dividends.solana_client.token_holders import TokenHolder

from conftest import FEE_ACCOUNT, HOLDER_A, HOLDER_B, MINT

PREFIX = "/admin/dividends"


def _configure(client):
    resp = client.put(
        f"{PREFIX}/settings",
        json={
            "enabled": True,
            "fee_source_account": FEE_ACCOUNT,
            "token_mint_address": MINT,
            "distribution_percentage": "30",
        },
    )
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_get_and_update_settings(client):
    assert client.get(f"{PREFIX}/settings").json()["enabled"] is False
    data = _configure(client)
    assert data["enabled"] is True
    assert data["token_mint_address"] == MINT
    assert data["distribution_percentage"] == "30"


def test_invalid_settings_return_400(client):
    resp = client.put(f"{PREFIX}/settings", json={"token_mint_address": "nope"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_settings"


def test_out_of_range_percentage_is_422(client):
    resp = client.put(f"{PREFIX}/settings", json={"distribution_percentage": 150})
    assert resp.status_code == 422


def test_trigger_and_claim_detail(client):
    _configure(client)
    result = client.post(f"{PREFIX}/trigger", json={"force": True}).json()
    assert result["status"] == "completed"
    assert result["distribution_amount"] == 3_000_000_000

    detail = client.get(f"{PREFIX}/claims/{result['claim_id']}").json()
    assert detail["claim"]["status"] == "completed"
    assert detail["balanced"] is True
    assert len(detail["snapshots"]) == 2
    assert {d["holder_address"] for d in detail["distributions"]} == {HOLDER_A, HOLDER_B}

    listing = client.get(f"{PREFIX}/claims").json()
    assert listing["count"] == 1
    assert client.get(f"{PREFIX}/claims", params={"status": "failed"}).json()["count"] == 0


def test_trigger_without_force_respects_disabled(client):
    result = client.post(f"{PREFIX}/trigger").json()
    assert result["status"] == "skipped"
    assert result["reason"] == "disabled"


def test_unknown_claim_404(client):
    resp = client.get(f"{PREFIX}/claims/12345")
    assert resp.status_code == 404
    assert "detail" in resp.json()


def test_trigger_in_progress_conflict(client, runtime):
    _configure(client)
    runtime.ledger.open_claim()
    result = client.post(f"{PREFIX}/trigger", json={"force": True}).json()
    assert result["status"] == "skipped"
    assert result["reason"] == "in-progress"


def test_payout_route(client):
    _configure(client)
    claim_id = client.post(f"{PREFIX}/trigger", json={"force": True}).json()["claim_id"]
    summary = client.post(f"{PREFIX}/claims/{claim_id}/payouts").json()
    assert summary["paid"] == 2
    assert len(client.get(f"{PREFIX}/claims/{claim_id}").json()["payouts"]) == 2


def test_payout_of_failed_claim_conflict(client, ledger_query):
    _configure(client)
    ledger_query.set_balances(MINT, {})
    claim_id = client.post(f"{PREFIX}/trigger", json={"force": True}).json()["claim_id"]
    assert client.post(f"{PREFIX}/claims/{claim_id}/payouts").status_code == 409
    unreconciled = client.get(f"{PREFIX}/claims/unreconciled").json()
    assert [c["id"] for c in unreconciled["claims"]] == [claim_id]


def test_holders_routes(client, runtime):
    assert client.get(f"{PREFIX}/holders").status_code == 400

    _configure(client)
    runtime.evaluator.evaluate(
        [TokenHolder(address=HOLDER_A, balance=700), TokenHolder(address=HOLDER_B, balance=600)], MINT
    )
    client.post(f"{PREFIX}/trigger", json={"force": True})

    blacklisted = client.get(f"{PREFIX}/holders", params={"blacklisted": True}).json()
    assert [h["holder_address"] for h in blacklisted["holders"]] == [HOLDER_B]

    stats = client.get(f"{PREFIX}/holders/stats").json()
    assert stats["blacklisted_holders"] == 1

    reset = client.post(f"{PREFIX}/holders/{HOLDER_B}/reset", json={"reason": "appeal"})
    assert reset.status_code == 200
    assert reset.json()["permanently_blacklisted"] is False
    assert client.post(f"{PREFIX}/holders/unknown/reset").status_code == 404


def test_cron_lifecycle(client):
    assert client.get(f"{PREFIX}/cron/status").json()["running"] is False
    assert client.post(f"{PREFIX}/cron/start").json() == {"started": True, "running": True}
    assert client.get(f"{PREFIX}/cron/status").json()["running"] is True
    assert client.post(f"{PREFIX}/cron/stop").json() == {"stopped": True, "running": False}


def test_recover_stale_route(client, runtime, clock):
    claim = runtime.ledger.open_claim()
    clock.advance(7200)
    assert client.post(f"{PREFIX}/claims/recover-stale").json() == {"recovered_claim_ids": [claim.id]}


def test_stats(client):
    _configure(client)
    client.post(f"{PREFIX}/trigger", json={"force": True})
    stats = client.get(f"{PREFIX}/stats").json()
    assert stats["completed_claims"] == 1
    assert stats["total_claimed_sol"] == "10"
    assert stats["total_distributed_lamports"] == 3_000_000_000
    assert stats["sol_price"]["source"] == "fallback"
    assert stats["total_claimed_usd"] == "2000.00"
    assert stats["loyalty"]["total_holders"] == 2
