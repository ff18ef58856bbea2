"""
FastAPI admin API for the dividends engine.

Mounted under /admin/dividends: settings, manual trigger, cron control, claim
history, holder loyalty and stats. The scheduler loop only starts with the app
when SCHEDULER_AUTOSTART is set; otherwise use POST /cron/start.

Run: uvicorn backend_dividends.api_server.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend_dividends.agent_worker.runtime import DividendsRuntime, build_runtime
from backend_dividends.core.exceptions import (
    ClaimInProgressError,
    ClaimNotFoundError,
    ClaimStateError,
    DividendError,
    ExternalServiceError,
    HolderNotFoundError,
    InvalidSettingsError,
    PayoutError,
)
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

ERROR_STATUS: dict[type[DividendError], int] = {
    InvalidSettingsError: 400,
    ClaimNotFoundError: 404,
    HolderNotFoundError: 404,
    ClaimInProgressError: 409,
    ClaimStateError: 409,
    PayoutError: 422,
    ExternalServiceError: 502,
}


def _status_for(exc: DividendError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class SettingsUpdateRequest(BaseModel):
    """PUT /settings body. Omitted fields are left unchanged."""

    enabled: bool | None = None
    claim_interval_minutes: int | None = Field(None, ge=1, description="Minutes between claim cycles")
    distribution_percentage: Decimal | None = Field(None, ge=0, le=100, description="Share of claimed fees paid out")
    min_claim_amount_sol: Decimal | None = Field(None, ge=0, description="Skip claiming below this balance")
    fee_source_account: str | None = Field(None, max_length=64, description="Fee account (base58)")
    token_mint_address: str | None = Field(None, max_length=64, description="Token mint (base58)")
    sell_threshold_percent: Decimal | None = Field(None, ge=0, le=100, description="Allowed sell-down before blacklist")
    auto_payout_enabled: bool | None = None


class TriggerRequest(BaseModel):
    force: bool = Field(False, description="Run even if disabled or not yet due")


class HolderResetRequest(BaseModel):
    new_balance: int | None = Field(None, ge=0, description="New baseline in token base units; default last seen balance")
    reason: str | None = Field(None, max_length=256)


class PayoutRequest(BaseModel):
    retry_failed: bool = False


class CronStatusResponse(BaseModel):
    running: bool
    claim_in_progress: bool
    active_claim_id: int | None = None
    enabled: bool
    next_run: str | None = None
    last_run: str | None = None
    last_successful_claim: str | None = None
    poll_interval_sec: float
    claim_interval_minutes: int
    last_result: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_runtime(request: Request) -> DividendsRuntime:
    return request.app.state.runtime


def _require_mint(runtime: DividendsRuntime) -> str:
    mint = runtime.settings_repo.get().token_mint_address
    if not mint:
        raise HTTPException(status_code=400, detail="token_mint_address is not configured")
    return mint


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

router = APIRouter()


@router.get("/settings")
def get_settings(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.settings_repo.get().to_dict()


@router.put("/settings")
def update_settings(body: SettingsUpdateRequest, runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    fields = body.model_dump(exclude_unset=True)
    logger.info("api_settings_update", fields=sorted(fields))
    return runtime.settings_repo.update(**fields).to_dict()


@router.post("/trigger")
def trigger_claim(body: TriggerRequest | None = None, runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    """Run one cycle synchronously and return its CycleResult."""
    force = bool(body and body.force)
    logger.info("api_manual_trigger", force=force)
    return runtime.scheduler.run_cycle(force=force).to_dict()


@router.post("/cron/start")
def cron_start(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    started = runtime.scheduler.start()
    return {"started": started, "running": runtime.scheduler.running}


@router.post("/cron/stop")
def cron_stop(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    stopped = runtime.scheduler.stop()
    return {"stopped": stopped, "running": runtime.scheduler.running}


@router.get("/cron/status", response_model=CronStatusResponse)
def cron_status(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.scheduler.status()


@router.get("/claims")
def list_claims(
    limit: int = Query(20, ge=1, le=500),
    status: str | None = Query(None, pattern="^(processing|completed|failed)$"),
    runtime: DividendsRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    claims = runtime.ledger.list_claims(limit=limit, status=status)
    return {"claims": [c.to_dict() for c in claims], "count": len(claims)}


@router.get("/claims/unreconciled")
def list_unreconciled(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    claims = runtime.ledger.list_unreconciled()
    return {"claims": [c.to_dict() for c in claims], "count": len(claims)}


@router.post("/claims/recover-stale")
def recover_stale(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return {"recovered_claim_ids": runtime.scheduler.recover_stale_claims()}


@router.get("/claims/{claim_id}")
def get_claim(claim_id: int, runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.reporter.claim_detail(claim_id)


@router.post("/claims/{claim_id}/payouts")
def pay_claim(
    claim_id: int,
    body: PayoutRequest | None = None,
    runtime: DividendsRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    if runtime.payouts is None:
        raise HTTPException(status_code=503, detail="Payouts are not configured")
    summary = runtime.payouts.pay_claim(claim_id, retry_failed=bool(body and body.retry_failed))
    return summary.to_dict()


@router.get("/holders")
def list_holders(
    limit: int = Query(100, ge=1, le=5000),
    blacklisted: bool = False,
    runtime: DividendsRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    mint = _require_mint(runtime)
    holders = runtime.evaluator.list_holders(mint, limit=limit, blacklisted_only=blacklisted)
    return {"token_mint_address": mint, "holders": [h.to_dict() for h in holders], "count": len(holders)}


@router.get("/holders/stats")
def holder_stats(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.evaluator.loyalty_stats(_require_mint(runtime))


@router.post("/holders/{address}/reset")
def reset_holder(
    address: str,
    body: HolderResetRequest | None = None,
    runtime: DividendsRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    mint = _require_mint(runtime)
    body = body or HolderResetRequest()
    record = runtime.evaluator.reset_holder(mint, address, new_balance=body.new_balance, reason=body.reason)
    return record.to_dict()


@router.get("/stats")
def stats(runtime: DividendsRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.reporter.stats()


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(runtime: DividendsRuntime | None = None) -> FastAPI:
    """Build the app. Without a runtime, one is built from env at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime()
        rt: DividendsRuntime = app.state.runtime
        if rt.app_settings.scheduler_autostart:
            rt.scheduler.start()
            logger.info("api_scheduler_autostarted")
        yield
        if rt.scheduler.running:
            rt.scheduler.stop()

    app = FastAPI(
        title="Backend Dividends API",
        description="Admin API for holder rewards: fee claims, loyalty eligibility and distributions.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    @app.exception_handler(DividendError)
    async def dividend_error_handler(request: Request, exc: DividendError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.warning("api_dividend_error", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(router, prefix="/admin/dividends", tags=["Dividends"])
    return app


app = create_app()
