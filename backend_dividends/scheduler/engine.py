"""
Dividend scheduler: decides when a claim cycle runs and keeps it single-flight.

A cycle runs when settings are enabled and next_claim_scheduled has passed, or
when forced by an admin. At most one cycle runs at a time: an in-process lock
guards concurrent triggers and a processing claim row guards across processes.
Start/stop are explicit; nothing runs at import or construction time. The clock
is injected so tests drive cycles without real timers.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from backend_dividends.claims.ledger import ClaimLedger
from backend_dividends.claims.pipeline import (
    REASON_DISABLED,
    REASON_IN_PROGRESS,
    REASON_NOT_DUE,
    ClaimPipeline,
    CycleResult,
)
from backend_dividends.database.models import AutoClaimSettings, iso_or_none
from backend_dividends.database.settings_repository import SettingsRepository
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 120.0
DEFAULT_STALE_CLAIM_TIMEOUT_SEC = 3600.0
SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


def should_run(settings: AutoClaimSettings, now: float, force: bool = False) -> tuple[bool, str | None]:
    """Return (run, skip_reason). Forced cycles bypass both the enabled flag and the schedule."""
    if force:
        return True, None
    if not settings.enabled:
        return False, REASON_DISABLED
    if settings.next_claim_scheduled is not None and now < settings.next_claim_scheduled:
        return False, REASON_NOT_DUE
    return True, None


@dataclass
class SchedulerConfig:
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    stale_claim_timeout_sec: float = DEFAULT_STALE_CLAIM_TIMEOUT_SEC

    def __post_init__(self) -> None:
        self.poll_interval_sec = max(1.0, float(self.poll_interval_sec))
        self.stale_claim_timeout_sec = max(60.0, float(self.stale_claim_timeout_sec))


class DividendScheduler:
    def __init__(
        self,
        pipeline: ClaimPipeline,
        settings_repo: SettingsRepository,
        ledger: ClaimLedger,
        *,
        config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._pipeline = pipeline
        self._settings_repo = settings_repo
        self._ledger = ledger
        self._config = config or SchedulerConfig()
        self._clock = clock
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._last_run: int | None = None
        self._last_result: CycleResult | None = None

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    # --- cycles ---

    def run_cycle(self, force: bool = False) -> CycleResult:
        """
        Run one cycle if due (or forced). Returns a skipped result with reason
        disabled / not-due / in-progress instead of running; a trigger while a
        cycle is in flight is rejected, never queued.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("cycle_skipped", reason=REASON_IN_PROGRESS, source="lock")
            return CycleResult.skipped(REASON_IN_PROGRESS)
        try:
            now = self._clock()
            settings = self._settings_repo.get()
            run, reason = should_run(settings, now, force)
            if not run:
                logger.debug("cycle_skipped", reason=reason, next_claim_time=settings.next_claim_scheduled)
                return CycleResult.skipped(reason, next_claim_time=settings.next_claim_scheduled)
            active = self._ledger.active_claim()
            if active is not None:
                logger.info("cycle_skipped", reason=REASON_IN_PROGRESS, claim_id=active.id)
                return CycleResult.skipped(REASON_IN_PROGRESS, claim_id=active.id)
            logger.info("cycle_started", forced=force)
            result = self._pipeline.run(settings)
            with self._state_lock:
                self._last_run = int(now)
                self._last_result = result
            return result
        finally:
            self._cycle_lock.release()

    def tick(self) -> CycleResult | None:
        """Scheduled trigger: never raises."""
        try:
            return self.run_cycle(force=False)
        except Exception as e:
            logger.exception("scheduler_tick_failed", error=str(e))
            return None

    def recover_stale_claims(self) -> list[int]:
        return [c.id for c in self._ledger.recover_stale(self._config.stale_claim_timeout_sec)]

    # --- lifecycle ---

    def run_forever(self, stop_event: threading.Event) -> None:
        """Tick every poll_interval_sec until stop_event is set; wakes every second to check it."""
        interval = self._config.poll_interval_sec
        logger.info("scheduler_loop_started", poll_interval_sec=interval)
        tick_count = 0
        while not stop_event.is_set():
            tick_start = time.monotonic()
            tick_count += 1
            self.tick()
            deadline = tick_start + interval
            while not stop_event.is_set() and time.monotonic() < deadline:
                stop_event.wait(timeout=min(1.0, max(0, deadline - time.monotonic())))
        logger.info("scheduler_loop_stopped", tick_count=tick_count)

    def start(self) -> bool:
        """Start the background loop. Returns False if it is already running."""
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            try:
                recovered = self.recover_stale_claims()
            except Exception as e:
                logger.warning("stale_claim_recovery_failed", error=str(e))
                recovered = []
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self.run_forever,
                args=(self._stop_event,),
                name="dividend-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info("scheduler_started", recovered_claims=recovered)
        return True

    def stop(self, timeout_sec: float = SHUTDOWN_JOIN_TIMEOUT_SEC) -> bool:
        """Stop the loop; an in-flight cycle finishes first. Returns False if it was not running."""
        with self._state_lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if thread is None or stop_event is None:
            return False
        stop_event.set()
        thread.join(timeout=timeout_sec)
        if thread.is_alive():
            logger.warning("scheduler_shutdown_timeout", timeout_sec=timeout_sec)
        else:
            logger.info("scheduler_stopped")
        return True

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._thread is not None and self._thread.is_alive()

    def status(self) -> dict[str, Any]:
        settings = self._settings_repo.get()
        active = self._ledger.active_claim()
        with self._state_lock:
            last_run = self._last_run
            last_result = self._last_result
        return {
            "running": self.running,
            "claim_in_progress": self._cycle_lock.locked() or active is not None,
            "active_claim_id": active.id if active else None,
            "enabled": settings.enabled,
            "next_run": iso_or_none(settings.next_claim_scheduled),
            "last_run": iso_or_none(last_run),
            "last_successful_claim": iso_or_none(settings.last_successful_claim),
            "poll_interval_sec": self._config.poll_interval_sec,
            "claim_interval_minutes": settings.claim_interval_minutes,
            "last_result": last_result.to_dict() if last_result else None,
        }
