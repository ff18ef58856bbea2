"""
Main entrypoint: dividend scheduler loop in a background thread + FastAPI admin API in the main thread.

The scheduler starts explicitly here (not at import), runs in a daemon thread
and is stopped on API shutdown. Env: DATABASE_URL, SOLANA_RPC_URL,
CREATOR_PRIVATE_KEY, PAYOUT_PRIVATE_KEY, API_HOST, API_PORT, LOG_LEVEL, etc.

API-only (scheduler controlled via /admin/dividends/cron/*):
    uvicorn backend_dividends.api_server.server:app --host 0.0.0.0 --port 8000
"""

import os
import sys

# Configure structured JSON logging before other imports that may log
from backend_dividends.dividends_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Build the runtime, start the scheduler, then serve the admin API."""
    from backend_dividends.agent_worker.runtime import build_runtime
    from backend_dividends.api_server.server import create_app
    import uvicorn

    try:
        runtime = build_runtime()
    except Exception as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    runtime.scheduler.start()
    logger.info("main_scheduler_started", poll_interval_sec=runtime.scheduler.config.poll_interval_sec)

    app = create_app(runtime)
    host = runtime.app_settings.api_host
    port = runtime.app_settings.api_port
    logger.info("main_server_starting", host=host, port=port)
    try:
        uvicorn.run(app, host=host, port=port, log_level=os.getenv("LOG_LEVEL", "info").lower())
    finally:
        runtime.scheduler.stop()


if __name__ == "__main__":
    main()
