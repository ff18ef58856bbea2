"""
Process wiring for the dividends engine: builds the runtime and runs the scheduler loop.
"""

from backend_dividends.agent_worker.runtime import DividendsRuntime, build_runtime, run_loop

__all__ = ["DividendsRuntime", "build_runtime", "run_loop"]
