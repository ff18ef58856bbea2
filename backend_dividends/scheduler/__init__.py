from backend_dividends.scheduler.engine import DividendScheduler, SchedulerConfig, should_run

__all__ = ["DividendScheduler", "SchedulerConfig", "should_run"]
