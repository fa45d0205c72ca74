from .scheduler import next_reset, persisted_schedule, run_daily_scheduler, run_reconciliation

__all__ = ["next_reset", "persisted_schedule", "run_daily_scheduler", "run_reconciliation"]
