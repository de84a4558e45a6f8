"""Background scheduling (APScheduler)."""

from .service import SchedulerService

__all__ = ["SchedulerService"]
