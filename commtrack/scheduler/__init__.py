"""Background jobs."""

from commtrack.scheduler.jobs import scheduler, setup_scheduler

__all__ = ["scheduler", "setup_scheduler"]
