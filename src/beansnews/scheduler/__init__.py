"""定时任务."""

from beansnews.scheduler.tasks import create_scheduler, schedule_source, shutdown_scheduler

__all__ = ["create_scheduler", "schedule_source", "shutdown_scheduler"]
