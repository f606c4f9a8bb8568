"""Cron scheduling and immediate job runs."""

from .schedule import CronSchedule, ScheduleError
from .service import SchedulerService

__all__ = ["CronSchedule", "ScheduleError", "SchedulerService"]
