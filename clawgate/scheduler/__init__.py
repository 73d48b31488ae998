"""
Scheduler Package
=================

Cron, interval and one-shot jobs with a persistent lifecycle:
- jobs: Job, schedules, JobStatus, JobHandler
- store: JSON-file JobStore
- core: Scheduler (APScheduler-backed)
- handlers: built-in handlers (reminder)
"""

from clawgate.scheduler.core import Scheduler, build_trigger
from clawgate.scheduler.handlers import ReminderHandler
from clawgate.scheduler.jobs import (
    CallbackHandler,
    CronSchedule,
    IntervalSchedule,
    Job,
    JobHandler,
    JobStatus,
    JobType,
    OnceSchedule,
)
from clawgate.scheduler.store import JobStore

__all__ = [
    "Scheduler",
    "build_trigger",
    "Job",
    "JobType",
    "JobStatus",
    "JobHandler",
    "CallbackHandler",
    "CronSchedule",
    "IntervalSchedule",
    "OnceSchedule",
    "JobStore",
    "ReminderHandler",
]
