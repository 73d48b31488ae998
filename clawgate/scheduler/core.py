"""
Scheduler
=========

Runs registered handlers on cron, interval and one-shot timers, and keeps
each job's lifecycle state (pending, running, completed, paused, failed).

Timing is delegated to APScheduler's AsyncIOScheduler:
- CronSchedule     -> CronTrigger (5-field crontab, or 6 with leading seconds)
- IntervalSchedule -> IntervalTrigger(seconds=...)
- OnceSchedule     -> DateTrigger at run_at, or now if run_at has passed

This class owns everything else: the in-memory job table, the handler
table, run counting against max_runs, and persistence through JobStore.

State Persistence:
    Persistent jobs are written to the JSON state file on add and on every
    status change. On construction, every persistent job that has not
    completed is reloaded into memory; start() then registers the pending
    ones with APScheduler.

Example:
    scheduler = Scheduler(JobStore(path))
    scheduler.register_handler(ReminderHandler(send))
    await scheduler.add_job(Job.once("tea", run_at, handler="reminder"))
    await scheduler.start()
"""

import asyncio
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from clawgate.errors import PersistenceError, SchedulerError
from clawgate.scheduler.jobs import (
    CronSchedule,
    IntervalSchedule,
    Job,
    JobHandler,
    JobStatus,
    OnceSchedule,
    utcnow,
)
from clawgate.scheduler.store import JobStore
from clawgate.utils.config import SchedulerConfig
from clawgate.utils.logger import Logger

logger = Logger("Scheduler")


def build_trigger(job: Job) -> BaseTrigger:
    """
    Translate a job's schedule into an APScheduler trigger.

    Raises:
        SchedulerError: If the schedule is invalid
    """
    schedule = job.job_type

    if isinstance(schedule, CronSchedule):
        fields = schedule.expression.split()
        try:
            if len(fields) == 5:
                return CronTrigger.from_crontab(schedule.expression, timezone=timezone.utc)
            if len(fields) == 6:
                second, minute, hour, day, month, day_of_week = fields
                return CronTrigger(
                    second=second,
                    minute=minute,
                    hour=hour,
                    day=day,
                    month=month,
                    day_of_week=day_of_week,
                    timezone=timezone.utc,
                )
        except ValueError as e:
            raise SchedulerError(f"Invalid cron expression '{schedule.expression}': {e}") from e
        raise SchedulerError(
            f"Invalid cron expression '{schedule.expression}': expected 5 or 6 fields"
        )

    if isinstance(schedule, IntervalSchedule):
        if schedule.seconds <= 0:
            raise SchedulerError(f"Interval must be positive, got {schedule.seconds}")
        return IntervalTrigger(seconds=schedule.seconds, timezone=timezone.utc)

    if isinstance(schedule, OnceSchedule):
        return DateTrigger(run_date=max(schedule.run_at, utcnow()), timezone=timezone.utc)

    raise SchedulerError(f"Unsupported schedule: {schedule!r}")


class Scheduler:
    """
    Job scheduler with persistence and a per-job state machine.

    The job table and the handler table each have their own lock; the
    execution callback never holds both at once.
    """

    def __init__(
        self,
        store: JobStore | None = None,
        backend: AsyncIOScheduler | None = None,
    ):
        """
        Args:
            store: Job persistence; None keeps jobs in memory only
            backend: APScheduler instance (created if not given)
        """
        self.store = store
        self._backend = backend or AsyncIOScheduler(timezone=timezone.utc)

        self._jobs: dict[str, Job] = {}
        self._handlers: dict[str, JobHandler] = {}
        self._jobs_lock = asyncio.Lock()
        self._handlers_lock = asyncio.Lock()
        self._running = False

        if self.store is not None:
            self._load_persistent_jobs()

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> "Scheduler":
        """Create a scheduler backed by the configured state file, if any."""
        store = None
        if config.state_file is not None:
            try:
                store = JobStore(config.state_file)
            except PersistenceError as e:
                logger.error("Job store unavailable, jobs will not persist", e)
        return cls(store)

    def _load_persistent_jobs(self) -> None:
        for job in self.store.load_persistent():
            logger.info(f"Loaded persistent job: {job.name} ({job.id})")
            self._jobs[job.id] = job

    def _persist(self, job: Job) -> None:
        if self.store is None:
            return
        try:
            self.store.save(job)
        except PersistenceError as e:
            logger.warning(f"Could not persist job {job.id}: {e}")

    @property
    def running(self) -> bool:
        return self._running

    # ==========================================================================
    # Handlers
    # ==========================================================================

    async def register_handler(self, handler: JobHandler) -> None:
        async with self._handlers_lock:
            self._handlers[handler.name] = handler
        logger.info(f"Registered job handler: {handler.name}")

    async def list_handlers(self) -> list[str]:
        async with self._handlers_lock:
            return list(self._handlers.keys())

    # ==========================================================================
    # Job management
    # ==========================================================================

    async def add_job(self, job: Job) -> str:
        """
        Add a job, persisting it and scheduling it if the scheduler runs.

        Returns:
            The job id

        Raises:
            SchedulerError: If the job's schedule is invalid
        """
        build_trigger(job)

        async with self._jobs_lock:
            self._jobs[job.id] = job.copy()
        self._persist(job)

        if self._running:
            await self._register(job.id)

        logger.info(f"Added job: {job.name} ({job.id}), {job.job_type.describe()}")
        return job.id

    async def _register(self, job_id: str) -> None:
        """
        Register a job's trigger with APScheduler.

        Raises:
            SchedulerError: If the trigger cannot be built
        """
        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            trigger = build_trigger(job)
            if not job.is_once:
                job.next_run = trigger.get_next_fire_time(None, utcnow())
            snapshot = job.copy()

        self._backend.add_job(
            self.execute_job,
            trigger=trigger,
            args=[job_id],
            id=job_id,
            name=snapshot.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            # One-shot jobs must fire however late the event loop wakes up
            misfire_grace_time=None if snapshot.is_once else 60,
        )
        self._persist(snapshot)

    async def get_job(self, job_id: str) -> Job | None:
        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            return job.copy() if job else None

    async def list_jobs(self) -> list[Job]:
        async with self._jobs_lock:
            return [job.copy() for job in self._jobs.values()]

    async def remove_job(self, job_id: str) -> bool:
        """
        Delete a job from memory, storage and APScheduler.

        Returns:
            True if the job existed
        """
        async with self._jobs_lock:
            existed = self._jobs.pop(job_id, None) is not None

        if self.store is not None:
            try:
                self.store.delete(job_id)
            except PersistenceError as e:
                logger.warning(f"Could not delete job {job_id} from storage: {e}")

        if self._backend.get_job(job_id) is not None:
            self._backend.remove_job(job_id)

        if existed:
            logger.info(f"Removed job: {job_id}")
        return existed

    async def pause_job(self, job_id: str) -> bool:
        """
        Returns:
            True if the job was paused; False if it is missing or already
            completed or failed
        """
        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None or job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                return False
            job.status = JobStatus.PAUSED
            snapshot = job.copy()

        self._persist(snapshot)
        if self._backend.get_job(job_id) is not None:
            self._backend.pause_job(job_id)

        logger.info(f"Paused job: {snapshot.name} ({job_id})")
        return True

    async def resume_job(self, job_id: str) -> bool:
        """
        Returns:
            True if a paused job is now pending
        """
        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PAUSED:
                return False
            job.status = JobStatus.PENDING
            snapshot = job.copy()

        self._persist(snapshot)
        if self._backend.get_job(job_id) is not None:
            self._backend.resume_job(job_id)
        elif self._running:
            await self._register(job_id)

        logger.info(f"Resumed job: {snapshot.name} ({job_id})")
        return True

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute_job(self, job_id: str) -> None:
        """
        Run one firing of a job. Called by APScheduler; never raises.

        Missing jobs and jobs that reached max_runs are skipped. Otherwise
        the job is marked running and counted, its handler runs, and the
        outcome is written back: completed (one-shot), pending (recurring)
        or failed (handler raised or not registered).
        """
        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if job.runs_exhausted:
                logger.info(f"Job {job_id} reached its maximum runs")
                return

            job.status = JobStatus.RUNNING
            job.last_run = utcnow()
            job.run_count += 1
            running = job.copy()

        self._persist(running)

        async with self._handlers_lock:
            handler = self._handlers.get(running.handler)

        if handler is None:
            logger.warning(f"No handler '{running.handler}' for job {job_id}")
            status = JobStatus.FAILED
        else:
            logger.info(f"Running job: {running.name} ({job_id})")
            try:
                await handler.execute(running, running.handler_args)
                status = JobStatus.COMPLETED if running.is_once else JobStatus.PENDING
                logger.info(f"Job succeeded: {running.name} ({job_id})")
            except Exception as e:
                logger.error(f"Job failed: {running.name} ({job_id})", e)
                status = JobStatus.FAILED

        aps_job = self._backend.get_job(job_id)

        async with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None:
                # Removed while running
                return
            if job.status == JobStatus.RUNNING:
                job.status = status
            if running.is_once:
                job.next_run = None
            elif aps_job is not None:
                job.next_run = aps_job.next_run_time
            final = job.copy()

        self._persist(final)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Register every pending job and start the timing backend."""
        if self._running:
            return

        logger.info("Starting scheduler...")

        async with self._jobs_lock:
            pending = [job.id for job in self._jobs.values() if job.status == JobStatus.PENDING]

        for job_id in pending:
            try:
                await self._register(job_id)
            except SchedulerError as e:
                logger.warning(f"Could not schedule job {job_id}: {e}")

        self._backend.start()
        self._running = True
        logger.info(f"Scheduler started with {len(pending)} active jobs")

    async def stop(self) -> None:
        """Stop firing jobs. In-memory jobs are kept for a later start()."""
        if not self._running:
            return

        self._backend.remove_all_jobs()
        self._backend.shutdown(wait=False)
        # Newer APScheduler releases finish shutdown on a later loop iteration
        while self._backend.running:
            await asyncio.sleep(0)
        self._running = False
        logger.info("Scheduler stopped")
