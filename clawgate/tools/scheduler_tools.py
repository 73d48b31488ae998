"""
Scheduler Tools
===============

Tools for scheduling reminders and recurring messages.

These tools allow the agent to:
- Set a one-time reminder ("remind me in 30 minutes")
- Schedule a recurring message (cron expression or fixed interval)
- List and cancel scheduled jobs

Every job created here uses the "reminder" handler. Its target channel and
chat default to the conversation the tool was called from.
"""

from datetime import datetime, timedelta, timezone

from clawgate.errors import SchedulerError
from clawgate.scheduler import Job, Scheduler
from clawgate.tools import Tool, ToolContext, ToolRegistry, ToolResult
from clawgate.utils.logger import Logger

logger = Logger("SchedulerTools")

REMINDER_HANDLER = "reminder"


def _target(params: dict, ctx: ToolContext) -> dict:
    return {
        "channel": params.get("channel") or ctx.channel,
        "chat_id": params.get("chat_id") or ctx.chat_id,
    }


def _parse_run_at(raw: str) -> datetime:
    """
    Raises:
        ValueError: If raw is not an ISO 8601 timestamp
    """
    if not isinstance(raw, str):
        raise ValueError(f"Expected a string, got {type(raw).__name__}")
    # fromisoformat only accepts a trailing "Z" from Python 3.11
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    run_at = datetime.fromisoformat(raw)
    if run_at.tzinfo is None:
        run_at = run_at.replace(tzinfo=timezone.utc)
    return run_at


def register_scheduler_tools(registry: ToolRegistry, scheduler: Scheduler) -> None:
    """Register all scheduler tools, bound to one scheduler."""

    # ==========================================================================
    # Tool: Schedule Reminder
    # ==========================================================================

    async def _schedule_reminder(params: dict, ctx: ToolContext) -> ToolResult:
        message = params.get("message")
        if not message:
            return ToolResult.fail("'message' is required")

        minutes = params.get("minutes")
        run_at_raw = params.get("run_at")

        if run_at_raw:
            try:
                run_at = _parse_run_at(run_at_raw)
            except ValueError:
                return ToolResult.fail(f"Invalid run_at timestamp: {run_at_raw}")
        elif minutes is not None:
            try:
                minutes = float(minutes)
            except (TypeError, ValueError):
                return ToolResult.fail(f"Invalid minutes: {minutes}")
            if minutes <= 0:
                return ToolResult.fail("'minutes' must be positive")
            run_at = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        else:
            return ToolResult.fail("Either 'minutes' or 'run_at' is required")

        job = (
            Job.once(params.get("name") or "reminder", run_at, REMINDER_HANDLER)
            .with_description(message)
            .with_args({"message": message, **_target(params, ctx)})
        )
        job_id = await scheduler.add_job(job)

        return ToolResult.ok(f"Reminder {job_id} scheduled for {run_at.isoformat()}")

    registry.register(Tool(
        name="schedule_reminder",
        description="Set a one-time reminder, either in N minutes or at an ISO 8601 time.",
        parameters={
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Reminder text"},
                "minutes": {"type": "number", "description": "Minutes from now"},
                "run_at": {
                    "type": "string",
                    "description": "ISO 8601 timestamp (UTC if no offset is given)",
                },
                "name": {"type": "string", "description": "Short job name"},
            },
            "required": ["message"],
        },
        execute=_schedule_reminder,
    ))

    # ==========================================================================
    # Tool: Schedule Recurring Message
    # ==========================================================================

    async def _schedule_recurring(params: dict, ctx: ToolContext) -> ToolResult:
        message = params.get("message")
        if not message:
            return ToolResult.fail("'message' is required")

        name = params.get("name") or "recurring"
        cron = params.get("cron")
        interval = params.get("interval_seconds")

        if cron:
            job = Job.cron(name, cron, REMINDER_HANDLER)
        elif interval is not None:
            try:
                job = Job.interval(name, int(interval), REMINDER_HANDLER)
            except (TypeError, ValueError):
                return ToolResult.fail(f"Invalid interval_seconds: {interval}")
        else:
            return ToolResult.fail("Either 'cron' or 'interval_seconds' is required")

        max_runs = params.get("max_runs")
        if max_runs:
            job.with_max_runs(int(max_runs))

        job.with_description(message).with_args({"message": message, **_target(params, ctx)})

        try:
            job_id = await scheduler.add_job(job)
        except SchedulerError as e:
            return ToolResult.fail(str(e))

        return ToolResult.ok(f"Recurring job {job_id} scheduled ({job.job_type.describe()})")

    registry.register(Tool(
        name="schedule_recurring",
        description=(
            "Schedule a recurring message with a cron expression "
            "(e.g. '0 9 * * 1-5') or a fixed interval in seconds."
        ),
        parameters={
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to send"},
                "cron": {"type": "string", "description": "Cron expression, 5 or 6 fields"},
                "interval_seconds": {"type": "integer", "description": "Interval in seconds"},
                "max_runs": {"type": "integer", "description": "Stop after this many runs"},
                "name": {"type": "string", "description": "Short job name"},
            },
            "required": ["message"],
        },
        execute=_schedule_recurring,
    ))

    # ==========================================================================
    # Tool: List Scheduled Jobs
    # ==========================================================================

    async def _list_jobs(params: dict, ctx: ToolContext) -> ToolResult:
        jobs = await scheduler.list_jobs()
        if not jobs:
            return ToolResult.ok("No scheduled jobs")

        lines = []
        for job in sorted(jobs, key=lambda j: j.created_at):
            next_run = job.next_run.isoformat() if job.next_run else "-"
            lines.append(
                f"{job.id} | {job.name} | {job.job_type.describe()} | "
                f"{job.status.value} | runs: {job.run_count} | next: {next_run}"
            )
        return ToolResult.ok("\n".join(lines))

    registry.register(Tool(
        name="list_scheduled_jobs",
        description="List all scheduled reminders and recurring jobs.",
        parameters={"type": "object", "properties": {}, "required": []},
        execute=_list_jobs,
    ))

    # ==========================================================================
    # Tool: Cancel Scheduled Job
    # ==========================================================================

    async def _cancel_job(params: dict, ctx: ToolContext) -> ToolResult:
        job_id = params.get("job_id")
        if not job_id:
            return ToolResult.fail("'job_id' is required")

        if not await scheduler.remove_job(job_id):
            return ToolResult.fail(f"Job {job_id} not found")
        return ToolResult.ok(f"Cancelled job {job_id}")

    registry.register(Tool(
        name="cancel_scheduled_job",
        description="Cancel a scheduled reminder or recurring job by id.",
        parameters={
            "type": "object",
            "properties": {
                "job_id": {"type": "string", "description": "The job id to cancel"},
            },
            "required": ["job_id"],
        },
        execute=_cancel_job,
    ))

    logger.info("Registered scheduler tools")
