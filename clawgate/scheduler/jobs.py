"""
Job Model
=========

A Job is a named unit of scheduled work. It says *when* to run (its
schedule) and *what* to run (the name of a registered handler plus
optional JSON arguments). The scheduler tracks its lifecycle:

    pending -> running -> pending     (recurring job succeeded)
                       -> completed   (one-shot job succeeded)
                       -> failed      (handler raised or is missing)
    pending <-> paused                (operator action)

Schedules:
- CronSchedule: crontab expression, 5 fields or 6 with leading seconds
- IntervalSchedule: every N seconds
- OnceSchedule: a single run at a UTC instant

Example:
    job = (
        Job.cron("digest", "0 9 * * 1-5", handler="reminder")
        .with_description("Weekday morning digest")
        .with_args({"message": "Standup in 15 minutes"})
    )
"""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"


# ==============================================================================
# Schedules
# ==============================================================================

@dataclass(frozen=True)
class CronSchedule:
    expression: str
    kind: str = field(default="cron", init=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "expression": self.expression}

    def describe(self) -> str:
        return f"cron '{self.expression}'"


@dataclass(frozen=True)
class IntervalSchedule:
    seconds: int
    kind: str = field(default="interval", init=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "seconds": self.seconds}

    def describe(self) -> str:
        return f"every {self.seconds}s"


@dataclass(frozen=True)
class OnceSchedule:
    run_at: datetime
    kind: str = field(default="once", init=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "run_at": _format_time(self.run_at)}

    def describe(self) -> str:
        return f"once at {self.run_at.isoformat()}"


JobType = CronSchedule | IntervalSchedule | OnceSchedule


def schedule_from_dict(data: dict) -> JobType:
    """
    Raises:
        ValueError: On an unknown kind or missing fields
    """
    kind = data.get("kind")
    if kind == "cron":
        return CronSchedule(expression=data["expression"])
    if kind == "interval":
        return IntervalSchedule(seconds=int(data["seconds"]))
    if kind == "once":
        run_at = _parse_time(data.get("run_at"))
        if run_at is None:
            raise ValueError("once schedule without run_at")
        return OnceSchedule(run_at=run_at)
    raise ValueError(f"Unknown schedule kind: {kind}")


# ==============================================================================
# Job
# ==============================================================================

@dataclass
class Job:
    """
    A scheduled job.

    Attributes:
        id: Unique id (uuid4)
        name: Human-readable name
        job_type: When to run
        handler: Name of the registered handler that does the work
        handler_args: JSON-compatible arguments passed to the handler
        run_count: Completed or attempted runs so far
        max_runs: Ceiling on run_count (a once job always has 1)
        persistent: Whether the job is written to the job store
    """
    name: str
    job_type: JobType
    handler: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: str | None = None
    status: JobStatus = JobStatus.PENDING
    handler_args: Any = None
    created_at: datetime = field(default_factory=utcnow)
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0
    max_runs: int | None = None
    persistent: bool = True

    @classmethod
    def cron(cls, name: str, expression: str, handler: str) -> "Job":
        return cls(name=name, job_type=CronSchedule(expression), handler=handler)

    @classmethod
    def interval(cls, name: str, seconds: int, handler: str) -> "Job":
        return cls(name=name, job_type=IntervalSchedule(seconds), handler=handler)

    @classmethod
    def once(cls, name: str, run_at: datetime, handler: str) -> "Job":
        if run_at.tzinfo is None:
            run_at = run_at.replace(tzinfo=timezone.utc)
        return cls(
            name=name,
            job_type=OnceSchedule(run_at),
            handler=handler,
            next_run=run_at,
            max_runs=1,
        )

    # Builders return self so they chain off the constructors

    def with_description(self, description: str) -> "Job":
        self.description = description
        return self

    def with_args(self, args: Any) -> "Job":
        self.handler_args = args
        return self

    def with_max_runs(self, max_runs: int) -> "Job":
        self.max_runs = max_runs
        return self

    def non_persistent(self) -> "Job":
        self.persistent = False
        return self

    @property
    def is_once(self) -> bool:
        return isinstance(self.job_type, OnceSchedule)

    @property
    def runs_exhausted(self) -> bool:
        return self.max_runs is not None and self.run_count >= self.max_runs

    def copy(self) -> "Job":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "job_type": self.job_type.to_dict(),
            "status": self.status.value,
            "handler": self.handler,
            "handler_args": self.handler_args,
            "created_at": _format_time(self.created_at),
            "last_run": _format_time(self.last_run),
            "next_run": _format_time(self.next_run),
            "run_count": self.run_count,
            "max_runs": self.max_runs,
            "persistent": self.persistent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        """
        Raises:
            ValueError, KeyError: If the record is malformed
        """
        try:
            status = JobStatus(data.get("status", "pending"))
        except ValueError:
            status = JobStatus.PENDING

        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description"),
            job_type=schedule_from_dict(data["job_type"]),
            status=status,
            handler=data["handler"],
            handler_args=data.get("handler_args"),
            created_at=_parse_time(data.get("created_at")) or utcnow(),
            last_run=_parse_time(data.get("last_run")),
            next_run=_parse_time(data.get("next_run")),
            run_count=int(data.get("run_count", 0)),
            max_runs=data.get("max_runs"),
            persistent=bool(data.get("persistent", True)),
        )


# ==============================================================================
# Handlers
# ==============================================================================

class JobHandler(ABC):
    """
    Does the work for jobs that name it.

    Raising from execute() marks the job failed.
    """

    name: str = "handler"

    @abstractmethod
    async def execute(self, job: Job, args: Any) -> None:
        """Run one firing of job with its handler_args."""


class CallbackHandler(JobHandler):
    """
    Wraps a plain coroutine function as a handler.

        scheduler.register_handler(CallbackHandler("ping", send_ping))
    """

    def __init__(self, name: str, callback: Callable[[Job, Any], Awaitable[None]]):
        self.name = name
        self._callback = callback

    async def execute(self, job: Job, args: Any) -> None:
        await self._callback(job, args)
