"""
Tests for the job model, the JSON job store and the scheduler state machine.

Most tests drive execute_job() directly instead of waiting on timers; one
test starts the real APScheduler backend to check a one-shot job fires.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from clawgate.errors import SchedulerError
from clawgate.scheduler import (
    CallbackHandler,
    CronSchedule,
    IntervalSchedule,
    Job,
    JobStatus,
    JobStore,
    OnceSchedule,
    ReminderHandler,
    Scheduler,
    build_trigger,
)
from clawgate.scheduler.jobs import utcnow
from clawgate.utils.config import SchedulerConfig


class Recorder:
    """Collects handler invocations; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, object]] = []
        self.fail = fail

    async def __call__(self, job: Job, args) -> None:
        self.calls.append((job.id, args))
        if self.fail:
            raise RuntimeError("handler exploded")


def _soon(seconds: float = 3600) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "cron_jobs.json"


class TestJobModel:
    def test_once_constructor(self):
        run_at = _soon()
        job = Job.once("tea", run_at, handler="reminder")

        assert job.max_runs == 1
        assert job.next_run == run_at
        assert job.status == JobStatus.PENDING
        assert job.persistent
        assert job.is_once

    def test_once_naive_time_is_utc(self):
        job = Job.once("tea", datetime(2030, 1, 1, 9, 0), handler="reminder")
        assert job.job_type.run_at.tzinfo == timezone.utc

    def test_builders_chain(self):
        job = (
            Job.interval("ping", 30, handler="noop")
            .with_description("keepalive")
            .with_args({"target": "x"})
            .with_max_runs(5)
            .non_persistent()
        )
        assert job.description == "keepalive"
        assert job.handler_args == {"target": "x"}
        assert job.max_runs == 5
        assert not job.persistent

    def test_dict_round_trip(self):
        job = Job.cron("digest", "0 9 * * 1-5", handler="reminder").with_args({"message": "hi"})
        job.run_count = 2
        restored = Job.from_dict(json.loads(json.dumps(job.to_dict())))

        assert restored.id == job.id
        assert restored.job_type == CronSchedule("0 9 * * 1-5")
        assert restored.handler_args == {"message": "hi"}
        assert restored.run_count == 2
        assert restored.created_at == job.created_at

    def test_describe(self):
        assert IntervalSchedule(60).describe() == "every 60s"
        assert CronSchedule("* * * * *").describe() == "cron '* * * * *'"


class TestBuildTrigger:
    def test_cron_five_and_six_fields(self):
        build_trigger(Job.cron("a", "*/5 * * * *", handler="h"))
        build_trigger(Job.cron("b", "30 0 9 * * mon-fri", handler="h"))

    @pytest.mark.parametrize("expression", ["* * *", "not a cron at all x", "99 * * * *"])
    def test_invalid_cron(self, expression):
        with pytest.raises(SchedulerError):
            build_trigger(Job.cron("bad", expression, handler="h"))

    def test_non_positive_interval(self):
        with pytest.raises(SchedulerError):
            build_trigger(Job.interval("bad", 0, handler="h"))

    def test_past_once_fires_now(self):
        trigger = build_trigger(Job.once("late", utcnow() - timedelta(hours=1), handler="h"))
        fire_time = trigger.get_next_fire_time(None, utcnow())
        assert fire_time >= utcnow() - timedelta(seconds=5)


class TestJobStore:
    def test_persists_and_reloads(self, state_file):
        store = JobStore(state_file)
        job = Job.interval("ping", 60, handler="noop")
        store.save(job)

        reloaded = JobStore(state_file).load_persistent()

        assert [j.id for j in reloaded] == [job.id]
        state = json.loads(state_file.read_text())
        assert "last_updated" in state
        assert job.id in state["jobs"]

    def test_skips_non_persistent(self, state_file):
        store = JobStore(state_file)
        store.save(Job.interval("tmp", 60, handler="noop").non_persistent())
        assert not state_file.exists()

    def test_completed_not_reloaded(self, state_file):
        store = JobStore(state_file)
        job = Job.once("done", _soon(), handler="noop")
        job.status = JobStatus.COMPLETED
        store.save(job)

        assert JobStore(state_file).load_persistent() == []

    def test_running_reloads_as_pending(self, state_file):
        store = JobStore(state_file)
        job = Job.interval("crashed", 60, handler="noop")
        job.status = JobStatus.RUNNING
        store.save(job)

        reloaded = JobStore(state_file).load_persistent()

        assert reloaded[0].status == JobStatus.PENDING

    def test_malformed_record_skipped(self, state_file):
        good = Job.interval("ok", 60, handler="noop")
        state_file.write_text(json.dumps({
            "jobs": {"broken": {"id": "broken"}, good.id: good.to_dict()},
        }))

        assert [j.id for j in JobStore(state_file).load_persistent()] == [good.id]

    def test_delete(self, state_file):
        store = JobStore(state_file)
        job = Job.interval("ping", 60, handler="noop")
        store.save(job)
        store.delete(job.id)

        assert JobStore(state_file).get(job.id) is None

    def test_corrupt_file_disables_persistence(self, state_file):
        state_file.write_text("{not json")
        scheduler = Scheduler.from_config(SchedulerConfig(enabled=True, state_file=state_file))
        assert scheduler.store is None


class TestExecution:
    @pytest.mark.asyncio
    async def test_once_job_completes(self):
        scheduler = Scheduler()
        recorder = Recorder()
        await scheduler.register_handler(CallbackHandler("record", recorder))
        job_id = await scheduler.add_job(
            Job.once("tea", _soon(), handler="record").with_args({"n": 1})
        )

        await scheduler.execute_job(job_id)

        job = await scheduler.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.run_count == 1
        assert job.last_run is not None
        assert job.next_run is None
        assert recorder.calls == [(job_id, {"n": 1})]

    @pytest.mark.asyncio
    async def test_once_job_never_runs_twice(self):
        scheduler = Scheduler()
        recorder = Recorder()
        await scheduler.register_handler(CallbackHandler("record", recorder))
        job_id = await scheduler.add_job(Job.once("tea", _soon(), handler="record"))

        await scheduler.execute_job(job_id)
        await scheduler.execute_job(job_id)

        assert len(recorder.calls) == 1
        assert (await scheduler.get_job(job_id)).run_count == 1

    @pytest.mark.asyncio
    async def test_recurring_returns_to_pending(self):
        scheduler = Scheduler()
        recorder = Recorder()
        await scheduler.register_handler(CallbackHandler("record", recorder))
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="record"))

        await scheduler.execute_job(job_id)
        await scheduler.execute_job(job_id)

        job = await scheduler.get_job(job_id)
        assert job.status == JobStatus.PENDING
        assert job.run_count == 2

    @pytest.mark.asyncio
    async def test_max_runs_caps_executions(self):
        scheduler = Scheduler()
        recorder = Recorder()
        await scheduler.register_handler(CallbackHandler("record", recorder))
        job_id = await scheduler.add_job(
            Job.interval("ping", 60, handler="record").with_max_runs(2)
        )

        for _ in range(4):
            await scheduler.execute_job(job_id)

        assert len(recorder.calls) == 2
        assert (await scheduler.get_job(job_id)).run_count == 2

    @pytest.mark.asyncio
    async def test_handler_exception_marks_failed(self):
        scheduler = Scheduler()
        await scheduler.register_handler(CallbackHandler("record", Recorder(fail=True)))
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="record"))

        await scheduler.execute_job(job_id)

        assert (await scheduler.get_job(job_id)).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_missing_handler_marks_failed(self):
        scheduler = Scheduler()
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="nobody"))

        await scheduler.execute_job(job_id)

        job = await scheduler.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.run_count == 1

    @pytest.mark.asyncio
    async def test_missing_job_is_noop(self):
        await Scheduler().execute_job("no-such-job")

    @pytest.mark.asyncio
    async def test_returned_jobs_are_copies(self):
        scheduler = Scheduler()
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="h"))

        copy = await scheduler.get_job(job_id)
        copy.status = JobStatus.FAILED

        assert (await scheduler.get_job(job_id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_invalid_job_rejected(self):
        scheduler = Scheduler()
        with pytest.raises(SchedulerError):
            await scheduler.add_job(Job.cron("bad", "nope", handler="h"))
        assert await scheduler.list_jobs() == []


class TestOperations:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self, state_file):
        scheduler = Scheduler(JobStore(state_file))
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="h"))

        assert await scheduler.pause_job(job_id)
        assert (await scheduler.get_job(job_id)).status == JobStatus.PAUSED
        assert JobStore(state_file).get(job_id).status == JobStatus.PAUSED

        assert await scheduler.resume_job(job_id)
        assert (await scheduler.get_job(job_id)).status == JobStatus.PENDING

        assert not await scheduler.pause_job("missing")
        assert not await scheduler.resume_job("missing")

    @pytest.mark.asyncio
    async def test_finished_jobs_cannot_be_paused(self):
        scheduler = Scheduler()
        await scheduler.register_handler(CallbackHandler("record", Recorder()))
        await scheduler.register_handler(CallbackHandler("explode", Recorder(fail=True)))
        done = await scheduler.add_job(Job.once("tea", _soon(), handler="record"))
        failed = await scheduler.add_job(Job.interval("ping", 60, handler="explode"))
        await scheduler.execute_job(done)
        await scheduler.execute_job(failed)

        for job_id, status in ((done, JobStatus.COMPLETED), (failed, JobStatus.FAILED)):
            assert not await scheduler.pause_job(job_id)
            assert not await scheduler.resume_job(job_id)
            assert (await scheduler.get_job(job_id)).status == status

    @pytest.mark.asyncio
    async def test_resume_requires_paused(self):
        scheduler = Scheduler()
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="h"))

        assert not await scheduler.resume_job(job_id)
        assert (await scheduler.get_job(job_id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_remove(self, state_file):
        scheduler = Scheduler(JobStore(state_file))
        job_id = await scheduler.add_job(Job.interval("ping", 60, handler="h"))

        assert await scheduler.remove_job(job_id)
        assert not await scheduler.remove_job(job_id)
        assert await scheduler.list_jobs() == []
        assert JobStore(state_file).get(job_id) is None

    @pytest.mark.asyncio
    async def test_restart_reloads_jobs(self, state_file):
        first = Scheduler(JobStore(state_file))
        kept = await first.add_job(Job.interval("ping", 60, handler="h"))
        done = await first.add_job(Job.once("tea", _soon(), handler="h"))
        await first.register_handler(CallbackHandler("h", Recorder()))
        await first.execute_job(done)

        second = Scheduler(JobStore(state_file))

        assert [job.id for job in await second.list_jobs()] == [kept]

    @pytest.mark.asyncio
    async def test_handlers_listed(self):
        scheduler = Scheduler()
        await scheduler.register_handler(ReminderHandler())
        assert await scheduler.list_handlers() == ["reminder"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_restart_right_after_stop(self):
        scheduler = Scheduler()

        for _ in range(3):
            await scheduler.start()
            assert scheduler.running
            await scheduler.stop()
            assert not scheduler.running

    @pytest.mark.asyncio
    async def test_once_job_fires_once_across_restarts(self, state_file):
        recorder = Recorder()

        scheduler = Scheduler(JobStore(state_file))
        await scheduler.register_handler(CallbackHandler("record", recorder))
        job_id = await scheduler.add_job(
            Job.once("tea", utcnow() + timedelta(milliseconds=200), handler="record")
        )
        await scheduler.start()
        assert scheduler.running

        for _ in range(50):
            job = await scheduler.get_job(job_id)
            if job.status == JobStatus.COMPLETED:
                break
            await asyncio.sleep(0.1)
        await scheduler.stop()

        assert len(recorder.calls) == 1
        assert not scheduler.running

        # Same instance restarted: the completed job is not registered again
        await scheduler.start()
        await asyncio.sleep(0.3)
        await scheduler.stop()

        # Fresh process: completed jobs are not reloaded at all
        reloaded = Scheduler(JobStore(state_file))
        await reloaded.register_handler(CallbackHandler("record", recorder))
        await reloaded.start()
        await asyncio.sleep(0.3)
        await reloaded.stop()

        assert len(recorder.calls) == 1
        assert await reloaded.list_jobs() == []


class TestReminderHandler:
    @pytest.mark.asyncio
    async def test_sends_to_target(self):
        sent = []

        async def send(channel, chat_id, text):
            sent.append((channel, chat_id, text))

        job = Job.once("tea", _soon(), handler="reminder")
        await ReminderHandler(send).execute(
            job, {"message": "tea time", "channel": "telegram", "chat_id": 42}
        )

        assert sent == [("telegram", "42", "Reminder: tea time")]

    @pytest.mark.asyncio
    async def test_without_target_only_logs(self):
        sent = []

        async def send(channel, chat_id, text):
            sent.append(text)

        job = Job.once("tea", _soon(), handler="reminder").with_description("tea")
        await ReminderHandler(send).execute(job, None)

        assert sent == []


def test_schedule_kinds_are_distinct():
    run_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert OnceSchedule(run_at).to_dict() == {"kind": "once", "run_at": run_at.isoformat()}
    assert IntervalSchedule(5).kind == "interval"
