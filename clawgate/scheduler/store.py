"""
Job Store
=========

Durable job metadata in a JSON state file, so scheduled jobs survive
restarts:

    {
      "jobs": {"<job id>": {...Job.to_dict()...}, ...},
      "last_updated": "2026-01-01T09:00:00+00:00"
    }

Only persistent jobs are written. Writes go to a temp file that replaces
the state file, so a crash mid-write leaves the previous state intact.
"""

import json
import os
from pathlib import Path

from clawgate.errors import PersistenceError
from clawgate.scheduler.jobs import Job, JobStatus, utcnow
from clawgate.utils.logger import Logger

logger = Logger("JobStore")


class JobStore:
    """
    JSON-file job persistence.

    Example:
        store = JobStore(Path("~/.clawgate/cron_jobs.json").expanduser())
        store.save(job)
        jobs = store.load_persistent()
    """

    def __init__(self, state_file: Path):
        self.state_file = state_file
        self._records: dict[str, dict] = self._load_state()

    def _load_state(self) -> dict[str, dict]:
        """
        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        if not self.state_file.exists():
            return {}

        try:
            with open(self.state_file, encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read job store {self.state_file}: {e}") from e

        jobs = state.get("jobs", {}) if isinstance(state, dict) else {}
        return {k: v for k, v in jobs.items() if isinstance(v, dict)}

    def _save_state(self) -> None:
        state = {
            "jobs": self._records,
            "last_updated": utcnow().isoformat(),
        }
        tmp_file = self.state_file.with_suffix(self.state_file.suffix + ".tmp")

        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2, default=str)
            os.replace(tmp_file, self.state_file)
        except OSError as e:
            raise PersistenceError(f"Cannot write job store {self.state_file}: {e}") from e

    def save(self, job: Job) -> None:
        """
        Insert or replace a job. Non-persistent jobs are ignored.

        Raises:
            PersistenceError: If the state file cannot be written
        """
        if not job.persistent:
            return
        self._records[job.id] = job.to_dict()
        self._save_state()

    def delete(self, job_id: str) -> None:
        """
        Raises:
            PersistenceError: If the state file cannot be written
        """
        if self._records.pop(job_id, None) is not None:
            self._save_state()

    def load_persistent(self) -> list[Job]:
        """
        Jobs to bring back on startup: persistent and not completed.

        A job recorded as running was interrupted mid-run and comes back as
        pending; its run_count still guards max_runs. Malformed records
        are skipped with a warning.
        """
        jobs = []
        for job_id, record in self._records.items():
            try:
                job = Job.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed job record {job_id}: {e}")
                continue

            if not job.persistent or job.status == JobStatus.COMPLETED:
                continue
            if job.status == JobStatus.RUNNING:
                job.status = JobStatus.PENDING
            jobs.append(job)
        return jobs

    def get(self, job_id: str) -> Job | None:
        record = self._records.get(job_id)
        return Job.from_dict(record) if record else None
