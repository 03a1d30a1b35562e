"""Delayed, retrying job queue on top of APScheduler.

A job runs once after ``delay`` seconds. If the worker raises, the job is
rescheduled with exponential backoff until ``max_attempts`` is reached and
then dropped with an error log. While a job for some key is waiting for its
first attempt, further ``add_job`` calls for the same key fold into it, so a
burst of events yields one run.
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from .utils import backoff_delay, logger, now_utc


def _chain_id():
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class QueuedJob:
    queue: str
    key: str
    payload: Dict[str, Any]
    scheduled_at: datetime
    attempts_made: int = 0
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    chain: str = field(default_factory=_chain_id)

    @property
    def job_id(self):
        # retries carry their chain so two failing runs for one key never share an id
        base = f"{self.queue}:{self.key}"
        return base if self.attempts_made == 0 else f"{base}:{self.chain}:retry{self.attempts_made}"


class JobQueue:
    def __init__(self, name: str, scheduler: BaseScheduler):
        self.name = name
        self.scheduler = scheduler
        self._handler: Optional[Callable[[Dict[str, Any]], Any]] = None
        self.completed = 0
        self.dropped = 0

    def register_worker(self, handler: Callable[[Dict[str, Any]], Any]):
        self._handler = handler
        logger.info("Queue %s is now processing jobs", self.name)

    def pending(self, key) -> Optional[QueuedJob]:
        job = self.scheduler.get_job(f"{self.name}:{key}")
        return job.kwargs["job"] if job is not None else None

    def waiting_jobs(self) -> List[QueuedJob]:
        """Every job of this queue still in the scheduler, first attempts and retries alike."""
        prefix = f"{self.name}:"
        return [j.kwargs["job"] for j in self.scheduler.get_jobs() if j.id.startswith(prefix)]

    def add_job(self, key, payload: Dict[str, Any], delay: float = 5.0,
                max_attempts: int = 3, backoff: float = 2.0) -> QueuedJob:
        waiting = self.pending(key)
        if waiting is not None:
            logger.debug("Coalesced %s:%s into the pending run", self.name, key)
            return waiting
        job = QueuedJob(
            queue=self.name,
            key=str(key),
            payload=dict(payload),
            scheduled_at=now_utc() + timedelta(seconds=delay),
            max_attempts=max(1, int(max_attempts)),
            backoff_seconds=backoff,
        )
        try:
            self._schedule(job)
        except ConflictingIdError:
            # another enqueue for the same key got there first
            return self.pending(key) or job
        return job

    def _schedule(self, job: QueuedJob):
        self.scheduler.add_job(
            self.run_job,
            "date",
            run_date=job.scheduled_at,
            id=job.job_id,
            kwargs={"job": job},
            misfire_grace_time=None,
        )

    def run_job(self, job: QueuedJob) -> bool:
        """Run one attempt. Returns True when the handler completed."""
        if self._handler is None:
            raise RuntimeError(f"No worker registered for queue {self.name}")
        attempt = job.attempts_made + 1
        try:
            self._handler(job.payload)
        except Exception as e:
            if attempt >= job.max_attempts:
                self.dropped += 1
                logger.error("Job %s failed after %d attempts, dropping: %s", job.job_id, attempt, e)
                return False
            wait = backoff_delay(attempt, job.backoff_seconds)
            retry = replace(job, attempts_made=attempt, scheduled_at=now_utc() + timedelta(seconds=wait))
            try:
                self._schedule(retry)
            except Exception as schedule_error:
                self.dropped += 1
                logger.error("Job %s failed on attempt %d: %s; could not schedule retry, dropping: %s",
                             job.job_id, attempt, e, schedule_error)
                return False
            logger.warning("Job %s failed on attempt %d: %s, retrying in %s sec", job.job_id, attempt, e, wait)
            return False
        self.completed += 1
        logger.debug("Job %s completed on attempt %d", job.job_id, attempt)
        return True

    def drain(self) -> int:
        """Run every waiting job once, now, without further retries.

        Used at shutdown so evaluations queued in the last few seconds are not
        lost. Returns the number of jobs that completed.
        """
        if self._handler is None:
            return 0
        done = 0
        for job in self.waiting_jobs():
            try:
                self.scheduler.remove_job(job.job_id)
            except JobLookupError:
                # already picked up by a worker thread
                continue
            try:
                self._handler(job.payload)
            except Exception as e:
                self.dropped += 1
                logger.error("Job %s failed while draining, dropping: %s", job.job_id, e)
                continue
            self.completed += 1
            done += 1
        return done


def create_queue(name: str, scheduler: BaseScheduler) -> JobQueue:
    return JobQueue(name, scheduler)
