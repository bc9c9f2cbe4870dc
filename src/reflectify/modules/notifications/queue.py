"""
Email Queue

Async facade the API uses in front of the Celery email task.

- ``add`` publishes a job and returns its id; delivery completion is only
  observable through ``get_job`` / ``get_job_counts``
- ``get_job_counts`` reads the broker queue, live workers and the failed index
- ``get_job`` / ``get_failed`` read retained failures from the result backend
- ``retry_failed`` republishes a failed job with a fresh attempt budget

Celery client calls block, so they run in a thread.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from celery import Celery, Task, states
from fastapi import Request
from kombu.exceptions import OperationalError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from reflectify.core.celery_app import celery_app
from reflectify.core.config import settings
from reflectify.core.email import EmailJobPayload
from reflectify.modules.notifications.tasks import failed_jobs_key, send_email_job

logger = logging.getLogger(__name__)

# Broker, result backend or failed index unreachable
QUEUE_ERRORS = (RedisError, OperationalError, OSError)


class JobState(str, enum.Enum):
    """State of an email job as seen from the API."""

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    FAILED = "failed"


@dataclass
class EmailJob:
    id: str
    data: dict[str, Any]
    state: JobState
    attempts_made: int = 0
    max_attempts: int = 0
    finished_at: datetime | None = None
    failed_reason: str | None = None

    @property
    def name(self) -> str:
        """Job name given at enqueue time (the id without its unique suffix)."""
        return self.id.rpartition(":")[0] or self.id


class EmailQueue:
    """Publishes and inspects email jobs for one Celery queue."""

    def __init__(
        self,
        redis: Redis,
        app: Celery = celery_app,
        task: Task = send_email_job,
        name: str | None = None,
        inspect_timeout: float = 1.0,
    ):
        self.redis = redis
        self.app = app
        self.task = task
        self.name = name or settings.email_queue_name
        self.inspect_timeout = inspect_timeout
        self.failed_key = failed_jobs_key(self.name)

    @property
    def max_attempts(self) -> int:
        return self.task.max_retries + 1

    async def add(self, name: str, payload: EmailJobPayload) -> str:
        """
        Publish a job.

        Args:
            name: Job name used for log correlation
            payload: ``{to, subject, html}``

        Returns:
            The new job id (``{name}:{suffix}``)

        Raises:
            OperationalError: If the broker is unreachable; callers fall back
                to direct send
        """
        job_id = f"{name}:{uuid4().hex}"
        await asyncio.to_thread(self._publish, job_id, dict(payload), name)
        logger.debug(f"Queued job {job_id} for {payload['to']}")
        return job_id

    def _publish(self, job_id: str, payload: dict[str, Any], name: str) -> None:
        self.task.apply_async(kwargs=payload, task_id=job_id, queue=self.name, shadow=name)

    async def get_job_counts(self) -> dict[str, int]:
        in_broker = await asyncio.to_thread(self._broker_size)
        workers = await asyncio.to_thread(self._worker_snapshot)
        failed = await self.redis.zcard(self.failed_key)

        # reserved() also lists requests held back until their retry ETA
        prefetched = max(workers["reserved"] - workers["scheduled"], 0)
        return {
            JobState.WAITING.value: in_broker + prefetched,
            JobState.ACTIVE.value: workers["active"],
            JobState.DELAYED.value: workers["scheduled"],
            JobState.FAILED.value: failed,
        }

    def _broker_size(self) -> int:
        with self.app.connection_for_read() as conn:
            return conn.default_channel.queue_declare(queue=self.name).message_count

    def _worker_snapshot(self) -> dict[str, int]:
        inspector = self.app.control.inspect(timeout=self.inspect_timeout)
        return {
            "active": self._count_tasks(inspector.active()),
            "reserved": self._count_tasks(inspector.reserved()),
            "scheduled": self._count_tasks(inspector.scheduled()),
        }

    def _count_tasks(self, replies: dict[str, list[dict]] | None) -> int:
        count = 0
        for tasks in (replies or {}).values():
            for entry in tasks:
                # scheduled() wraps each request together with its ETA
                request = entry.get("request", entry)
                if request.get("name") == self.task.name:
                    count += 1
        return count

    def _stored_job(self, job_id: str) -> EmailJob | None:
        result = self.app.AsyncResult(job_id)
        if result.state != states.FAILURE:
            return None
        return EmailJob(
            id=job_id,
            data=dict(result.kwargs or {}),
            state=JobState.FAILED,
            attempts_made=(result.retries or 0) + 1,
            max_attempts=self.max_attempts,
            finished_at=result.date_done,
            failed_reason=str(result.result),
        )

    def _live_job(self, job_id: str) -> EmailJob | None:
        inspector = self.app.control.inspect(timeout=self.inspect_timeout)
        for tasks in (inspector.query_task(job_id) or {}).values():
            if job_id not in tasks:
                continue
            task_state, info = tasks[job_id]
            kwargs = info.get("kwargs")
            return EmailJob(
                id=job_id,
                data=kwargs if isinstance(kwargs, dict) else {},
                state=JobState.ACTIVE if task_state == "active" else JobState.WAITING,
                max_attempts=self.max_attempts,
            )
        return None

    async def get_job(self, job_id: str) -> EmailJob | None:
        """
        Look up a job that failed or that a worker currently holds.

        Completed jobs leave no record and return None.
        """
        job = await asyncio.to_thread(self._stored_job, job_id)
        if job is None:
            job = await asyncio.to_thread(self._live_job, job_id)
        return job

    async def get_failed(self, start: int = 0, end: int = 49) -> list[EmailJob]:
        """Return retained failed jobs, most recent first."""
        job_ids = await self.redis.zrevrange(self.failed_key, start, end)
        jobs = []
        for job_id in job_ids:
            job = await asyncio.to_thread(self._stored_job, job_id)
            if job is None:
                logger.warning(f"Failed job {job_id} is indexed but has no stored result")
                continue
            jobs.append(job)
        return jobs

    async def retry_failed(self, job_id: str) -> bool:
        """
        Publish a retained failed job again under the same id.

        Returns:
            False if no failed job with this id is stored
        """
        job = await asyncio.to_thread(self._stored_job, job_id)
        if job is None or not job.data:
            return False

        await asyncio.to_thread(self.app.AsyncResult(job_id).forget)
        await asyncio.to_thread(self._publish, job_id, job.data, job.name)
        await self.redis.zrem(self.failed_key, job_id)

        logger.info(f"Failed job {job_id} published again for manual retry")
        return True


def get_email_queue(request: Request) -> EmailQueue | None:
    """
    FastAPI dependency returning the application's email queue.

    None when Redis was unavailable at startup; callers send directly then.
    """
    return getattr(request.app.state, "email_queue", None)


def build_email_queue(redis: Redis) -> EmailQueue:
    """Create the application email queue from settings."""
    return EmailQueue(redis, name=settings.email_queue_name)
