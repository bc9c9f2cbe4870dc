"""
Celery tasks for outgoing email

One task delivers one ``{to, subject, html}`` payload through Resend.

Retry policy:
- EMAIL_JOB_ATTEMPTS attempts in total (default 5)
- Exponential backoff from EMAIL_JOB_BACKOFF_SECONDS, doubling per retry
  (5s, 10s, 20s, 40s)
- At most EMAIL_RATE_LIMIT_MAX sends per EMAIL_RATE_LIMIT_DURATION_MS per worker
- Successful jobs leave no result behind
- Retry-exhausted jobs keep their result, payload included, in the result
  backend and are indexed in a Redis sorted set for the admin endpoints
"""

import asyncio
import logging
import time

from celery import Task
from redis import Redis
from redis.exceptions import RedisError

from reflectify.core.celery_app import celery_app
from reflectify.core.config import settings
from reflectify.core.email import EmailDeliveryError, EmailJobPayload, deliver_email_job

logger = logging.getLogger(__name__)

SEND_EMAIL_TASK = "reflectify.send_email"

# Sync client used inside worker processes
_failed_index_client: Redis | None = None


def failed_jobs_key(queue_name: str) -> str:
    return f"reflectify:{queue_name}:failed"


def _get_failed_index_client() -> Redis:
    global _failed_index_client
    if _failed_index_client is None:
        _failed_index_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _failed_index_client


def record_failed_job(job_id: str, queue_name: str | None = None) -> None:
    """Index a retry-exhausted job so it can be listed and retried."""
    key = failed_jobs_key(queue_name or settings.email_queue_name)
    try:
        _get_failed_index_client().zadd(key, {job_id: int(time.time() * 1000)})
    except RedisError as e:
        # The failure itself is still stored in the result backend
        logger.error(f"Could not index failed job {job_id}: {e}")


class EmailTask(Task):
    """Custom Celery task with async support and job lifecycle logging"""

    abstract = True

    def run_async(self, coro):
        """Run async coroutine in sync context"""
        return asyncio.run(coro)

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        attempt = self.request.retries + 1
        logger.warning(
            f"Job {task_id} failed for: {kwargs.get('to')} "
            f"(attempt {attempt}/{self.max_retries + 1}): {exc}. Retry scheduled"
        )

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            f"Job {task_id} has failed for: {kwargs.get('to')} after "
            f"{self.request.retries + 1} attempts with error: {exc}"
        )
        record_failed_job(task_id)


@celery_app.task(
    bind=True,
    base=EmailTask,
    name=SEND_EMAIL_TASK,
    autoretry_for=(EmailDeliveryError,),
    max_retries=settings.email_job_attempts - 1,
    retry_backoff=settings.email_job_backoff_seconds,
    retry_backoff_max=600,
    retry_jitter=False,
    acks_late=True,
    rate_limit=settings.email_task_rate_limit,
    ignore_result=True,
    store_errors_even_if_ignored=True,
)
def send_email_job(self, to: str, subject: str, html: str) -> None:
    """
    Deliver one queued email.

    Raises:
        EmailDeliveryError: If the provider rejected the message; Celery
            schedules the next attempt
    """
    logger.info(f"Processing job {self.request.id} for: {to}")
    self.run_async(deliver_email_job(EmailJobPayload(to=to, subject=subject, html=html)))
    logger.info(f"Job {self.request.id} has completed for: {to}")
