"""
Celery Application

Durable email delivery runs as Celery tasks on a Redis broker, so pending
sends survive API restarts and are drained by one worker pool:

    celery -A reflectify.core.celery_app worker -Q email-queue --concurrency=1

or ``reflectify-worker``, which starts the same worker with settings applied.
"""

from celery import Celery

from reflectify.core.config import settings

# Create Celery app
celery_app = Celery(
    "reflectify",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "reflectify.modules.notifications.tasks",
    ],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=settings.email_queue_name,
    # A message is acknowledged only after its send attempt finishes. Messages
    # held by a worker that died are redelivered once the visibility timeout
    # passes, never while their worker is still alive.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_transport_options={
        "visibility_timeout": settings.email_job_visibility_timeout_seconds,
    },
    # Publishing fails fast so callers can fall back to sending directly
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.5,
    },
    # Only failures are stored (see send_email_job), and they never expire
    result_extended=True,
    result_expires=None,
    worker_concurrency=settings.email_worker_concurrency,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    broker_connection_retry_on_startup=True,
)
