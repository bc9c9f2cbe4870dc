"""
Standalone Email Worker

Drains the email queue with a Celery worker configured from settings:

    reflectify-worker
    python -m reflectify.worker

Equivalent to ``celery -A reflectify.core.celery_app worker -Q email-queue``
with the configured concurrency. Celery handles SIGTERM with a warm
shutdown that lets in-flight sends finish.
"""

from reflectify.core.celery_app import celery_app
from reflectify.core.config import settings


def worker_argv() -> list[str]:
    return [
        "worker",
        "--loglevel=INFO",
        f"--queues={settings.email_queue_name}",
        f"--concurrency={settings.email_worker_concurrency}",
        "--hostname=reflectify-email@%h",
    ]


def main() -> None:
    celery_app.worker_main(worker_argv())


if __name__ == "__main__":
    main()
