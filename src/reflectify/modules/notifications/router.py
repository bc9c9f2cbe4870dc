"""
Email Jobs Admin Router

Inspection and manual recovery of the durable email queue.
All endpoints require an admin bearer token. Jobs run as Celery tasks;
see reflectify.modules.notifications.tasks.

Endpoints:
- GET /admin/email-jobs/counts - Jobs per state
- GET /admin/email-jobs/failed - Retained retry-exhausted jobs
- GET /admin/email-jobs/{job_id} - One job
- POST /admin/email-jobs/{job_id}/retry - Requeue a failed job
- POST /admin/email-jobs/test - Queue a test email
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from reflectify.core.auth import AdminUser, get_current_admin_user
from reflectify.core.email import EmailDeliveryError, deliver_email_job, render_test_email
from reflectify.modules.notifications.queue import (
    QUEUE_ERRORS,
    EmailQueue,
    JobState,
    get_email_queue,
)
from reflectify.modules.notifications.schemas import (
    EmailJobCountsResponse,
    EmailJobListResponse,
    EmailJobResponse,
    EmailJobRetryResponse,
    SendTestEmailRequest,
    SendTestEmailResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _queue_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "error": "QUEUE_UNAVAILABLE",
            "message": "The email queue is not reachable.",
        },
    )


def _require_queue(queue: EmailQueue | None = Depends(get_email_queue)) -> EmailQueue:
    if queue is None:
        raise _queue_unavailable()
    return queue


@router.get(
    "/counts",
    response_model=EmailJobCountsResponse,
    summary="Email Job Counts",
)
async def get_job_counts(
    queue: EmailQueue = Depends(_require_queue),
    admin: AdminUser = Depends(get_current_admin_user),
) -> EmailJobCountsResponse:
    try:
        counts = await queue.get_job_counts()
    except QUEUE_ERRORS as e:
        logger.error(f"Failed to read email job counts: {e}")
        raise _queue_unavailable() from e

    return EmailJobCountsResponse(queue=queue.name, **counts)


@router.get(
    "/failed",
    response_model=EmailJobListResponse,
    summary="List Failed Email Jobs",
    description="Jobs that exhausted every attempt, most recent first.",
)
async def list_failed_jobs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    queue: EmailQueue = Depends(_require_queue),
    admin: AdminUser = Depends(get_current_admin_user),
) -> EmailJobListResponse:
    try:
        jobs = await queue.get_failed(start=offset, end=offset + limit - 1)
    except QUEUE_ERRORS as e:
        logger.error(f"Failed to list failed email jobs: {e}")
        raise _queue_unavailable() from e

    items = [EmailJobResponse.from_job(job) for job in jobs]
    return EmailJobListResponse(items=items, count=len(items))


@router.post(
    "/test",
    response_model=SendTestEmailResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue Test Email",
    description="Queue a test email, or send it directly if the queue is unreachable.",
)
async def send_test_email(
    request: SendTestEmailRequest,
    queue: EmailQueue | None = Depends(get_email_queue),
    admin: AdminUser = Depends(get_current_admin_user),
) -> SendTestEmailResponse:
    queued_at = datetime.now(UTC).isoformat()
    payload = {
        "to": request.email,
        "subject": "Reflectify Email Queue Test",
        "html": render_test_email(request.email, queued_at),
    }

    if queue is not None:
        try:
            job_id = await queue.add(f"test-email-{queued_at}", payload)
        except QUEUE_ERRORS as e:
            logger.warning(f"[FALLBACK] Email queue unreachable ({e}), sending test email directly")
        else:
            logger.info(f"Admin {admin.id} queued test email to {request.email} (job {job_id})")
            return SendTestEmailResponse(
                queued=True, job_id=job_id, message="Test email queued."
            )

    try:
        await deliver_email_job(payload)
    except EmailDeliveryError as e:
        logger.error(f"[FALLBACK] Test email to {request.email} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "EMAIL_DELIVERY_FAILED",
                "message": "The test email could not be sent.",
            },
        ) from e

    return SendTestEmailResponse(
        queued=False, sent_directly=True, message="Queue unavailable; test email sent directly."
    )


@router.get(
    "/{job_id}",
    response_model=EmailJobResponse,
    summary="Get Email Job",
    description="Failed jobs and jobs held by a worker. Completed jobs leave no record and return 404.",
)
async def get_job(
    job_id: str,
    queue: EmailQueue = Depends(_require_queue),
    admin: AdminUser = Depends(get_current_admin_user),
) -> EmailJobResponse:
    try:
        job = await queue.get_job(job_id)
    except QUEUE_ERRORS as e:
        logger.error(f"Failed to read email job {job_id}: {e}")
        raise _queue_unavailable() from e

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "JOB_NOT_FOUND", "message": f"Email job {job_id} not found."},
        )
    return EmailJobResponse.from_job(job)


@router.post(
    "/{job_id}/retry",
    response_model=EmailJobRetryResponse,
    summary="Retry Failed Email Job",
    description="Publish a retry-exhausted job again with a fresh attempt budget.",
)
async def retry_job(
    job_id: str,
    queue: EmailQueue = Depends(_require_queue),
    admin: AdminUser = Depends(get_current_admin_user),
) -> EmailJobRetryResponse:
    try:
        retried = await queue.retry_failed(job_id)
    except QUEUE_ERRORS as e:
        logger.error(f"Failed to retry email job {job_id}: {e}")
        raise _queue_unavailable() from e

    if not retried:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "JOB_NOT_FOUND",
                "message": f"No failed email job with id {job_id}.",
            },
        )

    logger.info(f"Admin {admin.id} retried email job {job_id}")
    return EmailJobRetryResponse(
        id=job_id, state=JobState.WAITING, message="Job moved back to the queue."
    )
