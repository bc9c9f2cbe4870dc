"""
Feedback Forms Admin Router

Administrative status changes and deletion for feedback forms.
All endpoints require an admin bearer token.

Endpoints:
- PATCH /admin/feedback-forms/status - Change the status of many forms
- PATCH /admin/feedback-forms/{id}/status - Change one form's status
- DELETE /admin/feedback-forms/{id} - Soft-delete a form

Activating a form dispatches invitation emails; the response returns once
they are queued and reports the per-form dispatch summary.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.core.auth import AdminUser, get_current_admin_user
from reflectify.core.database import get_db
from reflectify.core.rate_limit import RateLimitExceeded, check_rate_limit
from reflectify.modules.feedback_forms import service
from reflectify.modules.feedback_forms.schemas import (
    BulkFormFailure,
    BulkFormStatusResponse,
    BulkFormStatusUpdateRequest,
    DispatchSummaryResponse,
    FormDeleteResponse,
    FormStatusResponse,
    FormStatusUpdateRequest,
)
from reflectify.modules.feedback_forms.service import FeedbackFormServiceError, StatusChangeResult
from reflectify.modules.notifications.queue import EmailQueue, get_email_queue

logger = logging.getLogger(__name__)

router = APIRouter()

# Activations can fan out to hundreds of emails per form
RATE_LIMIT_STATUS_CHANGE = (30, 60)
RATE_LIMIT_BULK_STATUS_CHANGE = (5, 60)
RATE_LIMIT_DELETE = (30, 60)


async def _check_admin_rate_limit(
    admin: AdminUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    key = f"admin:{action}:{admin.id}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for admin {admin.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


def _service_error_to_http(e: FeedbackFormServiceError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _to_status_response(change: StatusChangeResult) -> FormStatusResponse:
    response = FormStatusResponse.model_validate(change.form)
    response.dispatch = DispatchSummaryResponse.from_summary(change.dispatch)
    response.dispatch_error = change.dispatch_error
    return response


@router.patch(
    "/status",
    response_model=BulkFormStatusResponse,
    summary="Bulk Update Form Status",
    description="""
Apply one target status to several forms.

Each form is updated in its own transaction and dispatched independently.
Forms that cannot be updated are listed under `failed` without affecting
the rest.

**Access:** Admin only
""",
    responses={
        200: {"description": "Per-form results", "model": BulkFormStatusResponse},
        400: {"description": "Validation error"},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def bulk_update_status(
    request: BulkFormStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
    queue: EmailQueue | None = Depends(get_email_queue),
) -> BulkFormStatusResponse:
    await _check_admin_rate_limit(admin, "bulk_form_status", *RATE_LIMIT_BULK_STATUS_CHANGE)

    result = await service.bulk_update_form_status(
        db,
        request.form_ids,
        request.status,
        request.start_date,
        request.end_date,
        queue=queue,
    )

    logger.info(
        f"Admin {admin.id} set {len(result.updated)} form(s) to {request.status.value}, "
        f"{len(result.failed)} failed"
    )

    return BulkFormStatusResponse(
        status=request.status,
        updated=[_to_status_response(change) for change in result.updated],
        failed=[
            BulkFormFailure(form_id=form_id, error=error.error_code, message=error.message)
            for form_id, error in result.failed
        ],
        message=f"{len(result.updated)} of {len(request.form_ids)} form(s) updated.",
    )


@router.patch(
    "/{form_id}/status",
    response_model=FormStatusResponse,
    summary="Update Form Status",
    description="""
Change a form's status, optionally setting its start and end dates.

Allowed transitions: `DRAFT -> ACTIVE | CLOSED`, `ACTIVE -> CLOSED`,
`CLOSED -> ACTIVE`. Setting `ACTIVE` (including re-activating) sends an
invitation to every recipient who has not yet submitted.

**Access:** Admin only
""",
    responses={
        200: {"description": "Status updated", "model": FormStatusResponse},
        400: {"description": "Validation error or end_date before start_date"},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
        404: {"description": "Form not found"},
        409: {"description": "Status transition not allowed"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def update_status(
    form_id: UUID,
    request: FormStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
    queue: EmailQueue | None = Depends(get_email_queue),
) -> FormStatusResponse:
    await _check_admin_rate_limit(admin, "form_status", *RATE_LIMIT_STATUS_CHANGE)

    try:
        change = await service.update_form_status(
            db,
            form_id,
            request.status,
            request.start_date,
            request.end_date,
            queue=queue,
        )
    except FeedbackFormServiceError as e:
        logger.warning(f"Status change for form {form_id} rejected: {e.message}")
        raise _service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error updating status of form {form_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            },
        ) from e

    logger.info(f"Admin {admin.id} set form {form_id} to {request.status.value}")
    return _to_status_response(change)


@router.delete(
    "/{form_id}",
    response_model=FormDeleteResponse,
    summary="Delete Form",
    description="""
Soft-delete a form. The form is closed, and it and its questions,
access credentials and responses are marked deleted in one transaction.
Nothing is physically removed.

**Access:** Admin only
""",
    responses={
        200: {"description": "Form deleted", "model": FormDeleteResponse},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not an admin"},
        404: {"description": "Form not found"},
    },
)
async def delete_form(
    form_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> FormDeleteResponse:
    await _check_admin_rate_limit(admin, "form_delete", *RATE_LIMIT_DELETE)

    try:
        await service.soft_delete_form(db, form_id)
    except FeedbackFormServiceError as e:
        raise _service_error_to_http(e) from e

    logger.info(f"Admin {admin.id} deleted form {form_id}")
    return FormDeleteResponse(id=form_id)
