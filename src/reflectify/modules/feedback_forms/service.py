"""
Feedback Forms Service Layer

Form lifecycle: status transitions, their dispatch side effect, and
soft deletion.

Status changes:
- Allowed transitions: DRAFT -> ACTIVE/CLOSED, ACTIVE -> CLOSED, CLOSED -> ACTIVE
- Writing the current status again is allowed
- Entering ACTIVE (including re-entering it) runs one dispatch pass
- The status write commits before dispatch starts; a dispatch failure is
  reported alongside the committed status and never rolls it back

Bulk changes apply the same rules to each form independently. One form
failing (not found, bad transition, dispatch error) does not affect the
others.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.modules.feedback_forms import repository
from reflectify.modules.feedback_forms.dispatcher import DispatchSummary, dispatch_form
from reflectify.modules.feedback_forms.models import FeedbackForm, FormStatus
from reflectify.modules.notifications.queue import EmailQueue

logger = logging.getLogger(__name__)


class FeedbackFormServiceError(Exception):
    """Base exception for feedback form service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class FormNotFoundError(FeedbackFormServiceError):
    def __init__(self, form_id: UUID | None = None):
        message = f"Feedback form {form_id} not found" if form_id else "Feedback form not found"
        super().__init__(message=message, error_code="FORM_NOT_FOUND", status_code=404)


class InvalidStatusTransitionError(FeedbackFormServiceError):
    def __init__(self, current_status: FormStatus, new_status: FormStatus):
        super().__init__(
            message=(
                f"Cannot change form status from {current_status.value} to {new_status.value}."
            ),
            error_code="INVALID_STATUS_TRANSITION",
            status_code=409,
        )


class InvalidDateRangeError(FeedbackFormServiceError):
    def __init__(self):
        super().__init__(
            message="end_date must not be earlier than start_date.",
            error_code="INVALID_DATE_RANGE",
            status_code=400,
        )


@dataclass
class StatusChangeResult:
    form: FeedbackForm
    dispatch: DispatchSummary | None = None
    dispatch_error: str | None = None


@dataclass
class BulkStatusChangeResult:
    status: FormStatus
    updated: list[StatusChangeResult] = field(default_factory=list)
    failed: list[tuple[UUID, FeedbackFormServiceError]] = field(default_factory=list)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _validate_date_range(
    form: FeedbackForm,
    start_date: datetime | None,
    end_date: datetime | None,
) -> None:
    """Check the dates the form would have after the update."""
    effective_start = _as_utc(start_date or form.start_date)
    effective_end = _as_utc(end_date or form.end_date)
    if effective_start and effective_end and effective_end < effective_start:
        raise InvalidDateRangeError()


async def _run_dispatch(
    form_id: UUID, queue: EmailQueue | None
) -> tuple[DispatchSummary | None, str | None]:
    try:
        return await dispatch_form(form_id, queue=queue), None
    except Exception as e:
        logger.error(f"Dispatch failed for form {form_id}: {e}", exc_info=True)
        return None, str(e)


async def update_form_status(
    db: AsyncSession,
    form_id: UUID,
    status: FormStatus,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    *,
    queue: EmailQueue | None,
) -> StatusChangeResult:
    """
    Change a form's status and dispatch invitations when it enters ACTIVE.

    Args:
        db: Database session
        form_id: Form to update
        status: Target status
        start_date: New start date, if changing
        end_date: New end date, if changing
        queue: Email queue for dispatch (None sends directly)

    Raises:
        FormNotFoundError: Form missing or soft-deleted
        InvalidStatusTransitionError: Transition not allowed
        InvalidDateRangeError: end_date before start_date
    """
    form = await repository.get_form(db, form_id)
    if form is None:
        raise FormNotFoundError(form_id)

    _validate_date_range(form, start_date, end_date)

    previous_status = form.status
    try:
        form = await repository.update_form_status(
            db, form, status, start_date=_as_utc(start_date), end_date=_as_utc(end_date)
        )
    except repository.InvalidStatusTransitionError as e:
        logger.info(f"Rejected status change for form {form_id}: {e}")
        raise InvalidStatusTransitionError(e.current_status, e.new_status) from e

    logger.info(f"Form {form_id} status: {previous_status.value} -> {status.value}")

    result = StatusChangeResult(form=form)
    if status == FormStatus.ACTIVE:
        result.dispatch, result.dispatch_error = await _run_dispatch(form_id, queue)

    return result


async def bulk_update_form_status(
    db: AsyncSession,
    form_ids: list[UUID],
    status: FormStatus,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    *,
    queue: EmailQueue | None,
) -> BulkStatusChangeResult:
    """
    Apply one status change to many forms, each in its own transaction.

    Duplicate IDs are processed once.
    """
    result = BulkStatusChangeResult(status=status)

    for form_id in dict.fromkeys(form_ids):
        try:
            change = await update_form_status(
                db, form_id, status, start_date, end_date, queue=queue
            )
        except FeedbackFormServiceError as e:
            await db.rollback()
            result.failed.append((form_id, e))
            continue
        except Exception as e:
            await db.rollback()
            logger.error(f"Unexpected error updating form {form_id}: {e}", exc_info=True)
            result.failed.append(
                (
                    form_id,
                    FeedbackFormServiceError(
                        message="Failed to update form status.",
                        error_code="STATUS_UPDATE_FAILED",
                        status_code=500,
                    ),
                )
            )
            continue

        result.updated.append(change)

    logger.info(
        f"Bulk status change to {status.value}: "
        f"{len(result.updated)} updated, {len(result.failed)} failed"
    )
    return result


async def soft_delete_form(db: AsyncSession, form_id: UUID) -> None:
    """
    Soft-delete a form with its questions, credentials and responses.

    Raises:
        FormNotFoundError: Form missing or already deleted
    """
    if not await repository.soft_delete_form(db, form_id):
        raise FormNotFoundError(form_id)

    logger.info(f"Form {form_id} soft-deleted")
