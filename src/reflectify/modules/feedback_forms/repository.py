"""
Feedback Forms Repository

Database operations for feedback forms, access credentials and rosters.
The lifecycle, dispatcher, access gateway and expiry sweeper depend only on
the functions in this module.

Design Principles:
- Single responsibility - only database operations, no business logic
- Soft deletes only; nothing here issues a DELETE
- Writes commit before returning so callers observe persisted state
- Timezone-aware datetime handling (UTC)
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.modules.academics.models import Division, Semester, Student

from .models import (
    FeedbackForm,
    FeedbackFormOverride,
    FeedbackQuestion,
    FormAccess,
    FormStatus,
    OverrideStudent,
    RecipientKind,
    StudentResponse,
)


@dataclass(frozen=True)
class FormDispatchContext:
    """A form plus the labels its invitation email needs."""

    form: FeedbackForm
    division_name: str
    semester_number: int


async def get_form(
    db: AsyncSession, form_id: UUID, include_deleted: bool = False
) -> FeedbackForm | None:
    """Get a form by ID. Soft-deleted forms are hidden unless requested."""
    form = await db.get(FeedbackForm, form_id)
    if form is None or (form.is_deleted and not include_deleted):
        return None
    return form


async def get_form_dispatch_context(db: AsyncSession, form_id: UUID) -> FormDispatchContext | None:
    """Load a non-deleted form with its division name and semester number."""
    result = await db.execute(
        select(FeedbackForm, Division.division_name, Semester.semester_number)
        .join(Division, Division.id == FeedbackForm.division_id)
        .join(Semester, Semester.id == Division.semester_id)
        .where(FeedbackForm.id == form_id, FeedbackForm.is_deleted.is_(False))
    )
    row = result.one_or_none()
    if row is None:
        return None

    form, division_name, semester_number = row
    return FormDispatchContext(
        form=form, division_name=division_name, semester_number=semester_number
    )


# ============================================
# Status transitions
# ============================================

# DRAFT forms are generated without dispatch. Re-entering ACTIVE from
# CLOSED is an administrative reopen and dispatches again.
VALID_STATUS_TRANSITIONS: dict[FormStatus, set[FormStatus]] = {
    FormStatus.DRAFT: {FormStatus.ACTIVE, FormStatus.CLOSED},
    FormStatus.ACTIVE: {FormStatus.CLOSED},
    FormStatus.CLOSED: {FormStatus.ACTIVE},
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: FormStatus, new_status: FormStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


async def update_form_status(
    db: AsyncSession,
    form: FeedbackForm,
    status: FormStatus,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> FeedbackForm:
    """
    Write a new status (and optional dates) to a form and commit.

    Writing the current status again is allowed.

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    current_status = form.status
    if status != current_status and status not in VALID_STATUS_TRANSITIONS[current_status]:
        raise InvalidStatusTransitionError(current_status, status)

    form.status = status
    if start_date is not None:
        form.start_date = start_date
    if end_date is not None:
        form.end_date = end_date

    await db.commit()
    await db.refresh(form)

    return form


# ============================================
# Access credentials
# ============================================


async def find_credential_by_token(db: AsyncSession, token: str) -> FormAccess | None:
    """Get a credential by its access token, including soft-deleted ones."""
    result = await db.execute(select(FormAccess).where(FormAccess.access_token == token))
    return result.scalar_one_or_none()


def build_credential_upsert(
    form_id: UUID,
    recipient_kind: RecipientKind,
    recipient_id: UUID,
    access_token: str,
):
    """
    ``INSERT ... ON CONFLICT DO UPDATE`` for one credential.

    On conflict the stored token and ``is_submitted`` are kept and only the
    soft-delete flag is cleared.
    """
    return (
        pg_insert(FormAccess)
        .values(
            id=uuid.uuid4(),
            form_id=form_id,
            recipient_kind=recipient_kind,
            recipient_id=recipient_id,
            access_token=access_token,
            is_submitted=False,
            is_deleted=False,
        )
        .on_conflict_do_update(
            constraint="uq_form_access_recipient",
            set_={"is_deleted": False, "updated_at": func.now()},
        )
        .returning(FormAccess)
    )


async def upsert_credential(
    db: AsyncSession,
    form_id: UUID,
    recipient_kind: RecipientKind,
    recipient_id: UUID,
    access_token: str,
) -> FormAccess:
    """
    Insert the credential for (form, recipient) or revive the existing one.

    A single atomic statement, so concurrent dispatches of the same form
    cannot create duplicates. ``access_token`` is ignored for an existing row.
    """
    stmt = build_credential_upsert(form_id, recipient_kind, recipient_id, access_token)
    result = await db.scalars(stmt, execution_options={"populate_existing": True})
    credential = result.one()
    await db.commit()

    return credential


# ============================================
# Expiry
# ============================================


async def mark_form_expired(db: AsyncSession, form_id: UUID) -> bool:
    """
    Set ``is_expired`` on a form.

    Returns:
        True if the flag changed, False if it was already set
    """
    result = await db.execute(
        update(FeedbackForm)
        .where(FeedbackForm.id == form_id, FeedbackForm.is_expired.is_(False))
        .values(is_expired=True)
    )
    await db.commit()
    return result.rowcount > 0


async def expire_forms_created_before(db: AsyncSession, cutoff: datetime) -> list[UUID]:
    """
    Mark every non-expired, non-deleted form created before ``cutoff`` as expired.

    Returns:
        IDs of the forms that changed
    """
    result = await db.execute(
        update(FeedbackForm)
        .where(
            FeedbackForm.created_at < cutoff,
            FeedbackForm.is_expired.is_(False),
            FeedbackForm.is_deleted.is_(False),
        )
        .values(is_expired=True)
        .returning(FeedbackForm.id)
    )
    expired_ids = list(result.scalars().all())
    await db.commit()
    return expired_ids


# ============================================
# Rosters and content
# ============================================


async def list_active_division_students(db: AsyncSession, division_id: UUID) -> list[Student]:
    result = await db.execute(
        select(Student)
        .where(Student.division_id == division_id, Student.is_deleted.is_(False))
        .order_by(Student.enrollment_number)
    )
    return list(result.scalars().all())


async def get_active_override_members(db: AsyncSession, form_id: UUID) -> list[OverrideStudent]:
    """Active members of the form's override roster, empty if there is no live roster."""
    result = await db.execute(
        select(OverrideStudent)
        .join(FeedbackFormOverride, FeedbackFormOverride.id == OverrideStudent.override_id)
        .where(
            FeedbackFormOverride.feedback_form_id == form_id,
            FeedbackFormOverride.is_deleted.is_(False),
            OverrideStudent.is_deleted.is_(False),
        )
        .order_by(OverrideStudent.enrollment_number)
    )
    return list(result.scalars().all())


async def list_active_questions(db: AsyncSession, form_id: UUID) -> list[FeedbackQuestion]:
    result = await db.execute(
        select(FeedbackQuestion)
        .where(FeedbackQuestion.form_id == form_id, FeedbackQuestion.is_deleted.is_(False))
        .order_by(FeedbackQuestion.display_order)
    )
    return list(result.scalars().all())


# ============================================
# Soft delete
# ============================================


async def soft_delete_form(db: AsyncSession, form_id: UUID) -> bool:
    """
    Soft-delete a form and everything hanging off it in one transaction.

    The form is closed and flagged deleted; its questions, credentials,
    responses and override roster are flagged deleted. Either every
    update commits or none does.

    Returns:
        False if the form does not exist or is already deleted
    """
    try:
        result = await db.execute(
            update(FeedbackForm)
            .where(FeedbackForm.id == form_id, FeedbackForm.is_deleted.is_(False))
            .values(is_deleted=True, status=FormStatus.CLOSED)
        )
        if result.rowcount == 0:
            await db.rollback()
            return False

        await db.execute(
            update(FeedbackQuestion)
            .where(FeedbackQuestion.form_id == form_id)
            .values(is_deleted=True)
        )
        await db.execute(
            update(FormAccess).where(FormAccess.form_id == form_id).values(is_deleted=True)
        )
        await db.execute(
            update(StudentResponse)
            .where(StudentResponse.form_id == form_id)
            .values(is_deleted=True)
        )
        override_ids = select(FeedbackFormOverride.id).where(
            FeedbackFormOverride.feedback_form_id == form_id
        )
        await db.execute(
            update(OverrideStudent)
            .where(OverrideStudent.override_id.in_(override_ids))
            .values(is_deleted=True)
        )
        await db.execute(
            update(FeedbackFormOverride)
            .where(FeedbackFormOverride.feedback_form_id == form_id)
            .values(is_deleted=True)
        )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return True
