"""
Access Gateway

Validates an access token presented by a recipient and releases the form
content only when every check passes.

Checks run in a fixed order so the most specific reason is reported:
1. Token matches no live credential        -> INVALID_TOKEN
2. Form missing or soft-deleted            -> FORM_NOT_FOUND
3. Credential older than the validity window -> FORM_EXPIRED (form is marked expired)
4. Form already flagged expired            -> FORM_EXPIRED
5. Form status is not ACTIVE               -> FORM_INACTIVE
6. Form end date has passed                -> SUBMISSION_CLOSED
7. Credential already submitted            -> ALREADY_SUBMITTED

Rejections are returned as values, not raised, so callers can branch on
``AccessRejection.kind``.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.core.config import settings
from reflectify.modules.feedback_forms import repository
from reflectify.modules.feedback_forms.models import (
    FeedbackForm,
    FeedbackQuestion,
    FormAccess,
    FormStatus,
)

logger = logging.getLogger(__name__)


class AccessRejectionKind(str, enum.Enum):
    INVALID_TOKEN = "INVALID_TOKEN"
    FORM_NOT_FOUND = "FORM_NOT_FOUND"
    FORM_EXPIRED = "FORM_EXPIRED"
    FORM_INACTIVE = "FORM_INACTIVE"
    SUBMISSION_CLOSED = "SUBMISSION_CLOSED"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"

    @property
    def status_code(self) -> int:
        if self in (AccessRejectionKind.INVALID_TOKEN, AccessRejectionKind.FORM_NOT_FOUND):
            return 404
        return 403


@dataclass(frozen=True)
class AccessRejection:
    kind: AccessRejectionKind
    message: str


@dataclass(frozen=True)
class AccessGranted:
    form: FeedbackForm
    credential: FormAccess
    questions: list[FeedbackQuestion]


AccessResult = AccessGranted | AccessRejection


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


async def resolve_access_token(
    db: AsyncSession,
    token: str,
    now: datetime | None = None,
    validity_days: int | None = None,
) -> AccessResult:
    """
    Resolve an access token to form content or a rejection.

    Args:
        db: Database session
        token: Token from the invitation link
        now: Current time (defaults to UTC now)
        validity_days: Credential lifetime (defaults to ACCESS_VALIDITY_DAYS)

    Returns:
        ``AccessGranted`` with the form, credential and active questions in
        display order, or ``AccessRejection`` describing the first failed check
    """
    now = now or datetime.now(UTC)
    validity_days = validity_days or settings.access_validity_days

    credential = await repository.find_credential_by_token(db, token)
    if credential is None:
        return AccessRejection(AccessRejectionKind.INVALID_TOKEN, "Invalid access token.")

    form = await repository.get_form(db, credential.form_id, include_deleted=True)
    if form is None or form.is_deleted:
        return AccessRejection(AccessRejectionKind.FORM_NOT_FOUND, "Feedback form not found.")

    if credential.is_deleted:
        return AccessRejection(AccessRejectionKind.INVALID_TOKEN, "Invalid access token.")

    if _as_utc(credential.created_at) < now - timedelta(days=validity_days):
        if not form.is_expired:
            await repository.mark_form_expired(db, form.id)
            logger.info(f"Form {form.id} marked expired on access after {validity_days} days")
        return AccessRejection(
            AccessRejectionKind.FORM_EXPIRED,
            f"This form has expired. Forms are valid for {validity_days} days only.",
        )

    if form.is_expired:
        return AccessRejection(AccessRejectionKind.FORM_EXPIRED, "This form has expired.")

    if form.status != FormStatus.ACTIVE:
        return AccessRejection(
            AccessRejectionKind.FORM_INACTIVE, "This form is not currently active."
        )

    if form.end_date is not None and now > _as_utc(form.end_date):
        return AccessRejection(
            AccessRejectionKind.SUBMISSION_CLOSED, "The submission period for this form has ended."
        )

    if credential.is_submitted:
        return AccessRejection(
            AccessRejectionKind.ALREADY_SUBMITTED, "You have already submitted this form."
        )

    questions = await repository.list_active_questions(db, form.id)
    return AccessGranted(form=form, credential=credential, questions=questions)
