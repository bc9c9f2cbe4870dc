"""
Notification Dispatcher

Turns a form activation into one queued invitation email per eligible
recipient.

Flow per recipient (recipients are prepared concurrently, each in its
own database session):
1. Issue or reuse the access credential
2. Skip the recipient if the credential is already submitted
3. Render the invitation and enqueue it on the durable email queue
4. If the queue is unreachable, send the email directly instead

Issuance always completes before the job referencing its token is
enqueued. A failure for one recipient is recorded in the summary and
never stops the others. Forms already flagged expired are not dispatched.

``dispatch_form`` returns once every job is enqueued (or directly sent in
fallback mode). Delivery itself is observed through the queue.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reflectify.core.config import settings
from reflectify.core.database import async_session_maker
from reflectify.core.email import (
    EmailDeliveryError,
    EmailJobPayload,
    deliver_email_job,
    feedback_form_subject,
    render_feedback_form_invitation,
)
from reflectify.modules.feedback_forms import credentials, repository
from reflectify.modules.feedback_forms.recipients import Recipient, RosterKind, resolve_recipients
from reflectify.modules.feedback_forms.repository import FormDispatchContext
from reflectify.modules.notifications.queue import QUEUE_ERRORS, EmailQueue

logger = logging.getLogger(__name__)


class RecipientOutcome(str, enum.Enum):
    QUEUED = "queued"
    SENT_DIRECTLY = "sent_directly"
    SKIPPED_SUBMITTED = "skipped_submitted"
    FAILED = "failed"


@dataclass
class DispatchSummary:
    """Aggregated per-recipient outcomes of one dispatch pass."""

    form_id: UUID
    roster_kind: RosterKind | None = None
    total_recipients: int = 0
    queued: int = 0
    sent_directly: int = 0
    skipped_submitted: int = 0
    failed: int = 0
    form_expired: bool = False
    outcomes: dict[str, RecipientOutcome] = field(default_factory=dict)

    def record(self, recipient: Recipient, outcome: RecipientOutcome) -> None:
        self.outcomes[str(recipient.id)] = outcome
        if outcome is RecipientOutcome.QUEUED:
            self.queued += 1
        elif outcome is RecipientOutcome.SENT_DIRECTLY:
            self.sent_directly += 1
        elif outcome is RecipientOutcome.SKIPPED_SUBMITTED:
            self.skipped_submitted += 1
        else:
            self.failed += 1


def feedback_job_name(form_id: UUID, recipient_id: UUID) -> str:
    return f"feedback-form-{form_id}-{recipient_id}"


def build_invitation(
    context: FormDispatchContext,
    recipient: Recipient,
    access_token: str,
    base_url: str,
) -> EmailJobPayload:
    return EmailJobPayload(
        to=recipient.email,
        subject=feedback_form_subject(context.form.title),
        html=render_feedback_form_invitation(
            semester_number=context.semester_number,
            division_label=context.division_name,
            form_title=context.form.title,
            access_token=access_token,
            base_url=base_url,
        ),
    )


async def _send_directly(payload: EmailJobPayload) -> RecipientOutcome:
    try:
        await deliver_email_job(payload)
    except EmailDeliveryError as e:
        logger.error(f"[FALLBACK] Direct send failed for {payload['to']}: {e}")
        return RecipientOutcome.FAILED

    logger.info(f"[FALLBACK] Email sent directly to {payload['to']}")
    return RecipientOutcome.SENT_DIRECTLY


async def _dispatch_to_recipient(
    context: FormDispatchContext,
    recipient: Recipient,
    *,
    queue: EmailQueue | None,
    session_factory: async_sessionmaker[AsyncSession],
    secret: str,
    base_url: str,
) -> RecipientOutcome:
    form_id = context.form.id

    async with session_factory() as db:
        credential = await credentials.issue_or_reuse(db, form_id, recipient, secret)

    if credential.is_submitted:
        logger.debug(f"Skipping {recipient.email}: form {form_id} already submitted")
        return RecipientOutcome.SKIPPED_SUBMITTED

    payload = build_invitation(context, recipient, credential.access_token, base_url)

    if queue is None:
        logger.warning(
            f"[FALLBACK] Email queue not available, sending directly to {recipient.email}"
        )
        return await _send_directly(payload)

    try:
        job_id = await queue.add(feedback_job_name(form_id, recipient.id), payload)
    except QUEUE_ERRORS as e:
        logger.warning(
            f"[FALLBACK] Email queue unreachable ({e}), sending directly to {recipient.email}"
        )
        return await _send_directly(payload)

    logger.info(f"Queued feedback form email for {recipient.email} (job {job_id})")
    return RecipientOutcome.QUEUED


async def dispatch_form(
    form_id: UUID,
    *,
    queue: EmailQueue | None,
    session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
    secret: str | None = None,
    base_url: str | None = None,
    preparation_concurrency: int | None = None,
) -> DispatchSummary:
    """
    Resolve a form's recipients and enqueue one invitation per eligible recipient.

    Args:
        form_id: Form to dispatch
        queue: Durable email queue; None forces direct sending
        session_factory: Source of database sessions
        secret: HMAC key for new tokens (defaults to TOKEN_SECRET)
        base_url: Frontend URL for access links (defaults to FRONTEND_URL)
        preparation_concurrency: Max recipients prepared at once

    Returns:
        Counts of queued, directly sent, skipped and failed recipients
    """
    secret = secret or settings.token_secret
    base_url = base_url or settings.frontend_url
    concurrency = preparation_concurrency or settings.dispatch_preparation_concurrency

    summary = DispatchSummary(form_id=form_id)

    async with session_factory() as db:
        context = await repository.get_form_dispatch_context(db, form_id)
        if context is None:
            logger.warning(f"Dispatch skipped: form {form_id} not found")
            return summary
        if context.form.is_expired:
            # Every link would be rejected by the access gateway
            logger.warning(f"Dispatch skipped: form {form_id} is expired")
            summary.form_expired = True
            return summary
        recipients, summary.roster_kind = await resolve_recipients(db, context.form)

    summary.total_recipients = len(recipients)
    if not recipients:
        logger.info(f"Form {form_id} has no active recipients, nothing to dispatch")
        return summary

    semaphore = asyncio.Semaphore(concurrency)

    async def _prepare(recipient: Recipient) -> RecipientOutcome:
        async with semaphore:
            return await _dispatch_to_recipient(
                context,
                recipient,
                queue=queue,
                session_factory=session_factory,
                secret=secret,
                base_url=base_url,
            )

    results = await asyncio.gather(*(_prepare(r) for r in recipients), return_exceptions=True)

    for recipient, result in zip(recipients, results, strict=True):
        if isinstance(result, Exception):
            logger.error(
                f"Failed to prepare feedback form email for {recipient.email}: {result}",
                exc_info=result,
            )
            summary.record(recipient, RecipientOutcome.FAILED)
        elif isinstance(result, BaseException):
            raise result
        else:
            summary.record(recipient, result)

    logger.info(
        f"Dispatch for form {form_id} ({summary.roster_kind.value} roster): "
        f"{summary.total_recipients} recipient(s), {summary.queued} queued, "
        f"{summary.sent_directly} sent directly, {summary.skipped_submitted} skipped, "
        f"{summary.failed} failed"
    )
    return summary
