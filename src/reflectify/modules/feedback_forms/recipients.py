"""
Recipient Resolver

Decides who receives a form. A form's override roster, when it has at
least one active member, replaces the division roster entirely; the two
are never merged.
"""

import enum
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.modules.feedback_forms import repository
from reflectify.modules.feedback_forms.models import FeedbackForm, RecipientKind

logger = logging.getLogger(__name__)


class RosterKind(str, enum.Enum):
    """Which roster a form's recipients were resolved from."""

    OVERRIDE = "OVERRIDE"
    DIVISION = "DIVISION"


@dataclass(frozen=True)
class Recipient:
    id: UUID
    kind: RecipientKind
    email: str
    name: str
    enrollment_number: str


async def resolve_recipients(
    db: AsyncSession, form: FeedbackForm
) -> tuple[list[Recipient], RosterKind]:
    """
    Resolve the recipient set for a form.

    An empty result is valid and means nothing will be dispatched.
    """
    override_members = await repository.get_active_override_members(db, form.id)
    if override_members:
        logger.info(
            f"Form {form.id}: using override roster with {len(override_members)} member(s)"
        )
        return [
            Recipient(
                id=member.id,
                kind=RecipientKind.OVERRIDE,
                email=member.email,
                name=member.name,
                enrollment_number=member.enrollment_number,
            )
            for member in override_members
        ], RosterKind.OVERRIDE

    students = await repository.list_active_division_students(db, form.division_id)
    logger.info(f"Form {form.id}: using division roster with {len(students)} student(s)")
    return [
        Recipient(
            id=student.id,
            kind=RecipientKind.STUDENT,
            email=student.email,
            name=student.name,
            enrollment_number=student.enrollment_number,
        )
        for student in students
    ], RosterKind.DIVISION
