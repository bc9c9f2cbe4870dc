"""
Feedback Form Models

Database models for feedback forms, their questions, per-recipient access
credentials, override rosters and submitted responses.

Nothing here is ever hard-deleted. Records carry an ``is_deleted`` flag so
the audit trail of who was invited to which form survives a form's removal.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from reflectify.core.database import Base


class FormStatus(str, enum.Enum):
    """Administrative status of a feedback form."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class RecipientKind(str, enum.Enum):
    """Which roster a credential's recipient comes from."""

    STUDENT = "STUDENT"
    OVERRIDE = "OVERRIDE"


class FeedbackForm(Base):
    """
    One feedback instrument bound to a division and a subject allocation.

    ``is_expired`` is orthogonal to ``status``: an expired form is never
    reachable through an access token whatever its status.
    """

    __tablename__ = "feedback_forms"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    division_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("divisions.id"), nullable=False, index=True
    )
    subject_allocation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subject_allocations.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[FormStatus] = mapped_column(
        Enum(FormStatus, name="form_status"), nullable=False, default=FormStatus.DRAFT
    )
    is_expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        # Expiry sweep: non-expired, non-deleted forms by age
        Index("ix_feedback_forms_expiry_sweep", "is_expired", "is_deleted", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<FeedbackForm {self.id} ({self.status.value})>"


class FeedbackQuestion(Base):
    __tablename__ = "feedback_questions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_forms.id"), nullable=False, index=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    faculty_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    subject_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    batch: Mapped[str] = mapped_column(String(20), nullable=False, default="None")
    text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class FormAccess(Base):
    """
    Access credential binding one recipient to one form.

    At most one row exists per (form, recipient kind, recipient); re-issuing
    updates it in place.
    """

    __tablename__ = "form_access"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_forms.id"), nullable=False, index=True
    )
    recipient_kind: Mapped[RecipientKind] = mapped_column(
        Enum(RecipientKind, name="recipient_kind"), nullable=False
    )
    # students.id or override_students.id depending on recipient_kind
    recipient_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    access_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    is_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "form_id", "recipient_kind", "recipient_id", name="uq_form_access_recipient"
        ),
    )


class FeedbackFormOverride(Base):
    """Form-specific roster that replaces the division roster for one form."""

    __tablename__ = "feedback_form_overrides"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    feedback_form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_forms.id"), nullable=False, unique=True
    )
    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class OverrideStudent(Base):
    __tablename__ = "override_students"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    override_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_form_overrides.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    enrollment_number: Mapped[str] = mapped_column(String(50), nullable=False)
    batch: Mapped[str] = mapped_column(String(20), nullable=False, default="-")
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("override_id", "email", name="uq_override_students_email"),
    )


class StudentResponse(Base):
    """
    One submitted answer. Written by the submission flow; kept for audit
    and soft-deleted together with its form.
    """

    __tablename__ = "student_responses"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_forms.id"), nullable=False, index=True
    )
    form_access_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_access.id"), nullable=False
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("feedback_questions.id"), nullable=False
    )
    response_value: Mapped[dict | list | str | int | None] = mapped_column(JSON, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
