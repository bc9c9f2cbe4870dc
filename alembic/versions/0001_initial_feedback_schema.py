"""initial feedback schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration:
1. Creates the academic boundary tables (semesters, divisions,
   subject_allocations, students)
2. Creates feedback forms, questions, access credentials, override
   rosters and student responses
3. Adds the (form, recipient kind, recipient) unique constraint that
   credential upserts conflict on
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _is_deleted() -> sa.Column:
    return sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false())


def upgrade() -> None:
    """Create academic and feedback form tables."""
    form_status = postgresql.ENUM(
        "DRAFT", "ACTIVE", "CLOSED", name="form_status", create_type=False
    )
    form_status.create(op.get_bind(), checkfirst=True)
    recipient_kind = postgresql.ENUM(
        "STUDENT", "OVERRIDE", name="recipient_kind", create_type=False
    )
    recipient_kind.create(op.get_bind(), checkfirst=True)

    # Academic boundary tables
    op.create_table(
        "semesters",
        _id(),
        sa.Column("semester_number", sa.Integer(), nullable=False),
        _is_deleted(),
        _created_at(),
    )
    op.create_table(
        "divisions",
        _id(),
        sa.Column("division_name", sa.String(length=50), nullable=False),
        sa.Column(
            "semester_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("semesters.id"),
            nullable=False,
        ),
        _is_deleted(),
        _created_at(),
    )
    op.create_index("ix_divisions_semester_id", "divisions", ["semester_id"])

    op.create_table(
        "subject_allocations",
        _id(),
        sa.Column(
            "semester_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("semesters.id"),
            nullable=False,
        ),
        sa.Column("faculty_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=False),
        _is_deleted(),
    )
    op.create_index("ix_subject_allocations_semester_id", "subject_allocations", ["semester_id"])

    op.create_table(
        "students",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("enrollment_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column(
            "division_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("divisions.id"),
            nullable=False,
        ),
        _is_deleted(),
        _created_at(),
    )
    op.create_index("ix_students_email", "students", ["email"])
    op.create_index("ix_students_division_id", "students", ["division_id"])

    # Feedback forms
    op.create_table(
        "feedback_forms",
        _id(),
        sa.Column(
            "division_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("divisions.id"),
            nullable=False,
        ),
        sa.Column(
            "subject_allocation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("subject_allocations.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", form_status, nullable=False, server_default="DRAFT"),
        sa.Column("is_expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        _is_deleted(),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_feedback_forms_division_id", "feedback_forms", ["division_id"])
    op.create_index(
        "ix_feedback_forms_expiry_sweep",
        "feedback_forms",
        ["is_expired", "is_deleted", "created_at"],
    )

    op.create_table(
        "feedback_questions",
        _id(),
        sa.Column(
            "form_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_forms.id"),
            nullable=False,
        ),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("faculty_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("batch", sa.String(length=20), nullable=False, server_default="None"),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False),
        _is_deleted(),
    )
    op.create_index("ix_feedback_questions_form_id", "feedback_questions", ["form_id"])

    op.create_table(
        "form_access",
        _id(),
        sa.Column(
            "form_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_forms.id"),
            nullable=False,
        ),
        sa.Column("recipient_kind", recipient_kind, nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("access_token", sa.String(length=128), nullable=False, unique=True),
        sa.Column("is_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _is_deleted(),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint(
            "form_id", "recipient_kind", "recipient_id", name="uq_form_access_recipient"
        ),
    )
    op.create_index("ix_form_access_form_id", "form_access", ["form_id"])

    op.create_table(
        "feedback_form_overrides",
        _id(),
        sa.Column(
            "feedback_form_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_forms.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=True),
        _is_deleted(),
        _created_at(),
    )

    op.create_table(
        "override_students",
        _id(),
        sa.Column(
            "override_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_form_overrides.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("enrollment_number", sa.String(length=50), nullable=False),
        sa.Column("batch", sa.String(length=20), nullable=False, server_default="-"),
        _is_deleted(),
        sa.UniqueConstraint("override_id", "email", name="uq_override_students_email"),
    )
    op.create_index("ix_override_students_override_id", "override_students", ["override_id"])

    op.create_table(
        "student_responses",
        _id(),
        sa.Column(
            "form_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_forms.id"),
            nullable=False,
        ),
        sa.Column(
            "form_access_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("form_access.id"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("feedback_questions.id"),
            nullable=False,
        ),
        sa.Column("response_value", postgresql.JSON(), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        _is_deleted(),
    )
    op.create_index("ix_student_responses_form_id", "student_responses", ["form_id"])


def downgrade() -> None:
    """Drop feedback form and academic tables."""
    op.drop_table("student_responses")
    op.drop_table("override_students")
    op.drop_table("feedback_form_overrides")
    op.drop_table("form_access")
    op.drop_table("feedback_questions")
    op.drop_table("feedback_forms")
    op.drop_table("students")
    op.drop_table("subject_allocations")
    op.drop_table("divisions")
    op.drop_table("semesters")

    postgresql.ENUM(name="recipient_kind").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="form_status").drop(op.get_bind(), checkfirst=True)
