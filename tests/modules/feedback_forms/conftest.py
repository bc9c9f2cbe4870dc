"""
Fixtures for feedback forms tests.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from reflectify.modules.academics.models import Student
from reflectify.modules.feedback_forms.models import (
    FeedbackForm,
    FeedbackQuestion,
    FormAccess,
    FormStatus,
    OverrideStudent,
    RecipientKind,
)
from reflectify.modules.feedback_forms.recipients import Recipient
from reflectify.modules.feedback_forms.repository import FormDispatchContext

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sample_form():
    """An active, unexpired form created a day ago."""
    return FeedbackForm(
        id=uuid4(),
        division_id=uuid4(),
        subject_allocation_id=uuid4(),
        title="Data Structures Feedback",
        status=FormStatus.ACTIVE,
        is_expired=False,
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=5),
        is_deleted=False,
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )


@pytest.fixture
def draft_form(sample_form):
    sample_form.status = FormStatus.DRAFT
    sample_form.start_date = None
    sample_form.end_date = None
    return sample_form


@pytest.fixture
def make_credential():
    """Factory for a credential on a form."""

    def _make(form, **overrides):
        values = {
            "id": uuid4(),
            "form_id": form.id,
            "recipient_kind": RecipientKind.STUDENT,
            "recipient_id": uuid4(),
            "access_token": "tok_" + uuid4().hex,
            "is_submitted": False,
            "is_deleted": False,
            "created_at": NOW - timedelta(days=1),
            "updated_at": NOW - timedelta(days=1),
        }
        values.update(overrides)
        return FormAccess(**values)

    return _make


@pytest.fixture
def sample_questions(sample_form):
    return [
        FeedbackQuestion(
            id=uuid4(),
            form_id=sample_form.id,
            batch="None",
            text=text,
            type="rating",
            is_required=True,
            display_order=order,
            is_deleted=False,
        )
        for order, text in enumerate(["Clarity of teaching", "Pace of course"], start=1)
    ]


@pytest.fixture
def division_students(sample_form):
    return [
        Student(
            id=uuid4(),
            name=f"Student {i}",
            email=f"student{i}@example.com",
            enrollment_number=f"ENR00{i}",
            division_id=sample_form.division_id,
            is_deleted=False,
        )
        for i in range(1, 4)
    ]


@pytest.fixture
def override_members():
    override_id = uuid4()
    return [
        OverrideStudent(
            id=uuid4(),
            override_id=override_id,
            name=f"Guest {i}",
            email=f"guest{i}@example.com",
            enrollment_number=f"OVR00{i}",
            batch="-",
            is_deleted=False,
        )
        for i in range(1, 3)
    ]


@pytest.fixture
def recipients(division_students):
    return [
        Recipient(
            id=s.id,
            kind=RecipientKind.STUDENT,
            email=s.email,
            name=s.name,
            enrollment_number=s.enrollment_number,
        )
        for s in division_students
    ]


@pytest.fixture
def dispatch_context(sample_form):
    return FormDispatchContext(form=sample_form, division_name="A", semester_number=3)


@pytest.fixture
def session_factory():
    """Stand-in for async_session_maker yielding mock sessions."""
    sessions = []

    @asynccontextmanager
    async def _factory():
        db = AsyncMock()
        db.add = MagicMock()
        sessions.append(db)
        yield db

    _factory.sessions = sessions
    return _factory
