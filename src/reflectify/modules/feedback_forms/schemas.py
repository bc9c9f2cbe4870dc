"""
Feedback Forms Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from reflectify.modules.feedback_forms.dispatcher import DispatchSummary
from reflectify.modules.feedback_forms.models import FormStatus
from reflectify.modules.feedback_forms.recipients import RosterKind

# Upper bound on forms changed by one bulk request
MAX_BULK_FORMS = 100


class FormStatusUpdateRequest(BaseModel):
    """Request body for PATCH /admin/feedback-forms/{id}/status."""

    status: FormStatus
    start_date: datetime | None = None
    end_date: datetime | None = None


class BulkFormStatusUpdateRequest(BaseModel):
    """Request body for PATCH /admin/feedback-forms/status."""

    form_ids: list[UUID] = Field(..., min_length=1, max_length=MAX_BULK_FORMS)
    status: FormStatus
    start_date: datetime | None = None
    end_date: datetime | None = None


class DispatchSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    roster_kind: RosterKind | None
    total_recipients: int
    queued: int
    sent_directly: int
    skipped_submitted: int
    failed: int
    form_expired: bool = False

    @classmethod
    def from_summary(cls, summary: DispatchSummary | None) -> "DispatchSummaryResponse | None":
        return cls.model_validate(summary) if summary is not None else None


class FormStatusResponse(BaseModel):
    """Form state after a status change, with the dispatch outcome if one ran."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    status: FormStatus
    is_expired: bool
    start_date: datetime | None
    end_date: datetime | None
    updated_at: datetime
    dispatch: DispatchSummaryResponse | None = None
    dispatch_error: str | None = None


class BulkFormFailure(BaseModel):
    form_id: UUID
    error: str
    message: str


class BulkFormStatusResponse(BaseModel):
    status: FormStatus
    updated: list[FormStatusResponse]
    failed: list[BulkFormFailure]
    message: str


class FormDeleteResponse(BaseModel):
    id: UUID
    message: str = "Feedback form deleted"


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    text: str
    type: str
    is_required: bool
    display_order: int
    batch: str
    category_id: UUID | None
    faculty_id: UUID | None
    subject_id: UUID | None


class FormAccessResponse(BaseModel):
    """Form content released to a recipient holding a valid token."""

    id: UUID
    title: str
    status: FormStatus
    division_id: UUID
    subject_allocation_id: UUID
    start_date: datetime | None
    end_date: datetime | None
    questions: list[QuestionResponse]
