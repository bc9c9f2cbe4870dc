"""
Notification Schemas

Pydantic schemas for email job inspection endpoints.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr

from reflectify.modules.notifications.queue import EmailJob, JobState


class EmailJobResponse(BaseModel):
    """A queued email job. The rendered body is omitted."""

    id: str
    name: str
    to: str | None = None
    subject: str | None = None
    state: JobState
    attempts_made: int
    max_attempts: int
    finished_at: datetime | None = None
    failed_reason: str | None = None

    @classmethod
    def from_job(cls, job: EmailJob) -> "EmailJobResponse":
        return cls(
            id=job.id,
            name=job.name,
            to=job.data.get("to"),
            subject=job.data.get("subject"),
            state=job.state,
            attempts_made=job.attempts_made,
            max_attempts=job.max_attempts,
            finished_at=job.finished_at,
            failed_reason=job.failed_reason,
        )


class EmailJobCountsResponse(BaseModel):
    queue: str
    waiting: int
    active: int
    delayed: int
    failed: int


class EmailJobListResponse(BaseModel):
    items: list[EmailJobResponse]
    count: int


class EmailJobRetryResponse(BaseModel):
    id: str
    state: JobState
    message: str


class SendTestEmailRequest(BaseModel):
    email: EmailStr


class SendTestEmailResponse(BaseModel):
    queued: bool
    job_id: str | None = None
    sent_directly: bool = False
    message: str
