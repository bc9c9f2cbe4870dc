"""
Feedback Forms Public Router

Token-based access to a feedback form. Public: the token in the invitation
link is the only credential.

Endpoints:
- GET /feedback-forms/access/{token} - Resolve a token to form content
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.core.database import get_db
from reflectify.modules.feedback_forms.access import AccessRejection, resolve_access_token
from reflectify.modules.feedback_forms.schemas import FormAccessResponse, QuestionResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ACCESS_TOKEN_PATTERN = r"^[A-Za-z0-9_-]{16,128}$"


@router.get(
    "/access/{token}",
    response_model=FormAccessResponse,
    summary="Access Feedback Form",
    description="""
Resolve the access token from an invitation link to the form and its questions.

Checks, in order: token exists, form exists, token within its 7-day
validity window, form not expired, form active, submission period not
ended, not already submitted. The first failing check is reported.
""",
    responses={
        200: {"description": "Form content", "model": FormAccessResponse},
        400: {"description": "Malformed token"},
        403: {
            "description": "Form expired, inactive, closed for submission, or already submitted",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "FORM_EXPIRED",
                            "message": "This form has expired. Forms are valid for 7 days only.",
                        }
                    }
                }
            },
        },
        404: {"description": "Invalid token or form not found"},
    },
)
async def access_form(
    token: str = Path(..., pattern=ACCESS_TOKEN_PATTERN),
    db: AsyncSession = Depends(get_db),
) -> FormAccessResponse:
    result = await resolve_access_token(db, token)

    if isinstance(result, AccessRejection):
        logger.info(f"Form access rejected: {result.kind.value}")
        raise HTTPException(
            status_code=result.kind.status_code,
            detail={"error": result.kind.value, "message": result.message},
        )

    form = result.form
    return FormAccessResponse(
        id=form.id,
        title=form.title,
        status=form.status,
        division_id=form.division_id,
        subject_allocation_id=form.subject_allocation_id,
        start_date=form.start_date,
        end_date=form.end_date,
        questions=[QuestionResponse.model_validate(q) for q in result.questions],
    )
