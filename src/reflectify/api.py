from fastapi import APIRouter

from reflectify.modules.feedback_forms import admin_router as admin_feedback_forms_router
from reflectify.modules.feedback_forms import router as feedback_forms_router
from reflectify.modules.notifications import router as email_jobs_router

api_router = APIRouter()

api_router.include_router(
    feedback_forms_router, prefix="/feedback-forms", tags=["Feedback Forms"]
)

api_router.include_router(
    admin_feedback_forms_router,
    prefix="/admin/feedback-forms",
    tags=["Admin - Feedback Forms"],
)

api_router.include_router(
    email_jobs_router,
    prefix="/admin/email-jobs",
    tags=["Admin - Email Jobs"],
)
