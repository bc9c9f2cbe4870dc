"""
Feedback Forms Module

Distributes feedback forms to their recipients and gates access to them:
1. Status lifecycle (DRAFT / ACTIVE / CLOSED) with an orthogonal expiry flag
2. Dispatch on activation: one credential and one queued email per recipient
3. Token-based access with ordered validation
4. Background expiry of forms older than the validity window

API Endpoints:
- GET /feedback-forms/access/{token} - Resolve an invitation token (public)
- PATCH /admin/feedback-forms/{id}/status - Change one form's status
- PATCH /admin/feedback-forms/status - Change many forms' status
- DELETE /admin/feedback-forms/{id} - Soft-delete a form

Security Features:
- HMAC-SHA256 access tokens keyed with a server-held secret
- One credential per (form, recipient) via atomic upsert
- Tokens never written to logs

Background Jobs (via APScheduler):
- expire_old_forms: Runs daily and at startup
"""

from .admin_router import router as admin_router
from .jobs import register_feedback_form_jobs
from .router import router

__all__ = ["router", "admin_router", "register_feedback_form_jobs"]
