"""
API tests for the public access endpoint and the admin feedback form endpoints.
"""

import importlib
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from reflectify.core.auth import AdminUser, get_current_admin_user
from reflectify.core.database import get_db
from reflectify.main import app
from reflectify.modules.feedback_forms.access import (
    AccessGranted,
    AccessRejection,
    AccessRejectionKind,
)
from reflectify.modules.feedback_forms.dispatcher import DispatchSummary
from reflectify.modules.feedback_forms.models import FormStatus
from reflectify.modules.feedback_forms.recipients import RosterKind
from reflectify.modules.feedback_forms.service import (
    BulkStatusChangeResult,
    FormNotFoundError,
    InvalidStatusTransitionError,
    StatusChangeResult,
)
from reflectify.modules.notifications.queue import get_email_queue

public_router = importlib.import_module("reflectify.modules.feedback_forms.router")
admin_router = importlib.import_module("reflectify.modules.feedback_forms.admin_router")

TOKEN = "AbCdEfGhIjKlMnOpQrStUvWxYz0123456789_-abcde"
ADMIN = AdminUser(id=uuid4(), email="admin@example.com", role="admin")


@pytest.fixture
def client(mock_db):
    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_admin_user] = lambda: ADMIN
    app.dependency_overrides[get_email_queue] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def allow_rate_limit():
    with patch.object(admin_router, "check_rate_limit", AsyncMock(return_value=True)) as limit:
        yield limit


class TestAccessEndpoint:
    """GET /api/v1/feedback-forms/access/{token}"""

    def test_granted(self, client, sample_form, sample_questions, make_credential):
        granted = AccessGranted(
            form=sample_form, credential=make_credential(sample_form), questions=sample_questions
        )
        with patch.object(public_router, "resolve_access_token", AsyncMock(return_value=granted)):
            response = client.get(f"/api/v1/feedback-forms/access/{TOKEN}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(sample_form.id)
        assert body["status"] == "ACTIVE"
        assert [q["text"] for q in body["questions"]] == [
            "Clarity of teaching",
            "Pace of course",
        ]
        assert "access_token" not in body

    @pytest.mark.parametrize(
        "kind,status_code",
        [
            (AccessRejectionKind.INVALID_TOKEN, 404),
            (AccessRejectionKind.FORM_NOT_FOUND, 404),
            (AccessRejectionKind.FORM_EXPIRED, 403),
            (AccessRejectionKind.FORM_INACTIVE, 403),
            (AccessRejectionKind.SUBMISSION_CLOSED, 403),
            (AccessRejectionKind.ALREADY_SUBMITTED, 403),
        ],
    )
    def test_rejections(self, client, kind, status_code):
        rejection = AccessRejection(kind, "rejected")
        with patch.object(
            public_router, "resolve_access_token", AsyncMock(return_value=rejection)
        ):
            response = client.get(f"/api/v1/feedback-forms/access/{TOKEN}")

        assert response.status_code == status_code
        assert response.json()["detail"]["error"] == kind.value

    def test_malformed_token(self, client):
        with patch.object(public_router, "resolve_access_token", AsyncMock()) as resolve:
            response = client.get("/api/v1/feedback-forms/access/not*a*token")

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"
        resolve.assert_not_awaited()


class TestUpdateStatusEndpoint:
    """PATCH /api/v1/admin/feedback-forms/{id}/status"""

    def test_activation_reports_dispatch(self, client, allow_rate_limit, sample_form):
        summary = DispatchSummary(
            form_id=sample_form.id,
            roster_kind=RosterKind.DIVISION,
            total_recipients=3,
            queued=3,
        )
        change = StatusChangeResult(form=sample_form, dispatch=summary)

        with patch.object(
            admin_router.service, "update_form_status", AsyncMock(return_value=change)
        ) as update:
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{sample_form.id}/status",
                json={"status": "ACTIVE"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ACTIVE"
        assert body["dispatch"]["queued"] == 3
        assert body["dispatch"]["roster_kind"] == "DIVISION"
        assert body["dispatch_error"] is None
        assert update.await_args.args[2] == FormStatus.ACTIVE

    def test_dispatch_error_is_reported_with_status(self, client, allow_rate_limit, sample_form):
        change = StatusChangeResult(form=sample_form, dispatch_error="database unavailable")

        with patch.object(
            admin_router.service, "update_form_status", AsyncMock(return_value=change)
        ):
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{sample_form.id}/status",
                json={"status": "ACTIVE"},
            )

        assert response.status_code == 200
        assert response.json()["dispatch"] is None
        assert response.json()["dispatch_error"] == "database unavailable"

    def test_form_not_found(self, client, allow_rate_limit):
        form_id = uuid4()
        with patch.object(
            admin_router.service,
            "update_form_status",
            AsyncMock(side_effect=FormNotFoundError(form_id)),
        ):
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{form_id}/status", json={"status": "CLOSED"}
            )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "FORM_NOT_FOUND"

    def test_invalid_transition(self, client, allow_rate_limit):
        with patch.object(
            admin_router.service,
            "update_form_status",
            AsyncMock(
                side_effect=InvalidStatusTransitionError(FormStatus.ACTIVE, FormStatus.DRAFT)
            ),
        ):
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{uuid4()}/status", json={"status": "DRAFT"}
            )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "INVALID_STATUS_TRANSITION"

    def test_unknown_status_value(self, client, allow_rate_limit):
        response = client.patch(
            f"/api/v1/admin/feedback-forms/{uuid4()}/status", json={"status": "ARCHIVED"}
        )

        assert response.status_code == 400

    def test_malformed_form_id(self, client, allow_rate_limit):
        response = client.patch(
            "/api/v1/admin/feedback-forms/not-a-uuid/status", json={"status": "ACTIVE"}
        )

        assert response.status_code == 400

    def test_rate_limited(self, client, sample_form):
        with patch.object(admin_router, "check_rate_limit", AsyncMock(return_value=False)):
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{sample_form.id}/status",
                json={"status": "ACTIVE"},
            )

        assert response.status_code == 429
        assert response.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"

    def test_unexpected_error(self, client, allow_rate_limit):
        with patch.object(
            admin_router.service,
            "update_form_status",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = client.patch(
                f"/api/v1/admin/feedback-forms/{uuid4()}/status", json={"status": "ACTIVE"}
            )

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "INTERNAL_ERROR"

    def test_requires_admin(self, mock_db):
        async def override_db():
            yield mock_db

        app.dependency_overrides[get_db] = override_db
        try:
            response = TestClient(app).patch(
                f"/api/v1/admin/feedback-forms/{uuid4()}/status", json={"status": "ACTIVE"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code in (401, 403)


class TestBulkUpdateStatusEndpoint:
    """PATCH /api/v1/admin/feedback-forms/status"""

    def test_partial_success(self, client, allow_rate_limit, sample_form):
        missing_id = uuid4()
        result = BulkStatusChangeResult(
            status=FormStatus.CLOSED,
            updated=[StatusChangeResult(form=sample_form)],
            failed=[(missing_id, FormNotFoundError(missing_id))],
        )

        with patch.object(
            admin_router.service, "bulk_update_form_status", AsyncMock(return_value=result)
        ):
            response = client.patch(
                "/api/v1/admin/feedback-forms/status",
                json={"form_ids": [str(sample_form.id), str(missing_id)], "status": "CLOSED"},
            )

        assert response.status_code == 200
        body = response.json()
        assert [f["id"] for f in body["updated"]] == [str(sample_form.id)]
        assert body["failed"] == [
            {
                "form_id": str(missing_id),
                "error": "FORM_NOT_FOUND",
                "message": f"Feedback form {missing_id} not found",
            }
        ]
        assert body["message"] == "1 of 2 form(s) updated."

    def test_empty_form_ids_rejected(self, client, allow_rate_limit):
        response = client.patch(
            "/api/v1/admin/feedback-forms/status", json={"form_ids": [], "status": "CLOSED"}
        )

        assert response.status_code == 400

    def test_dates_are_passed_through(self, client, allow_rate_limit, sample_form, now):
        result = BulkStatusChangeResult(status=FormStatus.ACTIVE)
        end = now + timedelta(days=3)

        with patch.object(
            admin_router.service, "bulk_update_form_status", AsyncMock(return_value=result)
        ) as bulk:
            client.patch(
                "/api/v1/admin/feedback-forms/status",
                json={
                    "form_ids": [str(sample_form.id)],
                    "status": "ACTIVE",
                    "end_date": end.isoformat(),
                },
            )

        assert bulk.await_args.args[4] == end


class TestDeleteEndpoint:
    """DELETE /api/v1/admin/feedback-forms/{id}"""

    def test_deletes(self, client, allow_rate_limit):
        form_id = uuid4()
        with patch.object(admin_router.service, "soft_delete_form", AsyncMock()) as delete:
            response = client.delete(f"/api/v1/admin/feedback-forms/{form_id}")

        assert response.status_code == 200
        assert response.json()["id"] == str(form_id)
        assert delete.await_args.args[1] == form_id

    def test_missing_form(self, client, allow_rate_limit):
        form_id = uuid4()
        with patch.object(
            admin_router.service,
            "soft_delete_form",
            AsyncMock(side_effect=FormNotFoundError(form_id)),
        ):
            response = client.delete(f"/api/v1/admin/feedback-forms/{form_id}")

        assert response.status_code == 404
