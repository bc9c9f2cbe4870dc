"""
Unit tests for the feedback form lifecycle service.

These tests cover:
- Status changes and their dispatch side effect
- Dispatch failures never undoing a committed status
- Date range validation
- Bulk changes with per-form failure isolation
- Soft deletion
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from reflectify.modules.feedback_forms import repository
from reflectify.modules.feedback_forms.dispatcher import DispatchSummary
from reflectify.modules.feedback_forms.models import FormStatus
from reflectify.modules.feedback_forms.service import (
    FormNotFoundError,
    InvalidDateRangeError,
    InvalidStatusTransitionError,
    bulk_update_form_status,
    soft_delete_form,
    update_form_status,
)

SERVICE = "reflectify.modules.feedback_forms.service"


@pytest.fixture
def mock_repo(draft_form):
    with patch(f"{SERVICE}.repository") as repo:
        repo.InvalidStatusTransitionError = repository.InvalidStatusTransitionError
        repo.get_form = AsyncMock(return_value=draft_form)

        async def write_status(db, form, status, start_date=None, end_date=None):
            form.status = status
            return form

        repo.update_form_status = AsyncMock(side_effect=write_status)
        repo.soft_delete_form = AsyncMock(return_value=True)
        yield repo


@pytest.fixture
def mock_dispatch():
    with patch(f"{SERVICE}.dispatch_form", new_callable=AsyncMock) as dispatch:
        dispatch.side_effect = lambda form_id, queue: DispatchSummary(
            form_id=form_id, total_recipients=3, queued=3
        )
        yield dispatch


class TestUpdateFormStatus:
    """Tests for single-form status changes."""

    @pytest.mark.asyncio
    async def test_activation_dispatches(self, mock_db, mock_repo, mock_dispatch, draft_form):
        queue = MagicMock()

        result = await update_form_status(mock_db, draft_form.id, FormStatus.ACTIVE, queue=queue)

        assert result.form.status == FormStatus.ACTIVE
        assert result.dispatch.queued == 3
        assert result.dispatch_error is None
        mock_dispatch.assert_awaited_once_with(draft_form.id, queue=queue)

    @pytest.mark.asyncio
    async def test_reactivation_dispatches_again(
        self, mock_db, mock_repo, mock_dispatch, draft_form
    ):
        draft_form.status = FormStatus.ACTIVE

        result = await update_form_status(mock_db, draft_form.id, FormStatus.ACTIVE, queue=None)

        assert result.dispatch is not None
        mock_dispatch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closing_does_not_dispatch(self, mock_db, mock_repo, mock_dispatch, draft_form):
        result = await update_form_status(mock_db, draft_form.id, FormStatus.CLOSED, queue=None)

        assert result.form.status == FormStatus.CLOSED
        assert result.dispatch is None
        mock_dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_status(
        self, mock_db, mock_repo, mock_dispatch, draft_form
    ):
        mock_dispatch.side_effect = RuntimeError("database unavailable")

        result = await update_form_status(mock_db, draft_form.id, FormStatus.ACTIVE, queue=None)

        assert result.form.status == FormStatus.ACTIVE
        assert result.dispatch is None
        assert result.dispatch_error == "database unavailable"
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_form_not_found(self, mock_db, mock_repo, mock_dispatch):
        mock_repo.get_form.return_value = None

        with pytest.raises(FormNotFoundError) as exc_info:
            await update_form_status(mock_db, uuid4(), FormStatus.ACTIVE, queue=None)

        assert exc_info.value.status_code == 404
        mock_dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_transition(self, mock_db, mock_repo, mock_dispatch, draft_form):
        mock_repo.update_form_status.side_effect = repository.InvalidStatusTransitionError(
            FormStatus.ACTIVE, FormStatus.DRAFT
        )

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await update_form_status(mock_db, draft_form.id, FormStatus.DRAFT, queue=None)

        assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"
        assert exc_info.value.status_code == 409
        mock_dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(
        self, mock_db, mock_repo, mock_dispatch, draft_form, now
    ):
        with pytest.raises(InvalidDateRangeError):
            await update_form_status(
                mock_db,
                draft_form.id,
                FormStatus.ACTIVE,
                start_date=now,
                end_date=now - timedelta(days=1),
                queue=None,
            )

        mock_repo.update_form_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_end_date_checked_against_stored_start(
        self, mock_db, mock_repo, mock_dispatch, draft_form, now
    ):
        draft_form.start_date = now

        with pytest.raises(InvalidDateRangeError):
            await update_form_status(
                mock_db,
                draft_form.id,
                FormStatus.ACTIVE,
                end_date=now - timedelta(hours=1),
                queue=None,
            )

    @pytest.mark.asyncio
    async def test_naive_dates_are_treated_as_utc(
        self, mock_db, mock_repo, mock_dispatch, draft_form, now
    ):
        naive_start = now.replace(tzinfo=None)

        await update_form_status(
            mock_db, draft_form.id, FormStatus.ACTIVE, start_date=naive_start, queue=None
        )

        kwargs = mock_repo.update_form_status.await_args.kwargs
        assert kwargs["start_date"] == now
        assert kwargs["start_date"].tzinfo is not None


class TestBulkUpdateFormStatus:
    """Tests for bulk status changes."""

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, mock_db, mock_repo, mock_dispatch):
        good_ids = [uuid4(), uuid4()]
        missing_id = uuid4()

        def make_form(form_id):
            form = MagicMock()
            form.id = form_id
            form.status = FormStatus.DRAFT
            form.start_date = None
            form.end_date = None
            return form

        forms = {form_id: make_form(form_id) for form_id in good_ids}
        mock_repo.get_form.side_effect = lambda db, form_id: forms.get(form_id)

        result = await bulk_update_form_status(
            mock_db, [good_ids[0], missing_id, good_ids[1]], FormStatus.ACTIVE, queue=None
        )

        assert [change.form.id for change in result.updated] == good_ids
        assert len(result.failed) == 1
        failed_id, error = result.failed[0]
        assert failed_id == missing_id
        assert error.error_code == "FORM_NOT_FOUND"
        assert mock_dispatch.await_count == 2
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_ids_processed_once(
        self, mock_db, mock_repo, mock_dispatch, draft_form
    ):
        result = await bulk_update_form_status(
            mock_db, [draft_form.id, draft_form.id], FormStatus.CLOSED, queue=None
        )

        assert len(result.updated) == 1
        assert mock_repo.update_form_status.await_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(
        self, mock_db, mock_repo, mock_dispatch, draft_form
    ):
        mock_repo.update_form_status.side_effect = RuntimeError("deadlock")

        result = await bulk_update_form_status(
            mock_db, [draft_form.id], FormStatus.CLOSED, queue=None
        )

        assert result.updated == []
        _, error = result.failed[0]
        assert error.error_code == "STATUS_UPDATE_FAILED"
        assert error.status_code == 500


class TestSoftDeleteForm:
    @pytest.mark.asyncio
    async def test_deletes(self, mock_db, mock_repo):
        form_id = uuid4()

        await soft_delete_form(mock_db, form_id)

        mock_repo.soft_delete_form.assert_awaited_once_with(mock_db, form_id)

    @pytest.mark.asyncio
    async def test_missing_form(self, mock_db, mock_repo):
        mock_repo.soft_delete_form.return_value = False

        with pytest.raises(FormNotFoundError):
            await soft_delete_form(mock_db, uuid4())
