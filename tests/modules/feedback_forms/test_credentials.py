"""
Unit tests for access credential issuance.

These tests cover:
- Token shape and uniqueness
- Secret-dependence of tokens
- Idempotent issue-or-reuse through the upsert
- The conflict clause preserving token and submission state
"""

import re
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from reflectify.modules.feedback_forms.credentials import generate_access_token, issue_or_reuse
from reflectify.modules.feedback_forms.models import RecipientKind
from reflectify.modules.feedback_forms.repository import build_credential_upsert

SECRET = "test-secret"


class TestGenerateAccessToken:
    """Tests for token derivation."""

    def test_token_is_url_safe_and_unpadded(self):
        token = generate_access_token(uuid4(), uuid4(), "ENR001", SECRET)

        assert len(token) == 43
        assert re.fullmatch(r"[A-Za-z0-9_-]+", token)
        assert "=" not in token

    def test_same_inputs_produce_distinct_tokens(self):
        form_id, recipient_id = uuid4(), uuid4()

        tokens = {generate_access_token(form_id, recipient_id, "ENR001", SECRET) for _ in range(50)}

        assert len(tokens) == 50

    def test_token_does_not_embed_identifiers(self):
        form_id, recipient_id = uuid4(), uuid4()
        token = generate_access_token(form_id, recipient_id, "ENR001", SECRET)

        assert form_id.hex not in token
        assert recipient_id.hex not in token
        assert "ENR001" not in token

    def test_secret_changes_token(self):
        form_id, recipient_id = uuid4(), uuid4()
        with (
            patch("reflectify.modules.feedback_forms.credentials.time.time_ns", return_value=1),
            patch(
                "reflectify.modules.feedback_forms.credentials.secrets.token_hex",
                return_value="00" * 16,
            ),
        ):
            first = generate_access_token(form_id, recipient_id, "ENR001", "secret-a")
            again = generate_access_token(form_id, recipient_id, "ENR001", "secret-a")
            other = generate_access_token(form_id, recipient_id, "ENR001", "secret-b")

        assert first == again
        assert first != other


class TestIssueOrReuse:
    """Tests for persisting credentials."""

    @pytest.mark.asyncio
    async def test_new_credential_gets_generated_token(
        self, mock_db, sample_form, recipients, make_credential
    ):
        recipient = recipients[0]

        async def upsert(db, form_id, recipient_kind, recipient_id, access_token):
            return make_credential(
                sample_form, recipient_id=recipient_id, access_token=access_token
            )

        with patch("reflectify.modules.feedback_forms.credentials.repository") as mock_repo:
            mock_repo.upsert_credential = AsyncMock(side_effect=upsert)

            credential = await issue_or_reuse(mock_db, sample_form.id, recipient, SECRET)

        assert len(credential.access_token) == 43
        call = mock_repo.upsert_credential.await_args
        assert call.kwargs["form_id"] == sample_form.id
        assert call.kwargs["recipient_kind"] == RecipientKind.STUDENT
        assert call.kwargs["recipient_id"] == recipient.id

    @pytest.mark.asyncio
    async def test_existing_credential_is_reused(
        self, mock_db, sample_form, recipients, make_credential
    ):
        existing = make_credential(
            sample_form, recipient_id=recipients[0].id, access_token="existing", is_submitted=True
        )

        with patch("reflectify.modules.feedback_forms.credentials.repository") as mock_repo:
            mock_repo.upsert_credential = AsyncMock(return_value=existing)

            first = await issue_or_reuse(mock_db, sample_form.id, recipients[0], SECRET)
            second = await issue_or_reuse(mock_db, sample_form.id, recipients[0], SECRET)

        assert first.access_token == second.access_token == "existing"
        assert second.is_submitted is True


class TestCredentialUpsertStatement:
    """The conflict clause must never overwrite the token or submission flag."""

    def _set_clause(self) -> str:
        stmt = build_credential_upsert(uuid4(), RecipientKind.OVERRIDE, uuid4(), "candidate")
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT ON CONSTRAINT uq_form_access_recipient DO UPDATE SET" in sql
        return sql.split("DO UPDATE SET", 1)[1].split("RETURNING", 1)[0]

    def test_conflict_revives_soft_deleted_row(self):
        assert "is_deleted" in self._set_clause()

    def test_conflict_keeps_token_and_submission(self):
        set_clause = self._set_clause()

        assert "access_token" not in set_clause
        assert "is_submitted" not in set_clause
