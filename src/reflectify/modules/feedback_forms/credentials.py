"""
Access Credential Issuer

Derives the per-recipient access token embedded in invitation links and
persists it idempotently.

Tokens are an HMAC-SHA256 over the form ID, recipient ID, a secondary
recipient identifier, a nanosecond timestamp and a random nonce, keyed
with the server-held ``TOKEN_SECRET``. The secret never leaves the
server, and the timestamp plus nonce make two tokens for identical
inputs distinct.
"""

import base64
import hashlib
import hmac
import logging
import secrets
import time
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from reflectify.modules.feedback_forms import repository
from reflectify.modules.feedback_forms.models import FormAccess
from reflectify.modules.feedback_forms.recipients import Recipient

logger = logging.getLogger(__name__)


def generate_access_token(
    form_id: UUID,
    recipient_id: UUID,
    secondary_id: str,
    secret: str,
) -> str:
    """
    Generate an unguessable URL-safe access token.

    Args:
        form_id: Form the token grants access to
        recipient_id: Student or override member ID
        secondary_id: Recipient-stable identifier (enrollment number)
        secret: Server-held HMAC key

    Returns:
        43-character unpadded URL-safe base64 string
    """
    base = f"{form_id}:{recipient_id}:{secondary_id}:{time.time_ns()}:{secrets.token_hex(16)}"
    digest = hmac.new(secret.encode(), base.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


async def issue_or_reuse(
    db: AsyncSession,
    form_id: UUID,
    recipient: Recipient,
    secret: str,
) -> FormAccess:
    """
    Return the recipient's credential for a form, creating it if needed.

    Calling this repeatedly for the same (form, recipient) yields the same
    credential and token. A credential already marked submitted stays
    submitted.
    """
    candidate = generate_access_token(
        form_id=form_id,
        recipient_id=recipient.id,
        secondary_id=recipient.enrollment_number,
        secret=secret,
    )
    credential = await repository.upsert_credential(
        db,
        form_id=form_id,
        recipient_kind=recipient.kind,
        recipient_id=recipient.id,
        access_token=candidate,
    )

    if credential.access_token != candidate:
        logger.debug(f"Reusing existing credential for {recipient.email} on form {form_id}")

    return credential
