"""
Email Service using Resend

Renders feedback form invitations and delivers email payloads. Used by the
queue worker and, when Redis is unreachable, directly by the dispatcher.
"""

import asyncio
import logging
from html import escape
from typing import TypedDict

import resend

from reflectify.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key


class EmailJobPayload(TypedDict):
    """Wire format of a queued email job."""

    to: str
    subject: str
    html: str


class EmailDeliveryError(Exception):
    """Raised when the mail provider did not accept a message."""


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def deliver_email_job(payload: EmailJobPayload) -> None:
    """
    Deliver one queued email payload.

    Raises:
        EmailDeliveryError: If the provider rejected the message, so the
            queue can schedule a retry
    """
    sent = await send_email(
        to_email=payload["to"],
        subject=payload["subject"],
        html_content=payload["html"],
    )
    if not sent:
        raise EmailDeliveryError(f"Mail provider did not accept message to {payload['to']}")


def feedback_form_subject(form_title: str) -> str:
    return f"Feedback Form Invitation: {form_title}"


def render_feedback_form_invitation(
    semester_number: int,
    division_label: str,
    form_title: str,
    access_token: str,
    base_url: str,
) -> str:
    """
    Render the invitation email for one recipient.

    The document is self-contained: inline styles only, no remote images
    or stylesheets. The access link is the only place the token appears.
    """
    safe_division = escape(division_label)
    safe_title = escape(form_title)
    access_url = escape(f"{base_url.rstrip('/')}/feedback/{access_token}", quote=True)

    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .header {{ background-color: #2563eb; color: #ffffff; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
            .content {{ background-color: #f8fafc; padding: 30px; border: 1px solid #e2e8f0; border-radius: 0 0 8px 8px; }}
            .button {{ display: inline-block; background-color: #2563eb; color: #ffffff; padding: 14px 28px; text-decoration: none; border-radius: 6px; margin: 20px 0; font-weight: bold; }}
            .footer {{ text-align: center; margin-top: 20px; font-size: 14px; color: #64748b; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>Feedback Form Invitation</h1>
            </div>
            <div class="content">
                <h2>Semester {int(semester_number)} - Division {safe_division}</h2>

                <p>You are invited to participate in:</p>
                <h3>{safe_title}</h3>

                <p>Your feedback is valuable and will help improve the academic experience. All responses are completely anonymous.</p>

                <a href="{access_url}" class="button">Access Feedback Form</a>

                <p>Or copy and paste this link into your browser:</p>
                <p style="word-break: break-all; color: #3b82f6;">{access_url}</p>

                <p><strong>Note:</strong> This link is uniquely generated for you. Please do not share it with others.</p>
            </div>
            <div class="footer">
                <p>This is an automated message. Please do not reply to this email.</p>
            </div>
        </div>
    </body>
    </html>
    """


def render_test_email(recipient: str, queued_at: str) -> str:
    """Render the body of the admin queue smoke-test email."""
    return f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #2563eb;">Email Queue Test</h2>
        <p>This message confirms that the Reflectify email queue delivered a job to {escape(recipient)}.</p>
        <p style="color: #6c757d; font-size: 14px;">Queued at: {escape(queued_at)}</p>
    </body>
    </html>
    """
