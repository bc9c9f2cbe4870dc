"""
Feedback Forms Background Jobs

Expiry sweep: marks forms older than the access validity window as
expired, whether or not anyone has presented a token for them. The
access gateway performs the same check reactively on each access.

Design Principles:
- Idempotent: already-expired forms are never selected again
- Handles its own database session
- One bulk UPDATE per run

Schedule:
- Every FORM_EXPIRY_SWEEP_INTERVAL_HOURS (default 24) and once at startup
- Can be triggered manually via /debug/jobs/{job_id}/trigger
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reflectify.core.config import settings
from reflectify.core.database import async_session_maker
from reflectify.core.scheduler import register_job
from reflectify.modules.feedback_forms import repository

logger = logging.getLogger(__name__)

JOB_ID_EXPIRE_FORMS = "feedback_forms_expire_old_forms"


async def expire_old_forms(
    session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Mark forms created before the validity window as expired.

    Returns:
        Dict with executed_at, cutoff, expired_count and expired_form_ids
    """
    executed_at = now or datetime.now(UTC)
    cutoff = executed_at - timedelta(days=settings.access_validity_days)

    logger.info(f"Starting form expiry sweep. Cutoff: {cutoff.isoformat()}")

    async with session_factory() as db:
        expired_ids = await repository.expire_forms_created_before(db, cutoff)

    logger.info(f"Form expiry sweep completed. Expired: {len(expired_ids)}")

    return {
        "executed_at": executed_at.isoformat(),
        "cutoff": cutoff.isoformat(),
        "expired_count": len(expired_ids),
        "expired_form_ids": [str(form_id) for form_id in expired_ids],
    }


def register_feedback_form_jobs() -> None:
    """Register the expiry sweep with the scheduler. Call before start_scheduler()."""
    hours = settings.form_expiry_sweep_interval_hours

    register_job(
        job_id=JOB_ID_EXPIRE_FORMS,
        func=expire_old_forms,
        trigger=IntervalTrigger(hours=hours),
        run_at_startup=True,
    )
    logger.info(f"Registered job: {JOB_ID_EXPIRE_FORMS} (interval: {hours} hours)")
