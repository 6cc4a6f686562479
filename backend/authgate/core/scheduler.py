"""
Background scheduler for deferred account maintenance.

After an email is verified its token is kept for a short grace period so
duplicate confirmation requests that are already in flight still succeed,
then a one-off job clears it. Jobs are keyed by user id and live only in
this process: if the process stops first the job is dropped, and the
token's expiry is what keeps it from being reused.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from authgate.core.config import settings
from authgate.core import database
from authgate.services.credential_store import credential_store
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone="UTC")


def verification_clear_job_id(user_id: int) -> str:
    return f"clear-verification:{user_id}"


def clear_verification_token_job(user_id: int, token: Optional[str] = None):
    """Clear a user's verification token and expiry."""
    db = database.SessionLocal()
    try:
        cleared = credential_store.clear_verification_token(db, user_id, token)
        if cleared:
            logger.info(f"Verification token cleared for user {user_id}")
        else:
            logger.info(f"No verification token left to clear for user {user_id}")
    except Exception as e:
        logger.error(f"Error clearing verification token for user {user_id}: {str(e)}")
        db.rollback()
    finally:
        db.close()


def schedule_verification_clear(user_id: int, token: Optional[str] = None, delay_seconds: Optional[int] = None):
    """
    Schedule the deferred clear for ``user_id``.

    Rescheduling for the same user replaces the pending job rather than
    adding a second one.
    """
    if delay_seconds is None:
        delay_seconds = settings.VERIFICATION_CLEAR_DELAY_SECONDS
    run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
    return scheduler.add_job(
        clear_verification_token_job,
        trigger=DateTrigger(run_date=run_date),
        args=[user_id, token],
        id=verification_clear_job_id(user_id),
        name=f"Clear verification token for user {user_id}",
        replace_existing=True,
        misfire_grace_time=None,
    )


def cancel_verification_clear(user_id: int) -> bool:
    """Cancel a pending clear; returns False when none was scheduled."""
    try:
        scheduler.remove_job(verification_clear_job_id(user_id))
    except JobLookupError:
        return False
    return True


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.start()
        logger.info("Background scheduler started.")


def stop_scheduler():
    """
    Stop the background scheduler without waiting; pending clears are dropped.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped.")
