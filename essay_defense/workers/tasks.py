"""
Background tasks for the RQ worker.

grading_task / grade_all_task run the AI grading, recovery_sweep_task pulls
missing transcripts from the voice provider and re-schedules itself.
"""

import logging
from datetime import timedelta

from redis.exceptions import LockNotOwnedError

from essay_defense.core.config import settings
from essay_defense.core.exceptions import ExternalServiceError, GradingError, SubmissionNotFoundError
from essay_defense.db.session import SessionLocal
from essay_defense.services.grading_client import GradingClient
from essay_defense.services.grading_service import grade_all_eligible, grade_submission
from essay_defense.services.recovery_service import recover_stuck_submissions
from essay_defense.services.voice_client import VoiceClient

logger = logging.getLogger(__name__)

RECOVERY_LOCK_NAME = "essay-defense:recovery-sweep"


def grading_task(session_id: str) -> dict:
    """
    Grade a single submission.

    Returns a summary dict; failures are reported in it, the submission keeps
    its previous status.
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting grading task for submission {session_id}")
        with GradingClient() as scorer:
            submission = grade_submission(db, session_id, scorer)

        return {
            "status": "success",
            "session_id": submission.session_id,
            "grade": float(submission.grade) if submission.grade is not None else None,
            "integrity_flag": submission.integrity_flag,
            "message": f"Successfully graded submission {session_id}",
        }

    except (GradingError, ExternalServiceError, SubmissionNotFoundError) as e:
        logger.error(f"Grading failed for submission {session_id}: {e}")
        return {
            "status": "error",
            "session_id": session_id,
            "error": str(e),
            "message": f"Grading failed for submission {session_id}",
        }

    finally:
        db.close()


def grade_all_task() -> dict:
    db = SessionLocal()
    try:
        with GradingClient() as scorer:
            report = grade_all_eligible(db, scorer)
        return {"status": "success", **report.model_dump()}
    finally:
        db.close()


def recovery_sweep_task(reschedule: bool = True) -> dict:
    """
    Run one recovery sweep under a non-blocking Redis lock.

    A sweep already in progress makes this run a no-op. With `reschedule`,
    the next sweep is queued RECOVERY_INTERVAL_MINUTES from now.
    """
    from essay_defense.workers.queue import enqueue_recovery_sweep, get_redis_connection

    interval = timedelta(minutes=settings.RECOVERY_INTERVAL_MINUTES)
    lock = get_redis_connection().lock(
        RECOVERY_LOCK_NAME,
        timeout=int(interval.total_seconds()),
    )
    if not lock.acquire(blocking=False):
        logger.info("Recovery sweep already running, skipping this run")
        return {"status": "skipped", "message": "another sweep holds the lock"}

    db = SessionLocal()
    try:
        with VoiceClient() as source:
            report = recover_stuck_submissions(db, source)
        return {"status": "success", **report.model_dump()}
    finally:
        db.close()
        if reschedule:
            enqueue_recovery_sweep(delay=interval)
        try:
            lock.release()
        except LockNotOwnedError:
            logger.warning(
                f"Recovery lock expired after {interval} before the sweep finished"
            )
