# essay_defense/services/recovery_service.py
"""
Recovery Scanner

Pull path for transcripts whose webhook never arrived. Each submission is
committed on its own, so an interrupted sweep loses nothing, and a re-run
only touches records still awaiting their defense.
"""

import logging
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from essay_defense.core.config import settings
from essay_defense.core.exceptions import CorrelationFailure, ExternalServiceError
from essay_defense.models.submission import PRE_COMPLETION_STATUSES, Submission, utcnow
from essay_defense.schemas.score import RecoveryReport
from essay_defense.services.correlation_service import apply_transcript
from essay_defense.services.voice_client import FetchOutcome, FetchResult

logger = logging.getLogger(__name__)


class ConversationSource(Protocol):
    def fetch_for_session(
        self,
        session_id: str,
        conversation_id: str | None = None,
        since: datetime | None = None,
    ) -> FetchResult: ...


def list_stuck_submissions(
    db: Session,
    *,
    now: datetime | None = None,
    grace: timedelta | None = None,
) -> list[Submission]:
    now = now or utcnow()
    grace = grace if grace is not None else timedelta(minutes=settings.RECOVERY_GRACE_MINUTES)
    cutoff = now - grace
    return (
        db.query(Submission)
        .filter(
            Submission.status.in_(PRE_COMPLETION_STATUSES),
            Submission.created_at <= cutoff,
        )
        .order_by(Submission.created_at.asc())
        .all()
    )


def recover_stuck_submissions(
    db: Session,
    source: ConversationSource,
    *,
    now: datetime | None = None,
    grace: timedelta | None = None,
    min_call_length: int | None = None,
) -> RecoveryReport:
    now = now or utcnow()
    lookback = timedelta(hours=settings.RECOVERY_LOOKBACK_HOURS)
    stuck = [
        (s.session_id, s.conversation_id)
        for s in list_stuck_submissions(db, now=now, grace=grace)
    ]
    report = RecoveryReport(scanned=len(stuck))

    for session_id, conversation_id in stuck:
        try:
            fetched = source.fetch_for_session(
                session_id,
                conversation_id=conversation_id,
                since=now - lookback,
            )
        except ExternalServiceError as e:
            logger.error(f"Recovery fetch failed for submission {session_id}: {e}")
            report.errors[session_id] = str(e)
            continue

        if fetched.outcome == FetchOutcome.NOT_FOUND:
            report.not_found.append(session_id)
            continue
        if fetched.outcome == FetchOutcome.IN_PROGRESS:
            report.in_progress.append(session_id)
            continue

        try:
            applied, status = apply_transcript(
                db,
                session_id,
                fetched.turns,
                conversation_id=fetched.conversation_id,
                call_duration_seconds=fetched.call_duration_seconds,
                min_call_length=min_call_length,
            )
        except CorrelationFailure as e:
            logger.error(f"Recovery could not attach transcript to {session_id}: {e}")
            report.errors[session_id] = str(e)
            continue

        if applied:
            logger.info(f"Recovered transcript for submission {session_id} ({status})")
            report.applied.append(session_id)
        else:
            report.duplicate.append(session_id)

    logger.info(
        f"Recovery sweep: scanned={report.scanned} applied={len(report.applied)} "
        f"not_found={len(report.not_found)} in_progress={len(report.in_progress)} "
        f"errors={len(report.errors)}"
    )
    return report
