# essay_defense/services/grading_service.py
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.orm import Session

from essay_defense.core.config import settings
from essay_defense.core.exceptions import ExternalServiceError, GradingError
from essay_defense.models.submission import (
    Submission,
    SubmissionStatus,
    can_transition,
    statuses_leading_to,
    utcnow,
)
from essay_defense.schemas.score import BatchGradingReport
from essay_defense.services.grade_parser import parse_grading_response
from essay_defense.services.prompt_composer import resolve_template
from essay_defense.services.submission_service import get_submission_or_raise

logger = logging.getLogger(__name__)


class Scorer(Protocol):
    def grade(self, essay_text: str, transcript: str, rubric: str) -> str: ...


def grade_submission(
    db: Session,
    session_id: str,
    scorer: Scorer,
) -> Submission:
    """
    Grade one defense.

    - requires a non-empty transcript and status 'DefenseComplete'
    - calls the AI scorer and parses its text
    - status: 'DefenseComplete' -> 'Graded' in one conditional write

    A scorer failure propagates and leaves the record untouched.
    """
    submission = get_submission_or_raise(db, session_id)

    if not submission.transcript or not submission.transcript.strip():
        raise GradingError(f"submission {session_id} has no transcript")
    if not can_transition(submission.status, SubmissionStatus.GRADED):
        raise GradingError(
            f"submission {session_id} is {submission.status}, only "
            f"{SubmissionStatus.DEFENSE_COMPLETE.value} can be graded"
        )

    rubric, _ = resolve_template(db, settings.RUBRIC_TEMPLATE_NAME)
    text = scorer.grade(submission.essay_text, submission.transcript, rubric)
    result = parse_grading_response(text)

    outcome = db.execute(
        update(Submission)
        .where(
            Submission.session_id == session_id,
            Submission.status.in_(statuses_leading_to(SubmissionStatus.GRADED)),
        )
        .values(
            status=SubmissionStatus.GRADED.value,
            grade=result.multiplier,
            grade_comments=result.comments,
            integrity_flag=result.integrity_flag,
            graded_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(submission)

    if outcome.rowcount == 0:
        raise GradingError(
            f"submission {session_id} changed to {submission.status} while grading"
        )

    logger.info(
        f"Graded submission {session_id}: multiplier={result.multiplier}, "
        f"integrity_flag={result.integrity_flag}, parse_failed={result.parse_failed}"
    )
    return submission


def grade_all_eligible(db: Session, scorer: Scorer) -> BatchGradingReport:
    """Grade every 'DefenseComplete' submission. Excluded ones are reported as skipped."""
    report = BatchGradingReport()

    eligible = [
        row.session_id
        for row in db.query(Submission.session_id)
        .filter(Submission.status == SubmissionStatus.DEFENSE_COMPLETE.value)
        .order_by(Submission.created_at.asc())
        .all()
    ]
    report.skipped = [
        row.session_id
        for row in db.query(Submission.session_id)
        .filter(Submission.status == SubmissionStatus.EXCLUDED.value)
        .all()
    ]

    for session_id in eligible:
        try:
            grade_submission(db, session_id, scorer)
            report.graded.append(session_id)
        except (GradingError, ExternalServiceError) as e:
            logger.error(f"Grading failed for submission {session_id}: {e}")
            report.failed[session_id] = str(e)

    logger.info(
        f"Batch grading finished: {len(report.graded)} graded, "
        f"{len(report.failed)} failed, {len(report.skipped)} excluded"
    )
    return report
