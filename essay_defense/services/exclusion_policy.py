# essay_defense/services/exclusion_policy.py
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from essay_defense.core.config import settings
from essay_defense.core.exceptions import InvalidTransitionError, SubmissionNotFoundError
from essay_defense.models.submission import MANUAL_TOGGLE, Submission, SubmissionStatus

logger = logging.getLogger(__name__)


def resolve_completion_status(
    call_duration_seconds: int | None,
    min_call_length: int | None = None,
) -> SubmissionStatus:
    """
    Status a submission lands in once its transcript is attached.

    Calls shorter than the threshold are excluded from grading. An unknown
    duration is not grounds for exclusion.
    """
    threshold = settings.MIN_CALL_LENGTH_SECONDS if min_call_length is None else min_call_length
    if call_duration_seconds is not None and call_duration_seconds < threshold:
        return SubmissionStatus.EXCLUDED
    return SubmissionStatus.DEFENSE_COMPLETE


def override_status(db: Session, session_id: str, target: SubmissionStatus) -> Submission:
    """
    Operator toggle between Excluded and DefenseComplete.

    Implemented as a compare-and-set on the current status so a concurrent
    grading run cannot be overwritten.
    """
    submission = db.query(Submission).filter(Submission.session_id == session_id).first()
    if submission is None:
        raise SubmissionNotFoundError(session_id)

    current = SubmissionStatus(submission.status)
    if current == target:
        return submission
    if MANUAL_TOGGLE.get(current) != target:
        raise InvalidTransitionError(current.value, target.value)

    result = db.execute(
        update(Submission)
        .where(
            Submission.session_id == session_id,
            Submission.status == current.value,
        )
        .values(status=target.value)
    )
    db.commit()
    if result.rowcount == 0:
        db.refresh(submission)
        raise InvalidTransitionError(submission.status, target.value)

    db.refresh(submission)
    logger.info(f"Operator moved submission {session_id} from {current.value} to {target.value}")
    return submission
