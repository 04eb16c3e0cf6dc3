# essay_defense/services/correlation_service.py
"""
Correlation Engine

Attaches an inbound transcript to the submission it belongs to. Resolution
order, first hit wins:

  0. conversation id already stored on a submission (re-delivery)
  1. session id echoed back by the voice provider
  2. student self-introduction ("my name is ...") matched against student_name
  3. most recently created submission still awaiting its defense

Writes are a single conditional UPDATE guarded on the pre-completion statuses,
so whichever of webhook delivery and recovery sweep arrives first wins and the
other becomes a no-op.
"""

import logging
import re
from typing import Sequence

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from essay_defense.core.exceptions import CorrelationFailure
from essay_defense.models.submission import (
    PRE_COMPLETION_STATUSES,
    Submission,
    SubmissionStatus,
    utcnow,
)
from essay_defense.models.unmatched_transcript import UnmatchedTranscript
from essay_defense.schemas.webhook import (
    CorrelationOutcome,
    CorrelationResult,
    MatchMethod,
    TranscriptEvent,
    TranscriptTurn,
)
from essay_defense.services.exclusion_policy import resolve_completion_status

logger = logging.getLogger(__name__)

STUDENT_ROLES = {"user", "student"}
EXAMINER_LABEL = "EXAMINER"
STUDENT_LABEL = "STUDENT"

# intro phrase is case-insensitive, the name tokens must be capitalized
_NAME_TOKEN = r"[A-Z][A-Za-z'\-]+"
_INTRO_RE = re.compile(
    r"\b(?i:my\s+name\s+is|i['’]m|i\s+am|this\s+is)\s+"
    r"(" + _NAME_TOKEN + r"(?:\s+" + _NAME_TOKEN + r")?)"
)


def is_student_turn(turn: TranscriptTurn) -> bool:
    return (turn.role or "").strip().lower() in STUDENT_ROLES


def format_transcript(turns: Sequence[TranscriptTurn]) -> str:
    """Readable two-speaker log, one blank-line separated block per turn."""
    blocks = []
    for turn in turns:
        message = (turn.message or "").strip()
        if not message:
            continue
        label = STUDENT_LABEL if is_student_turn(turn) else EXAMINER_LABEL
        blocks.append(f"{label}: {message}")
    return "\n\n".join(blocks)


def extract_student_names(turns: Sequence[TranscriptTurn]) -> list[str]:
    """
    Every self-introduced name in the student's lines, in order of speech.

    "this is English 101" yields a candidate too, so callers try each in turn.
    """
    names: list[str] = []
    for turn in turns:
        if not is_student_turn(turn) or not turn.message:
            continue
        for match in _INTRO_RE.finditer(turn.message):
            if match.group(1) not in names:
                names.append(match.group(1))
    return names


def _awaiting_defense(db: Session):
    return (
        db.query(Submission)
        .filter(Submission.status.in_(PRE_COMPLETION_STATUSES))
        .order_by(Submission.created_at.desc(), Submission.id.desc())
    )


def find_by_student_name(db: Session, name: str) -> Submission | None:
    """
    Most recent awaiting submission whose student_name matches.

    A single extracted token matches on first name only.
    """
    normalized = " ".join(name.split()).lower()
    student_name = func.lower(Submission.student_name)
    if " " in normalized:
        condition = student_name == normalized
    else:
        condition = or_(student_name == normalized, student_name.like(normalized + " %"))
    return _awaiting_defense(db).filter(condition).first()


def resolve_submission(
    db: Session,
    event: TranscriptEvent,
) -> tuple[Submission | None, MatchMethod | None]:
    if event.conversation_id:
        owner = (
            db.query(Submission)
            .filter(Submission.conversation_id == event.conversation_id)
            .first()
        )
        if owner is not None:
            return owner, MatchMethod.CONVERSATION_ID

    if event.session_id:
        submission = (
            db.query(Submission)
            .filter(Submission.session_id == event.session_id)
            .first()
        )
        if submission is not None:
            return submission, MatchMethod.SESSION_ID
        logger.warning(f"Transcript claimed unknown session id {event.session_id}")

    for name in extract_student_names(event.transcript):
        submission = find_by_student_name(db, name)
        if submission is not None:
            return submission, MatchMethod.STUDENT_NAME

    submission = _awaiting_defense(db).first()
    if submission is not None:
        logger.warning(
            f"Transcript {event.conversation_id} matched by recency only "
            f"to submission {submission.session_id}"
        )
        return submission, MatchMethod.MOST_RECENT

    return None, None


def apply_transcript(
    db: Session,
    session_id: str,
    turns: Sequence[TranscriptTurn],
    *,
    conversation_id: str | None = None,
    call_duration_seconds: int | None = None,
    min_call_length: int | None = None,
) -> tuple[bool, str | None]:
    """
    Attach a transcript and close the defense.

    Returns (applied, status). applied is False when the submission had
    already left the pre-completion statuses; nothing is written then.
    Raises CorrelationFailure if the conversation id belongs to another submission.
    """
    target = resolve_completion_status(call_duration_seconds, min_call_length)
    now = utcnow()
    values = {
        "status": target.value,
        "transcript": format_transcript(turns),
        "call_duration_seconds": call_duration_seconds,
        "defense_started_at": func.coalesce(Submission.defense_started_at, now),
        "defense_ended_at": now,
        "updated_at": now,
    }
    if conversation_id:
        values["conversation_id"] = conversation_id

    stmt = (
        update(Submission)
        .where(
            Submission.session_id == session_id,
            Submission.status.in_(PRE_COMPLETION_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise CorrelationFailure(
            f"conversation {conversation_id} is already attached to another submission"
        )
    db.expire_all()

    if result.rowcount == 0:
        current = (
            db.query(Submission.status)
            .filter(Submission.session_id == session_id)
            .scalar()
        )
        logger.info(f"Ignoring transcript for submission {session_id}: already {current}")
        return False, current

    if target == SubmissionStatus.EXCLUDED:
        logger.info(
            f"Submission {session_id} excluded: call lasted {call_duration_seconds}s"
        )
    else:
        logger.info(f"Transcript attached to submission {session_id}")
    return True, target.value


def record_unmatched(
    db: Session,
    event: TranscriptEvent,
    raw_payload: dict | None = None,
) -> UnmatchedTranscript:
    """Keep the delivery as received; the normalized event only when no raw body exists."""
    row = UnmatchedTranscript(
        conversation_id=event.conversation_id,
        claimed_session_id=event.session_id,
        payload=raw_payload if raw_payload is not None else event.model_dump(mode="json"),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# matches that only guessed the owner; a lost race leaves the transcript ownerless
_INFERRED_METHODS = (MatchMethod.STUDENT_NAME, MatchMethod.MOST_RECENT)


def handle_transcript_event(
    db: Session,
    event: TranscriptEvent,
    *,
    raw_payload: dict | None = None,
    min_call_length: int | None = None,
) -> CorrelationResult:
    """Push path: resolve, apply, and keep anything unresolvable for manual follow-up."""
    submission, method = resolve_submission(db, event)

    if submission is None:
        row = record_unmatched(db, event, raw_payload)
        logger.warning(
            f"No submission found for conversation {event.conversation_id} "
            f"(claimed session {event.session_id}); stored as unmatched #{row.id}"
        )
        return CorrelationResult(outcome=CorrelationOutcome.NO_MATCH, unmatched_id=row.id)

    session_id = submission.session_id
    try:
        applied, status = apply_transcript(
            db,
            session_id,
            event.transcript,
            conversation_id=event.conversation_id,
            call_duration_seconds=event.call_duration_seconds,
            min_call_length=min_call_length,
        )
    except CorrelationFailure as e:
        row = record_unmatched(db, event, raw_payload)
        logger.error(f"{e}; stored as unmatched #{row.id}")
        return CorrelationResult(outcome=CorrelationOutcome.NO_MATCH, unmatched_id=row.id)

    if not applied and method in _INFERRED_METHODS:
        row = record_unmatched(db, event, raw_payload)
        logger.warning(
            f"Submission {session_id} ({method.value} match) completed before transcript "
            f"{event.conversation_id} could be attached; stored as unmatched #{row.id}"
        )
        return CorrelationResult(outcome=CorrelationOutcome.NO_MATCH, unmatched_id=row.id)

    return CorrelationResult(
        outcome=CorrelationOutcome.APPLIED if applied else CorrelationOutcome.DUPLICATE,
        session_id=session_id,
        method=method,
        status=status,
    )
