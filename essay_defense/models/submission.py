# essay_defense/models/submission.py
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
)

from essay_defense.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "Submitted"
    DEFENSE_STARTED = "DefenseStarted"
    DEFENSE_COMPLETE = "DefenseComplete"
    EXCLUDED = "Excluded"
    GRADED = "Graded"
    REVIEWED = "Reviewed"


# Statuses a transcript may still be attached to
PRE_COMPLETION_STATUSES = (
    SubmissionStatus.SUBMITTED.value,
    SubmissionStatus.DEFENSE_STARTED.value,
)

ALLOWED_TRANSITIONS = {
    SubmissionStatus.SUBMITTED: {
        SubmissionStatus.DEFENSE_STARTED,
        SubmissionStatus.DEFENSE_COMPLETE,
        SubmissionStatus.EXCLUDED,
    },
    SubmissionStatus.DEFENSE_STARTED: {
        SubmissionStatus.DEFENSE_COMPLETE,
        SubmissionStatus.EXCLUDED,
    },
    SubmissionStatus.DEFENSE_COMPLETE: {
        SubmissionStatus.GRADED,
        SubmissionStatus.EXCLUDED,
    },
    # manual operator override back into the grading queue
    SubmissionStatus.EXCLUDED: {SubmissionStatus.DEFENSE_COMPLETE},
    SubmissionStatus.GRADED: {SubmissionStatus.REVIEWED},
    # instructor may revise the final grade
    SubmissionStatus.REVIEWED: {SubmissionStatus.REVIEWED},
}

MANUAL_TOGGLE = {
    SubmissionStatus.EXCLUDED: SubmissionStatus.DEFENSE_COMPLETE,
    SubmissionStatus.DEFENSE_COMPLETE: SubmissionStatus.EXCLUDED,
}


def can_transition(current: str, target: str) -> bool:
    return SubmissionStatus(target) in ALLOWED_TRANSITIONS[SubmissionStatus(current)]


def statuses_leading_to(target: SubmissionStatus) -> list[str]:
    """Status values a compare-and-set write into `target` may start from."""
    return [s.value for s, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    # correlation token echoed back by the voice provider
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    student_name = Column(String(200), nullable=False, index=True)  # not unique

    essay_text = Column(Text, nullable=False)
    # {"content": [...], "process": [...]}, frozen at creation
    selected_questions = Column(JSON, nullable=False)
    system_prompt = Column(Text, nullable=False)
    first_message = Column(Text, nullable=False)

    status = Column(
        String(20),
        nullable=False,
        default=SubmissionStatus.SUBMITTED.value,
        index=True,
    )

    # defense outcome
    transcript = Column(Text, nullable=True)
    conversation_id = Column(String(128), unique=True, nullable=True, index=True)
    call_duration_seconds = Column(Integer, nullable=True)

    # AI grading
    grade = Column(Numeric(3, 2), nullable=True)
    grade_comments = Column(Text, nullable=True)
    integrity_flag = Column(Boolean, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)

    # instructor review
    instructor_notes = Column(Text, nullable=True)
    final_grade = Column(Numeric(5, 2), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    defense_started_at = Column(DateTime(timezone=True), nullable=True)
    defense_ended_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
