# essay_defense/services/submission_service.py
import logging
import random
import uuid
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from essay_defense.core.config import settings
from essay_defense.core.exceptions import (
    EssayTooLongError,
    InvalidTransitionError,
    MissingFieldError,
    SubmissionNotFoundError,
)
from essay_defense.models.submission import (
    Submission,
    SubmissionStatus,
    can_transition,
    statuses_leading_to,
    utcnow,
)
from essay_defense.schemas.submission import (
    ReviewUpdate,
    SubmissionCreate,
    SubmissionCreated,
    VoiceSession,
)
from essay_defense.services.prompt_composer import (
    compose_prompt,
    render_first_message,
    resolve_template,
)
from essay_defense.services.question_selector import load_question_bank, select_questions

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


def validate_submission(obj_in: SubmissionCreate, max_chars: int | None = None) -> None:
    limit = settings.MAX_ESSAY_CHARS if max_chars is None else max_chars
    if not obj_in.student_name or not obj_in.student_name.strip():
        raise MissingFieldError("student_name")
    if not obj_in.essay_text or not obj_in.essay_text.strip():
        raise MissingFieldError("essay_text")
    if len(obj_in.essay_text) > limit:
        raise EssayTooLongError(limit=limit, actual=len(obj_in.essay_text))


def create_submission(
    db: Session,
    *,
    obj_in: SubmissionCreate,
    rng: random.Random | None = None,
) -> SubmissionCreated:
    """
    Submission intake.

    - validates the essay length
    - draws the defense questions once (frozen on the record)
    - renders the examiner prompt and first message
    - status starts at 'Submitted'
    """
    validate_submission(obj_in)
    student_name = " ".join(obj_in.student_name.split())

    selected = select_questions(
        load_question_bank(db),
        settings.CONTENT_QUESTION_COUNT,
        settings.PROCESS_QUESTION_COUNT,
        rng=rng,
    )
    personality, _ = resolve_template(db, settings.PERSONALITY_TEMPLATE_NAME)
    flow, _ = resolve_template(db, settings.FLOW_TEMPLATE_NAME)
    first_message_template, _ = resolve_template(db, settings.FIRST_MESSAGE_TEMPLATE_NAME)

    prompt = compose_prompt(student_name, obj_in.essay_text, selected, personality, flow)
    first_message = render_first_message(first_message_template, student_name)

    submission = Submission(
        session_id=new_session_id(),
        student_name=student_name,
        essay_text=obj_in.essay_text,
        selected_questions=selected.model_dump(),
        system_prompt=prompt,
        first_message=first_message,
        status=SubmissionStatus.SUBMITTED.value,
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)

    logger.info(
        f"Created submission {submission.session_id} for {student_name} "
        f"({len(selected.content)} content / {len(selected.process)} process questions)"
    )
    return SubmissionCreated(
        session_id=submission.session_id,
        selected_questions=selected,
        composed_prompt=prompt,
        first_utterance=first_message,
    )


def get_submission(db: Session, session_id: str) -> Optional[Submission]:
    return db.query(Submission).filter(Submission.session_id == session_id).first()


def get_submission_or_raise(db: Session, session_id: str) -> Submission:
    submission = get_submission(db, session_id)
    if submission is None:
        raise SubmissionNotFoundError(session_id)
    return submission


def list_submissions(
    db: Session,
    *,
    status: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Submission]:
    query = db.query(Submission)
    if status:
        query = query.filter(Submission.status == status)
    return (
        query.order_by(Submission.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def voice_session_for(submission: Submission) -> VoiceSession:
    """Session bootstrap for the voice widget; session_id travels as a dynamic variable."""
    return VoiceSession(
        agent_id=settings.VOICE_AGENT_ID,
        system_prompt=submission.system_prompt,
        first_message=submission.first_message,
        dynamic_variables={
            "session_id": submission.session_id,
            "student_name": submission.student_name,
        },
    )


def mark_defense_started(db: Session, session_id: str) -> Submission:
    """Submitted -> DefenseStarted. Repeating the call, or calling it later, changes nothing."""
    submission = get_submission_or_raise(db, session_id)
    result = db.execute(
        update(Submission)
        .where(
            Submission.session_id == session_id,
            Submission.status == SubmissionStatus.SUBMITTED.value,
        )
        .values(
            status=SubmissionStatus.DEFENSE_STARTED.value,
            defense_started_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(submission)
    if result.rowcount:
        logger.info(f"Defense started for submission {session_id}")
    return submission


def review_submission(db: Session, session_id: str, review_in: ReviewUpdate) -> Submission:
    """Instructor sign-off: Graded -> Reviewed with the final essay grade and notes."""
    submission = get_submission_or_raise(db, session_id)
    if not can_transition(submission.status, SubmissionStatus.REVIEWED):
        raise InvalidTransitionError(submission.status, SubmissionStatus.REVIEWED.value)

    result = db.execute(
        update(Submission)
        .where(
            Submission.session_id == session_id,
            Submission.status.in_(statuses_leading_to(SubmissionStatus.REVIEWED)),
        )
        .values(
            status=SubmissionStatus.REVIEWED.value,
            final_grade=review_in.final_grade,
            instructor_notes=review_in.instructor_notes,
            reviewed_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(submission)
    if result.rowcount == 0:
        raise InvalidTransitionError(submission.status, SubmissionStatus.REVIEWED.value)
    return submission
