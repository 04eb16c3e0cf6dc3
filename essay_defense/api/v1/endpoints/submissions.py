# essay_defense/api/v1/endpoints/submissions.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from essay_defense.core.exceptions import EssayTooLongError, ValidationError
from essay_defense.db.session import get_db
from essay_defense.schemas.submission import (
    SubmissionCreate,
    SubmissionCreated,
    SubmissionPublic,
    VoiceSession,
)
from essay_defense.services import submission_service

router = APIRouter(prefix="/submissions", tags=["submissions"])


def _get_or_404(db: Session, session_id: str):
    sub = submission_service.get_submission(db, session_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Submission not found")
    return sub


@router.post("/", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
def create_submission(
    obj_in: SubmissionCreate,
    db: Session = Depends(get_db),
):
    """
    Student submits an essay; questions are drawn and the examiner prompt composed.
    """
    try:
        return submission_service.create_submission(db, obj_in=obj_in)
    except EssayTooLongError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Essay exceeds the maximum length",
                "limit": e.limit,
                "actual": e.actual,
            },
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.get("/{session_id}", response_model=SubmissionPublic)
def get_submission(session_id: str, db: Session = Depends(get_db)):
    return _get_or_404(db, session_id)


@router.get("/{session_id}/voice-session", response_model=VoiceSession)
def get_voice_session(session_id: str, db: Session = Depends(get_db)):
    """
    Everything the voice widget needs to start the defense, including the
    session id passed through as a dynamic variable.
    """
    sub = _get_or_404(db, session_id)
    return submission_service.voice_session_for(sub)


@router.post("/{session_id}/start", response_model=SubmissionPublic)
def start_defense(session_id: str, db: Session = Depends(get_db)):
    _get_or_404(db, session_id)
    return submission_service.mark_defense_started(db, session_id)
