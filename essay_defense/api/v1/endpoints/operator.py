# essay_defense/api/v1/endpoints/operator.py
from typing import List, Union

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from essay_defense.api.deps import get_grading_client, get_voice_client
from essay_defense.core.exceptions import (
    ExternalServiceError,
    GradingError,
    InvalidTransitionError,
    SubmissionNotFoundError,
)
from essay_defense.core.security import require_operator
from essay_defense.db.session import get_db
from essay_defense.models.unmatched_transcript import UnmatchedTranscript
from essay_defense.schemas.score import (
    BatchGradingReport,
    GradedSubmission,
    JobEnqueued,
    RecoveryReport,
)
from essay_defense.schemas.submission import ReviewUpdate, StatusOverride, SubmissionDetail
from essay_defense.schemas.webhook import UnmatchedTranscriptPublic
from essay_defense.services import exclusion_policy, grading_service, submission_service
from essay_defense.services.grading_client import GradingClient
from essay_defense.services.recovery_service import recover_stuck_submissions
from essay_defense.services.voice_client import VoiceClient
from essay_defense.workers.queue import (
    enqueue_grade_all_task,
    enqueue_grading_task,
    enqueue_recovery_sweep,
)

router = APIRouter(
    prefix="/operator",
    tags=["operator"],
    dependencies=[Depends(require_operator)],
)


@router.get("/submissions", response_model=List[SubmissionDetail])
def list_submissions(
    db: Session = Depends(get_db),
    status_filter: str | None = None,
    skip: int = 0,
    limit: int = 100,
):
    return submission_service.list_submissions(db, status=status_filter, skip=skip, limit=limit)


@router.get("/submissions/{session_id}", response_model=SubmissionDetail)
def get_submission(session_id: str, db: Session = Depends(get_db)):
    sub = submission_service.get_submission(db, session_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Submission not found")
    return sub


@router.post("/submissions/{session_id}/status", response_model=SubmissionDetail)
def override_status(
    session_id: str,
    body: StatusOverride,
    db: Session = Depends(get_db),
):
    """
    Manual toggle between 'Excluded' and 'DefenseComplete'.
    """
    try:
        return exclusion_policy.override_status(db, session_id, body.status)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/submissions/{session_id}/review", response_model=SubmissionDetail)
def review_submission(
    session_id: str,
    review_in: ReviewUpdate,
    db: Session = Depends(get_db),
):
    """
    Instructor sign-off:
      - writes final_grade / instructor_notes
      - status -> 'Reviewed'
    """
    try:
        return submission_service.review_submission(db, session_id, review_in)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post(
    "/submissions/{session_id}/grade",
    response_model=Union[GradedSubmission, JobEnqueued],
)
def grade_submission(
    session_id: str,
    background: bool = False,
    db: Session = Depends(get_db),
    scorer: GradingClient = Depends(get_grading_client),
):
    if background:
        return JobEnqueued(job_id=enqueue_grading_task(session_id))
    try:
        sub = grading_service.grade_submission(db, session_id, scorer)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except GradingError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ExternalServiceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return GradedSubmission(
        session_id=sub.session_id,
        status=sub.status,
        grade=sub.grade,
        integrity_flag=bool(sub.integrity_flag),
        grade_comments=sub.grade_comments or "",
    )


@router.post("/grade-all", response_model=Union[BatchGradingReport, JobEnqueued])
def grade_all(
    background: bool = False,
    db: Session = Depends(get_db),
    scorer: GradingClient = Depends(get_grading_client),
):
    if background:
        return JobEnqueued(job_id=enqueue_grade_all_task())
    return grading_service.grade_all_eligible(db, scorer)


@router.post("/recover", response_model=Union[RecoveryReport, JobEnqueued])
def recover(
    background: bool = False,
    db: Session = Depends(get_db),
    source: VoiceClient = Depends(get_voice_client),
):
    if background:
        # one-off run, the worker already keeps the periodic chain going
        return JobEnqueued(job_id=enqueue_recovery_sweep(reschedule=False))
    return recover_stuck_submissions(db, source)


@router.get("/unmatched", response_model=List[UnmatchedTranscriptPublic])
def list_unmatched(
    db: Session = Depends(get_db),
    include_resolved: bool = False,
    skip: int = 0,
    limit: int = 100,
):
    query = db.query(UnmatchedTranscript)
    if not include_resolved:
        query = query.filter(UnmatchedTranscript.resolved.is_(False))
    return (
        query.order_by(UnmatchedTranscript.received_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.post("/unmatched/{unmatched_id}/resolve", response_model=UnmatchedTranscriptPublic)
def resolve_unmatched(unmatched_id: int, db: Session = Depends(get_db)):
    row = db.get(UnmatchedTranscript, unmatched_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Unmatched transcript not found")
    row.resolved = True
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
