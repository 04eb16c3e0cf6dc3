# essay_defense/api/v1/endpoints/webhooks.py
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from essay_defense.core.security import verify_webhook_secret
from essay_defense.db.session import get_db
from essay_defense.schemas.webhook import CorrelationResult
from essay_defense.services.correlation_service import handle_transcript_event
from essay_defense.services.voice_client import event_from_webhook_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/transcript",
    response_model=CorrelationResult,
    dependencies=[Depends(verify_webhook_secret)],
)
def receive_transcript(
    payload: dict = Body(...),
    db: Session = Depends(get_db),
):
    """
    Post-call transcript delivery from the voice provider.

    Outcomes: 'applied', 'duplicate' (already completed, nothing changed) or
    'no_match' (payload stored for manual reconciliation).
    """
    if payload.get("type") not in (None, "post_call_transcription"):
        logger.info(f"Ignoring webhook event type {payload.get('type')}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported event type")

    try:
        event = event_from_webhook_payload(payload)
    except PydanticValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    result = handle_transcript_event(db, event, raw_payload=payload)
    logger.info(
        f"Transcript webhook for conversation {event.conversation_id}: "
        f"{result.outcome.value} ({result.method.value if result.method else '-'})"
    )
    return result
