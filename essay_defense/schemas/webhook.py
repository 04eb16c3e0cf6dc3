# essay_defense/schemas/webhook.py
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TranscriptTurn(BaseModel):
    role: str  # 'agent' / 'user'
    message: str | None = None


class TranscriptEvent(BaseModel):
    """
    Post-call transcript delivery.

    `session_id` is the correlation token embedded at session creation;
    providers that cannot echo it leave it empty.
    """
    transcript: list[TranscriptTurn] = Field(default_factory=list)
    conversation_id: str | None = None
    session_id: str | None = None
    call_duration_seconds: int | None = None

    @field_validator("call_duration_seconds", mode="before")
    @classmethod
    def whole_seconds(cls, value):
        # providers report fractional seconds; truncate like the envelope path
        if isinstance(value, float):
            return int(value)
        return value


class CorrelationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NO_MATCH = "no_match"


class MatchMethod(str, Enum):
    CONVERSATION_ID = "conversation_id"
    SESSION_ID = "session_id"
    STUDENT_NAME = "student_name"
    MOST_RECENT = "most_recent"


class CorrelationResult(BaseModel):
    outcome: CorrelationOutcome
    session_id: str | None = None
    method: MatchMethod | None = None
    status: str | None = None
    unmatched_id: int | None = None


class UnmatchedTranscriptPublic(BaseModel):
    id: int
    conversation_id: str | None = None
    claimed_session_id: str | None = None
    payload: dict
    resolved: bool

    model_config = {"from_attributes": True}
