# essay_defense/schemas/submission.py
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from essay_defense.models.submission import SubmissionStatus


class SelectedQuestions(BaseModel):
    content: list[str] = Field(default_factory=list)
    process: list[str] = Field(default_factory=list)


class SubmissionCreate(BaseModel):
    student_name: str
    essay_text: str


class SubmissionCreated(BaseModel):
    """Intake response: everything needed to start the voice defense."""
    session_id: str
    selected_questions: SelectedQuestions
    composed_prompt: str
    first_utterance: str


class VoiceSession(BaseModel):
    agent_id: str | None = None
    system_prompt: str
    first_message: str
    # echoed back by the provider in the post-call webhook
    dynamic_variables: dict[str, str]


class SubmissionPublic(BaseModel):
    session_id: str
    student_name: str
    status: str
    created_at: datetime
    defense_started_at: datetime | None = None
    defense_ended_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionDetail(SubmissionPublic):
    """Operator view, including transcript and grading."""
    essay_text: str
    selected_questions: SelectedQuestions
    transcript: str | None = None
    conversation_id: str | None = None
    call_duration_seconds: int | None = None

    grade: Decimal | None = None
    grade_comments: str | None = None
    integrity_flag: bool | None = None
    graded_at: datetime | None = None

    instructor_notes: str | None = None
    final_grade: Decimal | None = None
    reviewed_at: datetime | None = None


class StatusOverride(BaseModel):
    status: SubmissionStatus


class ReviewUpdate(BaseModel):
    """Instructor sign-off after AI grading."""
    final_grade: Decimal
    instructor_notes: str | None = None
