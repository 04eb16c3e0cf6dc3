# essay_defense/schemas/score.py
from decimal import Decimal

from pydantic import BaseModel, Field


class GradeResult(BaseModel):
    """Structured outcome of parsing the AI scorer's free text."""
    multiplier: Decimal
    integrity_flag: bool
    comments: str
    element_scores: list[float] = Field(default_factory=list)
    parse_failed: bool = False


class GradedSubmission(BaseModel):
    session_id: str
    status: str
    grade: Decimal
    integrity_flag: bool
    grade_comments: str


class BatchGradingReport(BaseModel):
    graded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)


class RecoveryReport(BaseModel):
    scanned: int = 0
    applied: list[str] = Field(default_factory=list)
    duplicate: list[str] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    in_progress: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class JobEnqueued(BaseModel):
    job_id: str
