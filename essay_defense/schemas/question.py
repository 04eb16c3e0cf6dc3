# essay_defense/schemas/question.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class QuestionCreate(BaseModel):
    category: Literal["content", "process"]
    question_text: str


class QuestionPublic(QuestionCreate):
    id: int
    active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PromptTemplateUpdate(BaseModel):
    body: str


class PromptTemplatePublic(BaseModel):
    name: str
    body: str

    model_config = {"from_attributes": True}
