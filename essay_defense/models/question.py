# essay_defense/models/question.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from essay_defense.db.base import Base

CONTENT = "content"
PROCESS = "process"
CATEGORIES = (CONTENT, PROCESS)


class Question(Base):
    """One entry of the defense question bank."""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)

    # 'content' (about the essay's argument) / 'process' (about how it was written)
    category = Column(String(20), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
