# essay_defense/models/prompt_template.py
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from essay_defense.db.base import Base


class PromptTemplate(Base):
    __tablename__ = "prompt_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    body = Column(Text, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
