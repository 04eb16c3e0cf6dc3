# essay_defense/models/unmatched_transcript.py
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from essay_defense.db.base import Base


class UnmatchedTranscript(Base):
    """Raw webhook payloads no submission could be found for, kept for manual reconciliation."""
    __tablename__ = "unmatched_transcripts"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(128), nullable=True, index=True)
    claimed_session_id = Column(String(64), nullable=True)
    payload = Column(JSON, nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)

    received_at = Column(DateTime(timezone=True), server_default=func.now())
