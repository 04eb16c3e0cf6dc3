"""
Shared fixtures: in-memory SQLite database, submission factory, fake scorer
and fake voice provider.
"""

import os

# must be set before essay_defense.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["OPERATOR_TOKEN"] = "test-operator-token"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from essay_defense import models  # noqa
from essay_defense.db.base import Base
from essay_defense.models.submission import Submission, SubmissionStatus
from essay_defense.services.voice_client import FetchOutcome, FetchResult

WEBHOOK_SECRET = "test-webhook-secret"
OPERATOR_HEADERS = {"Authorization": "Bearer test-operator-token"}

BASE_TIME = datetime(2026, 10, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_submission(db_session):
    """Insert a submission directly; created_at is spaced by minutes for stable ordering."""
    counter = {"n": 0}

    def _make(
        student_name="Jane Doe",
        status=SubmissionStatus.SUBMITTED,
        session_id=None,
        created_at=None,
        **fields,
    ) -> Submission:
        counter["n"] += 1
        n = counter["n"]
        submission = Submission(
            session_id=session_id or f"session-{n}",
            student_name=student_name,
            essay_text=fields.pop("essay_text", "Essays about rivers and the cities built on them."),
            selected_questions=fields.pop(
                "selected_questions",
                {"content": ["What is your thesis?"], "process": ["How did you revise?"]},
            ),
            system_prompt="prompt",
            first_message="hello",
            status=SubmissionStatus(status).value,
            created_at=created_at or (BASE_TIME + timedelta(minutes=n)),
            **fields,
        )
        db_session.add(submission)
        db_session.commit()
        db_session.refresh(submission)
        return submission

    return _make


class FakeScorer:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def grade(self, essay_text, transcript, rubric):
        self.calls.append((essay_text, transcript, rubric))
        if self.error is not None:
            raise self.error
        return self.text


class FakeVoiceSource:
    """Serves canned FetchResults by session id; unknown sessions are NOT_FOUND."""

    def __init__(self, results=None, errors=None):
        self.results = results or {}
        self.errors = errors or {}
        self.calls = []

    def fetch_for_session(self, session_id, conversation_id=None, since=None):
        self.calls.append(session_id)
        if session_id in self.errors:
            raise self.errors[session_id]
        return self.results.get(
            session_id, FetchResult(outcome=FetchOutcome.NOT_FOUND, session_id=session_id)
        )


@pytest.fixture
def fake_scorer():
    return FakeScorer


@pytest.fixture
def fake_voice_source():
    return FakeVoiceSource
