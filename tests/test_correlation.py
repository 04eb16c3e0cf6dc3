"""
Correlation engine: resolution chain, idempotent apply, unmatched log.
"""

from essay_defense.models.submission import Submission, SubmissionStatus
from essay_defense.models.unmatched_transcript import UnmatchedTranscript
from essay_defense.schemas.webhook import (
    CorrelationOutcome,
    MatchMethod,
    TranscriptEvent,
    TranscriptTurn,
)
from essay_defense.services import correlation_service
from essay_defense.services.correlation_service import (
    apply_transcript,
    extract_student_names,
    format_transcript,
    handle_transcript_event,
)
from tests.conftest import BASE_TIME


def _turns(student_line="I argued that rivers shape cities."):
    return [
        TranscriptTurn(role="agent", message="Hello, please introduce yourself."),
        TranscriptTurn(role="user", message=student_line),
        TranscriptTurn(role="agent", message="Thank you."),
    ]


def _event(**kwargs):
    kwargs.setdefault("transcript", _turns())
    kwargs.setdefault("call_duration_seconds", 300)
    return TranscriptEvent(**kwargs)


class TestFormatTranscript:
    def test_two_speaker_blocks(self):
        text = format_transcript(_turns("Hi."))
        assert text == (
            "EXAMINER: Hello, please introduce yourself.\n\n"
            "STUDENT: Hi.\n\n"
            "EXAMINER: Thank you."
        )

    def test_empty_messages_skipped(self):
        turns = [TranscriptTurn(role="user", message=None), TranscriptTurn(role="agent", message="  ")]
        assert format_transcript(turns) == ""


class TestExtractStudentNames:
    def test_my_name_is_two_tokens(self):
        assert extract_student_names(_turns("Hi, my name is Jane Doe and I wrote it.")) == ["Jane Doe"]

    def test_case_insensitive_phrase(self):
        assert extract_student_names(_turns("MY NAME IS Omar")) == ["Omar"]

    def test_im_and_this_is(self):
        assert extract_student_names(_turns("Hey, I'm Priya Natarajan.")) == ["Priya Natarajan"]
        assert extract_student_names(_turns("this is Leo")) == ["Leo"]

    def test_requires_capitalized_name(self):
        assert extract_student_names(_turns("i am not sure about that")) == []

    def test_examiner_lines_ignored(self):
        turns = [
            TranscriptTurn(role="agent", message="My name is Examiner Bot."),
            TranscriptTurn(role="user", message="Okay."),
        ]
        assert extract_student_names(turns) == []

    def test_every_intro_in_speech_order(self):
        turns = [
            TranscriptTurn(role="user", message="Hi, this is English 101. My name is Jane Doe."),
            TranscriptTurn(role="agent", message="Welcome."),
            TranscriptTurn(role="user", message="I am Canadian, by the way."),
        ]
        assert extract_student_names(turns) == ["English", "Jane Doe", "Canadian"]


class TestResolutionChain:
    def test_session_id_wins_regardless_of_content(self, db_session, make_submission):
        target = make_submission(student_name="Alex Kim")
        make_submission(student_name="Jane Doe")  # newer, and named in the transcript

        result = handle_transcript_event(
            db_session,
            _event(session_id=target.session_id, conversation_id="conv-1",
                   transcript=_turns("My name is Jane Doe")),
        )

        assert result.outcome == CorrelationOutcome.APPLIED
        assert result.method == MatchMethod.SESSION_ID
        assert result.session_id == target.session_id

    def test_name_match_when_no_session_id(self, db_session, make_submission):
        jane = make_submission(student_name="Jane Doe")
        make_submission(student_name="Alex Kim")

        result = handle_transcript_event(
            db_session, _event(conversation_id="conv-2", transcript=_turns("my name is Jane Doe"))
        )

        assert result.method == MatchMethod.STUDENT_NAME
        assert result.session_id == jane.session_id

    def test_name_match_picks_most_recent(self, db_session, make_submission):
        make_submission(student_name="Jane Doe")
        newer = make_submission(student_name="Jane Doe")

        result = handle_transcript_event(
            db_session, _event(conversation_id="conv-3", transcript=_turns("I'm Jane Doe"))
        )
        assert result.session_id == newer.session_id

    def test_name_match_skips_completed(self, db_session, make_submission):
        waiting = make_submission(student_name="Jane Doe")
        make_submission(student_name="Jane Doe", status=SubmissionStatus.GRADED)

        result = handle_transcript_event(
            db_session, _event(conversation_id="conv-4", transcript=_turns("My name is Jane Doe"))
        )
        assert result.session_id == waiting.session_id
        assert result.method == MatchMethod.STUDENT_NAME

    def test_first_name_only(self, db_session, make_submission):
        jane = make_submission(student_name="Jane Doe")
        result = handle_transcript_event(
            db_session, _event(conversation_id="conv-5", transcript=_turns("My name is Jane"))
        )
        assert result.session_id == jane.session_id
        assert result.method == MatchMethod.STUDENT_NAME

    def test_most_recent_fallback(self, db_session, make_submission):
        make_submission(student_name="Alex Kim")
        latest = make_submission(student_name="Sam Lee", status=SubmissionStatus.DEFENSE_STARTED)
        make_submission(student_name="Old Done", status=SubmissionStatus.DEFENSE_COMPLETE)

        result = handle_transcript_event(db_session, _event(conversation_id="conv-6"))
        assert result.method == MatchMethod.MOST_RECENT
        assert result.session_id == latest.session_id

    def test_unknown_session_id_falls_through(self, db_session, make_submission):
        only = make_submission(student_name="Alex Kim")
        result = handle_transcript_event(
            db_session, _event(session_id="does-not-exist", conversation_id="conv-7")
        )
        assert result.session_id == only.session_id
        assert result.method == MatchMethod.MOST_RECENT

    def test_no_match_is_recorded(self, db_session, make_submission):
        make_submission(status=SubmissionStatus.GRADED)

        result = handle_transcript_event(
            db_session, _event(session_id="ghost", conversation_id="conv-8")
        )

        assert result.outcome == CorrelationOutcome.NO_MATCH
        row = db_session.get(UnmatchedTranscript, result.unmatched_id)
        assert row.conversation_id == "conv-8"
        assert row.claimed_session_id == "ghost"
        assert row.payload["transcript"][1]["role"] == "user"

    def test_later_introduction_beats_capitalized_non_name(self, db_session, make_submission):
        jane = make_submission(student_name="Jane Doe")
        make_submission(student_name="Bob Smith")

        result = handle_transcript_event(
            db_session,
            _event(conversation_id="conv-11",
                   transcript=_turns("Hi, this is English 101. My name is Jane Doe.")),
        )

        assert result.method == MatchMethod.STUDENT_NAME
        assert result.session_id == jane.session_id

    def test_raw_payload_kept_for_unmatched(self, db_session):
        raw = {
            "type": "post_call_transcription",
            "data": {"conversation_id": "conv-12", "agent_id": "agent-1", "metadata": {"call_duration_secs": 90}},
        }

        result = handle_transcript_event(
            db_session, _event(conversation_id="conv-12"), raw_payload=raw
        )

        assert result.outcome == CorrelationOutcome.NO_MATCH
        assert db_session.get(UnmatchedTranscript, result.unmatched_id).payload == raw


class TestInferredMatchRace:
    def test_candidate_completed_before_apply_is_stored_unmatched(
        self, db_session, make_submission, monkeypatch
    ):
        target = make_submission(student_name="Sam Lee")
        original_resolve = correlation_service.resolve_submission

        def resolve_then_complete(db, event):
            found = original_resolve(db, event)
            # the recovery sweep lands its own transcript first
            apply_transcript(db, target.session_id, _turns("Recovered."), conversation_id="conv-other")
            return found

        monkeypatch.setattr(correlation_service, "resolve_submission", resolve_then_complete)

        result = handle_transcript_event(db_session, _event(conversation_id="conv-13"))

        assert result.outcome == CorrelationOutcome.NO_MATCH
        row = db_session.get(UnmatchedTranscript, result.unmatched_id)
        assert row.conversation_id == "conv-13"
        db_session.refresh(target)
        assert target.conversation_id == "conv-other"

    def test_session_id_match_still_reports_duplicate(self, db_session, make_submission):
        sub = make_submission(status=SubmissionStatus.DEFENSE_COMPLETE, transcript="EXAMINER: x")

        result = handle_transcript_event(
            db_session, _event(session_id=sub.session_id, conversation_id="conv-14")
        )

        assert result.outcome == CorrelationOutcome.DUPLICATE
        assert db_session.query(UnmatchedTranscript).count() == 0


class TestApplyTranscript:
    def test_updates_fields_and_backfills_start(self, db_session, make_submission):
        sub = make_submission()
        handle_transcript_event(
            db_session, _event(session_id=sub.session_id, conversation_id="conv-9")
        )

        db_session.refresh(sub)
        assert sub.status == SubmissionStatus.DEFENSE_COMPLETE.value
        assert sub.transcript.startswith("EXAMINER: Hello")
        assert sub.conversation_id == "conv-9"
        assert sub.call_duration_seconds == 300
        assert sub.defense_started_at is not None
        assert sub.defense_ended_at is not None

    def test_keeps_existing_start_time(self, db_session, make_submission):
        sub = make_submission(
            status=SubmissionStatus.DEFENSE_STARTED, defense_started_at=BASE_TIME
        )
        apply_transcript(db_session, sub.session_id, _turns(), call_duration_seconds=120)

        db_session.refresh(sub)
        assert sub.defense_started_at.replace(tzinfo=None) == BASE_TIME.replace(tzinfo=None)

    def test_short_call_is_excluded(self, db_session, make_submission):
        sub = make_submission()
        applied, status = apply_transcript(
            db_session, sub.session_id, _turns(), call_duration_seconds=45, min_call_length=60
        )
        assert applied is True
        assert status == SubmissionStatus.EXCLUDED.value

    def test_long_call_is_complete(self, db_session, make_submission):
        sub = make_submission()
        _, status = apply_transcript(
            db_session, sub.session_id, _turns(), call_duration_seconds=75, min_call_length=60
        )
        assert status == SubmissionStatus.DEFENSE_COMPLETE.value

    def test_second_delivery_is_noop(self, db_session, make_submission):
        sub = make_submission()
        event = _event(session_id=sub.session_id, conversation_id="conv-10")
        first = handle_transcript_event(db_session, event)

        db_session.refresh(sub)
        transcript, status = sub.transcript, sub.status

        second = handle_transcript_event(
            db_session,
            _event(session_id=sub.session_id, conversation_id="conv-10",
                   transcript=_turns("Something different"), call_duration_seconds=10),
        )

        db_session.refresh(sub)
        assert first.outcome == CorrelationOutcome.APPLIED
        assert second.outcome == CorrelationOutcome.DUPLICATE
        assert second.method == MatchMethod.CONVERSATION_ID
        assert sub.transcript == transcript
        assert sub.status == status

    def test_never_reverts_graded(self, db_session, make_submission):
        sub = make_submission(status=SubmissionStatus.GRADED, transcript="EXAMINER: old")
        applied, status = apply_transcript(db_session, sub.session_id, _turns())

        db_session.refresh(sub)
        assert applied is False
        assert status == SubmissionStatus.GRADED.value
        assert sub.transcript == "EXAMINER: old"

    def test_does_not_fight_manual_exclusion_override(self, db_session, make_submission):
        sub = make_submission(status=SubmissionStatus.DEFENSE_COMPLETE, transcript="EXAMINER: x",
                              call_duration_seconds=30)
        applied, _ = apply_transcript(
            db_session, sub.session_id, _turns(), call_duration_seconds=30, min_call_length=60
        )
        db_session.refresh(sub)
        assert applied is False
        assert sub.status == SubmissionStatus.DEFENSE_COMPLETE.value

    def test_conversation_owned_elsewhere_is_rejected(self, db_session, make_submission):
        make_submission(status=SubmissionStatus.DEFENSE_COMPLETE, conversation_id="conv-owned")
        other = make_submission()

        result = handle_transcript_event(
            db_session, _event(session_id=other.session_id, conversation_id="conv-owned")
        )
        # re-delivery of an owned conversation resolves to its owner
        assert result.outcome == CorrelationOutcome.DUPLICATE
        assert db_session.get(Submission, other.id).status == SubmissionStatus.SUBMITTED.value
