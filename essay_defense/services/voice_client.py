# essay_defense/services/voice_client.py
"""
Voice Provider Client

Pulls finished conversations from the voice provider's conversation API
(ElevenLabs Conversational AI shape) for the recovery sweep.
"""

import logging
from datetime import datetime
from enum import Enum

import httpx
from pydantic import BaseModel, Field

from essay_defense.core.config import settings
from essay_defense.schemas.webhook import TranscriptEvent, TranscriptTurn
from essay_defense.services.http_retry import request_with_retry

logger = logging.getLogger(__name__)

SERVICE_NAME = "voice-provider"

_IN_PROGRESS = {"initiated", "in-progress", "in_progress", "processing"}


class FetchOutcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    IN_PROGRESS = "in_progress"


class FetchResult(BaseModel):
    outcome: FetchOutcome
    conversation_id: str | None = None
    session_id: str | None = None
    turns: list[TranscriptTurn] = Field(default_factory=list)
    call_duration_seconds: int | None = None


def session_id_from_conversation(data: dict) -> str | None:
    client_data = data.get("conversation_initiation_client_data") or {}
    dynamic = client_data.get("dynamic_variables") or {}
    value = dynamic.get("session_id")
    return str(value) if value else None


def _turns(data: dict) -> list[TranscriptTurn]:
    return [
        TranscriptTurn(role=t.get("role") or "", message=t.get("message"))
        for t in data.get("transcript") or []
    ]


def _duration(data: dict) -> int | None:
    duration = (data.get("metadata") or {}).get("call_duration_secs")
    return int(duration) if duration is not None else None


def _parse_conversation(data: dict) -> FetchResult:
    status = (data.get("status") or "").lower()
    turns = _turns(data)

    if status in _IN_PROGRESS:
        outcome = FetchOutcome.IN_PROGRESS
    elif turns:
        outcome = FetchOutcome.FOUND
    else:
        # 'failed' calls with nothing said
        outcome = FetchOutcome.NOT_FOUND

    return FetchResult(
        outcome=outcome,
        conversation_id=data.get("conversation_id"),
        session_id=session_id_from_conversation(data),
        turns=turns,
        call_duration_seconds=_duration(data),
    )


class VoiceClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        agent_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.agent_id = agent_id or settings.VOICE_AGENT_ID
        self._client = httpx.Client(
            base_url=base_url or settings.VOICE_API_BASE_URL,
            headers={"xi-api-key": api_key or settings.VOICE_API_KEY or ""},
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        # conversation details fetched during this client's lifetime (one sweep)
        self._details: dict[str, dict] = {}
        # conversation id listings by start-time bound, paged once per sweep
        self._listings: dict[int | None, list[str]] = {}

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get_conversation(self, conversation_id: str) -> dict | None:
        if conversation_id in self._details:
            return self._details[conversation_id]
        response = request_with_retry(
            self._client,
            "GET",
            f"/conversations/{conversation_id}",
            service=SERVICE_NAME,
            accept_status=(404,),
        )
        if response.status_code == 404:
            return None
        data = response.json()
        # in-progress details go stale, only cache finished ones
        if (data.get("status") or "").lower() not in _IN_PROGRESS:
            self._details[conversation_id] = data
        return data

    def fetch_conversation(self, conversation_id: str) -> FetchResult:
        data = self._get_conversation(conversation_id)
        if data is None:
            return FetchResult(outcome=FetchOutcome.NOT_FOUND, conversation_id=conversation_id)
        return _parse_conversation(data)

    def list_conversation_ids(self, since: datetime | None = None) -> list[str]:
        params: dict = {"page_size": 100}
        if self.agent_id:
            params["agent_id"] = self.agent_id
        if since is not None:
            params["call_start_after_unix"] = int(since.timestamp())

        key = params.get("call_start_after_unix")
        if key in self._listings:
            return self._listings[key]

        ids: list[str] = []
        while True:
            response = request_with_retry(
                self._client, "GET", "/conversations", service=SERVICE_NAME, params=params
            )
            body = response.json()
            ids.extend(
                c["conversation_id"]
                for c in body.get("conversations") or []
                if c.get("conversation_id")
            )
            cursor = body.get("next_cursor")
            if not body.get("has_more") or not cursor:
                break
            params["cursor"] = cursor
        self._listings[key] = ids
        return ids

    def fetch_for_session(
        self,
        session_id: str,
        conversation_id: str | None = None,
        since: datetime | None = None,
    ) -> FetchResult:
        """
        Find the conversation belonging to a submission.

        Uses the stored conversation id when there is one, otherwise scans the
        agent's recent conversations for the session id passed as a dynamic
        variable at session start.
        """
        if conversation_id:
            return self.fetch_conversation(conversation_id)

        for candidate_id in self.list_conversation_ids(since=since):
            data = self._get_conversation(candidate_id)
            if data is None:
                continue
            if session_id_from_conversation(data) == session_id:
                return _parse_conversation(data)

        return FetchResult(outcome=FetchOutcome.NOT_FOUND, session_id=session_id)


def event_from_webhook_payload(payload: dict) -> TranscriptEvent:
    """
    Normalize a webhook body into a TranscriptEvent.

    Accepts the flat form (transcript / conversation_id / session_id) and the
    provider's post-call envelope ({"type": "post_call_transcription", "data": {...}}).
    """
    if "data" in payload and isinstance(payload["data"], dict):
        data = payload["data"]
        return TranscriptEvent(
            transcript=_turns(data),
            conversation_id=data.get("conversation_id"),
            session_id=session_id_from_conversation(data),
            call_duration_seconds=_duration(data),
        )
    return TranscriptEvent.model_validate(payload)
