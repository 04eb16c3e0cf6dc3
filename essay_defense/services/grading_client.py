# essay_defense/services/grading_client.py
import logging

import httpx

from essay_defense.core.config import settings
from essay_defense.core.exceptions import ExternalServiceError
from essay_defense.services.http_retry import request_with_retry

logger = logging.getLogger(__name__)

SERVICE_NAME = "grading-ai"


def build_grading_messages(essay_text: str, transcript: str, rubric: str) -> list[dict]:
    user_content = (
        "ESSAY:\n"
        f"{essay_text}\n\n"
        "ORAL DEFENSE TRANSCRIPT:\n"
        f"{transcript}"
    )
    return [
        {"role": "system", "content": rubric},
        {"role": "user", "content": user_content},
    ]


class GradingClient:
    """Sends essay + transcript + rubric to a chat-completions scorer and returns its raw text."""

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url or settings.GRADING_API_URL
        self.model = model or settings.GRADING_MODEL
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {api_key or settings.GRADING_API_KEY or ''}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def grade(self, essay_text: str, transcript: str, rubric: str) -> str:
        response = request_with_retry(
            self._client,
            "POST",
            self.url,
            service=SERVICE_NAME,
            json={
                "model": self.model,
                "temperature": 0,
                "messages": build_grading_messages(essay_text, transcript, rubric),
            },
        )
        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(SERVICE_NAME, f"unexpected response shape: {e}")

        if not text or not text.strip():
            raise ExternalServiceError(SERVICE_NAME, "empty grading response")

        logger.info(f"Received grading response ({len(text)} chars)")
        return text
