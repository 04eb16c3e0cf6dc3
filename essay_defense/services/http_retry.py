# essay_defense/services/http_retry.py
import logging
from typing import Iterable

import httpx

from essay_defense.core.config import settings
from essay_defense.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    service: str,
    retries: int | None = None,
    accept_status: Iterable[int] = (),
    **kwargs,
) -> httpx.Response:
    """
    Send a request with the client's timeout and a bounded retry budget.

    Timeouts, connection errors and 429/5xx responses are retried up to
    `retries` extra times. 2xx responses and any status in `accept_status`
    are returned to the caller; everything else raises ExternalServiceError.
    """
    retries = settings.HTTP_MAX_RETRIES if retries is None else retries
    accepted = set(accept_status)
    last_error = "no attempt made"

    for attempt in range(retries + 1):
        try:
            response = client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            last_error = "timeout"
            logger.warning(f"{service} {method} {url} timed out (attempt {attempt + 1})")
            continue
        except httpx.RequestError as e:
            last_error = f"connection error: {e}"
            logger.warning(f"{service} {method} {url} failed: {e} (attempt {attempt + 1})")
            continue

        if response.is_success or response.status_code in accepted:
            return response

        last_error = f"HTTP {response.status_code}: {response.text[:200]}"
        if response.status_code not in _RETRYABLE_STATUS:
            break
        logger.warning(f"{service} {method} {url} returned {response.status_code} (attempt {attempt + 1})")

    logger.error(f"{service} {method} {url} gave up: {last_error}")
    raise ExternalServiceError(service, last_error)
