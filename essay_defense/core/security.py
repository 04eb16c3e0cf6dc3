# essay_defense/core/security.py
import hmac
import logging

from fastapi import Header, HTTPException, Query, status

from essay_defense.core.config import settings
from essay_defense.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def check_shared_secret(provided: str | None, expected: str | None) -> None:
    """
    Constant-time comparison of a caller-supplied secret.

    Fails closed: a missing configured secret rejects every caller.
    """
    if not expected:
        raise AuthenticationError("shared secret is not configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise AuthenticationError("invalid credentials")


def verify_webhook_secret(
    secret: str | None = Query(default=None),
    x_webhook_secret: str | None = Header(default=None),
) -> None:
    # the provider can be configured to send either a query param or a header
    try:
        check_shared_secret(secret or x_webhook_secret, settings.WEBHOOK_SECRET)
    except AuthenticationError as e:
        logger.warning(f"Rejected transcript webhook: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def require_operator(authorization: str | None = Header(default=None)) -> None:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    try:
        check_shared_secret(token, settings.OPERATOR_TOKEN)
    except AuthenticationError as e:
        logger.warning(f"Rejected operator request: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
