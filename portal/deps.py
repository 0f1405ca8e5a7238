# portal/deps.py
# FastAPI dependency injection factories
# Provides database sessions, auth/role dependencies and the retry decorator
# RELEVANT FILES: database.py, auth.py, storage.py, config.py

from typing import Callable, TypeVar
from fastapi import Depends
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)
from httpx import HTTPStatusError, TransportError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from .config import Settings

logger = logging.getLogger(__name__)

# Type variable for retry decorator
T = TypeVar("T")


def should_retry(exception: BaseException) -> bool:
    """Retry on rate limit (429), server errors (5xx) and connection problems"""
    if isinstance(exception, HTTPStatusError):
        return (
            exception.response.status_code == 429
            or exception.response.status_code >= 500
        )
    return isinstance(exception, TransportError)


def create_retry_decorator(settings: Settings) -> Callable:
    """
    Create a retry decorator with exponential backoff for transient errors.
    Logs retry attempts for debugging.
    """
    return retry(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential(
            multiplier=settings.retry_delay,
            max=settings.max_retry_delay,
        ),
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


from .database import get_session  # noqa: E402
from .auth import (  # noqa: E402
    AuthService,
    Identity,
    TokenService,
    get_current_identity,
    get_token_service,
    require_roles,
)
from .schemas import Role  # noqa: E402

# Re-export auth dependencies for easy access
__all__ = [
    "get_session",
    "get_current_identity",
    "Identity",
    "require_admin",
    "require_client",
    "get_auth_service",
]

require_admin = require_roles([Role.ADMIN])
require_client = require_roles([Role.CLIENT])


async def get_auth_service(
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    """
    Get AuthService instance for authentication operations.
    Use this in auth endpoints that need to perform login.
    """
    return AuthService(session, tokens)
