"""Shared retry with backoff for rate-limited remote calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from anthropic import RateLimitError
from google.api_core import exceptions as google_exceptions

from ..config import config
from ..errors import StoryboardError, TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings (lowercased) that mark a quota or rate-limit failure
RATE_LIMIT_MARKERS = ("429", "quota", "resource_exhausted", "rate limit")


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True if the error signals a rate limit or exhausted quota."""
    if isinstance(error, StoryboardError):
        return False
    if isinstance(error, (google_exceptions.TooManyRequests, RateLimitError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    description: str = "remote call",
) -> T:
    """Run an async operation, retrying rate-limit errors with increasing backoff.

    The delay before retry ``n`` is ``base_delay * n`` seconds. Errors that are
    not rate limits propagate immediately.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        attempts: Attempt ceiling. Defaults to config.retry_attempts.
        base_delay: Backoff step in seconds. Defaults to config.retry_base_delay.
        description: Label used in log messages.

    Returns:
        The operation's result.

    Raises:
        TransientRemoteError: If every attempt hit a rate limit.
    """
    attempts = attempts if attempts is not None else config.retry_attempts
    base_delay = base_delay if base_delay is not None else config.retry_base_delay
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            if attempt == attempts:
                logger.error(f"{description}: rate limited after {attempts} attempts")
                raise TransientRemoteError(
                    f"{description} was rate limited after {attempts} attempts: {e}",
                    attempts=attempts,
                ) from e
            delay = base_delay * attempt
            logger.warning(
                f"{description}: quota hit (attempt {attempt}/{attempts}). "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise TransientRemoteError(f"{description}: max retries reached", attempts=attempts)
