"""
Tests for the shared rate-limit retry.
"""

import asyncio
from unittest.mock import AsyncMock, call

import pytest
from google.api_core import exceptions as google_exceptions

from sbg.errors import TerminalGenerationError, TransientRemoteError
from sbg.pipeline.retry import is_rate_limit_error, retry_async


class TestIsRateLimitError:
    """Tests for rate-limit detection."""

    def test_google_too_many_requests(self):
        assert is_rate_limit_error(google_exceptions.TooManyRequests("slow down")) is True

    def test_google_resource_exhausted(self):
        assert is_rate_limit_error(google_exceptions.ResourceExhausted("exhausted")) is True

    @pytest.mark.parametrize("message", [
        "429 Too Many Requests",
        "Quota exceeded for aiplatform.googleapis.com",
        "RESOURCE_EXHAUSTED: try later",
        "Rate limit reached for requests",
    ])
    def test_message_markers(self, message):
        assert is_rate_limit_error(RuntimeError(message)) is True

    def test_other_errors(self):
        assert is_rate_limit_error(ValueError("bad prompt")) is False
        assert is_rate_limit_error(google_exceptions.BadRequest("invalid")) is False

    def test_pipeline_errors_are_never_retried(self):
        """Errors already classified by the pipeline are not rate limits."""
        assert is_rate_limit_error(TerminalGenerationError("quota message in text")) is False


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value="ok")

        result = await retry_async(operation, attempts=3, base_delay=0)

        assert result == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_rate_limits_then_succeeds(self):
        operation = AsyncMock(side_effect=[
            google_exceptions.TooManyRequests("quota"),
            RuntimeError("429"),
            "image",
        ])

        result = await retry_async(operation, attempts=3, base_delay=0)

        assert result == "image"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_propagates_immediately(self):
        operation = AsyncMock(side_effect=ValueError("malformed"))

        with pytest.raises(ValueError, match="malformed"):
            await retry_async(operation, attempts=3, base_delay=0)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_transient_error(self):
        cause = google_exceptions.TooManyRequests("quota")
        operation = AsyncMock(side_effect=cause)

        with pytest.raises(TransientRemoteError) as exc_info:
            await retry_async(operation, attempts=3, base_delay=0, description="image generation")

        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is cause
        assert "image generation" in str(exc_info.value)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_backoff_grows_linearly(self, monkeypatch):
        """Delay before retry n is base_delay * n."""
        sleep = AsyncMock()
        monkeypatch.setattr(asyncio, "sleep", sleep)
        operation = AsyncMock(side_effect=RuntimeError("quota"))

        with pytest.raises(TransientRemoteError):
            await retry_async(operation, attempts=3, base_delay=5.0)

        assert sleep.await_args_list == [call(5.0), call(10.0)]
