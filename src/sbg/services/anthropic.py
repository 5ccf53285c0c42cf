"""Anthropic Claude API client wrapper."""

import base64
import logging
import time
from typing import Any, Optional, Union

from anthropic import Anthropic, APIConnectionError, APIError

from ..config import config
from ..errors import TerminalGenerationError

logger = logging.getLogger(__name__)

# A plain prompt string, or a list of text/image content blocks
MessageContent = Union[str, list[dict[str, Any]]]


def image_block(data: bytes, media_type: str = "image/png") -> dict[str, Any]:
    """Build an inline image content block."""
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": media_type,
            "data": base64.b64encode(data).decode("ascii"),
        },
    }


def text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


class AnthropicClient:
    """Client wrapper for Anthropic Claude API.

    Connection drops are retried here with exponential backoff. Rate limits
    are not: they propagate so the pipeline's shared retry applies one
    backoff policy to every remote service.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            model: Model to use. Defaults to config.default_model.
            max_retries: Attempts per request when the connection drops.
            retry_delay: Base delay between connection retries in seconds.
        """
        self._api_key = api_key or config.anthropic_api_key
        if not self._api_key:
            raise ValueError(
                "Anthropic API key not provided. Set ANTHROPIC_API_KEY env var."
            )

        self._client = Anthropic(api_key=self._api_key)
        self._model = model or config.default_model
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        return self._model

    def create_message(
        self,
        prompt: MessageContent,
        max_tokens: int = 4096,
        system: Optional[str] = None,
        temperature: float = 0.7,
    ) -> str:
        """Send one user turn and return the reply text.

        Args:
            prompt: Plain text or a list of content blocks (see image_block).
            max_tokens: Maximum tokens in the response.
            system: Optional system prompt.
            temperature: Sampling temperature (0.0-1.0).

        Returns:
            The concatenated text blocks of the reply.

        Raises:
            anthropic.RateLimitError: When rate limited.
            APIError: For any other API failure.
            TerminalGenerationError: If the reply carries no text.
        """
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if system:
            request["system"] = system

        response = self._send(request)

        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning(f"Claude reply hit the {max_tokens} token limit and may be cut off")

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise TerminalGenerationError("Claude returned no text")
        return text

    def _send(self, request: dict[str, Any]) -> Any:
        for attempt in range(1, self._max_retries + 1):
            try:
                logger.debug(f"Sending request to {self._model} (attempt {attempt}/{self._max_retries})")
                return self._client.messages.create(**request)
            except APIConnectionError as e:
                if attempt == self._max_retries:
                    raise
                delay = self._retry_delay * (2 ** (attempt - 1))
                logger.warning(f"Connection error: {e}. Retrying in {delay:.1f}s...")
                time.sleep(delay)
            except APIError as e:
                logger.error(f"API error: {e}")
                raise

        raise RuntimeError("Max retries exceeded")
