"""Base agent abstraction."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from ..config import config
from ..services.anthropic import AnthropicClient, MessageContent

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for Claude-backed agents.

    An agent is a system prompt plus a parser: subclasses build the request
    content in `run` and turn the JSON reply into typed output. Sampling
    settings are class attributes so each agent declares its own.
    """

    max_tokens: int = 4096
    temperature: float = 0.7

    def __init__(
        self,
        client: Optional[AnthropicClient] = None,
        model: Optional[str] = None,
    ) -> None:
        """Initialize the agent.

        Args:
            client: AnthropicClient instance. Created if not provided.
            model: Model to use. Defaults to config.default_model.
        """
        self._model = model or config.default_model
        self._client = client or AnthropicClient(model=self._model)
        self._logger = logging.getLogger(f"{__name__}.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        ...

    @property
    def model(self) -> str:
        return self._model

    @abstractmethod
    def run(self, input_data: InputT) -> OutputT:
        """Execute the agent's task synchronously.

        Callers on the event loop run this in a worker thread.
        """
        ...

    def _ask_json(self, prompt: MessageContent) -> Any:
        """Send the prompt and decode the JSON in the reply."""
        return self._parse_json(self._create_message(prompt))

    def _create_message(self, prompt: MessageContent) -> str:
        size = f"{len(prompt)} blocks" if isinstance(prompt, list) else f"{len(prompt)} chars"
        self._logger.debug(f"Creating message ({size})")
        try:
            return self._client.create_message(
                prompt=prompt,
                max_tokens=self.max_tokens,
                system=self.system_prompt,
                temperature=self.temperature,
            )
        except Exception as e:
            self._logger.error(f"Error creating message: {e}")
            raise

    def _parse_json(self, response: str) -> Any:
        """Parse JSON out of a response that may contain markdown or prose.

        Raises:
            ValueError: If no valid JSON can be decoded.
        """
        try:
            return json.loads(extract_json(response))
        except json.JSONDecodeError as e:
            self._logger.error(f"Failed to parse JSON: {e}")
            self._logger.debug(f"Raw response: {response}")
            raise ValueError(f"Invalid JSON in response: {e}")


def extract_json(response: str) -> str:
    """Return the JSON payload of a reply.

    Looks for a fenced code block first, then for the first balanced
    object or array, whichever opens earlier. Falls back to the stripped
    reply so the caller's decode error names the real content.
    """
    for fence in ("```json", "```"):
        start = response.find(fence)
        if start == -1:
            continue
        start += len(fence)
        end = response.find("```", start)
        if end > start:
            return response[start:end].strip()

    openings = sorted(
        (response.find(open_char), open_char, close_char)
        for open_char, close_char in (("{", "}"), ("[", "]"))
        if open_char in response
    )
    for start, open_char, close_char in openings:
        depth = 0
        for i in range(start, len(response)):
            if response[i] == open_char:
                depth += 1
            elif response[i] == close_char:
                depth -= 1
                if depth == 0:
                    return response[start:i + 1]

    return response.strip()
