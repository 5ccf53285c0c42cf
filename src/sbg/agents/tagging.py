"""Tagging agent: short organisation tags for a scene."""

from dataclasses import dataclass
from typing import Any, Optional

from ..services.anthropic import image_block, text_block
from .base import BaseAgent

MAX_TAGS = 5


@dataclass
class TaggingInput:
    prompt: str
    image: Optional[bytes] = None


class TaggingAgent(BaseAgent[TaggingInput, list[str]]):
    """Agent that labels a scene with 3-5 single-word tags."""

    max_tokens = 256
    temperature = 0.3

    @property
    def name(self) -> str:
        return "TaggingAgent"

    @property
    def system_prompt(self) -> str:
        return (
            "Generate 3-5 short descriptive tags (single words) for a storyboard scene, "
            "e.g. 'outdoor', 'action', 'sad'. Return ONLY a JSON array of strings."
        )

    def run(self, input_data: TaggingInput) -> list[str]:
        content: list[dict[str, Any]] = []
        if input_data.image:
            content.append(image_block(input_data.image))
        content.append(text_block(f"Scene description: {input_data.prompt}"))

        data = self._ask_json(content)
        if not isinstance(data, list):
            raise ValueError("Response is not a JSON array of tags")

        tags: list[str] = []
        for item in data:
            tag = str(item).strip().lower()
            if tag and tag not in tags:
                tags.append(tag)
        return tags[:MAX_TAGS]
