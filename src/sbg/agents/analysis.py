"""Script analysis agent: split a script into scene prompts and a character bible."""

import logging
from dataclasses import dataclass, field
from typing import Any

from .base import BaseAgent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a storyboard artist breaking a story script into illustrated panels.

Output valid JSON only, with no additional text or markdown formatting.
The JSON must be an object with:
- "characters": one string describing every main character's name, age and
  specific visual details (hair, clothes, build) so an illustrator can keep
  them consistent across panels.
- "scenes": an array of strings, one visually descriptive prompt per panel."""


@dataclass
class AnalysisInput:
    """Input data for the analysis agent."""

    script: str
    scene_count: int


@dataclass
class AnalysisResult:
    """Scene prompts plus the character bible for one analysis pass."""

    scene_prompts: list[str] = field(default_factory=list)
    character_bible: str = ""


class ScriptAnalysisAgent(BaseAgent[AnalysisInput, AnalysisResult]):
    """Agent that turns a prose script into scene prompts.

    The character bible it extracts is injected into every image prompt of
    the batch to keep characters visually consistent.
    """

    @property
    def name(self) -> str:
        """Return the agent's name."""
        return "ScriptAnalysisAgent"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def run(self, input_data: AnalysisInput) -> AnalysisResult:
        """Analyze a script.

        Args:
            input_data: Script text and requested scene count.

        Returns:
            AnalysisResult with at most `scene_count` prompts.

        Raises:
            ValueError: If the response cannot be parsed.
        """
        self._logger.info(
            f"Analyzing script ({len(input_data.script)} chars) "
            f"into {input_data.scene_count} scenes"
        )

        prompt = "\n".join([
            "Read the story script.",
            "1. Extract a character bible (names, ages, specific visual details like hair, clothes).",
            f"2. Break the script into EXACTLY {input_data.scene_count} distinct, "
            "visually descriptive scenes.",
            "",
            "Script:",
            f'"""{input_data.script}"""',
        ])

        result = self._to_result(self._ask_json(prompt))

        if len(result.scene_prompts) > input_data.scene_count:
            result.scene_prompts = result.scene_prompts[:input_data.scene_count]

        self._logger.info(f"Extracted {len(result.scene_prompts)} scene prompts")
        return result

    def _to_result(self, data: Any) -> AnalysisResult:

        if isinstance(data, list):
            data = {"scenes": data}
        if not isinstance(data, dict):
            raise ValueError("Response is not a JSON object")

        scenes = data.get("scenes", [])
        if not isinstance(scenes, list):
            raise ValueError("Response does not contain a scenes array")

        prompts: list[str] = []
        for item in scenes:
            # Tolerate {"prompt": ...} objects as well as bare strings
            text = (item.get("prompt") or item.get("description")) if isinstance(item, dict) else item
            if text and str(text).strip():
                prompts.append(str(text).strip())

        characters = data.get("characters", "")
        if not isinstance(characters, str):
            characters = str(characters)

        return AnalysisResult(scene_prompts=prompts, character_bible=characters.strip())
