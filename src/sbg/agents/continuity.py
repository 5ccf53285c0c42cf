"""Continuity agent: review a whole storyboard for cross-scene inconsistencies."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..services.anthropic import image_block, text_block
from .base import BaseAgent

logger = logging.getLogger(__name__)

NOT_GENERATED = "[Image not yet generated]"

SYSTEM_PROMPT = """You are a script supervisor checking a storyboard for VISUAL and NARRATIVE continuity.
Check specifically for:
1. Visual consistency: do characters look the same (clothes, hair) across shots? Is the lighting consistent?
2. Narrative logic: do the shots follow a logical sequence? Are object positions consistent?

Return ONLY a JSON array. Each element must have:
- "sceneIndex": the 0-based index of the scene with the issue
- "issue": a short description of the problem
- "suggestion": a specific instruction to fix the prompt (e.g. "Add 'wearing red scarf' to the prompt")
Scenes without problems are omitted. Return [] if everything is consistent."""


@dataclass
class AuditScene:
    """One scene as presented to the auditor."""

    title: str
    prompt: str
    image: Optional[bytes] = None


@dataclass
class ContinuityIssue:
    """A flagged inconsistency and the suggested prompt edit."""

    scene_index: int
    issue: str
    suggestion: str


class ContinuityAgent(BaseAgent[list[AuditScene], list[ContinuityIssue]]):
    """Agent that audits all scenes of a project in a single request."""

    temperature = 0.2

    @property
    def name(self) -> str:
        return "ContinuityAgent"

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def run(self, input_data: list[AuditScene]) -> list[ContinuityIssue]:
        """Audit an ordered scene list.

        Scenes without an image are sent with an explicit placeholder so the
        returned indexes line up with the input list.
        """
        self._logger.info(f"Auditing continuity across {len(input_data)} scenes")

        content: list[dict[str, Any]] = [
            text_block("Analyze the following sequence of storyboard scenes.")
        ]
        for i, scene in enumerate(input_data):
            content.append(text_block(
                f"\n--- SCENE {i} (Index {i}): {scene.title} ---\nDescription: {scene.prompt}\n"
            ))
            if scene.image:
                content.append(image_block(scene.image))
            else:
                content.append(text_block(NOT_GENERATED))

        issues = self._to_issues(self._ask_json(content), len(input_data))

        self._logger.info(f"Found {len(issues)} continuity issues")
        return issues

    def _to_issues(self, data: Any, scene_count: int) -> list[ContinuityIssue]:
        if isinstance(data, dict):
            data = data.get("issues", [])
        if not isinstance(data, list):
            raise ValueError("Response is not a JSON array of issues")

        issues: list[ContinuityIssue] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                index = int(item.get("sceneIndex", item.get("scene_index")))
            except (TypeError, ValueError):
                continue
            if not 0 <= index < scene_count:
                self._logger.warning(f"Dropping issue for out-of-range scene index {index}")
                continue
            issues.append(ContinuityIssue(
                scene_index=index,
                issue=str(item.get("issue", "")).strip(),
                suggestion=str(item.get("suggestion", "")).strip(),
            ))
        return issues
