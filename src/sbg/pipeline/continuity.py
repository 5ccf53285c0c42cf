"""Cross-scene continuity review and one-click fixes."""

import logging
from typing import List

from ..agents.continuity import AuditScene, ContinuityIssue
from ..errors import PersistenceError
from ..models.scene import Scene
from .session import StoryboardSession

logger = logging.getLogger(__name__)


class ContinuityAuditor:
    """Audits a project's scenes in number order.

    Issue indexes refer to positions in that order, which is also the order
    :meth:`apply_fix` resolves them against.
    """

    def __init__(self, session: StoryboardSession) -> None:
        self._session = session

    async def audit(self) -> List[ContinuityIssue]:
        """Review every scene; fewer than two scenes yields no issues."""
        scenes = self._session.board.by_number()
        if len(scenes) < 2:
            logger.info("Need at least two scenes to check continuity")
            return []

        audit_scenes = []
        for scene in scenes:
            image = None
            if scene.active_image_url:
                try:
                    image = await self._session.store.fetch_media(scene.active_image_url)
                except (PersistenceError, ValueError) as e:
                    logger.warning(f"Auditing scene {scene.number} without its image: {e}")
            audit_scenes.append(AuditScene(title=scene.title, prompt=scene.prompt, image=image))

        issues = await self._session.generation.audit_continuity(audit_scenes)
        # The model may cite indexes outside the list it was shown
        return [i for i in issues if 0 <= i.scene_index < len(scenes)]

    async def apply_fix(self, issue: ContinuityIssue) -> Scene:
        """Regenerate the flagged scene with the suggestion appended to its prompt.

        The current image is passed as a composition reference.
        """
        scenes = self._session.board.by_number()
        if not 0 <= issue.scene_index < len(scenes):
            raise IndexError(f"No scene at index {issue.scene_index}")

        scene = scenes[issue.scene_index]
        prompt = f"{scene.prompt}. FIX: {issue.suggestion}"
        logger.info(f"Applying continuity fix to scene {scene.number}")
        return await self._session.controller(scene.id).regenerate(
            prompt=prompt, reference_image_url=scene.active_image_url
        )
