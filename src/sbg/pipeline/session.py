"""A loaded project: metadata, live scene board and persistence."""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from ..config import config
from ..models.project import Project
from ..models.scene import Scene, SceneStatus
from ..models.style import StyleSettings
from . import naming
from .board import SceneBoard
from .persistence import ProjectStore

if TYPE_CHECKING:
    from ..services.generation import GenerationClient
    from .lifecycle import SceneController

logger = logging.getLogger(__name__)


class StoryboardSession:
    """Everything one project's operations share.

    The board is the authoritative scene state while the session is alive;
    ``project.scenes`` is only refreshed when a snapshot is built.
    """

    def __init__(
        self,
        project: Project,
        store: ProjectStore,
        generation: "GenerationClient",
        style: Optional[StyleSettings] = None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
    ) -> None:
        self.project = project
        self.store = store
        self.generation = generation
        if style is not None:
            project.style = style
        self.poll_interval = poll_interval if poll_interval is not None else config.video_poll_interval
        self.max_polls = max_polls if max_polls is not None else config.video_max_polls
        self.board = SceneBoard(project.scenes, order=project.display_order)
        self._controllers: Dict[str, "SceneController"] = {}
        self._snapshot_lock = asyncio.Lock()

    @property
    def style(self) -> StyleSettings:
        return self.project.style

    def controller(self, scene_id: str) -> "SceneController":
        """Return the single controller for a scene, creating it on first use."""
        from .lifecycle import SceneController

        if scene_id not in self.board:
            raise KeyError(f"Unknown scene: {scene_id}")
        if scene_id not in self._controllers:
            self._controllers[scene_id] = SceneController(self, scene_id)
        return self._controllers[scene_id]

    def scene_by_number(self, number: int) -> Scene:
        scene = self.board.find_by_number(number)
        if scene is None:
            raise KeyError(f"Project {self.project.id} has no scene {number}")
        return scene

    def to_project(self) -> Project:
        return self.project.model_copy(
            update={"scenes": self.board.by_number(), "display_order": self.board.display_ids()}
        )

    async def move_scene(self, scene_id: str, position: int) -> List[Scene]:
        """Change a scene's display position and save the new order."""
        scenes = self.board.move(scene_id, position)
        await self.save_snapshot()
        return scenes

    async def save_snapshot(self) -> None:
        """Write the project snapshot. Writes are serialized."""
        async with self._snapshot_lock:
            self.project.updated_at = datetime.now()
            if not self.project.thumbnail_url:
                self.project.thumbnail_url = self._first_durable_image()
            await self.store.save_snapshot(self.to_project().to_snapshot())

    async def persist_scene(self, scene_id: str) -> None:
        """Save one scene record, then the project snapshot."""
        scene = self.board.get(scene_id)
        if scene is None:
            logger.debug(f"Scene {scene_id} vanished before it could be saved")
            return
        await self.store.save_scene(self.project.id, scene)
        await self.save_snapshot()

    async def add_scene(
        self,
        prompt: str,
        title: Optional[str] = None,
        reference_image_url: Optional[str] = None,
        position: Optional[int] = None,
    ) -> Scene:
        """Insert a new scene after the highest number and render it."""
        number = self.board.next_number()
        scene = Scene(
            id=naming.new_scene_id(),
            number=number,
            title=title or f"Scene {number}",
            prompt=prompt,
            project_id=self.project.id,
            reference_image_url=reference_image_url,
            status=SceneStatus.PENDING,
        )
        self.board.add(scene, position=position)
        logger.info(f"Added scene {number} to project {self.project.id}")
        return await self.controller(scene.id).regenerate()

    def _first_durable_image(self) -> Optional[str]:
        for scene in self.board.by_number():
            if scene.has_durable_image:
                return scene.active_image_url
        return None
