"""Batch orchestration: script in, persisted storyboard out."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..errors import AnalysisError, StoryboardError
from ..models.project import ProjectState
from ..models.scene import Scene, SceneStatus
from . import naming
from .session import StoryboardSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, Scene], None]


@dataclass
class BatchResult:
    """Outcome of one batch run, scenes in number order."""

    project_id: str
    scenes: List[Scene] = field(default_factory=list)

    def _with_status(self, status: SceneStatus) -> List[Scene]:
        return [s for s in self.scenes if s.status == status]

    @property
    def persisted(self) -> List[Scene]:
        return self._with_status(SceneStatus.PERSISTED)

    @property
    def generation_failed(self) -> List[Scene]:
        return self._with_status(SceneStatus.GENERATION_FAILED)

    @property
    def upload_failed(self) -> List[Scene]:
        return self._with_status(SceneStatus.UPLOAD_FAILED)


class BatchOrchestrator:
    """Runs analysis, concurrent generation and serial persistence.

    Phase 1 renders every scene concurrently; each scene's failure is
    recorded on that scene only. Phase 2 starts after every render has
    settled and uploads the successful scenes one at a time in number
    order, saving the project snapshot after each.
    """

    def __init__(
        self,
        session: StoryboardSession,
        progress: Optional[ProgressCallback] = None,
        auto_tag: bool = True,
    ) -> None:
        self._session = session
        self._progress = progress
        self._auto_tag = auto_tag

    async def run(self, script: str, scene_count: int) -> BatchResult:
        """Turn a script into a storyboard of up to scene_count scenes.

        Raises:
            ValueError: If the script is empty or scene_count is below 1.
            AnalysisError: If analysis fails or returns no scene prompts.
        """
        if not script.strip():
            raise ValueError("Script is empty")
        if scene_count < 1:
            raise ValueError("scene_count must be at least 1")

        session = self._session
        project = session.project
        project.script = script
        project.state = ProjectState.ANALYZING

        logger.info(f"Analyzing script for project {project.id}")
        try:
            analysis = await session.generation.analyze_script(script, scene_count)
        except StoryboardError:
            project.state = ProjectState.FAILED
            raise
        except Exception as e:
            project.state = ProjectState.FAILED
            raise AnalysisError(f"Failed to analyze the story: {e}") from e

        if not analysis.scene_prompts:
            project.state = ProjectState.FAILED
            raise AnalysisError("Script analysis returned no scenes")

        project.character_bible = analysis.character_bible
        project.thumbnail_url = None
        session.board.reset(
            Scene(
                id=naming.new_scene_id(),
                number=number,
                title=f"Scene {number}",
                prompt=prompt,
                project_id=project.id,
            )
            for number, prompt in enumerate(analysis.scene_prompts, start=1)
        )

        await self._generate_all()
        await self._persist_all()

        scenes = session.board.by_number()
        any_persisted = any(s.status == SceneStatus.PERSISTED for s in scenes)
        project.state = ProjectState.COMPLETED if any_persisted else ProjectState.FAILED
        await session.save_snapshot()

        if self._auto_tag and any_persisted:
            await self._tag_all()

        result = BatchResult(project_id=project.id, scenes=session.board.by_number())
        logger.info(
            f"Batch finished: {len(result.persisted)} persisted, "
            f"{len(result.upload_failed)} upload failed, "
            f"{len(result.generation_failed)} generation failed"
        )
        return result

    async def _generate_all(self) -> None:
        session = self._session
        session.project.state = ProjectState.GENERATING
        scenes = session.board.by_number()
        logger.info(f"Generating {len(scenes)} scenes")

        outcomes = await asyncio.gather(
            *(session.controller(s.id).generate() for s in scenes),
            return_exceptions=True,
        )
        for scene, outcome in zip(scenes, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Scene {scene.number} generation aborted: {outcome}")
                session.board.patch(
                    scene.id,
                    status=SceneStatus.GENERATION_FAILED,
                    is_loading=False,
                    error=f"Generation failed: {outcome}",
                )

    async def _persist_all(self) -> None:
        session = self._session
        session.project.state = ProjectState.SAVING
        generated = [s for s in session.board.by_number() if s.status == SceneStatus.GENERATED]

        for i, scene in enumerate(generated, start=1):
            logger.info(f"Saving scene {i} of {len(generated)}")
            if self._progress:
                self._progress(i, len(generated), scene)
            await session.controller(scene.id).persist()

    async def _tag_all(self) -> None:
        session = self._session
        persisted = [s for s in session.board.by_number() if s.status == SceneStatus.PERSISTED]
        await asyncio.gather(*(session.controller(s.id).auto_tag() for s in persisted))
