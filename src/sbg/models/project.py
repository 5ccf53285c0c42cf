"""Project state model."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .scene import Scene, SceneStatus
from .style import StyleSettings


class ProjectState(str, Enum):
    """Project state enum."""
    INIT = "init"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    SAVING = "saving"
    COMPLETED = "completed"
    FAILED = "failed"


class SceneSummary(BaseModel):
    """Lightweight per-scene entry of a project snapshot."""

    id: str = Field(..., description="Scene id")
    number: int = Field(..., description="Scene number")
    title: str = Field(default="", description="Scene title")
    prompt: str = Field(default="", description="Scene prompt")
    active_image_url: Optional[str] = Field(None, description="Durable active illustration")


class ProjectSnapshot(BaseModel):
    """Persisted project document, the source of truth on reload."""

    id: str = Field(..., description="Project id")
    owner: str = Field(..., description="Owner key")
    title: str = Field(..., description="Project title")
    script: str = Field(default="", description="Original script text")
    character_bible: str = Field(default="", description="Character appearance summary")
    state: ProjectState = Field(default=ProjectState.INIT, description="Current state")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    thumbnail_url: Optional[str] = Field(None, description="Dashboard preview image")
    style: StyleSettings = Field(default_factory=StyleSettings, description="Batch style")
    display_order: List[str] = Field(default_factory=list, description="Scene ids in display order")
    scene_count: int = Field(default=0, description="Number of scenes")
    scenes: List[SceneSummary] = Field(default_factory=list, description="Scene summaries")


class Project(BaseModel):
    """A storyboard project with its scenes."""

    id: str = Field(..., description="Project id")
    owner: str = Field(..., description="Owner key")
    title: str = Field(..., description="Project title")
    script: str = Field(default="", description="Original script text")
    character_bible: str = Field(default="", description="Character appearance summary")
    state: ProjectState = Field(default=ProjectState.INIT, description="Current state")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    thumbnail_url: Optional[str] = Field(None, description="Dashboard preview image")
    style: StyleSettings = Field(default_factory=StyleSettings, description="Batch style")
    display_order: List[str] = Field(default_factory=list, description="Scene ids in display order")
    scenes: List[Scene] = Field(default_factory=list, description="Scenes in number order")

    class Config:
        """Pydantic config."""
        frozen = False

    @property
    def scene_count(self) -> int:
        return len(self.scenes)

    def to_snapshot(self) -> ProjectSnapshot:
        """Build the persisted snapshot document."""
        ordered = sorted(self.scenes, key=lambda s: s.number)
        return ProjectSnapshot(
            id=self.id,
            owner=self.owner,
            title=self.title,
            script=self.script,
            character_bible=self.character_bible,
            state=self.state,
            created_at=self.created_at,
            updated_at=self.updated_at,
            thumbnail_url=self.thumbnail_url,
            style=self.style,
            display_order=self.display_order,
            scene_count=len(ordered),
            scenes=[
                SceneSummary(
                    id=s.id,
                    number=s.number,
                    title=s.title,
                    prompt=s.prompt,
                    # Local renders are never written into the snapshot
                    active_image_url=s.active_image_url if s.has_durable_image else None,
                )
                for s in ordered
            ],
        )

    @classmethod
    def from_snapshot(
        cls, snapshot: ProjectSnapshot, scene_records: Dict[str, Scene]
    ) -> "Project":
        """Re-join a snapshot with its separately stored scene records.

        Scenes listed in the snapshot but missing a detail record are rebuilt
        from their summary so nothing referenced by the snapshot is dropped.
        """
        scenes: List[Scene] = []
        for summary in snapshot.scenes:
            scene = scene_records.get(summary.id)
            if scene is None:
                scene = Scene(
                    id=summary.id,
                    number=summary.number,
                    title=summary.title or f"Scene {summary.number}",
                    prompt=summary.prompt,
                    project_id=snapshot.id,
                    active_image_url=summary.active_image_url,
                    status=(
                        SceneStatus.PERSISTED if summary.active_image_url
                        else SceneStatus.GENERATION_FAILED
                    ),
                )
            scenes.append(scene)

        scenes.sort(key=lambda s: s.number)
        return cls(
            id=snapshot.id,
            owner=snapshot.owner,
            title=snapshot.title,
            script=snapshot.script,
            character_bible=snapshot.character_bible,
            state=snapshot.state,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
            thumbnail_url=snapshot.thumbnail_url,
            style=snapshot.style,
            display_order=snapshot.display_order,
            scenes=scenes,
        )
