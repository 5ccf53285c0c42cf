"""Data models for the storyboard generator."""

from .scene import Scene, SceneStatus, AssetVersion, MediaType
from .project import Project, ProjectState, ProjectSnapshot, SceneSummary
from .style import StyleSettings, ColorMode, ImageSize, AspectRatio

__all__ = [
    "Scene",
    "SceneStatus",
    "AssetVersion",
    "MediaType",
    "Project",
    "ProjectState",
    "ProjectSnapshot",
    "SceneSummary",
    "StyleSettings",
    "ColorMode",
    "ImageSize",
    "AspectRatio",
]
