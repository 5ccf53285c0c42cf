"""Scene data model."""

import time
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field

from ..media import is_durable_url


class SceneStatus(str, Enum):
    """Lifecycle state of a scene."""
    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    GENERATION_FAILED = "generation_failed"
    UPLOADING = "uploading"
    PERSISTED = "persisted"
    UPLOAD_FAILED = "upload_failed"
    REGENERATING = "regenerating"
    REFINING = "refining"
    UPSCALING = "upscaling"
    ANIMATING_VIDEO = "animating_video"
    NARRATING_AUDIO = "narrating_audio"


class MediaType(str, Enum):
    """Kind of media an asset version holds."""
    ILLUSTRATION = "illustration"
    VIDEO = "video"
    AUDIO = "audio"


# Scene field holding the active pointer for each media type
ACTIVE_FIELDS = {
    MediaType.ILLUSTRATION: "active_image_url",
    MediaType.VIDEO: "active_video_url",
    MediaType.AUDIO: "active_audio_url",
}

_last_version_id = 0


def next_version_id() -> str:
    """Return a millisecond timestamp id, strictly increasing per process."""
    global _last_version_id
    candidate = int(time.time() * 1000)
    _last_version_id = max(candidate, _last_version_id + 1)
    return str(_last_version_id)


class AssetVersion(BaseModel):
    """One immutable historical render attached to a scene."""

    id: str = Field(default_factory=next_version_id, description="Monotonic version id")
    media_type: MediaType = Field(..., description="Illustration, video or audio")
    url: str = Field(..., description="Durable (or local) URL of the asset")
    prompt_used: str = Field(default="", description="Exact text used to generate")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation time")

    class Config:
        """Pydantic config."""
        frozen = True


class Scene(BaseModel):
    """Represents a single storyboard panel."""

    id: str = Field(..., description="Stable scene identifier, never reused")
    number: int = Field(..., description="Display order and storage naming key", ge=1)
    prompt: str = Field(default="", description="Current generation instruction")
    title: str = Field(default="", description="Scene title")
    project_id: Optional[str] = Field(None, description="Owning project id")
    active_image_url: Optional[str] = Field(None, description="Displayed illustration")
    active_video_url: Optional[str] = Field(None, description="Displayed video")
    active_audio_url: Optional[str] = Field(None, description="Displayed narration")
    reference_image_url: Optional[str] = Field(None, description="Composition sketch")
    status: SceneStatus = Field(default=SceneStatus.PENDING, description="Lifecycle state")
    error: Optional[str] = Field(None, description="Last user-facing error")
    upload_error: bool = Field(default=False, description="Last upload attempt failed")
    is_loading: bool = Field(default=False, description="Image work in flight")
    is_uploading: bool = Field(default=False, description="Upload in flight")
    is_video_loading: bool = Field(default=False, description="Video work in flight")
    is_audio_loading: bool = Field(default=False, description="Narration work in flight")
    tags: List[str] = Field(default_factory=list, description="Organisation tags")
    asset_history: List[AssetVersion] = Field(
        default_factory=list, description="Append-only render history"
    )

    class Config:
        """Pydantic config."""
        frozen = False

    @property
    def has_durable_image(self) -> bool:
        """Whether the active illustration lives in the durable store."""
        return is_durable_url(self.active_image_url)

    @property
    def has_local_media(self) -> bool:
        return bool(self.local_media())

    def active_url(self, media_type: MediaType) -> Optional[str]:
        """Return the active pointer for a media type."""
        return getattr(self, ACTIVE_FIELDS[media_type])

    def in_history(self, url: Optional[str]) -> bool:
        return url is not None and any(v.url == url for v in self.asset_history)

    def local_media(self) -> List[Tuple[MediaType, str]]:
        """Renders referenced by this scene that were never uploaded.

        Active pointers come first, then history entries, each URL once.
        """
        found: List[Tuple[MediaType, str]] = []
        for media_type in MediaType:
            url = self.active_url(media_type)
            if url and not is_durable_url(url):
                found.append((media_type, url))
        for version in self.asset_history:
            if not is_durable_url(version.url) and (version.media_type, version.url) not in found:
                found.append((version.media_type, version.url))
        return found
