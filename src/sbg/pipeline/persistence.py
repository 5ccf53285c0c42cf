"""Project persistence: media uploads, scene records and project snapshots."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..config import config
from ..errors import PersistenceError
from ..media import decode_data_uri, extension_for, is_durable_url
from ..models.project import Project, ProjectSnapshot, ProjectState
from ..models.scene import Scene
from ..services.storage import AssetStore
from . import naming

logger = logging.getLogger(__name__)

# In-flight flags never survive a reload
TRANSIENT_FLAGS = ("is_loading", "is_uploading", "is_video_loading", "is_audio_loading")


class ProjectStore:
    """Async wrapper over an AssetStore with the project document layout.

    Every failure of the underlying store surfaces as a PersistenceError.
    """

    def __init__(self, store: AssetStore, owner: Optional[str] = None) -> None:
        self._store = store
        self.owner = owner or config.owner

    async def upload_media(
        self,
        project: Project,
        scene: Scene,
        kind: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """Upload media for a scene and return its durable URL."""
        key = naming.asset_key(project.title, scene.number, kind, extension_for(content_type))
        try:
            url = await asyncio.to_thread(
                self._store.upload, self.owner, project.id, key, data, content_type
            )
        except Exception as e:
            raise PersistenceError(
                f"Upload failed for scene {scene.number}: {e}", scene_id=scene.id
            ) from e
        logger.info(f"Uploaded scene {scene.number} {kind} ({len(data)} bytes)")
        return url

    async def delete_media(self, url: str) -> bool:
        """Delete a durable blob. Returns False instead of raising on failure."""
        if not is_durable_url(url):
            return False
        try:
            await asyncio.to_thread(self._store.delete, url)
        except Exception as e:
            logger.warning(f"Could not delete stored asset {url}: {e}")
            return False
        return True

    async def fetch_media(self, url: str) -> bytes:
        """Return the bytes behind a data URI or durable URL."""
        if not is_durable_url(url):
            data, _ = decode_data_uri(url)
            return data
        try:
            return await asyncio.to_thread(self._store.fetch_bytes, url)
        except Exception as e:
            raise PersistenceError(f"Could not read stored asset {url}: {e}") from e

    async def save_scene(self, project_id: str, scene: Scene) -> None:
        document = scene.model_dump(mode="json", exclude=set(TRANSIENT_FLAGS))
        key = naming.scene_document_key(project_id, scene.id)
        try:
            await asyncio.to_thread(self._store.write_document, key, document)
        except Exception as e:
            raise PersistenceError(
                f"Could not save scene {scene.number}: {e}", scene_id=scene.id
            ) from e

    async def save_snapshot(self, snapshot: ProjectSnapshot) -> None:
        key = naming.project_document_key(snapshot.id)
        try:
            await asyncio.to_thread(
                self._store.write_document, key, snapshot.model_dump(mode="json")
            )
        except Exception as e:
            raise PersistenceError(f"Could not save project {snapshot.id}: {e}") from e
        logger.debug(f"Saved snapshot of project {snapshot.id} ({snapshot.scene_count} scenes)")

    async def load_snapshot(self, project_id: str) -> Optional[ProjectSnapshot]:
        try:
            document = await asyncio.to_thread(
                self._store.read_document, naming.project_document_key(project_id)
            )
        except Exception as e:
            raise PersistenceError(f"Could not read project {project_id}: {e}") from e
        if document is None:
            return None
        return ProjectSnapshot.model_validate(document)

    async def load_project(self, project_id: str) -> Project:
        """Load a project snapshot and re-join it with its scene records.

        Raises:
            KeyError: If no such project exists.
            PersistenceError: If the store cannot be read.
        """
        snapshot = await self.load_snapshot(project_id)
        if snapshot is None:
            raise KeyError(f"Project not found: {project_id}")

        prefix = naming.scene_document_key(project_id, "")
        try:
            documents = await asyncio.to_thread(self._store.list_documents, prefix)
        except Exception as e:
            raise PersistenceError(f"Could not read scenes of {project_id}: {e}") from e

        records: Dict[str, Scene] = {}
        for key, document in documents.items():
            try:
                scene = Scene.model_validate(document)
            except ValidationError as e:
                logger.warning(f"Skipping unreadable scene record {key}: {e}")
                continue
            records[scene.id] = scene.model_copy(update={flag: False for flag in TRANSIENT_FLAGS})

        project = Project.from_snapshot(snapshot, records)
        logger.info(f"Loaded project {project.id} with {project.scene_count} scenes")
        return project

    async def list_projects(self, owner: Optional[str] = None) -> List[ProjectSnapshot]:
        """Snapshots of an owner's projects, most recently updated first."""
        owner = owner or self.owner
        try:
            documents = await asyncio.to_thread(
                self._store.list_documents, "projects/", name="project"
            )
        except Exception as e:
            raise PersistenceError(f"Could not list projects: {e}") from e

        snapshots = []
        for document in documents.values():
            snapshot = ProjectSnapshot.model_validate(document)
            if snapshot.owner == owner:
                snapshots.append(snapshot)
        snapshots.sort(key=lambda s: s.updated_at, reverse=True)
        return snapshots

    async def get_or_create_project(self, title: str, owner: Optional[str] = None) -> Project:
        """Return the owner's existing project with this title, or a new one.

        A new project is saved immediately so it shows up in listings.
        """
        owner = owner or self.owner
        for snapshot in await self.list_projects(owner):
            if snapshot.title == title:
                return await self.load_project(snapshot.id)

        now = datetime.now()
        project = Project(
            id=naming.new_project_id(),
            owner=owner,
            title=title,
            state=ProjectState.INIT,
            created_at=now,
            updated_at=now,
        )
        await self.save_snapshot(project.to_snapshot())
        logger.info(f"Created project {project.id} ({title})")
        return project
