"""Per-scene lifecycle: generation, persistence and every edit operation."""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from ..errors import (
    PersistenceError,
    PreconditionError,
    StoryboardError,
    TerminalGenerationError,
    VideoTimeoutError,
)
from ..media import decode_data_uri, encode_data_uri
from ..models.scene import ACTIVE_FIELDS, AssetVersion, MediaType, Scene, SceneStatus
from ..services.veo import VideoJob
from . import ledger

if TYPE_CHECKING:
    from .session import StoryboardSession

logger = logging.getLogger(__name__)

# Upload kind per media type, used in asset storage keys
MEDIA_KINDS = {
    MediaType.ILLUSTRATION: "illustration",
    MediaType.VIDEO: "video",
    MediaType.AUDIO: "audio",
}

EDITABLE_FIELDS = ("title", "prompt", "tags", "reference_image_url")

# States that settle_upload_state may overwrite
SETTLED_STATES = (SceneStatus.PERSISTED, SceneStatus.UPLOAD_FAILED)


def settle_upload_state(scene: Scene) -> None:
    """Mark a scene PERSISTED only if none of its media is still local."""
    if scene.has_local_media:
        scene.status = SceneStatus.UPLOAD_FAILED
        scene.upload_error = True
        scene.error = scene.error or "Some media has not been uploaded yet"
    else:
        scene.status = SceneStatus.PERSISTED
        scene.upload_error = False
        scene.error = None


class SceneController:
    """Drives one scene through generation, upload and edits.

    There is one controller per scene per session. Every public operation
    holds the scene's lock for its whole duration, so two operations on the
    same scene run one after the other while different scenes proceed
    concurrently. All state changes go through the session board as
    single-step updates; in-flight flags are always cleared on exit.
    """

    def __init__(self, session: "StoryboardSession", scene_id: str) -> None:
        self._session = session
        self.scene_id = scene_id

    @property
    def scene(self) -> Scene:
        return self._session.board.require(self.scene_id)

    def _lock(self) -> asyncio.Lock:
        return self._session.board.lock(self.scene_id)

    def _patch(self, **fields) -> Optional[Scene]:
        return self._session.board.patch(self.scene_id, **fields)

    def _update(self, fn: Callable[[Scene], Optional[Scene]]) -> Optional[Scene]:
        return self._session.board.update(self.scene_id, fn)

    # Batch phases

    async def generate(self) -> Optional[Scene]:
        """Render the scene's prompt into a local (not yet uploaded) image.

        Failures are recorded on the scene rather than raised so that one
        scene never aborts its batch.
        """
        async with self._lock():
            scene = self._patch(status=SceneStatus.GENERATING, is_loading=True, error=None)
            if scene is None:
                return None
            image: Optional[bytes] = None
            try:
                image = await self._render(scene.prompt, scene.reference_image_url)
            except Exception as e:
                logger.error(f"Scene {scene.number} generation failed: {e}")
                self._patch(status=SceneStatus.GENERATION_FAILED, error=f"Generation failed: {e}")
            finally:
                self._patch(is_loading=False)

            if image is not None:
                logger.info(f"Generated scene {scene.number}")
                self._patch(
                    status=SceneStatus.GENERATED,
                    active_image_url=encode_data_uri(image),
                    upload_error=False,
                )
            return self._session.board.get(self.scene_id)

    async def persist(self) -> Optional[Scene]:
        """Upload a generated scene and save its record.

        Upload failures leave the generated image in place and mark the
        scene UPLOAD_FAILED; they are not raised.
        """
        async with self._lock():
            if self._session.board.get(self.scene_id) is None:
                return None
            try:
                await self._upload_pending()
            except PersistenceError as e:
                logger.warning(f"Scene {self.scene.number} kept locally: {e}")
                await self._save_quietly()
            return self._session.board.get(self.scene_id)

    # Recovery

    async def retry_upload(self) -> Scene:
        """Upload a scene's local media without regenerating it."""
        async with self._lock():
            scene = self.scene
            if (
                scene.status != SceneStatus.UPLOAD_FAILED
                and not scene.upload_error
                and not scene.has_local_media
            ):
                raise PreconditionError(f"Scene {scene.number} has no failed upload to retry")
            await self._upload_pending()
            return self.scene

    async def retry_generation(self) -> Scene:
        """Re-run generation for a scene whose first render failed."""
        scene = self.scene
        if scene.status not in (SceneStatus.GENERATION_FAILED, SceneStatus.PENDING):
            raise PreconditionError(f"Scene {scene.number} did not fail generation")
        return await self.regenerate()

    # Edits

    async def regenerate(
        self,
        prompt: Optional[str] = None,
        reference_image_url: Optional[str] = None,
    ) -> Scene:
        """Render a new illustration and make it active.

        The replaced illustration is added to history first if it was never
        recorded, so it can always be restored.
        """
        async with self._lock():
            scene = self.scene
            new_prompt = prompt if prompt is not None else scene.prompt
            reference = reference_image_url or scene.reference_image_url

            def before_commit(s: Scene) -> None:
                ledger.record_active(s, MediaType.ILLUSTRATION)
                s.prompt = new_prompt

            return await self._run(
                scene,
                SceneStatus.REGENERATING,
                "is_loading",
                lambda: self._render(new_prompt, reference),
                MediaType.ILLUSTRATION,
                "image/png",
                prompt_used=new_prompt,
                before_commit=before_commit,
            )

    async def refine(self, instruction: str, strength: int = 50) -> Scene:
        """Edit the active illustration following a text instruction.

        Args:
            instruction: What to change.
            strength: 0-100; above 60 the image is substantially redrawn.
        """
        if not 0 <= strength <= 100:
            raise ValueError("strength must be between 0 and 100")
        async with self._lock():
            scene = self.scene
            source_url = self._require_durable_image(scene, "refined")

            async def produce() -> bytes:
                source = await self._session.store.fetch_media(source_url)
                return await self._session.generation.refine_image(
                    source, instruction, strength, self._session.style
                )

            return await self._run(
                scene,
                SceneStatus.REFINING,
                "is_loading",
                produce,
                MediaType.ILLUSTRATION,
                "image/png",
                prompt_used=scene.prompt,
                before_commit=lambda s: ledger.record_active(s, MediaType.ILLUSTRATION),
            )

    async def upscale(self) -> Scene:
        """Upscale the active illustration to the highest resolution tier."""
        async with self._lock():
            scene = self.scene
            source_url = self._require_durable_image(scene, "upscaled")

            async def produce() -> bytes:
                source = await self._session.store.fetch_media(source_url)
                return await self._session.generation.upscale_image(
                    source, self._session.style.aspect_ratio
                )

            return await self._run(
                scene,
                SceneStatus.UPSCALING,
                "is_loading",
                produce,
                MediaType.ILLUSTRATION,
                "image/png",
                prompt_used=scene.prompt,
                before_commit=lambda s: ledger.record_active(s, MediaType.ILLUSTRATION),
            )

    async def animate(self) -> Scene:
        """Turn the active illustration into a short video clip."""
        async with self._lock():
            scene = self.scene
            source_url = self._require_durable_image(scene, "animated")

            async def produce() -> bytes:
                generation = self._session.generation
                source = await self._session.store.fetch_media(source_url)
                job = await generation.generate_video(
                    source, scene.prompt, self._session.style.aspect_ratio
                )
                video_uri = await self._wait_for_video(job)
                return await generation.download_video(video_uri)

            return await self._run(
                scene,
                SceneStatus.ANIMATING_VIDEO,
                "is_video_loading",
                produce,
                MediaType.VIDEO,
                "video/mp4",
                prompt_used=scene.prompt,
            )

    async def narrate(self, text: Optional[str] = None) -> Scene:
        """Synthesize narration audio for the scene (its prompt by default)."""
        async with self._lock():
            scene = self.scene
            script = (text or scene.prompt).strip()
            if not script:
                raise PreconditionError(f"Scene {scene.number} has no text to narrate")

            return await self._run(
                scene,
                SceneStatus.NARRATING_AUDIO,
                "is_audio_loading",
                lambda: self._session.generation.generate_narration(script),
                MediaType.AUDIO,
                "audio/wav",
                prompt_used=script,
            )

    async def restore(self, asset_id: str) -> AssetVersion:
        """Make a historical version active again and save."""
        async with self._lock():
            restored: List[AssetVersion] = []

            def apply(s: Scene) -> None:
                restored.append(ledger.restore(s, asset_id))
                if s.status in SETTLED_STATES:
                    settle_upload_state(s)

            self._update(apply)
            if not restored:
                raise KeyError(f"Unknown scene: {self.scene_id}")
            logger.info(f"Restored {restored[0].media_type.value} version {asset_id}")
            await self._save()
            return restored[0]

    async def delete_version(self, asset_id: str) -> AssetVersion:
        """Remove a version from history and delete its stored blob."""
        async with self._lock():
            removed: List[AssetVersion] = []

            def apply(s: Scene) -> None:
                removed.append(ledger.delete(s, asset_id))
                if s.status in SETTLED_STATES:
                    settle_upload_state(s)

            self._update(apply)
            if not removed:
                raise KeyError(f"Unknown scene: {self.scene_id}")
            await self._session.store.delete_media(removed[0].url)
            await self._save()
            return removed[0]

    async def update(self, **fields) -> Scene:
        """Edit scene metadata (title, prompt, tags, reference image)."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be edited directly: {', '.join(sorted(unknown))}")
        async with self._lock():
            scene = self._patch(**fields)
            if scene is None:
                raise KeyError(f"Unknown scene: {self.scene_id}")
            await self._save()
            return self.scene

    async def auto_tag(self) -> List[str]:
        """Label the scene with short tags. Best effort: failures return []."""
        async with self._lock():
            scene = self.scene
            try:
                image = None
                if scene.has_durable_image:
                    image = await self._session.store.fetch_media(scene.active_image_url)
                tags = await self._session.generation.auto_tag(scene.prompt, image)
            except Exception as e:
                logger.warning(f"Auto-tagging scene {scene.number} failed: {e}")
                return []

            self._patch(tags=tags)
            await self._save_quietly()
            return tags

    # Internals

    async def _run(
        self,
        scene: Scene,
        status: SceneStatus,
        flag: str,
        produce: Callable,
        media_type: MediaType,
        content_type: str,
        prompt_used: str,
        before_commit: Optional[Callable[[Scene], object]] = None,
    ) -> Scene:
        """Shared skeleton of every edit: flag, produce, publish, clean up."""
        previous_status = scene.status
        if previous_status in (SceneStatus.PENDING, SceneStatus.GENERATING):
            previous_status = SceneStatus.GENERATION_FAILED

        self._patch(**{flag: True, "status": status, "error": None})
        try:
            try:
                data = await produce()
            except Exception as e:
                logger.error(f"Scene {scene.number} {status.value} failed: {e}")
                self._patch(status=previous_status, error=str(e))
                raise
            await self._publish(media_type, content_type, data, prompt_used, before_commit)
        finally:
            self._patch(**{flag: False})
        return self.scene

    async def _publish(
        self,
        media_type: MediaType,
        content_type: str,
        data: bytes,
        prompt_used: str,
        before_commit: Optional[Callable[[Scene], object]] = None,
    ) -> Scene:
        """Upload new media, record it as the active version and save.

        If the upload fails the media stays on the scene as a local render
        and the scene is marked UPLOAD_FAILED so it can be retried. After a
        successful upload, renders the scene still holds locally are pushed
        too; the scene only reads PERSISTED once none are left.
        """
        session = self._session
        try:
            url = await session.store.upload_media(
                session.project, self.scene, MEDIA_KINDS[media_type], data, content_type
            )
        except PersistenceError as e:
            local_url = encode_data_uri(data, content_type)

            def keep_local(s: Scene) -> None:
                if before_commit:
                    before_commit(s)
                setattr(s, ACTIVE_FIELDS[media_type], local_url)
                s.status = SceneStatus.UPLOAD_FAILED
                s.upload_error = True
                s.error = str(e)

            self._update(keep_local)
            await self._save_quietly()
            raise

        version = AssetVersion(media_type=media_type, url=url, prompt_used=prompt_used)

        def commit(s: Scene) -> None:
            if before_commit:
                before_commit(s)
            ledger.append(s, version)
            s.error = None
            settle_upload_state(s)

        self._update(commit)
        if self.scene.has_local_media:
            # Earlier renders that never made it to the store get another try
            try:
                await self._upload_local()
            except PersistenceError as e:
                logger.warning(f"Scene {self.scene.number} still has local media: {e}")
                self._patch(error=str(e))
            self._update(settle_upload_state)
        await self._save()
        return self.scene

    async def _upload_pending(self) -> None:
        """Upload all local media and mark the scene PERSISTED."""
        self._patch(status=SceneStatus.UPLOADING, is_uploading=True)
        try:
            await self._upload_local()
            self._update(settle_upload_state)
            await self._save()
        except PersistenceError as e:
            self._patch(status=SceneStatus.UPLOAD_FAILED, upload_error=True, error=str(e))
            raise
        finally:
            self._patch(is_uploading=False)

    async def _upload_local(self) -> None:
        """Upload every local render on the scene, active or in history.

        Raises:
            PersistenceError: On the first upload that fails. Renders
                uploaded before it stay swapped for their durable copies.
        """
        for media_type, local_url in self.scene.local_media():
            data, content_type = decode_data_uri(local_url)
            url = await self._session.store.upload_media(
                self._session.project, self.scene, MEDIA_KINDS[media_type], data, content_type
            )
            prompt_used = self.scene.prompt
            self._update(
                lambda s: ledger.replace_local(s, media_type, local_url, url, prompt_used)
            )

    async def _render(self, prompt: str, reference_url: Optional[str]) -> bytes:
        session = self._session
        reference = await self._load_optional(reference_url)
        style_reference = await self._load_optional(session.style.style_reference_url)
        return await session.generation.generate_image(
            prompt,
            session.style,
            reference_image=reference,
            style_reference_image=style_reference,
            character_bible=session.project.character_bible or None,
        )

    async def _load_optional(self, url: Optional[str]) -> Optional[bytes]:
        """Load a reference image; unreadable references are skipped."""
        if not url:
            return None
        try:
            return await self._session.store.fetch_media(url)
        except (PersistenceError, ValueError) as e:
            logger.warning(f"Ignoring unreadable reference image {url[:60]}: {e}")
            return None

    async def _wait_for_video(self, job: VideoJob) -> str:
        """Poll a video job until it finishes or the poll ceiling is reached."""
        session = self._session
        for attempt in range(1, session.max_polls + 1):
            await asyncio.sleep(session.poll_interval)
            status = await session.generation.poll_video_job(job)
            logger.debug(f"Video job {job.operation_name}: poll {attempt}, {status.status.value}")
            if not status.done:
                continue
            if status.error:
                raise TerminalGenerationError(f"Video generation failed: {status.error}")
            if not status.video_uri:
                raise TerminalGenerationError("Video job finished without a video")
            return status.video_uri

        raise VideoTimeoutError(
            f"Video generation did not finish after {session.max_polls} polls"
        )

    async def _save(self) -> None:
        """Save the scene record and project snapshot, flagging failures."""
        try:
            await self._session.persist_scene(self.scene_id)
        except PersistenceError as e:
            logger.error(f"Could not save scene {self.scene_id}: {e}")
            self._patch(status=SceneStatus.UPLOAD_FAILED, upload_error=True, error=str(e))
            raise

    async def _save_quietly(self) -> None:
        try:
            await self._session.persist_scene(self.scene_id)
        except StoryboardError as e:
            logger.warning(f"Could not save scene record {self.scene_id}: {e}")

    @staticmethod
    def _require_durable_image(scene: Scene, action: str) -> str:
        if not scene.has_durable_image:
            raise PreconditionError(
                f"Scene {scene.number} must have a saved image before it can be {action}"
            )
        return scene.active_image_url
