"""
Pytest Configuration and Fixtures

Shared fixtures for all tests: an in-process generation client and a
workspace-backed asset store, so no test touches the network.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from sbg.agents.analysis import AnalysisResult
from sbg.agents.continuity import AuditScene, ContinuityIssue
from sbg.models import Project, Scene, SceneStatus, StyleSettings
from sbg.pipeline import ProjectStore, StoryboardSession
from sbg.services.storage import LocalAssetStore
from sbg.services.veo import GenerationStatus, VideoJob, VideoJobStatus

DEFAULT_PROMPTS = [
    "The hero wakes up in a quiet village",
    "The hero crosses a stormy mountain pass",
    "The hero arrives at the glass castle",
]


class FakeGenerationClient:
    """Stand-in for GenerationClient with scriptable results.

    Images are the prompt text encoded as bytes, so tests can tell renders
    apart. ``events`` records (event, prompt) pairs in the order they happen.
    """

    def __init__(self, prompts: Optional[List[str]] = None) -> None:
        self.prompts = list(prompts or DEFAULT_PROMPTS)
        self.character_bible = "Hero: tall, red scarf, short black hair"
        self.image_failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.image_calls: List[dict] = []
        self.events: List[tuple] = []
        self.video_statuses: List[VideoJobStatus] = []
        self.polls = 0
        self.issues: List[ContinuityIssue] = []
        self.audited: Optional[List[AuditScene]] = None
        self.tags = ["outdoor", "calm"]
        self.tag_error: Optional[Exception] = None
        self.remote_calls: List[str] = []

    async def analyze_script(self, text: str, count: int) -> AnalysisResult:
        self.remote_calls.append("analyze_script")
        return AnalysisResult(scene_prompts=self.prompts[:count], character_bible=self.character_bible)

    async def generate_image(
        self,
        prompt: str,
        style: StyleSettings,
        reference_image: Optional[bytes] = None,
        style_reference_image: Optional[bytes] = None,
        character_bible: Optional[str] = None,
    ) -> bytes:
        self.remote_calls.append("generate_image")
        self.image_calls.append({
            "prompt": prompt,
            "reference_image": reference_image,
            "style_reference_image": style_reference_image,
            "character_bible": character_bible,
        })
        self.events.append(("start", prompt))
        await asyncio.sleep(self.delays.get(prompt, 0.01))
        self.events.append(("end", prompt))
        for marker, error in self.image_failures.items():
            if marker in prompt:
                raise error
        return f"image:{prompt}".encode()

    async def refine_image(self, source: bytes, instruction: str, strength: int, style) -> bytes:
        self.remote_calls.append("refine_image")
        return b"refined:" + source

    async def upscale_image(self, source: bytes, aspect_ratio) -> bytes:
        self.remote_calls.append("upscale_image")
        return b"upscaled:" + source

    async def generate_video(self, source: bytes, prompt: str, aspect_ratio) -> VideoJob:
        self.remote_calls.append("generate_video")
        return VideoJob(operation_name="operations/video-1", model="veo-test")

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus:
        self.polls += 1
        if self.video_statuses:
            return self.video_statuses.pop(0)
        return VideoJobStatus(done=False)

    async def download_video(self, uri: str) -> bytes:
        return b"video-bytes"

    async def generate_narration(self, text: str) -> bytes:
        self.remote_calls.append("generate_narration")
        return b"RIFF-narration"

    async def audit_continuity(self, scenes: List[AuditScene]) -> List[ContinuityIssue]:
        self.remote_calls.append("audit_continuity")
        self.audited = scenes
        return list(self.issues)

    async def auto_tag(self, prompt: str, image: Optional[bytes] = None) -> List[str]:
        if self.tag_error:
            raise self.tag_error
        return list(self.tags)


class FlakyAssetStore(LocalAssetStore):
    """Local store whose writes can be made to fail.

    Uploads fail for scenes in ``failing_scenes`` and for payloads in
    ``failing_payloads``.
    """

    def __init__(self, root) -> None:
        super().__init__(root)
        self.failing_scenes: set = set()
        self.failing_payloads: set = set()
        self.fail_deletes = False
        self.fail_documents = False
        self.upload_keys: List[str] = []

    def upload(self, owner_key, project_key, asset_key, data, content_type):
        self.upload_keys.append(asset_key)
        if data in self.failing_payloads or any(
            f"/scene_{n:02d}_" in asset_key for n in self.failing_scenes
        ):
            raise OSError("bucket unavailable")
        return super().upload(owner_key, project_key, asset_key, data, content_type)

    def delete(self, url):
        if self.fail_deletes:
            raise OSError("bucket unavailable")
        super().delete(url)

    def write_document(self, key, document):
        if self.fail_documents:
            raise OSError("metadata store unavailable")
        super().write_document(key, document)


@pytest.fixture
def asset_store(tmp_path) -> FlakyAssetStore:
    """Workspace-backed asset store under a temporary directory."""
    return FlakyAssetStore(tmp_path / "workspace")


@pytest.fixture
def project_store(asset_store) -> ProjectStore:
    return ProjectStore(asset_store, owner="tester")


@pytest.fixture
def generation() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def project() -> Project:
    return Project(id="proj-test", owner="tester", title="Test Story")


@pytest.fixture
def session(project, project_store, generation) -> StoryboardSession:
    """Session with instant video polling and a three-poll ceiling."""
    return StoryboardSession(
        project,
        project_store,
        generation,
        poll_interval=0,
        max_polls=3,
    )


def add_scene(session: StoryboardSession, number: int, prompt: str) -> Scene:
    """Put a pending scene on the board without rendering it."""
    scene = Scene(
        id=f"scene-{number}",
        number=number,
        title=f"Scene {number}",
        prompt=prompt,
        project_id=session.project.id,
        status=SceneStatus.PENDING,
    )
    return session.board.add(scene)


async def persisted_scene(session: StoryboardSession, number: int, prompt: str) -> Scene:
    """Add, render and upload one scene."""
    scene = add_scene(session, number, prompt)
    controller = session.controller(scene.id)
    await controller.generate()
    return await controller.persist()


def completed(uri: str = "gs://bucket/veo/video.mp4") -> VideoJobStatus:
    return VideoJobStatus(done=True, status=GenerationStatus.COMPLETED, video_uri=uri)
