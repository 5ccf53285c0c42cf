"""Async façade over every remote generation capability."""

import asyncio
import logging
from typing import Any, Callable, Optional, TypeVar

from ..agents.analysis import AnalysisInput, AnalysisResult, ScriptAnalysisAgent
from ..agents.continuity import AuditScene, ContinuityAgent, ContinuityIssue
from ..agents.tagging import TaggingAgent, TaggingInput
from ..models.style import AspectRatio, ImageSize, StyleSettings
from ..pipeline.retry import retry_async
from ..prompting import (
    UPSCALE_INSTRUCTION,
    build_image_prompt,
    build_refine_prompt,
    build_video_prompt,
)
from .imagen import ImagenClient
from .narration import NarrationClient
from .veo import VeoClient, VideoJob, VideoJobStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationClient:
    """Stateless async entry point for image, video, audio and text generation.

    Blocking SDK calls run in worker threads so the event loop suspends at
    every remote boundary. Every call goes through the shared rate-limit
    retry. Backends are created on first use, so commands that never touch
    a service never need its credentials.
    """

    def __init__(
        self,
        imagen: Optional[ImagenClient] = None,
        veo: Optional[VeoClient] = None,
        narration: Optional[NarrationClient] = None,
        analysis_agent: Optional[ScriptAnalysisAgent] = None,
        continuity_agent: Optional[ContinuityAgent] = None,
        tagging_agent: Optional[TaggingAgent] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self._imagen = imagen
        self._veo = veo
        self._narration = narration
        self._analysis_agent = analysis_agent
        self._continuity_agent = continuity_agent
        self._tagging_agent = tagging_agent
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay

    @property
    def imagen(self) -> ImagenClient:
        if self._imagen is None:
            self._imagen = ImagenClient()
        return self._imagen

    @property
    def veo(self) -> VeoClient:
        if self._veo is None:
            self._veo = VeoClient()
        return self._veo

    @property
    def narration(self) -> NarrationClient:
        if self._narration is None:
            self._narration = NarrationClient()
        return self._narration

    @property
    def analysis_agent(self) -> ScriptAnalysisAgent:
        if self._analysis_agent is None:
            self._analysis_agent = ScriptAnalysisAgent()
        return self._analysis_agent

    @property
    def continuity_agent(self) -> ContinuityAgent:
        if self._continuity_agent is None:
            self._continuity_agent = ContinuityAgent()
        return self._continuity_agent

    @property
    def tagging_agent(self) -> TaggingAgent:
        if self._tagging_agent is None:
            self._tagging_agent = TaggingAgent()
        return self._tagging_agent

    async def _call(self, description: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await retry_async(
            lambda: asyncio.to_thread(func, *args, **kwargs),
            attempts=self._retry_attempts,
            base_delay=self._retry_delay,
            description=description,
        )

    async def analyze_script(self, text: str, count: int) -> AnalysisResult:
        """Split a script into `count` scene prompts plus a character bible."""
        return await self._call(
            "script analysis",
            self.analysis_agent.run,
            AnalysisInput(script=text, scene_count=count),
        )

    async def generate_image(
        self,
        prompt: str,
        style: StyleSettings,
        reference_image: Optional[bytes] = None,
        style_reference_image: Optional[bytes] = None,
        character_bible: Optional[str] = None,
    ) -> bytes:
        """Render a scene prompt with the batch's style and character bible."""
        full_prompt = build_image_prompt(prompt, style, character_bible)
        return await self._call(
            "image generation",
            self.imagen.generate_image,
            full_prompt,
            aspect_ratio=style.aspect_ratio.api_value,
            image_size=style.image_size,
            reference_image=reference_image,
            style_reference_image=style_reference_image,
        )

    async def refine_image(
        self,
        source: bytes,
        instruction: str,
        strength: int,
        style: StyleSettings,
    ) -> bytes:
        return await self._call(
            "image refinement",
            self.imagen.edit_image,
            source,
            build_refine_prompt(instruction, strength, style),
            aspect_ratio=style.aspect_ratio.api_value,
        )

    async def upscale_image(self, source: bytes, aspect_ratio: AspectRatio) -> bytes:
        """Upscale to the highest tier; the upscaler keeps the source's aspect ratio."""
        logger.debug(f"Upscaling {aspect_ratio.value} image to {ImageSize.SIZE_4K.value}")
        return await self._call(
            "image upscale",
            self.imagen.upscale_image,
            source,
            ImageSize.SIZE_4K,
            prompt=UPSCALE_INSTRUCTION,
        )

    async def generate_video(
        self, source: bytes, prompt: str, aspect_ratio: AspectRatio
    ) -> VideoJob:
        return await self._call(
            "video generation",
            self.veo.submit,
            source,
            build_video_prompt(prompt),
            aspect_ratio=aspect_ratio.video_value,
        )

    async def poll_video_job(self, job: VideoJob) -> VideoJobStatus:
        return await self._call("video poll", self.veo.fetch_operation, job)

    async def download_video(self, uri: str) -> bytes:
        return await self._call("video download", self.veo.download, uri)

    async def generate_narration(self, text: str) -> bytes:
        """Return WAV bytes narrating the text."""
        return await self._call("narration", self.narration.synthesize, text)

    async def audit_continuity(self, scenes: list[AuditScene]) -> list[ContinuityIssue]:
        return await self._call("continuity audit", self.continuity_agent.run, scenes)

    async def auto_tag(self, prompt: str, image: Optional[bytes] = None) -> list[str]:
        return await self._call(
            "auto tagging", self.tagging_agent.run, TaggingInput(prompt=prompt, image=image)
        )
