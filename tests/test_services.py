"""
Tests for the Vertex AI service wrappers and the async generation client.
"""

import base64
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from sbg.config import config
from sbg.errors import ModelRefusalError, TerminalGenerationError, TransientRemoteError
from sbg.models import AspectRatio, StyleSettings
from sbg.services.anthropic import AnthropicClient
from sbg.services.generation import GenerationClient
from sbg.services.imagen import ImagenClient
from sbg.services.narration import NarrationClient, pcm_to_wav
from sbg.services.veo import GenerationStatus, VeoClient, VideoJob


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def vertex():
    """Mock VertexClient; set post.return_value per test."""
    mock = MagicMock()
    mock.project_id = "test-project"
    return mock


class TestImagenClient:
    """Tests for ImagenClient."""

    def test_generate_returns_first_image(self, vertex):
        vertex.post.return_value = {"predictions": [{"bytesBase64Encoded": b64(b"png")}]}
        client = ImagenClient(vertex=vertex, model="imagen-test", edit_model="imagen-edit")

        assert client.generate_image("A fox", aspect_ratio="1:1") == b"png"

        model, method, body = vertex.post.call_args.args
        assert (model, method) == ("imagen-test", "predict")
        assert body["parameters"]["aspectRatio"] == "1:1"
        assert "referenceImages" not in body["instances"][0]

    def test_references_switch_to_edit_model(self, vertex):
        vertex.post.return_value = {"predictions": [{"bytesBase64Encoded": b64(b"png")}]}
        client = ImagenClient(vertex=vertex, model="imagen-test", edit_model="imagen-edit")

        client.generate_image("A fox", reference_image=b"sketch", style_reference_image=b"style")

        model, _, body = vertex.post.call_args.args
        instance = body["instances"][0]
        assert model == "imagen-edit"
        assert [r["referenceType"] for r in instance["referenceImages"]] == [
            "REFERENCE_TYPE_CONTROL", "REFERENCE_TYPE_STYLE",
        ]
        assert instance["prompt"].endswith("A fox")

    def test_text_only_answer_is_a_refusal(self, vertex):
        vertex.post.return_value = {"predictions": [{"raiFilteredReason": "Person generation blocked"}]}

        with pytest.raises(ModelRefusalError) as exc_info:
            ImagenClient(vertex=vertex).generate_image("A fox")

        assert exc_info.value.response_text == "Person generation blocked"

    def test_empty_answer(self, vertex):
        vertex.post.return_value = {}

        with pytest.raises(TerminalGenerationError):
            ImagenClient(vertex=vertex).edit_image(b"png", "add a hat")


class TestVeoClient:
    """Tests for VeoClient."""

    @pytest.mark.parametrize("prompt, ratio", [("", "16:9"), ("Pan left", "1:1")])
    def test_submit_validates_input(self, vertex, prompt, ratio):
        with pytest.raises(ValueError):
            VeoClient(vertex=vertex).submit(b"png", prompt, aspect_ratio=ratio)
        vertex.post.assert_not_called()

    def test_submit_returns_job(self, vertex):
        vertex.post.return_value = {"name": "operations/abc"}

        job = VeoClient(vertex=vertex, model="veo-test").submit(b"png", "Pan left")

        assert job.operation_name == "operations/abc"
        assert job.model == "veo-test"

    def test_rejects_non_gcs_bucket(self, vertex):
        with pytest.raises(ValueError):
            VeoClient(vertex=vertex, output_bucket="s3://bucket")

    @pytest.mark.parametrize("response, done, status, uri", [
        ({}, False, GenerationStatus.PROCESSING, None),
        ({"done": True, "error": {"message": "blocked"}}, True, GenerationStatus.FAILED, None),
        ({"done": True, "response": {"videos": []}}, True, GenerationStatus.FAILED, None),
        (
            {"done": True, "response": {"videos": [{"gcsUri": "gs://b/v.mp4"}]}},
            True, GenerationStatus.COMPLETED, "gs://b/v.mp4",
        ),
    ])
    def test_fetch_operation(self, vertex, response, done, status, uri):
        vertex.post.return_value = response

        result = VeoClient(vertex=vertex).fetch_operation(VideoJob("operations/abc", "veo-test"))

        assert (result.done, result.status, result.video_uri) == (done, status, uri)

    def test_inline_video_round_trips_through_download(self, vertex):
        vertex.post.return_value = {
            "done": True,
            "response": {"videos": [{"bytesBase64Encoded": b64(b"mp4"), "mimeType": "video/mp4"}]},
        }
        client = VeoClient(vertex=vertex)

        status = client.fetch_operation(VideoJob("operations/abc", "veo-test"))

        assert client.download(status.video_uri) == b"mp4"


class TestNarrationClient:
    """Tests for NarrationClient."""

    def test_pcm_is_wrapped_in_wav(self):
        wav = pcm_to_wav(b"\x00\x00" * 10)
        assert wav[:4] == b"RIFF"
        assert wav[8:12] == b"WAVE"

    def test_synthesize(self, vertex):
        vertex.post.return_value = {
            "candidates": [{"content": {"parts": [{"inlineData": {"data": b64(b"\x00\x00")}}]}}]
        }

        assert NarrationClient(vertex=vertex, voice="Kore").synthesize("Hello")[:4] == b"RIFF"

    def test_no_audio(self, vertex):
        vertex.post.return_value = {"candidates": []}

        with pytest.raises(TerminalGenerationError):
            NarrationClient(vertex=vertex).synthesize("Hello")

    def test_empty_text(self, vertex):
        with pytest.raises(ValueError):
            NarrationClient(vertex=vertex).synthesize("  ")


class TestGenerationClient:
    """Tests for GenerationClient."""

    @pytest.mark.asyncio
    async def test_rate_limits_are_retried(self):
        imagen = MagicMock()
        imagen.generate_image.side_effect = [
            google_exceptions.TooManyRequests("quota exceeded"),
            b"png",
        ]
        client = GenerationClient(imagen=imagen, retry_attempts=3, retry_delay=0)

        assert await client.generate_image("A fox", StyleSettings()) == b"png"
        assert imagen.generate_image.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhaustion(self):
        imagen = MagicMock()
        imagen.generate_image.side_effect = google_exceptions.TooManyRequests("quota exceeded")
        client = GenerationClient(imagen=imagen, retry_attempts=2, retry_delay=0)

        with pytest.raises(TransientRemoteError) as exc_info:
            await client.generate_image("A fox", StyleSettings())

        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        imagen = MagicMock()
        imagen.generate_image.side_effect = ModelRefusalError("refused", response_text="no")
        client = GenerationClient(imagen=imagen, retry_attempts=3, retry_delay=0)

        with pytest.raises(ModelRefusalError):
            await client.generate_image("A fox", StyleSettings())

        assert imagen.generate_image.call_count == 1

    @pytest.mark.asyncio
    async def test_image_request_uses_style(self):
        imagen = MagicMock()
        imagen.generate_image.return_value = b"png"
        client = GenerationClient(imagen=imagen)
        style = StyleSettings(art_style="Watercolor", aspect_ratio=AspectRatio.PORTRAIT)

        await client.generate_image("A fox", style, character_bible="Fox: red coat")

        args, kwargs = imagen.generate_image.call_args
        assert "SCENE ACTION: A fox" in args[0]
        assert "Fox: red coat" in args[0]
        assert kwargs["aspect_ratio"] == "9:16"

    @pytest.mark.asyncio
    async def test_video_uses_supported_ratio(self):
        veo = MagicMock()
        veo.submit.return_value = VideoJob("operations/abc", "veo-test")
        client = GenerationClient(veo=veo)

        await client.generate_video(b"png", "A fox runs", AspectRatio.SQUARE)

        assert veo.submit.call_args.kwargs["aspect_ratio"] == "16:9"


class TestAnthropicClient:
    """Tests for AnthropicClient reply handling."""

    @pytest.fixture
    def sdk(self, monkeypatch):
        sdk = MagicMock()
        monkeypatch.setattr("sbg.services.anthropic.Anthropic", sdk)
        return sdk.return_value

    def test_joins_text_blocks(self, sdk):
        sdk.messages.create.return_value = SimpleNamespace(
            stop_reason="end_turn",
            content=[
                SimpleNamespace(type="text", text='{"scenes": '),
                SimpleNamespace(type="text", text='["a"]}'),
            ],
        )
        client = AnthropicClient(api_key="test-key", model="claude-test")

        assert client.create_message("Split this", system="Be brief") == '{"scenes": ["a"]}'

        request = sdk.messages.create.call_args.kwargs
        assert request["model"] == "claude-test"
        assert request["system"] == "Be brief"
        assert request["messages"] == [{"role": "user", "content": "Split this"}]

    def test_reply_without_text(self, sdk):
        sdk.messages.create.return_value = SimpleNamespace(stop_reason="end_turn", content=[])

        with pytest.raises(TerminalGenerationError):
            AnthropicClient(api_key="test-key").create_message("Split this")

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.setattr(config, "anthropic_api_key", "")

        with pytest.raises(ValueError):
            AnthropicClient()
