"""Text-to-speech narration via Gemini on Vertex AI."""

import base64
import io
import logging
import wave
from typing import Optional

from ..config import config
from ..errors import TerminalGenerationError
from .vertex import VertexClient

logger = logging.getLogger(__name__)

# Gemini TTS returns raw 16-bit mono PCM at 24kHz
SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2
CHANNELS = 1


def pcm_to_wav(pcm: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Wrap raw PCM samples in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(CHANNELS)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


class NarrationClient:
    """Client wrapper for Gemini speech generation."""

    def __init__(
        self,
        vertex: Optional[VertexClient] = None,
        model: Optional[str] = None,
        voice: Optional[str] = None,
    ) -> None:
        self._vertex = vertex or VertexClient()
        self._model = model or config.tts_model
        self._voice = voice or config.tts_voice

    def synthesize(self, text: str) -> bytes:
        """Render narration for a piece of text.

        Args:
            text: Text to speak.

        Returns:
            WAV bytes.

        Raises:
            ValueError: If text is empty.
            TerminalGenerationError: If the response carries no audio.
        """
        if not text or not text.strip():
            raise ValueError("Narration text cannot be empty")

        logger.info(f"Generating narration ({len(text)} chars, voice {self._voice})")
        data = self._vertex.post(self._model, "generateContent", {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self._voice}},
                },
            },
        })

        candidates = data.get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts", [])
        for part in parts:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                return pcm_to_wav(base64.b64decode(inline["data"]))

        raise TerminalGenerationError("No audio generated")
