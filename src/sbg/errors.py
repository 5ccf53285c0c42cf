"""Error taxonomy for the generation and persistence pipeline."""

from typing import Optional


class StoryboardError(Exception):
    """Base class for all storyboard pipeline errors."""


class TransientRemoteError(StoryboardError):
    """A rate-limit or quota error that persisted through every retry."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class TerminalGenerationError(StoryboardError):
    """The generation service returned an unusable or malformed result."""


class ModelRefusalError(TerminalGenerationError):
    """The model answered with text instead of the requested media."""

    def __init__(self, message: str, response_text: str = "") -> None:
        super().__init__(message)
        self.response_text = response_text


class VideoTimeoutError(TerminalGenerationError):
    """A long-running video job did not finish within the poll ceiling."""


class PreconditionError(StoryboardError):
    """An operation was attempted on a scene that cannot support it yet."""


class PersistenceError(StoryboardError):
    """Upload or metadata write failed; the generated result is kept."""

    def __init__(self, message: str, scene_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.scene_id = scene_id


class AnalysisError(StoryboardError):
    """Script analysis produced no scene prompts; the batch cannot start."""
