"""Generation and persistence pipeline."""

from .board import SceneBoard
from .continuity import ContinuityAuditor
from .lifecycle import SceneController
from .orchestrator import BatchOrchestrator, BatchResult
from .persistence import ProjectStore
from .retry import retry_async, is_rate_limit_error
from .session import StoryboardSession

__all__ = [
    "SceneBoard",
    "ContinuityAuditor",
    "SceneController",
    "BatchOrchestrator",
    "BatchResult",
    "ProjectStore",
    "retry_async",
    "is_rate_limit_error",
    "StoryboardSession",
]
