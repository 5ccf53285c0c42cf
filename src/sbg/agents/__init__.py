"""AI agents for script analysis, continuity review and tagging."""

from .base import BaseAgent
from .analysis import ScriptAnalysisAgent, AnalysisInput, AnalysisResult
from .continuity import ContinuityAgent, ContinuityIssue, AuditScene
from .tagging import TaggingAgent, TaggingInput

__all__ = [
    "BaseAgent",
    "ScriptAnalysisAgent",
    "AnalysisInput",
    "AnalysisResult",
    "ContinuityAgent",
    "ContinuityIssue",
    "AuditScene",
    "TaggingAgent",
    "TaggingInput",
]
