"""External service integrations."""

from .anthropic import AnthropicClient
from .storage import AssetStore, GCSAssetStore, LocalAssetStore, create_store
from .veo import GenerationStatus, VeoClient, VideoJob, VideoJobStatus

__all__ = [
    "AnthropicClient",
    "AssetStore",
    "GCSAssetStore",
    "LocalAssetStore",
    "create_store",
    "GenerationStatus",
    "VeoClient",
    "VideoJob",
    "VideoJobStatus",
]
