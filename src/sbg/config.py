"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key"
    )
    google_application_credentials: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""),
        description="Path to Google Cloud service account JSON"
    )
    google_cloud_project: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""),
        description="Google Cloud project ID"
    )
    google_cloud_location: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1"),
        description="Vertex AI region"
    )
    asset_bucket: str = Field(
        default_factory=lambda: os.getenv("SBG_BUCKET", ""),
        description="GCS bucket for scene assets and project documents"
    )

    # Storage
    store_backend: str = Field(
        default_factory=lambda: os.getenv("SBG_STORE", "local"),
        description="Asset store backend: 'local' or 'gcs'"
    )
    workspace: Path = Field(
        default_factory=lambda: Path(os.getenv("SBG_WORKSPACE", ".storyboard")),
        description="Workspace directory for the local asset store"
    )
    owner: str = Field(
        default_factory=lambda: os.getenv("SBG_OWNER", "local-guest"),
        description="Owner key used to namespace uploaded assets"
    )

    # Model settings
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Default Claude model for script analysis and audits"
    )
    imagen_model: str = Field(
        default_factory=lambda: os.getenv("SBG_IMAGEN_MODEL", "imagen-3.0-fast-generate-001"),
        description="Imagen model for scene illustrations"
    )
    imagen_edit_model: str = Field(
        default="imagen-3.0-capability-001",
        description="Imagen model for refinement edits"
    )
    imagen_upscale_model: str = Field(
        default="imagegeneration@002",
        description="Imagen model for upscaling"
    )
    veo_model: str = Field(
        default_factory=lambda: os.getenv("SBG_VEO_MODEL", "veo-3.0-fast-generate-001"),
        description="Veo model for scene animation"
    )
    tts_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        description="Gemini model for narration"
    )
    tts_voice: str = Field(default="Kore", description="Prebuilt narration voice")

    # Retry and polling
    retry_attempts: int = Field(
        default_factory=lambda: int(os.getenv("SBG_RETRY_ATTEMPTS", "3")),
        description="Attempt ceiling for rate-limited remote calls"
    )
    retry_base_delay: float = Field(
        default_factory=lambda: float(os.getenv("SBG_RETRY_DELAY", "5.0")),
        description="Backoff step in seconds (delay = step * attempt)"
    )
    video_poll_interval: float = Field(
        default=10.0,
        description="Seconds between video job polls"
    )
    video_max_polls: int = Field(
        default=30,
        description="Maximum number of video job polls before timing out"
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_required(self) -> None:
        """Validate that required credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def validate_vertex_required(self) -> None:
        """Validate that Vertex AI settings are present.

        Raises:
            ValueError: If GOOGLE_CLOUD_PROJECT is missing.
        """
        if not self.google_cloud_project:
            raise ValueError(
                "Missing required Vertex AI configuration: GOOGLE_CLOUD_PROJECT. "
                "Set the corresponding environment variable."
            )

    def validate_gcs_required(self) -> None:
        """Validate that Google Cloud Storage settings are set.

        Raises:
            ValueError: If any required storage configuration is missing.
        """
        missing: list[str] = []

        if not self.google_cloud_project:
            missing.append("GOOGLE_CLOUD_PROJECT")
        if not self.asset_bucket:
            missing.append("SBG_BUCKET")

        if missing:
            raise ValueError(
                f"Missing required storage configuration: {', '.join(missing)}. "
                "Set the corresponding environment variables."
            )

        # Validate bucket format
        if self.asset_bucket and not self.asset_bucket.startswith("gs://"):
            raise ValueError(
                f"SBG_BUCKET must be a GCS URI starting with 'gs://'. "
                f"Got: {self.asset_bucket}"
            )


# Global config instance
config = Config()
