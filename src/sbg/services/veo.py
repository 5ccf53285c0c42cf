"""Google Veo API client wrapper via Vertex AI."""

import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import storage

from ..config import config
from ..media import decode_data_uri, encode_data_uri
from .vertex import VertexClient

logger = logging.getLogger(__name__)


class GenerationStatus(str, Enum):
    """Status of a Veo generation operation."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class VideoJob:
    """Handle for a submitted long-running video generation."""

    operation_name: str
    model: str
    started_at: datetime = field(default_factory=datetime.now)
    metadata: dict = field(default_factory=dict)


@dataclass
class VideoJobStatus:
    """Result of polling a video job once."""

    done: bool
    status: GenerationStatus = GenerationStatus.PROCESSING
    video_uri: Optional[str] = None
    error: Optional[str] = None


class VeoClient:
    """Client wrapper for Google Veo image-to-video generation via Vertex AI.

    This client handles:
    - Submitting image-to-video requests as long-running operations
    - Fetching the state of a submitted operation
    - Downloading generated videos from GCS

    Polling cadence and the attempt ceiling belong to the caller.
    """

    DEFAULT_RESOLUTION = "720p"
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 2.0

    def __init__(
        self,
        vertex: Optional[VertexClient] = None,
        model: Optional[str] = None,
        output_bucket: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        """Initialize the Veo client.

        Args:
            vertex: Authenticated Vertex client. Created if not provided.
            model: Veo model name. Defaults to config.veo_model.
            output_bucket: Optional gs:// prefix where Veo writes its output.
                Without it, videos come back inline.
            max_retries: Maximum retry attempts for GCS downloads.
            retry_delay: Base delay between download retries (exponential backoff).
        """
        self._vertex = vertex or VertexClient()
        self._model = model or config.veo_model
        self._output_bucket = output_bucket or ""
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._storage_client: Optional[storage.Client] = None

        if self._output_bucket and not self._output_bucket.startswith("gs://"):
            raise ValueError(
                f"Veo output bucket must be a GCS URI starting with 'gs://'. "
                f"Got: {self._output_bucket}"
            )

    @property
    def model(self) -> str:
        return self._model

    def submit(
        self,
        image: bytes,
        prompt: str,
        aspect_ratio: str = "16:9",
        resolution: str = DEFAULT_RESOLUTION,
    ) -> VideoJob:
        """Start an image-to-video generation.

        Args:
            image: PNG bytes of the first frame.
            prompt: Motion and camera description.
            aspect_ratio: '16:9' or '9:16'.
            resolution: Output resolution.

        Returns:
            VideoJob handle to poll.

        Raises:
            ValueError: If prompt is empty or the aspect ratio is unsupported.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")

        if aspect_ratio not in ("16:9", "9:16"):
            raise ValueError(f"Invalid aspect_ratio: {aspect_ratio}. Must be '16:9' or '9:16'")

        parameters: dict[str, Any] = {
            "sampleCount": 1,
            "aspectRatio": aspect_ratio,
            "resolution": resolution,
        }
        if self._output_bucket:
            parameters["storageUri"] = f"{self._output_bucket.rstrip('/')}/veo/"

        logger.info(f"Starting Veo generation with {self._model}")
        logger.debug(f"Prompt: {prompt[:100]}...")
        data = self._vertex.post(self._model, "predictLongRunning", {
            "instances": [{
                "prompt": prompt,
                "image": {
                    "bytesBase64Encoded": base64.b64encode(image).decode("ascii"),
                    "mimeType": "image/png",
                },
            }],
            "parameters": parameters,
        })

        operation_name = data.get("name")
        if not operation_name:
            raise ValueError("Veo response did not include an operation name")

        return VideoJob(
            operation_name=operation_name,
            model=self._model,
            metadata={"aspect_ratio": aspect_ratio, "resolution": resolution},
        )

    def fetch_operation(self, job: VideoJob) -> VideoJobStatus:
        """Check a submitted operation once.

        Returns:
            VideoJobStatus; `video_uri` is a gs:// URI or, for inline results,
            a data URI.
        """
        data = self._vertex.post(job.model, "fetchPredictOperation", {
            "operationName": job.operation_name,
        })

        if not data.get("done"):
            return VideoJobStatus(done=False)

        if "error" in data:
            message = data["error"].get("message") or "Unknown video generation error"
            logger.error(f"Operation {job.operation_name} failed: {message}")
            return VideoJobStatus(done=True, status=GenerationStatus.FAILED, error=message)

        videos = data.get("response", {}).get("videos", [])
        if not videos:
            return VideoJobStatus(
                done=True, status=GenerationStatus.FAILED, error="No video URI returned"
            )

        video = videos[0]
        if video.get("gcsUri"):
            uri = video["gcsUri"]
        elif video.get("bytesBase64Encoded"):
            uri = encode_data_uri(
                base64.b64decode(video["bytesBase64Encoded"]),
                video.get("mimeType", "video/mp4"),
            )
        else:
            return VideoJobStatus(
                done=True, status=GenerationStatus.FAILED, error="No video URI returned"
            )

        logger.info(f"Operation {job.operation_name} completed successfully")
        return VideoJobStatus(done=True, status=GenerationStatus.COMPLETED, video_uri=uri)

    def download(self, uri: str) -> bytes:
        """Fetch the bytes of a generated video.

        Args:
            uri: gs:// URI or data URI from fetch_operation.
        """
        if uri.startswith("data:"):
            data, _ = decode_data_uri(uri)
            return data

        # Parse GCS URI
        if not uri.startswith("gs://"):
            raise ValueError(f"Invalid GCS URI: {uri}")

        uri_parts = uri[5:].split("/", 1)
        if len(uri_parts) != 2:
            raise ValueError(f"Invalid GCS URI format: {uri}")

        bucket_name, blob_name = uri_parts

        if self._storage_client is None:
            self._storage_client = storage.Client(project=self._vertex.project_id)

        # Download with retry
        for attempt in range(self._max_retries):
            try:
                blob = self._storage_client.bucket(bucket_name).blob(blob_name)
                data = blob.download_as_bytes()
                logger.debug(f"Downloaded {uri} ({len(data)} bytes)")
                return data

            except google_exceptions.NotFound:
                logger.error(f"File not found in GCS: {uri}")
                raise

            except Exception as e:
                delay = self._retry_delay * (2**attempt)
                logger.warning(f"Download failed (attempt {attempt + 1}): {e}. Retrying in {delay}s...")
                if attempt == self._max_retries - 1:
                    raise
                time.sleep(delay)

        raise RuntimeError(f"Download failed: {uri}")
