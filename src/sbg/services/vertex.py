"""Authenticated REST access to Vertex AI publisher models."""

import logging
from typing import Any, Optional

import google.auth
import google.auth.transport.requests
import requests
from google.api_core import exceptions as google_exceptions

from ..config import config

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class VertexClient:
    """Thin wrapper that signs and posts requests to Vertex AI model endpoints."""

    DEFAULT_TIMEOUT = 120.0

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the Vertex client.

        Args:
            project_id: Google Cloud project ID. Defaults to GOOGLE_CLOUD_PROJECT.
            location: GCP region. Defaults to GOOGLE_CLOUD_LOCATION.
            timeout: Per-request timeout in seconds.
        """
        self._project_id = project_id or config.google_cloud_project
        self._location = location or config.google_cloud_location
        self._timeout = timeout
        self._credentials = None

        if not self._project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT not set")

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def location(self) -> str:
        return self._location

    def model_url(self, model: str, method: str) -> str:
        """Build the endpoint URL for a publisher model method."""
        return (
            f"https://{self._location}-aiplatform.googleapis.com/v1/"
            f"projects/{self._project_id}/locations/{self._location}/"
            f"publishers/google/models/{model}:{method}"
        )

    def _auth_headers(self) -> dict[str, str]:
        if self._credentials is None:
            self._credentials, _ = google.auth.default(scopes=SCOPES)
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return {
            "Authorization": f"Bearer {self._credentials.token}",
            "Content-Type": "application/json",
        }

    def post(self, model: str, method: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body to a model method and return the decoded response.

        Raises:
            google_exceptions.GoogleAPICallError: For any non-200 response. A 429
                surfaces as TooManyRequests so the retry layer can recognise it.
        """
        url = self.model_url(model, method)
        logger.debug(f"POST {model}:{method}")
        response = requests.post(
            url, json=body, headers=self._auth_headers(), timeout=self._timeout
        )

        if response.status_code != 200:
            error_msg = response.text[:500]
            logger.error(f"Vertex AI error {response.status_code} from {model}: {error_msg}")
            raise google_exceptions.from_http_status(response.status_code, error_msg)

        return response.json()
