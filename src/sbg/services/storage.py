"""Durable blob and metadata storage backends."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import yaml
from google.api_core import exceptions as google_exceptions
from google.cloud import storage

from ..config import config

logger = logging.getLogger(__name__)

ASSETS_PREFIX = "assets"
DOCUMENTS_PREFIX = "documents"


class AssetStore(ABC):
    """Blob storage for media plus a small document store for metadata.

    Implementations are synchronous; callers offload them to threads.
    """

    @abstractmethod
    def upload(
        self,
        owner_key: str,
        project_key: str,
        asset_key: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """Store media bytes and return their durable URL."""
        ...

    @abstractmethod
    def delete(self, url: str) -> None:
        """Delete a stored blob. Missing blobs are not an error."""
        ...

    @abstractmethod
    def fetch_bytes(self, url: str) -> bytes:
        """Read back the bytes of a stored blob."""
        ...

    @abstractmethod
    def write_document(self, key: str, document: dict[str, Any]) -> None:
        """Write (replace) a metadata document."""
        ...

    @abstractmethod
    def read_document(self, key: str) -> Optional[dict[str, Any]]:
        """Read a metadata document, or None if it does not exist."""
        ...

    @abstractmethod
    def list_documents(
        self, prefix: str, name: Optional[str] = None
    ) -> dict[str, dict[str, Any]]:
        """Return all documents whose key starts with prefix, keyed by key.

        If name is given, only documents whose last key segment equals it
        are read.
        """
        ...


class LocalAssetStore(AssetStore):
    """Asset store backed by a workspace directory.

    Blobs are returned as file:// URLs; documents are YAML files written
    atomically so a crash never leaves a half-written document behind.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = Path(root or config.workspace).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def upload(
        self,
        owner_key: str,
        project_key: str,
        asset_key: str,
        data: bytes,
        content_type: str,
    ) -> str:
        path = self._root / ASSETS_PREFIX / owner_key / project_key / asset_key
        path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(path, data)
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path.as_uri()

    def delete(self, url: str) -> None:
        path = self._path_from_url(url)
        path.unlink(missing_ok=True)
        logger.debug(f"Deleted {path}")

    def fetch_bytes(self, url: str) -> bytes:
        return self._path_from_url(url).read_bytes()

    def write_document(self, key: str, document: dict[str, Any]) -> None:
        path = self._document_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
        self._atomic_write(path, text.encode("utf-8"))

    def read_document(self, key: str) -> Optional[dict[str, Any]]:
        path = self._document_path(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return yaml.safe_load(f)

    def list_documents(
        self, prefix: str, name: Optional[str] = None
    ) -> dict[str, dict[str, Any]]:
        base = self._root / DOCUMENTS_PREFIX
        documents: dict[str, dict[str, Any]] = {}
        for path in sorted(base.rglob(f"{name or '*'}.yaml")):
            key = path.relative_to(base).with_suffix("").as_posix()
            if key.startswith(prefix):
                with open(path, "r") as f:
                    documents[key] = yaml.safe_load(f)
        return documents

    def _document_path(self, key: str) -> Path:
        return self._root / DOCUMENTS_PREFIX / f"{key}.yaml"

    def _path_from_url(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValueError(f"Not a local asset URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if self._root not in path.parents:
            raise ValueError(f"Asset URL outside the workspace: {url}")
        return path

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class GCSAssetStore(AssetStore):
    """Asset store backed by a Google Cloud Storage bucket.

    Blobs are returned as gs:// URLs; documents are JSON objects.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        project_id: Optional[str] = None,
        client: Optional[storage.Client] = None,
    ) -> None:
        """Initialize the GCS store.

        Args:
            bucket: gs:// bucket URI. Defaults to SBG_BUCKET.
            project_id: Google Cloud project ID. Defaults to GOOGLE_CLOUD_PROJECT.
            client: Optional pre-built storage client.
        """
        bucket = bucket or config.asset_bucket
        if not bucket.startswith("gs://"):
            raise ValueError(f"Bucket must be a GCS URI starting with 'gs://'. Got: {bucket}")

        self._bucket_name = bucket[5:].strip("/")
        self._client = client or storage.Client(project=project_id or config.google_cloud_project)
        self._bucket = self._client.bucket(self._bucket_name)
        logger.info(f"Using GCS asset store gs://{self._bucket_name}")

    def upload(
        self,
        owner_key: str,
        project_key: str,
        asset_key: str,
        data: bytes,
        content_type: str,
    ) -> str:
        blob_name = f"{ASSETS_PREFIX}/{owner_key}/{project_key}/{asset_key}"
        self._bucket.blob(blob_name).upload_from_string(data, content_type=content_type)
        logger.debug(f"Uploaded {len(data)} bytes to gs://{self._bucket_name}/{blob_name}")
        return f"gs://{self._bucket_name}/{blob_name}"

    def delete(self, url: str) -> None:
        try:
            self._bucket.blob(self._blob_name(url)).delete()
        except google_exceptions.NotFound:
            logger.debug(f"Blob already gone: {url}")

    def fetch_bytes(self, url: str) -> bytes:
        return self._bucket.blob(self._blob_name(url)).download_as_bytes()

    def write_document(self, key: str, document: dict[str, Any]) -> None:
        blob = self._bucket.blob(f"{DOCUMENTS_PREFIX}/{key}.json")
        blob.upload_from_string(
            json.dumps(document, indent=2, default=str), content_type="application/json"
        )

    def read_document(self, key: str) -> Optional[dict[str, Any]]:
        try:
            text = self._bucket.blob(f"{DOCUMENTS_PREFIX}/{key}.json").download_as_text()
        except google_exceptions.NotFound:
            return None
        return json.loads(text)

    def list_documents(
        self, prefix: str, name: Optional[str] = None
    ) -> dict[str, dict[str, Any]]:
        documents: dict[str, dict[str, Any]] = {}
        full_prefix = f"{DOCUMENTS_PREFIX}/{prefix}"
        suffix = f"/{name}.json" if name else ".json"
        for blob in self._client.list_blobs(self._bucket_name, prefix=full_prefix):
            if not blob.name.endswith(suffix):
                continue
            key = blob.name[len(DOCUMENTS_PREFIX) + 1:-len(".json")]
            documents[key] = json.loads(blob.download_as_text())
        return documents

    def _blob_name(self, url: str) -> str:
        prefix = f"gs://{self._bucket_name}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL is not in bucket {self._bucket_name}: {url}")
        return url[len(prefix):]


def create_store(backend: Optional[str] = None) -> AssetStore:
    """Build the configured asset store backend."""
    backend = (backend or config.store_backend).lower()
    if backend == "gcs":
        config.validate_gcs_required()
        return GCSAssetStore()
    if backend == "local":
        return LocalAssetStore()
    raise ValueError(f"Unknown store backend: {backend}. Use 'local' or 'gcs'.")
