"""Helpers for in-memory media references."""

import base64
import binascii
from typing import Optional, Tuple

DATA_URI_PREFIX = "data:"

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "video/mp4": "mp4",
    "audio/wav": "wav",
}


def encode_data_uri(data: bytes, mime_type: str = "image/png") -> str:
    """Wrap raw bytes in a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Decode a base64 data URI.

    Returns:
        Tuple of (raw bytes, mime type).

    Raises:
        ValueError: If the URI is not a base64 data URI.
    """
    if not uri.startswith(DATA_URI_PREFIX) or "," not in uri:
        raise ValueError(f"Not a data URI: {uri[:40]}")

    header, payload = uri[len(DATA_URI_PREFIX):].split(",", 1)
    mime_type = header.split(";", 1)[0] or "application/octet-stream"
    try:
        return base64.b64decode(payload), mime_type
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}")


def is_durable_url(url: Optional[str]) -> bool:
    """Whether a media reference points at the durable store.

    Local renders are kept as data URIs until their upload succeeds.
    """
    return bool(url) and not url.startswith(DATA_URI_PREFIX)


def extension_for(mime_type: str) -> str:
    return EXTENSIONS.get(mime_type, "bin")
