"""Storage keys and identifiers for projects, scenes and assets."""

import re
import uuid
from typing import Optional

from ..models.scene import next_version_id


def slugify(text: str, fallback: str = "untitled") -> str:
    """Lowercase, replace runs of non-alphanumerics with underscores."""
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug or fallback


def asset_key(
    project_title: str,
    scene_number: int,
    kind: str,
    extension: str,
    timestamp: Optional[int] = None,
) -> str:
    """Build the storage key for one uploaded asset.

    Keys look like ``<project-slug>/scene_<NN>_<kind>_<timestamp>.<ext>``;
    the millisecond timestamp keeps repeated uploads of the same scene apart.
    """
    if timestamp is None:
        timestamp = int(next_version_id())
    return f"{slugify(project_title)}/scene_{scene_number:02d}_{kind}_{timestamp}.{extension}"


def new_project_id() -> str:
    return f"proj-{uuid.uuid4().hex[:12]}"


def new_scene_id() -> str:
    return f"scene-{uuid.uuid4().hex[:12]}"


def project_document_key(project_id: str) -> str:
    return f"projects/{project_id}/project"


def scene_document_key(project_id: str, scene_id: str) -> str:
    return f"projects/{project_id}/scenes/{scene_id}"
