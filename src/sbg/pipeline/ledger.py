"""Asset version ledger.

Every function here takes a scene and edits its history and active pointers
in place. They are meant to run inside ``SceneBoard.update`` so each edit is
applied to the latest scene state as one step.
"""

from typing import List, Optional

from ..models.scene import ACTIVE_FIELDS, AssetVersion, MediaType, Scene


def find(scene: Scene, asset_id: str) -> Optional[AssetVersion]:
    for version in scene.asset_history:
        if version.id == asset_id:
            return version
    return None


def versions(scene: Scene, media_type: MediaType) -> List[AssetVersion]:
    """History entries of one media type, oldest first."""
    return [v for v in scene.asset_history if v.media_type == media_type]


def append(scene: Scene, version: AssetVersion) -> Scene:
    """Append a version and make it the active asset of its media type."""
    scene.asset_history.append(version)
    setattr(scene, ACTIVE_FIELDS[version.media_type], version.url)
    return scene


def record_active(scene: Scene, media_type: MediaType) -> Optional[AssetVersion]:
    """Add the current active asset to history if it is not there yet.

    Used before a regeneration replaces the active asset, so the replaced
    asset stays restorable.
    """
    url = scene.active_url(media_type)
    if url is None or scene.in_history(url):
        return None
    version = AssetVersion(media_type=media_type, url=url, prompt_used=scene.prompt)
    scene.asset_history.append(version)
    return version


def replace_local(
    scene: Scene,
    media_type: MediaType,
    local_url: str,
    durable_url: str,
    prompt_used: str,
) -> None:
    """Point every reference to an uploaded local render at its durable copy.

    History entries keep their id, prompt and position. A render that was
    only ever active gets a new history entry.
    """
    recorded = False
    for i, version in enumerate(scene.asset_history):
        if version.url == local_url:
            scene.asset_history[i] = version.model_copy(update={"url": durable_url})
            recorded = True
    if not recorded:
        scene.asset_history.append(
            AssetVersion(media_type=media_type, url=durable_url, prompt_used=prompt_used)
        )
    if scene.active_url(media_type) == local_url:
        setattr(scene, ACTIVE_FIELDS[media_type], durable_url)


def restore(scene: Scene, asset_id: str) -> AssetVersion:
    """Make an existing version active again.

    Restoring an illustration also restores the prompt that produced it.
    History is not modified.

    Raises:
        KeyError: If the scene has no version with that id.
    """
    version = find(scene, asset_id)
    if version is None:
        raise KeyError(f"Scene {scene.id} has no asset version {asset_id}")

    setattr(scene, ACTIVE_FIELDS[version.media_type], version.url)
    if version.media_type == MediaType.ILLUSTRATION:
        scene.prompt = version.prompt_used
    return version


def delete(scene: Scene, asset_id: str) -> AssetVersion:
    """Remove a version from history.

    If the removed version was active for its media type, that active
    pointer is cleared.

    Raises:
        KeyError: If the scene has no version with that id.
    """
    version = find(scene, asset_id)
    if version is None:
        raise KeyError(f"Scene {scene.id} has no asset version {asset_id}")

    scene.asset_history = [v for v in scene.asset_history if v.id != asset_id]
    field_name = ACTIVE_FIELDS[version.media_type]
    if getattr(scene, field_name) == version.url:
        setattr(scene, field_name, None)
    return version
