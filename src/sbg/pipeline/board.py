"""In-memory scene collection shared by every concurrent operation."""

import asyncio
import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from ..models.scene import Scene

logger = logging.getLogger(__name__)

SceneUpdate = Callable[[Scene], Optional[Scene]]


class SceneBoard:
    """Holds the live scenes of one project.

    All writes go through :meth:`update`, which applies a function to the
    latest stored state of a single scene. Updates run synchronously on the
    event loop, so two concurrent operations can never overwrite each other
    with stale copies. An update addressed to a scene that no longer exists
    is dropped.

    Storage is keyed by scene id. The display order is a separate list that
    only :meth:`move` rearranges; it never affects numbering or storage keys.
    """

    def __init__(self, scenes: Iterable[Scene] = (), order: Iterable[str] = ()) -> None:
        self._scenes: Dict[str, Scene] = {}
        self._order: List[str] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self.reset(scenes, order)

    def __len__(self) -> int:
        return len(self._scenes)

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._scenes

    def __iter__(self) -> Iterator[Scene]:
        return iter(self.by_number())

    def reset(self, scenes: Iterable[Scene], order: Iterable[str] = ()) -> None:
        """Replace every scene, e.g. when a new batch starts.

        Args:
            scenes: The new scenes.
            order: Saved display order; unknown ids are ignored and scenes it
                does not mention follow in number order.
        """
        self._scenes = {}
        self._order = []
        for scene in sorted(scenes, key=lambda s: s.number):
            self.add(scene)

        known = [scene_id for scene_id in dict.fromkeys(order) if scene_id in self._scenes]
        self._order = known + [scene_id for scene_id in self._order if scene_id not in known]

    def display_ids(self) -> List[str]:
        return list(self._order)

    def add(self, scene: Scene, position: Optional[int] = None) -> Scene:
        if scene.id in self._scenes:
            raise ValueError(f"Scene {scene.id} is already on the board")
        self._scenes[scene.id] = scene.model_copy(deep=True)
        if position is None:
            self._order.append(scene.id)
        else:
            self._order.insert(position, scene.id)
        return self.get(scene.id)

    def remove(self, scene_id: str) -> Optional[Scene]:
        scene = self._scenes.pop(scene_id, None)
        if scene is not None:
            self._order.remove(scene_id)
        return scene

    def get(self, scene_id: str) -> Optional[Scene]:
        """Return a copy of the latest state of a scene, or None."""
        scene = self._scenes.get(scene_id)
        return scene.model_copy(deep=True) if scene is not None else None

    def require(self, scene_id: str) -> Scene:
        scene = self.get(scene_id)
        if scene is None:
            raise KeyError(f"Unknown scene: {scene_id}")
        return scene

    def update(self, scene_id: str, fn: SceneUpdate) -> Optional[Scene]:
        """Apply fn to the latest state of a scene and store the result.

        fn receives a private copy and may either mutate it in place or return
        a replacement. If fn raises, the stored scene is left untouched.

        Returns:
            The new scene state, or None if the scene no longer exists.
        """
        current = self._scenes.get(scene_id)
        if current is None:
            logger.debug(f"Dropping update for vanished scene {scene_id}")
            return None

        draft = current.model_copy(deep=True)
        result = fn(draft)
        updated = result if result is not None else draft
        if updated.id != scene_id:
            raise ValueError(f"Update for {scene_id} returned scene {updated.id}")
        self._scenes[scene_id] = updated
        return updated.model_copy(deep=True)

    def patch(self, scene_id: str, **fields) -> Optional[Scene]:
        """Set individual fields on the latest state of a scene."""
        def apply(scene: Scene) -> None:
            for name, value in fields.items():
                setattr(scene, name, value)

        return self.update(scene_id, apply)

    def lock(self, scene_id: str) -> asyncio.Lock:
        """Lock serializing multi-step operations on one scene."""
        return self._locks.setdefault(scene_id, asyncio.Lock())

    def by_number(self) -> List[Scene]:
        """Scenes in canonical (number) order."""
        return [s.model_copy(deep=True) for s in sorted(self._scenes.values(), key=lambda s: s.number)]

    def display_order(self) -> List[Scene]:
        return [self._scenes[scene_id].model_copy(deep=True) for scene_id in self._order]

    def find_by_number(self, number: int) -> Optional[Scene]:
        for scene in self._scenes.values():
            if scene.number == number:
                return scene.model_copy(deep=True)
        return None

    def next_number(self) -> int:
        return max((s.number for s in self._scenes.values()), default=0) + 1

    def move(self, scene_id: str, position: int) -> List[Scene]:
        """Move a scene to a new display position.

        Scene numbers, ids and storage keys are unaffected.
        """
        if scene_id not in self._scenes:
            raise KeyError(f"Unknown scene: {scene_id}")
        self._order.remove(scene_id)
        position = max(0, min(position, len(self._order)))
        self._order.insert(position, scene_id)
        return self.display_order()
