"""
Tests for the shared scene board.
"""

import asyncio

import pytest

from sbg.models import Scene, SceneStatus
from sbg.pipeline import SceneBoard


def make_scenes(count: int = 3):
    return [
        Scene(id=f"scene-{n}", number=n, title=f"Scene {n}", prompt=f"prompt {n}")
        for n in range(1, count + 1)
    ]


class TestSceneBoardUpdates:
    """Tests for transactional updates."""

    def test_update_applies_to_latest_state(self):
        board = SceneBoard(make_scenes())

        board.patch("scene-1", is_video_loading=True)
        board.patch("scene-1", is_loading=True)

        scene = board.get("scene-1")
        assert scene.is_video_loading is True
        assert scene.is_loading is True

    @pytest.mark.asyncio
    async def test_interleaved_operations_keep_each_others_changes(self):
        """Two concurrent writers never overwrite each other with stale copies."""
        board = SceneBoard(make_scenes())

        async def set_video():
            board.patch("scene-2", is_video_loading=True)
            await asyncio.sleep(0.01)
            board.patch("scene-2", active_video_url="gs://b/v.mp4", is_video_loading=False)

        async def set_tags():
            await asyncio.sleep(0)
            board.patch("scene-2", tags=["night"])
            await asyncio.sleep(0.02)
            board.patch("scene-2", title="Arrival")

        await asyncio.gather(set_video(), set_tags())

        scene = board.get("scene-2")
        assert scene.active_video_url == "gs://b/v.mp4"
        assert scene.tags == ["night"]
        assert scene.title == "Arrival"
        assert scene.is_video_loading is False

    def test_update_for_vanished_scene_is_dropped(self):
        board = SceneBoard(make_scenes())
        board.remove("scene-3")

        assert board.patch("scene-3", status=SceneStatus.PERSISTED) is None
        assert "scene-3" not in board
        assert len(board) == 2

    def test_failed_update_leaves_scene_untouched(self):
        board = SceneBoard(make_scenes())

        def broken(scene):
            scene.title = "half written"
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            board.update("scene-1", broken)

        assert board.get("scene-1").title == "Scene 1"

    def test_get_returns_a_copy(self):
        board = SceneBoard(make_scenes())

        copy = board.get("scene-1")
        copy.tags.append("mutated")

        assert board.get("scene-1").tags == []


class TestSceneBoardOrdering:
    """Tests for number order and display order."""

    def test_move_changes_display_order_only(self):
        board = SceneBoard(make_scenes())

        moved = board.move("scene-3", 0)

        assert [s.id for s in moved] == ["scene-3", "scene-1", "scene-2"]
        assert [s.number for s in board.by_number()] == [1, 2, 3]
        assert board.get("scene-3").number == 3

    def test_saved_order_is_restored(self):
        board = SceneBoard(make_scenes(), order=["scene-2", "missing", "scene-1"])

        assert board.display_ids() == ["scene-2", "scene-1", "scene-3"]

    def test_next_number_and_lookup(self):
        board = SceneBoard(make_scenes())

        assert board.next_number() == 4
        assert board.find_by_number(2).id == "scene-2"
        assert board.find_by_number(9) is None

    def test_duplicate_add_rejected(self):
        board = SceneBoard(make_scenes(1))
        with pytest.raises(ValueError):
            board.add(make_scenes(1)[0])

    def test_lock_is_per_scene(self):
        board = SceneBoard(make_scenes())

        assert board.lock("scene-1") is board.lock("scene-1")
        assert board.lock("scene-1") is not board.lock("scene-2")
