"""
Tests for the continuity auditor.
"""

import pytest

from conftest import add_scene, persisted_scene
from sbg.agents.continuity import ContinuityIssue
from sbg.pipeline import ContinuityAuditor


class TestAudit:
    """Tests for ContinuityAuditor.audit."""

    @pytest.mark.asyncio
    async def test_single_scene_is_not_audited(self, session, generation):
        await persisted_scene(session, 1, "A harbor at dawn")

        assert await ContinuityAuditor(session).audit() == []
        assert "audit_continuity" not in generation.remote_calls

    @pytest.mark.asyncio
    async def test_scenes_are_sent_in_number_order(self, session, generation):
        await persisted_scene(session, 2, "A market at noon")
        add_scene(session, 3, "A feast at night")
        await persisted_scene(session, 1, "A harbor at dawn")

        await ContinuityAuditor(session).audit()

        assert [s.prompt for s in generation.audited] == [
            "A harbor at dawn", "A market at noon", "A feast at night",
        ]
        assert generation.audited[0].image == b"image:A harbor at dawn"
        assert generation.audited[2].image is None

    @pytest.mark.asyncio
    async def test_display_order_does_not_shift_indexes(self, session, generation):
        first = await persisted_scene(session, 1, "A harbor at dawn")
        await persisted_scene(session, 2, "A market at noon")
        session.board.move(first.id, 1)

        await ContinuityAuditor(session).audit()

        assert generation.audited[0].prompt == "A harbor at dawn"

    @pytest.mark.asyncio
    async def test_out_of_range_issues_are_dropped(self, session, generation):
        await persisted_scene(session, 1, "A harbor at dawn")
        await persisted_scene(session, 2, "A market at noon")
        generation.issues = [
            ContinuityIssue(scene_index=1, issue="scarf missing", suggestion="add red scarf"),
            ContinuityIssue(scene_index=5, issue="ghost scene", suggestion="none"),
            ContinuityIssue(scene_index=-1, issue="negative", suggestion="none"),
        ]

        issues = await ContinuityAuditor(session).audit()

        assert [i.scene_index for i in issues] == [1]


class TestApplyFix:
    """Tests for ContinuityAuditor.apply_fix."""

    @pytest.mark.asyncio
    async def test_fix_regenerates_with_suggestion(self, session, generation):
        await persisted_scene(session, 1, "A harbor at dawn")
        market = await persisted_scene(session, 2, "A market at noon")
        issue = ContinuityIssue(scene_index=1, issue="scarf missing", suggestion="add red scarf")

        fixed = await ContinuityAuditor(session).apply_fix(issue)

        assert fixed.id == market.id
        assert fixed.prompt == "A market at noon. FIX: add red scarf"
        assert generation.image_calls[-1]["prompt"] == fixed.prompt
        assert generation.image_calls[-1]["reference_image"] == b"image:A market at noon"
        assert len(fixed.asset_history) == 2

    @pytest.mark.asyncio
    async def test_fix_with_bad_index(self, session):
        await persisted_scene(session, 1, "A harbor at dawn")
        issue = ContinuityIssue(scene_index=3, issue="x", suggestion="y")

        with pytest.raises(IndexError):
            await ContinuityAuditor(session).apply_fix(issue)
