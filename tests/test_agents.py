"""
Tests for the Claude-backed agents.
"""

import json
from unittest.mock import MagicMock

import pytest

from sbg.agents import (
    AnalysisInput,
    AuditScene,
    ContinuityAgent,
    ScriptAnalysisAgent,
    TaggingAgent,
    TaggingInput,
)
from sbg.agents.base import extract_json
from sbg.agents.continuity import NOT_GENERATED


@pytest.fixture
def client():
    """Mock AnthropicClient; set create_message.return_value per test."""
    return MagicMock()


class TestExtractJson:
    """Tests for extract_json."""

    def test_fenced_block(self):
        response = 'Here you go:\n```json\n{"scenes": []}\n```\nEnjoy.'
        assert extract_json(response) == '{"scenes": []}'

    def test_bare_array_with_prose(self):
        assert extract_json('Tags: ["a", "b"] done') == '["a", "b"]'

    def test_object_before_array(self):
        assert extract_json('{"issues": [1]} trailing') == '{"issues": [1]}'


class TestScriptAnalysisAgent:
    """Tests for ScriptAnalysisAgent."""

    def test_parses_object(self, client):
        client.create_message.return_value = json.dumps({
            "characters": "Mia: 10, yellow raincoat",
            "scenes": ["Mia finds a map", "Mia climbs the hill"],
        })

        result = ScriptAnalysisAgent(client=client).run(AnalysisInput("A story", 2))

        assert result.scene_prompts == ["Mia finds a map", "Mia climbs the hill"]
        assert result.character_bible == "Mia: 10, yellow raincoat"

    def test_truncates_to_requested_count(self, client):
        client.create_message.return_value = json.dumps({"scenes": ["a", "b", "c", "d"]})

        result = ScriptAnalysisAgent(client=client).run(AnalysisInput("A story", 2))

        assert result.scene_prompts == ["a", "b"]

    @pytest.mark.parametrize("response", [
        '["one", "two"]',
        '```json\n{"scenes": ["one", "two"]}\n```',
        '{"scenes": [{"prompt": "one"}, {"description": "two"}, {"other": "x"}, ""]}',
    ])
    def test_accepts_response_variants(self, client, response):
        client.create_message.return_value = response

        result = ScriptAnalysisAgent(client=client).run(AnalysisInput("A story", 5))

        assert result.scene_prompts == ["one", "two"]

    def test_invalid_json(self, client):
        client.create_message.return_value = "I cannot help with that."

        with pytest.raises(ValueError):
            ScriptAnalysisAgent(client=client).run(AnalysisInput("A story", 2))

    def test_prompt_names_scene_count(self, client):
        client.create_message.return_value = '{"scenes": ["a"]}'

        ScriptAnalysisAgent(client=client).run(AnalysisInput("Once upon a time", 4))

        prompt = client.create_message.call_args.kwargs["prompt"]
        assert "EXACTLY 4" in prompt
        assert "Once upon a time" in prompt


class TestContinuityAgent:
    """Tests for ContinuityAgent."""

    def test_placeholder_for_missing_images(self, client):
        client.create_message.return_value = "[]"
        scenes = [
            AuditScene(title="One", prompt="first", image=b"png"),
            AuditScene(title="Two", prompt="second"),
        ]

        ContinuityAgent(client=client).run(scenes)

        content = client.create_message.call_args.kwargs["prompt"]
        assert [block["type"] for block in content] == ["text", "text", "image", "text", "text"]
        assert content[-1]["text"] == NOT_GENERATED

    def test_parses_issues_and_drops_bad_indexes(self, client):
        client.create_message.return_value = json.dumps([
            {"sceneIndex": 1, "issue": "Scarf changes color", "suggestion": "Add 'red scarf'"},
            {"sceneIndex": 4, "issue": "ghost", "suggestion": "none"},
            {"sceneIndex": "x", "issue": "bad", "suggestion": "none"},
            "not an object",
        ])
        scenes = [AuditScene(title="One", prompt="a"), AuditScene(title="Two", prompt="b")]

        issues = ContinuityAgent(client=client).run(scenes)

        assert len(issues) == 1
        assert issues[0].scene_index == 1
        assert issues[0].suggestion == "Add 'red scarf'"

    def test_accepts_wrapped_issues(self, client):
        client.create_message.return_value = '{"issues": [{"scene_index": 0, "issue": "i", "suggestion": "s"}]}'
        scenes = [AuditScene(title="One", prompt="a"), AuditScene(title="Two", prompt="b")]

        assert ContinuityAgent(client=client).run(scenes)[0].scene_index == 0


class TestTaggingAgent:
    """Tests for TaggingAgent."""

    def test_normalizes_tags(self, client):
        client.create_message.return_value = '["Outdoor", "outdoor", " Night ", "sad", "rain", "city", "cold"]'

        tags = TaggingAgent(client=client).run(TaggingInput(prompt="Rainy street"))

        assert tags == ["outdoor", "night", "sad", "rain", "city"]

    def test_sends_image_when_available(self, client):
        client.create_message.return_value = '["calm"]'

        TaggingAgent(client=client).run(TaggingInput(prompt="Lake", image=b"png"))

        content = client.create_message.call_args.kwargs["prompt"]
        assert content[0]["type"] == "image"
        assert content[1]["text"] == "Scene description: Lake"

    def test_rejects_non_list(self, client):
        client.create_message.return_value = '{"tags": "calm"}'

        with pytest.raises(ValueError):
            TaggingAgent(client=client).run(TaggingInput(prompt="Lake"))
