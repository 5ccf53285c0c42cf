"""
Tests for the storyboard CLI against a local workspace.
"""

import asyncio

import pytest
from typer.testing import CliRunner

from conftest import persisted_scene
from sbg import __version__
from sbg.cli import app
from sbg.config import config

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Point the CLI at the same workspace the asset_store fixture uses."""
    monkeypatch.setattr(config, "store_backend", "local")
    monkeypatch.setattr(config, "workspace", tmp_path / "workspace")
    monkeypatch.setattr(config, "owner", "tester")
    return tmp_path / "workspace"


@pytest.fixture
def saved_project(workspace, session):
    """A project with two persisted scenes."""
    async def seed():
        await persisted_scene(session, 1, "A harbor at dawn")
        await persisted_scene(session, 2, "A market at noon")

    asyncio.run(seed())
    return session.project


class TestCli:
    """Tests for read-only and ordering commands."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_projects(self, workspace):
        result = runner.invoke(app, ["projects"])

        assert result.exit_code == 0
        assert "No projects yet" in result.output

    def test_projects_and_status(self, saved_project):
        listing = runner.invoke(app, ["projects"])
        status = runner.invoke(app, ["status", saved_project.id])

        assert saved_project.id in listing.output
        assert status.exit_code == 0
        assert "Scene 1: Scene 1 [persisted]" in status.output
        assert "A market at noon" in status.output

    def test_history(self, saved_project):
        result = runner.invoke(app, ["history", saved_project.id, "1"])

        assert result.exit_code == 0
        assert "★" in result.output
        assert "illustration" in result.output

    def test_move(self, saved_project):
        result = runner.invoke(app, ["move", saved_project.id, "2", "1"])

        assert result.exit_code == 0
        assert "1. Scene 2" in result.output

    def test_unknown_project(self, workspace):
        result = runner.invoke(app, ["status", "proj-missing"])

        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_unknown_scene(self, saved_project):
        result = runner.invoke(app, ["upscale", saved_project.id, "9"])

        assert result.exit_code == 1
        assert "no scene 9" in result.output
