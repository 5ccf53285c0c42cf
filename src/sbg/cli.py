"""CLI entry point for the storyboard generator."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from . import __version__
from .config import config
from .errors import ModelRefusalError, PreconditionError, StoryboardError
from .media import is_durable_url
from .models import (
    AspectRatio,
    ColorMode,
    ImageSize,
    MediaType,
    Scene,
    SceneStatus,
    StyleSettings,
)
from .pipeline import (
    BatchOrchestrator,
    ContinuityAuditor,
    ProjectStore,
    SceneController,
    StoryboardSession,
)
from .pipeline import ledger
from .prompting import ART_STYLES
from .services.generation import GenerationClient
from .services.storage import create_store

app = typer.Typer(
    name="storyboard",
    help="AI-powered storyboard generator",
    no_args_is_help=True
)

T = TypeVar("T")

STATUS_ICONS = {
    SceneStatus.PERSISTED: "✅",
    SceneStatus.UPLOAD_FAILED: "⚠️ ",
    SceneStatus.GENERATION_FAILED: "❌",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"storyboard version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Storyboard Generator - Turn a story script into illustrated scenes."""
    setup_logging(verbose)


def _open_store() -> ProjectStore:
    try:
        return ProjectStore(create_store())
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)


async def _open_session(project_id: str) -> StoryboardSession:
    store = _open_store()
    project = await store.load_project(project_id)
    return StoryboardSession(project, store, GenerationClient())


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning pipeline errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except KeyError as e:
        typer.echo(f"❌ Not found: {e.args[0] if e.args else e}")
    except PreconditionError as e:
        typer.echo(f"❌ {e}")
    except ModelRefusalError as e:
        typer.echo(f"❌ The model declined to produce media: {e}")
        if e.response_text:
            typer.echo(f"   Model said: {e.response_text[:200]}")
    except StoryboardError as e:
        typer.echo(f"❌ {type(e).__name__}: {e}")
    except ValueError as e:
        typer.echo(f"❌ Invalid input: {e}")
    raise typer.Exit(1)


def _print_scene(scene: Scene) -> None:
    icon = STATUS_ICONS.get(scene.status, "⏳")
    typer.echo(f"   {icon} Scene {scene.number}: {scene.title} [{scene.status.value}]")
    prompt_preview = scene.prompt[:70] + "..." if len(scene.prompt) > 70 else scene.prompt
    typer.echo(f"      → {prompt_preview}")
    if scene.active_image_url:
        where = scene.active_image_url if is_durable_url(scene.active_image_url) else "(local only)"
        typer.echo(f"      🖼️  {where}")
    if scene.active_video_url:
        typer.echo(f"      🎞️  {scene.active_video_url}")
    if scene.active_audio_url:
        typer.echo(f"      🔊 {scene.active_audio_url}")
    if scene.tags:
        typer.echo(f"      🏷️  {', '.join(scene.tags)}")
    if scene.error:
        typer.echo(f"      ❗ {scene.error}")


def _scene_command(
    project_id: str,
    number: int,
    label: str,
    operation: Callable[[SceneController], Awaitable[Scene]],
) -> None:
    """Load a project, run one scene operation and print the result."""
    async def run() -> Scene:
        session = await _open_session(project_id)
        scene = session.scene_by_number(number)
        typer.echo(f"{label} scene {number} of {session.project.title}")
        return await operation(session.controller(scene.id))

    scene = _run(run())
    typer.echo("✅ Done")
    _print_scene(scene)


@app.command()
def generate(
    script_file: Path = typer.Argument(
        ...,
        help="Story script text file",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    title: Optional[str] = typer.Option(
        None,
        "--title",
        "-t",
        help="Project title (defaults to the file name)"
    ),
    scenes: int = typer.Option(
        6,
        "--scenes",
        "-n",
        help="Number of scenes",
        min=1,
        max=30
    ),
    style: str = typer.Option(
        "Pencil Sketch",
        "--style",
        "-s",
        help=f"Art style: {', '.join(ART_STYLES)}"
    ),
    color: ColorMode = typer.Option(
        ColorMode.COLOR,
        "--color",
        help="Color mode"
    ),
    size: ImageSize = typer.Option(
        ImageSize.SIZE_1K,
        "--size",
        help="Image resolution tier"
    ),
    aspect: AspectRatio = typer.Option(
        AspectRatio.CINEMATIC,
        "--aspect",
        "-a",
        help="Aspect ratio"
    ),
    master_style: Optional[str] = typer.Option(
        None,
        "--master-style",
        help="Free-form style description overriding the named style"
    ),
    tags: bool = typer.Option(
        True,
        "--tags/--no-tags",
        help="Auto-tag scenes after saving"
    ),
) -> None:
    """Analyze a script and generate a full storyboard."""
    if style not in ART_STYLES:
        typer.echo(f"❌ Unknown style: {style}")
        raise typer.Exit(1)

    try:
        config.validate_required()
        config.validate_vertex_required()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    script = script_file.read_text()
    project_title = title or script_file.stem
    settings = StyleSettings(
        art_style=style,
        color_mode=color,
        image_size=size,
        aspect_ratio=aspect,
        master_style=master_style,
    )

    typer.echo(f"🎬 Storyboarding: {project_title}")
    typer.echo(f"   Scenes: {scenes}")
    typer.echo(f"   Style: {style} ({color.value}, {aspect.value}, {size.value})")

    def progress(index: int, total: int, scene: Scene) -> None:
        typer.echo(f"   💾 Saving scene {index} of {total}...")

    async def run():
        store = _open_store()
        project = await store.get_or_create_project(project_title)
        session = StoryboardSession(project, store, GenerationClient(), style=settings)
        return await BatchOrchestrator(session, progress=progress, auto_tag=tags).run(script, scenes)

    result = _run(run())

    typer.echo(f"\n📋 Project {result.project_id}")
    for scene in result.scenes:
        _print_scene(scene)

    typer.echo(f"\n📊 Summary:")
    typer.echo(f"   Saved: {len(result.persisted)}")
    typer.echo(f"   Upload failed: {len(result.upload_failed)}")
    typer.echo(f"   Generation failed: {len(result.generation_failed)}")

    if result.upload_failed:
        typer.echo(f"\n⚠️  Retry uploads with: storyboard retry-upload {result.project_id} NUMBER")
    if result.generation_failed:
        typer.echo(f"⚠️  Retry failed scenes with: storyboard retry {result.project_id} NUMBER")
        raise typer.Exit(1)


@app.command()
def projects() -> None:
    """List saved projects."""
    snapshots = _run(_open_store().list_projects())
    if not snapshots:
        typer.echo("No projects yet. Run 'storyboard generate' to create one.")
        return

    typer.echo(f"📁 Projects of {config.owner}:")
    for snapshot in snapshots:
        typer.echo(
            f"   • {snapshot.id}: {snapshot.title} "
            f"({snapshot.scene_count} scenes, {snapshot.state.value}, "
            f"updated {snapshot.updated_at:%Y-%m-%d %H:%M})"
        )


@app.command()
def status(
    project_id: str = typer.Argument(..., help="Project id")
) -> None:
    """Show a project and its scenes."""
    session = _run(_open_session(project_id))
    project = session.project

    typer.echo(f"📁 Project: {project.title} ({project.id})")
    typer.echo(f"   State: {project.state.value}")
    typer.echo(f"   Style: {project.style.art_style} ({project.style.aspect_ratio.value})")
    if project.thumbnail_url:
        typer.echo(f"   Thumbnail: {project.thumbnail_url}")

    typer.echo("\n📽️  Scenes:")
    for scene in session.board.display_order():
        _print_scene(scene)


@app.command()
def add(
    project_id: str = typer.Argument(..., help="Project id"),
    prompt: str = typer.Argument(..., help="Scene description"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Scene title"),
) -> None:
    """Append a new scene and render it."""
    async def run() -> Scene:
        session = await _open_session(project_id)
        return await session.add_scene(prompt, title=title)

    scene = _run(run())
    typer.echo("✅ Scene added")
    _print_scene(scene)


@app.command()
def regenerate(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="New scene prompt"),
) -> None:
    """Render a new illustration for a scene."""
    _scene_command(project_id, number, "🎨 Regenerating", lambda c: c.regenerate(prompt=prompt))


@app.command()
def refine(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    instruction: str = typer.Argument(..., help="What to change"),
    strength: int = typer.Option(
        50,
        "--strength",
        help="Change strength; above 60 redraws the image",
        min=0,
        max=100
    ),
) -> None:
    """Edit a scene's illustration with a text instruction."""
    _scene_command(
        project_id, number, "🖌️  Refining", lambda c: c.refine(instruction, strength)
    )


@app.command()
def upscale(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
) -> None:
    """Upscale a scene's illustration to 4K."""
    _scene_command(project_id, number, "🔍 Upscaling", lambda c: c.upscale())


@app.command()
def animate(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
) -> None:
    """Turn a scene's illustration into a short video clip."""
    _scene_command(project_id, number, "🎞️  Animating", lambda c: c.animate())


@app.command()
def narrate(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    text: Optional[str] = typer.Option(
        None, "--text", help="Narration text (defaults to the scene prompt)"
    ),
) -> None:
    """Generate narration audio for a scene."""
    _scene_command(project_id, number, "🔊 Narrating", lambda c: c.narrate(text))


@app.command("retry-upload")
def retry_upload(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
) -> None:
    """Upload a scene's locally kept media again without regenerating."""
    _scene_command(project_id, number, "☁️  Retrying upload of", lambda c: c.retry_upload())


@app.command()
def retry(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
) -> None:
    """Generate a scene whose first render failed."""
    _scene_command(project_id, number, "🔁 Retrying", lambda c: c.retry_generation())


@app.command()
def history(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    media: Optional[MediaType] = typer.Option(
        None, "--media", "-m", help="Only show one media type"
    ),
) -> None:
    """List every saved version of a scene's media."""
    session = _run(_open_session(project_id))
    try:
        scene = session.scene_by_number(number)
    except KeyError as e:
        typer.echo(f"❌ Not found: {e.args[0]}")
        raise typer.Exit(1)

    entries = ledger.versions(scene, media) if media else scene.asset_history
    typer.echo(f"🗂️  Scene {scene.number}: {scene.title}")
    if not entries:
        typer.echo("   No saved versions")
        return

    for version in entries:
        active = "★" if scene.active_url(version.media_type) == version.url else " "
        typer.echo(
            f"   {active} {version.id} {version.media_type.value:<12} "
            f"{version.created_at:%Y-%m-%d %H:%M:%S}"
        )
        typer.echo(f"      {version.url}")


@app.command()
def restore(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    version_id: str = typer.Argument(..., help="Version id from 'storyboard history'"),
) -> None:
    """Make an earlier version active again."""
    async def run() -> Scene:
        session = await _open_session(project_id)
        controller = session.controller(session.scene_by_number(number).id)
        await controller.restore(version_id)
        return controller.scene

    scene = _run(run())
    typer.echo(f"✅ Restored version {version_id}")
    _print_scene(scene)


@app.command("delete-version")
def delete_version(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    version_id: str = typer.Argument(..., help="Version id from 'storyboard history'"),
) -> None:
    """Delete a version from history and from storage."""
    async def run() -> Scene:
        session = await _open_session(project_id)
        controller = session.controller(session.scene_by_number(number).id)
        await controller.delete_version(version_id)
        return controller.scene

    scene = _run(run())
    typer.echo(f"🗑️  Deleted version {version_id}")
    _print_scene(scene)


@app.command()
def audit(
    project_id: str = typer.Argument(..., help="Project id"),
    apply: bool = typer.Option(
        False,
        "--apply",
        help="Regenerate every flagged scene with the suggested fix"
    ),
) -> None:
    """Check scenes for visual and narrative continuity problems."""
    async def run():
        session = await _open_session(project_id)
        auditor = ContinuityAuditor(session)
        issues = await auditor.audit()
        fixed = []
        if apply:
            for issue in issues:
                fixed.append(await auditor.apply_fix(issue))
        return session, issues, fixed

    session, issues, fixed = _run(run())
    if not issues:
        typer.echo("✅ No continuity issues found")
        return

    scenes = session.board.by_number()
    typer.echo(f"🔎 {len(issues)} continuity issue(s):")
    for issue in issues:
        typer.echo(f"   • Scene {scenes[issue.scene_index].number}: {issue.issue}")
        typer.echo(f"     Fix: {issue.suggestion}")

    if fixed:
        typer.echo(f"\n✅ Regenerated {len(fixed)} scene(s)")
        for scene in fixed:
            _print_scene(scene)


@app.command()
def move(
    project_id: str = typer.Argument(..., help="Project id"),
    number: int = typer.Argument(..., help="Scene number"),
    position: int = typer.Argument(..., help="New 1-based display position"),
) -> None:
    """Reorder a scene on the board without renumbering it."""
    async def run():
        session = await _open_session(project_id)
        scene = session.scene_by_number(number)
        return await session.move_scene(scene.id, position - 1)

    scenes = _run(run())
    typer.echo("✅ New order:")
    for i, scene in enumerate(scenes, start=1):
        typer.echo(f"   {i}. Scene {scene.number}: {scene.title}")


if __name__ == "__main__":
    app()
