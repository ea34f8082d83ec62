"""CLI runner for the slidecast pipeline.

Usage:
    python -m slidecast.runner make "Northern lights over Iceland"
    python -m slidecast.runner beats "Northern lights" --image-count 4
    python -m slidecast.runner presenters
    python -m slidecast.runner status [run_id]
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from slidecast.models import VideoConfig

console = Console()

_DEFAULT_CONFIG = "config.yaml"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)


def _load_json(path: Path) -> dict:
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {}


def _load_settings(config_path: str, **overrides) -> tuple[dict, VideoConfig]:
    from slidecast.config import build_video_config, load_config
    from slidecast.errors import ConfigurationError

    try:
        config = load_config(config_path)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    try:
        video = build_video_config(config, **overrides)
    except ConfigurationError as exc:
        console.print("[red]Configuration error:[/red]")
        for problem in exc.problems or [str(exc)]:
            console.print(f"  [red]- {problem}[/red]")
        sys.exit(1)
    return config, video


def _video_options(func):
    options = [
        click.option("--image-count", "-n", type=int, help="Number of images / beats"),
        click.option("--clip-duration", type=float, help="Seconds per clip"),
        click.option("--crossfade", "crossfade_duration", type=float, help="Crossfade seconds"),
        click.option("--fps", type=int, help="Output frame rate"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--config", "-c", default=_DEFAULT_CONFIG, help="Path to config.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """slidecast: narrated Ken-Burns slideshows from a topic."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    _setup_logging(verbose)


# ------------------------------------------------------------------
# make
# ------------------------------------------------------------------

@cli.command("make")
@click.argument("topic")
@_video_options
@click.option("--voice-engine", type=click.Choice(["openai-tts", "d-id"]), help="Narration engine")
@click.option("--presenter", "presenter_id", help="D-ID presenter id")
@click.option("--seed", type=int, help="Seed for reproducible motion effects")
@click.option("--run-id", help="Explicit run id (defaults to topic + timestamp)")
@click.pass_context
def cmd_make(
    ctx: click.Context,
    topic: str,
    image_count: int | None,
    clip_duration: float | None,
    crossfade_duration: float | None,
    fps: int | None,
    voice_engine: str | None,
    presenter_id: str | None,
    seed: int | None,
    run_id: str | None,
) -> None:
    """Produce a narrated video about TOPIC."""
    from slidecast.encoder import EncoderRunner
    from slidecast.errors import ConfigurationError
    from slidecast.pipeline import STAGES, produce_video

    config_path = ctx.obj["config"]
    config, video = _load_settings(
        config_path,
        topic=topic,
        image_count=image_count,
        clip_duration=clip_duration,
        crossfade_duration=crossfade_duration,
        fps=fps,
        voice_engine=voice_engine,
        presenter_id=presenter_id,
    )

    try:
        EncoderRunner(program=config.get("encoder", {}).get("program")).check_available()
    except ConfigurationError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    console.print(
        f"[bold]Producing video:[/bold] {video.topic} "
        f"({video.image_count} images, {video.clip_duration:g}s clips, {video.resolution}@{video.fps})\n"
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            bar = progress.add_task("Starting...", total=len(STAGES))

            def on_stage(stage: str, entry: dict) -> None:
                if entry["status"] == "running":
                    progress.update(bar, description=f"{stage.capitalize()}...")
                elif entry["status"] == "completed":
                    progress.advance(bar)

            result = asyncio.run(produce_video(
                config, video, config_path=config_path, run_id=run_id, seed=seed, on_stage=on_stage,
            ))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Stage progress has been saved to status.json.[/yellow]")
        sys.exit(130)

    if not result.is_success:
        console.print(f"\n[red]Run {result.run_id} failed ({result.error_kind}): {result.error}[/red]")
        sys.exit(1)

    if result.narration and result.narration.degraded:
        console.print(f"[yellow]Narration degraded to silence: {result.narration.detail}[/yellow]")
    console.print(f"\n[green]Video ready:[/green] {result.output_path}")
    if result.credits_path:
        console.print(f"[dim]Image credits: {result.credits_path}[/dim]")


# ------------------------------------------------------------------
# beats
# ------------------------------------------------------------------

@cli.command("beats")
@click.argument("topic")
@_video_options
@click.option("--seed", type=int, help="Seed for the motion effects shown")
@click.option("--commands", "show_commands", is_flag=True, help="Also print the encoder commands")
@click.pass_context
def cmd_beats(
    ctx: click.Context,
    topic: str,
    image_count: int | None,
    clip_duration: float | None,
    crossfade_duration: float | None,
    fps: int | None,
    seed: int | None,
    show_commands: bool,
) -> None:
    """Show the beat sheet for TOPIC without rendering anything."""
    import random

    from slidecast.beats import build_beat_sheet, format_duration, naive_duration, picture_lock_duration
    from slidecast.commands import build_clip_command, build_crossfade_command
    from slidecast.config import get_encode_profiles
    from slidecast.motion import MotionEffectGenerator
    from slidecast.workspace import Workspace

    config, video = _load_settings(
        ctx.obj["config"],
        topic=topic,
        image_count=image_count,
        clip_duration=clip_duration,
        crossfade_duration=crossfade_duration,
        fps=fps,
    )
    clip_profile, _ = get_encode_profiles(config)
    beats = build_beat_sheet(video)
    effects = MotionEffectGenerator(random.Random(seed))
    workspace = Workspace(Path("build"), "preview")

    table = Table(title=f"Beat sheet: {video.topic}", show_lines=True)
    table.add_column("Beat", style="cyan", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Zoom", justify="center")
    table.add_column("Pan", justify="center")

    commands = []
    for beat in beats:
        effect = effects.generate()
        table.add_row(
            str(beat.index),
            f"{beat.start:.2f}",
            f"{beat.end:.2f}",
            f"{effect.start_scale:.1f} -> {effect.end_scale:.1f}",
            f"({effect.start_x:+.1f}, {effect.start_y:+.1f}) -> ({effect.end_x:+.1f}, {effect.end_y:+.1f})",
        )
        commands.append(build_clip_command(
            workspace.image_path(beat.index), workspace.clip_path(beat.index),
            effect, beat.duration, video, clip_profile,
        ))

    console.print(table)
    total = picture_lock_duration(beats)
    console.print(
        f"\n[bold]Picture lock:[/bold] {total:.2f}s ({format_duration(total)}); "
        f"[dim]without overlap it would be {naive_duration(beats):.2f}s[/dim]"
    )

    if show_commands:
        commands.append(build_crossfade_command(
            [c.output_path for c in commands], workspace.picture_lock_path, video, clip_profile,
        ))
        console.print()
        for command in commands:
            console.print(str(command), markup=False, soft_wrap=True)


# ------------------------------------------------------------------
# presenters
# ------------------------------------------------------------------

@cli.command("presenters")
@click.pass_context
def cmd_presenters(ctx: click.Context) -> None:
    """List D-ID avatar presenters."""
    from slidecast.config import get_api_key, load_config
    from slidecast.did_client import DIDClient
    from slidecast.errors import SlidecastError

    config = load_config(ctx.obj["config"])

    async def _list() -> list[dict]:
        async with DIDClient(get_api_key(config, "did"), base_url=config.get("did", {}).get("base_url", "https://api.d-id.com")) as client:
            return await client.list_presenters()

    try:
        presenters = asyncio.run(_list())
    except SlidecastError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    table = Table(title="D-ID Presenters")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Gender")
    for p in presenters:
        table.add_row(p.get("presenter_id", ""), p.get("name", ""), p.get("gender", ""))
    console.print(table)


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------

@cli.command("status")
@click.argument("run_id", required=False)
@click.pass_context
def cmd_status(ctx: click.Context, run_id: str | None) -> None:
    """Show stage status of past runs, or the report of RUN_ID."""
    from slidecast.config import get_work_dir, load_config
    from slidecast.workspace import Workspace

    config_path = ctx.obj["config"]
    work_dir = get_work_dir(load_config(config_path), config_path)

    if run_id:
        workspace = Workspace(work_dir, run_id)
        report = _load_json(workspace.report_path)
        status = _load_json(workspace.status_path)
        if not report and not status:
            console.print(f"[yellow]No run found: {run_id}[/yellow]")
            sys.exit(1)
        console.print_json(data=report or status)
        return

    runs = sorted(p for p in work_dir.glob("*/status.json")) if work_dir.exists() else []
    if not runs:
        console.print("[yellow]No runs found. Pipeline has not been run yet.[/yellow]")
        return

    table = Table(title="Runs", show_lines=True)
    table.add_column("Run", style="cyan")
    table.add_column("Topic")
    table.add_column("Last stage")
    table.add_column("Status", justify="center")

    for path in runs:
        status = _load_json(path)
        stages = status.get("stages", {})
        last, entry = (list(stages.items()) or [("-", {})])[-1]
        st = entry.get("status", "unknown")
        if st == "completed":
            status_str = "[green]DONE[/green]"
        elif st == "failed":
            status_str = "[red]FAILED[/red]"
        elif st == "running":
            status_str = "[yellow]IN PROGRESS[/yellow]"
        else:
            status_str = f"[dim]{st.upper()}[/dim]"
        table.add_row(status.get("run_id", path.parent.name), status.get("topic", ""), last, status_str)

    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
