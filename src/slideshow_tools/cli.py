"""Command-line interface for slideshow-tools."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
)
from rich.table import Table

from . import __version__
from .config import get_config
from .exceptions import FFmpegError, SlideshowError
from .logging import setup_logging
from .models import RunResult
from .processing import (
    CapabilityProbe,
    ConversionStats,
    EncoderPolicy,
    GifConfig,
    GifPipeline,
    HostInfo,
    SlideshowPipeline,
    VideoConfig,
    convert_images,
    convert_images_for_gif,
)
from .processing.capabilities import ENCODER_NAMES, KNOWN_ENCODERS
from .processing.images import find_source_images

console = Console()

work_dir_argument = click.argument(
    "work_dir",
    required=False,
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    if isinstance(error, FFmpegError) and error.command:
        console.print(f"[dim]{escape(error.command_string)}[/dim]")
    raise SystemExit(1)


def _run_conversion(
    description: str,
    source_dir: Path,
    convert: Callable[..., ConversionStats],
    **kwargs,
) -> ConversionStats:
    """Run an image conversion behind a progress bar."""
    total = len(find_source_images(source_dir))
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=total)
        stats = convert(
            source_dir,
            on_progress=lambda source, _: progress.update(
                task, advance=1, description=f"{description} {source.name}"
            ),
            **kwargs,
        )
    return stats


def _print_conversion(stats: ConversionStats, frames_dir: str) -> None:
    if stats.skipped:
        console.print(
            f"[yellow]'{frames_dir}' already exists, skipping image conversion[/yellow]"
        )
        return
    console.print(
        f"[green]Converted {stats.count} images[/green] in {stats.elapsed_seconds:.1f}s "
        f"({stats.per_image_seconds:.2f}s per image)"
    )
    console.print(
        f"  Size: {stats.original_mb:.1f} MB -> {stats.converted_mb:.1f} MB"
    )


def _print_result(result: RunResult) -> None:
    details = result.details

    table = Table(title="Video Details", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("File", str(result.path))
    table.add_row("Size", f"{result.size_mb:.1f} MB")
    table.add_row("Duration", f"{details.duration:.1f}s")
    table.add_row("Resolution", details.resolution)
    table.add_row("Frame rate", details.framerate)
    table.add_row("Video bitrate", details.video_bitrate)
    table.add_row("Audio", details.audio_bitrate)
    if result.encoder_label:
        table.add_row("Encoder", result.encoder_label)
    table.add_row("Encode time", f"{result.elapsed_seconds:.1f}s")
    console.print(table)

    if not details.measured:
        console.print("[dim]ffprobe unavailable; showing the declared output settings[/dim]")


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging on stderr")
def main(verbose: bool):
    """Slideshow Tools.

    Turns a folder of JPEG photos into a 4K slideshow video or an
    animated GIF/WebP sticker.
    """
    log_config = get_config().logging
    setup_logging(
        verbose=verbose,
        log_dir=log_config.directory,
        file_logging=log_config.file,
        retention=log_config.retention,
    )


# =============================================================================
# Video
# =============================================================================


@main.command()
@work_dir_argument
@click.option(
    "--duration",
    "-d",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds each image is shown (default: from config or 5)",
)
@click.option(
    "--transition",
    "-t",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Crossfade length in seconds (default: from config or 1)",
)
@click.option("--static", is_flag=True, help="Disable Ken Burns zoom/pan effects")
@click.option(
    "--exif-overlay",
    is_flag=True,
    help="Caption each image with its camera settings",
)
@click.option(
    "--font-size",
    type=click.IntRange(min=1),
    default=None,
    help="Caption font size (default: from config or 36)",
)
@click.option("--convert-only", is_flag=True, help="Convert images and stop")
@click.option("--seed", type=int, default=None, help="Seed for reproducible effects")
@click.option("--dry-run", is_flag=True, help="Show the FFmpeg command without executing")
def video(
    work_dir: Path,
    duration: Optional[float],
    transition: Optional[float],
    static: bool,
    exif_overlay: bool,
    font_size: Optional[int],
    convert_only: bool,
    seed: Optional[int],
    dry_run: bool,
):
    """Create a 4K slideshow video from the JPEGs in WORK_DIR.

    Images are converted into converted/ first (skipped when it exists),
    then encoded to video.mp4 with the best working H.264 encoder. The
    first .mp3 found is used as background music.

    Examples:

        # Default 5s per image with 1s crossfades
        slideshow video ~/photos/trip

        # Faster pacing, no zoom, camera settings captions
        slideshow video -d 3 -t 0.5 --static --exif-overlay

        # Preview the FFmpeg command
        slideshow video --dry-run
    """
    user_config = get_config()

    try:
        config = VideoConfig.from_defaults(
            user_config.video,
            duration=duration,
            transition=transition,
            ken_burns=False if static else None,
            exif_overlay=True if exif_overlay else None,
            font_size=font_size,
            seed=seed,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        stats = _run_conversion("Converting", work_dir, convert_images)
        _print_conversion(stats, "converted")
        if convert_only:
            return

        pipeline = SlideshowPipeline.from_user_config(
            work_dir,
            config,
            ffmpeg=user_config.ffmpeg,
            ffprobe=user_config.ffprobe,
            encoding=user_config.encoding,
        )
        with console.status("Detecting hardware encoders..."):
            plan = pipeline.plan()
    except SlideshowError as e:
        _fail(e)

    console.print()
    console.print("[bold]Video Configuration:[/bold]")
    console.print(f"  Images: {len(plan.clips)}")
    console.print(f"  Per image: {config.duration:g}s, transition: {config.transition:g}s")
    console.print(f"  Total length: {plan.total_duration:.1f}s")
    console.print(f"  Effects: {'Ken Burns' if config.ken_burns else 'Static'}")
    console.print(f"  Music: {plan.audio.name if plan.audio else '[dim]none[/dim]'}")
    console.print(f"  Encoder: {plan.profile.label} [dim]({plan.profile.reason})[/dim]")
    for note in plan.notes:
        console.print(f"  [yellow]{note}[/yellow]")
    console.print()

    if dry_run:
        console.print(Panel(escape(plan.command.build_string()), title="FFmpeg"))
        return

    try:
        result = pipeline.run(plan)
    except SlideshowError as e:
        _fail(e)

    console.print("[green]Video created successfully![/green]")
    _print_result(result)


# =============================================================================
# GIF / WebP
# =============================================================================


@main.command()
@work_dir_argument
@click.option(
    "--duration",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds per image (default: 2)",
)
@click.option(
    "--total-time",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Total animation length in seconds, split evenly across images",
)
@click.option("--fps", type=click.IntRange(min=1), default=None, help="Frames per second")
@click.option(
    "--scale",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Extra scale factor (e.g. 0.5 for half size)",
)
@click.option("--optimize", is_flag=True, help="Palette-optimised GIF (smaller file)")
@click.option("--webp", is_flag=True, help="Animated WebP instead of GIF")
def gif(
    work_dir: Path,
    duration: Optional[float],
    total_time: Optional[float],
    fps: Optional[int],
    scale: Optional[float],
    optimize: bool,
    webp: bool,
):
    """Create an animated GIF or WebP from the JPEGs in WORK_DIR."""
    if duration is not None and total_time is not None:
        raise click.UsageError("--duration and --total-time are mutually exclusive")
    if optimize and webp:
        raise click.UsageError("--optimize only applies to GIF output")

    user_config = get_config()
    config_kwargs = {
        "total_time": total_time,
        "fps": fps if fps is not None else user_config.gif.fps,
        "scale": scale if scale is not None else user_config.gif.scale,
        "optimize": optimize,
        "webp": webp,
    }
    if duration is not None:
        config_kwargs["duration"] = duration
    config = GifConfig(**config_kwargs)

    try:
        stats = _run_conversion(
            "Converting for GIF",
            work_dir,
            convert_images_for_gif,
            max_height=user_config.gif.max_height,
        )
        _print_conversion(stats, "gif_converted")

        pipeline = GifPipeline(work_dir, config, ffmpeg=user_config.ffmpeg)
        output = pipeline.run()
    except SlideshowError as e:
        _fail(e)

    size_mb = output.stat().st_size / 1024 / 1024 if output.exists() else 0.0
    console.print(f"[green]Created {output.name}[/green] ({size_mb:.1f} MB)")


# =============================================================================
# Utilities
# =============================================================================


@main.command()
@work_dir_argument
def convert(work_dir: Path):
    """Convert the JPEGs in WORK_DIR to 4K frames without encoding."""
    try:
        stats = _run_conversion("Converting", work_dir, convert_images)
    except SlideshowError as e:
        _fail(e)
    _print_conversion(stats, "converted")


@main.command()
def env():
    """Show the host, encoder capabilities and the encoder that would be used."""
    user_config = get_config()
    host = HostInfo.detect()
    probe = CapabilityProbe(
        user_config.ffmpeg,
        smoke_tests=user_config.encoding.smoke_test,
        timeout=user_config.encoding.probe_timeout,
    )

    with console.status("Probing encoders..."):
        report = probe.probe(host)
    profile = EncoderPolicy.from_config(user_config.encoding).select(report)

    console.print(f"[bold]Environment:[/bold] {host.environment} ({host.machine or 'unknown'})")
    console.print(f"[bold]FFmpeg:[/bold] {user_config.ffmpeg}")
    console.print(
        f"[bold]Config:[/bold] {user_config.source or '[dim]defaults (no config file)[/dim]'}"
    )
    console.print()

    table = Table(title="H.264 Encoders")
    table.add_column("Encoder", style="cyan")
    table.add_column("Name")
    table.add_column("Listed")
    table.add_column("Working")
    for encoder in KNOWN_ENCODERS:
        listed = encoder in report.listed
        working = report.has(encoder)
        table.add_row(
            encoder,
            ENCODER_NAMES[encoder],
            "yes" if listed else "[dim]no[/dim]",
            "[green]yes[/green]" if working else ("[red]no[/red]" if listed else "[dim]-[/dim]"),
        )
    console.print(table)

    if not report.listed:
        console.print("[yellow]ffmpeg did not report any encoders; is it installed?[/yellow]")

    console.print()
    console.print(f"[bold]Selected:[/bold] {profile.label} [dim]({profile.reason})[/dim]")
    console.print(Panel(" ".join(profile.args()), title="Encoder arguments"))


if __name__ == "__main__":
    main()
