"""Animated GIF and WebP stickers from GIF-sized frames."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..constants import (
    DEFAULT_FFMPEG,
    DEFAULT_GIF_DURATION,
    DEFAULT_GIF_FPS,
    DEFAULT_GIF_SCALE,
    GIF_DITHER,
    GIF_FRAMES_DIR,
    GIF_OUTPUT,
    GIF_PALETTE_MAX_COLORS,
    OPTIMIZED_GIF_OUTPUT,
    PALETTE_FILE,
    TEMP_GIF_FILE,
    WEBP_OUTPUT,
    WEBP_QUALITY,
)
from ..exceptions import FFmpegError, PreconditionError
from ..logging import get_logger
from .ffmpeg import CommandRunner, FFmpegCommand, run_quiet
from .graph import ScaleNode, build_concat_graph

log = get_logger(__name__)


@dataclass
class GifConfig:
    """Configuration for GIF/WebP generation."""

    duration: float = DEFAULT_GIF_DURATION  # Seconds per image
    total_time: Optional[float] = None  # Whole animation length; overrides duration
    fps: int = DEFAULT_GIF_FPS
    scale: float = DEFAULT_GIF_SCALE  # Extra scale on top of the converted frames
    optimize: bool = False  # Palette-optimised GIF
    webp: bool = False  # Animated WebP instead of GIF

    def __post_init__(self) -> None:
        if self.total_time is not None and self.total_time <= 0:
            raise ValueError("total_time must be positive")
        if self.duration <= 0:
            raise ValueError("duration must be positive")
        if self.fps <= 0:
            raise ValueError("fps must be positive")
        if self.scale <= 0:
            raise ValueError("scale must be positive")


class GifPipeline:
    """Concatenates still frames into a looping animation.

    Frames are shown back to back without crossfades.
    """

    def __init__(
        self,
        work_dir: Path,
        config: Optional[GifConfig] = None,
        ffmpeg: str = DEFAULT_FFMPEG,
        runner: Optional[CommandRunner] = None,
    ):
        self.work_dir = Path(work_dir)
        self.config = config or GifConfig()
        self.ffmpeg = ffmpeg
        self._runner = runner or run_quiet

    @property
    def frames_dir(self) -> Path:
        return self.work_dir / GIF_FRAMES_DIR

    def discover_frames(self) -> list[Path]:
        """GIF frames sorted by name (their NNN_ prefix keeps source order).

        Raises:
            PreconditionError: If there are no frames to animate
        """
        if not self.frames_dir.is_dir():
            raise PreconditionError("No converted GIF frames", self.frames_dir, 0)
        frames = sorted(self.frames_dir.glob("*.jpg"))
        if not frames:
            raise PreconditionError("No converted GIF frames", self.frames_dir, 0)
        return frames

    def frame_duration(self, count: int) -> float:
        """Seconds each image stays on screen."""
        if self.config.total_time is not None:
            return round(self.config.total_time / count, 3)
        return self.config.duration

    def build_command(self, frames: list[Path], output: Path) -> FFmpegCommand:
        """Concatenate `frames` into `output`; the format follows the config."""
        cmd = FFmpegCommand(output_path=output, binary=self.ffmpeg)
        duration = self.frame_duration(len(frames))
        for frame in frames:
            cmd.add_image_input(frame, duration)

        graph = build_concat_graph(len(frames), self.config.scale)
        cmd.set_filter_complex(graph.render())
        cmd.add_map(graph.outputs[0])
        cmd.set_frame_rate(self.config.fps)

        if self.config.total_time is not None:
            cmd.set_duration(self.config.total_time)

        if self.config.webp:
            cmd.add_options("-c:v", "libwebp", "-loop", "0", "-q:v", str(WEBP_QUALITY))
        elif output.suffix == ".gif" and output.name != TEMP_GIF_FILE:
            cmd.add_options("-f", "gif")
        return cmd

    def build_palette_command(self, first_frame: Path, palette: Path) -> FFmpegCommand:
        """Palette from the first frame only, one second of it."""
        chain = f"palettegen=max_colors={GIF_PALETTE_MAX_COLORS}"
        if self.config.scale != 1.0:
            chain = f"{ScaleNode(self.config.scale).render()},{chain}"

        cmd = FFmpegCommand(output_path=palette, binary=self.ffmpeg)
        cmd.add_input(first_frame)
        cmd.set_video_filter(chain)
        cmd.set_duration(1)
        return cmd

    def build_palette_apply_command(self, temp_gif: Path, palette: Path, output: Path) -> FFmpegCommand:
        cmd = FFmpegCommand(output_path=output, binary=self.ffmpeg)
        cmd.add_input(temp_gif)
        cmd.add_input(palette)
        cmd.add_options("-lavfi", f"paletteuse=dither={GIF_DITHER}")
        return cmd

    def run(self) -> Path:
        """Generate the animation and return its path.

        Raises:
            PreconditionError: If there are no frames
            FFmpegError: If ffmpeg fails with no fallback left
        """
        frames = self.discover_frames()
        log.info(f"Animating {len(frames)} frames at {self.config.fps} fps")

        if self.config.webp:
            output = self.work_dir / WEBP_OUTPUT
            self.build_command(frames, output).run("Generating WebP...", self._runner)
            return output

        if self.config.optimize:
            return self._run_optimized(frames)

        output = self.work_dir / GIF_OUTPUT
        self.build_command(frames, output).run("Generating GIF...", self._runner)
        return output

    def _run_optimized(self, frames: list[Path]) -> Path:
        palette = self.work_dir / PALETTE_FILE
        temp_gif = self.work_dir / TEMP_GIF_FILE
        output = self.work_dir / OPTIMIZED_GIF_OUTPUT

        try:
            self.build_palette_command(frames[0], palette).run(
                "Generating palette...", self._runner
            )
        except FFmpegError as e:
            log.warning(f"Palette generation failed, falling back to a regular GIF: {e}")
            palette.unlink(missing_ok=True)
            fallback = self.work_dir / GIF_OUTPUT
            self.build_command(frames, fallback).run("Generating GIF...", self._runner)
            return fallback

        try:
            self.build_command(frames, temp_gif).run("Creating GIF...", self._runner)
        except FFmpegError:
            palette.unlink(missing_ok=True)
            raise

        try:
            self.build_palette_apply_command(temp_gif, palette, output).run(
                "Applying optimization...", self._runner
            )
        except FFmpegError as e:
            log.warning(f"Palette application failed, keeping the unoptimised GIF: {e}")
            temp_gif.replace(output)
        else:
            temp_gif.unlink(missing_ok=True)
        finally:
            palette.unlink(missing_ok=True)

        return output
