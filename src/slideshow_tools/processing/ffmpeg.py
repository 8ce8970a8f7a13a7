"""FFmpeg command builder and subprocess helpers."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..constants import (
    DEFAULT_FFMPEG,
    DEFAULT_FFPROBE,
    DEFAULT_PROBE_TIMEOUT,
    SPINNER_REFRESH_PER_SECOND,
)
from ..exceptions import FFmpegError, ProbeError
from ..logging import get_logger
from ..models import ProbeResult

log = get_logger(__name__)

# (argv, description) -> None, raising FFmpegError on failure
CommandRunner = Callable[[list[str], str], None]


def format_seconds(value: float) -> str:
    """Render a time value the way ffmpeg options expect it.

    Whole numbers drop the fraction (13.0 -> "13"), others keep up to
    millisecond precision (4.5 -> "4.5").
    """
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def escape_drawtext(text: str) -> str:
    """Escape special characters for FFmpeg drawtext filter."""
    text = text.replace("\\", "\\\\")
    text = text.replace("'", "'\\''")
    text = text.replace(":", "\\:")
    text = text.replace("%", "\\%")
    return text


@dataclass
class FFmpegCommand:
    """Builder for multi-input FFmpeg commands with filter graph support."""

    output_path: Union[Path, str]
    binary: str = DEFAULT_FFMPEG
    overwrite: bool = True
    inputs: list[list[str]] = field(default_factory=list)
    filter_complex: Optional[str] = None
    maps: list[str] = field(default_factory=list)
    # Output options, kept in insertion order (encoders repeat flag families)
    options: list[str] = field(default_factory=list)

    @property
    def input_count(self) -> int:
        return len(self.inputs)

    def add_input(
        self,
        source: Union[Path, str],
        *,
        loop: bool = False,
        duration: Optional[float] = None,
        fmt: Optional[str] = None,
    ) -> int:
        """Add an input and return its stream index.

        Args:
            source: File path or source expression (with fmt="lavfi")
            loop: Loop a still image (-loop 1)
            duration: Input duration limit in seconds (-t)
            fmt: Force input format (-f)
        """
        args: list[str] = []
        if loop:
            args.extend(["-loop", "1"])
        if duration is not None:
            args.extend(["-t", format_seconds(duration)])
        if fmt:
            args.extend(["-f", fmt])
        args.extend(["-i", str(source)])
        self.inputs.append(args)
        return len(self.inputs) - 1

    def add_image_input(self, image_path: Path, duration: float) -> int:
        """Add a still image looped for `duration` seconds."""
        return self.add_input(image_path, loop=True, duration=duration)

    def set_filter_complex(self, graph: str) -> "FFmpegCommand":
        self.filter_complex = graph
        return self

    def add_map(self, label: str) -> "FFmpegCommand":
        """Map a filter graph output label or stream specifier."""
        if ":" in label or label.startswith("["):
            self.maps.append(label)
        else:
            self.maps.append(f"[{label}]")
        return self

    def add_options(self, *args: str) -> "FFmpegCommand":
        self.options.extend(args)
        return self

    def set_video_filter(self, chain: str) -> "FFmpegCommand":
        """Set a simple -vf chain (single-input commands)."""
        return self.add_options("-vf", chain)

    def set_duration(self, seconds: float) -> "FFmpegCommand":
        """Force the output duration (-t)."""
        return self.add_options("-t", format_seconds(seconds))

    def set_frame_rate(self, fps: int) -> "FFmpegCommand":
        return self.add_options("-r", str(fps))

    def build(self) -> list[str]:
        """Build the complete FFmpeg command as argument list."""
        cmd = [self.binary]
        if self.overwrite:
            cmd.append("-y")

        for input_args in self.inputs:
            cmd.extend(input_args)

        if self.filter_complex:
            cmd.extend(["-filter_complex", self.filter_complex])

        for label in self.maps:
            cmd.extend(["-map", label])

        cmd.extend(self.options)
        cmd.append(str(self.output_path))
        return cmd

    def build_string(self) -> str:
        """Build the command as a shell-escaped string."""
        return shlex.join(self.build())

    def run(
        self,
        description: str = "Running ffmpeg...",
        runner: Optional[CommandRunner] = None,
    ) -> None:
        """Execute the command quietly, raising FFmpegError on failure."""
        (runner or run_quiet)(self.build(), description)


def run_quiet(
    cmd: list[str],
    description: str = "Running ffmpeg...",
    console: Optional[Console] = None,
) -> None:
    """Run an FFmpeg command with its output hidden behind a spinner.

    stdout is discarded and stderr is only kept for the error message.
    The spinner's refresh thread is stopped and joined before the exit
    status is examined.

    Raises:
        FFmpegError: If the binary is missing or exits non-zero
    """
    log.debug(f"Running: {shlex.join(cmd)}")
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise FFmpegError(f"Could not start {cmd[0]}: {e}", command=cmd) from e

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
        refresh_per_second=SPINNER_REFRESH_PER_SECOND,
    ) as progress:
        progress.add_task(description, total=None)
        _, stderr = process.communicate()

    if process.returncode != 0:
        raise FFmpegError(
            f"{cmd[0]} failed",
            command=cmd,
            returncode=process.returncode,
            stderr=stderr,
        )


def run_capture(
    cmd: list[str],
    timeout: Optional[float] = DEFAULT_PROBE_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run a short helper command and capture its output (no exit check)."""
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        stdin=subprocess.DEVNULL,
    )


def probe_media(
    media_path: Path,
    ffprobe: str = DEFAULT_FFPROBE,
    timeout: Optional[float] = DEFAULT_PROBE_TIMEOUT,
) -> ProbeResult:
    """Inspect a media file with ffprobe's JSON output.

    Raises:
        ProbeError: If ffprobe is missing, fails, or prints unparsable output
    """
    cmd = [
        ffprobe,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(media_path),
    ]

    try:
        result = run_capture(cmd, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProbeError(f"ffprobe could not run: {e}", media_path) from e

    if result.returncode != 0:
        raise ProbeError(f"ffprobe exited with status {result.returncode}", media_path)

    try:
        return ProbeResult.from_json(result.stdout)
    except ValueError as e:
        raise ProbeError(f"Unreadable ffprobe output: {e}", media_path) from e
