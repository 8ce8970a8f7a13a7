"""Slideshow video pipeline: frames + music -> 4K H.264 video."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from ..config import EncodingDefaults, VideoDefaults
from ..constants import (
    AUDIO_BITRATE,
    AUDIO_CODEC,
    AUDIO_PATTERN,
    DEFAULT_CLIP_DURATION,
    DEFAULT_FFMPEG,
    DEFAULT_FFPROBE,
    DEFAULT_OVERLAY_FONT_SIZE,
    DEFAULT_TRANSITION_DURATION,
    FRAMES_DIR,
    VIDEO_OUTPUT,
)
from ..exceptions import PreconditionError, ProbeError
from ..exif import format_overlay, read_camera_info
from ..logging import get_logger
from ..models import Clip, ProbeResult, RunResult, VideoDetails
from .capabilities import CapabilityProbe, CapabilityReport, HostInfo
from .effects import KenBurnsGenerator
from .encoders import EncoderPolicy, EncoderProfile
from .ffmpeg import CommandRunner, FFmpegCommand, probe_media, run_quiet
from .graph import SlideshowGraph, build_slideshow_graph
from .images import load_manifest

log = get_logger(__name__)

MIN_FRAMES = 2

# media path -> parsed ffprobe output, raising ProbeError
MediaProber = Callable[[Path], ProbeResult]
# source image -> caption text ("" for none)
OverlayReader = Callable[[Path], str]


def read_overlay_text(image_path: Path) -> str:
    return format_overlay(read_camera_info(image_path))


@dataclass
class VideoConfig:
    """Configuration for one slideshow render."""

    duration: float = DEFAULT_CLIP_DURATION  # Seconds per image
    transition: float = DEFAULT_TRANSITION_DURATION  # Crossfade length
    ken_burns: bool = True  # Zoom/pan each still; False shows them static
    exif_overlay: bool = False  # Caption each image with its camera settings
    font_size: int = DEFAULT_OVERLAY_FONT_SIZE
    seed: Optional[int] = None  # Pins the Ken Burns variant sequence

    def __post_init__(self) -> None:
        if self.transition <= 0:
            raise ValueError("transition must be positive")
        if self.duration <= self.transition:
            raise ValueError(
                f"duration ({self.duration}s) must be longer than the "
                f"transition ({self.transition}s)"
            )

    @classmethod
    def from_defaults(cls, defaults: VideoDefaults, **overrides) -> VideoConfig:
        """Config-file defaults with CLI overrides (None means "not given")."""
        values = {
            "duration": defaults.duration,
            "transition": defaults.transition,
            "ken_burns": defaults.ken_burns,
            "exif_overlay": defaults.exif_overlay,
            "font_size": defaults.font_size,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class SlideshowPlan:
    """Everything decided before ffmpeg is started."""

    clips: list[Clip]
    audio: Optional[Path]
    graph: SlideshowGraph
    report: CapabilityReport
    profile: EncoderProfile
    command: FFmpegCommand
    notes: list[str] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return self.graph.total_duration

    @property
    def output_path(self) -> Path:
        return Path(self.command.output_path)


class SlideshowPipeline:
    """Orchestrates one slideshow render.

    The pipeline is single use in spirit: every run re-probes the encoders
    and rebuilds the graph, nothing is cached between runs.
    """

    def __init__(
        self,
        work_dir: Path,
        config: Optional[VideoConfig] = None,
        probe: Optional[CapabilityProbe] = None,
        policy: Optional[EncoderPolicy] = None,
        runner: Optional[CommandRunner] = None,
        prober: Optional[MediaProber] = None,
        rng: Optional[random.Random] = None,
        overlay_reader: Optional[OverlayReader] = None,
        host: Optional[HostInfo] = None,
        ffmpeg: str = DEFAULT_FFMPEG,
        ffprobe: str = DEFAULT_FFPROBE,
    ):
        """Initialize the pipeline.

        Args:
            work_dir: Directory holding converted/ and the music file
            config: Render settings (uses defaults if not provided)
            probe: Encoder capability probe
            policy: Encoder selection policy
            runner: Runs the final ffmpeg command, raising FFmpegError on failure
            prober: Reads the finished video's metadata
            rng: Randomness for Ken Burns variants (seeded from config if absent)
            overlay_reader: Turns a source image into caption text
            host: Host facts (detected if absent)
            ffmpeg: ffmpeg binary
            ffprobe: ffprobe binary
        """
        self.work_dir = Path(work_dir)
        self.config = config or VideoConfig()
        self.ffmpeg = ffmpeg
        self.probe = probe or CapabilityProbe(ffmpeg)
        self.policy = policy or EncoderPolicy()
        self.host = host
        self._runner = runner or run_quiet
        self._prober = prober or partial(probe_media, ffprobe=ffprobe)
        self._overlay_reader = overlay_reader or read_overlay_text
        self._rng = rng or random.Random(self.config.seed)

    @classmethod
    def from_user_config(
        cls,
        work_dir: Path,
        config: VideoConfig,
        ffmpeg: str,
        ffprobe: str,
        encoding: EncodingDefaults,
    ) -> SlideshowPipeline:
        probe = CapabilityProbe(
            ffmpeg,
            smoke_tests=encoding.smoke_test,
            timeout=encoding.probe_timeout,
        )
        return cls(
            work_dir,
            config,
            probe=probe,
            policy=EncoderPolicy.from_config(encoding),
            ffmpeg=ffmpeg,
            ffprobe=ffprobe,
        )

    @property
    def frames_dir(self) -> Path:
        return self.work_dir / FRAMES_DIR

    @property
    def output_path(self) -> Path:
        return self.work_dir / VIDEO_OUTPUT

    def discover_frames(self) -> list[Path]:
        """Converted frames in name order.

        Raises:
            PreconditionError: If the directory is missing or has fewer than two frames
        """
        if not self.frames_dir.is_dir():
            raise PreconditionError(
                "Converted frames directory not found", self.frames_dir
            )

        frames = sorted(p for p in self.frames_dir.glob("*.jpg") if p.is_file())
        if not frames:
            raise PreconditionError("No converted images found", self.frames_dir, 0)
        if len(frames) < MIN_FRAMES:
            raise PreconditionError(
                f"At least {MIN_FRAMES} images are needed for a slideshow",
                self.frames_dir,
                len(frames),
            )
        return frames

    def find_audio(self) -> Optional[Path]:
        """First mp3 in the working directory by name, if any."""
        tracks = sorted(p for p in self.work_dir.glob(AUDIO_PATTERN) if p.is_file())
        if len(tracks) > 1:
            log.info(f"Several music files found, using {tracks[0].name}")
        return tracks[0] if tracks else None

    def build_clips(self, frames: list[Path]) -> list[Clip]:
        """One clip per frame, with captions when the overlay is enabled."""
        sources = load_manifest(self.frames_dir) if self.config.exif_overlay else {}

        clips = []
        for i, frame in enumerate(frames):
            text = ""
            if self.config.exif_overlay:
                # Converted frames carry no EXIF; read the original photo
                text = self._overlay_reader(sources.get(frame.name, frame))
            clips.append(Clip(path=frame, index=i, duration=self.config.duration, overlay_text=text))
        return clips

    def build_command(
        self,
        clips: list[Clip],
        audio: Optional[Path],
        profile: EncoderProfile,
    ) -> tuple[FFmpegCommand, SlideshowGraph]:
        """Assemble the ffmpeg invocation for `clips` encoded with `profile`."""
        cmd = FFmpegCommand(output_path=self.output_path, binary=self.ffmpeg)
        for clip in clips:
            cmd.add_image_input(clip.path, clip.duration)
        audio_input = cmd.add_input(audio) if audio else None

        effects = KenBurnsGenerator(rng=self._rng) if self.config.ken_burns else None
        graph = build_slideshow_graph(
            clips,
            self.config.duration,
            self.config.transition,
            effects=effects,
            font_size=self.config.font_size,
            audio_input=audio_input,
        )

        cmd.set_filter_complex(graph.filter_complex)
        cmd.add_map(graph.video_label)
        if graph.audio_label:
            cmd.add_map(graph.audio_label)
            cmd.add_options("-shortest")

        cmd.add_options(*profile.args())
        if graph.audio_label:
            cmd.add_options("-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE)
        cmd.set_duration(graph.total_duration)
        return cmd, graph

    def plan(self) -> SlideshowPlan:
        """Decide everything about the render without encoding.

        Frames are checked before any subprocess is started.
        """
        frames = self.discover_frames()
        clips = self.build_clips(frames)
        audio = self.find_audio()

        notes = []
        if audio is None:
            notes.append("No music file found; the video will be silent")

        report = self.probe.probe(self.host)
        profile = self.policy.select(report)
        cmd, graph = self.build_command(clips, audio, profile)

        log.debug(f"Filter graph: {graph.filter_complex}")
        return SlideshowPlan(
            clips=clips,
            audio=audio,
            graph=graph,
            report=report,
            profile=profile,
            command=cmd,
            notes=notes,
        )

    def inspect(self, video_path: Path, expected_duration: float) -> VideoDetails:
        """Measure the finished video, falling back to the declared settings."""
        try:
            return VideoDetails.from_probe(self._prober(video_path))
        except ProbeError as e:
            log.warning(f"Could not inspect {video_path.name}, reporting declared settings: {e}")
            return VideoDetails.defaults(expected_duration)

    def run(self, plan: Optional[SlideshowPlan] = None) -> RunResult:
        """Render the slideshow.

        Raises:
            PreconditionError: If there are too few frames (nothing is spawned)
            FFmpegError: If the encode fails
        """
        plan = plan or self.plan()
        log.info(
            f"Encoding {len(plan.clips)} images ({plan.total_duration:.1f}s) "
            f"with {plan.profile.encoder}"
        )

        start = time.monotonic()
        plan.command.run(
            f"Encoding 4K video with {plan.profile.label}...", self._runner
        )
        elapsed = time.monotonic() - start

        output = plan.output_path
        details = self.inspect(output, plan.total_duration)
        size = output.stat().st_size if output.exists() else 0

        log.info(f"Created {output} in {elapsed:.1f}s")
        return RunResult(
            path=output,
            size_bytes=size,
            elapsed_seconds=elapsed,
            details=details,
            expected_duration=plan.total_duration,
            encoder_label=plan.profile.label,
        )
