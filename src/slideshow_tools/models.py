"""Data models for clips, probe output and run results."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import OUTPUT_FPS, OUTPUT_RESOLUTION

NO_AUDIO = "No audio"


# =============================================================================
# Timeline input
# =============================================================================


@dataclass(frozen=True)
class Clip:
    """One converted frame placed on the timeline."""

    path: Path
    index: int
    duration: float
    overlay_text: str = ""


# =============================================================================
# ffprobe JSON (-print_format json -show_format -show_streams)
# =============================================================================


class ProbeStream(BaseModel):
    """A single stream entry from ffprobe.

    ffprobe omits fields freely (e.g. bit_rate on some containers), so
    everything but the codec type is optional.
    """

    model_config = ConfigDict(extra="ignore")

    index: int = 0
    codec_type: str = ""
    codec_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    r_frame_rate: Optional[str] = None
    bit_rate: Optional[str] = None
    duration: Optional[str] = None

    @property
    def frame_rate(self) -> Optional[float]:
        """Parse r_frame_rate ("30/1") into frames per second."""
        if not self.r_frame_rate:
            return None
        num, _, den = self.r_frame_rate.partition("/")
        try:
            numerator = float(num)
            denominator = float(den) if den else 1.0
        except ValueError:
            return None
        if denominator == 0:
            return None
        return numerator / denominator

    @property
    def bit_rate_bps(self) -> Optional[int]:
        if self.bit_rate is None:
            return None
        try:
            return int(self.bit_rate)
        except ValueError:
            return None


class ProbeFormat(BaseModel):
    """Container-level ffprobe fields."""

    model_config = ConfigDict(extra="ignore")

    filename: Optional[str] = None
    format_name: Optional[str] = None
    duration: Optional[str] = None
    size: Optional[str] = None
    bit_rate: Optional[str] = None


class ProbeResult(BaseModel):
    """Parsed ffprobe output for one media file."""

    model_config = ConfigDict(extra="ignore")

    streams: list[ProbeStream] = Field(default_factory=list)
    format: ProbeFormat = Field(default_factory=ProbeFormat)

    @classmethod
    def from_json(cls, text: str) -> ProbeResult:
        """Parse raw ffprobe JSON output."""
        return cls.model_validate(json.loads(text))

    @property
    def video_stream(self) -> Optional[ProbeStream]:
        return next((s for s in self.streams if s.codec_type == "video"), None)

    @property
    def audio_stream(self) -> Optional[ProbeStream]:
        return next((s for s in self.streams if s.codec_type == "audio"), None)

    @property
    def duration_seconds(self) -> float:
        """Container duration, or 0.0 when ffprobe did not report one."""
        if self.format.duration is None:
            return 0.0
        try:
            return float(self.format.duration)
        except ValueError:
            return 0.0


# =============================================================================
# Run results
# =============================================================================


@dataclass(frozen=True)
class VideoDetails:
    """Technical facts about a finished video."""

    duration: float
    video_bitrate: str
    audio_bitrate: str
    framerate: str
    resolution: str
    measured: bool = True

    @classmethod
    def defaults(cls, duration: float = 0.0) -> VideoDetails:
        """Declared output settings, used when live measurement is unavailable."""
        return cls(
            duration=duration,
            video_bitrate="unknown",
            audio_bitrate=NO_AUDIO,
            framerate=f"{OUTPUT_FPS} fps",
            resolution=OUTPUT_RESOLUTION,
            measured=False,
        )

    @classmethod
    def from_probe(cls, probe: ProbeResult) -> VideoDetails:
        """Summarize ffprobe output, filling gaps with declared defaults."""
        video = probe.video_stream
        audio = probe.audio_stream

        video_bitrate = "unknown"
        framerate = f"{OUTPUT_FPS} fps"
        resolution = OUTPUT_RESOLUTION
        if video is not None:
            if video.bit_rate_bps is not None:
                video_bitrate = f"{video.bit_rate_bps / 1_000_000:.1f} Mbps"
            if video.frame_rate is not None:
                framerate = f"{video.frame_rate:.0f} fps"
            if video.width and video.height:
                resolution = f"{video.width}x{video.height}"

        audio_bitrate = NO_AUDIO
        if audio is not None:
            if audio.bit_rate_bps is not None:
                audio_bitrate = f"{audio.bit_rate_bps // 1000} kbps"
            else:
                audio_bitrate = "unknown"

        return cls(
            duration=probe.duration_seconds,
            video_bitrate=video_bitrate,
            audio_bitrate=audio_bitrate,
            framerate=framerate,
            resolution=resolution,
        )

    @property
    def has_audio(self) -> bool:
        return self.audio_bitrate != NO_AUDIO


@dataclass(frozen=True)
class RunResult:
    """A finished slideshow artifact."""

    path: Path
    size_bytes: int
    elapsed_seconds: float
    details: VideoDetails
    expected_duration: float = 0.0
    encoder_label: Optional[str] = None

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)
