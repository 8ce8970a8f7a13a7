"""Encoder selection policy.

Backends are tried in a fixed priority order:

    NVENC > VideoToolbox (macOS) > Media Foundation (Windows) > QSV > AMF
    > VAAPI (Linux) > libx264

Each backend carries its own hand-tuned rate-control envelope for 4K30.
The order lives in `DEFAULT_RULES`, one `EncoderRule` per backend, so a new
backend is a single insertion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from ..config import EncodingDefaults, MediaFoundationTuning
from ..constants import (
    DEFAULT_QUALITY,
    H264_LEVEL,
    H264_PROFILE,
    OUTPUT_FPS,
    OUTPUT_RESOLUTION,
)
from ..logging import get_logger
from .capabilities import (
    AMF,
    ENCODER_NAMES,
    MEDIA_FOUNDATION,
    NVENC,
    QSV,
    SOFTWARE,
    VAAPI,
    VIDEOTOOLBOX,
    CapabilityReport,
)

log = get_logger(__name__)

# Shared by every profile; never varies by backend
BASE_SETTINGS: tuple[str, ...] = (
    "-pix_fmt", "yuv420p",
    "-movflags", "+faststart",
    "-r", str(OUTPUT_FPS),
    "-s", OUTPUT_RESOLUTION,
)

_Q = str(DEFAULT_QUALITY)
_PROFILE_LEVEL = ("-profile:v", H264_PROFILE, "-level", H264_LEVEL)


@dataclass(frozen=True)
class EncoderProfile:
    """One concrete encoder backend and its parameters."""

    encoder: str
    label: str
    rank: int
    flags: tuple[str, ...]
    reason: str = ""

    @property
    def is_hardware(self) -> bool:
        return self.encoder != SOFTWARE

    def args(self) -> list[str]:
        """Base settings followed by codec-specific flags."""
        return [*BASE_SETTINGS, "-c:v", self.encoder, *self.flags]

    def settings(self) -> list[tuple[str, str]]:
        """Flag/value pairs of args() for display."""
        args = self.args()
        return [(args[i], args[i + 1]) for i in range(0, len(args) - 1, 2)]


@dataclass(frozen=True)
class EncoderRule:
    """A priority tier: when `applies` holds, `flags` configures the encoder."""

    encoder: str
    reason: str
    flags: Callable[[MediaFoundationTuning], tuple[str, ...]]
    platforms: Optional[frozenset[str]] = None  # None = any host OS

    def applies(self, report: CapabilityReport, host_os: str) -> bool:
        if self.encoder == SOFTWARE:
            return True
        if self.platforms is not None and host_os not in self.platforms:
            return False
        return report.has(self.encoder)


def _nvenc_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        "-preset", "slow",
        *_PROFILE_LEVEL,
        "-rc:v", "vbr",
        "-cq:v", _Q,
        "-b:v", "0",
        "-maxrate", "15M",
        "-bufsize", "30M",
    )


def _videotoolbox_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        *_PROFILE_LEVEL,
        "-q:v", _Q,
        "-realtime", "false",
        "-b:v", "10M",
        "-maxrate", "15M",
        "-bufsize", "30M",
    )


def _media_foundation_flags(tuning: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        "-quality", "quality",
        "-rate_control", "quality",
        "-scenario", "display_remoting",
        *_PROFILE_LEVEL,
        "-b:v", tuning.bitrate,
        "-maxrate", tuning.maxrate,
        "-bufsize", tuning.bufsize,
    )


def _qsv_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        "-preset", "slower",
        *_PROFILE_LEVEL,
        "-global_quality", _Q,
        "-look_ahead", "1",
        "-maxrate", "12M",
        "-bufsize", "24M",
    )


def _amf_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        "-quality", "quality",
        "-rc", "cqp",
        "-qp_i", _Q, "-qp_p", _Q, "-qp_b", _Q,
        *_PROFILE_LEVEL,
        "-maxrate", "12M",
        "-bufsize", "24M",
    )


def _vaapi_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        *_PROFILE_LEVEL,
        "-crf", _Q,
        "-maxrate", "10M",
        "-bufsize", "20M",
    )


def _software_flags(_: MediaFoundationTuning) -> tuple[str, ...]:
    return (
        "-preset", "slow",
        *_PROFILE_LEVEL,
        "-crf", _Q,
    )


DEFAULT_RULES: tuple[EncoderRule, ...] = (
    EncoderRule(NVENC, "discrete NVIDIA GPU detected", _nvenc_flags),
    EncoderRule(
        VIDEOTOOLBOX, "macOS native hardware encoder", _videotoolbox_flags,
        platforms=frozenset({"darwin"}),
    ),
    EncoderRule(
        MEDIA_FOUNDATION, "Windows native hardware encoder", _media_foundation_flags,
        platforms=frozenset({"windows"}),
    ),
    EncoderRule(QSV, "Intel integrated GPU detected", _qsv_flags),
    EncoderRule(AMF, "AMD GPU detected", _amf_flags),
    EncoderRule(
        VAAPI, "generic Linux hardware acceleration", _vaapi_flags,
        platforms=frozenset({"linux"}),
    ),
    EncoderRule(SOFTWARE, "no working hardware encoder found", _software_flags),
)


@dataclass
class EncoderPolicy:
    """Picks one encoder profile from a capability report.

    `select` is a pure function of its inputs: the same report and host OS
    always give the same profile.
    """

    rules: Sequence[EncoderRule] = DEFAULT_RULES
    tuning: MediaFoundationTuning = field(default_factory=MediaFoundationTuning)
    prefer_software: bool = False

    def __post_init__(self) -> None:
        if not any(rule.encoder == SOFTWARE for rule in self.rules):
            raise ValueError(f"Encoder rules must include the {SOFTWARE} fallback")

    @classmethod
    def from_config(cls, encoding: EncodingDefaults) -> EncoderPolicy:
        return cls(
            tuning=encoding.media_foundation,
            prefer_software=encoding.prefer_software,
        )

    def profile_for(self, rule: EncoderRule, rank: int, reason: Optional[str] = None) -> EncoderProfile:
        return EncoderProfile(
            encoder=rule.encoder,
            label=ENCODER_NAMES.get(rule.encoder, rule.encoder),
            rank=rank,
            flags=rule.flags(self.tuning),
            reason=reason or rule.reason,
        )

    def candidates(self, report: CapabilityReport, host_os: str) -> list[EncoderProfile]:
        """Every profile whose predicate holds, best first."""
        return [
            self.profile_for(rule, rank)
            for rank, rule in enumerate(self.rules)
            if rule.applies(report, host_os)
        ]

    def select(self, report: CapabilityReport, host_os: Optional[str] = None) -> EncoderProfile:
        """Return the highest-priority profile usable on this host."""
        host_os = host_os or report.host.system

        if self.prefer_software:
            rank, rule = next(
                (i, r) for i, r in enumerate(self.rules) if r.encoder == SOFTWARE
            )
            profile = self.profile_for(rule, rank, reason="hardware encoding disabled in config")
        else:
            profile = next(
                self.profile_for(rule, rank)
                for rank, rule in enumerate(self.rules)
                if rule.applies(report, host_os)
            )

        log.info(f"Encoder: {profile.label} ({profile.encoder}) - {profile.reason}")
        return profile
