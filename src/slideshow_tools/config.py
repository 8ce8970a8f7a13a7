"""User configuration file support for slideshow-tools.

Supports loading defaults from:
1. Environment variables (highest priority)
2. User config file (~/.config/slideshow-tools/config.toml)
3. Built-in defaults (lowest priority)

Example config file (~/.config/slideshow-tools/config.toml):

    [video]
    duration = 6
    transition = 1.5
    ken_burns = true
    exif_overlay = false
    font_size = 36

    [encoding]
    smoke_test = true
    prefer_software = false
    probe_timeout = 20

    [encoding.media_foundation]
    bitrate = "12M"
    maxrate = "18M"
    bufsize = "36M"

    [gif]
    fps = 10
    scale = 0.5
    max_height = 1080

    [tools]
    ffmpeg = "/opt/ffmpeg/bin/ffmpeg"
    ffprobe = "/opt/ffmpeg/bin/ffprobe"

    [logging]
    dir = "~/.cache/slideshow-tools/logs"
    file = true
    retention = "30 days"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .constants import (
    DEFAULT_CLIP_DURATION,
    DEFAULT_FFMPEG,
    DEFAULT_FFPROBE,
    DEFAULT_GIF_FPS,
    DEFAULT_GIF_MAX_HEIGHT,
    DEFAULT_GIF_SCALE,
    DEFAULT_LOG_DIR,
    DEFAULT_OVERLAY_FONT_SIZE,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_TRANSITION_DURATION,
    ENV_FFMPEG,
    ENV_FFPROBE,
    ENV_LOG_DIR,
    LOG_RETENTION,
    MF_BITRATE,
    MF_BUFSIZE,
    MF_MAXRATE,
    USER_CONFIG_PATHS,
)

# Try to import tomllib (Python 3.11+) or tomli as fallback
try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore


@dataclass
class MediaFoundationTuning:
    """Rate-control knobs for the Windows Media Foundation encoder.

    Policy defaults, subject to retuning; nothing measures them at run time.
    """

    bitrate: str = MF_BITRATE
    maxrate: str = MF_MAXRATE
    bufsize: str = MF_BUFSIZE


@dataclass
class EncodingDefaults:
    """Encoder selection settings."""

    smoke_test: bool = True  # Run a tiny test encode before trusting a listed encoder
    prefer_software: bool = False  # Skip hardware encoders entirely
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    media_foundation: MediaFoundationTuning = field(default_factory=MediaFoundationTuning)


@dataclass
class VideoDefaults:
    """Default video settings from config file.

    These can be overridden by CLI options.
    """

    duration: float = DEFAULT_CLIP_DURATION
    transition: float = DEFAULT_TRANSITION_DURATION
    ken_burns: bool = True
    exif_overlay: bool = False
    font_size: int = DEFAULT_OVERLAY_FONT_SIZE


@dataclass
class GifDefaults:
    """Default GIF/WebP settings."""

    fps: int = DEFAULT_GIF_FPS
    scale: float = DEFAULT_GIF_SCALE
    max_height: int = DEFAULT_GIF_MAX_HEIGHT


@dataclass
class LoggingDefaults:
    """Where and whether run logs are written."""

    directory: Path = DEFAULT_LOG_DIR
    file: bool = True  # False keeps logs on stderr only
    retention: str = LOG_RETENTION


@dataclass
class UserConfig:
    """User configuration loaded from config file and environment."""

    # External tools
    ffmpeg: str = DEFAULT_FFMPEG
    ffprobe: str = DEFAULT_FFPROBE

    video: VideoDefaults = field(default_factory=VideoDefaults)
    encoding: EncodingDefaults = field(default_factory=EncodingDefaults)
    gif: GifDefaults = field(default_factory=GifDefaults)
    logging: LoggingDefaults = field(default_factory=LoggingDefaults)

    # Internal: track where config was loaded from
    _config_source: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def load(cls) -> "UserConfig":
        """Load configuration from file and environment.

        Priority (highest to lowest):
        1. Environment variables
        2. User config file
        3. Built-in defaults
        """
        config = cls()
        config._load_from_file()
        config._load_from_env()
        return config

    @property
    def source(self) -> Optional[Path]:
        """Config file the settings were read from, if any."""
        return self._config_source

    def _load_from_file(self) -> None:
        """Load configuration from TOML file if it exists."""
        for config_path in USER_CONFIG_PATHS:
            if config_path.exists():
                try:
                    with open(config_path, "rb") as f:
                        data = tomllib.load(f)
                    self._apply_config_data(data)
                    self._config_source = config_path
                    return
                except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError):
                    # Malformed config files are ignored
                    pass

    def _apply_config_data(self, data: dict[str, Any]) -> None:
        """Apply configuration data from parsed TOML."""
        video = data.get("video", {})
        if "duration" in video:
            self.video.duration = float(video["duration"])
        if "transition" in video:
            self.video.transition = float(video["transition"])
        if "ken_burns" in video:
            self.video.ken_burns = bool(video["ken_burns"])
        if "exif_overlay" in video:
            self.video.exif_overlay = bool(video["exif_overlay"])
        if "font_size" in video:
            self.video.font_size = int(video["font_size"])

        encoding = data.get("encoding", {})
        if "smoke_test" in encoding:
            self.encoding.smoke_test = bool(encoding["smoke_test"])
        if "prefer_software" in encoding:
            self.encoding.prefer_software = bool(encoding["prefer_software"])
        if "probe_timeout" in encoding:
            self.encoding.probe_timeout = float(encoding["probe_timeout"])

        mf = encoding.get("media_foundation", {})
        if "bitrate" in mf:
            self.encoding.media_foundation.bitrate = str(mf["bitrate"])
        if "maxrate" in mf:
            self.encoding.media_foundation.maxrate = str(mf["maxrate"])
        if "bufsize" in mf:
            self.encoding.media_foundation.bufsize = str(mf["bufsize"])

        gif = data.get("gif", {})
        if "fps" in gif:
            self.gif.fps = int(gif["fps"])
        if "scale" in gif:
            self.gif.scale = float(gif["scale"])
        if "max_height" in gif:
            self.gif.max_height = int(gif["max_height"])

        tools = data.get("tools", {})
        if "ffmpeg" in tools:
            self.ffmpeg = str(tools["ffmpeg"])
        if "ffprobe" in tools:
            self.ffprobe = str(tools["ffprobe"])

        log_section = data.get("logging", {})
        if "dir" in log_section:
            self.logging.directory = Path(str(log_section["dir"])).expanduser()
        if "file" in log_section:
            self.logging.file = bool(log_section["file"])
        if "retention" in log_section:
            self.logging.retention = str(log_section["retention"])

    def _load_from_env(self) -> None:
        """Override configuration from environment variables."""
        if ENV_FFMPEG in os.environ:
            self.ffmpeg = os.environ[ENV_FFMPEG]
        if ENV_FFPROBE in os.environ:
            self.ffprobe = os.environ[ENV_FFPROBE]
        if ENV_LOG_DIR in os.environ:
            self.logging.directory = Path(os.environ[ENV_LOG_DIR]).expanduser()


# Global config instance (lazily loaded)
_config: Optional[UserConfig] = None


def get_config() -> UserConfig:
    """Get the global user configuration (loads on first access)."""
    global _config
    if _config is None:
        _config = UserConfig.load()
    return _config


def reset_config() -> None:
    """Reset the global config (useful for testing)."""
    global _config
    _config = None
