"""Constants and default values for slideshow-tools.

Centralizes magic numbers and default values for easier configuration
and maintenance.
"""

from pathlib import Path

# =============================================================================
# Output Format
# =============================================================================

# Output resolution and frame rate are fixed for the 4K video
OUTPUT_WIDTH = 3840
OUTPUT_HEIGHT = 2160
OUTPUT_RESOLUTION = f"{OUTPUT_WIDTH}x{OUTPUT_HEIGHT}"
OUTPUT_FPS = 30

# =============================================================================
# Timeline Defaults
# =============================================================================

# Seconds each image stays on screen
DEFAULT_CLIP_DURATION = 5.0

# Crossfade / fade-in / fade-out length (seconds)
DEFAULT_TRANSITION_DURATION = 1.0

# Background music fades (seconds)
AUDIO_FADE_IN_SECONDS = 2.0
AUDIO_FADE_OUT_SECONDS = 4.0

# Audio encoding for the music bed
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"

# =============================================================================
# Ken Burns Effect
# =============================================================================

# Zoom increment per frame and zoom ceiling (kept below 1.5x for 4K sharpness)
KEN_BURNS_ZOOM_STEP = 0.0005
KEN_BURNS_MAX_ZOOM = 1.3

# Pan offset in pixels = total frames * this factor
KEN_BURNS_OFFSET_FACTOR = 1.2

# =============================================================================
# EXIF Overlay
# =============================================================================

DEFAULT_OVERLAY_FONT_SIZE = 36
OVERLAY_FONT_COLOR = "white"
OVERLAY_BOX_COLOR = "black@0.5"
OVERLAY_BOX_BORDER = 5
OVERLAY_BOTTOM_MARGIN = 20

# =============================================================================
# Encoding Quality Constants
# =============================================================================

# Shared quality target (CRF / CQ / QP equivalent) across backends
DEFAULT_QUALITY = 21

# H.264 profile and level for 4K30
H264_PROFILE = "high"
H264_LEVEL = "5.1"

# Media Foundation (Windows) rate control. Raised from 8M/12M/16M after the
# backend produced visibly lower bitrate than NVENC on Snapdragon X hardware.
MF_BITRATE = "12M"
MF_MAXRATE = "18M"
MF_BUFSIZE = "36M"

# =============================================================================
# Capability Probing
# =============================================================================

# Synthetic clip used to smoke-test hardware encoders
SMOKE_TEST_SOURCE = "testsrc=duration=0.1:size=320x240:rate=1"

# Timeout for each probe subprocess (seconds)
DEFAULT_PROBE_TIMEOUT = 20.0

# =============================================================================
# Progress Indicator
# =============================================================================

# Spinner repaint rate (5 per second = 200ms tick)
SPINNER_REFRESH_PER_SECOND = 5

# =============================================================================
# GIF / WebP
# =============================================================================

DEFAULT_GIF_FPS = 10
DEFAULT_GIF_SCALE = 1.0
DEFAULT_GIF_MAX_HEIGHT = 1080
DEFAULT_GIF_DURATION = 2.0
GIF_PALETTE_MAX_COLORS = 256
GIF_DITHER = "bayer:bayer_scale=3"
WEBP_QUALITY = 75

# =============================================================================
# Default Paths (relative to working directory)
# =============================================================================

FRAMES_DIR = "converted"
GIF_FRAMES_DIR = "gif_converted"
SOURCE_MANIFEST = "sources.json"
SOURCE_IMAGE_PATTERN = "*.jpg"
AUDIO_PATTERN = "*.mp3"

VIDEO_OUTPUT = "video.mp4"
GIF_OUTPUT = "animated.gif"
OPTIMIZED_GIF_OUTPUT = "optimized.gif"
WEBP_OUTPUT = "animated.webp"
PALETTE_FILE = "palette.png"
TEMP_GIF_FILE = "temp.gif"

# Converted frames are named from the EXIF capture time
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# =============================================================================
# External Tools
# =============================================================================

DEFAULT_FFMPEG = "ffmpeg"
DEFAULT_FFPROBE = "ffprobe"

# User config file locations (in order of precedence)
USER_CONFIG_PATHS = [
    Path.home() / ".config" / "slideshow-tools" / "config.toml",
    Path.home() / ".slideshow-tools.toml",
]

# Environment variable names
ENV_FFMPEG = "SLIDESHOW_FFMPEG"
ENV_FFPROBE = "SLIDESHOW_FFPROBE"

# =============================================================================
# Logging (Loguru)
# =============================================================================

# Default log directory
DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "slideshow-tools" / "logs"

# Log file date format
LOG_DATE_FORMAT = "%Y-%m-%d"

# How long rotated log files are kept
LOG_RETENTION = "30 days"

ENV_LOG_DIR = "SLIDESHOW_LOG_DIR"
