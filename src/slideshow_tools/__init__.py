"""Slideshow Tools - 4K photo slideshows and animated stickers via ffmpeg."""

from .models import Clip, RunResult, VideoDetails
from .processing import (
    EncoderPolicy,
    GifConfig,
    GifPipeline,
    SlideshowPipeline,
    VideoConfig,
)

__version__ = "0.1.0"
__all__ = [
    # Models
    "Clip",
    "RunResult",
    "VideoDetails",
    # Processing
    "EncoderPolicy",
    "SlideshowPipeline",
    "VideoConfig",
    "GifConfig",
    "GifPipeline",
]
