"""Media processing for slideshow videos and animated stickers."""

from .capabilities import CapabilityProbe, CapabilityReport, HostInfo
from .effects import KenBurnsEffect, KenBurnsGenerator
from .encoders import EncoderPolicy, EncoderProfile, EncoderRule
from .ffmpeg import FFmpegCommand, probe_media, run_quiet
from .gif import GifConfig, GifPipeline
from .graph import FilterGraph, SlideshowGraph, Timeline, build_slideshow_graph
from .images import ConversionStats, convert_images, convert_images_for_gif
from .pipeline import SlideshowPipeline, SlideshowPlan, VideoConfig

__all__ = [
    # FFmpeg
    "FFmpegCommand",
    "probe_media",
    "run_quiet",
    # Encoders
    "CapabilityProbe",
    "CapabilityReport",
    "HostInfo",
    "EncoderPolicy",
    "EncoderProfile",
    "EncoderRule",
    # Effects and graph
    "KenBurnsEffect",
    "KenBurnsGenerator",
    "FilterGraph",
    "SlideshowGraph",
    "Timeline",
    "build_slideshow_graph",
    # Images
    "ConversionStats",
    "convert_images",
    "convert_images_for_gif",
    # Pipelines
    "SlideshowPipeline",
    "SlideshowPlan",
    "VideoConfig",
    "GifConfig",
    "GifPipeline",
]
