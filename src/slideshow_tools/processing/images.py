"""Still image preparation with Pillow.

Two output flavours:
- 4K frames for the video: fit to the canvas height, centred on black,
  named by capture time so a plain name sort is chronological.
- GIF frames: capped height, natural aspect, index-prefixed names so
  the source order survives.
"""

from __future__ import annotations

import json
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ..constants import (
    DEFAULT_GIF_MAX_HEIGHT,
    FRAMES_DIR,
    GIF_FRAMES_DIR,
    OUTPUT_HEIGHT,
    OUTPUT_WIDTH,
    SOURCE_IMAGE_PATTERN,
    SOURCE_MANIFEST,
    TIMESTAMP_FORMAT,
)
from ..exceptions import ConversionError
from ..exif import read_capture_time
from ..logging import get_logger

log = get_logger(__name__)

JPEG_QUALITY = 95

# Called once per finished image with (source, destination)
ProgressCallback = Callable[[Path, Path], None]


@dataclass
class ConversionStats:
    """Summary of a conversion batch."""

    count: int = 0
    elapsed_seconds: float = 0.0
    original_bytes: int = 0
    converted_bytes: int = 0
    skipped: bool = False  # output directory already existed

    @property
    def original_mb(self) -> float:
        return self.original_bytes / (1024 * 1024)

    @property
    def converted_mb(self) -> float:
        return self.converted_bytes / (1024 * 1024)

    @property
    def per_image_seconds(self) -> float:
        return self.elapsed_seconds / self.count if self.count else 0.0


def find_source_images(source_dir: Path) -> list[Path]:
    """JPEGs directly inside `source_dir`, sorted by name."""
    return sorted(p for p in Path(source_dir).glob(SOURCE_IMAGE_PATTERN) if p.is_file())


def _open_oriented(image_path: Path) -> Image.Image:
    """Open an image, apply its EXIF orientation and load it as RGB."""
    try:
        with Image.open(image_path) as img:
            oriented = ImageOps.exif_transpose(img)
            return oriented.convert("RGB")
    except (OSError, UnidentifiedImageError) as e:
        raise ConversionError(f"Failed to open image: {e}", image_path) from e


def _save(img: Image.Image, output_path: Path) -> None:
    try:
        img.save(output_path, "JPEG", quality=JPEG_QUALITY)
    except (OSError, ValueError) as e:
        raise ConversionError(f"Failed to save image: {e}", output_path) from e


def fit_to_canvas(
    img: Image.Image,
    width: int = OUTPUT_WIDTH,
    height: int = OUTPUT_HEIGHT,
) -> Image.Image:
    """Resize to the canvas height and centre on a black canvas.

    Images wider than the canvas after resizing are cropped evenly on
    both sides by the paste.
    """
    new_width = max(1, round(img.width * height / img.height))
    resized = img.resize((new_width, height), Image.LANCZOS)

    canvas = Image.new("RGB", (width, height), (0, 0, 0))
    canvas.paste(resized, ((width - new_width) // 2, 0))
    return canvas


def cap_height(img: Image.Image, max_height: int) -> Image.Image:
    """Shrink to `max_height` keeping aspect; smaller images pass through."""
    if img.height <= max_height:
        return img
    new_width = max(1, int(img.width * max_height / img.height))
    return img.resize((new_width, max_height), Image.LANCZOS)


def timestamp_stem(image_path: Path) -> str:
    """EXIF capture time as YYYYMMDD_HHMMSS, or the file stem without one."""
    taken_at = read_capture_time(image_path)
    if taken_at is None:
        return image_path.stem
    return taken_at.strftime(TIMESTAMP_FORMAT)


def unique_frame_path(output_dir: Path, stem: str, suffix: str = "_uhd.jpg") -> Path:
    """First free `<stem>[_n]<suffix>` in `output_dir`."""
    candidate = output_dir / f"{stem}{suffix}"
    n = 2
    while candidate.exists():
        candidate = output_dir / f"{stem}_{n}{suffix}"
        n += 1
    return candidate


@contextmanager
def _output_directory(output_dir: Path) -> Iterator[Path]:
    """Create `output_dir`, removing it again if the batch fails.

    The directory only survives when every frame was written.
    """
    output_dir.mkdir(parents=True)
    try:
        yield output_dir
    except BaseException:
        log.warning(f"Conversion failed, removing incomplete {output_dir}")
        shutil.rmtree(output_dir, ignore_errors=True)
        raise


def load_manifest(frames_dir: Path) -> dict[str, Path]:
    """Map converted frame names back to their source images.

    Returns an empty mapping when no manifest was written or it is unreadable.
    """
    manifest_path = Path(frames_dir) / SOURCE_MANIFEST
    if not manifest_path.exists():
        return {}
    try:
        with open(manifest_path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log.warning(f"Ignoring unreadable manifest {manifest_path}: {e}")
        return {}

    base = Path(frames_dir).parent
    return {str(frame): base / str(source) for frame, source in data.items()}


def convert_images(
    source_dir: Path,
    output_dir: Optional[Path] = None,
    width: int = OUTPUT_WIDTH,
    height: int = OUTPUT_HEIGHT,
    on_progress: Optional[ProgressCallback] = None,
) -> ConversionStats:
    """Convert every source JPEG into a 4K frame.

    Args:
        source_dir: Directory holding the original photos
        output_dir: Frame directory (default: <source_dir>/converted)
        width: Canvas width
        height: Canvas height (images are scaled to this height)
        on_progress: Called after each image is written

    Returns:
        ConversionStats; `skipped` is set when output_dir already existed

    Raises:
        ConversionError: If there are no source images or one cannot be processed
    """
    source_dir = Path(source_dir)
    output_dir = Path(output_dir) if output_dir else source_dir / FRAMES_DIR

    if output_dir.exists():
        log.info(f"{output_dir} already exists, skipping image conversion")
        return ConversionStats(skipped=True)

    sources = find_source_images(source_dir)
    if not sources:
        raise ConversionError(f"No .jpg files found in {source_dir}")

    stats = ConversionStats()
    manifest: dict[str, str] = {}
    start = time.monotonic()

    with _output_directory(output_dir):
        for source in sources:
            stats.original_bytes += source.stat().st_size

            img = _open_oriented(source)
            log.debug(f"Converting {source.name} ({img.width}x{img.height})")
            frame = fit_to_canvas(img, width, height)

            output_path = unique_frame_path(output_dir, timestamp_stem(source))
            _save(frame, output_path)

            stats.converted_bytes += output_path.stat().st_size
            stats.count += 1
            manifest[output_path.name] = source.relative_to(source_dir).as_posix()

            if on_progress:
                on_progress(source, output_path)

        with open(output_dir / SOURCE_MANIFEST, "w") as f:
            json.dump(manifest, f, indent=2)
            f.write("\n")

    stats.elapsed_seconds = time.monotonic() - start
    log.info(
        f"Converted {stats.count} images in {stats.elapsed_seconds:.1f}s "
        f"({stats.original_mb:.1f} MB -> {stats.converted_mb:.1f} MB)"
    )
    return stats


def convert_images_for_gif(
    source_dir: Path,
    output_dir: Optional[Path] = None,
    max_height: int = DEFAULT_GIF_MAX_HEIGHT,
    on_progress: Optional[ProgressCallback] = None,
) -> ConversionStats:
    """Convert source JPEGs into GIF-sized frames named NNN_<stem>.jpg."""
    source_dir = Path(source_dir)
    output_dir = Path(output_dir) if output_dir else source_dir / GIF_FRAMES_DIR

    if output_dir.exists():
        log.info(f"{output_dir} already exists, skipping GIF image conversion")
        return ConversionStats(skipped=True)

    sources = find_source_images(source_dir)
    if not sources:
        raise ConversionError(f"No .jpg files found in {source_dir}")

    stats = ConversionStats()
    start = time.monotonic()

    with _output_directory(output_dir):
        for i, source in enumerate(sources):
            stats.original_bytes += source.stat().st_size
            frame = cap_height(_open_oriented(source), max_height)

            output_path = output_dir / f"{i:03d}_{source.stem}.jpg"
            _save(frame, output_path)

            stats.converted_bytes += output_path.stat().st_size
            stats.count += 1
            if on_progress:
                on_progress(source, output_path)

    stats.elapsed_seconds = time.monotonic() - start
    return stats
