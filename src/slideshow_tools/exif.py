"""EXIF camera metadata for photo captions and file naming."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from PIL import Image, ExifTags, UnidentifiedImageError

from .constants import EXIF_DATETIME_FORMAT
from .logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class CameraInfo:
    """Camera settings read from a photo's EXIF block."""

    make: Optional[str] = None
    model: Optional[str] = None
    lens: Optional[str] = None
    focal_length: Optional[float] = None  # millimetres
    f_number: Optional[float] = None
    exposure_time: Optional[float] = None  # seconds
    iso: Optional[int] = None
    taken_at: Optional[datetime] = None

    @property
    def camera(self) -> Optional[str]:
        """Make and model without the duplicated brand ("Canon Canon EOS R5")."""
        if self.model and self.make and self.model.lower().startswith(self.make.lower()):
            return self.model
        parts = [p for p in (self.make, self.model) if p]
        return " ".join(parts) if parts else None

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.camera, self.lens, self.focal_length, self.f_number,
             self.exposure_time, self.iso)
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, tuple):
        value = value[0] if value else None
        if value is None:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if number > 0 else None


def parse_exif_datetime(value: Any) -> Optional[datetime]:
    """Parse an EXIF "YYYY:MM:DD HH:MM:SS" string."""
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        return None


def read_camera_info(image_path: Path) -> Optional[CameraInfo]:
    """Read camera settings from an image file.

    Returns None when the file has no EXIF data or cannot be read.
    """
    try:
        with Image.open(image_path) as img:
            exif = img.getexif()
    except (OSError, UnidentifiedImageError) as e:
        log.debug(f"No EXIF for {image_path}: {e}")
        return None

    if not exif:
        return None

    details = exif.get_ifd(ExifTags.IFD.Exif)
    taken_at = parse_exif_datetime(
        details.get(ExifTags.Base.DateTimeOriginal) or exif.get(ExifTags.Base.DateTime)
    )
    iso = _number(details.get(ExifTags.Base.ISOSpeedRatings))

    info = CameraInfo(
        make=_text(exif.get(ExifTags.Base.Make)),
        model=_text(exif.get(ExifTags.Base.Model)),
        lens=_text(details.get(ExifTags.Base.LensModel)),
        focal_length=_number(details.get(ExifTags.Base.FocalLength)),
        f_number=_number(details.get(ExifTags.Base.FNumber)),
        exposure_time=_number(details.get(ExifTags.Base.ExposureTime)),
        iso=int(iso) if iso else None,
        taken_at=taken_at,
    )
    return info


def read_capture_time(image_path: Path) -> Optional[datetime]:
    """Capture time from EXIF, if recorded."""
    info = read_camera_info(image_path)
    return info.taken_at if info else None


def format_exposure(seconds: float) -> str:
    """Shutter speed as photographers write it (1/250s, 0.3s, 2s).

    Fractions only for 1/4s and faster; slower speeds are decimal seconds.
    """
    if seconds > 0.25:
        return f"{round(seconds, 1):g}s"
    return f"1/{round(1 / seconds)}s"


def format_overlay(info: Optional[CameraInfo]) -> str:
    """Single-line caption, e.g. "Canon EOS R5 | 50mm | f/4.0 | 1/250s | ISO 100".

    Returns an empty string when there is nothing worth showing.
    """
    if info is None or info.is_empty:
        return ""

    parts = []
    if info.camera:
        parts.append(info.camera)
    if info.lens:
        parts.append(info.lens)
    if info.focal_length:
        parts.append(f"{info.focal_length:.0f}mm")
    if info.f_number:
        parts.append(f"f/{info.f_number:.1f}")
    if info.exposure_time:
        parts.append(format_exposure(info.exposure_time))
    if info.iso:
        parts.append(f"ISO {info.iso}")
    return " | ".join(parts)
