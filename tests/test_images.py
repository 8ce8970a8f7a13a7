"""Tests for image conversion and EXIF handling."""

from __future__ import annotations

import json
from datetime import datetime

import pytest
from conftest import make_image
from PIL import ExifTags, Image

from slideshow_tools.exceptions import ConversionError
from slideshow_tools.exif import (
    CameraInfo,
    format_exposure,
    format_overlay,
    parse_exif_datetime,
    read_camera_info,
)
from slideshow_tools.processing.images import (
    cap_height,
    convert_images,
    convert_images_for_gif,
    fit_to_canvas,
    load_manifest,
    timestamp_stem,
)

DATETIME = ExifTags.Base.DateTime
ORIENTATION = ExifTags.Base.Orientation


# =============================================================================
# EXIF
# =============================================================================


class TestExif:
    def test_reads_make_model_and_time(self, tmp_path):
        path = make_image(
            tmp_path / "a.jpg",
            exif={
                ExifTags.Base.Make: "Canon",
                ExifTags.Base.Model: "Canon EOS R5",
                DATETIME: "2023:07:14 18:30:05",
            },
        )
        info = read_camera_info(path)
        assert info.camera == "Canon EOS R5"
        assert info.taken_at == datetime(2023, 7, 14, 18, 30, 5)

    def test_no_exif(self, tmp_path):
        assert read_camera_info(make_image(tmp_path / "plain.jpg")) is None

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"not an image")
        assert read_camera_info(path) is None

    def test_parse_datetime(self):
        assert parse_exif_datetime("2024:01:02 03:04:05") == datetime(2024, 1, 2, 3, 4, 5)
        assert parse_exif_datetime("0000:00:00 00:00:00") is None
        assert parse_exif_datetime(None) is None

    def test_camera_joins_make_and_model(self):
        assert CameraInfo(make="FUJIFILM", model="X-T4").camera == "FUJIFILM X-T4"


class TestOverlayText:
    def test_full_caption(self):
        info = CameraInfo(
            make="Canon", model="Canon EOS R5", lens="RF24-105mm F4 L IS USM",
            focal_length=50.0, f_number=4.0, exposure_time=0.004, iso=100,
        )
        assert format_overlay(info) == (
            "Canon EOS R5 | RF24-105mm F4 L IS USM | 50mm | f/4.0 | 1/250s | ISO 100"
        )

    def test_partial_caption(self):
        assert format_overlay(CameraInfo(f_number=2.8, iso=3200)) == "f/2.8 | ISO 3200"

    def test_empty(self):
        assert format_overlay(None) == ""
        assert format_overlay(CameraInfo(taken_at=datetime(2024, 1, 1))) == ""

    @pytest.mark.parametrize(
        "seconds, text",
        [(0.004, "1/250s"), (1 / 60, "1/60s"), (0.25, "1/4s"), (0.3, "0.3s"),
         (0.4, "0.4s"), (1.5, "1.5s"), (2.0, "2s"), (30.0, "30s")],
    )
    def test_exposure(self, seconds, text):
        assert format_exposure(seconds) == text


# =============================================================================
# Geometry
# =============================================================================


class TestGeometry:
    def test_fit_to_canvas_centres_on_black(self):
        img = Image.new("RGB", (80, 60), (255, 0, 0))
        frame = fit_to_canvas(img, 160, 90)
        assert frame.size == (160, 90)
        assert frame.getpixel((0, 45)) == (0, 0, 0)
        assert frame.getpixel((80, 45))[0] > 200

    def test_fit_to_canvas_wide_image_fills_width(self):
        img = Image.new("RGB", (400, 100), (0, 0, 255))
        frame = fit_to_canvas(img, 160, 90)
        assert frame.size == (160, 90)
        assert frame.getpixel((0, 45))[2] > 200

    def test_cap_height(self):
        assert cap_height(Image.new("RGB", (400, 300)), 150).size == (200, 150)
        small = Image.new("RGB", (40, 30))
        assert cap_height(small, 150) is small


# =============================================================================
# Batch conversion
# =============================================================================


class TestConvertImages:
    def test_timestamp_names_and_manifest(self, tmp_path):
        make_image(tmp_path / "IMG_2.jpg", exif={DATETIME: "2023:07:14 18:30:05"})
        make_image(tmp_path / "IMG_1.jpg")

        stats = convert_images(tmp_path, width=64, height=36)

        frames_dir = tmp_path / "converted"
        names = sorted(p.name for p in frames_dir.glob("*.jpg"))
        assert names == ["20230714_183005_uhd.jpg", "IMG_1_uhd.jpg"]
        assert stats.count == 2
        assert stats.original_bytes > 0
        assert stats.converted_bytes > 0

        with Image.open(frames_dir / "IMG_1_uhd.jpg") as img:
            assert img.size == (64, 36)

        manifest = json.loads((frames_dir / "sources.json").read_text())
        assert manifest["20230714_183005_uhd.jpg"] == "IMG_2.jpg"
        assert load_manifest(frames_dir)["IMG_1_uhd.jpg"] == tmp_path / "IMG_1.jpg"

    def test_same_timestamp_gets_suffix(self, tmp_path):
        for name in ("a.jpg", "b.jpg", "c.jpg"):
            make_image(tmp_path / name, exif={DATETIME: "2024:05:01 10:00:00"})

        convert_images(tmp_path, width=32, height=18)

        names = sorted(p.name for p in (tmp_path / "converted").glob("*.jpg"))
        assert names == [
            "20240501_100000_2_uhd.jpg",
            "20240501_100000_3_uhd.jpg",
            "20240501_100000_uhd.jpg",
        ]

    def test_orientation_applied(self, tmp_path):
        make_image(tmp_path / "portrait.jpg", size=(80, 40), exif={ORIENTATION: 6})
        convert_images(tmp_path, width=160, height=90)
        frame = next((tmp_path / "converted").glob("*.jpg"))
        with Image.open(frame) as img:
            # rotated to 40x80, scaled to 45x90, centred
            assert sum(img.getpixel((30, 45))) < 40
            assert sum(img.getpixel((80, 45))) > 200

    def test_skipped_when_directory_exists(self, tmp_path):
        make_image(tmp_path / "a.jpg")
        (tmp_path / "converted").mkdir()
        stats = convert_images(tmp_path)
        assert stats.skipped
        assert list((tmp_path / "converted").iterdir()) == []

    def test_no_images(self, tmp_path):
        with pytest.raises(ConversionError, match="No .jpg files"):
            convert_images(tmp_path)
        assert not (tmp_path / "converted").exists()

    def test_broken_image(self, tmp_path):
        (tmp_path / "broken.jpg").write_bytes(b"nope")
        with pytest.raises(ConversionError, match="Failed to open"):
            convert_images(tmp_path, width=32, height=18)
        assert not (tmp_path / "converted").exists()

    def test_failed_batch_is_redone_on_next_run(self, tmp_path):
        make_image(tmp_path / "a.jpg")
        (tmp_path / "b.jpg").write_bytes(b"nope")
        with pytest.raises(ConversionError):
            convert_images(tmp_path, width=32, height=18)
        assert not (tmp_path / "converted").exists()

        make_image(tmp_path / "b.jpg")
        stats = convert_images(tmp_path, width=32, height=18)
        assert not stats.skipped
        assert stats.count == 2
        assert (tmp_path / "converted" / "sources.json").exists()

    def test_progress_callback(self, tmp_path):
        make_image(tmp_path / "a.jpg")
        make_image(tmp_path / "b.jpg")
        seen = []
        convert_images(tmp_path, width=32, height=18, on_progress=lambda s, d: seen.append(s.name))
        assert seen == ["a.jpg", "b.jpg"]

    def test_timestamp_stem_falls_back_to_name(self, tmp_path):
        assert timestamp_stem(make_image(tmp_path / "holiday.jpg")) == "holiday"


class TestConvertForGif:
    def test_index_prefixed_and_capped(self, tmp_path):
        make_image(tmp_path / "b.jpg", size=(400, 300))
        make_image(tmp_path / "a.jpg", size=(40, 30))

        stats = convert_images_for_gif(tmp_path, max_height=150)

        out = tmp_path / "gif_converted"
        assert sorted(p.name for p in out.iterdir()) == ["000_a.jpg", "001_b.jpg"]
        with Image.open(out / "001_b.jpg") as img:
            assert img.size == (200, 150)
        with Image.open(out / "000_a.jpg") as img:
            assert img.size == (40, 30)
        assert stats.count == 2

    def test_skipped_when_directory_exists(self, tmp_path):
        make_image(tmp_path / "a.jpg")
        (tmp_path / "gif_converted").mkdir()
        assert convert_images_for_gif(tmp_path).skipped

    def test_failed_batch_leaves_no_directory(self, tmp_path):
        make_image(tmp_path / "a.jpg")
        (tmp_path / "b.jpg").write_bytes(b"nope")
        with pytest.raises(ConversionError):
            convert_images_for_gif(tmp_path)
        assert not (tmp_path / "gif_converted").exists()
