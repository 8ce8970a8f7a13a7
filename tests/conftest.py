"""Shared test fixtures for slideshow-tools."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, Optional

import pytest
from PIL import Image

from slideshow_tools import config as config_module
from slideshow_tools.exceptions import FFmpegError
from slideshow_tools.processing.capabilities import HostInfo


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's config file and environment out of every test."""
    monkeypatch.setattr(config_module, "USER_CONFIG_PATHS", [tmp_path / "no-config.toml"])
    monkeypatch.delenv("SLIDESHOW_FFMPEG", raising=False)
    monkeypatch.delenv("SLIDESHOW_FFPROBE", raising=False)
    monkeypatch.delenv("SLIDESHOW_LOG_DIR", raising=False)
    config_module.reset_config()
    yield
    config_module.reset_config()


def make_image(
    path: Path,
    size: tuple[int, int] = (64, 48),
    color: tuple[int, int, int] = (200, 120, 40),
    exif: Optional[dict] = None,
) -> Path:
    """Write a small JPEG, optionally with EXIF tags {tag_id: value}."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", size, color)
    if exif:
        data = Image.Exif()
        for tag, value in exif.items():
            data[tag] = value
        img.save(path, "JPEG", exif=data.tobytes())
    else:
        img.save(path, "JPEG")
    return path


@pytest.fixture
def frames_dir_factory(tmp_path):
    """Create <tmp>/converted with `count` frames."""

    def _make(count: int) -> Path:
        frames = tmp_path / "converted"
        frames.mkdir(exist_ok=True)
        for i in range(count):
            make_image(frames / f"2024010{i + 1}_120000_uhd.jpg", size=(32, 18))
        return tmp_path

    return _make


class FakeRunner:
    """Stands in for run_quiet: records argv lists, optionally failing some."""

    def __init__(self, fail_on: Iterable[int] = (), create_outputs: bool = True):
        self.calls: list[list[str]] = []
        self.descriptions: list[str] = []
        self.fail_on = set(fail_on)
        self.create_outputs = create_outputs

    def __call__(self, cmd: list[str], description: str) -> None:
        index = len(self.calls)
        self.calls.append(list(cmd))
        self.descriptions.append(description)
        if index in self.fail_on:
            raise FFmpegError(
                f"{cmd[0]} failed", command=cmd, returncode=1, stderr="Error: boom"
            )
        if self.create_outputs and cmd[-1] != "-":
            Path(cmd[-1]).write_bytes(b"x" * 1024)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


class FakeProbeRunner:
    """Stands in for run_capture in CapabilityProbe.

    `listed` encoders appear in `-encoders` output; of those, only
    `working` ones pass the smoke test.
    """

    def __init__(
        self,
        listed: Iterable[str] = (),
        working: Optional[Iterable[str]] = None,
        missing_binary: bool = False,
        list_exit_code: int = 0,
    ):
        self.listed = list(listed)
        self.working = set(self.listed if working is None else working)
        self.missing_binary = missing_binary
        self.list_exit_code = list_exit_code
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str], timeout=None) -> subprocess.CompletedProcess:
        self.calls.append(list(cmd))
        if self.missing_binary:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

        if "-encoders" in cmd:
            lines = ["Encoders:", " V..... = Video", " ------"]
            lines += [f" V....D {enc:<20} H.264 encoder" for enc in self.listed]
            return subprocess.CompletedProcess(cmd, self.list_exit_code, "\n".join(lines), "")

        encoder = cmd[cmd.index("-c:v") + 1]
        code = 0 if encoder in self.working else 1
        return subprocess.CompletedProcess(cmd, code, "", "" if code == 0 else "Error")

    @property
    def smoke_tested(self) -> list[str]:
        return [c[c.index("-c:v") + 1] for c in self.calls if "-c:v" in c]


@pytest.fixture
def linux_host() -> HostInfo:
    return HostInfo(system="linux", machine="x86_64")


@pytest.fixture
def darwin_host() -> HostInfo:
    return HostInfo(system="darwin", machine="arm64")


@pytest.fixture
def windows_host() -> HostInfo:
    return HostInfo(system="windows", machine="AMD64")
