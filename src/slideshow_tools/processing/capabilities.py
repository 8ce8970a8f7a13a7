"""Hardware encoder detection.

ffmpeg builds list every encoder they were compiled with, whether or not
the host can drive it (WSL and ARM laptops commonly report NVENC or QSV
that then fail to open). Listed hardware encoders are therefore confirmed
with a throwaway encode of a tiny synthetic clip before they are trusted.

Nothing in here raises: a missing ffmpeg, a non-zero exit or a timeout all
read as "encoder not available".
"""

from __future__ import annotations

import os
import platform
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional

from ..constants import DEFAULT_FFMPEG, DEFAULT_PROBE_TIMEOUT, SMOKE_TEST_SOURCE
from ..logging import get_logger
from .ffmpeg import run_capture

log = get_logger(__name__)

NVENC = "h264_nvenc"
VIDEOTOOLBOX = "h264_videotoolbox"
MEDIA_FOUNDATION = "h264_mf"
QSV = "h264_qsv"
AMF = "h264_amf"
VAAPI = "h264_vaapi"
SOFTWARE = "libx264"

HARDWARE_ENCODERS = (NVENC, VIDEOTOOLBOX, MEDIA_FOUNDATION, QSV, AMF, VAAPI)
KNOWN_ENCODERS = HARDWARE_ENCODERS + (SOFTWARE,)

ENCODER_NAMES = {
    NVENC: "NVIDIA NVENC",
    VIDEOTOOLBOX: "Apple VideoToolbox",
    MEDIA_FOUNDATION: "Windows Media Foundation",
    QSV: "Intel Quick Sync (QSV)",
    AMF: "AMD AMF",
    VAAPI: "Linux VAAPI",
    SOFTWARE: "libx264 (CPU)",
}

# (argv, timeout) -> CompletedProcess
ProbeRunner = Callable[[list[str], Optional[float]], subprocess.CompletedProcess]


def detect_wsl(
    system: str,
    proc_version: Path = Path("/proc/version"),
    environ: Mapping[str, str] = os.environ,
) -> bool:
    """Detect Windows Subsystem for Linux."""
    if system != "linux":
        return False

    try:
        version = proc_version.read_text().lower()
    except OSError:
        version = ""
    if "microsoft" in version or "wsl" in version:
        return True

    return bool(environ.get("WSL_DISTRO_NAME"))


@dataclass(frozen=True)
class HostInfo:
    """Operating system facts that gate platform-specific encoders."""

    system: str  # "linux", "darwin", "windows"
    machine: str = ""
    is_wsl: bool = False

    @classmethod
    def detect(cls) -> HostInfo:
        system = platform.system().lower()
        return cls(system=system, machine=platform.machine(), is_wsl=detect_wsl(system))

    @property
    def environment(self) -> str:
        """Human-readable environment name."""
        if self.system == "linux":
            return "WSL (Windows Subsystem for Linux)" if self.is_wsl else "Native Linux"
        names = {"darwin": "macOS", "windows": "Windows"}
        return f"Native {names.get(self.system, self.system.capitalize())}"


@dataclass(frozen=True)
class CapabilityReport:
    """Which encoders ffmpeg lists, and which of those actually work."""

    host: HostInfo
    listed: frozenset[str] = field(default_factory=frozenset)
    functional: frozenset[str] = field(default_factory=frozenset)

    def has(self, encoder: str) -> bool:
        return encoder in self.functional

    @property
    def hardware(self) -> list[str]:
        """Working hardware encoders, in priority order."""
        return [enc for enc in HARDWARE_ENCODERS if enc in self.functional]

    @property
    def rejected(self) -> list[str]:
        """Hardware encoders that are listed but failed the smoke test."""
        return [
            enc for enc in HARDWARE_ENCODERS
            if enc in self.listed and enc not in self.functional
        ]


def parse_encoder_list(output: str) -> frozenset[str]:
    """Pick the known encoder ids out of `ffmpeg -encoders` output."""
    found = set()
    for encoder in KNOWN_ENCODERS:
        if re.search(rf"(?<![\w]){re.escape(encoder)}(?![\w])", output):
            found.add(encoder)
    return frozenset(found)


class CapabilityProbe:
    """Queries ffmpeg for usable H.264 encoders."""

    def __init__(
        self,
        ffmpeg: str = DEFAULT_FFMPEG,
        smoke_tests: bool = True,
        timeout: Optional[float] = DEFAULT_PROBE_TIMEOUT,
        runner: ProbeRunner = run_capture,
    ):
        """Initialize the probe.

        Args:
            ffmpeg: ffmpeg binary name or path
            smoke_tests: Confirm listed hardware encoders with a test encode
            timeout: Per-subprocess timeout in seconds
            runner: Subprocess runner (injectable for tests)
        """
        self.ffmpeg = ffmpeg
        self.smoke_tests = smoke_tests
        self.timeout = timeout
        self._runner = runner

    def _run(self, cmd: list[str]) -> Optional[subprocess.CompletedProcess]:
        try:
            return self._runner(cmd, self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            log.debug(f"{cmd[0]} could not run: {e}")
            return None

    def list_encoders(self) -> frozenset[str]:
        """Return the known encoder ids compiled into ffmpeg.

        Any failure yields an empty set.
        """
        result = self._run([self.ffmpeg, "-hide_banner", "-encoders"])
        if result is None or result.returncode != 0:
            log.warning("Could not list ffmpeg encoders; assuming none available")
            return frozenset()
        return parse_encoder_list(result.stdout or "")

    def smoke_test(self, encoder: str) -> bool:
        """Encode a sub-second synthetic clip with `encoder` to a null sink."""
        cmd = [
            self.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-f", "lavfi",
            "-i", SMOKE_TEST_SOURCE,
            "-c:v", encoder,
            "-f", "null",
            "-",
        ]
        result = self._run(cmd)
        ok = result is not None and result.returncode == 0
        if not ok:
            log.info(f"{encoder} is listed but failed the test encode")
        return ok

    def probe(self, host: Optional[HostInfo] = None) -> CapabilityReport:
        """Build a fresh capability report for this host."""
        host = host or HostInfo.detect()
        listed = self.list_encoders()

        functional = set()
        for encoder in KNOWN_ENCODERS:
            if encoder not in listed:
                continue
            if encoder == SOFTWARE or not self.smoke_tests or self.smoke_test(encoder):
                functional.add(encoder)

        report = CapabilityReport(
            host=host,
            listed=listed,
            functional=frozenset(functional),
        )
        log.debug(
            f"Encoders listed: {sorted(listed)}; functional: {sorted(report.functional)}"
        )
        return report
