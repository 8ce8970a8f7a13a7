"""Custom exceptions for slideshow-tools with detailed error information."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Optional


class SlideshowError(Exception):
    """Base exception for slideshow-tools errors."""

    pass


class PreconditionError(SlideshowError):
    """Raised before any subprocess runs when the inputs cannot make a slideshow."""

    def __init__(
        self,
        message: str,
        directory: Optional[Path] = None,
        found: Optional[int] = None,
    ):
        self.directory = directory
        self.found = found

        parts = [message]
        if directory is not None:
            parts.append(f"Directory: {directory}")
        if found is not None:
            parts.append(f"Found: {found} image(s)")

        super().__init__(" | ".join(parts))


class FFmpegError(SlideshowError):
    """Exception for FFmpeg-related errors with detailed output capture."""

    def __init__(
        self,
        message: str,
        command: Optional[list[str]] = None,
        returncode: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

        parts = [message]

        if returncode is not None:
            parts.append(f"Exit code: {returncode}")

        if stderr:
            error_lines = self._extract_error_lines(stderr)
            if error_lines:
                parts.append(f"FFmpeg error: {error_lines}")

        super().__init__("\n".join(parts))

    @staticmethod
    def _extract_error_lines(stderr: str) -> str:
        """Extract the most relevant error lines from FFmpeg stderr.

        FFmpeg outputs a lot of verbose info. This extracts just the error.
        """
        lines = stderr.strip().split("\n")

        error_indicators = [
            "Error",
            "error",
            "Invalid",
            "invalid",
            "No such file",
            "not found",
            "Unable to",
            "Cannot",
            "failed",
        ]

        error_lines = []
        for line in lines:
            if any(indicator in line for indicator in error_indicators):
                line = line.strip()
                if line and line not in error_lines:
                    error_lines.append(line)

        # If no specific errors found, return last few lines
        if not error_lines and lines:
            error_lines = [l.strip() for l in lines[-3:] if l.strip()]

        return " | ".join(error_lines[:3])

    @property
    def command_string(self) -> str:
        """Get the command as a string for display."""
        if self.command:
            return shlex.join(self.command)
        return ""


class FilterGraphError(SlideshowError):
    """Raised when a filter graph would leak, reuse or dangle a stream label."""

    def __init__(self, message: str, label: Optional[str] = None):
        self.label = label
        if label is not None:
            message = f"{message}: [{label}]"
        super().__init__(message)


class ProbeError(SlideshowError):
    """Exception for ffprobe failures or unreadable probe output."""

    def __init__(self, message: str, media_path: Optional[Path] = None):
        self.media_path = media_path

        parts = [message]
        if media_path is not None:
            parts.append(f"File: {media_path}")

        super().__init__(" | ".join(parts))


class ConversionError(SlideshowError):
    """Exception for images that cannot be opened, resized or saved."""

    def __init__(self, message: str, image_path: Optional[Path] = None):
        self.image_path = image_path

        parts = [message]
        if image_path is not None:
            parts.append(f"Image: {image_path}")

        super().__init__(" | ".join(parts))
