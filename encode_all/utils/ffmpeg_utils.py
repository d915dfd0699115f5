"""
This module provides utility functions around the ffmpeg toolchain: checking
that ffmpeg is installed and which encoders it offers, probing inputs through
ffprobe, formatting command lines for display, and removing the statistics
files a two-pass encode leaves behind.
"""

import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import ffmpeg
from loguru import logger

from ..config.common import MODULE_PATH
from ..config.encoding import DEFAULT_FFMPEG, DEFAULT_FFPROBE
from ..domain.exceptions import MediaProbeError


@dataclass
class FfmpegStatus:
    is_installed: bool
    version: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MediaInfo:
    path: Path
    duration: float
    video_streams: int
    audio_streams: int
    subtitle_streams: int


def format_command(cmd: List[str]) -> str:
    """Joins an argument list into a copy-pasteable command line for the current OS."""
    if os.name == "nt":
        return subprocess.list2cmdline(cmd)
    return shlex.join(cmd)


def _tool_path(name: str) -> str:
    """
    Resolves an ffmpeg-suite executable.

    Prefers `paths.ffmpeg_dir` from the user config and falls back to the bare
    name, which the OS resolves through PATH.
    """
    exe_name = f"{name}.exe" if sys.platform == "win32" else name
    if MODULE_PATH and MODULE_PATH.is_dir():
        configured = MODULE_PATH / exe_name
        if configured.is_file():
            return str(configured)
        logger.warning(f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH.")
    return name


def default_ffmpeg_path() -> str:
    return _tool_path(DEFAULT_FFMPEG)


def default_ffprobe_path() -> str:
    return _tool_path(DEFAULT_FFPROBE)


def check_ffmpeg(ffmpeg_path: Optional[str] = None) -> FfmpegStatus:
    """
    Verifies that ffmpeg can be executed and reports its version line.

    Args:
        ffmpeg_path: Executable to check. Defaults to the configured ffmpeg.

    Returns:
        An `FfmpegStatus`; `error` is set whenever `is_installed` is False.
    """
    exe = ffmpeg_path or default_ffmpeg_path()
    try:
        result = subprocess.run(
            [exe, "-version"],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        logger.error(f"FFmpeg not found at '{exe}': {e}")
        return FfmpegStatus(False, path=exe, error=str(e))

    if result.returncode != 0:
        logger.error(f"FFmpeg version command failed (return code {result.returncode}):\n{result.stderr}")
        return FfmpegStatus(False, path=exe, error=f"ffmpeg -version exited with code {result.returncode}")

    first_line = result.stdout.splitlines()[0] if result.stdout else ""
    # "ffmpeg version 6.1.1-full_build-www.gyan.dev Copyright ..."
    parts = first_line.split()
    version = parts[2] if len(parts) > 2 and parts[1] == "version" else first_line or None
    logger.info(f"FFmpeg version check successful: {first_line}")
    return FfmpegStatus(True, version=version, path=exe)


def check_nvenc_support(ffmpeg_path: Optional[str] = None) -> bool:
    """Returns True if this ffmpeg build lists at least one NVENC encoder."""
    exe = ffmpeg_path or default_ffmpeg_path()
    try:
        result = subprocess.run(
            [exe, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        logger.debug(f"Could not list encoders with '{exe}': {e}")
        return False
    if result.returncode != 0:
        return False
    return "nvenc" in result.stdout


def probe_media(path: Path, ffprobe_path: Optional[str] = None) -> MediaInfo:
    """
    Reads duration and stream counts of an input file through ffprobe.

    Raises:
        MediaProbeError: ffprobe is missing or cannot read the file.
    """
    exe = ffprobe_path or default_ffprobe_path()
    try:
        probe = ffmpeg.probe(str(path), cmd=exe)
    except ffmpeg.Error as e:
        stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
        raise MediaProbeError(f"ffprobe could not read '{path}': {stderr.strip() or e}") from e
    except OSError as e:
        raise MediaProbeError(f"Could not run ffprobe ('{exe}'): {e}") from e

    streams = probe.get("streams", [])

    def count(codec_type: str) -> int:
        return sum(1 for s in streams if s.get("codec_type") == codec_type)

    try:
        duration = float(probe.get("format", {}).get("duration", 0.0))
    except (TypeError, ValueError):
        duration = 0.0

    return MediaInfo(
        path=Path(path),
        duration=duration,
        video_streams=count("video"),
        audio_streams=count("audio"),
        subtitle_streams=count("subtitle"),
    )


def remove_passlog_files(prefix: Path) -> List[Path]:
    """
    Deletes the statistics files ffmpeg wrote for `-passlogfile <prefix>`
    (e.g. `<prefix>-0.log`, `<prefix>-0.log.mbtree`).

    Returns:
        The paths that were removed.
    """
    removed = []
    for stats_file in prefix.parent.glob(f"{prefix.name}-*"):
        try:
            stats_file.unlink()
            removed.append(stats_file)
        except OSError as e:
            logger.warning(f"Could not remove two-pass statistics file {stats_file}: {e}")
    if removed:
        logger.debug(f"Removed {len(removed)} two-pass statistics file(s) for {prefix.name}")
    return removed
