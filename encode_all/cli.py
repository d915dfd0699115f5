"""
Command-Line Interface (CLI) setup for encode-all.

This module uses Python's `argparse` to define and parse the command-line
arguments, and turns them (or a YAML job file) into `EncodingRequest` objects.
"""
import argparse
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .config.common import DEFAULT_LOG_LEVEL, DEFAULT_MAX_WORKERS, MAX_ENCODE_RETRIES
from .config.encoding import (
    AUDIO_CHANNEL_COUNTS,
    AUDIO_CHANNELS_SAME,
    DEFAULT_AUDIO_BITRATE_KBPS,
    DEFAULT_CRF,
    DEFAULT_PRESET,
    DEFAULT_VIDEO_BITRATE_KBPS,
    RATE_CONTROL_MODES,
    SUBTITLES_AUTO,
    SUBTITLES_COPY,
    SUBTITLES_NONE,
    TRACKS_ALL,
    TRACKS_ALL_AUDIO,
    TRACKS_AUTO,
)
from .domain.exceptions import InvalidRequestError
from .domain.request import EncodingRequest
from .utils.ffmpeg_utils import default_ffmpeg_path

# Flags that map one-to-one onto request fields. Unset flags (None) leave the
# request default, or the job file value, in place.
_REQUEST_FLAGS = (
    "video_codec",
    "audio_codec",
    "audio_channels",
    "audio_bitrate",
    "volume_db",
    "rate_control_mode",
    "crf",
    "video_bitrate",
    "preset",
    "threads",
    "track_selection",
    "subtitle_mode",
    "ffmpeg_path",
    "log_directory",
    "job_timestamp",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Batch video transcoder driving ffmpeg.")

    source = parser.add_argument_group("jobs")
    source.add_argument("-i", "--input", type=Path, help="Input file for a single job.")
    source.add_argument("-o", "--output", type=Path, help="Output file for a single job.")
    source.add_argument("--jobs", type=Path, help="YAML file listing jobs.")
    source.add_argument("--job-id", dest="job_id", help="Explicit id for a single job.")

    enc = parser.add_argument_group("encoding")
    enc.add_argument("--video-codec", dest="video_codec", help="ffmpeg video encoder, or 'copy'.")
    enc.add_argument("--audio-codec", dest="audio_codec", help="ffmpeg audio encoder, or 'copy'.")
    enc.add_argument(
        "--audio-channels",
        dest="audio_channels",
        choices=[AUDIO_CHANNELS_SAME, *AUDIO_CHANNEL_COUNTS],
        help=f"Channel layout (default: {AUDIO_CHANNELS_SAME}).",
    )
    enc.add_argument("--audio-bitrate", dest="audio_bitrate", type=int,
                     help=f"Audio bitrate in kbps, 0 to omit (default: {DEFAULT_AUDIO_BITRATE_KBPS}).")
    enc.add_argument("--volume-db", dest="volume_db", type=float, help="Volume adjustment in dB.")
    enc.add_argument("--rate-control", dest="rate_control_mode", choices=RATE_CONTROL_MODES,
                     help="Rate control mode (default: crf).")
    enc.add_argument("--crf", type=int, help=f"CRF / CQ value (default: {DEFAULT_CRF}).")
    enc.add_argument("--video-bitrate", dest="video_bitrate", type=int,
                     help=f"Video bitrate in kbps for bitrate mode (default: {DEFAULT_VIDEO_BITRATE_KBPS}).")
    enc.add_argument("--preset", help=f"Encoder preset (default: {DEFAULT_PRESET}).")
    enc.add_argument("--threads", type=int, help="ffmpeg thread count, 0 for auto.")
    enc.add_argument("--tracks", dest="track_selection", choices=[TRACKS_AUTO, TRACKS_ALL, TRACKS_ALL_AUDIO],
                     help="Which input streams to keep (default: auto).")
    enc.add_argument("--subtitles", dest="subtitle_mode", choices=[SUBTITLES_NONE, SUBTITLES_COPY, SUBTITLES_AUTO],
                     help="Subtitle handling (default: none).")
    enc.add_argument("--two-pass", dest="two_pass", action="store_true", default=None,
                     help="Run a two-pass encode (meant for bitrate mode).")

    run = parser.add_argument_group("run")
    run.add_argument("--ffmpeg", dest="ffmpeg_path", help="Path to the ffmpeg executable.")
    run.add_argument("--log-dir", dest="log_directory", type=Path, help="Directory for per-job ffmpeg logs.")
    run.add_argument("--timestamp", dest="job_timestamp", nargs="?", const="now",
                     help="Group logs in a logs_<timestamp> folder; without a value the current time is used.")
    run.add_argument("--processes", type=int, default=DEFAULT_MAX_WORKERS,
                     help=f"Number of jobs to run in parallel (default: {DEFAULT_MAX_WORKERS}).")
    run.add_argument("--retries", type=int, default=MAX_ENCODE_RETRIES,
                     help=f"Extra attempts for a failed job (default: {MAX_ENCODE_RETRIES}).")
    run.add_argument("--probe", action="store_true", help="Check inputs with ffprobe before encoding.")
    run.add_argument("--check-ffmpeg", dest="check_ffmpeg", action="store_true",
                     help="Report ffmpeg version and NVENC support, then exit.")
    run.add_argument("--dry-run", dest="dry_run", action="store_true",
                     help="Print the ffmpeg command lines instead of running them.")
    run.add_argument(
        "--log-level", type=str, default=DEFAULT_LOG_LEVEL,
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level.",
    )
    return parser


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses and validates command-line arguments.

    Either `--jobs`, or both `--input` and `--output`, must be given unless
    `--check-ffmpeg` is used.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.job_timestamp == "now":
        args.job_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    if not args.check_ffmpeg:
        single = args.input is not None or args.output is not None
        if single and args.jobs:
            parser.error("Use either --jobs or --input/--output, not both.")
        if single and (args.input is None or args.output is None):
            parser.error("--input and --output must be given together.")
        if not single and not args.jobs:
            parser.error("Nothing to do: give --input/--output or --jobs.")
    if args.processes < 1:
        parser.error("--processes must be at least 1.")
    return args


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {name: getattr(args, name, None) for name in _REQUEST_FLAGS}
    overrides["two_pass"] = getattr(args, "two_pass", None)
    return overrides


def load_job_file(path: Path, overrides: Optional[Dict[str, Any]] = None) -> List[EncodingRequest]:
    """
    Reads a YAML job file.

    The file is either a list of request mappings or a mapping with an optional
    `defaults` section merged under every entry of `jobs`:

        defaults:
          video_codec: libx265
          audio_codec: aac
        jobs:
          - input_path: a.mp4
            output_path: out/a.mkv
          - input_path: b.mp4
            output_path: out/b.mkv
            crf: 20

    Command-line overrides win over both.

    Raises:
        InvalidRequestError: The file cannot be read or an entry is invalid.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise InvalidRequestError(f"Could not read job file '{path}': {e}") from e

    defaults: Dict[str, Any] = {"ffmpeg_path": default_ffmpeg_path()}
    if isinstance(data, dict):
        defaults.update(data.get("defaults") or {})
        entries = data.get("jobs") or []
    elif isinstance(data, list):
        entries = data
    else:
        raise InvalidRequestError(f"Job file '{path}' must contain a list or a 'jobs' mapping.")

    requests = []
    for position, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise InvalidRequestError(f"Job #{position} in '{path}' is not a mapping.")
        try:
            requests.append(EncodingRequest.from_dict({**defaults, **entry}, **(overrides or {})))
        except InvalidRequestError as e:
            raise InvalidRequestError(f"Job #{position} in '{path}': {e}") from e
    return requests


def requests_from_args(args: argparse.Namespace) -> List[EncodingRequest]:
    overrides = _overrides(args)
    if args.jobs:
        return load_job_file(args.jobs, overrides)

    data: Dict[str, Any] = {
        "input_path": args.input,
        "output_path": args.output,
        "video_codec": "libx265",
        "audio_codec": "aac",
        "ffmpeg_path": default_ffmpeg_path(),
    }
    if args.job_id:
        data["job_id"] = args.job_id
    return [EncodingRequest.from_dict(data, **overrides)]
