"""
Builds ffmpeg argument lists from an `EncodingRequest`.

Everything in this module is pure: no filesystem access and no processes. A
request becomes an `EncodingPlan` holding one argument list per ffmpeg pass
(one for a normal encode, two for a two-pass encode) plus any advisories the
caller should surface to the user.

The lists never include the executable itself; the process supervisor prepends
`request.ffmpeg_path` when spawning.
"""
import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..config.encoding import (
    AUDIO_CHANNEL_COUNTS,
    AUDIO_CHANNELS_SAME,
    NULL_SINK,
    PASSLOG_HASH_LENGTH,
    PASSLOG_PREFIX,
    RATE_CONTROL_BITRATE,
    RATE_CONTROL_CRF,
    SUBTITLES_COPY,
    SUBTITLES_NONE,
    TRACKS_ALL,
    TRACKS_ALL_AUDIO,
    TWO_PASS_CRF_ADVISORY,
)
from ..domain.request import EncodingRequest


@dataclass
class EncodingPlan:
    passes: List[List[str]]
    passlog_prefix: Optional[Path] = None
    advisories: List[str] = field(default_factory=list)

    @property
    def is_two_pass(self) -> bool:
        return len(self.passes) == 2


def _format_number(value) -> str:
    # 2.0 -> "2", -1.5 -> "-1.5"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def base_args(request: EncodingRequest) -> List[str]:
    return ["-y", "-i", str(request.input_path), "-map_metadata", "0"]


def video_args(request: EncodingRequest) -> List[str]:
    args = ["-c:v", request.video.name]
    if request.video.is_passthrough:
        return args
    if request.rate_control_mode == RATE_CONTROL_BITRATE:
        args += ["-b:v", f"{request.video_bitrate}k"]
    else:
        args += [request.video.quality_flag, str(request.crf)]
    args += ["-preset", request.preset]
    return args


def audio_args(request: EncodingRequest) -> List[str]:
    args = ["-c:a", request.audio.name]
    if request.audio.is_passthrough:
        return args
    if request.audio_bitrate > 0:
        args += ["-b:a", f"{request.audio_bitrate}k"]
    if request.audio_channels != AUDIO_CHANNELS_SAME:
        channels = AUDIO_CHANNEL_COUNTS.get(request.audio_channels)
        if channels:
            args += ["-ac", channels]
    if request.volume_db != 0:
        args += ["-filter:a", f"volume={_format_number(request.volume_db)}dB"]
    return args


def subtitle_args(request: EncodingRequest) -> List[str]:
    if request.subtitle_mode == SUBTITLES_NONE:
        return ["-sn"]
    if request.subtitle_mode == SUBTITLES_COPY:
        return ["-c:s", "copy"]
    return []


def common_args(request: EncodingRequest) -> List[str]:
    if request.threads > 0:
        return ["-threads", str(request.threads)]
    return []


def mapping_args(request: EncodingRequest) -> List[str]:
    """
    Stream selection.

    With subtitle copy enabled, subtitles are mapped explicitly even under
    'auto': ffmpeg's default stream selection drops them otherwise.
    """
    copy_subs = request.subtitle_mode == SUBTITLES_COPY
    if request.track_selection == TRACKS_ALL:
        return ["-map", "0"]
    if request.track_selection == TRACKS_ALL_AUDIO:
        args = ["-map", "0:v:0", "-map", "0:a"]
        if copy_subs:
            args += ["-map", "0:s?"]
        return args
    if copy_subs:
        return ["-map", "0:s?"]
    return []


def passlog_prefix(output_path: Path) -> Path:
    """
    Location of the two-pass statistics files for an output.

    Derived from a hash of the output filename only, so both passes and any
    re-run of the same job agree on it.
    """
    digest = hashlib.md5(output_path.name.encode("utf-8")).hexdigest()[:PASSLOG_HASH_LENGTH]
    return output_path.parent / f"{PASSLOG_PREFIX}-{digest}"


def build_pass_args(request: EncodingRequest, pass_number: int, prefix: Path, null_sink: str = NULL_SINK) -> List[str]:
    if pass_number == 1:
        return (
            base_args(request)
            + video_args(request)
            + ["-an", "-sn"]
            + common_args(request)
            + ["-pass", "1", "-passlogfile", str(prefix), "-f", "null", null_sink]
        )
    if pass_number == 2:
        return (
            base_args(request)
            + video_args(request)
            + audio_args(request)
            + subtitle_args(request)
            + common_args(request)
            + mapping_args(request)
            + ["-pass", "2", "-passlogfile", str(prefix), str(request.output_path)]
        )
    raise ValueError(f"pass_number must be 1 or 2, got {pass_number}")


def build_single_pass_args(request: EncodingRequest) -> List[str]:
    return (
        base_args(request)
        + video_args(request)
        + audio_args(request)
        + subtitle_args(request)
        + common_args(request)
        + mapping_args(request)
        + [str(request.output_path)]
    )


def build_encoding_plan(request: EncodingRequest, null_sink: str = NULL_SINK) -> EncodingPlan:
    """
    Converts a request into the ordered ffmpeg argument list(s) for its passes.

    Two-pass is honoured only when the video stream is actually re-encoded; a
    video 'copy' always yields a single pass. Two-pass combined with CRF is
    accepted but reported as an advisory.

    Args:
        request: The validated encoding request.
        null_sink: Output target for the discarded pass-1 output ('NUL' on
                   Windows, '/dev/null' elsewhere).

    Returns:
        An `EncodingPlan` with one or two argument lists.
    """
    if request.two_pass and not request.video.is_passthrough:
        prefix = passlog_prefix(request.output_path)
        plan = EncodingPlan(
            passes=[
                build_pass_args(request, 1, prefix, null_sink),
                build_pass_args(request, 2, prefix, null_sink),
            ],
            passlog_prefix=prefix,
        )
        if request.rate_control_mode == RATE_CONTROL_CRF:
            plan.advisories.append(TWO_PASS_CRF_ADVISORY)
        return plan
    return EncodingPlan(passes=[build_single_pass_args(request)])
