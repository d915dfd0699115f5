"""
Defines the immutable encoding request and the codec descriptor derived from it.

An `EncodingRequest` is everything the supervisor needs to run one job: where
to read and write, how to encode each stream, how to name the job, and where to
put its log. It is validated once on construction and never mutated afterwards.
"""
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from ..config.encoding import (
    AUDIO_CHANNELS_SAME,
    DEFAULT_AUDIO_BITRATE_KBPS,
    DEFAULT_CRF,
    DEFAULT_FFMPEG,
    DEFAULT_PRESET,
    DEFAULT_VIDEO_BITRATE_KBPS,
    HARDWARE_QUALITY_FLAGS,
    PASSTHROUGH_CODEC,
    RATE_CONTROL_CRF,
    RATE_CONTROL_MODES,
    SOFTWARE_QUALITY_FLAG,
    SUBTITLES_NONE,
    TRACKS_AUTO,
)
from .exceptions import InvalidRequestError


@dataclass(frozen=True)
class CodecInfo:
    """
    Capabilities of a selected codec, resolved once from its name.

    Attributes:
        name: The ffmpeg encoder name, e.g. 'libx265' or 'hevc_nvenc'.
        is_passthrough: True for the 'copy' sentinel (stream is not re-encoded).
        is_hardware_encoder: True for GPU encoders that take a CQ value.
        quality_flag: The flag carrying the CRF/CQ value for this encoder.
    """

    name: str
    is_passthrough: bool
    is_hardware_encoder: bool
    quality_flag: str

    @classmethod
    def from_name(cls, name: str) -> "CodecInfo":
        lowered = name.lower()
        for marker, flag in HARDWARE_QUALITY_FLAGS.items():
            if marker in lowered:
                return cls(name, False, True, flag)
        return cls(name, lowered == PASSTHROUGH_CODEC, False, SOFTWARE_QUALITY_FLAG)


@dataclass(frozen=True)
class EncodingRequest:
    input_path: Path
    output_path: Path
    video_codec: str
    audio_codec: str
    audio_channels: str = AUDIO_CHANNELS_SAME
    audio_bitrate: int = DEFAULT_AUDIO_BITRATE_KBPS
    volume_db: float = 0
    rate_control_mode: str = RATE_CONTROL_CRF
    crf: int = DEFAULT_CRF
    video_bitrate: int = DEFAULT_VIDEO_BITRATE_KBPS
    preset: str = DEFAULT_PRESET
    threads: int = 0
    track_selection: str = TRACKS_AUTO
    subtitle_mode: str = SUBTITLES_NONE
    two_pass: bool = False
    ffmpeg_path: str = DEFAULT_FFMPEG
    log_directory: Optional[Path] = None
    job_timestamp: Optional[str] = None
    job_id: Optional[str] = None

    video: CodecInfo = field(init=False, repr=False, compare=False)
    audio: CodecInfo = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Normalise path-like inputs so the rest of the package can rely on Path.
        object.__setattr__(self, "input_path", Path(self.input_path))
        object.__setattr__(self, "output_path", Path(self.output_path))
        if self.log_directory is not None:
            object.__setattr__(self, "log_directory", Path(self.log_directory))
        if not self.ffmpeg_path:
            object.__setattr__(self, "ffmpeg_path", DEFAULT_FFMPEG)

        if not str(self.input_path) or str(self.input_path) == ".":
            raise InvalidRequestError("input_path must not be empty.")
        if not str(self.output_path) or str(self.output_path) == ".":
            raise InvalidRequestError("output_path must not be empty.")
        if not self.video_codec:
            raise InvalidRequestError("video_codec must not be empty.")
        if not self.audio_codec:
            raise InvalidRequestError("audio_codec must not be empty.")
        if self.rate_control_mode not in RATE_CONTROL_MODES:
            raise InvalidRequestError(
                f"rate_control_mode must be one of {RATE_CONTROL_MODES}, got '{self.rate_control_mode}'."
            )
        for name in ("audio_bitrate", "crf", "video_bitrate", "threads"):
            if getattr(self, name) < 0:
                raise InvalidRequestError(f"{name} must not be negative.")

        object.__setattr__(self, "video", CodecInfo.from_name(self.video_codec))
        object.__setattr__(self, "audio", CodecInfo.from_name(self.audio_codec))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **overrides: Any) -> "EncodingRequest":
        """
        Builds a request from a plain mapping, e.g. one entry of a YAML job file.

        Unknown keys are rejected so that a typo in a job file is reported instead
        of silently falling back to a default.
        """
        accepted = {f.name for f in fields(cls) if f.init}
        merged = {**data, **{k: v for k, v in overrides.items() if v is not None}}
        unknown = set(merged) - accepted
        if unknown:
            raise InvalidRequestError(f"Unknown request field(s): {', '.join(sorted(unknown))}")
        try:
            return cls(**merged)
        except TypeError as e:
            raise InvalidRequestError(str(e)) from e
