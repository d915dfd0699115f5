"""
Configuration settings related to ffmpeg argument construction.

This module defines the codec sentinel, the accepted option values for requests,
the flag tables used by the argument builder, and the defaults a request falls
back to when the caller leaves a field unset.
"""
import os

# --- Executables ---
DEFAULT_FFMPEG = "ffmpeg"
DEFAULT_FFPROBE = "ffprobe"

# --- Codec Settings ---
# The codec value meaning "do not re-encode this stream, copy as-is".
PASSTHROUGH_CODEC = "copy"

# Substrings identifying GPU encoders, mapped to the quality flag they take in
# place of "-crf".
HARDWARE_QUALITY_FLAGS = {
    "nvenc": "-cq",
}
SOFTWARE_QUALITY_FLAG = "-crf"

# --- Request Option Values ---
RATE_CONTROL_CRF = "crf"
RATE_CONTROL_BITRATE = "bitrate"
RATE_CONTROL_MODES = (RATE_CONTROL_CRF, RATE_CONTROL_BITRATE)

AUDIO_CHANNELS_SAME = "same"
# Channel layout selector -> value for "-ac". Anything else emits no flag.
AUDIO_CHANNEL_COUNTS = {
    "mono": "1",
    "stereo": "2",
    "5.1": "6",
}

TRACKS_AUTO = "auto"
TRACKS_ALL = "all"
TRACKS_ALL_AUDIO = "all_audio"

SUBTITLES_NONE = "none"
SUBTITLES_COPY = "copy"
SUBTITLES_AUTO = "auto"

# --- Defaults ---
DEFAULT_AUDIO_BITRATE_KBPS = 128
DEFAULT_CRF = 23
DEFAULT_VIDEO_BITRATE_KBPS = 2500
DEFAULT_PRESET = "medium"

# --- Two-pass Settings ---
PASSLOG_PREFIX = "ffmpeg2pass"
PASSLOG_HASH_LENGTH = 12
NULL_SINK = "NUL" if os.name == "nt" else "/dev/null"

TWO_PASS_CRF_ADVISORY = (
    "Two-pass encoding with CRF rate control is usually ineffective; "
    "two-pass is meant to be paired with bitrate mode."
)
