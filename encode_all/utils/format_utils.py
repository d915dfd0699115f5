"""
This module contains helper functions for converting between ffmpeg timestamps,
seconds and human-readable strings. They are used by the log parser and by the
CLI when reporting job results.
"""

import re
from datetime import timedelta

# 'HH:MM:SS.ff' as printed by ffmpeg. Hours may run past two digits for very long inputs.
TIMESTAMP_PATTERN = r"(\d{2,}):(\d{2}):(\d{2}\.\d{2})"
_TIMESTAMP_RE = re.compile(TIMESTAMP_PATTERN)


def timestamp_to_seconds(hours: str, minutes: str, seconds: str) -> float:
    """Combines the three captured parts of an ffmpeg timestamp into seconds."""
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_timestamp(value: str) -> float:
    """
    Parses an 'HH:MM:SS.ff' string into total seconds.

    Args:
        value: The timestamp string, e.g. "01:02:03.45".

    Returns:
        The timestamp in seconds (fractional part preserved), e.g. 3723.45.

    Raises:
        ValueError: If the string is not an ffmpeg timestamp.
    """
    match = _TIMESTAMP_RE.fullmatch(value.strip())
    if not match:
        raise ValueError(f"Not an ffmpeg timestamp: '{value}'")
    return timestamp_to_seconds(*match.groups())


def format_timedelta(td_object: timedelta) -> str:
    """
    Formats a timedelta object into a "HH:MM:SS" string.

    Returns "00:00:00" if the input is not a valid timedelta object.
    """
    if not isinstance(td_object, timedelta):
        return "00:00:00"

    total_seconds = int(td_object.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"
