"""
Incremental parser for ffmpeg's diagnostic (stderr) stream.

ffmpeg reports the input duration once in its header
(`Duration: 00:42:10.04, start: ...`) and then keeps rewriting a status line
(`frame= ... time=00:01:02.03 ...`) as it works. Pipe reads respect neither
line nor token boundaries, so each chunk is scanned together with a short tail
of the previous text. Matches already reported are skipped by remembering
where the last one ended.
"""
import re
from typing import Optional

from ..utils.format_utils import TIMESTAMP_PATTERN, timestamp_to_seconds

DURATION_RE = re.compile(r"Duration: " + TIMESTAMP_PATTERN)
TIME_RE = re.compile(r"time=" + TIMESTAMP_PATTERN)

# Longer than any token the parser looks for, so a token split across chunks
# is always whole once the next chunk arrives.
TAIL_CHARS = 64


class FfmpegLogParser:
    """
    Extracts total duration and current position from ffmpeg's stderr text.

    Attributes:
        duration: Total input duration in seconds, 0.0 until a `Duration:` token is seen.
        position: Last reported `time=` position in seconds.
        fraction: Progress in [0, 1], or None while the duration is unknown.
    """

    def __init__(self):
        self.duration: float = 0.0
        self.position: float = 0.0
        self.fraction: Optional[float] = None
        self._tail = ""
        self._scan_from = 0

    @property
    def percent(self) -> Optional[int]:
        if self.fraction is None:
            return None
        return min(100, round(self.fraction * 100))

    def feed(self, chunk: str) -> Optional[float]:
        """
        Consumes one arbitrary piece of stderr text.

        Returns:
            The progress fraction if this chunk carried a new position, otherwise None.
        """
        text = self._tail + chunk
        consumed = self._scan_from

        if not self.duration:
            duration_match = DURATION_RE.search(text, consumed)
            if duration_match:
                self.duration = timestamp_to_seconds(*duration_match.groups())
                consumed = duration_match.end()

        updated = None
        for time_match in TIME_RE.finditer(text, self._scan_from):
            self.position = timestamp_to_seconds(*time_match.groups())
            consumed = max(consumed, time_match.end())
            if self.duration > 0:
                fraction = min(1.0, self.position / self.duration)
                # Never step backwards within a pass.
                if self.fraction is None or fraction > self.fraction:
                    self.fraction = fraction
                updated = self.fraction

        cut = max(0, len(text) - TAIL_CHARS)
        self._tail = text[cut:]
        self._scan_from = max(0, consumed - cut)
        return updated
