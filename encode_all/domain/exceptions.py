"""
Defines custom exception types for the encode-all application.

These exceptions allow for more specific and expressive error handling throughout
the supervisor. Instead of catching a generic `Exception`, the registry can catch
`EncoderSpawnError` or `LogFileError` and turn each into the right job event.

All custom exceptions inherit from the base `EncodeAllException`.
"""
from typing import Optional


class EncodeAllException(Exception):
    """Base class for all custom exceptions in the encode-all application."""

    pass


# --- Request / Registry Exceptions ---
class InvalidRequestError(EncodeAllException, ValueError):
    """Raised when an encoding request carries a value the supervisor cannot use."""

    pass


class DuplicateJobError(EncodeAllException):
    """
    Raised when a start request reuses the id of a job that is still registered.

    The running job is left untouched; only the new request is rejected.
    """

    def __init__(self, job_id: str):
        super().__init__(f"Job '{job_id}' is already running.")
        self.job_id = job_id


class InvalidStateTransition(EncodeAllException):
    """Raised when a job is moved between two states that are not connected."""

    pass


# --- Encoding Exceptions ---
class EncodingException(EncodeAllException):
    """
    Base class for failures that end a job with an error event.

    The string form of these exceptions is what the caller sees as the
    error message, so it must stay human-readable.
    """

    pass


class EncoderSpawnError(EncodingException):
    """Raised when the ffmpeg executable cannot be started at all."""

    def __init__(self, executable: str, reason: str):
        super().__init__(f"Failed to start ffmpeg ({executable}): {reason}")
        self.executable = executable
        self.reason = reason


class EncoderExitError(EncodingException):
    """
    Raised when ffmpeg ran but did not exit cleanly.

    Carries either the non-zero exit code or, on POSIX, the number of the
    signal that ended the process.
    """

    def __init__(self, returncode: Optional[int] = None, signal_number: Optional[int] = None):
        if signal_number is not None:
            message = f"FFmpeg terminated by signal {signal_number}"
        else:
            message = f"FFmpeg exited with code {returncode}"
        super().__init__(message)
        self.returncode = returncode
        self.signal_number = signal_number


class LogFileError(EncodingException):
    """Raised when the per-job log file or its directory cannot be created."""

    def __init__(self, path, reason: str):
        super().__init__(f"Could not open log file {path}: {reason}")
        self.path = path


# --- Media Probe Exceptions ---
class MediaProbeError(EncodeAllException):
    """Raised when ffprobe cannot read an input file."""

    pass
