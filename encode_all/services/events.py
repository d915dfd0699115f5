"""
The event boundary between the supervisor and whoever drives it.

The supervisor never calls into a UI directly. It publishes small, immutable
event objects keyed by job id, and callers subscribe per event kind. A
subscriber that raises is logged and skipped so that a faulty listener can
never break the cleanup path of a job.
"""
import threading
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List

from loguru import logger

EVENT_LOG = "log"
EVENT_PROGRESS = "progress"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"
EVENT_KINDS = (EVENT_LOG, EVENT_PROGRESS, EVENT_COMPLETE, EVENT_ERROR)


@dataclass(frozen=True)
class LogEvent:
    job_id: str
    text: str


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    percent: int


@dataclass(frozen=True)
class CompleteEvent:
    job_id: str
    output_path: Path


@dataclass(frozen=True)
class ErrorEvent:
    job_id: str
    message: str


class EncodingEvents:
    """Subscribe-by-kind publisher for job events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, kind: str, callback: Callable) -> Callable[[], None]:
        """
        Registers `callback` for one event kind.

        Returns:
            A function that removes the subscription again.
        """
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind '{kind}'. Expected one of {EVENT_KINDS}.")
        with self._lock:
            self._listeners[kind].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners[kind]:
                    self._listeners[kind].remove(callback)

        return unsubscribe

    def clear(self):
        with self._lock:
            self._listeners.clear()

    def emit(self, kind: str, event):
        with self._lock:
            listeners = list(self._listeners.get(kind, ()))
        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Listener {callback!r} for '{kind}' raised: {e}")

    def log(self, job_id: str, text: str):
        self.emit(EVENT_LOG, LogEvent(job_id, text))

    def progress(self, job_id: str, percent: int):
        self.emit(EVENT_PROGRESS, ProgressEvent(job_id, percent))

    def complete(self, job_id: str, output_path: Path):
        self.emit(EVENT_COMPLETE, CompleteEvent(job_id, output_path))

    def error(self, job_id: str, message: str):
        self.emit(EVENT_ERROR, ErrorEvent(job_id, message))
