"""
Defines the mutable record the supervisor keeps for every active encoding job.

A `Job` is created when a start request is accepted and dropped from the
registry when it reaches a terminal state. The process handle and the log
stream it holds are only ever touched under `Job.lock`, which lets the reader
thread and a cancelling thread share the record safely.
"""
import hashlib
import threading
from pathlib import Path
from typing import IO, Dict, FrozenSet, List, Optional

from ..config.common import (
    JOB_STATUS_CANCELED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_CREATED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PASS1,
    JOB_STATUS_PASS2,
)
from .exceptions import InvalidStateTransition
from .request import EncodingRequest

TERMINAL_STATES: FrozenSet[str] = frozenset(
    {JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, JOB_STATUS_CANCELED}
)

# created -> pass1 -> [pass2] -> completed | failed | canceled
_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    JOB_STATUS_CREATED: frozenset({JOB_STATUS_PASS1, JOB_STATUS_FAILED, JOB_STATUS_CANCELED}),
    JOB_STATUS_PASS1: frozenset(
        {JOB_STATUS_PASS2, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, JOB_STATUS_CANCELED}
    ),
    JOB_STATUS_PASS2: frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED, JOB_STATUS_CANCELED}),
}

# Running state for each pass index.
PASS_STATES = (JOB_STATUS_PASS1, JOB_STATUS_PASS2)


def generate_job_id(input_path: Path, output_path: Path, timestamp: Optional[str] = None) -> str:
    """Derives a stable job id from the input, the output and the batch timestamp."""
    key = f"{input_path}|{output_path}|{timestamp or ''}"
    return "job-" + hashlib.md5(key.encode("utf-8")).hexdigest()[:12]


class Job:
    def __init__(self, job_id: str, request: EncodingRequest, log_path: Path, log_stream: IO[str]):
        self.job_id = job_id
        self.request = request
        self.output_path = request.output_path
        self.log_path = log_path
        self.log_stream: Optional[IO[str]] = log_stream
        self.passlog_prefix: Optional[Path] = None
        self.process = None
        self.duration: float = 0.0
        self.state: str = JOB_STATUS_CREATED
        self.advisories: List[str] = []
        self.error_message: Optional[str] = None
        self.lock = threading.RLock()
        self._canceled = threading.Event()
        self._finished = False

    @property
    def canceled(self) -> bool:
        return self._canceled.is_set()

    def mark_canceled(self):
        self._canceled.set()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: str):
        with self.lock:
            allowed = _TRANSITIONS.get(self.state, frozenset())
            if new_state not in allowed:
                raise InvalidStateTransition(
                    f"Job {self.job_id}: cannot move from '{self.state}' to '{new_state}'."
                )
            self.state = new_state

    def claim_finish(self) -> bool:
        """
        Returns True exactly once, to whichever caller reaches the terminal path first.
        """
        with self.lock:
            if self._finished:
                return False
            self._finished = True
            return True

    def write_log(self, text: str):
        with self.lock:
            if self.log_stream is not None:
                self.log_stream.write(text)

    def close_log(self):
        with self.lock:
            stream, self.log_stream = self.log_stream, None
        if stream is not None:
            stream.close()

    def __repr__(self):
        return f"<Job {self.job_id} state={self.state} output={self.output_path.name}>"
