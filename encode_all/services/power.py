"""
Keeps the machine awake while encodes are running and mirrors progress to an
optional OS-level indicator.

`SleepInhibitor` is reference counted: every running job holds one unit, the OS
inhibition is taken when the count goes from 0 to 1 and dropped when it returns
to 0. The OS mechanism depends on the platform:

- Windows: `SetThreadExecutionState`, held by a dedicated thread because the
  execution state belongs to the thread that set it.
- macOS: a `caffeinate -i` child process.
- Linux: a `systemd-inhibit ... sleep infinity` child process.

If no mechanism is available the counter still works and a warning is logged.
"""
import shutil
import subprocess
import sys
import threading
from typing import List, Optional

from loguru import logger

# Stands in for the OS handle when inhibition could not actually be taken.
_NO_OS_HANDLE = object()


class SleepBackend:
    """Takes and releases one OS-level sleep inhibition."""

    name = "none"

    def start(self):
        return _NO_OS_HANDLE

    def stop(self, handle):
        pass


class CommandSleepBackend(SleepBackend):
    """Holds inhibition for as long as a helper process is alive."""

    def __init__(self, cmd: List[str]):
        self.cmd = cmd
        self.name = cmd[0]

    def start(self):
        if shutil.which(self.cmd[0]) is None:
            logger.warning(f"'{self.cmd[0]}' not found; system sleep will not be inhibited.")
            return _NO_OS_HANDLE
        process = subprocess.Popen(
            self.cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        logger.debug(f"System sleep inhibited via {self.name} (pid {process.pid}).")
        return process

    def stop(self, handle):
        if handle is _NO_OS_HANDLE:
            return
        handle.terminate()
        try:
            handle.wait(timeout=5)
        except subprocess.TimeoutExpired:
            handle.kill()
        logger.debug(f"System sleep lock released ({self.name}).")


class WindowsSleepBackend(SleepBackend):
    name = "SetThreadExecutionState"

    ES_CONTINUOUS = 0x80000000
    ES_SYSTEM_REQUIRED = 0x00000001

    def start(self):
        import ctypes

        release = threading.Event()

        def hold():
            kernel32 = ctypes.windll.kernel32
            kernel32.SetThreadExecutionState(self.ES_CONTINUOUS | self.ES_SYSTEM_REQUIRED)
            release.wait()
            kernel32.SetThreadExecutionState(self.ES_CONTINUOUS)

        holder = threading.Thread(target=hold, name="sleep-inhibitor", daemon=True)
        holder.start()
        return holder, release

    def stop(self, handle):
        holder, release = handle
        release.set()
        holder.join(timeout=5)


def default_sleep_backend() -> SleepBackend:
    if sys.platform == "win32":
        return WindowsSleepBackend()
    if sys.platform == "darwin":
        return CommandSleepBackend(["caffeinate", "-i"])
    return CommandSleepBackend(
        [
            "systemd-inhibit",
            "--what=idle:sleep",
            "--who=encode-all",
            "--why=Encoding video",
            "--mode=block",
            "sleep",
            "infinity",
        ]
    )


class SleepInhibitor:
    """
    Reference-counted sleep inhibition shared by all jobs of a supervisor.

    Invariant: `handle` is not None exactly when `count` > 0.
    """

    def __init__(self, backend: Optional[SleepBackend] = None):
        self.backend = backend if backend is not None else default_sleep_backend()
        self.count = 0
        self.handle = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.count > 0

    def acquire(self):
        with self._lock:
            self.count += 1
            if self.count == 1:
                try:
                    self.handle = self.backend.start()
                except OSError as e:
                    logger.warning(f"Could not inhibit system sleep ({e}).")
                    self.handle = _NO_OS_HANDLE

    def release(self):
        with self._lock:
            if self.count == 0:
                logger.warning("Sleep inhibition released more often than acquired; ignoring.")
                return
            self.count -= 1
            if self.count == 0:
                handle, self.handle = self.handle, None
                try:
                    self.backend.stop(handle)
                except OSError as e:
                    logger.warning(f"Error releasing sleep lock: {e}")


class ProgressIndicator:
    """
    OS taskbar / dock progress. The base class does nothing and is the default.
    """

    def set(self, fraction: float):
        pass

    def clear(self):
        pass

    def set_error(self):
        pass


class LoggingProgressIndicator(ProgressIndicator):
    """Reports coarse progress through the logger, one line per 10%."""

    def __init__(self, step: int = 10):
        self.step = step
        self._last_bucket = -1
        self._lock = threading.Lock()

    def set(self, fraction: float):
        bucket = int(fraction * 100) // self.step
        with self._lock:
            if bucket == self._last_bucket:
                return
            self._last_bucket = bucket
        logger.info(f"Overall progress: {bucket * self.step}%")

    def clear(self):
        with self._lock:
            self._last_bucket = -1

    def set_error(self):
        logger.warning("Overall progress: error")
