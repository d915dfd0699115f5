"""
Runs one ffmpeg invocation and follows it to completion.

`FfmpegProcess` spawns the executable with stderr piped, reads that pipe in
chunks as data arrives, feeds every chunk to an `FfmpegLogParser`, and hands
both the raw text and any new progress fraction to the caller's callbacks. The
outcome is a `PassOutcome`: success only for exit status 0. A spawn failure is
reported as a failed outcome rather than raised when going through `run()`.
"""
import codecs
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional

from loguru import logger

from ..config.common import STDERR_CHUNK_SIZE
from ..domain.exceptions import EncoderExitError, EncoderSpawnError, EncodingException
from ..utils.ffmpeg_utils import format_command
from .log_parser import FfmpegLogParser

OutputCallback = Callable[[str], None]
ProgressCallback = Callable[[float], None]


@dataclass
class PassOutcome:
    """
    Result of one ffmpeg pass.

    Attributes:
        returncode: The process exit status, or None if it never started.
        error: The failure, or None on success.
        duration: Input duration the parser discovered, 0.0 if none was seen.
    """

    returncode: Optional[int]
    error: Optional[EncodingException] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None and self.returncode == 0


class FfmpegProcess:
    def __init__(
        self,
        executable: str,
        args: List[str],
        on_output: Optional[OutputCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        spawn: Callable = subprocess.Popen,
    ):
        self.executable = executable
        self.args = list(args)
        self.on_output = on_output
        self.on_progress = on_progress
        self.parser = FfmpegLogParser()
        self._spawn = spawn
        self._popen = None

    @property
    def cmd(self) -> List[str]:
        return [self.executable] + self.args

    @property
    def pid(self) -> Optional[int]:
        return getattr(self._popen, "pid", None)

    @property
    def started(self) -> bool:
        return self._popen is not None

    def start(self):
        """
        Spawns ffmpeg.

        Raises:
            EncoderSpawnError: The executable is missing, not executable, or the
                               OS refused to create the process.
        """
        kwargs = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.PIPE,
        }
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        logger.debug(f"Spawning: {format_command(self.cmd)}")
        try:
            self._popen = self._spawn(self.cmd, **kwargs)
        except OSError as e:
            reason = e.strerror or str(e)
            logger.error(f"Could not start '{self.executable}': {reason}")
            raise EncoderSpawnError(self.executable, reason) from e

    def wait(self) -> PassOutcome:
        """
        Streams stderr until ffmpeg closes it, then collects the exit status.
        """
        if self._popen is None:
            raise RuntimeError("FfmpegProcess.wait() called before start().")

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        stream = self._popen.stderr
        if stream is not None:
            read = getattr(stream, "read1", None) or stream.read
            try:
                while True:
                    data = read(STDERR_CHUNK_SIZE)
                    if not data:
                        break
                    self._handle_text(decoder.decode(data))
                self._handle_text(decoder.decode(b"", final=True))
            except BaseException:
                # A failing callback must not leave ffmpeg running unattended.
                logger.warning(f"Stopping ffmpeg (pid {self.pid}) after an error while reading its output.")
                self.terminate()
                stream.close()
                self._reap()
                raise
            stream.close()

        returncode = self._popen.wait()
        duration = self.parser.duration
        if returncode == 0:
            return PassOutcome(returncode, duration=duration)
        if returncode < 0 and os.name != "nt":
            return PassOutcome(returncode, EncoderExitError(signal_number=-returncode), duration)
        return PassOutcome(returncode, EncoderExitError(returncode=returncode), duration)

    def run(self) -> PassOutcome:
        """Spawns, streams and waits. Never raises for spawn failures."""
        try:
            self.start()
        except EncoderSpawnError as e:
            return PassOutcome(None, e)
        return self.wait()

    def terminate(self):
        """
        Asks ffmpeg to stop. Best effort: does not wait for the process to exit.
        """
        popen = self._popen
        if popen is None or popen.poll() is not None:
            return
        try:
            popen.terminate()
            logger.debug(f"Sent terminate to ffmpeg (pid {popen.pid}).")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"Terminate failed for pid {popen.pid}: {e}")

    def _reap(self, timeout: float = 5):
        try:
            self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"ffmpeg (pid {self.pid}) ignored terminate; killing it.")
            self._popen.kill()
            self._popen.wait()

    def _handle_text(self, text: str):
        if not text:
            return
        if self.on_output:
            self.on_output(text)
        fraction = self.parser.feed(text)
        if fraction is not None and self.on_progress:
            self.on_progress(fraction)
