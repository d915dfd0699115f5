import threading
import time
from pathlib import Path

import pytest

from encode_all.domain.request import EncodingRequest
from encode_all.services.events import EVENT_KINDS, EncodingEvents
from encode_all.services.job_registry import EncodingSupervisor
from encode_all.services.power import SleepBackend, SleepInhibitor


class FakeStderr:
    """Hands out scripted chunks, then blocks until the process is released."""

    def __init__(self, chunks, released: threading.Event):
        self._chunks = list(chunks)
        self._released = released
        self.closed = False

    def read1(self, size=-1):
        if self._chunks:
            return self._chunks.pop(0)
        self._released.wait(5)
        return b""

    def close(self):
        self.closed = True


class FakePopen:
    _next_pid = 1000

    def __init__(self, chunks=(), returncode=0, block=False, terminated_returncode=-15, exits_on_terminate=True):
        FakePopen._next_pid += 1
        self.pid = FakePopen._next_pid
        self._released = threading.Event()
        if not block:
            self._released.set()
        self.stderr = FakeStderr([c.encode("utf-8") if isinstance(c, str) else c for c in chunks], self._released)
        self._final_returncode = returncode
        self._terminated_returncode = terminated_returncode
        self._exits_on_terminate = exits_on_terminate
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.cmd = None
        self.kwargs = None

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self._released.wait(5)
        if self.returncode is None:
            self.returncode = self._terminated_returncode if self.terminated else self._final_returncode
        return self.returncode

    def terminate(self):
        self.terminated = True
        if self._exits_on_terminate:
            self._released.set()

    def kill(self):
        self.killed = True
        self._released.set()

    def finish(self):
        """Lets a blocking process exit with its scripted return code."""
        self._released.set()


class FakeSpawner:
    """Stands in for subprocess.Popen; returns (or raises) scripted items in order."""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = []
        self._lock = threading.Lock()

    def add(self, *items):
        with self._lock:
            self.items.extend(items)

    def __call__(self, cmd, **kwargs):
        with self._lock:
            self.calls.append(cmd)
            item = self.items.pop(0)
        if isinstance(item, BaseException):
            raise item
        item.cmd = cmd
        item.kwargs = kwargs
        return item


class CountingBackend(SleepBackend):
    name = "fake"

    def __init__(self):
        self.starts = 0
        self.stops = 0

    def start(self):
        self.starts += 1
        return f"handle-{self.starts}"

    def stop(self, handle):
        self.stops += 1


class EventRecorder:
    def __init__(self, events: EncodingEvents):
        self.received = []
        for kind in EVENT_KINDS:
            events.subscribe(kind, lambda event, kind=kind: self.received.append((kind, event)))

    def of(self, kind):
        return [event for k, event in self.received if k == kind]


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def backend():
    return CountingBackend()


@pytest.fixture
def inhibitor(backend):
    return SleepInhibitor(backend)


@pytest.fixture
def events():
    return EncodingEvents()


@pytest.fixture
def recorder(events):
    return EventRecorder(events)


@pytest.fixture
def supervisor(events, inhibitor, spawner):
    sup = EncodingSupervisor(events=events, sleep_inhibitor=inhibitor, spawn=spawner, max_workers=4)
    yield sup
    sup.shutdown(cancel=True)


@pytest.fixture
def make_request(tmp_path):
    def _make(name="out.mkv", **overrides):
        fields = {
            "input_path": tmp_path / "in.mp4",
            "output_path": tmp_path / name,
            "video_codec": "libx265",
            "audio_codec": "aac",
        }
        fields.update(overrides)
        return EncodingRequest(**fields)

    return _make


@pytest.fixture
def fake_process():
    return FakePopen


# Typical ffmpeg stderr for a 100 second input.
FFMPEG_HEADER = (
    "ffmpeg version 6.1 Copyright (c) 2000-2023 the FFmpeg developers\n"
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'in.mp4':\n"
    "  Duration: 00:01:40.00, start: 0.000000, bitrate: 1205 kb/s\n"
)


def status_line(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    return f"frame=  100 fps= 50 q=28.0 size=    1024kB time=00:{int(minutes):02d}:{secs:05.2f} bitrate= 800.0kbits/s speed=2.0x\r"


@pytest.fixture
def ffmpeg_output():
    return FFMPEG_HEADER, status_line


@pytest.fixture
def output_dir(tmp_path) -> Path:
    return tmp_path
