"""
Shared fixtures: deterministic stand-ins for threads, timers, the clock, the
renderer and the transcoding engine, plus helpers to lay out media folders.
"""

import json
from concurrent.futures import Executor, Future
from pathlib import Path

import pytest

from diveplay.config.common import STATE_FILE_NAME
from diveplay.domain.exceptions import ProbeFailedException, TranscodeFailedException
from diveplay.domain.media import ProbeResult
from diveplay.services.codec_service import (
    CodecCompatibilityPipeline,
    EngineCache,
    TranscodeBackend,
)
from diveplay.services.render_service import RenderSurface
from diveplay.services.session_service import PlaybackSession
from diveplay.services.storage_service import InMemoryFolderMemory


class SyncExecutor(Executor):
    """Runs every task immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues tasks until `run_all()` is called."""

    def __init__(self):
        self.tasks = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.tasks.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for future, fn, args, kwargs in tasks:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


class FakeTimer:
    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    """Drop-in for `threading.Timer` whose timers only fire when told to."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in list(self.pending):
            timer.fire()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingRenderSurface(RenderSurface):
    """RenderSurface that records every call as a (name, args) tuple."""

    def __init__(self):
        self.calls = []
        self.loaded = []

    def names(self):
        return [name for name, _ in self.calls]

    def load(self, source, item, subtitles, start_position, settings, autoplay):
        self.loaded.append((source, item, list(subtitles), start_position, autoplay))
        self.calls.append(("load", (item.relative_path, start_position)))

    def play(self):
        self.calls.append(("play", ()))

    def pause(self):
        self.calls.append(("pause", ()))

    def seek(self, position):
        self.calls.append(("seek", (position,)))

    def stop(self):
        self.calls.append(("stop", ()))

    def apply_settings(self, settings):
        self.calls.append(("apply_settings", (settings,)))


def probe_dict(*streams, duration="10.0"):
    return {
        "streams": [dict(index=i, **s) for i, s in enumerate(streams)],
        "format": {"duration": duration},
    }


HEVC_AAC = probe_dict(
    {"codec_type": "video", "codec_name": "hevc"},
    {"codec_type": "audio", "codec_name": "aac", "channels": 2},
)
H264_AAC = probe_dict(
    {"codec_type": "video", "codec_name": "h264"},
    {"codec_type": "audio", "codec_name": "aac", "channels": 2},
)


class FakeBackend(TranscodeBackend):
    """
    TranscodeBackend with scripted results.

    `probe_result` is what probing returns. `fail_probe` and `fail_transcode`
    raise the matching exception. Transcoding writes a small file and reports
    progress 25, 50 and 75.
    """

    name = "fake"

    def __init__(self, probe_result=H264_AAC, reachable=True):
        self.probe_result = probe_result
        self.reachable = reachable
        self.fail_probe = False
        self.fail_transcode = False
        self.fail_load = 0
        self.load_calls = 0
        self.probed = []
        self.transcoded = []

    def is_reachable(self):
        return self.reachable

    def load(self):
        self.load_calls += 1
        if self.fail_load:
            self.fail_load -= 1
            raise RuntimeError("engine exploded")

    def probe(self, source):
        self.probed.append(source)
        if self.fail_probe:
            raise ProbeFailedException(f"cannot probe {source}")
        return ProbeResult.from_probe(self.probe_result)

    def transcode(self, source, output, plan, duration, on_progress=None, cancel_event=None):
        self.transcoded.append((source, plan, duration))
        if self.fail_transcode:
            output.write_bytes(b"partial")
            raise TranscodeFailedException(f"cannot transcode {source}")
        for percent in (25, 50, 75):
            if on_progress:
                on_progress(percent)
        output.write_bytes(b"transcoded:" + source.read_bytes())


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def render():
    return RecordingRenderSurface()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def pipeline(backend, tmp_path):
    return CodecCompatibilityPipeline(
        backend=backend,
        engine_cache=EngineCache(),
        enabled=True,
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def make_tree(tmp_path):
    """Creates files (with placeholder content) under a fresh media root."""

    def _make(*relative_paths, root_name="media"):
        root = tmp_path / root_name
        root.mkdir(exist_ok=True)
        for rel in relative_paths:
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(f"data:{rel}".encode("utf-8"))
        return root.resolve()

    return _make


@pytest.fixture
def write_state():
    def _write(root: Path, data):
        (root / STATE_FILE_NAME).write_text(json.dumps(data), encoding="utf-8")

    return _write


@pytest.fixture
def read_state():
    def _read(root: Path):
        return json.loads((root / STATE_FILE_NAME).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def recorded_events():
    return []


@pytest.fixture
def make_session(render, timers, clock, recorded_events, backend, tmp_path):
    """Builds a session wired to the fakes; transcoding is off unless a pipeline is passed."""
    sessions = []

    def _make(**overrides):
        options = dict(
            render=render,
            pipeline=CodecCompatibilityPipeline(backend=backend, engine_cache=EngineCache(), enabled=False),
            folder_memory=InMemoryFolderMemory(),
            executor=SyncExecutor(),
            clock=clock,
            timer_factory=timers,
        )
        options.update(overrides)
        session = PlaybackSession(**options)
        session.add_listener(recorded_events.append)
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()
