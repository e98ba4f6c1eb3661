"""
This module provides the codec compatibility pipeline.

Before a file reaches the renderer it is given to `CodecCompatibilityPipeline`,
which makes sure every stream in it is one the renderer can decode. Files whose
container cannot hold a problematic encoding pass straight through. The others
are probed, and if an HEVC video stream or an AC-3/E-AC-3/DTS audio stream is
found, the file is re-encoded into a fast-start MP4 that the renderer accepts.

The pipeline never makes things worse. Whatever goes wrong (FFmpeg missing,
an unreadable probe, a failed or cancelled encode) the original file is
returned and playback is attempted as-is.

The FFmpeg engine is loaded once per process and shared. Callers that arrive
while it is still loading wait for the same load instead of starting their
own, and a failed load is forgotten so the next request tries again. Only one
probe or transcode runs against the engine at a time.
"""

import os
import shutil
import subprocess
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from typing import List, NamedTuple, Optional

import ffmpeg
from loguru import logger

from ..config.common import TEMP_WORK_DIR, TRANSCODING_ENABLED
from ..config.media import (
    AUDIO_TRANSCODE_BITRATE,
    AUDIO_TRANSCODE_ENCODER,
    TRANSCODE_OUTPUT_SUFFIX,
    TRANSCODE_SCAN_EXTENSIONS,
    VIDEO_TRANSCODE_CRF,
    VIDEO_TRANSCODE_ENCODER,
    VIDEO_TRANSCODE_PRESET,
)
from ..domain.exceptions import (
    CodecException,
    EngineUnavailableException,
    ProbeFailedException,
    TranscodeCancelledException,
    TranscodeFailedException,
)
from ..domain.media import PlayableSource, ProbeResult
from ..utils.ffmpeg_utils import ProgressCallback, read_tail, run_ffmpeg_with_progress
from ..utils.format_utils import contains_any_extensions, formatted_size
from ..utils.module_check import Modules
from .logging_service import ErrorLog, TranscodeLog


class TranscodePlan(NamedTuple):
    """Which stream types a transcode re-encodes. The others are copied."""

    transcode_video: bool
    transcode_audio: bool


class TranscodeBackend(ABC):
    """
    Abstract Base Class for an engine that can probe and re-encode media.
    """

    name = "backend"

    def is_reachable(self) -> bool:
        """Cheap check, without loading anything, that the engine could work."""
        return True

    @abstractmethod
    def load(self) -> None:
        """
        Prepares the engine. Called once per process through `EngineCache`.

        Raises:
            EngineUnavailableException: If the engine cannot be started.
        """
        pass

    @abstractmethod
    def probe(self, source: Path) -> ProbeResult:
        """
        Raises:
            ProbeFailedException: If the file's streams cannot be read.
        """
        pass

    @abstractmethod
    def transcode(
        self,
        source: Path,
        output: Path,
        plan: TranscodePlan,
        duration: float,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Writes a renderer-compatible copy of `source` to `output`.

        Raises:
            TranscodeCancelledException: If `cancel_event` was set mid-run.
            TranscodeFailedException: If the engine failed or wrote nothing.
        """
        pass


class FFmpegBackend(TranscodeBackend):
    """
    TranscodeBackend running the ffmpeg and ffprobe executables.

    Attributes:
        ffmpeg_cmd (str): Command or path used to run ffmpeg.
        ffprobe_cmd (str): Command or path used to run ffprobe.
    """

    name = "ffmpeg"

    def __init__(self, ffmpeg_cmd: Optional[str] = None, ffprobe_cmd: Optional[str] = None):
        self.ffmpeg_cmd = ffmpeg_cmd or Modules.get_ffmpeg_path()
        self.ffprobe_cmd = ffprobe_cmd or Modules.get_ffprobe_path()

    def is_reachable(self) -> bool:
        return all(shutil.which(cmd) is not None for cmd in (self.ffmpeg_cmd, self.ffprobe_cmd))

    def load(self) -> None:
        try:
            result = subprocess.run(
                [self.ffmpeg_cmd, "-version"],
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise EngineUnavailableException(f"FFmpeg not found: {self.ffmpeg_cmd}") from e
        except subprocess.CalledProcessError as e:
            raise EngineUnavailableException(
                f"FFmpeg failed to start (return code {e.returncode}): {e.stderr}"
            ) from e
        first_line = result.stdout.splitlines()[0] if result.stdout else "unknown version"
        logger.info(f"Transcoding engine ready: {first_line}")

    def probe(self, source: Path) -> ProbeResult:
        try:
            probe = ffmpeg.probe(str(source), cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else str(e)
            raise ProbeFailedException(f"ffprobe failed for {source}: {stderr.strip()}") from e
        except (OSError, ValueError) as e:
            raise ProbeFailedException(f"ffprobe could not run for {source}: {e}") from e
        return ProbeResult.from_probe(probe)

    def build_command(self, source: Path, output: Path, plan: TranscodePlan) -> List[str]:
        cmd_list = [
            self.ffmpeg_cmd,
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:1",
            "-y",
            "-i", str(source),
        ]
        if plan.transcode_video:
            cmd_list.extend([
                "-c:v", VIDEO_TRANSCODE_ENCODER,
                "-preset", VIDEO_TRANSCODE_PRESET,
                "-crf", str(VIDEO_TRANSCODE_CRF),
            ])
        else:
            cmd_list.extend(["-c:v", "copy"])
        if plan.transcode_audio:
            cmd_list.extend(["-c:a", AUDIO_TRANSCODE_ENCODER, "-b:a", AUDIO_TRANSCODE_BITRATE])
        else:
            cmd_list.extend(["-c:a", "copy"])
        # Embedded subtitle tracks are dropped; external subtitle files still apply.
        cmd_list.extend(["-sn", "-movflags", "+faststart", str(output)])
        return cmd_list

    def transcode(
        self,
        source: Path,
        output: Path,
        plan: TranscodePlan,
        duration: float,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        stderr_log = output.parent / "ffmpeg_stderr.log"
        try:
            returncode = run_ffmpeg_with_progress(
                self.build_command(source, output, plan),
                duration,
                on_progress=on_progress,
                cancel_event=cancel_event,
                stderr_log_path=stderr_log,
            )
        except OSError as e:
            raise TranscodeFailedException(f"Could not run FFmpeg for {source}: {e}") from e

        if cancel_event is not None and cancel_event.is_set():
            raise TranscodeCancelledException(f"Transcode of {source} was cancelled.")
        if returncode != 0:
            raise TranscodeFailedException(
                f"FFmpeg exited with code {returncode} for {source}:\n{read_tail(stderr_log)}"
            )
        if not output.is_file() or output.stat().st_size == 0:
            raise TranscodeFailedException(f"FFmpeg produced no output for {source}.")


class TranscodeEngine:
    """A loaded backend plus the lock that keeps it to one job at a time."""

    def __init__(self, backend: TranscodeBackend):
        self.backend = backend
        self.busy = threading.Lock()


class EngineCache:
    """
    Lazily loads at most one `TranscodeEngine` and shares it.

    Concurrent `get()` calls during a load all wait on the same in-flight
    future. A failed load resets the cache, so a later call loads again.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._engine: Optional[TranscodeEngine] = None
        self._loading: Optional[Future] = None

    @property
    def loaded(self) -> bool:
        return self._engine is not None

    def get(self, backend: TranscodeBackend) -> TranscodeEngine:
        with self._lock:
            if self._engine is not None:
                return self._engine
            owner = self._loading is None
            if owner:
                self._loading = Future()
            future = self._loading

        if not owner:
            logger.debug("Transcoding engine is loading, waiting for it.")
            return future.result()

        try:
            backend.load()
        except Exception as e:
            error = e if isinstance(e, EngineUnavailableException) else EngineUnavailableException(
                f"Transcoding engine '{backend.name}' failed to load: {e}"
            )
            with self._lock:
                self._loading = None
            future.set_exception(error)
            if error is e:
                raise
            raise error from e

        engine = TranscodeEngine(backend)
        with self._lock:
            self._engine = engine
            self._loading = None
        future.set_result(engine)
        return engine

    def reset(self):
        with self._lock:
            self._engine = None


# The process-wide engine.
SHARED_ENGINE_CACHE = EngineCache()


class CodecCompatibilityPipeline:
    """
    Turns a media file into a source the renderer can play.

    Attributes:
        backend (TranscodeBackend): The probe/transcode engine.
        engine_cache (EngineCache): Where the loaded engine is shared.
        enabled (bool): When False every file is passed through untouched.
        work_dir (Path | None): Parent of the per-job scratch directories.
        output_dir (Path): Where finished transcodes are kept until released.
        scan_extensions (tuple): Containers worth probing.
        error_log (ErrorLog | None): Receives a record of each failure.
        transcode_log (TranscodeLog | None): Receives a record of each success.
    """

    def __init__(
        self,
        backend: Optional[TranscodeBackend] = None,
        engine_cache: Optional[EngineCache] = None,
        enabled: bool = TRANSCODING_ENABLED,
        work_dir: Optional[Path] = TEMP_WORK_DIR,
        output_dir: Optional[Path] = None,
        scan_extensions=TRANSCODE_SCAN_EXTENSIONS,
        log_dir: Optional[Path] = None,
    ):
        self.backend = backend or FFmpegBackend()
        self.engine_cache = engine_cache or SHARED_ENGINE_CACHE
        self.enabled = enabled
        self.work_dir = work_dir
        self.output_dir = output_dir or Path(work_dir or tempfile.gettempdir()) / "diveplay-transcoded"
        self.scan_extensions = tuple(scan_extensions)
        self.error_log = ErrorLog(log_dir) if log_dir else None
        self.transcode_log = TranscodeLog(log_dir) if log_dir else None

    def might_need_transcoding(self, source: Path) -> bool:
        return contains_any_extensions(source, self.scan_extensions)

    def ensure_playable(
        self,
        source: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PlayableSource:
        """
        Returns something the renderer can play for `source`.

        Args:
            source: The original media file.
            on_progress: Receives 0 when a transcode starts, then increasing
                         percentages, then 100 when the output is ready. Never
                         called for pass-through files.
            cancel_event: Set it to abandon the job; the original is returned.

        Returns:
            A transcoded `PlayableSource` owned by the caller, or the original.
        """
        if not self.enabled:
            return PlayableSource(source)
        if not self.might_need_transcoding(source):
            logger.debug(f"No transcoding needed for container of {source.name}")
            return PlayableSource(source)
        if not self.backend.is_reachable():
            logger.debug(f"Transcoding engine unreachable, playing {source.name} as-is.")
            return PlayableSource(source)

        try:
            engine = self.engine_cache.get(self.backend)
            with engine.busy:
                if cancel_event is not None and cancel_event.is_set():
                    raise TranscodeCancelledException(f"Load of {source} was superseded.")
                return self._probe_and_transcode(engine.backend, source, on_progress, cancel_event)
        except TranscodeCancelledException as e:
            logger.debug(str(e))
        except CodecException as e:
            logger.warning(f"Playing {source.name} without transcoding: {e}")
            self._log_failure(source, e)
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected codec pipeline failure for {source}")
            self._log_failure(source, e)
        return PlayableSource(source)

    def _probe_and_transcode(self, backend, source, on_progress, cancel_event) -> PlayableSource:
        probe = backend.probe(source)
        if not probe.needs_transcode:
            logger.debug(f"All streams of {source.name} are natively playable.")
            return PlayableSource(source)

        plan = TranscodePlan(probe.needs_video_transcode, probe.needs_audio_transcode)
        codecs = ", ".join(
            f"{s.codec_type}:{s.codec_name}" for s in probe.streams if s.codec_type in ("video", "audio")
        )
        logger.info(
            f"Transcoding {source.name} ({codecs}; video={'encode' if plan.transcode_video else 'copy'}, "
            f"audio={'encode' if plan.transcode_audio else 'copy'})"
        )

        if self.work_dir is not None:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        started = time.monotonic()
        with tempfile.TemporaryDirectory(prefix="diveplay_", dir=self.work_dir) as scratch:
            work_output = Path(scratch) / f"output{TRANSCODE_OUTPUT_SUFFIX}"
            if on_progress:
                on_progress(0)
            backend.transcode(source, work_output, plan, probe.duration, on_progress, cancel_event)
            final_output = self._claim_output(work_output, source)
        elapsed = time.monotonic() - started

        # Until it is handed out, the claimed file belongs to this call.
        try:
            if on_progress:
                on_progress(100)
            size = final_output.stat().st_size
            logger.success(f"Transcoded {source.name} in {elapsed:.1f}s ({formatted_size(size)})")
            if self.transcode_log:
                self.transcode_log.write({
                    "source": str(source),
                    "output": str(final_output),
                    "streams": codecs,
                    "video": "encode" if plan.transcode_video else "copy",
                    "audio": "encode" if plan.transcode_audio else "copy",
                    "duration_seconds": round(probe.duration, 2),
                    "elapsed_seconds": round(elapsed, 2),
                    "size": formatted_size(size),
                    "ended_datetime": datetime.now().isoformat(timespec="seconds"),
                })
        except Exception:
            final_output.unlink(missing_ok=True)
            raise
        return PlayableSource(final_output, was_transcoded=True)

    def _claim_output(self, work_output: Path, source: Path) -> Path:
        """Moves a finished transcode out of the scratch area under a unique name."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=f"{source.stem}.", suffix=TRANSCODE_OUTPUT_SUFFIX, dir=self.output_dir
        )
        # mkstemp reserves the name; the move overwrites the empty placeholder.
        os.close(fd)
        try:
            shutil.move(str(work_output), name)
        except Exception:
            Path(name).unlink(missing_ok=True)
            raise
        return Path(name)

    def _log_failure(self, source: Path, error: Exception):
        if self.error_log:
            self.error_log.write(
                f"Source: {source}",
                f"Error: {type(error).__name__}: {error}",
                "Played with the original streams.",
            )
