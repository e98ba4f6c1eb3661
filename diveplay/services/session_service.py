"""
This module provides `PlaybackSession`, the state machine behind one open folder.

A session owns everything that belongs to a session root: the catalog, the
transport phase and position, the user's settings, the pending resume offer
and the progress writer. Every public method is a user command or a render
callback; they are serialized by one re-entrant lock, so the state a caller
observes is always consistent.

Loading an item is the only slow step (the file may need transcoding). It runs
on a worker thread and is tagged with a generation number. When the user picks
something else in the meantime, the generation moves on, the old load's cancel
event is set (which stops a running FFmpeg) and whatever the old load produces
is thrown away instead of replacing the newer selection.

Conditions the user has to act on (an unreadable subtree, a file that cannot
be played, lost folder access, progress that could not be saved) are
delivered to listeners as `SessionEvent`s. They are never raised out of
commands. Events are queued while the lock is held and delivered after it is
released, so a listener may issue commands of its own.
"""

import random
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..config.common import (
    LOAD_WORKERS,
    PAUSE_SETTLE_SECONDS,
    POSITION_WRITE_THROTTLE_SECONDS,
    PREV_RESTART_THRESHOLD_SECONDS,
    RESUME_COUNTDOWN_SECONDS,
    SEEK_STEP_SECONDS,
    VOLUME_STEP,
)
from ..config.media import PLAYBACK_RATES
from ..domain import events
from ..domain.events import EventListener, SessionEvent
from ..domain.exceptions import (
    InvalidSelectionException,
    MediaUnplayableException,
    PermissionRevokedException,
    ResumeTargetStaleException,
    ScanDegradedException,
)
from ..domain.media import Catalog, MediaItem, PlayableSource, ScanResult
from ..domain.session import (
    PersistedProgress,
    Phase,
    SessionState,
    Settings,
    ShufflePolicy,
    SubtitleSettings,
    clamp_font_size,
)
from .catalog_service import CatalogBuilder
from .codec_service import CodecCompatibilityPipeline
from .persistence_service import ProgressStore, ProgressWriter, StampedProgress
from .render_service import NullRenderSurface, RenderSurface
from .resume_service import ResumeChoice, ResumeOffer
from .storage_service import (
    FolderMemory,
    InMemoryFolderMemory,
    LocalPermissionChecker,
    LocalStorageProvider,
    PermissionChecker,
    StorageProvider,
)

# Phases in which the renderer holds a loaded source.
_LOADED_PHASES = (Phase.PLAYING, Phase.PAUSED)
_LOADING_PHASES = (Phase.LOADING, Phase.TRANSCODING)


class PlaybackSession:
    """
    One media session over one folder at a time.

    All collaborators are injectable; the defaults use the local filesystem,
    FFmpeg and a renderer that only logs.

    Attributes:
        render (RenderSurface): Receives load/play/pause/seek/stop calls.
        storage (StorageProvider): Used to scan, acquire media and persist progress.
        pipeline (CodecCompatibilityPipeline): Makes media playable before loading.
        catalog_builder (CatalogBuilder): Scans a root into a catalog.
        permission_checker (PermissionChecker): Re-checks a remembered folder.
        folder_memory (FolderMemory): Remembers the last opened root.
        shuffle_policy (ShufflePolicy): How shuffled `next()` picks an index.
    """

    def __init__(
        self,
        render: Optional[RenderSurface] = None,
        storage: Optional[StorageProvider] = None,
        pipeline: Optional[CodecCompatibilityPipeline] = None,
        catalog_builder: Optional[CatalogBuilder] = None,
        permission_checker: Optional[PermissionChecker] = None,
        folder_memory: Optional[FolderMemory] = None,
        executor: Optional[Executor] = None,
        clock=time.monotonic,
        timer_factory=threading.Timer,
        rng: Optional[random.Random] = None,
        shuffle_policy: ShufflePolicy = ShufflePolicy.WITH_REPLACEMENT,
        resume_countdown_seconds: float = RESUME_COUNTDOWN_SECONDS,
        throttle_seconds: float = POSITION_WRITE_THROTTLE_SECONDS,
        settle_seconds: float = PAUSE_SETTLE_SECONDS,
    ):
        self.render = render or NullRenderSurface()
        self.storage = storage or LocalStorageProvider()
        self.pipeline = pipeline or CodecCompatibilityPipeline()
        self.catalog_builder = catalog_builder or CatalogBuilder(self.storage)
        self.permission_checker = permission_checker or LocalPermissionChecker()
        self.folder_memory = folder_memory or InMemoryFolderMemory()
        self.shuffle_policy = ShufflePolicy(shuffle_policy)

        self._clock = clock
        self._timer_factory = timer_factory
        self._rng = rng or random.Random()
        self._resume_countdown_seconds = resume_countdown_seconds
        self._throttle_seconds = throttle_seconds
        self._settle_seconds = settle_seconds

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=LOAD_WORKERS, thread_name_prefix="diveplay-load"
        )

        self._lock = threading.RLock()
        self._listeners: List[EventListener] = []
        self._lock_depth = 0
        self._pending_events: List[SessionEvent] = []

        self._root: Optional[Path] = None
        self._writer: Optional[ProgressWriter] = None
        self._offer: Optional[ResumeOffer] = None
        self._catalog: Catalog = ()
        self._index = -1
        self._phase = Phase.IDLE
        self._position = 0.0
        self._duration = 0.0
        self._settings = Settings()
        self._transcode_progress: Optional[int] = None
        self._autoplay = False
        self._pending_start = 0.0
        self._generation = 0
        self._cancel_event: Optional[threading.Event] = None
        self._source: Optional[PlayableSource] = None
        self._closed = False

    def __enter__(self) -> "PlaybackSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._locked():
            return SessionState(
                catalog=self._catalog,
                current_index=self._index,
                phase=self._phase,
                position=self._position,
                duration=self._duration,
                settings=self._settings,
                transcode_progress=self._transcode_progress,
            )

    @property
    def root(self) -> Optional[Path]:
        return self._root

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def position(self) -> float:
        return self._position

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def current_item(self) -> Optional[MediaItem]:
        with self._locked():
            return self._current_item_locked()

    @property
    def resume_offer(self) -> Optional[ResumeOffer]:
        return self._offer

    def add_listener(self, listener: EventListener):
        with self._locked():
            self._listeners.append(listener)

    def remove_listener(self, listener: EventListener):
        with self._locked():
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Folder lifecycle
    # ------------------------------------------------------------------

    def open_folder(self, root: Path) -> Optional[ResumeOffer]:
        """
        Scans `root` and makes it the session's folder.

        The scan and the progress read happen before the session lock is taken,
        so an item that is already playing keeps responding meanwhile. The
        previous folder, if any, is flushed and closed when the new catalog is
        swapped in.

        Args:
            root: The folder to open.

        Returns:
            The resume offer, already counting down, when the folder has saved
            progress naming an item that still exists. None otherwise.

        Raises:
            NotADirectoryError: If `root` is not a directory.
        """
        scan = self.catalog_builder.build(Path(root))
        store = ProgressStore(scan.root, self.storage)
        try:
            saved = store.read()
        except PermissionRevokedException as e:
            logger.warning(f"Saved progress is not readable: {e}")
            self._emit(events.PERMISSION_REVOKED, root=scan.root, error=e)
            saved = None

        with self._locked():
            if self._closed:
                logger.debug(f"Session closed while scanning {scan.root}, discarding the scan.")
                return None
            offer = self._install_folder_locked(scan, store, saved)
        if offer is not None:
            offer.start()
        return offer

    def open_folder_async(self, root: Path) -> Future:
        """Runs `open_folder` on the worker executor."""
        return self._executor.submit(self.open_folder, root)

    def reopen_remembered(self) -> bool:
        """
        Reopens the folder `FolderMemory` recalls, if access is still granted.

        Returns:
            True when a remembered folder was opened.
        """
        root = self.folder_memory.recall()
        if root is None:
            return False
        if not self.permission_checker.has_access(root):
            logger.warning(f"Access to remembered folder {root} is no longer granted.")
            self._emit(events.PERMISSION_REVOKED, root=root)
            return False
        self.open_folder(root)
        return True

    def change_folder(self):
        """Flushes progress, forgets the folder and returns to the pre-folder state."""
        with self._locked():
            root = self._root
            self._close_folder_locked()
            self._settings = Settings()
            self.folder_memory.forget()
        logger.info(f"Closed folder {root}" if root else "No folder was open.")
        self._emit(events.FOLDER_CLOSED, root=root)

    def close(self):
        """Tears the session down. Progress is flushed first."""
        with self._locked():
            if self._closed:
                return
            self._close_folder_locked()
            self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Session closed.")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def select(
        self,
        target: Union[MediaItem, int],
        autoplay: bool = True,
        start_position: float = 0.0,
    ):
        """
        Selects an item and starts loading it.

        Args:
            target: A catalog item or its index.
            autoplay: Start playing once loaded; otherwise stay paused.
            start_position: Where playback starts once loaded.

        Raises:
            InvalidSelectionException: If `target` is not in the catalog.
        """
        with self._locked():
            self._select_locked(self._resolve_index(target), autoplay, start_position)

    def pause(self) -> bool:
        with self._locked():
            if self._phase is not Phase.PLAYING:
                return False
            self.render.pause()
            self._set_phase(Phase.PAUSED)
            writer = self._writer
        if writer is not None:
            writer.schedule_settled(lambda: self._write_settled(writer))
        return True

    def resume(self) -> bool:
        with self._locked():
            if self._phase is not Phase.PAUSED:
                return False
            self.render.play()
            self._set_phase(Phase.PLAYING)
            return True

    def toggle_play(self) -> bool:
        with self._locked():
            if self._phase is Phase.PLAYING:
                return self.pause()
            if self._phase is Phase.PAUSED:
                return self.resume()
            if self._phase in (Phase.IDLE, Phase.ENDED) and self._catalog:
                # Nothing loaded: start from the current item, or the first one.
                self._select_locked(max(self._index, 0), autoplay=True, start_position=0.0)
                return True
            return False

    def seek(self, position: float) -> bool:
        with self._locked():
            position = max(0.0, float(position))
            if self._phase in _LOADING_PHASES:
                self._pending_start = position
                return True
            if self._phase not in _LOADED_PHASES:
                return False
            if self._duration > 0:
                position = min(position, self._duration)
            self._position = position
            self.render.seek(position)
            return True

    def seek_relative(self, delta: float = SEEK_STEP_SECONDS) -> bool:
        with self._locked():
            base = self._pending_start if self._phase in _LOADING_PHASES else self._position
            return self.seek(base + delta)

    def next(self):
        with self._locked():
            self._advance_locked()

    def prev(self):
        with self._locked():
            count = len(self._catalog)
            if count == 0:
                return
            if self._index >= 0 and self._position > PREV_RESTART_THRESHOLD_SECONDS:
                if self._phase in _LOADED_PHASES:
                    self._position = 0.0
                    self.render.seek(0.0)
                else:
                    self._select_locked(self._index, autoplay=True, start_position=0.0)
                return
            index = self._index - 1 if self._index > 0 else count - 1
            self._select_locked(index, autoplay=True, start_position=0.0)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_volume(self, volume: float) -> Settings:
        return self._update_settings(volume=volume)

    def step_volume(self, delta: float = VOLUME_STEP) -> Settings:
        with self._locked():
            return self._update_settings(volume=round(self._settings.volume + delta, 4))

    def set_speed(self, rate: float) -> Settings:
        if rate not in PLAYBACK_RATES:
            raise ValueError(f"Unsupported playback rate {rate!r}; expected one of {PLAYBACK_RATES}")
        return self._update_settings(playback_rate=rate)

    def cycle_speed(self) -> Settings:
        with self._locked():
            rates = list(PLAYBACK_RATES)
            current = self._settings.playback_rate
            index = rates.index(current) if current in rates else -1
            return self._update_settings(playback_rate=rates[(index + 1) % len(rates)])

    def toggle_shuffle(self) -> Settings:
        with self._locked():
            return self._update_settings(shuffle=not self._settings.shuffle)

    def toggle_loop(self) -> Settings:
        with self._locked():
            return self._update_settings(loop=not self._settings.loop)

    def toggle_subtitles(self) -> Settings:
        with self._locked():
            subtitles = self._settings.subtitles
            return self._update_settings(
                subtitles=SubtitleSettings(enabled=not subtitles.enabled, font_size=subtitles.font_size)
            )

    def set_subtitle_font_size(self, font_size: int) -> Settings:
        with self._locked():
            subtitles = self._settings.subtitles
            return self._update_settings(
                subtitles=SubtitleSettings(enabled=subtitles.enabled, font_size=clamp_font_size(font_size))
            )

    def cycle_aspect_ratio(self) -> Settings:
        with self._locked():
            return self._update_settings(aspect_ratio=self._settings.aspect_ratio.next())

    # ------------------------------------------------------------------
    # Render callbacks
    # ------------------------------------------------------------------

    def report_position(self, position: float):
        pending = None
        with self._locked():
            if self._phase not in _LOADED_PHASES:
                return
            self._position = max(0.0, float(position))
            if (
                self._phase is Phase.PLAYING
                and self._writer is not None
                and self._writer.position_write_due()
            ):
                pending = self._stamp_progress_locked()
            writer = self._writer
        if writer is not None:
            writer.commit(pending)

    def report_duration(self, duration: float):
        with self._locked():
            if self._index < 0:
                return
            self._duration = max(0.0, float(duration))

    def report_ended(self):
        with self._locked():
            if self._phase not in _LOADED_PHASES:
                return
            self._set_phase(Phase.ENDED)
            self._advance_locked()

    def report_error(self, message: str = ""):
        with self._locked():
            item = self._current_item_locked()
            if item is None:
                return
            logger.error(f"Renderer rejected '{item.relative_path}': {message}")
            self._set_phase(Phase.ERROR)
            self._emit(
                events.MEDIA_UNPLAYABLE,
                item=item,
                error=MediaUnplayableException(message or f"Cannot play {item.relative_path}"),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _install_folder_locked(
        self, scan: ScanResult, store: ProgressStore, saved: Optional[PersistedProgress]
    ) -> Optional[ResumeOffer]:
        self._close_folder_locked()

        self._root = scan.root
        self._catalog = scan.catalog
        self._settings = Settings()
        self._writer = ProgressWriter(
            store,
            clock=self._clock,
            timer_factory=self._timer_factory,
            throttle_seconds=self._throttle_seconds,
            settle_seconds=self._settle_seconds,
            on_error=self._on_persistence_error,
        )
        self.folder_memory.remember(scan.root)
        logger.info(f"Opened folder {scan.root} with {len(scan.catalog)} item(s).")
        self._emit(events.CATALOG_CHANGED, root=scan.root, catalog=scan.catalog)
        if scan.degraded:
            self._emit(
                events.SCAN_DEGRADED,
                root=scan.root,
                failed_dirs=scan.failed_dirs,
                error=ScanDegradedException(scan.failed_dirs),
            )

        if saved is None:
            return None
        try:
            item = scan.require(saved.last_file)
        except ResumeTargetStaleException as e:
            logger.debug(f"Ignoring saved progress: {e}")
            return None

        self._settings = saved.settings
        self.render.apply_settings(self._settings)
        self._offer = ResumeOffer(
            saved,
            item,
            on_resolved=self._on_resume_resolved,
            countdown_seconds=self._resume_countdown_seconds,
            timer_factory=self._timer_factory,
            clock=self._clock,
        )
        self._emit(events.RESUME_OFFERED, offer=self._offer)
        return self._offer

    def _close_folder_locked(self):
        offer, self._offer = self._offer, None
        if offer is not None:
            offer.cancel()

        writer, self._writer = self._writer, None
        if writer is not None:
            writer.cancel_scheduled()
            writer.commit(self._stamp_progress_locked(writer))
            writer.close()

        self._stop_locked()
        self._root = None
        self._catalog = ()

    def _on_resume_resolved(self, offer: ResumeOffer, choice: ResumeChoice):
        with self._locked():
            if self._offer is not offer:
                return
            self._offer = None
            self._emit(events.RESUME_RESOLVED, offer=offer, choice=choice)
            if choice is ResumeChoice.RESUME:
                try:
                    index = self._catalog.index(offer.item)
                except ValueError:
                    logger.debug(f"Resume target '{offer.item.relative_path}' vanished, staying idle.")
                    return
                self._select_locked(index, autoplay=True, start_position=offer.position)
                return
            if choice is ResumeChoice.DISMISS:
                logger.info("Resume dismissed, keeping saved settings.")
                return
        self.change_folder()

    def _resolve_index(self, target: Union[MediaItem, int]) -> int:
        if isinstance(target, MediaItem):
            try:
                return self._catalog.index(target)
            except ValueError:
                raise InvalidSelectionException(
                    f"'{target.relative_path}' is not in the current catalog."
                ) from None
        index = int(target)
        if not 0 <= index < len(self._catalog):
            raise InvalidSelectionException(
                f"Index {index} is out of range for a catalog of {len(self._catalog)} item(s)."
            )
        return index

    def _select_locked(self, index: int, autoplay: bool, start_position: float):
        item = self._catalog[index]
        self._supersede_load_locked()
        self.render.stop()
        self._release_source_locked()

        self._index = index
        self._position = 0.0
        self._duration = 0.0
        self._pending_start = max(0.0, float(start_position))
        self._autoplay = autoplay
        self._transcode_progress = None
        self._set_phase(Phase.LOADING)

        if self._closed:
            return
        generation = self._generation
        cancel_event = threading.Event()
        self._cancel_event = cancel_event
        logger.debug(f"Loading '{item.relative_path}' (generation {generation})")
        self._executor.submit(self._load, generation, item, cancel_event)

    def _advance_locked(self):
        count = len(self._catalog)
        if count == 0:
            return
        if self._settings.shuffle:
            self._select_locked(self._shuffled_index(count), autoplay=True, start_position=0.0)
        elif self._index + 1 < count:
            self._select_locked(self._index + 1, autoplay=True, start_position=0.0)
        elif self._settings.loop:
            self._select_locked(0, autoplay=True, start_position=0.0)
        else:
            logger.debug("Reached the end of the catalog.")
            self._stop_locked()

    def _shuffled_index(self, count: int) -> int:
        if self.shuffle_policy is ShufflePolicy.AVOID_REPEAT and count > 1 and self._index >= 0:
            index = self._rng.randrange(count - 1)
            return index + 1 if index >= self._index else index
        return self._rng.randrange(count)

    def _stop_locked(self):
        self._supersede_load_locked()
        self.render.stop()
        self._release_source_locked()
        self._index = -1
        self._position = 0.0
        self._duration = 0.0
        self._pending_start = 0.0
        self._transcode_progress = None
        self._set_phase(Phase.IDLE)

    def _supersede_load_locked(self):
        self._generation += 1
        if self._cancel_event is not None:
            self._cancel_event.set()
            self._cancel_event = None

    def _release_source_locked(self):
        source, self._source = self._source, None
        if source is not None:
            source.release()

    def _load(self, generation: int, item: MediaItem, cancel_event: threading.Event):
        """Worker: acquires the item and its subtitles and makes it playable."""
        try:
            path = self.storage.acquire(item.path)
            subtitles = self._acquire_subtitles(item)
            source = self.pipeline.ensure_playable(
                path,
                on_progress=lambda percent: self._on_transcode_progress(generation, percent),
                cancel_event=cancel_event,
            )
        except PermissionRevokedException as e:
            self._on_load_failed(generation, item, e, events.PERMISSION_REVOKED)
            return
        except MediaUnplayableException as e:
            self._on_load_failed(generation, item, e, events.MEDIA_UNPLAYABLE)
            return
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected failure loading '{item.relative_path}'")
            self._on_load_failed(generation, item, e, events.MEDIA_UNPLAYABLE)
            return
        self._on_load_ready(generation, item, source, subtitles)

    def _acquire_subtitles(self, item: MediaItem) -> List[Path]:
        subtitles = []
        for subtitle in item.subtitles:
            try:
                subtitles.append(self.storage.acquire(subtitle.path))
            except MediaUnplayableException as e:
                logger.warning(f"Skipping subtitle {subtitle.relative_path}: {e}")
        return subtitles

    def _on_transcode_progress(self, generation: int, percent: int):
        with self._locked():
            if generation != self._generation or self._phase not in _LOADING_PHASES:
                return
            self._transcode_progress = percent
            self._set_phase(Phase.TRANSCODING)
            self._emit(events.TRANSCODE_PROGRESS, item=self._current_item_locked(), percent=percent)

    def _on_load_ready(self, generation, item, source: PlayableSource, subtitles: List[Path]):
        with self._locked():
            if generation != self._generation or self._closed:
                logger.debug(f"Discarding superseded load of '{item.relative_path}'")
                source.release()
                return
            self._source = source
            start = self._pending_start
            self._position = start
            self._pending_start = 0.0
            self._transcode_progress = None
            self.render.load(source, item, subtitles, start, self._settings, self._autoplay)
            self._set_phase(Phase.PLAYING if self._autoplay else Phase.PAUSED)

    def _on_load_failed(self, generation, item, error: Exception, event_name: str):
        with self._locked():
            if generation != self._generation:
                logger.debug(f"Ignoring failure of superseded load of '{item.relative_path}': {error}")
                return
            logger.error(f"Cannot load '{item.relative_path}': {error}")
            self._set_phase(Phase.ERROR)
            self._emit(event_name, item=item, error=error)

    def _update_settings(self, **changes) -> Settings:
        with self._locked():
            settings = self._settings.with_changes(**changes)
            if settings == self._settings:
                return settings
            self._settings = settings
            self.render.apply_settings(settings)
            logger.debug(f"Settings changed: {', '.join(f'{k}={v}' for k, v in changes.items())}")
            pending = self._stamp_progress_locked()
            writer = self._writer
        if writer is not None:
            writer.commit(pending)
        return settings

    def _write_settled(self, writer: ProgressWriter):
        with self._locked():
            if self._writer is not writer:
                return
            pending = self._stamp_progress_locked()
        writer.commit(pending)

    def _stamp_progress_locked(self, writer: Optional[ProgressWriter] = None) -> Optional[StampedProgress]:
        writer = writer or self._writer
        item = self._current_item_locked()
        if writer is None or item is None:
            return None
        position = self._pending_start if self._phase in _LOADING_PHASES else self._position
        return writer.stamp(PersistedProgress(item.relative_path, position, self._settings))

    def _current_item_locked(self) -> Optional[MediaItem]:
        if 0 <= self._index < len(self._catalog):
            return self._catalog[self._index]
        return None

    def _set_phase(self, phase: Phase):
        previous = self._phase
        if previous is phase:
            return
        self._phase = phase
        logger.debug(f"Phase {previous.value} -> {phase.value}")
        self._emit(events.PHASE_CHANGED, phase=phase, previous=previous)

    def _on_persistence_error(self, error: Exception):
        with self._locked():
            self._emit(events.PERSISTENCE_FAILED, error=error)
            if isinstance(error, PermissionRevokedException):
                self._emit(events.PERMISSION_REVOKED, root=self._root, error=error)

    @contextmanager
    def _locked(self):
        """
        Holds the session lock. Events emitted inside are delivered once the
        outermost `_locked()` block has released the lock, so listeners may
        call back into the session from any thread.
        """
        with self._lock:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
                if self._lock_depth == 0:
                    pending, self._pending_events = self._pending_events, []
                else:
                    pending = []
        self._dispatch(pending)

    def _emit(self, name: str, **data):
        with self._locked():
            self._pending_events.append(SessionEvent(name, data))

    def _dispatch(self, pending: List[SessionEvent]):
        if not pending:
            return
        with self._lock:
            listeners = list(self._listeners)
        for event in pending:
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.opt(exception=e).error(f"Listener failed while handling '{event.name}'")
