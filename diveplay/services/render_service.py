"""
The render surface: whatever actually decodes and shows the media.

The playback session drives a `RenderSurface` and the surface reports back
through the session's `report_*` methods (position ticks, duration, end of
stream, decode errors). A GUI supplies its own surface; `NullRenderSurface`
is the headless one used by the command-line runner and by tests.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from ..domain.media import MediaItem, PlayableSource
from ..domain.session import Settings
from ..utils.format_utils import format_time


class RenderSurface(ABC):
    """Abstract Base Class for a renderer the session can drive."""

    @abstractmethod
    def load(
        self,
        source: PlayableSource,
        item: MediaItem,
        subtitles: Sequence[Path],
        start_position: float,
        settings: Settings,
        autoplay: bool,
    ) -> None:
        """Loads a new source, replacing any current one."""
        pass

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, position: float) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Unloads the current source. The session may release it afterwards."""
        pass

    @abstractmethod
    def apply_settings(self, settings: Settings) -> None:
        """Applies volume, rate, aspect ratio and subtitle preferences."""
        pass


class NullRenderSurface(RenderSurface):
    """
    RenderSurface that renders nothing and only logs what it is asked to do.

    It remembers the last call of each kind so callers can inspect it.
    """

    def __init__(self):
        self.source: Optional[PlayableSource] = None
        self.item: Optional[MediaItem] = None
        self.position = 0.0
        self.playing = False
        self.settings = Settings()

    def load(self, source, item, subtitles, start_position, settings, autoplay):
        self.source = source
        self.item = item
        self.position = start_position
        self.playing = autoplay
        self.settings = settings
        logger.info(
            f"Loaded '{item.relative_path}'"
            f"{' (transcoded)' if source.was_transcoded else ''} at {format_time(start_position)}"
            f"{f', {len(subtitles)} subtitle file(s)' if subtitles else ''}"
        )

    def play(self):
        self.playing = True
        logger.debug("Render: play")

    def pause(self):
        self.playing = False
        logger.debug("Render: pause")

    def seek(self, position):
        self.position = position
        logger.debug(f"Render: seek to {format_time(position)}")

    def stop(self):
        self.source = None
        self.item = None
        self.playing = False
        logger.debug("Render: stop")

    def apply_settings(self, settings):
        self.settings = settings
        logger.debug(
            f"Render: volume={settings.volume:.2f} rate={settings.playback_rate:g}x "
            f"aspect={settings.aspect_ratio.value} subtitles={'on' if settings.subtitles.enabled else 'off'}"
        )
