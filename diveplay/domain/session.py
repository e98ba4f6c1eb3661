"""
Session domain models: settings, transport phases and the persisted progress record.

`Settings` and `SessionState` are immutable snapshots; the playback session
replaces them on every mutation, so anything handed out to the render layer or
to the persistence writer can never change underneath its reader.

`PersistedProgress` owns the JSON shape of the progress file. Reading is
lenient: unknown fields are ignored and missing or out-of-range values fall
back to documented defaults, so an old or hand-edited file never crashes the
session.
"""
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..config.media import (
    DEFAULT_PLAYBACK_RATE,
    DEFAULT_SUBTITLE_FONT_SIZE,
    DEFAULT_VOLUME,
    MAX_SUBTITLE_FONT_SIZE,
    MIN_SUBTITLE_FONT_SIZE,
    PLAYBACK_RATES,
)
from .exceptions import PersistenceReadInvalidException
from .media import Catalog, MediaItem


class Phase(str, Enum):
    """Transport phases of the playback state machine."""

    IDLE = "idle"
    LOADING = "loading"
    TRANSCODING = "transcoding"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


class AspectRatio(str, Enum):
    AUTO = "auto"
    CONTAIN = "contain"
    COVER = "cover"
    FILL = "fill"
    WIDE = "16/9"
    STANDARD = "4/3"

    def next(self) -> "AspectRatio":
        members = list(AspectRatio)
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def parse(cls, value: Any) -> "AspectRatio":
        if isinstance(value, str):
            normalized = value.strip().lower().replace(":", "/")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.AUTO


class ShufflePolicy(str, Enum):
    """
    How `next()` picks an index while shuffle is on.

    WITH_REPLACEMENT draws uniformly from the whole catalog, so the current
    item can come up again. AVOID_REPEAT draws from every other item.
    """

    WITH_REPLACEMENT = "with_replacement"
    AVOID_REPEAT = "avoid_repeat"


def clamp_volume(value: Any) -> float:
    try:
        volume = float(value)
    except (TypeError, ValueError):
        return DEFAULT_VOLUME
    if volume != volume:  # NaN
        return DEFAULT_VOLUME
    return max(0.0, min(1.0, volume))


def coerce_playback_rate(value: Any) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return DEFAULT_PLAYBACK_RATE
    return rate if rate in PLAYBACK_RATES else DEFAULT_PLAYBACK_RATE


def clamp_font_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_SUBTITLE_FONT_SIZE
    return max(MIN_SUBTITLE_FONT_SIZE, min(MAX_SUBTITLE_FONT_SIZE, size))


def json_bool(value: Any, default: bool) -> bool:
    """Only real JSON booleans count; a string such as "false" falls back to `default`."""
    return value if isinstance(value, bool) else default


@dataclass(frozen=True)
class SubtitleSettings:
    enabled: bool = True
    font_size: int = DEFAULT_SUBTITLE_FONT_SIZE


@dataclass(frozen=True)
class Settings:
    """User preferences carried by a session and saved with its progress."""

    volume: float = DEFAULT_VOLUME
    playback_rate: float = DEFAULT_PLAYBACK_RATE
    shuffle: bool = False
    loop: bool = False
    subtitles: SubtitleSettings = field(default_factory=SubtitleSettings)
    aspect_ratio: AspectRatio = AspectRatio.AUTO

    def with_changes(self, **changes) -> "Settings":
        if "volume" in changes:
            changes["volume"] = clamp_volume(changes["volume"])
        if "playback_rate" in changes:
            changes["playback_rate"] = coerce_playback_rate(changes["playback_rate"])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volume": self.volume,
            "playbackRate": self.playback_rate,
            "shuffle": self.shuffle,
            "loop": self.loop,
            "subtitles": {
                "enabled": self.subtitles.enabled,
                "fontSize": self.subtitles.font_size,
            },
            "aspectRatio": self.aspect_ratio.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Settings":
        if not isinstance(data, dict):
            return cls()
        subtitles = data.get("subtitles")
        if not isinstance(subtitles, dict):
            subtitles = {}
        return cls(
            volume=clamp_volume(data.get("volume", DEFAULT_VOLUME)),
            playback_rate=coerce_playback_rate(data.get("playbackRate", DEFAULT_PLAYBACK_RATE)),
            shuffle=json_bool(data.get("shuffle"), False),
            loop=json_bool(data.get("loop"), False),
            subtitles=SubtitleSettings(
                enabled=json_bool(subtitles.get("enabled"), True),
                font_size=clamp_font_size(subtitles.get("fontSize", DEFAULT_SUBTITLE_FONT_SIZE)),
            ),
            aspect_ratio=AspectRatio.parse(data.get("aspectRatio")),
        )


@dataclass(frozen=True)
class SessionState:
    """Read-only snapshot of a playback session."""

    catalog: Catalog = ()
    current_index: int = -1
    phase: Phase = Phase.IDLE
    position: float = 0.0
    duration: float = 0.0
    settings: Settings = field(default_factory=Settings)
    transcode_progress: Optional[int] = None

    @property
    def current_item(self) -> Optional[MediaItem]:
        if 0 <= self.current_index < len(self.catalog):
            return self.catalog[self.current_index]
        return None


@dataclass(frozen=True)
class PersistedProgress:
    """The durable per-folder record: last item, last position and settings."""

    last_file: str
    last_position: float = 0.0
    settings: Settings = field(default_factory=Settings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastFile": self.last_file,
            "lastPosition": self.last_position,
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PersistedProgress":
        """
        Builds a record from decoded JSON.

        Raises:
            PersistenceReadInvalidException: If the document is not an object or
                                             names no file to resume.
        """
        if not isinstance(data, dict):
            raise PersistenceReadInvalidException("Progress document is not a JSON object.")
        last_file = data.get("lastFile")
        if not isinstance(last_file, str) or not last_file:
            raise PersistenceReadInvalidException("Progress document has no 'lastFile'.")
        try:
            last_position = max(0.0, float(data.get("lastPosition", 0.0)))
        except (TypeError, ValueError):
            last_position = 0.0
        if not math.isfinite(last_position):
            last_position = 0.0
        return cls(
            last_file=last_file,
            last_position=last_position,
            settings=Settings.from_dict(data.get("settings")),
        )

