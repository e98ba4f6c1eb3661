"""
Media domain models: catalog items, scan results and probed stream metadata.

`MediaItem` is the unit the playback session works with. It is immutable; a
re-scan produces a whole new catalog instead of patching items in place.
`StreamInfo` and `ProbeResult` are the typed view of ffprobe's JSON output that
the codec compatibility pipeline decides on.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from ..config.media import (
    COMPATIBLE_DTS_PROFILES,
    INCOMPATIBLE_AUDIO_CODECS,
    INCOMPATIBLE_VIDEO_CODECS,
)
from .exceptions import ResumeTargetStaleException


class MediaKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class SubtitleRef:
    """An external subtitle file paired with a media item."""

    relative_path: str
    path: Path


@dataclass(frozen=True)
class MediaItem:
    """
    One playable file of a catalog.

    Attributes:
        name: Display name (the file name).
        relative_path: Path relative to the session root, forward-slash separated.
                       This is the item's identity within a session.
        path: Absolute path to the underlying byte source.
        kind: Whether the file is video or audio.
        subtitles: Subtitle files sharing the item's directory and base name.
    """

    name: str
    relative_path: str
    path: Path
    kind: MediaKind
    subtitles: Tuple[SubtitleRef, ...] = ()

    @property
    def is_video(self) -> bool:
        return self.kind is MediaKind.VIDEO


# An ordered, immutable sequence of items sorted by relative path.
Catalog = Tuple[MediaItem, ...]


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one catalog scan. `failed_dirs` lists the unreadable subtrees."""

    root: Path
    catalog: Catalog
    failed_dirs: Tuple[Path, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.failed_dirs)

    def find(self, relative_path: str) -> Optional[MediaItem]:
        return next((i for i in self.catalog if i.relative_path == relative_path), None)

    def require(self, relative_path: str) -> MediaItem:
        item = self.find(relative_path)
        if item is None:
            raise ResumeTargetStaleException(
                f"'{relative_path}' is not in the catalog of {self.root}"
            )
        return item


@dataclass(frozen=True)
class StreamInfo:
    """A single stream descriptor taken from ffprobe output."""

    index: int
    codec_type: str
    codec_name: str = ""
    profile: str = ""
    channels: int = 0

    @classmethod
    def from_probe(cls, stream: Dict[str, Any]) -> "StreamInfo":
        try:
            channels = int(stream.get("channels") or 0)
        except (TypeError, ValueError):
            channels = 0
        return cls(
            index=int(stream.get("index", 0)),
            codec_type=str(stream.get("codec_type", "")).lower(),
            codec_name=str(stream.get("codec_name", "")).lower(),
            profile=str(stream.get("profile", "")),
            channels=channels,
        )

    @property
    def needs_video_transcode(self) -> bool:
        return self.codec_type == "video" and self.codec_name in INCOMPATIBLE_VIDEO_CODECS

    @property
    def needs_audio_transcode(self) -> bool:
        if self.codec_type != "audio" or self.codec_name not in INCOMPATIBLE_AUDIO_CODECS:
            return False
        # DTS-HD MA decodes natively; core DTS and the rest do not.
        return not (
            self.codec_name == "dts"
            and self.profile.lower() in COMPATIBLE_DTS_PROFILES
        )


@dataclass(frozen=True)
class ProbeResult:
    """
    The typed result of probing one media file.

    `duration` comes from the container's format section and is 0.0 when
    ffprobe could not determine it; progress reporting degrades to start/end
    signals in that case.
    """

    streams: Tuple[StreamInfo, ...] = ()
    duration: float = 0.0

    @classmethod
    def from_probe(cls, probe: Dict[str, Any]) -> "ProbeResult":
        streams = tuple(StreamInfo.from_probe(s) for s in probe.get("streams", []))
        duration = 0.0
        raw_duration = (probe.get("format") or {}).get("duration")
        if raw_duration is not None:
            try:
                duration = max(0.0, float(raw_duration))
            except (TypeError, ValueError):
                logger.warning(f"Could not parse probe duration: {raw_duration!r}")
        return cls(streams=streams, duration=duration)

    @property
    def needs_video_transcode(self) -> bool:
        return any(s.needs_video_transcode for s in self.streams)

    @property
    def needs_audio_transcode(self) -> bool:
        return any(s.needs_audio_transcode for s in self.streams)

    @property
    def needs_transcode(self) -> bool:
        return self.needs_video_transcode or self.needs_audio_transcode


@dataclass
class PlayableSource:
    """
    What the render layer is given to play.

    When `was_transcoded` is True the file at `path` was produced by the codec
    pipeline and belongs to whoever holds this object; `release()` deletes it.
    Original files are never touched.
    """

    path: Path
    was_transcoded: bool = False
    _released: bool = field(default=False, repr=False)

    def release(self):
        if self._released or not self.was_transcoded:
            return
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
            logger.debug(f"Released transcoded output {self.path}")
        except OSError as e:
            logger.warning(f"Could not remove transcoded output {self.path}: {e}")

    def __enter__(self) -> "PlayableSource":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
