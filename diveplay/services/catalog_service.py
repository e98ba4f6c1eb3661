"""
Provides the service that turns a session root into an ordered media catalog.

The scan walks the whole tree, keeps the files whose extension is a recognized
video or audio type, and pairs each of them with the subtitle files that share
its directory and base name. Unreadable subtrees are skipped and listed on the
result so the caller can tell the user that the catalog is partial.
"""

from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from ..config.media import AUDIO_EXTENSIONS, SUBTITLE_EXTENSIONS, VIDEO_EXTENSIONS
from ..domain.exceptions import StorageException
from ..domain.media import MediaItem, MediaKind, ScanResult, SubtitleRef
from ..utils.format_utils import normalize_extensions, to_relative_key
from .storage_service import LocalStorageProvider, StorageProvider


class CatalogBuilder:
    """
    Builds a `ScanResult` for a session root.

    Extension sets are matched by suffix and case-insensitively. When a file's
    extension is in more than one set, video wins over audio, and audio over
    subtitles.

    Attributes:
        storage (StorageProvider): Where directories are enumerated.
        video_extensions (frozenset): Recognized video suffixes, lower-cased.
        audio_extensions (frozenset): Recognized audio suffixes, lower-cased.
        subtitle_extensions (frozenset): Recognized subtitle suffixes, lower-cased.
    """

    def __init__(
        self,
        storage: Optional[StorageProvider] = None,
        video_extensions: Iterable[str] = VIDEO_EXTENSIONS,
        audio_extensions: Iterable[str] = AUDIO_EXTENSIONS,
        subtitle_extensions: Iterable[str] = SUBTITLE_EXTENSIONS,
    ):
        self.storage = storage or LocalStorageProvider()
        self.video_extensions = normalize_extensions(video_extensions)
        self.audio_extensions = normalize_extensions(audio_extensions)
        self.subtitle_extensions = normalize_extensions(subtitle_extensions)

    def classify(self, path: Path) -> Optional[str]:
        suffix = path.suffix.lower()
        if not suffix:
            return None
        if suffix in self.video_extensions:
            return MediaKind.VIDEO.value
        if suffix in self.audio_extensions:
            return MediaKind.AUDIO.value
        if suffix in self.subtitle_extensions:
            return "subtitle"
        return None

    def build(self, root: Path) -> ScanResult:
        """
        Scans `root` recursively and returns the sorted catalog.

        Args:
            root: The session root.

        Returns:
            A `ScanResult` whose catalog is sorted by relative path. If any
            directory could not be read, `failed_dirs` lists it and `degraded`
            is True.

        Raises:
            NotADirectoryError: If `root` is not a directory.
        """
        root = root.resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Session root is not a directory: {root}")

        media_files: List[Tuple[Path, str]] = []
        subtitles_by_key: Dict[Tuple[Path, str], List[Path]] = defaultdict(list)
        failed_dirs: List[Path] = []

        self._walk(root, media_files, subtitles_by_key, failed_dirs)

        items = []
        for path, kind in media_files:
            paired = sorted(subtitles_by_key.get((path.parent, path.stem), []))
            items.append(
                MediaItem(
                    name=path.name,
                    relative_path=to_relative_key(path, root),
                    path=path,
                    kind=MediaKind(kind),
                    subtitles=tuple(
                        SubtitleRef(to_relative_key(s, root), s) for s in paired
                    ),
                )
            )
        catalog = tuple(sorted(items, key=lambda i: i.relative_path))

        if failed_dirs:
            logger.warning(
                f"Scan of {root} is partial: {len(failed_dirs)} director(ies) could not be read."
            )
        logger.info(
            f"Scanned {root}: {len(catalog)} media file(s), "
            f"{sum(len(i.subtitles) for i in catalog)} paired subtitle(s)."
        )
        return ScanResult(root=root, catalog=catalog, failed_dirs=tuple(sorted(failed_dirs)))

    def _walk(self, directory, media_files, subtitles_by_key, failed_dirs):
        try:
            entries = self.storage.list_children(directory)
        except (OSError, StorageException) as e:
            logger.warning(f"Cannot read directory {directory}, skipping it: {e}")
            failed_dirs.append(directory)
            return

        for entry in entries:
            if entry.is_dir:
                self._walk(entry.path, media_files, subtitles_by_key, failed_dirs)
                continue
            kind = self.classify(entry.path)
            if kind is None:
                continue
            if kind == "subtitle":
                subtitles_by_key[(entry.path.parent, entry.path.stem)].append(entry.path)
            else:
                media_files.append((entry.path, kind))
