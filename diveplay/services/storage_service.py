"""
Storage collaborators: where catalogs are read from and progress is written to.

The session never touches the filesystem directly. It goes through a
`StorageProvider` (enumerate, read, replace), a `PermissionChecker` (is access
to a remembered folder still granted) and a `FolderMemory` (which folder was
open last). The local implementations below back all three with the host
filesystem; other backends only need to honour the same contracts.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterator, List, NamedTuple, Optional, TextIO

from loguru import logger

from ..domain.exceptions import MediaUnplayableException, PermissionRevokedException


class StorageEntry(NamedTuple):
    name: str
    path: Path
    is_dir: bool


class StorageProvider(ABC):
    """Abstract Base Class for the storage a session root lives on."""

    @abstractmethod
    def list_children(self, directory: Path) -> List[StorageEntry]:
        """
        Lists the direct children of `directory`.

        Raises:
            OSError: If the directory cannot be enumerated.
        """
        pass

    @abstractmethod
    def open_read(self, path: Path) -> BinaryIO:
        """
        Opens a byte stream for reading.

        Raises:
            FileNotFoundError: If the file does not exist.
            PermissionRevokedException: If access has been denied.
        """
        pass

    @abstractmethod
    def open_replace(self, path: Path) -> ContextManager[TextIO]:
        """
        Context manager yielding a text stream whose content replaces `path`.

        Readers see either the old content or the complete new content, never a
        mix. The write lock is released on every exit path; if the body raises,
        the old content is kept.

        Raises:
            PermissionRevokedException: If the folder is no longer writable.
        """
        pass

    def acquire(self, path: Path) -> Path:
        """
        Makes sure the byte source behind `path` can be opened and returns it.

        Raises:
            MediaUnplayableException: If the file disappeared since the scan.
            PermissionRevokedException: If access has been denied.
        """
        try:
            with self.open_read(path):
                pass
        except FileNotFoundError as e:
            raise MediaUnplayableException(f"Media file is gone: {path}") from e
        return path


class LocalStorageProvider(StorageProvider):
    """StorageProvider backed by the local filesystem."""

    def list_children(self, directory: Path) -> List[StorageEntry]:
        entries = []
        with os.scandir(directory) as it:
            for entry in it:
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError:
                    is_dir = False
                entries.append(StorageEntry(entry.name, Path(entry.path), is_dir))
        return entries

    def open_read(self, path: Path) -> BinaryIO:
        try:
            return path.open("rb")
        except PermissionError as e:
            raise PermissionRevokedException(f"Read access denied: {path}") from e

    @contextmanager
    def open_replace(self, path: Path) -> Iterator[TextIO]:
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
        except PermissionError as e:
            raise PermissionRevokedException(f"Write access denied: {path.parent}") from e

        temp_path = Path(temp_name)
        committed = False
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
            committed = True
        except PermissionError as e:
            raise PermissionRevokedException(f"Write access denied: {path}") from e
        finally:
            if not committed:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.debug(f"Could not remove temporary file {temp_path}: {e}")


class PermissionChecker(ABC):
    """Abstract Base Class answering whether a remembered folder is still usable."""

    @abstractmethod
    def has_access(self, root: Path) -> bool:
        pass


class LocalPermissionChecker(PermissionChecker):
    """Read/write access check against the local filesystem."""

    def has_access(self, root: Path) -> bool:
        return root.is_dir() and os.access(root, os.R_OK | os.W_OK | os.X_OK)


class FolderMemory(ABC):
    """Abstract Base Class remembering the last opened session root."""

    @abstractmethod
    def remember(self, root: Path) -> None:
        pass

    @abstractmethod
    def recall(self) -> Optional[Path]:
        pass

    @abstractmethod
    def forget(self) -> None:
        pass


class InMemoryFolderMemory(FolderMemory):
    """FolderMemory that lasts for the lifetime of the process."""

    def __init__(self, root: Optional[Path] = None):
        self._root = root

    def remember(self, root: Path) -> None:
        self._root = root

    def recall(self) -> Optional[Path]:
        return self._root

    def forget(self) -> None:
        self._root = None
