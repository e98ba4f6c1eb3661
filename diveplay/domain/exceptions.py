"""
Defines custom exception types for DivePlay.

These exceptions give each failure in the media-session engine a name of its
own, so components can absorb the expected ones (a missing progress file, an
inconclusive probe) at their boundary and report the rest as session events.

All custom exceptions inherit from the base `DivePlayException`.
"""


class DivePlayException(Exception):
    """Base class for all custom exceptions in DivePlay."""

    pass


# --- Storage Exceptions ---
class StorageException(DivePlayException):
    """Base class for failures talking to the storage provider."""

    pass


class PermissionRevokedException(StorageException):
    """
    Raised when read or write access to the session root is denied mid-session.

    The session keeps its in-memory state and reports the condition so the user
    can grant access again.
    """

    pass


# --- Catalog Exceptions ---
class ScanDegradedException(DivePlayException):
    """
    Describes a scan in which one or more subtrees could not be read.

    The catalog is still usable. The scan reports this as data on its result
    rather than raising it; the class exists so the condition can be carried
    in session events and logs under a stable name.
    """

    def __init__(self, failed_dirs):
        self.failed_dirs = tuple(failed_dirs)
        super().__init__(f"{len(self.failed_dirs)} director(ies) could not be read")


# --- Persistence Exceptions ---
class PersistenceException(DivePlayException):
    """Base class for progress persistence failures."""

    pass


class PersistenceWriteFailedException(PersistenceException):
    """
    Raised when the progress file cannot be written.

    Persistence is best-effort: the writer logs this, reports it, and retries on
    the next trigger. Playback never stops because of it.
    """

    pass


class PersistenceReadInvalidException(PersistenceException):
    """
    Raised when the progress file exists but cannot be understood.

    Treated exactly like a missing file by the store.
    """

    pass


# --- Session Exceptions ---
class SessionException(DivePlayException):
    """Base class for invalid use of the session command API."""

    pass


class InvalidSelectionException(SessionException):
    """Raised when `select()` is given an item or index outside the catalog."""

    pass


class ResumeTargetStaleException(SessionException):
    """Raised when saved progress names a file missing from the current catalog."""

    pass


# --- Codec Pipeline Exceptions ---
class CodecException(DivePlayException):
    """Base class for codec compatibility pipeline failures."""

    pass


class EngineUnavailableException(CodecException):
    """Raised when the transcoding engine cannot be loaded or reached."""

    pass


class ProbeFailedException(CodecException):
    """Raised when stream introspection of a media file fails."""

    pass


class TranscodeFailedException(CodecException):
    """Raised when re-encoding a media file fails or produces no output."""

    pass


class TranscodeCancelledException(CodecException):
    """Raised when a transcode is stopped because its load was superseded."""

    pass


# --- Playback Exceptions ---
class MediaUnplayableException(DivePlayException):
    """
    Describes a final stream the native renderer rejected.

    Terminal for that item: the user decides whether to skip.
    """

    pass
