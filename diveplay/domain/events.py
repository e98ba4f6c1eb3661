"""
Session events.

Conditions that need a user decision (an unreadable subtree, a file the
renderer rejects, lost folder access) are reported to the UI as events
instead of exceptions, alongside plain notifications such as phase changes
and transcode progress.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

PHASE_CHANGED = "phase_changed"
CATALOG_CHANGED = "catalog_changed"
SCAN_DEGRADED = "scan_degraded"
RESUME_OFFERED = "resume_offered"
RESUME_RESOLVED = "resume_resolved"
TRANSCODE_PROGRESS = "transcode_progress"
MEDIA_UNPLAYABLE = "media_unplayable"
PERMISSION_REVOKED = "permission_revoked"
PERSISTENCE_FAILED = "persistence_failed"
FOLDER_CLOSED = "folder_closed"


@dataclass(frozen=True)
class SessionEvent:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[SessionEvent], None]
