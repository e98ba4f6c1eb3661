"""
The resume offer shown after a folder with saved progress is opened.

An offer names the saved item and position and waits for the user. Resume,
dismiss and "choose another folder" resolve it at once; if nobody answers
before the countdown runs out it resumes on its own. Whichever comes first
wins and the others become no-ops.
"""

import math
import threading
import time
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from ..config.common import RESUME_COUNTDOWN_SECONDS
from ..domain.media import MediaItem
from ..domain.session import PersistedProgress


class ResumeChoice(str, Enum):
    RESUME = "resume"
    DISMISS = "dismiss"
    NEW_FOLDER = "new_folder"


class ResumeDecision:
    """
    A one-shot, thread-safe decision slot.

    `resolve()` stores the first choice it is given and runs `on_resolved`
    exactly once. Every later call returns False without side effects, whether
    it comes from the countdown timer or from the user.
    """

    def __init__(self, on_resolved: Optional[Callable[["ResumeChoice"], None]] = None):
        self._on_resolved = on_resolved
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._choice: Optional[ResumeChoice] = None

    @property
    def resolved(self) -> bool:
        return self._choice is not None

    @property
    def choice(self) -> Optional[ResumeChoice]:
        return self._choice

    def resolve(self, choice: ResumeChoice) -> bool:
        with self._lock:
            if self._choice is not None:
                return False
            self._choice = ResumeChoice(choice)
        try:
            if self._on_resolved:
                self._on_resolved(self._choice)
        finally:
            self._done.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)


class ResumeOffer:
    """
    A pending "resume where you left off?" prompt.

    Attributes:
        progress (PersistedProgress): The saved record the offer is built from.
        item (MediaItem): The catalog item `progress.last_file` names.
        countdown_seconds (float): Delay before the offer resumes by itself.
    """

    def __init__(
        self,
        progress: PersistedProgress,
        item: MediaItem,
        on_resolved: Callable[["ResumeOffer", ResumeChoice], None],
        countdown_seconds: float = RESUME_COUNTDOWN_SECONDS,
        timer_factory=threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.progress = progress
        self.item = item
        self.countdown_seconds = countdown_seconds
        self._timer_factory = timer_factory
        self._clock = clock
        self._started_at: Optional[float] = None
        self._timer = None
        self._callback = on_resolved
        self.decision = ResumeDecision(self._decided)

    @property
    def position(self) -> float:
        return self.progress.last_position

    @property
    def resolved(self) -> bool:
        return self.decision.resolved

    @property
    def choice(self) -> Optional[ResumeChoice]:
        return self.decision.choice

    def start(self):
        """Starts the countdown. Does nothing if the offer is already resolved."""
        if self.decision.resolved or self._timer is not None:
            return
        self._started_at = self._clock()
        self._timer = self._timer_factory(self.countdown_seconds, self._expire)
        self._timer.daemon = True
        self._timer.start()
        logger.info(
            f"Offering to resume '{self.item.relative_path}' at {self.position:.1f}s "
            f"(auto-resume in {self.countdown_seconds:g}s)."
        )

    def remaining_seconds(self) -> int:
        """Whole seconds left on the countdown, for display."""
        if self.decision.resolved:
            return 0
        if self._started_at is None:
            return int(math.ceil(self.countdown_seconds))
        elapsed = self._clock() - self._started_at
        return max(0, int(math.ceil(self.countdown_seconds - elapsed)))

    def resume(self) -> bool:
        return self.decision.resolve(ResumeChoice.RESUME)

    def dismiss(self) -> bool:
        return self.decision.resolve(ResumeChoice.DISMISS)

    def choose_new_folder(self) -> bool:
        return self.decision.resolve(ResumeChoice.NEW_FOLDER)

    def cancel(self) -> bool:
        """Withdraws the offer without acting on it (the folder is being closed)."""
        return self.decision.resolve(ResumeChoice.DISMISS)

    def _expire(self):
        if self.decision.resolve(ResumeChoice.RESUME):
            logger.info("Resume countdown elapsed, resuming.")

    def _decided(self, choice: ResumeChoice):
        if self._timer is not None:
            self._timer.cancel()
        logger.debug(f"Resume offer resolved: {choice.value}")
        self._callback(self, choice)
