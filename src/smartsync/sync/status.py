"""Operation status: logical states, their presentation, and the guard.

``Status`` is what the orchestrator locks on. ``STATUS_ITEMS`` is only
for display and is never consulted for transitions.

``StatusMachine.try_acquire()`` checks the current status and moves to
the target status in one synchronous call. It never awaits, so no other
coroutine can slip in between the check and the set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

logger = logging.getLogger(__name__)


class Status(str, Enum):
    IDLE = "idle"
    TESTING = "testing"
    CHECKING = "checking"
    SYNCING = "syncing"
    SAVING = "saving"
    OFFLINE = "offline"
    ERROR = "error"
    PAUSED = "paused"


# Statuses from which a new operation may start
READY_STATUSES = frozenset({Status.IDLE, Status.OFFLINE})


@dataclass(frozen=True, slots=True)
class StatusItem:
    label: str
    emoji: str
    icon: str
    color: str


STATUS_ITEMS: dict[Status, StatusItem] = {
    Status.IDLE: StatusItem("Ready", "✔️", "circle-check-big", "accent"),
    Status.TESTING: StatusItem(
        "Testing server connection ...", "🧪", "flask", "#0000FF"
    ),
    Status.CHECKING: StatusItem("Checking files ...", "🔎", "search", "accent"),
    Status.SYNCING: StatusItem(
        "Synchronising files ...", "⏳", "refresh-ccw", "accent"
    ),
    Status.SAVING: StatusItem(
        "Saving current file state to disk ...", "💾", "save", ""
    ),
    Status.OFFLINE: StatusItem(
        "Offline! Can't connect to server!", "📴", "wifi-off", "#FF0000"
    ),
    Status.ERROR: StatusItem(
        "Error! Check the log and clear the error flag", "❌",
        "refresh-cw-off", "#FF0000",
    ),
    Status.PAUSED: StatusItem(
        "Paused, resume to run operations again", "⏸️", "pause", ""
    ),
}


class StatusMachine:
    """Single-operation-at-a-time status holder.

    Args:
        initial: Starting status.
    """

    def __init__(self, initial: Status = Status.IDLE) -> None:
        self._status = initial
        # Status held by the operation currently in flight, if any
        self._held: Status | None = None

    @property
    def status(self) -> Status:
        return self._status

    @property
    def busy(self) -> bool:
        """True while an acquired operation has not been released."""
        return self._held is not None

    def try_acquire(self, target: Status, allowed: Iterable[Status]) -> bool:
        """Move to *target* if the current status is in *allowed*.

        Returns:
            True if the transition happened, False if it was rejected.
        """
        if self._held is not None or self._status not in set(allowed):
            logger.debug(
                "Rejected %s while %s", target.value, self._status.value
            )
            return False
        logger.debug("%s -> %s", self._status.value, target.value)
        self._status = target
        self._held = target
        return True

    def release(self, held: Status, outcome: Status) -> None:
        """End the operation holding *held*, landing on *outcome*.

        If the status was changed from outside meanwhile (pause), that
        status is kept.
        """
        if self._held == held:
            self._held = None
        if self._status == held:
            logger.debug("%s -> %s", held.value, outcome.value)
            self._status = outcome

    def set(self, status: Status) -> None:
        """Set the status outside of an acquired operation."""
        self._status = status

    def toggle_pause(self, error_flag: bool) -> Status:
        """Enter or leave Paused.

        Leaving Paused lands on the in-flight operation's status if one is
        still running, otherwise on Error when *error_flag* is set, and on
        Idle otherwise.
        """
        if self._status != Status.PAUSED:
            self._status = Status.PAUSED
        elif self._held is not None:
            self._status = self._held
        else:
            self._status = Status.ERROR if error_flag else Status.IDLE
        return self._status
