"""Exception hierarchy for the sync core.

Pass-level errors (``ConnectivityError``, ``DangerGuardTripped``) abort the
whole operation and leave cached state untouched. ``TransferError`` is
file-level: it is retried once and then recorded as a failed transfer.
"""


class SmartSyncError(Exception):
    """Base class for all smartsync errors."""


class ConnectivityError(SmartSyncError):
    """The remote store is unreachable."""


class DangerGuardTripped(SmartSyncError):
    """A check would delete too many protected configuration files locally.

    Attributes:
        count: Number of protected paths pending local deletion.
        threshold: The configured threshold that was exceeded.
    """

    def __init__(self, count: int, threshold: int) -> None:
        super().__init__(
            f"Dangerous amount of system files pending deletion "
            f"({count} > {threshold})"
        )
        self.count = count
        self.threshold = threshold


class TransferError(SmartSyncError):
    """A single file could not be transferred or deleted."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
