"""Snapshot persistence layer.

The snapshot is a single JSON record holding the last reconciled FileList,
the conflicts carried into the next pass, and the persisted error flag.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Wholesale replacement** -- a snapshot is never patched; every save
  writes a complete new record.
* **Fail closed** -- a snapshot that cannot be parsed is replaced by an
  empty one with the error flag set, so no sync runs against a baseline
  nobody can trust until the user clears the flag.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .models import Snapshot

logger = logging.getLogger(__name__)

CORRUPT_SNAPSHOT_NOTICE = (
    "Error loading previous sync state, it was reset and the error flag "
    "set. Check both replicas, then clear the error."
)


class SnapshotStore:
    """Load and save the snapshot at a fixed path.

    Args:
        path: Location of the snapshot JSON file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.load_notice: str | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> Snapshot | None:
        """Load the snapshot from disk.

        Returns:
            The snapshot, or ``None`` if no snapshot was ever written. A
            corrupt file is replaced on disk by an empty snapshot with the
            error flag set, which is returned; ``load_notice`` then holds
            a message for the user.
        """
        self.load_notice = None
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
            return Snapshot.model_validate(_upgrade(data))
        except (OSError, ValueError, ValidationError) as exc:
            logger.error("Cannot load snapshot %s: %s", self.path, exc)
            reset = Snapshot(error=True)
            self.save(reset)
            self.load_notice = CORRUPT_SNAPSHOT_NOTICE
            return reset

    def save(self, snapshot: Snapshot) -> None:
        """Persist *snapshot* atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target. Creates the parent directory if needed.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = snapshot.model_dump(mode="json", by_alias=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug(
            "Saved snapshot: %d files, %d carried conflicts, error=%s",
            len(snapshot.files),
            len(snapshot.except_),
            snapshot.error,
        )

    # ------------------------------------------------------------------
    # Error flag
    # ------------------------------------------------------------------

    def set_error(self, snapshot: Snapshot | None, error: bool) -> Snapshot:
        """Persist *error* on top of *snapshot* and return the new snapshot."""
        if snapshot is None:
            updated = Snapshot(error=error)
        else:
            updated = snapshot.model_copy(update={"error": error})
        self.save(updated)
        return updated


def _upgrade(data: dict) -> dict:
    """Accept records with an epoch-milliseconds ``date`` instead of ``timestamp``."""
    if isinstance(data, dict) and "timestamp" not in data and "date" in data:
        data = dict(data)
        date = data.pop("date")
        if isinstance(date, (int, float)):
            data["timestamp"] = datetime.fromtimestamp(
                date / 1000, tz=timezone.utc
            )
    return data
