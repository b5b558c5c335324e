"""File handler module: the local replica store and encoding-aware decoding.

``LocalStore`` exposes the vault directory through the list/read/write/
delete/exists calls the sync core needs. All methods are synchronous;
async callers go through ``run_sync()``.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from charset_normalizer import from_bytes

from smartsync.validators import require_relative_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LocalEntry:
    """One entry of a vault listing.

    Attributes:
        path: POSIX path relative to the vault root.
        is_container: True for directories.
        size: Size in bytes (0 for directories).
        mtime: Modification time as a float timestamp.
    """

    path: str
    is_container: bool
    size: int = 0
    mtime: float = 0.0


# =============================================================================
# Local store
# =============================================================================


class LocalStore:
    """Filesystem-backed replica rooted at *root*.

    Args:
        root: Vault directory. Created on first write if missing.
        trash_dir: Vault-relative directory that receives deleted files.
            ``None`` deletes files outright.
    """

    def __init__(self, root: Path, trash_dir: str | None = ".trash") -> None:
        self.root = Path(root).resolve()
        self.trash_dir = trash_dir.strip("/") if trash_dir else None

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path onto the filesystem.

        Raises:
            ValueError: If the path is invalid or escapes the root.
        """
        require_relative_path(path)
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError(
                f"Path is outside the vault: {path} not under {self.root}"
            )
        return resolved

    def list(self) -> list[LocalEntry]:
        """Return every file and directory below the root, sorted by path.

        Parents always precede their children. Symlinked directories are
        not followed.
        """
        entries: list[LocalEntry] = []
        if not self.root.is_dir():
            return entries

        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            base = Path(dirpath)
            for name in dirnames:
                full = base / name
                entries.append(
                    LocalEntry(
                        path=full.relative_to(self.root).as_posix(),
                        is_container=True,
                    )
                )
            for name in sorted(filenames):
                full = base / name
                try:
                    stat = full.stat()
                except OSError as exc:
                    logger.warning("Cannot stat %s: %s", full, exc)
                    continue
                entries.append(
                    LocalEntry(
                        path=full.relative_to(self.root).as_posix(),
                        is_container=False,
                        size=stat.st_size,
                        mtime=stat.st_mtime,
                    )
                )

        entries.sort(key=lambda e: e.path)
        return entries

    def read(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write(self, path: str, data: bytes) -> int:
        """Write *data* to *path*, creating parent directories as needed.

        Returns:
            Number of bytes written.
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return len(data)

    def delete(self, path: str) -> None:
        """Remove *path*, moving it into the trash directory when one is set.

        Deleting a missing file is a no-op.
        """
        target = self.resolve(path)
        if not target.exists():
            return
        if self.trash_dir is None:
            target.unlink()
            return

        trashed = self.root / self.trash_dir / path
        trashed.parent.mkdir(parents=True, exist_ok=True)
        if trashed.exists():
            trashed.unlink()
        shutil.move(str(target), str(trashed))
        logger.debug("Moved %s to %s", path, trashed)

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()


# =============================================================================
# Decoding
# =============================================================================


def decode_bytes(raw: bytes) -> tuple[str, str] | None:
    """Decode file content with automatic encoding detection.

    Uses charset-normalizer to detect the encoding. Empty content decodes
    as UTF-8.

    Returns:
        Tuple of (text, encoding), or ``None`` when the content looks
        binary.
    """
    if not raw:
        return ("", "utf-8")
    if b"\x00" in raw[:8192]:
        return None

    result = from_bytes(raw).best()
    if result is None:
        return None

    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)
