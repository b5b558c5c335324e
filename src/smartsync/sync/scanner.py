"""Hash tree builder: turn each replica into a path -> digest FileList.

The local walk evaluates exclusion rules against every entry, pruning
whole directories, and hashes the remaining files with bounded
parallelism. Digests are reused from a ``HashCache`` while a file's size
and mtime are unchanged. A file that cannot be read is logged and
dropped; it never aborts the walk.

The remote listing comes from the server's checksum endpoint after a
reachability check, filtered through the same rules.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable

from ..core.async_utils import gather_limited, run_sync, run_sync_limited
from ..core.client import SmartSyncClient
from ..exceptions import ConnectivityError
from ..file_handler import LocalEntry, LocalStore
from ..validators import validate_relative_path
from .ignore import ExclusionRules
from .models import FileList, HashStats

logger = logging.getLogger(__name__)

DEFAULT_HASH_CONCURRENCY = 16


def sha256_digest(data: bytes) -> str:
    """Hex SHA-256 of raw file bytes, as the server computes it."""
    return hashlib.sha256(data).hexdigest()


class HashCache:
    """Digest cache keyed by path, valid while size and mtime are unchanged."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[int, float, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry: LocalEntry) -> str | None:
        cached = self._entries.get(entry.path)
        if cached is None:
            return None
        size, mtime, digest = cached
        if size != entry.size or mtime != entry.mtime:
            return None
        return digest

    def put(self, entry: LocalEntry, digest: str) -> None:
        self._entries[entry.path] = (entry.size, entry.mtime, digest)

    def retain(self, paths: set[str]) -> None:
        """Forget every path not in *paths*."""
        for path in [p for p in self._entries if p not in paths]:
            del self._entries[path]


class HashTreeBuilder:
    """Build current FileLists for both replicas.

    Args:
        local: The local replica.
        remote: Client for the remote replica.
        rules: Exclusion rules applied to both sides.
        cache: Optional digest cache for the local walk.
        concurrency: Maximum files hashed at the same time.
        hasher: Digest function over file bytes.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: SmartSyncClient,
        rules: ExclusionRules,
        cache: HashCache | None = None,
        concurrency: int = DEFAULT_HASH_CONCURRENCY,
        hasher: Callable[[bytes], str] = sha256_digest,
    ) -> None:
        self.local = local
        self.remote = remote
        self.rules = rules
        self.cache = cache
        self.concurrency = concurrency
        self.hasher = hasher
        self.last_stats: HashStats | None = None

    # ------------------------------------------------------------------
    # Local
    # ------------------------------------------------------------------

    async def build_local(self) -> FileList:
        """Walk the local replica and hash every included file.

        Raises:
            OSError: If the vault itself cannot be listed.
        """
        started = time.monotonic()
        entries = await run_sync(self.local.list)

        included, total, skipped = self._select(entries)
        counters = {"cached": 0, "calculated": 0, "failed": 0}

        async def _digest(entry: LocalEntry) -> tuple[str, str | None]:
            if self.cache is not None:
                cached = self.cache.get(entry)
                if cached is not None:
                    counters["cached"] += 1
                    return (entry.path, cached)
            try:
                digest = await run_sync(self._hash_file, entry.path)
            except (OSError, ValueError) as exc:
                logger.warning("Cannot hash %s: %s", entry.path, exc)
                counters["failed"] += 1
                return (entry.path, None)
            counters["calculated"] += 1
            if self.cache is not None:
                self.cache.put(entry, digest)
            return (entry.path, digest)

        results = await gather_limited(
            [_digest(e) for e in included], self.concurrency
        )
        files = {path: digest for path, digest in results if digest is not None}
        if self.cache is not None:
            self.cache.retain(set(files))

        self.last_stats = HashStats(
            total_files=total,
            cached_hashes=counters["cached"],
            calculated_hashes=counters["calculated"],
            skipped_files=skipped,
            failed_files=counters["failed"],
        )
        logger.info(
            "Local hash tree: %d files in %.2fs (%s)",
            len(files),
            time.monotonic() - started,
            self.last_stats.model_dump(),
        )
        return files

    def _select(self, entries: list[LocalEntry]) -> tuple[list[LocalEntry], int, int]:
        """Apply exclusion rules, pruning excluded directories.

        Expects parents to precede their children, as ``LocalStore.list()``
        guarantees.

        Returns:
            Tuple of (included files, files seen, files skipped).
        """
        pruned: set[str] = set()
        included: list[LocalEntry] = []
        total = skipped = 0
        for entry in entries:
            parts = entry.path.split("/")
            under_pruned = any(
                "/".join(parts[:i]) in pruned for i in range(1, len(parts))
            )
            if entry.is_container:
                if under_pruned or self.rules.is_excluded(entry.path, True):
                    pruned.add(entry.path)
                continue
            total += 1
            if under_pruned or self.rules.is_excluded(entry.path):
                skipped += 1
                continue
            included.append(entry)
        return included, total, skipped

    def _hash_file(self, path: str) -> str:
        return self.hasher(self.local.read(path))

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    async def build_remote(self) -> FileList:
        """Fetch the remote checksum listing.

        Raises:
            ConnectivityError: If the server is offline or unreachable.
        """
        status = await run_sync_limited(self.remote.get_status)
        if not status.online:
            raise ConnectivityError("Remote server is offline")

        checksums = await run_sync_limited(self.remote.get_checksums)
        files: FileList = {}
        for path, digest in checksums.items():
            valid, reason = validate_relative_path(path)
            if not valid:
                logger.warning("Ignoring remote entry: %s", reason)
                continue
            files[path] = digest

        filtered = self.rules.filter(files)
        logger.info(
            "Remote hash tree: %d files (%d excluded)",
            len(filtered),
            len(files) - len(filtered),
        )
        return filtered
