"""Transfer primitives with the retry policy of the sync core.

* Downloads and deletions get exactly one retry round: every attempt
  fires once, failures are collected and retried once more. A retry round
  touching the remote first re-confirms that it is online; if it is not,
  the collected failures are terminal.
* Uploads get a single attempt.
* Remote deletes count 200, 201, 204 and 404 as success.

A failed file never aborts its batch; it is logged and reported in the
``TransferReport`` so the next check picks it up again.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ..core.async_utils import gather_settled, run_sync, run_sync_limited
from ..core.client import SmartSyncClient
from ..exceptions import SmartSyncError, TransferError
from ..file_handler import LocalStore
from .models import TransferKind, TransferReport

logger = logging.getLogger(__name__)

DELETE_OK_STATUSES = frozenset({200, 201, 204, 404})


class TransferExecutor:
    """Move files between the two replicas.

    Args:
        local: The local replica.
        remote: Client for the remote replica.
    """

    def __init__(self, local: LocalStore, remote: SmartSyncClient) -> None:
        self.local = local
        self.remote = remote

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def download(self, paths: list[str]) -> TransferReport:
        """Copy remote files onto the local replica."""
        return await self._run(
            TransferKind.DOWNLOAD, paths, self._download_one, retry=True
        )

    async def upload(self, paths: list[str]) -> TransferReport:
        """Copy local files onto the remote replica. No retry."""
        return await self._run(
            TransferKind.UPLOAD, paths, self._upload_one, retry=False
        )

    async def delete_remote(self, paths: list[str]) -> TransferReport:
        return await self._run(
            TransferKind.DELETE_REMOTE, paths, self._delete_remote_one, retry=True
        )

    async def delete_local(self, paths: list[str]) -> TransferReport:
        return await self._run(
            TransferKind.DELETE_LOCAL, paths, self._delete_local_one, retry=True
        )

    # ------------------------------------------------------------------
    # Single-file attempts
    # ------------------------------------------------------------------

    async def _download_one(self, path: str) -> None:
        data, status = await run_sync_limited(self.remote.get_file, path)
        if status != 200:
            raise TransferError(path, f"download returned HTTP {status}")
        await run_sync(self.local.write, path, data)

    async def _upload_one(self, path: str) -> None:
        data = await run_sync(self.local.read, path)
        if not await run_sync_limited(self.remote.put_file, path, data):
            raise TransferError(path, "upload rejected")

    async def _delete_remote_one(self, path: str) -> None:
        status = await run_sync_limited(self.remote.delete_file, path)
        if status not in DELETE_OK_STATUSES:
            raise TransferError(path, f"delete returned HTTP {status}")

    async def _delete_local_one(self, path: str) -> None:
        await run_sync(self.local.delete, path)

    # ------------------------------------------------------------------
    # Batch + retry
    # ------------------------------------------------------------------

    async def _attempt_all(
        self,
        kind: TransferKind,
        paths: list[str],
        attempt: Callable[[str], Awaitable[None]],
    ) -> list[str]:
        """Fire one attempt per path and return the paths that failed."""
        outcomes = await gather_settled([attempt(p) for p in paths])
        failed: list[str] = []
        for path, outcome in zip(paths, outcomes):
            if isinstance(outcome, (SmartSyncError, OSError, ValueError)):
                logger.warning(
                    "%s of %s failed: %s",
                    kind.value,
                    path,
                    outcome,
                    extra={"operation": kind.value, "path": path},
                )
                failed.append(path)
            elif isinstance(outcome, BaseException):
                raise outcome
        return failed

    async def _run(
        self,
        kind: TransferKind,
        paths: list[str],
        attempt: Callable[[str], Awaitable[None]],
        retry: bool,
    ) -> TransferReport:
        if not paths:
            return TransferReport()

        failed = await self._attempt_all(kind, paths, attempt)
        if failed and retry:
            if kind != TransferKind.DELETE_LOCAL and not await self._remote_online():
                logger.error(
                    "Remote offline, not retrying %d %s transfers",
                    len(failed),
                    kind.value,
                )
            else:
                logger.info("Retrying %d %s transfers", len(failed), kind.value)
                failed = await self._attempt_all(kind, failed, attempt)

        for path in failed:
            logger.error(
                "%s of %s failed permanently",
                kind.value,
                path,
                extra={"operation": kind.value, "path": path},
            )

        failed_set = set(failed)
        succeeded = [p for p in paths if p not in failed_set]
        logger.info(
            "%s: %d succeeded, %d failed", kind.value, len(succeeded), len(failed)
        )
        return TransferReport(
            succeeded={kind: succeeded} if succeeded else {},
            failed={kind: failed} if failed else {},
        )

    async def _remote_online(self) -> bool:
        status = await run_sync_limited(self.remote.get_status)
        return status.online
