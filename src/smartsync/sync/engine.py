"""Sync orchestrator: status guard, check, sync and save.

The ``SyncOrchestrator`` ties the hash tree builder, the reconciler, the
transfer executor and the snapshot store into the operations a user runs:

1. ``test`` -- confirm the remote is reachable.
2. ``check`` -- build both FileLists, reconcile them against the snapshot
   and apply the danger guard. The result is cached in the session.
3. ``sync`` -- execute the cached result as directed by a ``Controller``,
   then save a new snapshot and check again.
4. ``save_state`` -- commit the local FileList as the new baseline.

Every operation starts with one ``StatusMachine.try_acquire()`` call, so
a second operation started while one is running is rejected without
touching any state. Operations are silent: they return an
``OperationResult`` and leave notices to the caller.

Errors are pass-level or file-level. A pass-level failure (remote offline,
danger guard, anything unexpected) aborts the operation and keeps the
previous cached result. A file-level failure is recorded in the transfer
report and picked up by the next check.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..config import Config
from ..config_schema import SyncConfig
from ..core.async_utils import gather_settled, run_sync, run_sync_limited
from ..core.client import SmartSyncClient
from ..exceptions import ConnectivityError, DangerGuardTripped
from ..file_handler import LocalStore
from .ignore import ExclusionRules
from .models import (
    Controller,
    FileList,
    OperationResult,
    ReconciliationResult,
    Snapshot,
    TransferKind,
    TransferReport,
)
from .reconciler import reconcile
from .reporter import format_conflict_diff
from .scanner import HashCache, HashTreeBuilder
from .state import SnapshotStore
from .status import READY_STATUSES, STATUS_ITEMS, Status, StatusMachine
from .transfers import TransferExecutor

logger = logging.getLogger(__name__)

# (side, category, directive) -> transfer executed for those paths
_TRANSFER_TABLE: dict[tuple[str, str, int], TransferKind] = {
    ("remote", "added", 1): TransferKind.DOWNLOAD,
    ("remote", "added", -1): TransferKind.DELETE_REMOTE,
    ("remote", "deleted", 1): TransferKind.DELETE_LOCAL,
    ("remote", "deleted", -1): TransferKind.UPLOAD,
    ("remote", "modified", 1): TransferKind.DOWNLOAD,
    ("remote", "modified", -1): TransferKind.UPLOAD,
    ("remote", "conflicted", 1): TransferKind.DOWNLOAD,
    ("remote", "conflicted", -1): TransferKind.UPLOAD,
    ("local", "added", 1): TransferKind.UPLOAD,
    ("local", "added", -1): TransferKind.DELETE_LOCAL,
    ("local", "deleted", 1): TransferKind.DELETE_REMOTE,
    ("local", "deleted", -1): TransferKind.DOWNLOAD,
    ("local", "modified", 1): TransferKind.UPLOAD,
    ("local", "modified", -1): TransferKind.DOWNLOAD,
    ("local", "conflicted", 1): TransferKind.UPLOAD,
    ("local", "conflicted", -1): TransferKind.DOWNLOAD,
}


@dataclass
class SyncSession:
    """Mutable state of one orchestrator, replaced wholesale per pass.

    Attributes:
        snapshot: Last persisted snapshot, ``None`` before the first save.
        result: Cached result of the last check, with deselected paths
            removed. This is what a sync executes.
        full_result: The same check result with every path.
        local_files: Local FileList from the last check.
        remote_files: Remote FileList from the last check.
        unselected: Paths the user excluded from the next sync.
        last_check: When the cached result was computed.
        last_transfers: Transfer report of the last sync.
    """

    snapshot: Snapshot | None = None
    result: ReconciliationResult | None = None
    full_result: ReconciliationResult | None = None
    local_files: FileList = field(default_factory=dict)
    remote_files: FileList = field(default_factory=dict)
    unselected: set[str] = field(default_factory=set)
    last_check: datetime | None = None
    last_transfers: TransferReport | None = None


class SyncOrchestrator:
    """Run test/check/sync/save against one local and one remote replica.

    Args:
        local: The local replica.
        remote: Client for the remote replica.
        store: Snapshot persistence.
        rules: Exclusion rules for both replicas.
        protected_prefix: Directory watched by the danger guard.
        danger_threshold: Maximum pending local deletions under
            *protected_prefix* before a check is rejected.
        hash_concurrency: Local hashing fan-out.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: SmartSyncClient,
        store: SnapshotStore,
        rules: ExclusionRules,
        protected_prefix: str = ".obsidian",
        danger_threshold: int = 15,
        hash_concurrency: int = 16,
    ) -> None:
        self.local = local
        self.remote = remote
        self.store = store
        self.rules = rules
        self.protected_prefix = protected_prefix.strip("/")
        self.danger_threshold = danger_threshold

        self.builder = HashTreeBuilder(
            local, remote, rules, cache=HashCache(), concurrency=hash_concurrency
        )
        self.transfers = TransferExecutor(local, remote)
        self.machine = StatusMachine()
        self.session = SyncSession()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> str | None:
        """Load the snapshot into a fresh session.

        Returns:
            A notice for the user when the snapshot had to be reset.
        """
        self.session = SyncSession(snapshot=self.store.load())
        if self.error_flag:
            self.machine.set(Status.ERROR)
        logger.info(
            "Sync session started: status=%s, baseline=%d files",
            self.status.value,
            len(self.session.snapshot.files) if self.session.snapshot else 0,
        )
        return self.store.load_notice

    def close(self) -> None:
        """Drop the session. The snapshot on disk is left as it is."""
        self.session = SyncSession()
        self.remote.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def status(self) -> Status:
        return self.machine.status

    @property
    def error_flag(self) -> bool:
        snapshot = self.session.snapshot
        return snapshot is not None and snapshot.error

    def _reject(self, operation: str, blocked_by_error: bool = False) -> OperationResult:
        if blocked_by_error:
            message = (
                f"Cannot {operation}: the error flag is set. "
                "Check both replicas, then clear the error."
            )
        else:
            message = (
                f"Cannot {operation} while "
                f"{STATUS_ITEMS[self.status].label.rstrip(' .')}"
                f" (status: {self.status.value})"
            )
        logger.info(
            "Rejected %s: status=%s",
            operation,
            self.status.value,
            extra={"operation": operation, "status": self.status.value},
        )
        return OperationResult(
            operation=operation, ok=False, status=self.status, message=message
        )

    def _persist_error(self) -> None:
        self.session.snapshot = self.store.set_error(self.session.snapshot, True)

    # ------------------------------------------------------------------
    # test
    # ------------------------------------------------------------------

    async def test(self) -> OperationResult:
        """Check whether the remote is online."""
        if not self.machine.try_acquire(
            Status.TESTING, READY_STATUSES | {Status.ERROR}
        ):
            return self._reject("test")

        outcome = Status.OFFLINE
        try:
            remote_status = await run_sync_limited(self.remote.get_status)
            if not remote_status.online:
                message = "Connection failed: remote server is offline"
            elif self.error_flag:
                outcome = Status.ERROR
                message = (
                    "Connection successful, but the error flag is set. "
                    "Clear it before syncing."
                )
            else:
                outcome = Status.IDLE
                message = (
                    f"Connection successful ({remote_status.file_count} "
                    "files on the server)"
                )
        finally:
            self.machine.release(Status.TESTING, outcome)

        return OperationResult(
            operation="test",
            ok=outcome != Status.OFFLINE,
            status=self.status,
            message=message,
        )

    # ------------------------------------------------------------------
    # check
    # ------------------------------------------------------------------

    async def check(self) -> OperationResult:
        """Reconcile both replicas and cache the result.

        Raises:
            Exception: Anything unexpected, after setting the error flag.
        """
        if self.error_flag:
            return self._reject("check", blocked_by_error=True)
        if not self.machine.try_acquire(Status.CHECKING, READY_STATUSES):
            return self._reject("check")

        outcome = Status.ERROR
        try:
            local_files, remote_files = await self._build_trees()
            snapshot = self.session.snapshot
            result = reconcile(
                self.rules.filter(snapshot.files) if snapshot else None,
                self.rules.filter(snapshot.except_) if snapshot else None,
                local_files,
                remote_files,
            )
            self._danger_guard(result)
        except ConnectivityError as exc:
            logger.warning("Check failed, remote unreachable: %s", exc)
            outcome = Status.OFFLINE
            return OperationResult(
                operation="check",
                ok=False,
                status=Status.OFFLINE,
                message=f"Offline, cannot reach the server: {exc}",
            )
        except DangerGuardTripped as exc:
            logger.error("Check rejected: %s", exc)
            self._persist_error()
            return OperationResult(
                operation="check", ok=False, status=Status.ERROR, message=str(exc)
            )
        except Exception:
            logger.exception("Check failed")
            self._persist_error()
            raise
        else:
            self.session.full_result = result
            self.session.result = result
            self.session.unselected = set()
            self.session.local_files = local_files
            self.session.remote_files = remote_files
            self.session.last_check = datetime.now(timezone.utc)
            outcome = Status.IDLE
            return OperationResult(
                operation="check", ok=True, status=Status.IDLE, result=result
            )
        finally:
            self.machine.release(Status.CHECKING, outcome)

    async def _build_trees(self) -> tuple[FileList, FileList]:
        """Build both FileLists concurrently, waiting for both to settle."""
        local, remote = await gather_settled(
            [self.builder.build_local(), self.builder.build_remote()]
        )
        for outcome in (remote, local):
            if isinstance(outcome, BaseException):
                raise outcome
        return local, remote

    def _danger_guard(self, result: ReconciliationResult) -> None:
        prefix = f"{self.protected_prefix}/"
        count = sum(
            1 for path in result.local.deleted if path.startswith(prefix)
        )
        if count > self.danger_threshold:
            raise DangerGuardTripped(count, self.danger_threshold)

    # ------------------------------------------------------------------
    # sync
    # ------------------------------------------------------------------

    async def sync(self, controller: Controller) -> OperationResult:
        """Execute the cached check result as directed by *controller*.

        Runs a check first when none is cached. After the transfers the
        local state is saved as the new baseline and a fresh check is
        cached. Paths that were not transferred keep their old baseline
        digest so they show up again in the next check.
        """
        if self.error_flag:
            return self._reject("sync", blocked_by_error=True)
        if self.status != Status.IDLE:
            return self._reject("sync")

        if self.session.result is None:
            checked = await self.check()
            if not checked.ok:
                return checked.model_copy(update={"operation": "sync"})

        if not self.machine.try_acquire(Status.SYNCING, {Status.IDLE}):
            return self._reject("sync")

        result = self.session.result
        plan = self._plan(controller, result)
        if not plan:
            self.machine.release(Status.SYNCING, Status.IDLE)
            if result.local.conflicted:
                message = (
                    f"No files to sync, {len(result.local.conflicted)} "
                    "conflicts need a decision"
                )
            else:
                message = "No files to sync"
            return OperationResult(
                operation="sync",
                ok=True,
                status=self.status,
                message=message,
                result=result,
            )

        outcome = Status.ERROR
        try:
            report = await self._execute(plan)
            outcome = Status.IDLE
        except Exception:
            logger.exception("Sync failed")
            self._persist_error()
            raise
        finally:
            self.machine.release(Status.SYNCING, outcome)

        self.session.last_transfers = report
        executed = {p for _, paths in plan for p in paths}
        deferred = (result.paths() - executed) | {
            p for paths in report.failed.values() for p in paths
        }

        saved = await self.save_state(preserve=deferred)
        if not saved.ok:
            return saved.model_copy(
                update={"operation": "sync", "transfers": report}
            )
        refreshed = await self.check()

        message = f"Synced {report.total - report.failures} files"
        if report.failures:
            message += f", {report.failures} failed"
        if not refreshed.ok and refreshed.message:
            message += f". {refreshed.message}"
        return OperationResult(
            operation="sync",
            ok=report.failures == 0,
            status=self.status,
            message=message,
            result=refreshed.result,
            transfers=report,
        )

    def _plan(
        self, controller: Controller, result: ReconciliationResult
    ) -> list[tuple[TransferKind, list[str]]]:
        """Translate the directive matrix into per-category transfers."""
        plan: list[tuple[TransferKind, list[str]]] = []
        for (side, category, directive), kind in _TRANSFER_TABLE.items():
            if controller.directive(side, category) != directive:
                continue
            paths = sorted(result.side(side).category(category))
            if paths:
                plan.append((kind, paths))
        return plan

    async def _execute(
        self, plan: list[tuple[TransferKind, list[str]]]
    ) -> TransferReport:
        """Launch every planned category at once and wait for all of them."""
        handlers = {
            TransferKind.DOWNLOAD: self.transfers.download,
            TransferKind.UPLOAD: self.transfers.upload,
            TransferKind.DELETE_LOCAL: self.transfers.delete_local,
            TransferKind.DELETE_REMOTE: self.transfers.delete_remote,
        }
        logger.info(
            "Syncing %d files in %d categories",
            sum(len(paths) for _, paths in plan),
            len(plan),
        )
        outcomes = await gather_settled(
            [handlers[kind](paths) for kind, paths in plan]
        )
        report = TransferReport()
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            report = report.merged(outcome)
        return report

    # ------------------------------------------------------------------
    # save
    # ------------------------------------------------------------------

    async def save_state(self, preserve: set[str] | None = None) -> OperationResult:
        """Commit the current local FileList as the new baseline.

        Deselected paths, and any in *preserve*, keep their previous
        baseline digest, or stay out of the baseline if they had none.

        A standalone save carries every open conflict. After a sync,
        *preserve* holds the paths that were not executed, and only
        conflicts among those (or deselected ones) are carried. A carried
        conflict keeps its previous baseline digest too, so the next check
        still sees both edits against the common ancestor.

        Raises:
            Exception: Anything unexpected, after setting the error flag.
        """
        if self.error_flag:
            return self._reject("save", blocked_by_error=True)
        if not self.machine.try_acquire(Status.SAVING, {Status.IDLE}):
            return self._reject("save")

        outcome = Status.ERROR
        try:
            files = await self.builder.build_local()
            previous = self.session.snapshot.files if self.session.snapshot else {}
            untouched = self.session.unselected | (preserve or set())

            conflicts = (
                self.session.full_result.local.conflicted
                if self.session.full_result
                else {}
            )
            carried = {
                path: digest
                for path, digest in conflicts.items()
                if path in files and (preserve is None or path in untouched)
            }

            for path in untouched | set(carried):
                if path in previous:
                    files[path] = previous[path]
                else:
                    files.pop(path, None)

            snapshot = Snapshot(files=files, except_=carried)
            await run_sync(self.store.save, snapshot)
            self.session.snapshot = snapshot
            outcome = Status.IDLE
        except Exception:
            logger.exception("Saving state failed")
            self._persist_error()
            raise
        finally:
            self.machine.release(Status.SAVING, outcome)

        return OperationResult(
            operation="save",
            ok=True,
            status=self.status,
            message=f"Saved current vault state ({len(snapshot.files)} files)",
        )

    # ------------------------------------------------------------------
    # Error flag, pause, selection
    # ------------------------------------------------------------------

    def clear_error(self) -> OperationResult:
        """Reset the persisted error flag."""
        if self.machine.busy:
            return self._reject("clear the error")
        self.session.snapshot = self.store.set_error(self.session.snapshot, False)
        if self.status == Status.ERROR:
            self.machine.set(Status.IDLE)
        return OperationResult(
            operation="clear_error",
            ok=True,
            status=self.status,
            message="Error flag cleared",
        )

    def toggle_pause(self) -> OperationResult:
        status = self.machine.toggle_pause(self.error_flag)
        message = "Paused" if status == Status.PAUSED else "Resumed"
        logger.info("%s (status: %s)", message, status.value)
        return OperationResult(
            operation="pause", ok=True, status=status, message=message
        )

    def deselect(self, path: str) -> OperationResult:
        """Leave *path* out of the next sync and keep its old baseline."""
        full = self.session.full_result
        if self.machine.busy or full is None or path not in full.paths():
            return OperationResult(
                operation="deselect",
                ok=False,
                status=self.status,
                message=f"No pending change for {path}",
            )
        self.session.unselected.add(path)
        self.session.result = self.session.result.without(path)
        return OperationResult(
            operation="deselect", ok=True, status=self.status,
            result=self.session.result,
        )

    def select(self, path: str) -> OperationResult:
        """Undo ``deselect()`` for *path*."""
        full = self.session.full_result
        if self.machine.busy or full is None or path not in self.session.unselected:
            return OperationResult(
                operation="select",
                ok=False,
                status=self.status,
                message=f"{path} is not deselected",
            )
        self.session.unselected.discard(path)
        result = full
        for other in self.session.unselected:
            result = result.without(other)
        self.session.result = result
        return OperationResult(
            operation="select", ok=True, status=self.status, result=result
        )

    # ------------------------------------------------------------------
    # Presets and helpers
    # ------------------------------------------------------------------

    async def push(self) -> OperationResult:
        return await self.sync(Controller.push())

    async def pull(self) -> OperationResult:
        return await self.sync(Controller.pull())

    async def full_sync(self) -> OperationResult:
        return await self.sync(Controller.full_sync())

    async def duplicate_local(self) -> OperationResult:
        return await self.sync(Controller.duplicate_local())

    async def duplicate_remote(self) -> OperationResult:
        return await self.sync(Controller.duplicate_remote())

    async def auto_sync_tick(self) -> OperationResult | None:
        """One auto-sync round: test when offline, check and sync when idle."""
        if self.status == Status.OFFLINE:
            return await self.test()
        if self.status != Status.IDLE or self.error_flag:
            logger.debug("Auto sync skipped: status=%s", self.status.value)
            return None
        checked = await self.check()
        if not checked.ok:
            return checked
        return await self.full_sync()

    async def diff(self, path: str) -> str:
        """Unified diff between the local and remote copy of *path*."""
        local = None
        if await run_sync(self.local.exists, path):
            local = await run_sync(self.local.read, path)
        data, status = await run_sync_limited(self.remote.get_file, path)
        remote = data if status == 200 else None
        return format_conflict_diff(path, local, remote)

    def status_report(self) -> dict:
        """Current status, flags and pending counts as a plain dict."""
        item = STATUS_ITEMS[self.status]
        snapshot = self.session.snapshot
        result = self.session.result
        stats = self.builder.last_stats
        return {
            "status": self.status.value,
            "label": item.label,
            "emoji": item.emoji,
            "error_flag": self.error_flag,
            "snapshot_time": snapshot.timestamp.isoformat() if snapshot else None,
            "baseline_files": len(snapshot.files) if snapshot else 0,
            "carried_conflicts": len(snapshot.except_) if snapshot else 0,
            "last_check": (
                self.session.last_check.isoformat()
                if self.session.last_check
                else None
            ),
            "pending": result.total() if result else None,
            "conflicts": result.conflicts() if result else [],
            "unselected": sorted(self.session.unselected),
            "hash_stats": stats.model_dump() if stats else None,
        }


def build_orchestrator(sync_config: SyncConfig, connection: Config) -> SyncOrchestrator:
    """Wire an orchestrator from configuration.

    The snapshot file and trash directory are always excluded from both
    scans when they live inside the vault.
    """
    vault = Path(sync_config.vault_root).expanduser().resolve()
    state_path = Path(sync_config.state_path).expanduser()
    if not state_path.is_absolute():
        state_path = vault / state_path

    internal: list[str] = []
    if state_path.resolve().is_relative_to(vault):
        internal.append("/" + state_path.resolve().relative_to(vault).as_posix())
    if sync_config.trash_dir:
        internal.append(f"/{sync_config.trash_dir.strip('/')}/")

    return SyncOrchestrator(
        local=LocalStore(vault, trash_dir=sync_config.trash_dir),
        remote=SmartSyncClient(connection, base_path=sync_config.remote_base_path),
        store=SnapshotStore(state_path),
        rules=ExclusionRules.from_config(sync_config, internal=internal),
        protected_prefix=sync_config.protected_prefix,
        danger_threshold=sync_config.danger_threshold,
        hash_concurrency=sync_config.hash_concurrency,
    )


async def run_auto_sync(orchestrator: SyncOrchestrator, interval: float) -> None:
    """Call ``auto_sync_tick()`` every *interval* seconds until cancelled.

    A failing tick is logged and the loop continues; the orchestrator has
    already moved to Error.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            outcome = await orchestrator.auto_sync_tick()
        except Exception:
            logger.exception("Auto sync failed")
            continue
        if outcome is not None and outcome.message:
            logger.info("Auto sync: %s", outcome.message)
