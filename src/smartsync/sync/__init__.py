"""Reconciliation core for a local vault and a SmartSync remote.

Architecture
------------
Both replicas are hashed into path -> digest FileLists and compared
against the **snapshot**, the FileList recorded after the last reconciled
pass. Each replica gets its own ChangeSet (added, deleted, modified,
conflicted); paths changed incompatibly on both sides are always
conflicted and never merged. A ``Controller`` then picks which categories
a sync executes, and in which direction.

Modules:

- ``engine``     -- ``SyncOrchestrator``: status guard, test/check/sync/save.
- ``reconciler`` -- ``reconcile()``: the pure three-way classification.
- ``scanner``    -- ``HashTreeBuilder``: current FileList of each replica.
- ``ignore``     -- ``ExclusionRules``: gitignore-style filtering.
- ``transfers``  -- ``TransferExecutor``: downloads, uploads, deletes, retry.
- ``state``      -- ``SnapshotStore``: atomic JSON snapshot persistence.
- ``status``     -- ``Status``, ``StatusMachine``, ``STATUS_ITEMS``.
- ``models``     -- ``ChangeSet``, ``ReconciliationResult``, ``Snapshot``,
  ``Controller``, ``TransferReport``, ``OperationResult``.
- ``reporter``   -- Human-readable and JSON formatting.

Usage example
-------------
::

    from smartsync.config import load_config
    from smartsync.config_schema import SyncConfig
    from smartsync.sync import build_orchestrator, format_check_summary

    orchestrator = build_orchestrator(SyncConfig(vault_root="~/vault"), load_config())
    orchestrator.start()

    checked = await orchestrator.check()
    print(format_check_summary(checked.result))

    outcome = await orchestrator.full_sync()
    print(outcome.message)
"""

from .engine import SyncOrchestrator, SyncSession, build_orchestrator
from .ignore import ExclusionRules
from .models import (
    ChangeSet,
    Controller,
    OperationResult,
    ReconciliationResult,
    Snapshot,
    TransferReport,
)
from .reconciler import reconcile
from .reporter import (
    format_check_summary,
    format_conflict_diff,
    format_sync_report,
    result_to_json,
    transfers_to_json,
)
from .scanner import HashCache, HashTreeBuilder
from .state import SnapshotStore
from .status import STATUS_ITEMS, Status, StatusMachine

__all__ = [
    "ChangeSet",
    "Controller",
    "ExclusionRules",
    "HashCache",
    "HashTreeBuilder",
    "OperationResult",
    "ReconciliationResult",
    "STATUS_ITEMS",
    "Snapshot",
    "SnapshotStore",
    "Status",
    "StatusMachine",
    "SyncOrchestrator",
    "SyncSession",
    "TransferReport",
    "build_orchestrator",
    "format_check_summary",
    "format_conflict_diff",
    "format_sync_report",
    "reconcile",
    "result_to_json",
    "transfers_to_json",
]
