"""Pydantic models for the reconciliation core.

Defines the data contracts shared by the sync modules:

- ``FileList``: path -> digest map for one replica.
- ``ChangeSet``: disjoint added/deleted/modified/conflicted FileLists.
- ``ReconciliationResult``: one ChangeSet per replica.
- ``Snapshot``: the persisted baseline of the last reconciled pass.
- ``Controller``: the directive matrix selecting what a sync executes.
- ``TransferReport`` / ``OperationResult``: outcomes returned to callers.

All models are frozen; every pass produces new instances instead of
patching old ones.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .status import Status

FileList = dict[str, str]

CATEGORIES: tuple[str, ...] = ("added", "deleted", "modified", "conflicted")
SIDES: tuple[str, ...] = ("remote", "local")

Directive = Literal[1, -1] | None


class ChangeSet(BaseModel):
    """Classification of one replica's changes relative to the baseline.

    Attributes:
        added: Present now, absent from the baseline.
        deleted: In the baseline, absent now (baseline digest).
        modified: Present in both with a different digest.
        conflicted: Changed incompatibly on both replicas.
    """

    added: FileList = Field(default_factory=dict)
    deleted: FileList = Field(default_factory=dict)
    modified: FileList = Field(default_factory=dict)
    conflicted: FileList = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _categories_are_disjoint(self) -> ChangeSet:
        seen: dict[str, str] = {}
        for name in CATEGORIES:
            for path in getattr(self, name):
                if path in seen:
                    raise ValueError(
                        f"{path!r} is both {seen[path]} and {name}"
                    )
                seen[path] = name
        return self

    def category(self, name: str) -> FileList:
        if name not in CATEGORIES:
            raise ValueError(f"Unknown change category: {name}")
        return getattr(self, name)

    def total(self) -> int:
        return sum(len(self.category(name)) for name in CATEGORIES)

    def is_empty(self) -> bool:
        return self.total() == 0

    def paths(self) -> set[str]:
        return {p for name in CATEGORIES for p in self.category(name)}

    def without(self, path: str) -> ChangeSet:
        """Return a copy with *path* removed from every category."""
        return ChangeSet(
            **{
                name: {p: d for p, d in self.category(name).items() if p != path}
                for name in CATEGORIES
            }
        )


class ReconciliationResult(BaseModel):
    """Changes seen on each replica, over the same path universe.

    Attributes:
        remote: Changes that happened on the remote replica.
        local: Changes that happened on the local replica.
    """

    remote: ChangeSet = Field(default_factory=ChangeSet)
    local: ChangeSet = Field(default_factory=ChangeSet)

    model_config = {"frozen": True}

    def side(self, name: str) -> ChangeSet:
        if name not in SIDES:
            raise ValueError(f"Unknown side: {name}")
        return getattr(self, name)

    def total(self) -> int:
        return self.remote.total() + self.local.total()

    def is_empty(self) -> bool:
        return self.total() == 0

    def conflicts(self) -> list[str]:
        return sorted(self.local.conflicted)

    def paths(self) -> set[str]:
        """Every path with a pending change on either side."""
        return self.remote.paths() | self.local.paths()

    def without(self, path: str) -> ReconciliationResult:
        return ReconciliationResult(
            remote=self.remote.without(path), local=self.local.without(path)
        )


class Snapshot(BaseModel):
    """Baseline persisted after every successful sync or save.

    Attributes:
        timestamp: When the snapshot was written (UTC).
        error: Persisted error flag; blocks check/sync/save until cleared.
        files: Last fully reconciled FileList.
        except_: Conflicts carried into the next pass (``except`` on disk).
    """

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    error: bool = False
    files: FileList = Field(default_factory=dict)
    except_: FileList = Field(default_factory=dict, alias="except")

    model_config = {"frozen": True, "populate_by_name": True}


class Controller(BaseModel):
    """Directive matrix: which change categories to execute, per side.

    For side X and category C, ``+1`` carries X's change onto the other
    replica and ``-1`` reverts it on X from the other replica. ``None``
    leaves the category alone.
    """

    remote: dict[str, Directive] = Field(default_factory=dict)
    local: dict[str, Directive] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _known_categories(self) -> Controller:
        for side in SIDES:
            unknown = set(getattr(self, side)) - set(CATEGORIES)
            if unknown:
                raise ValueError(
                    f"Unknown {side} categories: {', '.join(sorted(unknown))}"
                )
        return self

    def directive(self, side: str, category: str) -> Directive:
        return getattr(self, side).get(category)

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    @classmethod
    def push(cls) -> Controller:
        """Send every local change to the remote."""
        return cls(
            local={"added": 1, "deleted": 1, "modified": 1, "conflicted": 1}
        )

    @classmethod
    def pull(cls) -> Controller:
        """Apply every remote change locally."""
        return cls(
            remote={"added": 1, "deleted": 1, "modified": 1, "conflicted": 1}
        )

    @classmethod
    def full_sync(cls) -> Controller:
        """Exchange changes both ways; conflicts are left for the user."""
        return cls(
            remote={"added": 1, "deleted": 1, "modified": 1},
            local={"added": 1, "deleted": 1, "modified": 1},
        )

    @classmethod
    def duplicate_local(cls) -> Controller:
        """Make the remote an exact copy of the local replica."""
        return cls(
            remote={"added": -1, "deleted": -1, "modified": -1},
            local={"added": 1, "deleted": 1, "modified": 1, "conflicted": 1},
        )

    @classmethod
    def duplicate_remote(cls) -> Controller:
        """Make the local replica an exact copy of the remote."""
        return cls(
            remote={"added": 1, "deleted": 1, "modified": 1, "conflicted": 1},
            local={"added": -1, "deleted": -1, "modified": -1},
        )

    @classmethod
    def preset(cls, name: str) -> Controller:
        """Look up a preset by name (``push``, ``pull``, ``full_sync``, ...)."""
        factory = {
            "push": cls.push,
            "pull": cls.pull,
            "full_sync": cls.full_sync,
            "duplicate_local": cls.duplicate_local,
            "duplicate_remote": cls.duplicate_remote,
        }.get(name)
        if factory is None:
            raise ValueError(f"Unknown sync mode: {name}")
        return factory()


class TransferKind(str, Enum):
    """The four primitive operations a sync dispatches."""

    DOWNLOAD = "download"
    UPLOAD = "upload"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"


class TransferReport(BaseModel):
    """Per-kind outcome of one sync's transfers.

    Attributes:
        succeeded: Paths that completed, keyed by transfer kind.
        failed: Paths that failed terminally, keyed by transfer kind.
    """

    succeeded: dict[TransferKind, list[str]] = Field(default_factory=dict)
    failed: dict[TransferKind, list[str]] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.succeeded.values()) + sum(
            len(v) for v in self.failed.values()
        )

    @property
    def failures(self) -> int:
        return sum(len(v) for v in self.failed.values())

    def merged(self, other: TransferReport) -> TransferReport:
        """Combine two reports into a new one."""

        def _merge(a: dict, b: dict) -> dict:
            out = {k: list(v) for k, v in a.items()}
            for k, v in b.items():
                out.setdefault(k, []).extend(v)
            return out

        return TransferReport(
            succeeded=_merge(self.succeeded, other.succeeded),
            failed=_merge(self.failed, other.failed),
        )


class OperationResult(BaseModel):
    """What a core operation did, for the user-facing layer to render.

    Attributes:
        operation: Operation name (``test``, ``check``, ``sync``, ...).
        ok: Whether the operation completed.
        status: Status after the operation.
        message: Notice text for the user, if any.
        result: Reconciliation produced by the operation, if any.
        transfers: Transfer outcome of a sync, if any.
    """

    operation: str
    ok: bool
    status: Status
    message: str | None = None
    result: ReconciliationResult | None = None
    transfers: TransferReport | None = None

    model_config = {"frozen": True}


class HashStats(BaseModel):
    """Counters from one local hash tree build, for diagnostics only.

    Attributes:
        total_files: Files seen by the walk, excluded ones included.
        cached_hashes: Digests taken from the metadata cache.
        calculated_hashes: Digests computed from file content.
        skipped_files: Files dropped by exclusion rules.
        failed_files: Files dropped because they could not be read.
    """

    total_files: int = 0
    cached_hashes: int = 0
    calculated_hashes: int = 0
    skipped_files: int = 0
    failed_files: int = 0

    model_config = {"frozen": True}
