"""Tests for the reconciliation data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from smartsync.sync.models import (
    ChangeSet,
    Controller,
    ReconciliationResult,
    Snapshot,
    TransferKind,
    TransferReport,
)


class TestChangeSet:
    def test_overlapping_categories_are_rejected(self):
        with pytest.raises(ValidationError, match="both added and modified"):
            ChangeSet(added={"a.md": "H1"}, modified={"a.md": "H2"})

    def test_without_removes_path_everywhere(self):
        changes = ChangeSet(added={"a.md": "A"}, deleted={"b.md": "B"})

        trimmed = changes.without("a.md")

        assert trimmed.paths() == {"b.md"}
        assert changes.paths() == {"a.md", "b.md"}

    def test_unknown_category(self):
        with pytest.raises(ValueError, match="Unknown change category"):
            ChangeSet().category("renamed")

    def test_frozen(self):
        with pytest.raises(ValidationError):
            ChangeSet().added = {"a.md": "A"}


class TestReconciliationResult:
    def test_totals_and_conflicts(self):
        result = ReconciliationResult(
            remote=ChangeSet(added={"r.md": "R"}, conflicted={"c.md": "C2"}),
            local=ChangeSet(conflicted={"c.md": "C1"}),
        )

        assert result.total() == 3
        assert result.conflicts() == ["c.md"]
        assert result.paths() == {"r.md", "c.md"}
        assert result.without("c.md").total() == 1

    def test_unknown_side(self):
        with pytest.raises(ValueError, match="Unknown side"):
            ReconciliationResult().side("middle")


class TestController:
    def test_full_sync_leaves_conflicts_alone(self):
        controller = Controller.full_sync()

        assert controller.directive("local", "modified") == 1
        assert controller.directive("local", "conflicted") is None
        assert controller.directive("remote", "conflicted") is None

    def test_duplicate_local_reverts_remote_changes(self):
        controller = Controller.duplicate_local()

        assert controller.directive("remote", "added") == -1
        assert controller.directive("local", "conflicted") == 1

    @pytest.mark.parametrize(
        "name", ["push", "pull", "full_sync", "duplicate_local", "duplicate_remote"]
    )
    def test_presets_by_name(self, name):
        assert Controller.preset(name) == getattr(Controller, name)()

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown sync mode"):
            Controller.preset("mirror")

    def test_unknown_category_is_rejected(self):
        with pytest.raises(ValidationError, match="Unknown local categories"):
            Controller(local={"renamed": 1})

    def test_invalid_directive_is_rejected(self):
        with pytest.raises(ValidationError):
            Controller(local={"added": 2})


class TestTransferReport:
    def test_merged(self):
        first = TransferReport(
            succeeded={TransferKind.DOWNLOAD: ["a.md"]},
            failed={TransferKind.UPLOAD: ["b.md"]},
        )
        second = TransferReport(succeeded={TransferKind.DOWNLOAD: ["c.md"]})

        merged = first.merged(second)

        assert merged.succeeded == {TransferKind.DOWNLOAD: ["a.md", "c.md"]}
        assert merged.total == 3
        assert merged.failures == 1
        assert first.succeeded == {TransferKind.DOWNLOAD: ["a.md"]}


def test_snapshot_accepts_alias_and_field_name():
    assert Snapshot(**{"except": {"a.md": "H"}}).except_ == {"a.md": "H"}
    assert Snapshot(except_={"a.md": "H"}).except_ == {"a.md": "H"}
