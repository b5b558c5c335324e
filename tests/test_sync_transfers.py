"""Tests for TransferExecutor retry policy.

Covers:
- Downloads/deletes: one retry round, second failure terminal
- Uploads: single attempt
- Remote delete success statuses (200/201/204/404)
- Offline remote makes the retry round terminal
- Unexpected exceptions propagate
"""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import FakeRemote, write_files

from smartsync.file_handler import LocalStore
from smartsync.sync.models import TransferKind
from smartsync.sync.transfers import DELETE_OK_STATUSES, TransferExecutor


@pytest.fixture
def local(vault_dir: Path) -> LocalStore:
    return LocalStore(vault_dir)


@pytest.fixture
def executor(local, fake_remote) -> TransferExecutor:
    return TransferExecutor(local, fake_remote)


def _attempts(remote: FakeRemote, op: str, path: str) -> int:
    return sum(1 for c in remote.calls if c == (op, path))


class TestDownload:
    async def test_downloads_every_path(self, executor, fake_remote, vault_dir):
        fake_remote.files = {"a.md": b"A", "sub/b.md": b"B"}

        report = await executor.download(["a.md", "sub/b.md"])

        assert report.succeeded == {TransferKind.DOWNLOAD: ["a.md", "sub/b.md"]}
        assert report.failures == 0
        assert (vault_dir / "sub" / "b.md").read_bytes() == b"B"

    async def test_permanent_failure_is_retried_once(
        self, executor, fake_remote
    ):
        fake_remote.files = {"a.md": b"A", "bad.md": b"X"}
        fake_remote.fail_download = {"bad.md"}

        report = await executor.download(["a.md", "bad.md"])

        assert report.succeeded == {TransferKind.DOWNLOAD: ["a.md"]}
        assert report.failed == {TransferKind.DOWNLOAD: ["bad.md"]}
        assert _attempts(fake_remote, "get", "bad.md") == 2
        assert _attempts(fake_remote, "get", "a.md") == 1

    async def test_failure_records_carry_operation_and_path(
        self, executor, fake_remote, caplog
    ):
        fake_remote.files = {"bad.md": b"X"}
        fake_remote.fail_download = {"bad.md"}

        with caplog.at_level(logging.WARNING, logger="smartsync.sync.transfers"):
            await executor.download(["bad.md"])

        failures = [r for r in caplog.records if getattr(r, "path", None)]
        assert failures
        assert {(r.operation, r.path) for r in failures} == {("download", "bad.md")}

    async def test_missing_remote_file_fails(self, executor, fake_remote):
        report = await executor.download(["gone.md"])

        assert report.failed == {TransferKind.DOWNLOAD: ["gone.md"]}

    async def test_offline_remote_skips_retry(self, executor, fake_remote):
        fake_remote.files = {"bad.md": b"X"}
        fake_remote.fail_download = {"bad.md"}
        fake_remote.online = False

        report = await executor.download(["bad.md"])

        assert report.failures == 1
        assert _attempts(fake_remote, "get", "bad.md") == 1

    async def test_empty_batch(self, executor, fake_remote):
        report = await executor.download([])

        assert report.total == 0
        assert fake_remote.calls == []


class TestUpload:
    async def test_uploads_local_content(self, executor, fake_remote, vault_dir):
        write_files(vault_dir, {"a.md": "alpha"})

        report = await executor.upload(["a.md"])

        assert report.succeeded == {TransferKind.UPLOAD: ["a.md"]}
        assert fake_remote.files == {"a.md": b"alpha"}

    async def test_upload_is_never_retried(self, executor, fake_remote, vault_dir):
        write_files(vault_dir, {"a.md": "alpha"})
        fake_remote.flaky = {"a.md"}

        report = await executor.upload(["a.md"])

        assert report.failed == {TransferKind.UPLOAD: ["a.md"]}
        assert _attempts(fake_remote, "put", "a.md") == 1

    async def test_missing_local_file_fails(self, executor, fake_remote):
        report = await executor.upload(["nope.md"])

        assert report.failed == {TransferKind.UPLOAD: ["nope.md"]}
        assert fake_remote.calls == []


class TestDelete:
    def test_success_statuses(self):
        assert DELETE_OK_STATUSES == {200, 201, 204, 404}

    async def test_delete_remote_treats_404_as_success(
        self, executor, fake_remote
    ):
        fake_remote.files = {"a.md": b"A"}

        report = await executor.delete_remote(["a.md", "already-gone.md"])

        assert report.succeeded == {
            TransferKind.DELETE_REMOTE: ["a.md", "already-gone.md"]
        }
        assert fake_remote.files == {}

    async def test_flaky_remote_delete_recovers(self, executor, fake_remote):
        fake_remote.files = {"a.md": b"A"}
        fake_remote.flaky = {"a.md"}

        report = await executor.delete_remote(["a.md"])

        assert report.failures == 0
        assert _attempts(fake_remote, "delete", "a.md") == 2

    async def test_delete_local_moves_to_trash(self, executor, vault_dir):
        write_files(vault_dir, {"a.md": "alpha"})

        report = await executor.delete_local(["a.md", "missing.md"])

        assert report.succeeded == {
            TransferKind.DELETE_LOCAL: ["a.md", "missing.md"]
        }
        assert not (vault_dir / "a.md").exists()
        assert (vault_dir / ".trash" / "a.md").read_bytes() == b"alpha"

    async def test_delete_local_retry_does_not_ask_the_remote(
        self, local, fake_remote
    ):
        local.delete = MagicMock(side_effect=[OSError("busy"), None])
        executor = TransferExecutor(local, fake_remote)

        report = await executor.delete_local(["a.md"])

        assert report.failures == 0
        assert local.delete.call_count == 2
        assert fake_remote.calls == []


async def test_unexpected_exception_propagates(local, fake_remote):
    fake_remote.get_file = MagicMock(side_effect=RuntimeError("bug"))
    executor = TransferExecutor(local, fake_remote)

    with pytest.raises(RuntimeError, match="bug"):
        await executor.download(["a.md"])
