"""Shared pytest fixtures for smartsync tests."""

from __future__ import annotations

import hashlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from smartsync.config import Config
from smartsync.core import async_utils
from smartsync.core.client import RemoteStatus
from smartsync.exceptions import ConnectivityError
from smartsync.file_handler import LocalStore
from smartsync.sync.engine import SyncOrchestrator
from smartsync.sync.ignore import ExclusionRules
from smartsync.sync.state import SnapshotStore

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live SmartSync server",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live SmartSync server"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def _reset_semaphore():
    """Each test gets its own event loop, so never share the semaphore."""
    async_utils._semaphore = None
    yield
    async_utils._semaphore = None


def digest(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode()
    return hashlib.sha256(data).hexdigest()


class FakeRemote:
    """In-memory SmartSyncClient replacement.

    Files live in ``self.files``. Paths in the ``fail_*`` sets fail every
    attempt; paths in ``flaky`` fail only their first attempt.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.online = True
        self.fail_download: set[str] = set()
        self.fail_upload: set[str] = set()
        self.fail_delete: set[str] = set()
        self.flaky: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _flaky(self, path: str) -> bool:
        if path in self.flaky:
            self.flaky.discard(path)
            return True
        return False

    def get_status(self) -> RemoteStatus:
        self.calls.append(("status", ""))
        return RemoteStatus(online=self.online, file_count=len(self.files))

    def get_checksums(self) -> dict[str, str]:
        self.calls.append(("checksums", ""))
        if not self.online:
            raise ConnectivityError("offline")
        return {p: digest(d) for p, d in self.files.items()}

    def get_file(self, path: str) -> tuple[bytes, int]:
        self.calls.append(("get", path))
        if path in self.fail_download or self._flaky(path):
            return (b"", 500)
        if path not in self.files:
            return (b"", 404)
        return (self.files[path], 200)

    def put_file(self, path: str, data: bytes) -> bool:
        self.calls.append(("put", path))
        if path in self.fail_upload or self._flaky(path):
            return False
        self.files[path] = data
        return True

    def delete_file(self, path: str) -> int:
        self.calls.append(("delete", path))
        if path in self.fail_delete or self._flaky(path):
            return 500
        if self.files.pop(path, None) is None:
            return 404
        return 204

    def trigger_rescan(self) -> int:
        return len(self.files)

    def close(self) -> None:
        self.closed = True


def write_files(root: Path, files: dict[str, bytes | str]) -> None:
    for path, data in files.items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            data = data.encode()
        target.write_bytes(data)


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def snapshot_store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "state" / "prevdata.json")


@pytest.fixture
def orchestrator(vault_dir, fake_remote, snapshot_store) -> SyncOrchestrator:
    """Orchestrator over a tmp vault and an in-memory remote."""
    orch = SyncOrchestrator(
        local=LocalStore(vault_dir),
        remote=fake_remote,
        store=snapshot_store,
        rules=ExclusionRules(internal=["/.trash/"]),
    )
    orch.start()
    return orch


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        server_url="https://sync.example.com",
        port=0,
        auth_token="secret-token",
        insecure=False,
    )


@pytest.fixture
def mock_orchestrator():
    """MagicMock standing in for a SyncOrchestrator."""
    orch = MagicMock(spec=SyncOrchestrator)
    orch.session = MagicMock()
    orch.session.unselected = set()
    return orch
