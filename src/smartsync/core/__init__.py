"""Remote client and async helpers shared by the sync core and the server."""

from .async_utils import run_sync, run_sync_limited
from .client import RemoteStatus, SmartSyncClient

__all__ = ["RemoteStatus", "SmartSyncClient", "run_sync", "run_sync_limited"]
