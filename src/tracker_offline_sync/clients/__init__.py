"""Remote source clients."""

from tracker_offline_sync.clients.api import ApiClient
from tracker_offline_sync.clients.base import RemoteSource

__all__ = ["ApiClient", "RemoteSource"]
