"""Command-line interface for tracker-offline-sync."""

from tracker_offline_sync.cli.main import main

__all__ = ["main"]
