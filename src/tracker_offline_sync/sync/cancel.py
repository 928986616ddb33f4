"""Cooperative cancellation."""

import threading


class CancelToken:
    """Flag checked by long-running syncs between scope units and phases.

    Safe to set from another thread (e.g., a UI handler).
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
