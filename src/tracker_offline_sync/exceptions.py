"""Error taxonomy for the sync engine.

Errors are split by how far they are allowed to travel:

- ``TransientFetchError``: one page could not be fetched (network, timeout, 5xx).
  The paginated driver abandons the current unit/program pair and continues.
- ``TransformError``: one remote record is malformed. The driver skips and counts it.
- ``StoreWriteError``: the local store rejected a write. Not recoverable locally,
  the coordinator aborts the session.
- ``FatalConfigError``: the session cannot start (no scope units, no programs).
- ``RemoteError``: a non-transient HTTP failure (4xx other than 404).
"""


class SyncError(Exception):
    """Base class for all sync engine errors."""


class TransientFetchError(SyncError):
    """A remote request failed in a way that may succeed on a later attempt."""

    def __init__(self, resource_path: str, message: str):
        self.resource_path = resource_path
        super().__init__(f"{resource_path}: {message}")


class RemoteError(SyncError):
    """The remote source rejected a request."""

    def __init__(self, resource_path: str, status_code: int, message: str = ""):
        self.resource_path = resource_path
        self.status_code = status_code
        detail = f" - {message}" if message else ""
        super().__init__(f"{resource_path}: HTTP {status_code}{detail}")


class TransformError(SyncError):
    """A remote record could not be turned into local rows."""

    def __init__(self, entity: str, record_id: str | None, message: str):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"Malformed {entity} record {record_id or '<no id>'}: {message}")


class StoreWriteError(SyncError):
    """The local store failed to persist a write."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"Write to '{table}' failed: {message}")


class FatalConfigError(SyncError):
    """The sync session is misconfigured and cannot start."""
