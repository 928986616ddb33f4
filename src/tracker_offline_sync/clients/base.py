"""Base protocol for remote sources."""

from typing import Any, Protocol, runtime_checkable

from tracker_offline_sync.models.remote import ListQuery, Page


@runtime_checkable
class RemoteSource(Protocol):
    """Protocol defining what the sync engine needs from the upstream API.

    Implementations enforce their own request timeout and report network
    failures and timeouts as ``TransientFetchError``.
    """

    def list(self, resource_path: str, query: ListQuery) -> Page:
        """Fetch one page of a list resource.

        Args:
            resource_path: Resource path (e.g., "tracker/enrollments")
            query: Scope filters, page, page size and field selection

        Returns:
            Page with instances and the current page count
        """
        ...

    def get_one(self, resource_path: str) -> dict[str, Any] | None:
        """Fetch a single resource.

        Args:
            resource_path: Resource path (e.g., "me")

        Returns:
            Record dict, or None if it does not exist
        """
        ...
