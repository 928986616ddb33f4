"""
Tracker API Client

Direct HTTP client for the tracker server's REST API.
Implements the RemoteSource protocol used by the sync engine.
"""

import logging
from typing import Any

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tracker_offline_sync.exceptions import RemoteError, TransientFetchError
from tracker_offline_sync.models.remote import ListQuery, Page

logger = logging.getLogger(__name__)

# Envelope keys that are never the instance list
_ENVELOPE_KEYS = {"pager", "page", "pageSize", "pageCount", "total"}


class ApiClient:
    """
    Client for the tracker server REST API.

    Example:
        >>> client = ApiClient("https://play.example.org/api", auth=("admin", "district"))
        >>> page = client.list("tracker/enrollments", ListQuery(scope_filters={"orgUnits": "DiszpKrYNg8"}))
        >>> print(page.page_count, len(page.instances))
    """

    def __init__(
        self,
        base_url: str,
        auth: tuple[str, str] | None = None,
        timeout: float = 30,
        max_retries: int = 3,
        session: requests.Session | None = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: API root (e.g., "https://server/api")
            auth: Optional (username, password) for basic auth
            timeout: Request timeout in seconds
            max_retries: Retries for connection errors and 502/503/504 responses
            session: Optional shared requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or self._create_session(max_retries)
        if auth:
            self.session.auth = auth
        self.session.headers.update({
            "User-Agent": "tracker-offline-sync/0.1.0",
            "Accept": "application/json",
        })

    @staticmethod
    def _create_session(max_retries: int) -> requests.Session:
        """Create a session with retry on transient upstream failures.

        Args:
            max_retries: Total retry attempts

        Returns:
            Configured requests session
        """
        session = requests.Session()
        adapter = HTTPAdapter(
            max_retries=Retry(
                total=max_retries,
                backoff_factor=0.5,
                status_forcelist=(502, 503, 504),
                allowed_methods=("GET",),
                raise_on_status=False,
            ),
        )
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def close(self):
        """Close the session if we own it."""
        if self._owns_session and self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _get(self, resource_path: str, params: dict | None = None) -> requests.Response:
        """Make GET request, mapping failures onto the sync error taxonomy."""
        url = f"{self.base_url}/{resource_path.lstrip('/')}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransientFetchError(resource_path, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise TransientFetchError(resource_path, type(e).__name__) from e

        if response.status_code >= 500:
            raise TransientFetchError(resource_path, f"HTTP {response.status_code}")
        return response

    # -------------------------------------------------------------------------
    # RemoteSource
    # -------------------------------------------------------------------------

    def list(self, resource_path: str, query: ListQuery) -> Page:
        """
        Fetch one page of a list resource.

        Args:
            resource_path: Resource path (e.g., "tracker/enrollments")
            query: Scope filters, page, page size and fields

        Returns:
            Page with instances and page count
        """
        response = self._get(resource_path, query.to_params())
        if not response.ok:
            raise RemoteError(resource_path, response.status_code, response.reason or "")

        try:
            page = self.parse_page(resource_path, response.json(), query.page_size, query.page)
        except (ValueError, ValidationError) as e:
            raise TransientFetchError(resource_path, f"unreadable response body: {e}") from e
        logger.debug(
            f"Fetched {resource_path} page {query.page}/{page.page_count} "
            f"({len(page.instances)} instances)"
        )
        return page

    def get_one(self, resource_path: str) -> dict[str, Any] | None:
        """
        Fetch a single resource.

        Args:
            resource_path: Resource path (e.g., "me")

        Returns:
            Record dict, or None on 404
        """
        response = self._get(resource_path)
        if response.status_code == 404:
            return None
        if not response.ok:
            raise RemoteError(resource_path, response.status_code, response.reason or "")
        try:
            data = response.json()
        except ValueError as e:
            raise TransientFetchError(resource_path, f"unreadable response body: {e}") from e
        if not isinstance(data, dict):
            raise TransientFetchError(resource_path, f"expected an object, got {type(data).__name__}")
        return data

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_page(resource_path: str, data: Any, page_size: int, page: int = 1) -> Page:
        """
        Normalize the server's paging envelopes into a Page.

        Supports the tracker envelope ``{"instances": [...], "pageCount": N}``,
        the metadata envelope ``{"pager": {"pageCount": N}, "<resource>": [...]}``
        and bare lists.

        When the envelope carries neither a page count nor a total, a full page
        reports one more page than the current one, so paging continues until
        a short or empty page comes back.

        Args:
            resource_path: Resource path (its last segment names the list key)
            data: Decoded JSON body
            page_size: Requested page size, used when only a total is reported
            page: Requested page index

        Returns:
            Page

        Raises:
            ValueError: If the body is not a list or an object
            ValidationError: If the instances or page count have the wrong shape
        """
        if isinstance(data, list):
            data = {"instances": data}
        if not isinstance(data, dict):
            raise ValueError(f"expected a list or an object, got {type(data).__name__}")

        resource_key = resource_path.rstrip("/").split("/")[-1]
        if "instances" in data:
            instances = data["instances"]
        elif isinstance(data.get(resource_key), list):
            instances = data[resource_key]
        else:
            instances = next(
                (v for k, v in data.items() if k not in _ENVELOPE_KEYS and isinstance(v, list)),
                [],
            )

        pager = data.get("pager") if isinstance(data.get("pager"), dict) else data
        page_count = pager.get("pageCount")
        if page_count is None and pager.get("total") is not None and page_size > 0:
            page_count = -(-int(pager["total"]) // page_size)
        if page_count is None:
            full = page_size > 0 and isinstance(instances, list) and len(instances) >= page_size
            page_count = page + 1 if full else page

        return Page(instances=instances, page_count=page_count)
