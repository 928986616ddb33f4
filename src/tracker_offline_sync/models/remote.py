"""Request/response shapes exchanged with the remote source."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ListQuery(BaseModel):
    """Query for one page of a paginated list resource."""

    scope_filters: dict[str, str] = Field(default_factory=dict)
    page: int = 1
    page_size: int = 50
    fields: str | None = None
    total_pages: bool = True

    def to_params(self) -> dict[str, Any]:
        """Render as HTTP query parameters."""
        params: dict[str, Any] = dict(self.scope_filters)
        params["page"] = self.page
        params["pageSize"] = self.page_size
        if self.total_pages:
            params["totalPages"] = "true"
        if self.fields:
            params["fields"] = self.fields
        return params


class Page(BaseModel):
    """One page of a paginated list response.

    ``page_count`` is authoritative for the page it came with and may change
    between pages.
    """

    instances: list[dict[str, Any]] = Field(default_factory=list)
    page_count: int = Field(default=1, alias="pageCount")

    model_config = {"populate_by_name": True}
