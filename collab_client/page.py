"""Paginated list results."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, List, Optional

if TYPE_CHECKING:
    from .http_client import HttpClient, HttpResponse


class Page:
    """One page of ``items`` with an optional link to the next page."""

    def __init__(self, response: "HttpResponse", client: "HttpClient") -> None:
        body = response.body if isinstance(response.body, dict) else {}
        self.items: List[Any] = list(body.get("items") or [])
        self.links = dict(response.links)
        self._client = client

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def has_next(self) -> bool:
        return "next" in self.links

    async def next(self) -> Optional["Page"]:
        """Fetch the next page, or None on the last page."""
        url = self.links.get("next")
        if not url:
            return None
        response = await self._client.request("GET", uri=url)
        return Page(response, self._client)
