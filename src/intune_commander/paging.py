from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .errors import raise_if_cancelled
from .graph_client import GraphClient

NEXT_LINK = "@odata.nextLink"

ItemCallback = Callable[[Dict[str, Any]], bool]


class PageIterator:
    """Walks a Graph collection response page by page.

    ``first_page`` is the decoded body of the initial request. Continuation
    pages are requested one at a time by following ``@odata.nextLink`` until the
    service stops returning one. ``headers`` are resent with every continuation
    request (``ConsistencyLevel`` must accompany each page of an advanced
    query).
    """

    def __init__(
        self,
        graph: GraphClient,
        first_page: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.graph = graph
        self.first_page = first_page or {}
        self.headers = headers
        self.cancel_event = cancel_event

    async def pages(self) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield each page's items, restarting from the first page on every call."""
        page = self.first_page
        while True:
            yield list(page.get("value") or [])
            next_link = page.get(NEXT_LINK)
            if not next_link:
                return
            raise_if_cancelled(self.cancel_event, "Paged Graph query")
            page = await self.graph.get_url(next_link, headers=self.headers)

    async def iterate(self, callback: ItemCallback) -> bool:
        """Feed every item to ``callback`` until it returns False.

        Returns True when the whole collection was consumed, False when the
        callback asked to stop.
        """
        pages = self.pages()
        try:
            async for items in pages:
                for item in items:
                    if not callback(item):
                        return False
        finally:
            await pages.aclose()
        return True
