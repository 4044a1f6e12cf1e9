"""Cursor based pagination with an in-memory page cache for one query."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..models import CursorPage, Title
from .catalog import FetchResult
from .query_composer import CatalogQuery

logger = logging.getLogger(__name__)

FetchTitlesPage = Callable[[CatalogQuery, "str | None"], Awaitable[FetchResult[Title]]]
AdmissionFilter = Callable[[Title], bool]


def admit_title(title: Title, *, year_ceiling: int) -> bool:
    """Local acceptance rule applied on top of the upstream filters."""

    if title.poster is None or not title.poster.url:
        return False
    return (title.year or 0) <= year_ceiling


class CursorPaginator:
    """Owns the loaded pages and continuation tokens of the active query.

    The page list is invalidated wholesale whenever a different query is
    loaded. Every fetch records the generation it was dispatched for and its
    response is dropped on arrival when the generation moved on meanwhile.
    """

    def __init__(
        self,
        fetch_page: FetchTitlesPage,
        *,
        year_ceiling: int,
        admission: AdmissionFilter | None = None,
    ):
        self._fetch_page = fetch_page
        self._year_ceiling = year_ceiling
        self._admission = admission
        self._query: CatalogQuery | None = None
        self._pages: list[CursorPage[Title]] = []
        self._seen_ids: set[str] = set()
        self._generation = 0
        self._inflight: dict[str, asyncio.Task[CursorPage[Title] | None]] = {}
        self.last_error: str | None = None

    @property
    def query(self) -> CatalogQuery | None:
        return self._query

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pages(self) -> tuple[CursorPage[Title], ...]:
        return tuple(self._pages)

    @property
    def tokens(self) -> tuple[str | None, ...]:
        return tuple(page.next_token for page in self._pages)

    @property
    def records(self) -> list[Title]:
        return [record for page in self._pages for record in page.records]

    @property
    def has_more(self) -> bool:
        return bool(self._pages) and self._pages[-1].next_token is not None

    @property
    def loading(self) -> bool:
        return any(not task.done() for task in self._inflight.values())

    def reset(self) -> None:
        """Forget the current query; responses still in flight will be discarded."""

        self._generation += 1
        self._query = None
        self._pages = []
        self._seen_ids = set()
        self._inflight = {}
        self.last_error = None

    async def load_first(self, query: CatalogQuery) -> CursorPage[Title] | None:
        """Restart pagination at page 0 for ``query``.

        Returns ``None`` when a newer query superseded this one before the
        response arrived.
        """

        self.reset()
        self._query = query
        generation = self._generation
        result = await self._fetch_page(query, None)
        if generation != self._generation:
            logger.debug("Discarding first page for superseded query %s", query)
            return None

        if result.error is not None:
            self.last_error = result.error
            page: CursorPage[Title] = CursorPage(error=True)
        else:
            page = self._admit(query, result)
        self._pages = [page]
        return page

    async def load_next(
        self,
        query: CatalogQuery | None = None,
        prior_token: str | None = None,
    ) -> CursorPage[Title] | None:
        """Fetch and append the page after the last loaded one.

        Returns ``None`` without fetching when there is nothing left to load,
        when ``query`` is not the active query, or when ``prior_token`` no
        longer names the next page. Concurrent calls for the same token share
        one request.
        """

        if self._query is None or (query is not None and query != self._query):
            return None
        if not self.has_more:
            return None
        token = self._pages[-1].next_token
        if token is None or (prior_token is not None and prior_token != token):
            return None

        task = self._inflight.get(token)
        if task is None:
            task = asyncio.create_task(
                self._load_after(self._query, token, self._generation, self._inflight)
            )
            self._inflight[token] = task
        return await asyncio.shield(task)

    async def _load_after(
        self,
        query: CatalogQuery,
        token: str,
        generation: int,
        inflight: dict[str, asyncio.Task[CursorPage[Title] | None]],
    ) -> CursorPage[Title] | None:
        try:
            result = await self._fetch_page(query, token)
        finally:
            inflight.pop(token, None)

        if generation != self._generation:
            logger.debug("Discarding page %s for superseded query %s", token, query)
            return None
        if result.error is not None:
            # Not committed: the same token stays available for a retry.
            self.last_error = result.error
            return CursorPage(next_token=token, error=True)

        page = self._admit(query, result)
        self._pages.append(page)
        return page

    def _admit(self, query: CatalogQuery, result: FetchResult[Title]) -> CursorPage[Title]:
        accepted: list[Title] = []
        rejected = 0
        for title in result.records:
            if title.id in self._seen_ids or not self._accepts(title):
                rejected += 1
                continue
            self._seen_ids.add(title.id)
            accepted.append(title)
        if rejected:
            logger.debug("Admission filter rejected %s titles", rejected)
        self.last_error = None
        next_token = result.next_token if query.paginated else None
        return CursorPage(records=tuple(accepted), next_token=next_token)

    def _accepts(self, title: Title) -> bool:
        if not admit_title(title, year_ceiling=self._year_ceiling):
            return False
        if self._admission is not None:
            return self._admission(title)
        return True
