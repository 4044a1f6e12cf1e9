"""Tests for the cursor paginator."""

from __future__ import annotations

import asyncio

import pytest

from app.models import FilterSet, Image, Title
from app.services.catalog import FetchResult
from app.services.pagination import CursorPaginator, admit_title
from app.services.query_composer import CatalogQuery, compose_query


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_title(title_id: str, *, year: int | None = 2001, poster: bool = True) -> Title:
    return Title(
        id=title_id,
        name=title_id,
        year=year,
        poster=Image(url=f"https://img.test/{title_id}.jpg") if poster else None,
    )


def browse_query(**filters) -> CatalogQuery:
    return compose_query(FilterSet(**filters), year_ceiling=2025, vote_floor=100)


class ScriptedFetcher:
    """Serves canned pages keyed by continuation token."""

    def __init__(self, pages: dict[str | None, FetchResult[Title]]):
        self.pages = pages
        self.calls: list[tuple[CatalogQuery, str | None]] = []
        self.gates: dict[str | None, asyncio.Event] = {}

    async def __call__(self, query: CatalogQuery, token: str | None) -> FetchResult[Title]:
        self.calls.append((query, token))
        gate = self.gates.get(token)
        if gate is not None:
            await gate.wait()
        result = self.pages[token]
        return FetchResult(
            records=list(result.records), next_token=result.next_token, error=result.error
        )


def test_admission_requires_poster_and_year_within_ceiling() -> None:
    assert admit_title(make_title("a"), year_ceiling=2025)
    assert admit_title(make_title("b", year=None), year_ceiling=2025)
    assert not admit_title(make_title("c", poster=False), year_ceiling=2025)
    assert not admit_title(make_title("d", year=2026), year_ceiling=2025)


@pytest.mark.anyio("asyncio")
async def test_pages_accumulate_and_drop_duplicates() -> None:
    fetcher = ScriptedFetcher(
        {
            None: FetchResult(records=[make_title("a"), make_title("b")], next_token="t1"),
            "t1": FetchResult(
                records=[make_title("b"), make_title("c", poster=False), make_title("d")],
                next_token=None,
            ),
        }
    )
    paginator = CursorPaginator(fetcher, year_ceiling=2025)

    await paginator.load_first(browse_query())
    assert paginator.has_more
    second = await paginator.load_next()

    assert second is not None
    assert [title.id for title in second.records] == ["d"]
    assert [title.id for title in paginator.records] == ["a", "b", "d"]
    assert paginator.tokens == ("t1", None)
    assert not paginator.has_more
    assert await paginator.load_next() is None
    assert len(fetcher.calls) == 2


@pytest.mark.anyio("asyncio")
async def test_concurrent_next_requests_share_one_fetch() -> None:
    fetcher = ScriptedFetcher(
        {
            None: FetchResult(records=[make_title("a")], next_token="t1"),
            "t1": FetchResult(records=[make_title("b")], next_token="t2"),
        }
    )
    paginator = CursorPaginator(fetcher, year_ceiling=2025)
    await paginator.load_first(browse_query())

    gate = asyncio.Event()
    fetcher.gates["t1"] = gate
    first = asyncio.create_task(paginator.load_next())
    second = asyncio.create_task(paginator.load_next())
    await asyncio.sleep(0)
    assert paginator.loading
    gate.set()
    results = await asyncio.gather(first, second)

    assert results[0] is results[1]
    assert [token for _, token in fetcher.calls] == [None, "t1"]
    assert len(paginator.pages) == 2


@pytest.mark.anyio("asyncio")
async def test_late_page_for_superseded_query_is_discarded() -> None:
    fetcher = ScriptedFetcher(
        {
            None: FetchResult(records=[make_title("a")], next_token="t1"),
            "t1": FetchResult(records=[make_title("stale")], next_token="t2"),
        }
    )
    paginator = CursorPaginator(fetcher, year_ceiling=2025)
    await paginator.load_first(browse_query(kind="movie"))

    gate = asyncio.Event()
    fetcher.gates["t1"] = gate
    pending = asyncio.create_task(paginator.load_next())
    await asyncio.sleep(0)

    fetcher.pages[None] = FetchResult(records=[make_title("fresh")], next_token=None)
    await paginator.load_first(browse_query(kind="series"))
    gate.set()

    assert await pending is None
    assert [title.id for title in paginator.records] == ["fresh"]
    assert paginator.query == browse_query(kind="series")


@pytest.mark.anyio("asyncio")
async def test_first_page_of_replaced_query_is_discarded() -> None:
    fetcher = ScriptedFetcher({None: FetchResult(records=[make_title("a")])})
    paginator = CursorPaginator(fetcher, year_ceiling=2025)

    gate = asyncio.Event()
    fetcher.gates[None] = gate
    stale = asyncio.create_task(paginator.load_first(browse_query(genre="Drama")))
    await asyncio.sleep(0)
    del fetcher.gates[None]
    fresh = await paginator.load_first(browse_query(genre="Comedy"))
    gate.set()

    assert await stale is None
    assert fresh is not None
    assert paginator.generation == 2
    assert len(paginator.pages) == 1


@pytest.mark.anyio("asyncio")
async def test_failed_next_page_is_not_committed_and_can_be_retried() -> None:
    fetcher = ScriptedFetcher(
        {
            None: FetchResult(records=[make_title("a")], next_token="t1"),
            "t1": FetchResult(error="upstream status 502"),
        }
    )
    paginator = CursorPaginator(fetcher, year_ceiling=2025)
    await paginator.load_first(browse_query())

    failed = await paginator.load_next()
    assert failed is not None and failed.error
    assert paginator.last_error == "upstream status 502"
    assert len(paginator.pages) == 1
    assert paginator.has_more

    fetcher.pages["t1"] = FetchResult(records=[make_title("b")])
    retried = await paginator.load_next()
    assert retried is not None and not retried.error
    assert paginator.last_error is None
    assert [title.id for title in paginator.records] == ["a", "b"]


@pytest.mark.anyio("asyncio")
async def test_failed_first_page_commits_empty_error_page() -> None:
    fetcher = ScriptedFetcher({None: FetchResult(error="transport error: ConnectError")})
    paginator = CursorPaginator(fetcher, year_ceiling=2025)

    page = await paginator.load_first(browse_query())

    assert page is not None and page.error
    assert paginator.records == []
    assert not paginator.has_more


@pytest.mark.anyio("asyncio")
async def test_search_queries_never_paginate() -> None:
    fetcher = ScriptedFetcher({None: FetchResult(records=[make_title("a")], next_token="x")})
    paginator = CursorPaginator(fetcher, year_ceiling=2025)

    page = await paginator.load_first(browse_query(query="heat"))

    assert page is not None and page.next_token is None
    assert await paginator.load_next() is None


@pytest.mark.anyio("asyncio")
async def test_stale_prior_token_does_not_fetch() -> None:
    fetcher = ScriptedFetcher({None: FetchResult(records=[make_title("a")], next_token="t1")})
    paginator = CursorPaginator(fetcher, year_ceiling=2025)
    await paginator.load_first(browse_query())

    assert await paginator.load_next(prior_token="older") is None
    assert await paginator.load_next(query=browse_query(kind="movie")) is None
    assert len(fetcher.calls) == 1


@pytest.mark.anyio("asyncio")
async def test_custom_admission_filter_is_applied() -> None:
    fetcher = ScriptedFetcher(
        {None: FetchResult(records=[make_title("keep"), make_title("skip")])}
    )
    paginator = CursorPaginator(
        fetcher, year_ceiling=2025, admission=lambda title: title.id != "skip"
    )

    await paginator.load_first(browse_query())

    assert [title.id for title in paginator.records] == ["keep"]
