"""Bounded fetch-all loop for paginated secondary resources."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Hashable, Iterable, TypeVar

from .catalog import FetchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchPage = Callable[["str | None"], Awaitable[FetchResult[T]]]
KeyFunc = Callable[[T], Hashable]


@dataclass(slots=True)
class AggregateResult(Generic[T]):
    """Merged records from one aggregator run.

    ``truncated`` marks a run stopped by the page ceiling while the upstream
    still advertised more pages; that is a partial success, not an error.
    ``next_token`` is where a later "load more" run resumes.
    """

    records: list[T] = field(default_factory=list)
    next_token: str | None = None
    pages_fetched: int = 0
    truncated: bool = False
    error: str | None = None
    total: int | None = None

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


def merge_unique(
    existing: Iterable[T], incoming: Iterable[T], key: KeyFunc[T]
) -> list[T]:
    """Append ``incoming`` records whose key is not yet present; first wins."""

    merged = list(existing)
    seen = {key(record) for record in merged}
    for record in incoming:
        record_key = key(record)
        if record_key in seen:
            continue
        seen.add(record_key)
        merged.append(record)
    return merged


async def aggregate(
    fetch_page: FetchPage[T],
    key: KeyFunc[T],
    *,
    max_pages: int,
    start_token: str | None = None,
    existing: Iterable[T] = (),
    total: int | None = None,
) -> AggregateResult[T]:
    """Follow continuation tokens until exhausted or ``max_pages`` were fetched.

    Passing ``start_token`` together with the records gathered so far resumes
    a previous run instead of restarting from the first page.
    """

    if max_pages < 1:
        raise ValueError("max_pages must be at least 1")

    records = merge_unique((), existing, key)
    token = start_token
    pages_fetched = 0

    for _ in range(max_pages):
        result = await fetch_page(token)
        if result.error is not None:
            logger.warning(
                "Stopping aggregation after %s pages: %s", pages_fetched, result.error
            )
            return AggregateResult(
                records=records,
                next_token=token,
                pages_fetched=pages_fetched,
                error=result.error,
                total=total,
            )

        pages_fetched += 1
        records = merge_unique(records, result.records, key)
        if total is None and result.total is not None:
            total = result.total
        token = result.next_token
        if token is None:
            return AggregateResult(
                records=records,
                pages_fetched=pages_fetched,
                total=total,
            )

    logger.info(
        "Page ceiling of %s reached; returning %s records with more available",
        max_pages,
        len(records),
    )
    return AggregateResult(
        records=records,
        next_token=token,
        pages_fetched=pages_fetched,
        truncated=True,
        total=total,
    )
