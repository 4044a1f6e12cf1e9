"""Client for the upstream catalog service (imdbapi.dev compatible)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, TypeVar
from urllib.parse import quote

import httpx

from ..config import Settings
from ..models import Credit, Episode, Title, normalize_interest
from .query_composer import CatalogQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOTAL_COUNT_PATHS: tuple[tuple[str, ...], ...] = (
    ("totalCredits",),
    ("total",),
    ("count",),
    ("pagination", "total"),
    ("meta", "total"),
)


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Normalised records from one upstream call plus error information."""

    records: list[T] = field(default_factory=list)
    next_token: str | None = None
    total: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class LookupResult:
    """Outcome of a lookup-by-id call."""

    title: Title | None = None
    not_found: bool = False
    error: str | None = None


@dataclass(slots=True)
class _Response:
    data: Any = None
    status: int | None = None
    error: str | None = None


class CatalogClient:
    """Thin wrapper around the catalog HTTP API.

    Every public method converts transport failures, non-2xx statuses and
    malformed payloads into an empty result carrying an error string, so
    callers never see an exception from the network layer.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        retry_backoff_seconds: float = 0.5,
    ):
        self._settings = settings
        self._client = http_client
        self._max_retries = settings.catalog_retry_limit
        self._retry_backoff = retry_backoff_seconds

    async def list_titles(
        self, query: CatalogQuery, page_token: str | None = None
    ) -> FetchResult[Title]:
        """Fetch one page of titles for a browse query or the results of a search."""

        path = "/titles" if query.paginated else "/search/titles"
        response = await self._get(path, params=query.params(page_token))
        result = self._records_from(
            response, ("titles",), Title.from_payload, context=f"titles {path}"
        )
        if not query.paginated:
            result.next_token = None
        return result

    async def lookup_title(self, title_id: str) -> LookupResult:
        """Resolve a single title, trying the known lookup URL shapes in order."""

        title_id = (title_id or "").strip()
        if not title_id:
            return LookupResult(not_found=True)

        encoded = quote(title_id, safe="")
        candidates: list[tuple[str, dict[str, str] | None]] = [
            (f"/titles/{encoded}", None),
            ("/titles", {"id": title_id}),
            ("/titles", {"ids": title_id}),
        ]
        last_error: str | None = None
        saw_not_found = False
        for path, params in candidates:
            response = await self._get(path, params=params)
            if response.error is not None:
                if response.status == 404:
                    saw_not_found = True
                last_error = response.error
                continue
            title = self._title_from_lookup(response.data, title_id)
            if title is not None:
                return LookupResult(title=title)
            saw_not_found = True

        if saw_not_found:
            logger.info("Title %s could not be resolved upstream", title_id)
            return LookupResult(not_found=True, error=last_error)
        return LookupResult(error=last_error or "lookup failed")

    async def list_episodes(
        self, title_id: str, page_token: str | None = None
    ) -> FetchResult[Episode]:
        params: dict[str, str] = {"pageSize": str(self._settings.episode_page_size)}
        if page_token:
            params["pageToken"] = page_token
        response = await self._get(
            f"/titles/{quote(title_id, safe='')}/episodes", params=params
        )
        return self._records_from(
            response, ("episodes",), Episode.from_payload, context=f"episodes {title_id}"
        )

    async def list_credits(
        self, title_id: str, page_token: str | None = None
    ) -> FetchResult[Credit]:
        params: dict[str, str] = {"pageSize": str(self._settings.credit_page_size)}
        if page_token:
            params["pageToken"] = page_token
        response = await self._get(
            f"/titles/{quote(title_id, safe='')}/credits", params=params
        )
        result = self._records_from(
            response,
            ("credits", "cast"),
            Credit.from_payload,
            context=f"credits {title_id}",
        )
        if isinstance(response.data, Mapping):
            result.total = extract_total_count(response.data)
        return result

    async def list_interests(self) -> FetchResult[str]:
        """Return the de-duplicated, sorted list of genre/interest names."""

        response = await self._get("/interests")
        result = self._records_from(
            response, ("interests",), normalize_interest, context="interests"
        )
        unique = sorted(set(result.records), key=str.casefold)
        result.records = unique
        result.next_token = None
        return result

    async def _get(
        self, path: str, params: Mapping[str, str] | list[tuple[str, str]] | None = None
    ) -> _Response:
        attempt = 0
        while True:
            try:
                response = await self._client.get(
                    path, params=params, headers={"accept": "application/json"}
                )
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._retry_backoff * attempt
                    logger.info(
                        "Transient error talking to the catalog (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("Catalog request %s failed: %s", path, exc)
                return _Response(error=f"transport error: {exc.__class__.__name__}")

            if 500 <= response.status_code < 600:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._retry_backoff * attempt
                    logger.info(
                        "Catalog 5xx for %s. Retrying in %.1fs", path, backoff
                    )
                    await asyncio.sleep(backoff)
                    continue
            break

        if response.status_code >= 400:
            logger.warning(
                "Catalog request %s failed with status %s: %s",
                path,
                response.status_code,
                response.text[:300],
            )
            return _Response(
                status=response.status_code,
                error=f"upstream status {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON catalog response for %s", path)
            return _Response(status=response.status_code, error="malformed payload")
        return _Response(data=data, status=response.status_code)

    @staticmethod
    def _records_from(
        response: _Response,
        keys: tuple[str, ...],
        normalize: Callable[[Any], T | None],
        *,
        context: str,
    ) -> FetchResult[T]:
        if response.error is not None:
            return FetchResult(error=response.error)

        data = response.data
        raw_records: Any
        next_token: Any = None
        if isinstance(data, list):
            raw_records = data
        elif isinstance(data, Mapping):
            raw_records = []
            # Empty repeated fields are omitted from upstream payloads entirely.
            for key in keys:
                if key in data:
                    raw_records = data[key]
                    break
            next_token = data.get("nextPageToken")
        else:
            logger.warning("Unexpected catalog response structure for %s", context)
            return FetchResult(error="malformed payload")

        if not isinstance(raw_records, list):
            logger.warning("Unexpected record container for %s", context)
            return FetchResult(error="malformed payload")

        records: list[T] = []
        skipped = 0
        for entry in raw_records:
            record = normalize(entry)
            if record is None:
                skipped += 1
                continue
            records.append(record)
        if skipped:
            logger.debug("Skipped %s unusable records for %s", skipped, context)

        token = next_token.strip() if isinstance(next_token, str) else None
        return FetchResult(records=records, next_token=token or None)

    @staticmethod
    def _title_from_lookup(data: Any, title_id: str) -> Title | None:
        if not isinstance(data, Mapping):
            return None
        nested = data.get("title")
        if isinstance(nested, Mapping):
            return Title.from_payload(nested)
        titles = data.get("titles")
        if isinstance(titles, list):
            # List endpoints may ignore the id filter and return a generic page.
            for entry in titles:
                title = Title.from_payload(entry)
                if title is not None and title.id == title_id:
                    return title
            return None
        return Title.from_payload(data)


def extract_total_count(data: Mapping[str, Any]) -> int | None:
    """Best-effort total record count; display data only."""

    for path in TOTAL_COUNT_PATHS:
        value: Any = data
        for key in path:
            if not isinstance(value, Mapping):
                value = None
                break
            value = value.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
    return None
