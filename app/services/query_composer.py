"""Translate user filter input into validated upstream catalog queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import Settings
from ..models import BrowseMode, FilterSet

logger = logging.getLogger(__name__)

DEFAULT_SORT_KEY = "release-date"
DEFAULT_SORT_DIRECTION = "desc"

UPSTREAM_KIND_TOKENS: dict[str, str] = {
    "movie": "MOVIE",
    "series": "TV_SERIES",
    "mini-series": "TV_MINI_SERIES",
    "special": "TV_SPECIAL",
    "tv-movie": "TV_MOVIE",
    "short": "SHORT",
    "video": "VIDEO",
    "video-game": "VIDEO_GAME",
}
UPSTREAM_SORT_TOKENS: dict[str, str] = {
    "popularity": "SORT_BY_POPULARITY",
    "release-date": "SORT_BY_RELEASE_DATE",
    "rating": "SORT_BY_USER_RATING",
    "rating-count": "SORT_BY_USER_RATING_COUNT",
    "year": "SORT_BY_YEAR",
}
UPSTREAM_DIRECTION_TOKENS: dict[str, str] = {"asc": "ASC", "desc": "DESC"}


@dataclass(frozen=True)
class CatalogQuery:
    """Upstream request description for the catalog list or search endpoint.

    Instances are hashable; two queries compare equal exactly when they would
    produce the same upstream request, which makes them usable as the query
    identity when deciding whether a late response is still wanted.
    """

    mode: BrowseMode
    fields: tuple[tuple[str, str], ...]

    @property
    def paginated(self) -> bool:
        return self.mode == "browse"

    def get(self, key: str) -> str | None:
        for name, value in self.fields:
            if name == key:
                return value
        return None

    def params(self, page_token: str | None = None) -> list[tuple[str, str]]:
        """Return request parameters, adding the continuation token when paginated."""

        params = list(self.fields)
        if page_token and self.paginated:
            params.append(("pageToken", page_token))
        return params

    def as_dict(self) -> dict[str, str]:
        return dict(self.fields)


def compose_query(
    filters: FilterSet,
    *,
    year_ceiling: int,
    vote_floor: int,
    page_size: int = 25,
    search_limit: int = 50,
) -> CatalogQuery:
    """Build the upstream query for ``filters`` enforcing the catalog invariants."""

    if filters.query:
        return CatalogQuery(
            mode="search",
            fields=(("query", filters.query), ("limit", str(search_limit))),
        )

    fields: list[tuple[str, str]] = [("limit", str(page_size))]

    kind_token = UPSTREAM_KIND_TOKENS.get(filters.kind or "")
    if kind_token:
        fields.append(("types", kind_token))
    if filters.genre:
        fields.append(("genres", filters.genre))

    year_max = year_ceiling
    if filters.year_max is not None:
        year_max = min(filters.year_max, year_ceiling)
    year_min = filters.year_min
    if year_min is not None and year_min > year_max:
        logger.debug("Dropping start year %s above end year %s", year_min, year_max)
        year_min = None
    if year_min is not None:
        fields.append(("startYear", str(year_min)))
    fields.append(("endYear", str(year_max)))

    if filters.min_rating is not None and filters.min_rating > 0:
        fields.append(("minAggregateRating", _format_rating(filters.min_rating)))
    fields.append(("minVoteCount", str(max(filters.min_vote_count or 0, vote_floor))))

    sort_token = UPSTREAM_SORT_TOKENS.get(filters.sort_key or DEFAULT_SORT_KEY)
    direction_token = UPSTREAM_DIRECTION_TOKENS.get(
        filters.sort_direction or DEFAULT_SORT_DIRECTION
    )
    fields.append(("sortBy", sort_token or UPSTREAM_SORT_TOKENS[DEFAULT_SORT_KEY]))
    fields.append(
        ("sortOrder", direction_token or UPSTREAM_DIRECTION_TOKENS[DEFAULT_SORT_DIRECTION])
    )
    return CatalogQuery(mode="browse", fields=tuple(fields))


def _format_rating(value: float) -> str:
    text = f"{value:.1f}"
    return text[:-2] if text.endswith(".0") else text


class QueryComposer:
    """Settings-bound wrapper around :func:`compose_query`."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def year_ceiling(self) -> int:
        return self._settings.catalog_year_ceiling

    def compose(self, filters: FilterSet) -> CatalogQuery:
        return compose_query(
            filters,
            year_ceiling=self._settings.catalog_year_ceiling,
            vote_floor=self._settings.catalog_min_vote_floor,
            page_size=self._settings.catalog_page_size,
            search_limit=self._settings.search_result_limit,
        )
