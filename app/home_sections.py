"""Fixed home page sections loaded alongside the browse view."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class HomeSectionDefinition:
    """Describes a curated lane shown on the landing page.

    ``filters`` holds raw filter input and goes through the same composer as
    user supplied filters, so section presets are subject to the year ceiling
    and vote floor too.
    """

    key: str
    title: str
    description: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    current_year_only: bool = False
    preferred_kind: str | None = None


HOME_SECTIONS: tuple[HomeSectionDefinition, ...] = (
    HomeSectionDefinition(
        key="latest-releases",
        title="Latest Releases",
        description="Titles released during the current catalog year, newest first.",
        filters={"sort_key": "release-date", "sort_direction": "desc"},
        current_year_only=True,
        preferred_kind="movie",
    ),
    HomeSectionDefinition(
        key="top-rated-movies",
        title="Top Rated Movies",
        description="Highest rated feature films with a substantial number of votes.",
        filters={
            "kind": "movie",
            "min_vote_count": 25_000,
            "sort_key": "rating",
            "sort_direction": "desc",
        },
    ),
    HomeSectionDefinition(
        key="popular-series",
        title="Popular Series",
        description="Series people are watching right now.",
        filters={"kind": "series", "sort_key": "popularity", "sort_direction": "desc"},
    ),
)

