"""Pydantic models describing catalog entities and their normalisation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, Mapping, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import (
    clean_text,
    coerce_float,
    coerce_int,
    coerce_positive_int,
    first_present,
    parse_year,
)

TitleKind = Literal[
    "movie",
    "series",
    "mini-series",
    "special",
    "tv-movie",
    "short",
    "video",
    "video-game",
]
SortKey = Literal["popularity", "release-date", "rating", "rating-count", "year"]
SortDirection = Literal["asc", "desc"]
BrowseMode = Literal["browse", "search"]

TITLE_KINDS: tuple[str, ...] = (
    "movie",
    "series",
    "mini-series",
    "special",
    "tv-movie",
    "short",
    "video",
    "video-game",
)
SORT_KEYS: tuple[str, ...] = ("popularity", "release-date", "rating", "rating-count", "year")
SORT_DIRECTIONS: tuple[str, ...] = ("asc", "desc")

# Upstream payload ``type`` values and filter tokens mapped onto ``TitleKind``.
UPSTREAM_KIND_MAP: dict[str, str] = {
    "movie": "movie",
    "tvseries": "series",
    "tv_series": "series",
    "tvminiseries": "mini-series",
    "tv_mini_series": "mini-series",
    "tvspecial": "special",
    "tv_special": "special",
    "tvmovie": "tv-movie",
    "tv_movie": "tv-movie",
    "short": "short",
    "tvshort": "short",
    "video": "video",
    "videogame": "video-game",
    "video_game": "video-game",
}

T = TypeVar("T")


def normalize_kind(value: Any) -> str | None:
    """Map an upstream type string or user supplied kind to ``TitleKind``."""

    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered in TITLE_KINDS:
        return lowered
    return UPSTREAM_KIND_MAP.get(lowered.replace("-", "_"))


class Image(BaseModel):
    """Artwork reference with optional dimensions."""

    model_config = ConfigDict(frozen=True)

    url: str
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_payload(cls, data: Any) -> "Image | None":
        if isinstance(data, str):
            data = {"url": data}
        if not isinstance(data, Mapping):
            return None
        url = clean_text(data.get("url"))
        if not url or not url.startswith("http"):
            return None
        return cls(
            url=url,
            width=coerce_positive_int(data.get("width")),
            height=coerce_positive_int(data.get("height")),
        )


class Rating(BaseModel):
    """Aggregate user rating."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0, le=10)
    vote_count: int = Field(default=0, ge=0)

    @classmethod
    def from_payload(cls, data: Any) -> "Rating | None":
        if not isinstance(data, Mapping):
            return None
        score = coerce_float(first_present(data, "aggregateRating", "score", "rating"))
        if score is None or not 0 <= score <= 10:
            return None
        votes = coerce_int(first_present(data, "voteCount", "votes"), default=0) or 0
        return cls(score=score, vote_count=max(votes, 0))


class Title(BaseModel):
    """A movie, series or similar catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: TitleKind = "movie"
    name: str
    original_name: str | None = None
    year: int | None = None
    genres: tuple[str, ...] = ()
    poster: Image | None = None
    rating: Rating | None = None
    runtime_seconds: int | None = None
    synopsis: str | None = None

    @property
    def is_series(self) -> bool:
        return self.kind == "series"

    @classmethod
    def from_payload(cls, data: Any) -> "Title | None":
        """Build a title from an upstream record, returning ``None`` when unusable."""

        if not isinstance(data, Mapping):
            return None
        title_id = clean_text(data.get("id"))
        if not title_id:
            return None

        kind = normalize_kind(first_present(data, "type", "titleType", "kind"))
        name = clean_text(first_present(data, "primaryTitle", "title", "name"))
        original = clean_text(first_present(data, "originalTitle", "originalName"))
        raw_genres = data.get("genres")
        genres: list[str] = []
        if isinstance(raw_genres, list):
            for entry in raw_genres:
                genre = clean_text(entry)
                if genre and genre not in genres:
                    genres.append(genre)

        return cls(
            id=title_id,
            kind=kind or "movie",
            name=name or original or title_id,
            original_name=original,
            year=parse_year(first_present(data, "startYear", "year", "releaseYear")),
            genres=tuple(genres),
            poster=Image.from_payload(first_present(data, "primaryImage", "poster", "image")),
            rating=Rating.from_payload(data.get("rating")),
            runtime_seconds=coerce_positive_int(data.get("runtimeSeconds")),
            synopsis=clean_text(first_present(data, "plot", "synopsis", "overview")),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape exposed to the view layer."""

        payload: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "genres": list(self.genres),
        }
        if self.original_name:
            payload["originalName"] = self.original_name
        if self.year is not None:
            payload["year"] = self.year
        if self.poster:
            payload["poster"] = self.poster.model_dump()
        if self.rating:
            payload["rating"] = {
                "score": self.rating.score,
                "voteCount": self.rating.vote_count,
            }
        if self.runtime_seconds:
            payload["runtimeSeconds"] = self.runtime_seconds
        if self.synopsis:
            payload["synopsis"] = self.synopsis
        return payload


class Episode(BaseModel):
    """A single installment of a series title."""

    model_config = ConfigDict(frozen=True)

    id: str
    season: int = Field(ge=1)
    episode: int = Field(ge=1)
    title: str
    synopsis: str | None = None
    runtime_seconds: int | None = None
    rating: Rating | None = None
    still: Image | None = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.season, self.episode)

    @classmethod
    def from_payload(cls, data: Any) -> "Episode | None":
        if not isinstance(data, Mapping):
            return None
        # Season numbers arrive under several names and as strings or numbers.
        season = coerce_positive_int(
            first_present(data, "season", "seasonNumber", "SeasonNumber")
        ) or 1
        number = coerce_positive_int(
            first_present(data, "episodeNumber", "episode", "EpisodeNumber")
        )
        if number is None:
            return None
        episode_id = clean_text(data.get("id")) or f"s{season}e{number}"
        return cls(
            id=episode_id,
            season=season,
            episode=number,
            title=clean_text(first_present(data, "title", "name")) or f"Episode {number}",
            synopsis=clean_text(first_present(data, "plot", "synopsis")),
            runtime_seconds=coerce_positive_int(data.get("runtimeSeconds")),
            rating=Rating.from_payload(data.get("rating")),
            still=Image.from_payload(data.get("primaryImage")),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "season": self.season,
            "episode": self.episode,
            "title": self.title,
        }
        if self.synopsis:
            payload["synopsis"] = self.synopsis
        if self.runtime_seconds:
            payload["runtimeSeconds"] = self.runtime_seconds
        if self.rating:
            payload["rating"] = {
                "score": self.rating.score,
                "voteCount": self.rating.vote_count,
            }
        if self.still:
            payload["still"] = self.still.model_dump()
        return payload


class Person(BaseModel):
    """Person referenced by a credit."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: Image | None = None
    professions: tuple[str, ...] = ()
    alternative_names: tuple[str, ...] = ()


class Credit(BaseModel):
    """A person's role association with a title."""

    model_config = ConfigDict(frozen=True)

    category: str = "other"
    person: Person
    characters: tuple[str, ...] = ()
    episode_count: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.category, self.person.id)

    @classmethod
    def from_payload(cls, data: Any) -> "Credit | None":
        if not isinstance(data, Mapping):
            return None
        raw_person = first_present(data, "name", "person")
        if not isinstance(raw_person, Mapping):
            return None
        person_id = clean_text(raw_person.get("id"))
        if not person_id:
            return None
        person = Person(
            id=person_id,
            name=clean_text(first_present(raw_person, "displayName", "name")) or person_id,
            image=Image.from_payload(raw_person.get("primaryImage")),
            professions=_string_tuple(raw_person.get("primaryProfessions")),
            alternative_names=_string_tuple(raw_person.get("alternativeNames")),
        )
        episode_count = coerce_int(data.get("episodeCount"))
        return cls(
            category=clean_text(data.get("category")) or "other",
            person=person,
            characters=_string_tuple(data.get("characters")),
            episode_count=episode_count if episode_count and episode_count > 0 else None,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "category": self.category,
            "person": {
                "id": self.person.id,
                "name": self.person.name,
                "professions": list(self.person.professions),
            },
        }
        if self.person.image:
            payload["person"]["image"] = self.person.image.model_dump()
        if self.characters:
            payload["characters"] = list(self.characters)
        if self.episode_count is not None:
            payload["episodeCount"] = self.episode_count
        return payload


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    cleaned = (clean_text(entry) for entry in value)
    return tuple(entry for entry in cleaned if entry)


def normalize_interest(data: Any) -> str | None:
    """Return a genre/interest display name from a raw upstream entry."""

    if isinstance(data, str):
        return clean_text(data)
    if isinstance(data, Mapping):
        return clean_text(first_present(data, "name", "title", "id"))
    return None


@dataclass(frozen=True, slots=True)
class EpisodeCoordinate:
    """Season/episode pair identifying an episode of the selected series."""

    season: int
    episode: int

    @classmethod
    def parse(cls, season: Any, episode: Any) -> "EpisodeCoordinate | None":
        """Return a coordinate when both parts are positive integers."""

        parsed_season = coerce_positive_int(season)
        parsed_episode = coerce_positive_int(episode)
        if parsed_season is None or parsed_episode is None:
            return None
        return cls(parsed_season, parsed_episode)


@dataclass(frozen=True, slots=True)
class CursorPage(Generic[T]):
    """An ordered batch of records plus the token for the next batch."""

    records: tuple[T, ...] = ()
    next_token: str | None = None
    error: bool = False

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


class FilterSet(BaseModel):
    """User supplied catalog filters.

    Invalid enum or numeric values are dropped instead of rejected so the
    composer never has to deal with an impossible combination.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: TitleKind | None = Field(
        default=None, validation_alias=AliasChoices("kind", "type", "titleType")
    )
    genre: str | None = Field(
        default=None, validation_alias=AliasChoices("genre", "genres")
    )
    year_min: int | None = Field(
        default=None, validation_alias=AliasChoices("year_min", "yearMin", "startYear")
    )
    year_max: int | None = Field(
        default=None, validation_alias=AliasChoices("year_max", "yearMax", "endYear")
    )
    min_rating: float | None = Field(
        default=None,
        validation_alias=AliasChoices("min_rating", "minRating", "minAggregateRating"),
    )
    min_vote_count: int | None = Field(
        default=None,
        validation_alias=AliasChoices("min_vote_count", "minVotes", "minVoteCount"),
    )
    sort_key: SortKey | None = Field(
        default=None, validation_alias=AliasChoices("sort_key", "sort", "sortBy")
    )
    sort_direction: SortDirection | None = Field(
        default=None,
        validation_alias=AliasChoices("sort_direction", "order", "sortOrder"),
    )
    query: str | None = Field(
        default=None, validation_alias=AliasChoices("query", "q", "search")
    )

    @property
    def mode(self) -> BrowseMode:
        return "search" if self.query else "browse"

    @classmethod
    def from_request(cls, params: Mapping[str, Any]) -> "FilterSet":
        return cls.model_validate(dict(params))

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and value.strip().lower() in {"", "all"}):
            return None
        return normalize_kind(value)

    @field_validator("sort_key", mode="before")
    @classmethod
    def _parse_sort_key(cls, value: object) -> object:
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower().replace("_", "-")
        if lowered.startswith("sort-by-"):
            lowered = lowered[len("sort-by-"):]
        aliases = {"user-rating": "rating", "user-rating-count": "rating-count"}
        lowered = aliases.get(lowered, lowered)
        return lowered if lowered in SORT_KEYS else None

    @field_validator("sort_direction", mode="before")
    @classmethod
    def _parse_direction(cls, value: object) -> object:
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        return lowered if lowered in SORT_DIRECTIONS else None

    @field_validator("year_min", "year_max", "min_vote_count", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        number = coerce_int(value)
        if number is None or number < 0:
            return None
        return number

    @field_validator("min_rating", mode="before")
    @classmethod
    def _parse_rating(cls, value: object) -> object:
        number = coerce_float(value)
        if number is None:
            return None
        return min(max(number, 0.0), 10.0)

    @field_validator("genre", mode="before")
    @classmethod
    def _parse_genre(cls, value: object) -> object:
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        genre = clean_text(value)
        if genre is None or genre.lower() == "all":
            return None
        return genre

    @field_validator("query", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        return clean_text(value)
