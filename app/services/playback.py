"""Resolve embeddable player URLs for a title, episode and provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote, urlencode

from ..models import EpisodeCoordinate, Title

DEFAULT_PROVIDER = "vidsrc"


class PlaybackError(Exception):
    """Base class for playback resolution failures."""


class UnknownProviderError(PlaybackError):
    """Raised when a provider name is not in the known set."""


class CoordinateRequiredError(PlaybackError):
    """Raised when a series title is resolved without an episode coordinate."""


@dataclass(frozen=True)
class ProviderTemplate:
    """URL scheme of one streaming backend."""

    name: str
    label: str
    movie_url: str
    series_url: str
    movie_flags: Mapping[str, str]
    series_flags: Mapping[str, str]


PROVIDERS: Mapping[str, ProviderTemplate] = {
    template.name: template
    for template in (
        ProviderTemplate(
            name="vidsrc",
            label="VidSrc",
            movie_url="https://vidsrc.to/embed/movie/{id}",
            series_url="https://vidsrc.to/embed/tv/{id}/{season}/{episode}",
            movie_flags={},
            series_flags={},
        ),
        ProviderTemplate(
            name="vidfast",
            label="VidFast",
            movie_url="https://vidfast.pro/movie/{id}",
            series_url="https://vidfast.pro/tv/{id}/{season}/{episode}",
            movie_flags={"autoPlay": "true", "title": "false", "poster": "false"},
            series_flags={
                "autoPlay": "true",
                "title": "false",
                "poster": "false",
                "nextButton": "true",
                "autoNext": "true",
            },
        ),
    )
}


@dataclass(frozen=True, slots=True)
class PlaybackTarget:
    """Embed URL plus the key identifying the player instance.

    ``mount_key`` changes whenever provider, title or episode change, so a
    view keyed on it remounts the third-party player instead of swapping
    the source in place.
    """

    provider: str
    url: str
    mount_key: str

    def to_payload(self) -> dict[str, Any]:
        return {"provider": self.provider, "url": self.url, "mountKey": self.mount_key}


def parse_provider(value: Any, *, default: str = DEFAULT_PROVIDER) -> str:
    """Normalise a stored or user supplied provider name, falling back to ``default``."""

    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in PROVIDERS:
            return lowered
    return default


def resolve_playback(
    title: Title,
    coordinate: EpisodeCoordinate | None,
    provider: str,
) -> PlaybackTarget:
    """Map (title, episode coordinate, provider) to an embed target."""

    template = PROVIDERS.get(provider)
    if template is None:
        raise UnknownProviderError(f"Unknown playback provider: {provider}")

    encoded_id = quote(title.id, safe="")
    if title.is_series:
        if coordinate is None:
            raise CoordinateRequiredError(
                f"Series {title.id} needs a season and episode to play"
            )
        url = template.series_url.format(
            id=encoded_id, season=coordinate.season, episode=coordinate.episode
        )
        flags = template.series_flags
        mount_key = f"{provider}-{title.id}-{coordinate.season}-{coordinate.episode}"
    else:
        url = template.movie_url.format(id=encoded_id)
        flags = template.movie_flags
        mount_key = f"{provider}-{title.id}"

    if flags:
        url = f"{url}?{urlencode(list(flags.items()))}"
    return PlaybackTarget(provider=provider, url=url, mount_key=mount_key)
