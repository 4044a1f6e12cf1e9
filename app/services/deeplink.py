"""Two-way mapping between the session selection and the shareable URL."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit

from ..models import EpisodeCoordinate, Title
from ..utils import clean_text, coerce_positive_int

TITLE_PARAM = "title"
SEASON_PARAM = "s"
EPISODE_PARAM = "e"
SELECTION_PARAMS = frozenset({TITLE_PARAM, SEASON_PARAM, EPISODE_PARAM})

NavigationMode = Literal["push", "replace"]


@dataclass(frozen=True, slots=True)
class DeepLink:
    """Selection encoded in a URL: ``?title=<id>&s=<season>&e=<episode>``.

    ``season``/``episode`` are kept as parsed even though they only mean
    something once the title is known to be a series.
    """

    title_id: str | None = None
    season: int | None = None
    episode: int | None = None

    @property
    def coordinate(self) -> EpisodeCoordinate | None:
        if self.season is None or self.episode is None:
            return None
        return EpisodeCoordinate(self.season, self.episode)

    @classmethod
    def from_selection(
        cls, title: Title | None, coordinate: EpisodeCoordinate | None = None
    ) -> "DeepLink":
        if title is None:
            return cls()
        if title.is_series and coordinate is not None:
            return cls(title.id, coordinate.season, coordinate.episode)
        return cls(title.id)


def _query_pairs(source: str | Mapping[str, Any] | None) -> list[tuple[str, str]]:
    if source is None:
        return []
    if isinstance(source, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, value in source.items():
            if isinstance(value, (list, tuple)):
                pairs.extend((str(key), str(item)) for item in value)
            elif value is not None:
                pairs.append((str(key), str(value)))
        return pairs
    text = source.strip()
    if "?" in text or text.startswith("/") or "://" in text:
        text = urlsplit(text).query
    return parse_qsl(text.lstrip("?"), keep_blank_values=True)


def parse_deep_link(source: str | Mapping[str, Any] | None) -> DeepLink:
    """Read the selection parameters from a URL, query string or mapping."""

    values: dict[str, str] = {}
    for key, value in _query_pairs(source):
        # First occurrence wins, matching URLSearchParams.get.
        values.setdefault(key, value)

    title_id = clean_text(values.get(TITLE_PARAM))
    if not title_id:
        return DeepLink()
    return DeepLink(
        title_id=title_id,
        season=coerce_positive_int(values.get(SEASON_PARAM)),
        episode=coerce_positive_int(values.get(EPISODE_PARAM)),
    )


def build_url(
    link: DeepLink,
    *,
    base_path: str = "/",
    existing: str | Mapping[str, Any] | None = None,
) -> str:
    """Encode ``link`` into a URL, keeping unrelated parameters of ``existing``."""

    params = [
        (key, value)
        for key, value in _query_pairs(existing)
        if key not in SELECTION_PARAMS
    ]
    if link.title_id:
        params.append((TITLE_PARAM, link.title_id))
        if link.season is not None and link.episode is not None:
            params.append((SEASON_PARAM, str(link.season)))
            params.append((EPISODE_PARAM, str(link.episode)))
    query = urlencode(params)
    return f"{base_path}?{query}" if query else base_path


class NavigationHistory:
    """In-memory browser style history stack.

    ``push`` adds an entry (dropping any forward entries) while ``replace``
    rewrites the current entry, so passive updates never create back-stack
    noise.
    """

    def __init__(self, initial_url: str = "/"):
        self._entries: list[str] = [initial_url]
        self._index = 0

    @property
    def current(self) -> str:
        return self._entries[self._index]

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def write(self, url: str, mode: NavigationMode) -> None:
        if mode == "push":
            self.push(url)
        else:
            self.replace(url)

    def push(self, url: str) -> None:
        if url == self.current:
            return
        del self._entries[self._index + 1 :]
        self._entries.append(url)
        self._index += 1

    def replace(self, url: str) -> None:
        self._entries[self._index] = url

    def back(self) -> str | None:
        if self._index == 0:
            return None
        self._index -= 1
        return self.current

    def forward(self) -> str | None:
        if self._index >= len(self._entries) - 1:
            return None
        self._index += 1
        return self.current
