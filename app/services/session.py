"""Session state container and its transition function.

``transition(state, event)`` is pure: it returns the next state together with
the side effects (fetches, URL writes) the caller has to perform. Responses
come back as events and are checked against the state that is current when
they arrive, so late answers for superseded intents are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Union

from ..models import Credit, CursorPage, Episode, EpisodeCoordinate, FilterSet, Title
from .deeplink import DeepLink, NavigationMode, parse_deep_link

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    """Single source of truth for one browsing session."""

    filters: FilterSet = field(default_factory=FilterSet)
    generation: int = 0
    pages: tuple[CursorPage[Title], ...] = ()
    page_index: int = 0
    loading_pages: bool = False
    pages_error: str | None = None

    selected_title: Title | None = None
    selected_episode: EpisodeCoordinate | None = None
    pending_title_id: str | None = None
    pending_coordinate: EpisodeCoordinate | None = None
    not_found_title_id: str | None = None
    lookup_error: str | None = None

    episodes: tuple[Episode, ...] = ()
    episodes_loading: bool = False
    episodes_error: str | None = None
    episodes_truncated: bool = False

    credits: tuple[Credit, ...] = ()
    credits_next_token: str | None = None
    credits_total: int | None = None
    credits_loading: bool = False
    credits_error: str | None = None

    def __post_init__(self) -> None:
        if self.selected_episode is not None and (
            self.selected_title is None or not self.selected_title.is_series
        ):
            raise ValueError("Episode coordinate requires a selected series title")

    @property
    def mode(self) -> str:
        return self.filters.mode

    @property
    def has_more(self) -> bool:
        return (
            self.mode == "browse"
            and bool(self.pages)
            and self.pages[-1].next_token is not None
        )

    @property
    def current_page(self) -> tuple[Title, ...]:
        if not self.pages:
            return ()
        index = min(max(self.page_index, 0), len(self.pages) - 1)
        return self.pages[index].records

    @property
    def loading_title(self) -> bool:
        return self.pending_title_id is not None

    @property
    def deep_link(self) -> DeepLink:
        return DeepLink.from_selection(self.selected_title, self.selected_episode)


# Events -------------------------------------------------------------------


@dataclass(frozen=True)
class FiltersChanged:
    filters: FilterSet
    reset: bool = False


@dataclass(frozen=True)
class PageCommitted:
    generation: int
    pages: tuple[CursorPage[Title], ...]
    error: str | None = None


@dataclass(frozen=True)
class LoadMoreRequested:
    pass


@dataclass(frozen=True)
class PageShown:
    index: int


@dataclass(frozen=True)
class TitleSelected:
    title: Title
    navigation: NavigationMode = "push"


@dataclass(frozen=True)
class EpisodeSelected:
    season: Any
    episode: Any


@dataclass(frozen=True)
class UrlChanged:
    url: str | Mapping[str, Any] | None


@dataclass(frozen=True)
class TitleResolved:
    title_id: str
    title: Title | None = None
    not_found: bool = False
    error: str | None = None


@dataclass(frozen=True)
class EpisodesLoaded:
    title_id: str
    episodes: tuple[Episode, ...] = ()
    error: str | None = None
    truncated: bool = False


@dataclass(frozen=True)
class CreditsLoaded:
    title_id: str
    credits: tuple[Credit, ...] = ()
    next_token: str | None = None
    total: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class CreditsMoreRequested:
    pass


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class WentHome:
    pass


Event = Union[
    FiltersChanged,
    PageCommitted,
    LoadMoreRequested,
    PageShown,
    TitleSelected,
    EpisodeSelected,
    UrlChanged,
    TitleResolved,
    EpisodesLoaded,
    CreditsLoaded,
    CreditsMoreRequested,
    RetryRequested,
    WentHome,
]


# Effects ------------------------------------------------------------------


@dataclass(frozen=True)
class LoadFirstPage:
    generation: int
    filters: FilterSet


@dataclass(frozen=True)
class LoadNextPage:
    generation: int
    token: str


@dataclass(frozen=True)
class LookupTitle:
    title_id: str


@dataclass(frozen=True)
class FetchEpisodes:
    title_id: str


@dataclass(frozen=True)
class FetchCredits:
    title_id: str
    start_token: str | None = None
    existing: tuple[Credit, ...] = ()
    total: int | None = None


@dataclass(frozen=True)
class WriteUrl:
    link: DeepLink
    mode: NavigationMode = "replace"


Effect = Union[LoadFirstPage, LoadNextPage, LookupTitle, FetchEpisodes, FetchCredits, WriteUrl]


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: tuple[Effect, ...] = ()


def transition(state: SessionState, event: Event) -> Transition:
    """Return the state following ``event`` plus the effects it requests."""

    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unsupported session event: {event!r}")
    return handler(state, event)


# Handlers -----------------------------------------------------------------


def _restart_pages(state: SessionState, filters: FilterSet) -> Transition:
    generation = state.generation + 1
    next_state = replace(
        state,
        filters=filters,
        generation=generation,
        pages=(),
        page_index=0,
        loading_pages=True,
        pages_error=None,
    )
    return Transition(next_state, (LoadFirstPage(generation, filters),))


def _clear_selection(state: SessionState) -> SessionState:
    return replace(
        state,
        selected_title=None,
        selected_episode=None,
        pending_title_id=None,
        pending_coordinate=None,
        episodes=(),
        episodes_loading=False,
        episodes_error=None,
        episodes_truncated=False,
        credits=(),
        credits_next_token=None,
        credits_total=None,
        credits_loading=False,
        credits_error=None,
    )


def _adopt_title(
    state: SessionState, title: Title, coordinate: EpisodeCoordinate | None
) -> Transition:
    """Make ``title`` the selection and request its episodes and credits."""

    next_state = replace(
        _clear_selection(state),
        selected_title=title,
        selected_episode=coordinate if title.is_series else None,
        not_found_title_id=None,
        lookup_error=None,
        episodes_loading=title.is_series,
        credits_loading=True,
    )
    effects: list[Effect] = []
    if title.is_series:
        effects.append(FetchEpisodes(title.id))
    effects.append(FetchCredits(title.id))
    return Transition(next_state, tuple(effects))


def _on_filters_changed(state: SessionState, event: FiltersChanged) -> Transition:
    if not event.reset:
        return _restart_pages(state, event.filters)

    had_selection = state.selected_title is not None or state.pending_title_id is not None
    cleared = replace(_clear_selection(state), not_found_title_id=None, lookup_error=None)
    result = _restart_pages(cleared, FilterSet())
    if had_selection:
        return Transition(result.state, result.effects + (WriteUrl(DeepLink(), "replace"),))
    return result


def _on_page_committed(state: SessionState, event: PageCommitted) -> Transition:
    if event.generation != state.generation:
        logger.debug(
            "Dropping pages for generation %s (current %s)",
            event.generation,
            state.generation,
        )
        return Transition(state)

    pages = tuple(event.pages)
    if len(pages) > len(state.pages) and state.pages:
        page_index = len(pages) - 1
    elif pages:
        page_index = min(state.page_index, len(pages) - 1)
    else:
        page_index = 0
    return Transition(
        replace(
            state,
            pages=pages,
            page_index=page_index,
            loading_pages=False,
            pages_error=event.error,
        )
    )


def _on_load_more(state: SessionState, event: LoadMoreRequested) -> Transition:
    if state.loading_pages or not state.has_more:
        return Transition(state)
    token = state.pages[-1].next_token
    if token is None:
        return Transition(state)
    return Transition(
        replace(state, loading_pages=True, pages_error=None),
        (LoadNextPage(state.generation, token),),
    )


def _on_page_shown(state: SessionState, event: PageShown) -> Transition:
    if not 0 <= event.index < len(state.pages) or event.index == state.page_index:
        return Transition(state)
    return Transition(replace(state, page_index=event.index))


def _on_title_selected(state: SessionState, event: TitleSelected) -> Transition:
    adopted = _adopt_title(state, event.title, None)
    return Transition(
        adopted.state,
        (WriteUrl(DeepLink(event.title.id), event.navigation),) + adopted.effects,
    )


def _on_episode_selected(state: SessionState, event: EpisodeSelected) -> Transition:
    title = state.selected_title
    if title is None or not title.is_series:
        return Transition(state)
    coordinate = EpisodeCoordinate.parse(event.season, event.episode)
    if coordinate is None or coordinate == state.selected_episode:
        return Transition(state)
    next_state = replace(state, selected_episode=coordinate)
    return Transition(next_state, (WriteUrl(next_state.deep_link, "replace"),))


def _on_url_changed(state: SessionState, event: UrlChanged) -> Transition:
    link = parse_deep_link(event.url)

    if link.title_id is None:
        if state.selected_title is None and state.pending_title_id is None:
            return Transition(state)
        return Transition(_clear_selection(state))

    selected = state.selected_title
    if selected is not None and selected.id == link.title_id and state.pending_title_id is None:
        coordinate = link.coordinate if selected.is_series else None
        if coordinate is None or coordinate == state.selected_episode:
            return Transition(state)
        return Transition(replace(state, selected_episode=coordinate))

    if state.pending_title_id == link.title_id:
        if link.coordinate == state.pending_coordinate:
            return Transition(state)
        return Transition(replace(state, pending_coordinate=link.coordinate))

    next_state = replace(
        state,
        pending_title_id=link.title_id,
        pending_coordinate=link.coordinate,
        not_found_title_id=None,
        lookup_error=None,
    )
    return Transition(next_state, (LookupTitle(link.title_id),))


def _on_title_resolved(state: SessionState, event: TitleResolved) -> Transition:
    if event.title_id != state.pending_title_id:
        logger.debug("Ignoring lookup result for %s", event.title_id)
        return Transition(state)

    if event.title is None:
        return Transition(
            replace(
                state,
                pending_title_id=None,
                pending_coordinate=None,
                not_found_title_id=event.title_id if event.not_found else None,
                lookup_error=event.error,
            )
        )

    coordinate = state.pending_coordinate if event.title.is_series else None
    return _adopt_title(state, event.title, coordinate)


def _on_episodes_loaded(state: SessionState, event: EpisodesLoaded) -> Transition:
    title = state.selected_title
    if title is None or title.id != event.title_id or not title.is_series:
        return Transition(state)

    episodes = tuple(sorted(event.episodes, key=lambda episode: episode.key))
    next_state = replace(
        state,
        episodes=episodes,
        episodes_loading=False,
        episodes_error=event.error,
        episodes_truncated=event.truncated,
    )
    if next_state.selected_episode is None and episodes:
        first = episodes[0]
        next_state = replace(
            next_state, selected_episode=EpisodeCoordinate(first.season, first.episode)
        )
        return Transition(next_state, (WriteUrl(next_state.deep_link, "replace"),))
    return Transition(next_state)


def _on_credits_loaded(state: SessionState, event: CreditsLoaded) -> Transition:
    title = state.selected_title
    if title is None or title.id != event.title_id:
        return Transition(state)
    return Transition(
        replace(
            state,
            credits=tuple(event.credits),
            credits_next_token=event.next_token,
            credits_total=event.total if event.total is not None else state.credits_total,
            credits_loading=False,
            credits_error=event.error,
        )
    )


def _on_credits_more(state: SessionState, event: CreditsMoreRequested) -> Transition:
    title = state.selected_title
    if title is None or state.credits_loading or state.credits_next_token is None:
        return Transition(state)
    return Transition(
        replace(state, credits_loading=True, credits_error=None),
        (
            FetchCredits(
                title.id,
                start_token=state.credits_next_token,
                existing=state.credits,
                total=state.credits_total,
            ),
        ),
    )


def _on_retry(state: SessionState, event: RetryRequested) -> Transition:
    effects: list[Effect] = []
    next_state = state

    if state.pages_error is not None and not state.loading_pages:
        # A failed next page is never committed, so the last token is still there.
        if state.has_more:
            retried = _on_load_more(next_state, LoadMoreRequested())
        else:
            retried = _restart_pages(next_state, next_state.filters)
        next_state = retried.state
        effects.extend(retried.effects)

    title = state.selected_title
    if title is not None:
        if title.is_series and state.episodes_error is not None and not state.episodes_loading:
            next_state = replace(next_state, episodes_loading=True, episodes_error=None)
            effects.append(FetchEpisodes(title.id))
        if state.credits_error is not None and not state.credits_loading:
            next_state = replace(next_state, credits_loading=True, credits_error=None)
            effects.append(
                FetchCredits(
                    title.id,
                    start_token=state.credits_next_token,
                    existing=state.credits,
                    total=state.credits_total,
                )
            )
    return Transition(next_state, tuple(effects))


def _on_went_home(state: SessionState, event: WentHome) -> Transition:
    home = SessionState(generation=state.generation)
    restarted = _restart_pages(home, FilterSet())
    return Transition(restarted.state, (WriteUrl(DeepLink(), "push"),) + restarted.effects)


_HANDLERS: dict[type, Any] = {
    FiltersChanged: _on_filters_changed,
    PageCommitted: _on_page_committed,
    LoadMoreRequested: _on_load_more,
    PageShown: _on_page_shown,
    TitleSelected: _on_title_selected,
    EpisodeSelected: _on_episode_selected,
    UrlChanged: _on_url_changed,
    TitleResolved: _on_title_resolved,
    EpisodesLoaded: _on_episodes_loaded,
    CreditsLoaded: _on_credits_loaded,
    CreditsMoreRequested: _on_credits_more,
    RetryRequested: _on_retry,
    WentHome: _on_went_home,
}
