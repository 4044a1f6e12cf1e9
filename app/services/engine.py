"""Per-client discovery session: runs session transitions and their effects."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections import OrderedDict
from typing import Any, Mapping

from ..config import Settings
from ..models import Credit, Episode, FilterSet, Title
from .aggregator import aggregate
from .catalog import CatalogClient
from .deeplink import DeepLink, NavigationHistory, NavigationMode, build_url
from .pagination import CursorPaginator
from .playback import PlaybackError, PlaybackTarget, parse_provider, resolve_playback
from .preferences import DEFAULT_OWNER_ID, PreferenceStore
from .query_composer import QueryComposer
from .session import (
    CreditsLoaded,
    CreditsMoreRequested,
    Effect,
    EpisodeSelected,
    EpisodesLoaded,
    Event,
    FetchCredits,
    FetchEpisodes,
    FiltersChanged,
    LoadFirstPage,
    LoadMoreRequested,
    LoadNextPage,
    LookupTitle,
    PageCommitted,
    PageShown,
    RetryRequested,
    SessionState,
    TitleResolved,
    TitleSelected,
    UrlChanged,
    WentHome,
    WriteUrl,
    transition,
)

logger = logging.getLogger(__name__)


class DiscoverySession:
    """Owns the state of one browsing client and performs its side effects.

    Every user intent is turned into a session event. The resulting effects
    (catalog fetches and URL writes) are executed here and their outcomes are
    fed back as events, so the transition function stays the only place that
    changes state.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogClient,
        *,
        session_id: str | None = None,
        owner_id: str = DEFAULT_OWNER_ID,
        preferences: PreferenceStore | None = None,
        history: NavigationHistory | None = None,
    ):
        self.id = session_id or secrets.token_urlsafe(12)
        self.owner_id = owner_id
        self._settings = settings
        self._catalog = catalog
        self._preferences = preferences
        self._composer = QueryComposer(settings)
        self._paginator = CursorPaginator(
            catalog.list_titles, year_ceiling=settings.catalog_year_ceiling
        )
        self._history = history or NavigationHistory()
        self._state = SessionState()
        self._provider = settings.default_provider
        self._debounce_task: asyncio.Task[SessionState] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> NavigationHistory:
        return self._history

    @property
    def paginator(self) -> CursorPaginator:
        return self._paginator

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def url(self) -> str:
        return self._history.current

    async def start(self, url: str | None = None) -> SessionState:
        """Restore preferences, load the first browse page and hydrate ``url``."""

        if self._preferences is not None:
            self._provider = await self._preferences.load_provider(
                self.owner_id, default=self._settings.default_provider
            )
        if url:
            self._history.replace(url)
        await asyncio.gather(
            self.dispatch(FiltersChanged(self._state.filters)),
            self.dispatch(UrlChanged(self._history.current)),
        )
        return self._state

    async def close(self) -> None:
        await self._cancel_debounce()

    async def dispatch(self, event: Event) -> SessionState:
        result = transition(self._state, event)
        self._state = result.state
        if result.effects:
            await self._run_effects(result.effects)
        return self._state

    # User intents ---------------------------------------------------------

    async def change_filters(
        self, filters: FilterSet | Mapping[str, Any], *, reset: bool = False
    ) -> SessionState:
        if not isinstance(filters, FilterSet):
            changes = FilterSet.from_request(filters)
            filters = self._state.filters.model_copy(
                update=changes.model_dump(exclude_unset=True)
            )
        return await self.dispatch(FiltersChanged(filters, reset=reset))

    async def reset_filters(self) -> SessionState:
        return await self.dispatch(FiltersChanged(FilterSet(), reset=True))

    async def search(self, text: str | None) -> SessionState:
        """Apply a search query immediately; an empty query returns to browsing."""

        await self._cancel_debounce()
        return await self.change_filters({"query": text})

    def type_query(self, text: str | None) -> asyncio.Task[SessionState]:
        """Debounced search input: only the last text typed within the window is applied."""

        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.create_task(self._apply_after_delay(text))
        return self._debounce_task

    async def _apply_after_delay(self, text: str | None) -> SessionState:
        await asyncio.sleep(self._settings.search_debounce_seconds)
        try:
            return await self.change_filters({"query": text})
        except Exception as exc:  # pragma: no cover - background safety net
            logger.exception("Debounced search for session %s failed: %s", self.id, exc)
            return self._state

    async def _cancel_debounce(self) -> None:
        task = self._debounce_task
        self._debounce_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def load_more(self) -> SessionState:
        return await self.dispatch(LoadMoreRequested())

    async def show_page(self, index: int) -> SessionState:
        return await self.dispatch(PageShown(index))

    async def select_title(
        self, title: Title | str, *, navigation: NavigationMode = "push"
    ) -> SessionState:
        """Select a title object, or a title id which is looked up when not loaded."""

        if isinstance(title, str):
            known = self._find_loaded_title(title)
            if known is None:
                return await self.navigate(build_url_for_title(title, self.url), mode=navigation)
            title = known
        return await self.dispatch(TitleSelected(title, navigation))

    async def select_episode(self, season: Any, episode: Any) -> SessionState:
        return await self.dispatch(EpisodeSelected(season, episode))

    async def navigate(self, url: str, *, mode: NavigationMode = "push") -> SessionState:
        """Apply an externally driven URL change, such as a pasted link."""

        self._history.write(url, mode)
        return await self.dispatch(UrlChanged(self._history.current))

    async def back(self) -> SessionState:
        url = self._history.back()
        if url is None:
            return self._state
        return await self.dispatch(UrlChanged(url))

    async def forward(self) -> SessionState:
        url = self._history.forward()
        if url is None:
            return self._state
        return await self.dispatch(UrlChanged(url))

    async def go_home(self) -> SessionState:
        await self._cancel_debounce()
        return await self.dispatch(WentHome())

    async def retry(self) -> SessionState:
        return await self.dispatch(RetryRequested())

    async def load_more_credits(self) -> SessionState:
        return await self.dispatch(CreditsMoreRequested())

    async def set_provider(self, provider: str) -> str:
        parsed = parse_provider(provider, default="")
        if not parsed:
            raise ValueError(f"Unknown playback provider: {provider}")
        self._provider = parsed
        if self._preferences is not None:
            await self._preferences.save_provider(self.owner_id, parsed)
        return parsed

    def playback(self) -> PlaybackTarget | None:
        """Return the player target for the current selection, if any.

        Raises :class:`PlaybackError` for a series without an episode.
        """

        title = self._state.selected_title
        if title is None:
            return None
        return resolve_playback(title, self._state.selected_episode, self._provider)

    # Effects ----------------------------------------------------------------

    async def _run_effects(self, effects: tuple[Effect, ...]) -> None:
        fetches: list[Effect] = []
        for effect in effects:
            if isinstance(effect, WriteUrl):
                self._write_url(effect)
            else:
                fetches.append(effect)
        if fetches:
            await asyncio.gather(*(self._run_fetch(effect) for effect in fetches))

    def _write_url(self, effect: WriteUrl) -> None:
        url = build_url(effect.link, existing=self._history.current)
        self._history.write(url, effect.mode)

    async def _run_fetch(self, effect: Effect) -> None:
        if isinstance(effect, LoadFirstPage):
            await self._load_first_page(effect)
        elif isinstance(effect, LoadNextPage):
            await self._load_next_page(effect)
        elif isinstance(effect, LookupTitle):
            result = await self._catalog.lookup_title(effect.title_id)
            await self.dispatch(
                TitleResolved(
                    effect.title_id,
                    title=result.title,
                    not_found=result.not_found,
                    error=result.error,
                )
            )
        elif isinstance(effect, FetchEpisodes):
            await self._fetch_episodes(effect)
        elif isinstance(effect, FetchCredits):
            await self._fetch_credits(effect)
        else:
            raise TypeError(f"Unsupported session effect: {effect!r}")

    async def _load_first_page(self, effect: LoadFirstPage) -> None:
        query = self._composer.compose(effect.filters)
        page = await self._paginator.load_first(query)
        if page is None:
            return
        error = self._paginator.last_error if page.error else None
        await self.dispatch(PageCommitted(effect.generation, self._paginator.pages, error))

    async def _load_next_page(self, effect: LoadNextPage) -> None:
        page = await self._paginator.load_next(prior_token=effect.token)
        error = None
        if page is not None and page.error:
            error = self._paginator.last_error
        await self.dispatch(PageCommitted(effect.generation, self._paginator.pages, error))

    async def _fetch_episodes(self, effect: FetchEpisodes) -> None:
        async def _page(token: str | None):
            return await self._catalog.list_episodes(effect.title_id, token)

        result = await aggregate(
            _page,
            key=_episode_key,
            max_pages=self._settings.episode_page_ceiling,
        )
        await self.dispatch(
            EpisodesLoaded(
                effect.title_id,
                episodes=tuple(result.records),
                error=result.error,
                truncated=result.truncated,
            )
        )

    async def _fetch_credits(self, effect: FetchCredits) -> None:
        async def _page(token: str | None):
            return await self._catalog.list_credits(effect.title_id, token)

        result = await aggregate(
            _page,
            key=_credit_key,
            max_pages=self._settings.credit_page_ceiling,
            start_token=effect.start_token,
            existing=effect.existing,
            total=effect.total,
        )
        await self.dispatch(
            CreditsLoaded(
                effect.title_id,
                credits=tuple(result.records),
                next_token=result.next_token,
                total=result.total,
                error=result.error,
            )
        )

    def _find_loaded_title(self, title_id: str) -> Title | None:
        for page in self._state.pages:
            for title in page.records:
                if title.id == title_id:
                    return title
        return None

    # Views ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Serialisable view of the session for the HTTP layer."""

        state = self._state
        playback: dict[str, Any] | None = None
        playback_error: str | None = None
        try:
            target = self.playback()
        except PlaybackError as exc:
            target = None
            playback_error = str(exc)
        if target is not None:
            playback = target.to_payload()

        selected = state.selected_title
        episode = state.selected_episode
        return {
            "sessionId": self.id,
            "url": self.url,
            "mode": state.mode,
            "filters": state.filters.model_dump(exclude_none=True),
            "page": {
                "index": state.page_index,
                "count": len(state.pages),
                "titles": [title.to_payload() for title in state.current_page],
                "hasMore": state.has_more,
            },
            "loading": {
                "pages": state.loading_pages,
                "title": state.loading_title,
                "episodes": state.episodes_loading,
                "credits": state.credits_loading,
            },
            "errors": {
                "pages": state.pages_error,
                "lookup": state.lookup_error,
                "episodes": state.episodes_error,
                "credits": state.credits_error,
            },
            "notFound": state.not_found_title_id,
            "selection": {
                "title": selected.to_payload() if selected else None,
                "episode": (
                    {"season": episode.season, "episode": episode.episode}
                    if episode
                    else None
                ),
            },
            "episodes": {
                "items": [item.to_payload() for item in state.episodes],
                "truncated": state.episodes_truncated,
            },
            "credits": {
                "items": [credit.to_payload() for credit in state.credits],
                "total": state.credits_total,
                "hasMore": state.credits_next_token is not None,
            },
            "provider": self._provider,
            "playback": playback,
            "playbackError": playback_error,
        }


def _episode_key(episode: Episode) -> tuple[int, int]:
    return episode.key


def _credit_key(credit: Credit) -> tuple[str, str]:
    return credit.key


def build_url_for_title(title_id: str, current_url: str) -> str:
    return build_url(DeepLink(title_id), existing=current_url)


class SessionRegistry:
    """In-memory registry of live sessions, evicting the least recently used."""

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogClient,
        *,
        preferences: PreferenceStore | None = None,
        max_sessions: int = 256,
    ):
        self._settings = settings
        self._catalog = catalog
        self._preferences = preferences
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, DiscoverySession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(
        self, *, url: str | None = None, owner_id: str | None = None
    ) -> DiscoverySession:
        session = DiscoverySession(
            self._settings,
            self._catalog,
            owner_id=owner_id or DEFAULT_OWNER_ID,
            preferences=self._preferences,
        )
        self._sessions[session.id] = session
        while len(self._sessions) > self._max_sessions:
            _, evicted = self._sessions.popitem(last=False)
            logger.info("Evicting idle session %s", evicted.id)
            await evicted.close()
        await session.start(url)
        return session

    def get(self, session_id: str) -> DiscoverySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session: {session_id}")
        self._sessions.move_to_end(session_id)
        return session

    async def close(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()
