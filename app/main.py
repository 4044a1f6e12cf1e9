"""Entry point for the FastAPI-powered discovery service."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import settings
from .database import Database
from .models import FilterSet
from .services.aggregator import aggregate
from .services.catalog import CatalogClient
from .services.deeplink import parse_deep_link
from .services.engine import DiscoverySession, SessionRegistry
from .services.home import HomeService
from .services.pagination import admit_title
from .services.playback import (
    CoordinateRequiredError,
    PlaybackError,
    parse_provider,
    resolve_playback,
)
from .services.preferences import PreferenceStore
from .services.query_composer import QueryComposer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    catalog_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.catalog_api_url),
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    catalog = CatalogClient(settings, catalog_http_client)
    preferences = PreferenceStore(database.session_factory)
    sessions = SessionRegistry(settings, catalog, preferences=preferences)

    app.state.catalog = catalog
    app.state.home = HomeService(settings, catalog)
    app.state.preferences = preferences
    app.state.sessions = sessions
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await sessions.close()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Catalog discovery, deep links and playback resolution",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog(app: FastAPI) -> CatalogClient:
    catalog = getattr(app.state, "catalog", None)
    if not isinstance(catalog, CatalogClient):
        raise RuntimeError("Catalog client not initialised")
    return catalog


def get_home_service(app: FastAPI) -> HomeService:
    service = getattr(app.state, "home", None)
    if not isinstance(service, HomeService):
        raise RuntimeError("Home service not initialised")
    return service


def get_sessions(app: FastAPI) -> SessionRegistry:
    registry = getattr(app.state, "sessions", None)
    if not isinstance(registry, SessionRegistry):
        raise RuntimeError("Session registry not initialised")
    return registry


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def _parse_filters(params: Any) -> FilterSet:
    try:
        return FilterSet.from_request(params)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    composer = QueryComposer(settings)

    def _session(session_id: str) -> DiscoverySession:
        try:
            return get_sessions(fastapi_app).get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Session not found") from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/discover/titles")
    async def discover_titles(request: Request) -> JSONResponse:
        catalog = get_catalog(fastapi_app)
        params = dict(request.query_params)
        page_token = params.pop("pageToken", None) or None
        query = composer.compose(_parse_filters(params))
        result = await catalog.list_titles(query, page_token)
        if result.error is not None:
            raise HTTPException(status_code=502, detail=result.error)
        titles = [
            title
            for title in result.records
            if admit_title(title, year_ceiling=composer.year_ceiling)
        ]
        return JSONResponse(
            {
                "mode": query.mode,
                "query": query.as_dict(),
                "titles": [title.to_payload() for title in titles],
                "nextPageToken": result.next_token,
            }
        )

    @fastapi_app.get("/api/discover/interests")
    async def discover_interests() -> JSONResponse:
        result = await get_catalog(fastapi_app).list_interests()
        if result.error is not None:
            raise HTTPException(status_code=502, detail=result.error)
        return JSONResponse({"interests": result.records})

    @fastapi_app.get("/api/search")
    async def search_titles(request: Request) -> JSONResponse:
        filters = _parse_filters({"query": request.query_params.get("query")})
        if not filters.query:
            raise HTTPException(status_code=400, detail="A search query is required")
        result = await get_catalog(fastapi_app).list_titles(composer.compose(filters))
        if result.error is not None:
            raise HTTPException(status_code=502, detail=result.error)
        return JSONResponse({"titles": [title.to_payload() for title in result.records]})

    @fastapi_app.get("/api/title")
    async def title_details(request: Request) -> JSONResponse:
        title_id = (request.query_params.get("id") or "").strip()
        if not title_id:
            raise HTTPException(status_code=400, detail="A title id is required")
        result = await get_catalog(fastapi_app).lookup_title(title_id)
        if result.title is None:
            if result.not_found:
                raise HTTPException(status_code=404, detail="Title not found")
            raise HTTPException(status_code=502, detail=result.error or "lookup failed")
        return JSONResponse({"title": result.title.to_payload()})

    @fastapi_app.get("/api/episodes")
    async def title_episodes(request: Request) -> JSONResponse:
        title_id = (request.query_params.get("id") or "").strip()
        if not title_id:
            raise HTTPException(status_code=400, detail="A title id is required")
        catalog = get_catalog(fastapi_app)

        async def _page(token: str | None):
            return await catalog.list_episodes(title_id, token)

        result = await aggregate(
            _page,
            key=lambda episode: episode.key,
            max_pages=settings.episode_page_ceiling,
        )
        episodes = sorted(result.records, key=lambda episode: episode.key)
        return JSONResponse(
            {
                "episodes": [episode.to_payload() for episode in episodes],
                "truncated": result.truncated,
                "error": result.error,
            }
        )

    @fastapi_app.get("/api/credits")
    async def title_credits(request: Request) -> JSONResponse:
        title_id = (request.query_params.get("id") or "").strip()
        if not title_id:
            raise HTTPException(status_code=400, detail="A title id is required")
        catalog = get_catalog(fastapi_app)

        async def _page(token: str | None):
            return await catalog.list_credits(title_id, token)

        result = await aggregate(
            _page,
            key=lambda credit: credit.key,
            max_pages=settings.credit_page_ceiling,
            start_token=request.query_params.get("pageToken") or None,
        )
        return JSONResponse(
            {
                "credits": [credit.to_payload() for credit in result.records],
                "total": result.total,
                "nextPageToken": result.next_token,
                "truncated": result.truncated,
                "error": result.error,
            }
        )

    @fastapi_app.get("/api/latest")
    async def latest_releases() -> JSONResponse:
        section = await get_home_service(fastapi_app).latest()
        return JSONResponse(section.to_payload())

    @fastapi_app.get("/api/home")
    async def home_sections() -> JSONResponse:
        sections = await get_home_service(fastapi_app).load_sections()
        return JSONResponse({"sections": [section.to_payload() for section in sections]})

    @fastapi_app.get("/api/playback")
    async def playback_target(request: Request) -> JSONResponse:
        link = parse_deep_link(request.query_params)
        if link.title_id is None:
            raise HTTPException(status_code=400, detail="A title id is required")
        provider = parse_provider(
            request.query_params.get("provider"), default=settings.default_provider
        )
        result = await get_catalog(fastapi_app).lookup_title(link.title_id)
        if result.title is None:
            if result.not_found:
                raise HTTPException(status_code=404, detail="Title not found")
            raise HTTPException(status_code=502, detail=result.error or "lookup failed")
        try:
            target = resolve_playback(result.title, link.coordinate, provider)
        except CoordinateRequiredError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(target.to_payload())

    # Sessions -----------------------------------------------------------

    @fastapi_app.post("/api/sessions")
    async def create_session(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        url = payload.get("url")
        owner_id = payload.get("clientId")
        if url is not None and not isinstance(url, str):
            raise HTTPException(status_code=400, detail="url must be a string")
        if owner_id is not None and not isinstance(owner_id, str):
            raise HTTPException(status_code=400, detail="clientId must be a string")
        session = await get_sessions(fastapi_app).create(url=url, owner_id=owner_id)
        return JSONResponse(session.snapshot(), status_code=201)

    @fastapi_app.get("/api/sessions/{session_id}")
    async def session_snapshot(session_id: str) -> JSONResponse:
        return JSONResponse(_session(session_id).snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/filters")
    async def session_filters(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        reset = bool(payload.pop("reset", False))
        if reset:
            await session.reset_filters()
        else:
            try:
                await session.change_filters(payload)
            except ValidationError as exc:
                raise HTTPException(status_code=400, detail=exc.errors()) from exc
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/search")
    async def session_search(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        query = payload.get("query")
        if query is not None and not isinstance(query, str):
            raise HTTPException(status_code=400, detail="query must be a string")
        if payload.get("debounce"):
            session.type_query(query)
        else:
            await session.search(query)
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/pages/next")
    async def session_next_page(session_id: str) -> JSONResponse:
        session = _session(session_id)
        await session.load_more()
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/pages/{index}")
    async def session_show_page(session_id: str, index: int) -> JSONResponse:
        session = _session(session_id)
        if not 0 <= index < len(session.state.pages):
            raise HTTPException(status_code=404, detail="Page not loaded")
        await session.show_page(index)
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/title")
    async def session_select_title(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        title_id = payload.get("id")
        if not isinstance(title_id, str) or not title_id.strip():
            raise HTTPException(status_code=400, detail="A title id is required")
        await session.select_title(title_id.strip())
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/episode")
    async def session_select_episode(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        await session.select_episode(payload.get("season"), payload.get("episode"))
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/navigate")
    async def session_navigate(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        action = payload.get("action")
        if action == "back":
            await session.back()
        elif action == "forward":
            await session.forward()
        else:
            url = payload.get("url")
            if not isinstance(url, str):
                raise HTTPException(status_code=400, detail="url must be a string")
            mode = "replace" if payload.get("replace") else "push"
            await session.navigate(url, mode=mode)
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/home")
    async def session_home(session_id: str) -> JSONResponse:
        session = _session(session_id)
        await session.go_home()
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/retry")
    async def session_retry(session_id: str) -> JSONResponse:
        session = _session(session_id)
        await session.retry()
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/provider")
    async def session_provider(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_payload(request)
        try:
            await session.set_provider(str(payload.get("provider") or ""))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(session.snapshot())

    @fastapi_app.post("/api/sessions/{session_id}/credits/more")
    async def session_more_credits(session_id: str) -> JSONResponse:
        session = _session(session_id)
        await session.load_more_credits()
        return JSONResponse(session.snapshot())

    @fastapi_app.get("/api/sessions/{session_id}/playback")
    async def session_playback(session_id: str) -> JSONResponse:
        session = _session(session_id)
        try:
            target = session.playback()
        except PlaybackError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if target is None:
            raise HTTPException(status_code=404, detail="Nothing selected")
        return JSONResponse(target.to_payload())


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
