"""HTTP surface tests using a mocked upstream catalog."""

from __future__ import annotations

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import register_routes
from app.services.catalog import CatalogClient
from app.services.engine import SessionRegistry
from app.services.home import HomeService

TITLES = {
    "tt0111161": {
        "id": "tt0111161",
        "type": "movie",
        "primaryTitle": "The Shawshank Redemption",
        "primaryImage": {"url": "https://img.test/shawshank.jpg"},
        "startYear": 1994,
    },
    "tt0903747": {
        "id": "tt0903747",
        "type": "tvSeries",
        "primaryTitle": "Breaking Bad",
        "primaryImage": {"url": "https://img.test/bb.jpg"},
        "startYear": 2008,
    },
}


def upstream(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/titles":
        return httpx.Response(
            200, json={"titles": list(TITLES.values()), "nextPageToken": "next"}
        )
    if path == "/search/titles":
        return httpx.Response(200, json={"titles": [TITLES["tt0111161"]]})
    if path == "/interests":
        return httpx.Response(200, json={"interests": ["Drama", "Crime"]})
    if path.endswith("/episodes"):
        return httpx.Response(
            200,
            json={
                "episodes": [
                    {"id": "e1", "season": 1, "episodeNumber": 1},
                    {"id": "e2", "season": 1, "episodeNumber": 2},
                ]
            },
        )
    if path.endswith("/credits"):
        return httpx.Response(
            200,
            json={
                "credits": [{"category": "actor", "name": {"id": "nm1", "displayName": "Ann"}}],
                "totalCredits": 1,
            },
        )
    title_id = path.rsplit("/", 1)[-1]
    if title_id in TITLES:
        return httpx.Response(200, json=TITLES[title_id])
    return httpx.Response(404, json={"message": "not found"})


def build_app() -> FastAPI:
    settings = Settings(_env_file=None, CATALOG_RETRY_LIMIT=0)  # type: ignore[arg-type]
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(upstream), base_url="https://catalog.test"
    )
    catalog = CatalogClient(settings, http_client)
    app = FastAPI()
    register_routes(app)
    app.state.catalog = catalog
    app.state.home = HomeService(settings, catalog)
    app.state.sessions = SessionRegistry(settings, catalog)
    return app


def test_healthcheck() -> None:
    with TestClient(build_app()) as client:
        assert client.get("/healthz").json() == {"status": "ok"}


def test_discover_titles_applies_filters() -> None:
    with TestClient(build_app()) as client:
        response = client.get("/api/discover/titles", params={"type": "movie", "endYear": "2030"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["query"]["types"] == "MOVIE"
    assert payload["query"]["endYear"] == "2025"
    assert payload["nextPageToken"] == "next"
    assert {title["id"] for title in payload["titles"]} == set(TITLES)


def test_search_requires_query() -> None:
    with TestClient(build_app()) as client:
        missing = client.get("/api/search")
        found = client.get("/api/search", params={"query": "shawshank"})

    assert missing.status_code == 400
    assert [title["id"] for title in found.json()["titles"]] == ["tt0111161"]


def test_title_lookup_and_not_found() -> None:
    with TestClient(build_app()) as client:
        found = client.get("/api/title", params={"id": "tt0903747"})
        missing = client.get("/api/title", params={"id": "tt404"})

    assert found.json()["title"]["kind"] == "series"
    assert missing.status_code == 404


def test_playback_endpoint_resolves_movies_and_guards_series() -> None:
    with TestClient(build_app()) as client:
        movie = client.get(
            "/api/playback", params={"title": "tt0111161", "s": "1", "e": "2"}
        )
        series = client.get("/api/playback", params={"title": "tt0903747"})
        episode = client.get(
            "/api/playback",
            params={"title": "tt0903747", "s": "1", "e": "2", "provider": "vidfast"},
        )

    assert movie.json()["url"] == "https://vidsrc.to/embed/movie/tt0111161"
    assert series.status_code == 400
    assert episode.json()["mountKey"] == "vidfast-tt0903747-1-2"


def test_session_flow() -> None:
    with TestClient(build_app()) as client:
        created = client.post("/api/sessions", json={"url": "/?title=tt0903747"})
        assert created.status_code == 201
        session = created.json()
        session_id = session["sessionId"]
        assert session["selection"]["title"]["id"] == "tt0903747"
        assert session["selection"]["episode"] == {"season": 1, "episode": 1}
        assert session["url"] == "/?title=tt0903747&s=1&e=1"

        picked = client.post(
            f"/api/sessions/{session_id}/episode", json={"season": 1, "episode": 2}
        ).json()
        assert picked["url"] == "/?title=tt0903747&s=1&e=2"
        assert picked["playback"]["mountKey"] == "vidsrc-tt0903747-1-2"

        switched = client.post(
            f"/api/sessions/{session_id}/provider", json={"provider": "vidfast"}
        ).json()
        assert switched["playback"]["mountKey"] == "vidfast-tt0903747-1-2"

        bad_provider = client.post(
            f"/api/sessions/{session_id}/provider", json={"provider": "nowhere"}
        )
        assert bad_provider.status_code == 400

        filtered = client.post(
            f"/api/sessions/{session_id}/filters", json={"genre": "Drama"}
        ).json()
        assert filtered["filters"]["genre"] == "Drama"
        assert filtered["selection"]["title"]["id"] == "tt0903747"

        home = client.post(f"/api/sessions/{session_id}/home").json()
        assert home["selection"]["title"] is None
        assert home["url"] == "/"


def test_session_filters_accept_request_names() -> None:
    with TestClient(build_app()) as client:
        session_id = client.post("/api/sessions", json={}).json()["sessionId"]
        client.post(f"/api/sessions/{session_id}/filters", json={"genres": "Drama"})
        response = client.post(
            f"/api/sessions/{session_id}/filters",
            json={"minRating": 7.5, "sortBy": "rating", "sortOrder": "desc"},
        )

    assert response.status_code == 200
    filters = response.json()["filters"]
    assert filters["genre"] == "Drama"
    assert filters["min_rating"] == 7.5
    assert filters["sort_key"] == "rating"
    assert filters["sort_direction"] == "desc"


def test_unknown_session_is_404() -> None:
    with TestClient(build_app()) as client:
        response = client.get("/api/sessions/missing")

    assert response.status_code == 404
