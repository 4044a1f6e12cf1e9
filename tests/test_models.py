from app.models import (
    Credit,
    Episode,
    EpisodeCoordinate,
    FilterSet,
    Title,
    normalize_interest,
)


def test_title_from_payload_normalises_upstream_fields():
    title = Title.from_payload(
        {
            "id": "tt0903747",
            "type": "tvSeries",
            "primaryTitle": "Breaking Bad",
            "originalTitle": "Breaking Bad",
            "primaryImage": {"url": "https://example.com/bb.jpg", "width": 1000},
            "startYear": 2008,
            "genres": ["Crime", "Drama", "Crime"],
            "rating": {"aggregateRating": 9.5, "voteCount": 2_000_000},
        }
    )

    assert title is not None
    assert title.is_series
    assert title.year == 2008
    assert title.genres == ("Crime", "Drama")
    assert title.poster is not None and title.poster.width == 1000
    payload = title.to_payload()
    assert payload["kind"] == "series"
    assert payload["rating"] == {"score": 9.5, "voteCount": 2_000_000}


def test_title_without_id_is_discarded():
    assert Title.from_payload({"primaryTitle": "Nameless"}) is None
    assert Title.from_payload(["not", "a", "mapping"]) is None


def test_mini_series_is_not_a_series():
    title = Title.from_payload({"id": "tt1", "type": "tvMiniSeries", "primaryTitle": "Short run"})

    assert title is not None
    assert title.kind == "mini-series"
    assert not title.is_series


def test_episode_season_defaults_and_aliases():
    from_string = Episode.from_payload({"id": "tt9", "seasonNumber": "3", "episodeNumber": 4})
    missing = Episode.from_payload({"id": "tt8", "episodeNumber": 2, "title": "Second"})

    assert from_string is not None and from_string.key == (3, 4)
    assert missing is not None and missing.key == (1, 2)
    assert Episode.from_payload({"id": "tt7"}) is None


def test_credit_accepts_name_or_person_shapes():
    first = Credit.from_payload(
        {"category": "actor", "name": {"id": "nm1", "displayName": "Ann"}, "characters": ["Eve"]}
    )
    second = Credit.from_payload({"category": "director", "person": {"id": "nm2", "name": "Bo"}})

    assert first is not None and first.key == ("actor", "nm1")
    assert first.to_payload()["characters"] == ["Eve"]
    assert second is not None and second.person.name == "Bo"
    assert Credit.from_payload({"category": "actor", "name": {"displayName": "No id"}}) is None


def test_interest_names():
    assert normalize_interest({"name": " Sci-Fi "}) == "Sci-Fi"
    assert normalize_interest("Drama") == "Drama"
    assert normalize_interest(3) is None


def test_episode_coordinate_requires_positive_parts():
    assert EpisodeCoordinate.parse("1", "2") == EpisodeCoordinate(1, 2)
    assert EpisodeCoordinate.parse(0, 2) is None
    assert EpisodeCoordinate.parse("x", 1) is None


def test_filter_set_drops_invalid_values():
    filters = FilterSet.from_request(
        {
            "type": "TV_SERIES",
            "genre": "all",
            "yearMin": "soon",
            "minRating": "12",
            "sortBy": "SORT_BY_USER_RATING",
            "sortOrder": "sideways",
            "query": "   ",
        }
    )

    assert filters.kind == "series"
    assert filters.genre is None
    assert filters.year_min is None
    assert filters.min_rating == 10.0
    assert filters.sort_key == "rating"
    assert filters.sort_direction is None
    assert filters.mode == "browse"


def test_filter_set_query_switches_to_search_mode():
    filters = FilterSet(query=" heat ")

    assert filters.query == "heat"
    assert filters.mode == "search"
