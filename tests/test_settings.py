"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import DEFAULT_HOME_SECTION_KEYS, Settings
from app.services.playback import PROVIDERS


def test_home_sections_subset_selection() -> None:
    """Settings should respect custom home section selections."""

    settings = Settings(_env_file=None, HOME_SECTIONS="popular-series,latest-releases")

    assert settings.home_section_keys == ("popular-series", "latest-releases")
    assert [definition.key for definition in settings.home_section_definitions] == [
        "popular-series",
        "latest-releases",
    ]


def test_home_sections_accept_case_insensitive_values() -> None:
    settings = Settings(_env_file=None, HOME_SECTIONS=["Top_Rated_Movies", "POPULAR SERIES"])

    assert settings.home_section_keys == ("top-rated-movies", "popular-series")


def test_home_sections_blank_defaults() -> None:
    """Blank section keys should fall back to every known section."""

    settings = Settings(_env_file=None, HOME_SECTIONS="")

    assert settings.home_section_keys == DEFAULT_HOME_SECTION_KEYS


def test_home_sections_invalid_raises() -> None:
    with pytest.raises(ValueError, match="Unknown home sections configured"):
        Settings(_env_file=None, HOME_SECTIONS="does-not-exist")


def test_catalog_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.catalog_year_ceiling == 2025
    assert settings.catalog_min_vote_floor == 100
    assert settings.catalog_page_size == 25
    assert settings.default_provider == "vidsrc"


def test_default_provider_is_normalised() -> None:
    settings = Settings(_env_file=None, DEFAULT_PROVIDER=" VidFast ")

    assert settings.default_provider == "vidfast"
    assert settings.default_provider in PROVIDERS


def test_default_provider_outside_known_set_raises() -> None:
    with pytest.raises(ValueError, match="DEFAULT_PROVIDER must be one of"):
        Settings(_env_file=None, DEFAULT_PROVIDER="somewhere-else")


def test_year_ceiling_bounds_are_enforced() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, CATALOG_YEAR_CEILING=1500)
