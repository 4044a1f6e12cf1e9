"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .home_sections import HOME_SECTIONS, HomeSectionDefinition
from .services.playback import DEFAULT_PROVIDER, PROVIDERS


DEFAULT_HOME_SECTION_KEYS: tuple[str, ...] = tuple(
    definition.key for definition in HOME_SECTIONS
)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="HydraWatch", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_api_url: HttpUrl = Field(
        default="https://api.imdbapi.dev", alias="CATALOG_API_URL"
    )
    catalog_year_ceiling: int = Field(
        default=2025, alias="CATALOG_YEAR_CEILING", ge=1888, le=2100
    )
    catalog_min_vote_floor: int = Field(
        default=100, alias="CATALOG_MIN_VOTE_FLOOR", ge=0
    )
    catalog_page_size: int = Field(
        default=25, alias="CATALOG_PAGE_SIZE", ge=1, le=100
    )
    search_result_limit: int = Field(
        default=50, alias="SEARCH_RESULT_LIMIT", ge=1, le=100
    )

    episode_page_size: int = Field(default=50, alias="EPISODE_PAGE_SIZE", ge=1, le=100)
    episode_page_ceiling: int = Field(
        default=20, alias="EPISODE_PAGE_CEILING", ge=1, le=500
    )
    credit_page_size: int = Field(default=50, alias="CREDIT_PAGE_SIZE", ge=1, le=100)
    credit_page_ceiling: int = Field(
        default=50, alias="CREDIT_PAGE_CEILING", ge=1, le=500
    )

    catalog_retry_limit: int = Field(
        default=2, alias="CATALOG_RETRY_LIMIT", ge=0, le=10
    )
    request_timeout_seconds: float = Field(
        default=20.0, alias="REQUEST_TIMEOUT", gt=0, le=300
    )
    search_debounce_seconds: float = Field(
        default=0.5, alias="SEARCH_DEBOUNCE_SECONDS", ge=0, le=10
    )

    default_provider: str = Field(default=DEFAULT_PROVIDER, alias="DEFAULT_PROVIDER")

    home_section_keys: tuple[str, ...] = Field(
        default=DEFAULT_HOME_SECTION_KEYS,
        alias="HOME_SECTIONS",
    )
    home_section_size: int = Field(default=10, alias="HOME_SECTION_SIZE", ge=1, le=50)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./hydrawatch.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("home_section_keys", mode="before")
    @classmethod
    def _parse_home_section_keys(cls, value: object) -> tuple[str, ...]:
        """Normalise home section selections from environment values."""

        if value is None:
            return DEFAULT_HOME_SECTION_KEYS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("HOME_SECTIONS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            if not entry:
                continue
            slug = entry.replace("_", "-").replace(" ", "-").lower()
            slug = "-".join(filter(None, slug.split("-")))
            if not slug:
                continue
            if slug not in DEFAULT_HOME_SECTION_KEYS:
                raise ValueError("Unknown home sections configured")
            if slug not in cleaned:
                cleaned.append(slug)
        if not cleaned:
            return DEFAULT_HOME_SECTION_KEYS
        return tuple(cleaned)

    @field_validator("default_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> str:
        if value is None:
            return DEFAULT_PROVIDER
        lowered = str(value).strip().lower()
        if not lowered:
            return DEFAULT_PROVIDER
        if lowered not in PROVIDERS:
            raise ValueError("DEFAULT_PROVIDER must be one of: " + ", ".join(PROVIDERS))
        return lowered

    @property
    def home_section_definitions(self) -> tuple[HomeSectionDefinition, ...]:
        """Return ordered home section definitions for the selected keys."""

        definition_map = {definition.key: definition for definition in HOME_SECTIONS}
        return tuple(definition_map[key] for key in self.home_section_keys)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
