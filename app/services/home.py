"""Landing page lanes backed by the catalog list endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..config import Settings
from ..home_sections import HOME_SECTIONS, HomeSectionDefinition
from ..models import FilterSet, Title
from .catalog import CatalogClient
from .pagination import admit_title
from .query_composer import QueryComposer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HomeSection:
    definition: HomeSectionDefinition
    titles: list[Title] = field(default_factory=list)
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.definition.key,
            "title": self.definition.title,
            "description": self.definition.description,
            "titles": [title.to_payload() for title in self.titles],
        }
        if self.error:
            payload["error"] = self.error
        return payload


class HomeService:
    """Loads the configured home sections concurrently."""

    def __init__(self, settings: Settings, catalog: CatalogClient):
        self._settings = settings
        self._catalog = catalog
        self._composer = QueryComposer(settings)
        self._definition_map = {definition.key: definition for definition in HOME_SECTIONS}

    def section_filters(self, definition: HomeSectionDefinition) -> FilterSet:
        raw = dict(definition.filters)
        if definition.current_year_only:
            ceiling = self._composer.year_ceiling
            raw["year_min"] = ceiling
            raw["year_max"] = ceiling
        return FilterSet.model_validate(raw)

    async def load_sections(self, keys: Iterable[str] | None = None) -> list[HomeSection]:
        if keys is None:
            definitions = list(self._settings.home_section_definitions)
        else:
            definitions = []
            for key in keys:
                definition = self._definition_map.get(key)
                if definition is None:
                    raise KeyError(f"Unknown home section: {key}")
                definitions.append(definition)

        results = await asyncio.gather(
            *(self.load_section(definition) for definition in definitions),
            return_exceptions=True,
        )
        sections: list[HomeSection] = []
        for definition, result in zip(definitions, results):
            if isinstance(result, Exception):
                logger.warning("Home section %s failed: %s", definition.key, result)
                sections.append(HomeSection(definition, error=str(result)))
                continue
            sections.append(result)
        return sections

    async def load_section(self, definition: HomeSectionDefinition) -> HomeSection:
        query = self._composer.compose(self.section_filters(definition))
        result = await self._catalog.list_titles(query)
        if result.error is not None:
            return HomeSection(definition, error=result.error)

        ceiling = self._composer.year_ceiling
        titles = [title for title in result.records if admit_title(title, year_ceiling=ceiling)]
        if definition.preferred_kind:
            preferred = [title for title in titles if title.kind == definition.preferred_kind]
            if preferred:
                titles = preferred
        return HomeSection(definition, titles=titles[: self._settings.home_section_size])

    async def latest(self) -> HomeSection:
        return await self.load_section(self._definition_map["latest-releases"])
