"""Durable per-client preferences such as the chosen playback provider."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Preference
from .playback import parse_provider

logger = logging.getLogger(__name__)

PROVIDER_PREFERENCE_KEY = "playback_provider"
DEFAULT_OWNER_ID = "default"


class PreferenceStore:
    """Key/value preference persistence on top of the SQL database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, owner_id: str, key: str) -> str | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Preference.value).where(
                    Preference.owner_id == owner_id, Preference.key == key
                )
            )
            return result.scalar_one_or_none()

    async def set(self, owner_id: str, key: str, value: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(Preference).where(
                        Preference.owner_id == owner_id, Preference.key == key
                    )
                )
                preference = result.scalar_one_or_none()
                if preference is None:
                    session.add(Preference(owner_id=owner_id, key=key, value=value))
                else:
                    preference.value = value

    async def load_provider(self, owner_id: str, *, default: str) -> str:
        """Return the stored provider, or ``default`` when unset or unreadable."""

        try:
            stored = await self.get(owner_id, PROVIDER_PREFERENCE_KEY)
        except SQLAlchemyError as exc:
            logger.warning("Failed to load provider preference for %s: %s", owner_id, exc)
            return default
        return parse_provider(stored, default=default)

    async def save_provider(self, owner_id: str, provider: str) -> None:
        try:
            await self.set(owner_id, PROVIDER_PREFERENCE_KEY, provider)
        except SQLAlchemyError as exc:
            logger.warning("Failed to persist provider preference for %s: %s", owner_id, exc)
