from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database
from app.services.preferences import PROVIDER_PREFERENCE_KEY, PreferenceStore


def test_create_all_creates_preferences_table(tmp_path) -> None:
    database_path = tmp_path / "fresh.db"

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("preferences")}
    finally:
        inspector_engine.dispose()

    assert {"owner_id", "key", "value", "updated_at"} <= columns


def test_provider_preference_round_trip(tmp_path) -> None:
    async def scenario() -> tuple[str, str, str | None]:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'prefs.db'}")
        await database.create_all()
        store = PreferenceStore(database.session_factory)
        try:
            initial = await store.load_provider("client-a", default="vidsrc")
            await store.save_provider("client-a", "vidfast")
            await store.save_provider("client-a", "vidfast")
            restored = await store.load_provider("client-a", default="vidsrc")
            other = await store.get("client-b", PROVIDER_PREFERENCE_KEY)
        finally:
            await database.dispose()
        return initial, restored, other

    initial, restored, other = asyncio.run(scenario())

    assert initial == "vidsrc"
    assert restored == "vidfast"
    assert other is None


def test_stale_provider_value_falls_back_to_default(tmp_path) -> None:
    async def scenario() -> str:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'stale.db'}")
        await database.create_all()
        store = PreferenceStore(database.session_factory)
        try:
            await store.set("client-a", PROVIDER_PREFERENCE_KEY, "retired-provider")
            return await store.load_provider("client-a", default="vidsrc")
        finally:
            await database.dispose()

    assert asyncio.run(scenario()) == "vidsrc"
