"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ``app`` sits at the project root; make it importable without an editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

SETTINGS_ENV_NAMES = (
    "CATALOG_API_URL",
    "CATALOG_YEAR_CEILING",
    "CATALOG_MIN_VOTE_FLOOR",
    "CATALOG_PAGE_SIZE",
    "SEARCH_RESULT_LIMIT",
    "EPISODE_PAGE_SIZE",
    "EPISODE_PAGE_CEILING",
    "CREDIT_PAGE_SIZE",
    "CREDIT_PAGE_CEILING",
    "CATALOG_RETRY_LIMIT",
    "REQUEST_TIMEOUT",
    "SEARCH_DEBOUNCE_SECONDS",
    "DEFAULT_PROVIDER",
    "HOME_SECTIONS",
    "HOME_SECTION_SIZE",
)


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables from leaking into ``Settings``."""

    for name in SETTINGS_ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
