import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient
from network_blocker import install_network_blocker

from config import NoveltySettings
from db.models import ALL_DOCUMENT_MODELS


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRAVA_API_BASE", "https://strava.test/api/v3")
    monkeypatch.delenv("STRAVA_FIXTURES", raising=False)
    monkeypatch.delenv("MONGODB_TRANSACTIONS", raising=False)
    install_network_blocker(monkeypatch)


@pytest.fixture
async def beanie_db():
    client = AsyncMongoMockClient()
    database = client["test_db"]
    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
    return database


@pytest.fixture
def settings() -> NoveltySettings:
    return NoveltySettings(
        cell_size_deg=0.0005,
        simplify_m=4.0,
        grid_simplify_m=4.0,
        snap_tolerance_deg=0.00025,
        neighbor_radius=1,
        ledger_batch_size=500,
        visited_cell_limit=10000,
    )
