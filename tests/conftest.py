"""Pytest fixtures shared by the unit and API tests.

The application and its services run unchanged; only the store is replaced
by the in-memory double from ``tests/fakes.py``.
"""

from pathlib import Path
from typing import AsyncGenerator, Dict, List

import httpx
import pytest

from player_vote.config import Settings
from player_vote.ledger import VoteLedger
from player_vote.main import create_app
from player_vote.registry import CandidateRegistry

from .fakes import InMemoryStore

ADMIN_PASSWORD = "letmein"


@pytest.fixture
def sample_players() -> List[Dict[str, str]]:
    """Three players; the store assigns them ids 1, 2 and 3."""
    return [
        {"name": "Alice Martin", "team": "Red", "image": "/img/alice.png"},
        {"name": "Bruno Silva", "team": "Blue"},
        {"name": "Chen Wei", "team": "Red", "position": "Captain"},
    ]


@pytest.fixture
def store(sample_players) -> InMemoryStore:
    store = InMemoryStore()
    store.seed(sample_players)
    return store


@pytest.fixture
def ledger(store) -> VoteLedger:
    return VoteLedger(store)


@pytest.fixture
def registry(store) -> CandidateRegistry:
    return CandidateRegistry(store)


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html><body>vote</body></html>")
    (public / "app.js").write_text("console.log('vote');")
    return public


@pytest.fixture
def settings(static_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        ADMIN_REQUIRE_AUTH=False,
        STATIC_DIR=str(static_dir),
        DATABASE_URL=None,
    )


@pytest.fixture
def app(settings, store):
    return create_app(settings, store=store)


@pytest.fixture
async def api_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the ASGI app, no network involved."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def assert_tallies_consistent(store):
    """Return a checker that every tally equals its number of ledger entries."""
    def _check():
        for player_id, player in store.players.items():
            assert player["votes"] == store.ledger_count(player_id), \
                f"Player {player_id} tally {player['votes']} != ledger {store.ledger_count(player_id)}"

    return _check
