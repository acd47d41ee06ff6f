"""Pytest fixtures for PostgreSQL integration tests."""

import os
from typing import AsyncGenerator, Dict, List

import httpx
import psycopg2
import pytest
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

from player_vote.config import Settings
from player_vote.database import Database
from player_vote.main import create_app


@pytest.fixture(scope="session")
def postgres_dsn() -> str:
    """DSN of a disposable database; its tables are wiped by the tests."""
    dsn = os.getenv("TEST_DATABASE_URL")
    if not dsn:
        pytest.skip("TEST_DATABASE_URL not set")
    return dsn


@pytest.fixture(scope="session")
def postgres_connection(postgres_dsn):
    """PostgreSQL connection for direct assertions and cleanup."""
    try:
        conn = psycopg2.connect(postgres_dsn)
    except psycopg2.OperationalError as e:
        pytest.skip(f"PostgreSQL not available: {e}")
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)

    yield conn

    conn.close()


@pytest.fixture
def postgres_client(postgres_connection):
    """PostgreSQL cursor for executing queries."""
    cursor = postgres_connection.cursor()
    yield cursor
    cursor.close()


@pytest.fixture
def pg_settings(postgres_dsn, settings) -> Settings:
    return settings.model_copy(update={
        "DATABASE_URL": postgres_dsn,
        "POSTGRES_POOL_MIN_SIZE": 2,
        "POSTGRES_POOL_MAX_SIZE": 10,
    })


@pytest.fixture
async def pg_store(pg_settings, postgres_client,
                   sample_players: List[Dict[str, str]]) -> AsyncGenerator[Database, None]:
    """Connected store over freshly emptied tables seeded with the sample players."""
    db = Database(pg_settings)
    await db.initialize()
    await db.init_schema()

    postgres_client.execute("TRUNCATE TABLE votes, players RESTART IDENTITY CASCADE")
    await db.init_schema(sample_players)

    yield db

    await db.close()


@pytest.fixture
async def pg_api_client(pg_settings, pg_store) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app(pg_settings, store=pg_store)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app),
                                 base_url="http://testserver") as client:
        yield client


@pytest.fixture
def tally_mismatches(postgres_client):
    """Return a function listing players whose tally differs from their ledger count."""
    def _mismatches():
        postgres_client.execute(
            """
            SELECT p.id, p.votes, COUNT(v.id)
            FROM players p
            LEFT JOIN votes v ON v.player_id = p.id
            GROUP BY p.id, p.votes
            HAVING p.votes <> COUNT(v.id)
            """
        )
        return postgres_client.fetchall()

    return _mismatches
