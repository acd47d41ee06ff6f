"""PostgreSQL database connection and queries.

Every mutation that touches more than one row runs inside a single
``conn.transaction()`` block; asyncpg rolls the block back when anything
inside it raises. The one-vote-per-device rule rests on the UNIQUE
constraint on ``votes.device_id``, not on the pre-check.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import asyncpg

from .config import Settings
from .errors import AlreadyVoted, InternalError, InvalidCandidate

logger = logging.getLogger(__name__)

DEFAULT_POSITION = "Player"

# Column limits; inputs beyond them are rejected before reaching SQL.
MAX_ID = 2**31 - 1
NAME_MAX_LENGTH = 100
POSITION_MAX_LENGTH = 50
DEVICE_ID_MAX_LENGTH = 255

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS players (
    id SERIAL PRIMARY KEY,
    name VARCHAR({NAME_MAX_LENGTH}) NOT NULL,
    team VARCHAR({NAME_MAX_LENGTH}) NOT NULL,
    position VARCHAR({POSITION_MAX_LENGTH}) DEFAULT '{DEFAULT_POSITION}',
    votes INTEGER NOT NULL DEFAULT 0 CHECK (votes >= 0),
    image TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS votes (
    id SERIAL PRIMARY KEY,
    player_id INTEGER NOT NULL REFERENCES players(id) ON DELETE CASCADE,
    device_id VARCHAR({DEVICE_ID_MAX_LENGTH}) NOT NULL UNIQUE,
    voted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_votes_player_id ON votes(player_id);
"""

PLAYER_COLUMNS = "id, name, team, position, votes, image, created_at"


def _affected_rows(status: str) -> int:
    """Row count from a command tag such as ``DELETE 3``."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class Database:
    """Async PostgreSQL store for players and their ledger of votes."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.pool: Optional[asyncpg.Pool] = None
        self._connect_lock = asyncio.Lock()

    async def initialize(self):
        """Initialize database connection pool."""
        dsn = self.settings.postgres_dsn
        pool = None
        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=self.settings.POSTGRES_POOL_MIN_SIZE,
                max_size=self.settings.POSTGRES_POOL_MAX_SIZE,
                command_timeout=self.settings.POSTGRES_COMMAND_TIMEOUT,
                ssl="require" if self.settings.DATABASE_SSL else None,
            )
            logger.info("PostgreSQL connection pool initialized successfully")

            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                logger.info("PostgreSQL connection verified")

            self.pool = pool

        except Exception as e:
            logger.error(f"Failed to initialize PostgreSQL connection pool: {e}")
            if pool is not None:
                await pool.close()
            raise

    async def ensure_pool(self):
        """Open the pool if startup could not, creating the schema on success.

        Concurrent callers share one connection attempt. Raises InternalError
        while the database stays unreachable.
        """
        if self.pool is not None:
            return
        async with self._connect_lock:
            if self.pool is not None:
                return
            try:
                await self.initialize()
            except Exception as e:
                raise InternalError("Database is not available") from e
            logger.info("PostgreSQL connection established after startup")
            try:
                await self.init_schema(self.settings.SEED_PLAYERS)
            except Exception as e:
                logger.warning(f"Schema setup after reconnect failed: {e}")

    async def init_schema(self, seed_players: Optional[List[Dict]] = None):
        """Create tables if missing and seed players into an empty table."""
        try:
            async with self.connection() as conn:
                await conn.execute(SCHEMA)
                logger.info("Database schema ready")

                if not seed_players:
                    return

                async with conn.transaction():
                    count = await conn.fetchval("SELECT COUNT(*) FROM players")
                    if count:
                        return
                    await conn.executemany(
                        """
                        INSERT INTO players (name, team, position, image)
                        VALUES ($1, $2, $3, $4)
                        """,
                        [
                            (
                                p["name"],
                                p["team"],
                                p.get("position") or DEFAULT_POSITION,
                                p.get("image"),
                            )
                            for p in seed_players
                        ],
                    )
                    logger.info(f"Seeded {len(seed_players)} players")

        except Exception as e:
            logger.error(f"Failed to initialize database schema: {e}")
            raise

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection, connecting first if there is no pool yet."""
        if self.pool is None:
            await self.ensure_pool()
        async with self.pool.acquire() as conn:
            yield conn

    # Players

    async def list_players(self) -> List[Dict]:
        try:
            async with self.connection() as conn:
                rows = await conn.fetch(
                    f"SELECT {PLAYER_COLUMNS} FROM players ORDER BY id"
                )
                return [dict(row) for row in rows]
        except asyncpg.PostgresError as e:
            logger.error(f"Error listing players: {e}")
            raise InternalError() from e

    async def get_player(self, player_id: int) -> Optional[Dict]:
        try:
            async with self.connection() as conn:
                row = await conn.fetchrow(
                    f"SELECT {PLAYER_COLUMNS} FROM players WHERE id = $1", player_id
                )
                return dict(row) if row else None
        except asyncpg.PostgresError as e:
            logger.error(f"Error getting player {player_id}: {e}")
            raise InternalError() from e

    async def add_player(self, name: str, team: str, position: str,
                         image: Optional[str]) -> Dict:
        try:
            async with self.connection() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO players (name, team, position, votes, image)
                    VALUES ($1, $2, $3, 0, $4)
                    RETURNING {PLAYER_COLUMNS}
                    """,
                    name, team, position, image,
                )
                return dict(row)
        except asyncpg.PostgresError as e:
            logger.error(f"Error adding player {name!r}: {e}")
            raise InternalError() from e

    async def remove_player(self, player_id: int) -> bool:
        """
        Delete a player and, first, every vote cast for it.

        Returns:
            True if the player existed
        """
        try:
            async with self.connection() as conn:
                async with conn.transaction():
                    await conn.execute("DELETE FROM votes WHERE player_id = $1", player_id)
                    deleted = await conn.fetchval(
                        "DELETE FROM players WHERE id = $1 RETURNING id", player_id
                    )
                return deleted is not None
        except asyncpg.PostgresError as e:
            logger.error(f"Error removing player {player_id}: {e}")
            raise InternalError() from e

    async def update_player_image(self, player_id: int, image: Optional[str]) -> Optional[Dict]:
        try:
            async with self.connection() as conn:
                row = await conn.fetchrow(
                    f"UPDATE players SET image = $2 WHERE id = $1 RETURNING {PLAYER_COLUMNS}",
                    player_id, image,
                )
                return dict(row) if row else None
        except asyncpg.PostgresError as e:
            logger.error(f"Error updating image for player {player_id}: {e}")
            raise InternalError() from e

    # Votes

    async def cast_vote(self, player_id: int, device_id: str) -> Dict:
        """
        Record a vote and increment the player's tally in one transaction.

        Raises:
            AlreadyVoted: the device already has a vote, found by the pre-check
                or by the unique constraint when a concurrent vote won the race
            InvalidCandidate: the player does not exist
        """
        try:
            async with self.connection() as conn:
                try:
                    async with conn.transaction():
                        existing = await conn.fetchval(
                            "SELECT player_id FROM votes WHERE device_id = $1", device_id
                        )
                        if existing is not None:
                            raise AlreadyVoted(player_id=existing)

                        row = await conn.fetchrow(
                            """
                            INSERT INTO votes (player_id, device_id)
                            VALUES ($1, $2)
                            RETURNING id, player_id, device_id, voted_at
                            """,
                            player_id, device_id,
                        )

                        status = await conn.execute(
                            "UPDATE players SET votes = votes + 1 WHERE id = $1", player_id
                        )
                        if _affected_rows(status) != 1:
                            raise InvalidCandidate()

                        return dict(row)

                except asyncpg.UniqueViolationError:
                    existing = await conn.fetchval(
                        "SELECT player_id FROM votes WHERE device_id = $1", device_id
                    )
                    raise AlreadyVoted(player_id=existing)
                except asyncpg.ForeignKeyViolationError:
                    raise InvalidCandidate()

        except asyncpg.PostgresError as e:
            logger.error(f"Error casting vote for player {player_id}: {e}")
            raise InternalError() from e

    async def get_vote(self, device_id: str) -> Optional[Dict]:
        try:
            async with self.connection() as conn:
                row = await conn.fetchrow(
                    "SELECT id, player_id, device_id, voted_at FROM votes WHERE device_id = $1",
                    device_id,
                )
                return dict(row) if row else None
        except asyncpg.PostgresError as e:
            logger.error(f"Error checking vote for device {device_id}: {e}")
            raise InternalError() from e

    async def reset_vote(self, device_id: str) -> Optional[int]:
        """
        Delete the device's vote and decrement its player, never below zero.

        Returns:
            The player the vote was for, or None if the device had not voted
        """
        try:
            async with self.connection() as conn:
                async with conn.transaction():
                    player_id = await conn.fetchval(
                        "DELETE FROM votes WHERE device_id = $1 RETURNING player_id",
                        device_id,
                    )
                    if player_id is not None:
                        await conn.execute(
                            "UPDATE players SET votes = GREATEST(votes - 1, 0) WHERE id = $1",
                            player_id,
                        )
                return player_id
        except asyncpg.PostgresError as e:
            logger.error(f"Error resetting vote for device {device_id}: {e}")
            raise InternalError() from e

    async def reset_all(self) -> int:
        """Delete every vote and zero every tally. Returns the number of votes deleted."""
        try:
            async with self.connection() as conn:
                async with conn.transaction():
                    status = await conn.execute("DELETE FROM votes")
                    await conn.execute("UPDATE players SET votes = 0")
                return _affected_rows(status)
        except asyncpg.PostgresError as e:
            logger.error(f"Error resetting all votes: {e}")
            raise InternalError() from e

    async def check_health(self) -> bool:
        """Check database connection health."""
        try:
            await self.ensure_pool()
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def close(self):
        """Close database connection pool."""
        try:
            if self.pool:
                await self.pool.close()
                logger.info("PostgreSQL connection pool closed successfully")
        except Exception as e:
            logger.error(f"Error closing PostgreSQL connection pool: {e}")
