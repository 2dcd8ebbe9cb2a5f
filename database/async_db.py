from typing import Any, Optional

import asyncpg
from asyncpg.pool import Pool

from utils.logger import get_logger

log = get_logger("[DB]")

SCHEMA_SQL = """
             CREATE TABLE IF NOT EXISTS bot_users
             (
                 id         SERIAL PRIMARY KEY,
                 tg_user_id BIGINT UNIQUE NOT NULL,
                 profile_id TEXT,
                 role       TEXT         NOT NULL DEFAULT 'customer',
                 created_at TIMESTAMPTZ  NOT NULL DEFAULT now()
             );
             """


class AsyncDatabase:
    """
    Thin asyncpg wrapper for the bot's own tables.
    Order data never lives here, it belongs to the backend.
    """

    def __init__(
            self,
            db_name: str,
            user: str,
            password: str,
            host: str = "localhost",
            port: int = 5432,
            min_size: int = 2,
            max_size: int = 10
    ):
        self.db_name = db_name
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[Pool] = None

    async def connect(self) -> None:
        """
        Opens the pool and makes sure the bot tables exist.
        """
        self.pool = await asyncpg.create_pool(
            database=self.db_name,
            user=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            min_size=self.min_size,
            max_size=self.max_size
        )
        await self.execute(SCHEMA_SQL)
        log.debug("[DB] Connection pool ready, schema checked")

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            log.debug("[DB] Connection pool closed")

    async def execute(self, query: str, *args: Any) -> str:
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                return await connection.execute(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        async with self.pool.acquire() as connection:
            return await connection.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        async with self.pool.acquire() as connection:
            return await connection.fetchval(query, *args, column=column)
