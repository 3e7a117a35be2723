"""PostgreSQL database connector."""
import asyncio
from typing import Any, Dict, List, Optional

import asyncpg

from catalogpy.errors import BackingStoreError
from catalogpy.logger import logger

# Erreurs de bas niveau converties en BackingStoreError
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PostgresConnector:
    """Gère un pool de connexions asynchrone à PostgreSQL en utilisant l'URL."""

    def __init__(self, database_url: str, max_size: int = 10):
        self.database_url = database_url
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialise le pool de connexions avec l'URL et max_size."""
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                max_size=self.max_size
            )
        except DB_ERRORS as e:
            raise BackingStoreError(f"Unable to create connection pool: {e}") from e
        logger.info("Pool de connexions asyncpg initialisé (max_size={size}).", size=self.max_size)

    async def execute_query(self, sql: str, *args) -> List[Dict[str, Any]]:
        """Exécute une requête SQL avec des paramètres variables."""
        if not self._pool:
            raise BackingStoreError("Connection pool not initialized. Call .connect() first.")

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        except DB_ERRORS as e:
            raise BackingStoreError(f"Query failed: {e}") from e
        return [dict(row) for row in rows]

    async def close(self):
        """Ferme le pool de connexions proprement."""
        if self._pool:
            await self._pool.close()
            self._pool = None
