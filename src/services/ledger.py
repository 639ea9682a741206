"""
Ledger of already-published urls, backed by SQLite.
Insertion order is kept through an AUTOINCREMENT key so retention
pruning always evicts the oldest entries first.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import aiosqlite

from core.errors import DuplicateKeyError, LedgerError

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_CAP = 25000


class Ledger:
    def __init__(self, path: str):
        self.path = path
        self._write_lock = asyncio.Lock()
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            conn = await aiosqlite.connect(self.path)
        except aiosqlite.Error as e:
            raise LedgerError(f"Unable to open ledger at {self.path}: {e}") from e
        try:
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA synchronous=FULL;")
            yield conn
        finally:
            await conn.close()

    async def initialize(self) -> None:
        """Create the posted_urls table if it does not exist yet."""
        if self._initialized:
            return
        try:
            async with self.connect() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS posted_urls (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        url TEXT NOT NULL UNIQUE,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                await conn.commit()
        except aiosqlite.Error as e:
            raise LedgerError(f"Unable to initialize ledger: {e}") from e
        self._initialized = True
        logger.info(f"Ledger initialized at {self.path}")

    async def has(self, url: str) -> bool:
        await self.initialize()
        logger.debug(f"Checking if {url} exists in posted_urls")
        try:
            async with self.connect() as conn:
                cursor = await conn.execute(
                    "SELECT 1 FROM posted_urls WHERE url = ?", (url,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise LedgerError(f"Existence check failed for {url}: {e}") from e
        return row is not None

    async def record(self, url: str) -> None:
        """
        Store a url as published.

        Raises:
            DuplicateKeyError: if the url is already recorded
            LedgerError: on any storage failure
        """
        await self.initialize()
        logger.debug(f"Storing {url} in posted_urls")
        async with self._write_lock:
            try:
                async with self.connect() as conn:
                    await conn.execute(
                        "INSERT INTO posted_urls (url) VALUES (?)", (url,)
                    )
                    await conn.commit()
            except aiosqlite.IntegrityError as e:
                raise DuplicateKeyError(url) from e
            except aiosqlite.Error as e:
                raise LedgerError(f"Insert failed for {url}: {e}") from e

    async def remove(self, url: str) -> bool:
        """Delete a url. Returns False when it was not recorded."""
        await self.initialize()
        logger.debug(f"Removing {url} from posted_urls")
        async with self._write_lock:
            try:
                async with self.connect() as conn:
                    cursor = await conn.execute(
                        "DELETE FROM posted_urls WHERE url = ?", (url,)
                    )
                    await conn.commit()
                    removed = cursor.rowcount
            except aiosqlite.Error as e:
                raise LedgerError(f"Delete failed for {url}: {e}") from e

        if not removed:
            logger.info(f"{url} was not present in posted_urls")
        return removed > 0

    async def export_all(self) -> Optional[List[str]]:
        """All recorded urls, oldest first, or None when the ledger is empty."""
        await self.initialize()
        logger.debug("Fetching all urls in posted_urls")
        try:
            async with self.connect() as conn:
                cursor = await conn.execute("SELECT url FROM posted_urls ORDER BY id")
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise LedgerError(f"Export failed: {e}") from e
        return [row[0] for row in rows] or None

    async def count(self) -> int:
        await self.initialize()
        try:
            async with self.connect() as conn:
                cursor = await conn.execute("SELECT COUNT(*) FROM posted_urls")
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise LedgerError(f"Count failed: {e}") from e
        return row[0]

    async def trim(self, max_entries: int = DEFAULT_RETENTION_CAP) -> int:
        """
        Keep only the newest max_entries urls.
        Returns the number of pruned entries.
        """
        await self.initialize()
        logger.debug(f"Trimming posted_urls to {max_entries} entries")
        async with self._write_lock:
            try:
                async with self.connect() as conn:
                    cursor = await conn.execute(
                        """
                        DELETE FROM posted_urls WHERE id IN (
                            SELECT id FROM posted_urls
                            ORDER BY id DESC
                            LIMIT -1 OFFSET ?
                        )
                        """,
                        (max(max_entries, 0),),
                    )
                    await conn.commit()
                    pruned = cursor.rowcount
            except aiosqlite.Error as e:
                raise LedgerError(f"Trim failed: {e}") from e

        if pruned:
            logger.info(f"Pruned {pruned} old entries from posted_urls")
        return pruned
