"""
SQLite Ledger Store

A local, file-backed implementation of the ledger store contract for
development and single-node deployments. Values live in one key/value
table with a per-key version counter.
"""
import os
from typing import Optional

import aiosqlite

from ..logger import get_logger
from .store import TransactionAck

logger = get_logger(__name__)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS ledger_data (
    key        TEXT PRIMARY KEY,
    value      BLOB    NOT NULL,
    version    INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

_UPSERT = """
INSERT INTO ledger_data (key, value, version) VALUES (?, ?, 1)
ON CONFLICT (key) DO UPDATE SET
    value      = excluded.value,
    version    = ledger_data.version + 1,
    updated_at = CURRENT_TIMESTAMP;
"""

_SELECT_VALUE = "SELECT value FROM ledger_data WHERE key = ?;"
_SELECT_VERSION = "SELECT version FROM ledger_data WHERE key = ?;"

_UPDATE_IF_MATCHES = """
UPDATE ledger_data
   SET value = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
 WHERE key = ? AND value = ?;
"""

_INSERT_IF_ABSENT = """
INSERT INTO ledger_data (key, value, version) VALUES (?, ?, 1)
ON CONFLICT (key) DO NOTHING;
"""


class SQLiteLedgerStore:
    """aiosqlite-backed ledger store."""

    def __init__(self, db_path: str, sender: Optional[str] = None):
        self.db_path = db_path
        self.sender = sender
        self.connection: Optional[aiosqlite.Connection] = None

    @staticmethod
    async def create(db_path: str, sender: Optional[str] = None) -> "SQLiteLedgerStore":
        """Open (creating if needed) the database at *db_path*."""
        self = SQLiteLedgerStore(db_path, sender=sender)

        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.connection = await aiosqlite.connect(db_path)
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.execute("PRAGMA synchronous=NORMAL")
        await self.connection.execute(_CREATE_TABLE)
        await self.connection.commit()

        logger.info(f"SQLite ledger store initialized: {db_path}")
        return self

    async def close(self):
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    async def is_available(self) -> bool:
        return self.connection is not None

    async def get_data(self, key: str) -> bytes:
        async with self._conn().execute(_SELECT_VALUE, (key,)) as cursor:
            row = await cursor.fetchone()
        return bytes(row[0]) if row else b""

    async def set_data(self, key: str, value: bytes) -> TransactionAck:
        conn = self._conn()
        await conn.execute(_UPSERT, (key, bytes(value)))
        await conn.commit()
        return TransactionAck(key=key, version=await self._version(key), sender=self.sender)

    async def compare_and_set(self, key: str, expected: bytes, value: bytes) -> bool:
        conn = self._conn()
        if expected:
            cursor = await conn.execute(_UPDATE_IF_MATCHES, (bytes(value), key, bytes(expected)))
        else:
            # An absent key reads as b"", so "expected empty" means insert-if-absent
            cursor = await conn.execute(_INSERT_IF_ABSENT, (key, bytes(value)))
        await conn.commit()
        return cursor.rowcount == 1

    async def _version(self, key: str) -> int:
        async with self._conn().execute(_SELECT_VERSION, (key,)) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    def _conn(self) -> aiosqlite.Connection:
        if self.connection is None:
            raise RuntimeError("SQLite ledger store is closed")
        return self.connection

    def __repr__(self) -> str:
        return f"<SQLiteLedgerStore {self.db_path}>"
