"""
Ledger Store Collaborators

The proposal ledger persists through an external key/value store with a
minimal contract:

    is_available() -> bool
    get_data(key) -> bytes          # b"" for an absent key
    set_data(key, value) -> TransactionAck

Stores may additionally offer ``compare_and_set`` which the adapter uses
to serialise index appends and vote writes.

``InMemoryLedgerStore`` is an asyncio dict-backed implementation used for
local runs and tests; ``SQLiteLedgerStore`` (sqlite_store.py) persists to
disk.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, runtime_checkable

from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransactionAck:
    """Receipt returned by a successful write."""
    key: str
    version: int
    sender: Optional[str] = None


@runtime_checkable
class LedgerStore(Protocol):
    """Read/write handle onto the key/value ledger."""

    async def is_available(self) -> bool:
        ...

    async def get_data(self, key: str) -> bytes:
        ...

    async def set_data(self, key: str, value: bytes) -> TransactionAck:
        ...


@runtime_checkable
class SupportsCompareAndSet(Protocol):
    """Optional capability: atomic write conditioned on the current value."""

    async def compare_and_set(self, key: str, expected: bytes, value: bytes) -> bool:
        ...


class InMemoryLedgerStore:
    """
    Dict-backed ledger store.

    Every key carries a version that increases on each write. The store
    can be switched offline to exercise the unavailable path, and an
    optional per-call delay lets tests interleave concurrent writers.
    """

    def __init__(self, sender: Optional[str] = None, latency: float = 0.0):
        self._data: Dict[str, bytes] = {}
        self._versions: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.sender = sender
        self.latency = latency
        self.available = True
        self.writes: List[str] = []

    async def _pause(self):
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            # Yield so concurrent tasks interleave as they would over a network
            await asyncio.sleep(0)

    async def is_available(self) -> bool:
        return self.available

    async def get_data(self, key: str) -> bytes:
        await self._pause()
        return self._data.get(key, b"")

    async def set_data(self, key: str, value: bytes) -> TransactionAck:
        await self._pause()
        async with self._lock:
            return self._write(key, value)

    async def compare_and_set(self, key: str, expected: bytes, value: bytes) -> bool:
        await self._pause()
        async with self._lock:
            if self._data.get(key, b"") != expected:
                return False
            self._write(key, value)
            return True

    def _write(self, key: str, value: bytes) -> TransactionAck:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"Ledger values must be bytes, got {type(value).__name__}")
        self._data[key] = bytes(value)
        self._versions[key] = self._versions.get(key, 0) + 1
        self.writes.append(key)
        logger.debug(f"set_data {key} v{self._versions[key]} ({len(value)} bytes)")
        return TransactionAck(key=key, version=self._versions[key], sender=self.sender)

    def version(self, key: str) -> int:
        return self._versions.get(key, 0)

    def keys(self) -> List[str]:
        return sorted(self._data)

    def __repr__(self) -> str:
        return f"<InMemoryLedgerStore keys={len(self._data)} available={self.available}>"
