"""
Proposal Record Store Adapter

Owns the key layout of the ledger:

    proposal_keys           JSON list of proposal ids (the index)
    proposal_<id>           JSON ProposalRecord
    proposal_voters_<id>    JSON list of identities (one-per-identity policy)

The index is the only enumeration authority: a record whose id never made
it into the index is unreachable, and an index entry whose record is
missing or unreadable is skipped when listing.

Index appends are serialised behind a per-adapter lock and, when the store
supports it, a compare-and-set loop on the index key so concurrent writers
cannot drop each other's ids.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, List, Optional

from ..constants import (
    INDEX_CAS_RETRIES,
    PROPOSAL_INDEX_KEY,
    PROPOSAL_KEY_PREFIX,
    PROPOSAL_VOTERS_KEY_PREFIX,
)
from ..exceptions import (
    ConcurrentUpdateError,
    DecodeError,
    LedgerTimeoutError,
    NotFoundError,
)
from ..logger import get_logger
from .records import ProposalRecord
from .store import LedgerStore, SupportsCompareAndSet, TransactionAck

logger = get_logger(__name__)


def record_key(proposal_id: str) -> str:
    return f"{PROPOSAL_KEY_PREFIX}{proposal_id}"


def voters_key(proposal_id: str) -> str:
    return f"{PROPOSAL_VOTERS_KEY_PREFIX}{proposal_id}"


def encode_id_list(ids: List[str]) -> bytes:
    return json.dumps(list(ids), ensure_ascii=False).encode("utf-8")


def decode_id_list(payload: bytes) -> List[str]:
    """
    Parse a stored list of ids. Absent or blank payloads are an empty list.

    Raises:
        DecodeError: if the payload is not a JSON list of strings.
    """
    if not payload:
        return []
    try:
        text = payload.decode("utf-8")
        if not text.strip():
            return []
        ids = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Id list is not UTF-8 JSON: {e}") from e
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise DecodeError("Id list must be a JSON array of strings")
    return ids


class ProposalStoreAdapter:
    """
    Reads and writes proposal records and the index against a ledger store.

    Args:
        store:          The external key/value collaborator.
        timeout:        Seconds allowed per store call (None = unbounded).
        cas_retries:    Attempts for a compare-and-set index append before
                        giving up with ConcurrentUpdateError.
        index_key:      Override of the well-known index key.
    """

    def __init__(
        self,
        store: LedgerStore,
        timeout: Optional[float] = None,
        cas_retries: int = INDEX_CAS_RETRIES,
        index_key: str = PROPOSAL_INDEX_KEY,
    ):
        self.store = store
        self.timeout = timeout
        self.cas_retries = cas_retries
        self.index_key = index_key
        self._index_lock = asyncio.Lock()

    @property
    def supports_cas(self) -> bool:
        return isinstance(self.store, SupportsCompareAndSet)

    # ── Raw access ────────────────────────────────────────────────────

    async def _call(self, what: str, awaitable: Awaitable[Any]) -> Any:
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError:
            raise LedgerTimeoutError(
                f"Ledger store {what} did not complete within {self.timeout}s"
            ) from None

    async def is_available(self) -> bool:
        return bool(await self._call("is_available", self.store.is_available()))

    async def get(self, key: str) -> bytes:
        """Fetch raw bytes; an absent key yields b""."""
        data = await self._call(f"get({key})", self.store.get_data(key))
        return bytes(data or b"")

    async def put(self, key: str, value: bytes) -> TransactionAck:
        return await self._call(f"put({key})", self.store.set_data(key, value))

    async def compare_and_set(self, key: str, expected: bytes, value: bytes) -> bool:
        return await self._call(
            f"compare_and_set({key})",
            self.store.compare_and_set(key, expected, value),
        )

    # ── Index ─────────────────────────────────────────────────────────

    async def read_index(self) -> List[str]:
        """
        Load the ordered id list.

        A corrupt index is logged and treated as empty so listings degrade
        instead of failing.
        """
        payload = await self.get(self.index_key)
        try:
            return decode_id_list(payload)
        except DecodeError as e:
            logger.error(f"Error parsing proposal index '{self.index_key}': {e}")
            return []

    async def append_to_index(self, proposal_id: str) -> List[str]:
        """Add *proposal_id* to the index once; returns the new index."""
        return await self.update_id_list(self.index_key, proposal_id)

    async def update_id_list(self, key: str, item: str) -> List[str]:
        """
        Append *item* to the id list stored under *key* unless present.

        Raises:
            DecodeError: if the stored list is corrupt (a write would
                destroy the existing entries).
            ConcurrentUpdateError: if compare-and-set kept failing.
        """
        return await self.modify_id_list(
            key, lambda ids: None if item in ids else ids + [item]
        )

    async def modify_id_list(
        self,
        key: str,
        mutate: Callable[[List[str]], Optional[List[str]]],
    ) -> List[str]:
        """
        Read-modify-write of the id list under *key*.

        *mutate* receives the current list and returns the new one, or None
        to leave it unchanged. It is re-run on a fresh read after every lost
        compare-and-set race. Returns the list as stored afterwards.
        """
        async with self._index_lock:
            if not self.supports_cas:
                ids = decode_id_list(await self.get(key))
                changed = mutate(ids)
                if changed is None:
                    return ids
                await self.put(key, encode_id_list(changed))
                return changed

            for attempt in range(1, self.cas_retries + 1):
                payload = await self.get(key)
                ids = decode_id_list(payload)
                changed = mutate(ids)
                if changed is None:
                    return ids
                if await self.compare_and_set(key, payload, encode_id_list(changed)):
                    return changed
                logger.warning(
                    f"Concurrent update on '{key}' (attempt {attempt}/{self.cas_retries}), retrying"
                )
            raise ConcurrentUpdateError(
                f"Could not update '{key}' after {self.cas_retries} attempts"
            )

    # ── Records ───────────────────────────────────────────────────────

    async def read_record_bytes(self, proposal_id: str) -> bytes:
        return await self.get(record_key(proposal_id))

    async def load_record(self, proposal_id: str) -> Optional[ProposalRecord]:
        """
        Load one record, or None when nothing is stored under its key.

        Raises:
            DecodeError: if the stored payload is not a valid record.
        """
        payload = await self.read_record_bytes(proposal_id)
        if not payload:
            return None
        return ProposalRecord.from_bytes(payload, proposal_id=proposal_id)

    async def load_records(self, ids: List[str]) -> List[ProposalRecord]:
        """Load every id in order, skipping missing and corrupt records."""
        records = []
        for proposal_id in ids:
            try:
                record = await self.load_record(proposal_id)
            except DecodeError as e:
                logger.error(f"Error parsing proposal data for {proposal_id}: {e}")
                continue
            if record is None:
                logger.warning(f"Index entry {proposal_id} has no stored record")
                continue
            records.append(record)
        return records

    async def write_record(self, record: ProposalRecord) -> TransactionAck:
        """Full overwrite of the record under its derived key."""
        return await self.put(record_key(record.id), record.to_bytes())

    async def replace_record(
        self,
        proposal_id: str,
        update: Callable[[ProposalRecord], ProposalRecord],
        retries: Optional[int] = None,
    ) -> ProposalRecord:
        """
        Compare-and-set read-modify-write of one record.

        *update* is re-applied to a fresh copy after every lost race.

        Raises:
            NotFoundError: if nothing is stored under the record key.
            ConcurrentUpdateError: if retries are exhausted.
        """
        key = record_key(proposal_id)
        retries = retries or self.cas_retries
        for attempt in range(1, retries + 1):
            payload = await self.get(key)
            if not payload:
                raise NotFoundError(f"Proposal {proposal_id} not found")
            current = ProposalRecord.from_bytes(payload, proposal_id=proposal_id)
            updated = update(current)
            if await self.compare_and_set(key, payload, updated.to_bytes()):
                return updated
            logger.warning(
                f"Concurrent update on '{key}' (attempt {attempt}/{retries}), retrying"
            )
        raise ConcurrentUpdateError(
            f"Could not update {proposal_id} after {retries} attempts"
        )

    # ── Voter rolls ───────────────────────────────────────────────────

    async def read_voters(self, proposal_id: str) -> List[str]:
        return decode_id_list(await self.get(voters_key(proposal_id)))

    async def add_voter(self, proposal_id: str, voter: str) -> bool:
        """
        Claim *voter*'s place on the roll.

        Returns False when the voter is already on it. The check and the
        write happen in one compare-and-set step, so of two concurrent
        claims for the same voter exactly one succeeds.
        """
        claimed = False

        def claim(ids: List[str]) -> Optional[List[str]]:
            nonlocal claimed
            claimed = voter not in ids
            return ids + [voter] if claimed else None

        await self.modify_id_list(voters_key(proposal_id), claim)
        return claimed

    async def remove_voter(self, proposal_id: str, voter: str) -> None:
        """Release a claim whose vote could not be written."""
        await self.modify_id_list(
            voters_key(proposal_id),
            lambda ids: [i for i in ids if i != voter] if voter in ids else None,
        )

    def __repr__(self) -> str:
        return f"<ProposalStoreAdapter store={self.store!r} cas={self.supports_cas}>"
