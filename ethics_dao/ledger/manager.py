"""
Proposal Lifecycle Manager

Creates proposals, enumerates them through the index, and drives the
vote-cast read-modify-write against the ledger store.

Concurrency:
    Index appends are always serialised (see adapter.py). Vote casts are
    not, unless ``serialize_votes`` is enabled: two concurrent casts on the
    same proposal may both read the same tally and one vote is lost. With
    ``serialize_votes`` casts on one proposal run under a per-proposal lock
    and, on stores with compare-and-set, are retried on conflict.

    Under ONE_PER_IDENTITY the voter is claimed on the roll before the
    tally is written, in a single compare-and-set step, so concurrent casts
    by one identity cannot both succeed. A claim whose tally write fails is
    released again.
"""

import asyncio
import time
import weakref
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..constants import VOTE_CAS_RETRIES
from ..exceptions import (
    AlreadyVotedError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from ..logger import get_logger
from ..tally import EMPTY_TALLY_TOKEN, VoteKind, increment
from .adapter import ProposalStoreAdapter
from .records import (
    ProposalCategory,
    ProposalRecord,
    ProposalStatus,
    generate_proposal_id,
)
from .store import LedgerStore

logger = get_logger(__name__)


class VotePolicy(str, Enum):
    """Who may vote how often."""
    OPEN = "open"                           # Any caller, any number of times
    ONE_PER_IDENTITY = "one_per_identity"   # One vote per identity per proposal


@dataclass
class LedgerStats:
    """Counts shown on the statistics view."""
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "pending": self.pending,
            "approved": self.approved,
            "rejected": self.rejected,
            "byCategory": dict(self.by_category),
        }


def search_proposals(records: Iterable[ProposalRecord], term: str) -> List[ProposalRecord]:
    """
    Case-insensitive substring filter over title, description and category.

    Order is preserved; an empty term matches everything.
    """
    needle = (term or "").casefold()
    return [
        r for r in records
        if needle in r.title.casefold()
        or needle in r.description.casefold()
        or needle in r.category.value.casefold()
    ]


class ProposalLedger:
    """
    Proposal lifecycle over a key/value ledger store.

    Args:
        store:            Ledger store collaborator (or a ready adapter).
        policy:           VotePolicy; OPEN reproduces unrestricted voting.
        serialize_votes:  Serialise casts per proposal (see module doc).
        store_timeout:    Seconds allowed per store call.
        index_cas_retries / vote_cas_retries:
                          Compare-and-set budgets.
        clock:            Returns seconds since epoch; injectable for tests.
    """

    def __init__(
        self,
        store,
        policy: VotePolicy = VotePolicy.OPEN,
        serialize_votes: bool = False,
        store_timeout: Optional[float] = None,
        index_cas_retries: Optional[int] = None,
        vote_cas_retries: int = VOTE_CAS_RETRIES,
        clock=time.time,
    ):
        if isinstance(store, ProposalStoreAdapter):
            self.adapter = store
        else:
            kwargs = {"timeout": store_timeout}
            if index_cas_retries is not None:
                kwargs["cas_retries"] = index_cas_retries
            self.adapter = ProposalStoreAdapter(store, **kwargs)
        self.policy = VotePolicy(policy)
        self.serialize_votes = serialize_votes
        self.vote_cas_retries = vote_cas_retries
        self._clock = clock
        # Entries disappear once no cast holds or awaits the lock
        self._vote_locks = weakref.WeakValueDictionary()

    @classmethod
    def from_config(cls, store: LedgerStore, config) -> "ProposalLedger":
        """Build from a loaded ``EthicsDAOConfig``."""
        return cls(
            store,
            policy=VotePolicy(config.voting.policy),
            serialize_votes=config.voting.serialize_votes,
            store_timeout=config.ledger.store_timeout,
            index_cas_retries=config.ledger.index_cas_retries,
            vote_cas_retries=config.voting.vote_cas_retries,
        )

    async def _require_available(self, operation: str):
        if not await self.adapter.is_available():
            logger.warning(f"Ledger store unavailable, cannot {operation}")
            raise StoreUnavailableError(f"Ledger store is not available ({operation})")

    # ── Create ────────────────────────────────────────────────────────

    async def create(
        self,
        title: str,
        description: str,
        category,
        proposer: str,
    ) -> ProposalRecord:
        """
        Create and persist a new pending proposal with an empty tally.

        The record is written before its id is appended to the index; a
        failure between the two leaves an unreachable record, never a
        dangling index entry.

        Raises:
            ValidationError: missing title, description or proposer, or an
                unknown category.
            StoreUnavailableError: the store reports it is offline.
        """
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Proposal title is required")
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("Proposal description is required")
        if not isinstance(proposer, str) or not proposer:
            raise ValidationError("Proposer identity is required")
        category = ProposalCategory.parse(category)

        await self._require_available("create proposal")

        now = self._clock()
        record = ProposalRecord(
            id=generate_proposal_id(now),
            title=title,
            description=description,
            category=category,
            proposer=proposer,
            encrypted_tally=EMPTY_TALLY_TOKEN,
            timestamp=int(now),
            status=ProposalStatus.PENDING,
        )

        await self.adapter.write_record(record)
        await self.adapter.append_to_index(record.id)

        logger.info(
            f"Proposal {record.id} created by {proposer} "
            f"[{category.value}] '{record.title}'"
        )
        return record

    # ── Queries ───────────────────────────────────────────────────────

    async def list(self) -> List[ProposalRecord]:
        """
        All indexed proposals, newest first.

        Returns an empty list when the store is unavailable. Corrupt or
        missing records are skipped.
        """
        if not await self.adapter.is_available():
            logger.warning("Ledger store unavailable, returning no proposals")
            return []
        ids = await self.adapter.read_index()
        records = await self.adapter.load_records(ids)
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    async def search(self, term: str) -> List[ProposalRecord]:
        """Filter of ``list()`` by *term* (see ``search_proposals``)."""
        return search_proposals(await self.list(), term)

    async def get(self, proposal_id: str) -> ProposalRecord:
        """
        Raises:
            NotFoundError: nothing stored for *proposal_id*.
            DecodeError: the stored record is corrupt.
        """
        await self._require_available("load proposal")
        record = await self.adapter.load_record(proposal_id)
        if record is None:
            raise NotFoundError(f"Proposal {proposal_id} not found")
        return record

    async def stats(self) -> LedgerStats:
        records = await self.list()
        statuses = Counter(r.status for r in records)
        return LedgerStats(
            total=len(records),
            pending=statuses[ProposalStatus.PENDING],
            approved=statuses[ProposalStatus.APPROVED],
            rejected=statuses[ProposalStatus.REJECTED],
            by_category=dict(Counter(r.category.value for r in records)),
        )

    # ── Voting ────────────────────────────────────────────────────────

    async def cast_vote(
        self,
        proposal_id: str,
        vote_kind,
        voter: Optional[str] = None,
    ) -> ProposalRecord:
        """
        Add one vote to a proposal's tally and store the full record.

        Args:
            proposal_id: Target proposal.
            vote_kind:   VoteKind or its name.
            voter:       Identity casting the vote; required under
                         ONE_PER_IDENTITY.

        Raises:
            ValidationError: bad vote kind, or missing voter when required.
            NotFoundError: unknown proposal.
            AlreadyVotedError: repeat vote under ONE_PER_IDENTITY.
            RangeError: the counter is at its ceiling; nothing is written.
            DecodeError: the stored record or its tally is corrupt.
            StoreUnavailableError: the store reports it is offline.
        """
        kind = VoteKind.parse(vote_kind)
        if self.policy is VotePolicy.ONE_PER_IDENTITY and not voter:
            raise ValidationError("Voter identity is required under one_per_identity policy")

        await self._require_available("cast vote")

        if self.serialize_votes:
            # Unknown ids fail here, before a lock is allocated for them
            await self.get(proposal_id)
            lock = self._vote_locks.setdefault(proposal_id, asyncio.Lock())
            async with lock:
                updated = await self._cast(proposal_id, kind, voter)
        else:
            updated = await self._cast(proposal_id, kind, voter)

        logger.info(f"Vote {kind.name} recorded on proposal {proposal_id}")
        return updated

    async def _cast(self, proposal_id: str, kind: VoteKind, voter: Optional[str]) -> ProposalRecord:
        record = await self.get(proposal_id)
        # Ceiling and token errors surface before the voter roll is touched
        updated = record.with_tally(increment(record.encrypted_tally, kind))

        one_vote = self.policy is VotePolicy.ONE_PER_IDENTITY
        if one_vote and not await self.adapter.add_voter(proposal_id, voter):
            raise AlreadyVotedError(f"{voter} has already voted on proposal {proposal_id}")

        try:
            if self.serialize_votes and self.adapter.supports_cas:
                updated = await self.adapter.replace_record(
                    proposal_id,
                    lambda current: current.with_tally(increment(current.encrypted_tally, kind)),
                    retries=self.vote_cas_retries,
                )
            else:
                await self.adapter.write_record(updated)
        except Exception:
            if one_vote:
                logger.warning(f"Vote by {voter} on {proposal_id} not written, releasing voter claim")
                await self.adapter.remove_voter(proposal_id, voter)
            raise
        return updated

    async def voters(self, proposal_id: str) -> List[str]:
        """Identities recorded on a proposal's voter roll."""
        return await self.adapter.read_voters(proposal_id)

    def __repr__(self) -> str:
        return (
            f"<ProposalLedger policy={self.policy.value} "
            f"serialize_votes={self.serialize_votes}>"
        )
