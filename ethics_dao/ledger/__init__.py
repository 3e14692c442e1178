"""
Proposal Ledger

Provides:
  - ProposalCategory / ProposalStatus / ProposalRecord   (records.py)
  - LedgerStore / InMemoryLedgerStore / TransactionAck   (store.py)
  - SQLiteLedgerStore                                     (sqlite_store.py)
  - ProposalStoreAdapter                                  (adapter.py)
  - ProposalLedger / VotePolicy / LedgerStats             (manager.py)
"""

from .records import (
    ProposalCategory,
    ProposalRecord,
    ProposalStatus,
    generate_proposal_id,
)
from .store import (
    InMemoryLedgerStore,
    LedgerStore,
    SupportsCompareAndSet,
    TransactionAck,
)
from .sqlite_store import SQLiteLedgerStore
from .adapter import (
    ProposalStoreAdapter,
    record_key,
    voters_key,
)
from .manager import (
    LedgerStats,
    ProposalLedger,
    VotePolicy,
    search_proposals,
)

__all__ = [
    # Records
    "ProposalCategory",
    "ProposalRecord",
    "ProposalStatus",
    "generate_proposal_id",
    # Stores
    "InMemoryLedgerStore",
    "LedgerStore",
    "SQLiteLedgerStore",
    "SupportsCompareAndSet",
    "TransactionAck",
    # Adapter
    "ProposalStoreAdapter",
    "record_key",
    "voters_key",
    # Lifecycle
    "LedgerStats",
    "ProposalLedger",
    "VotePolicy",
    "search_proposals",
]
