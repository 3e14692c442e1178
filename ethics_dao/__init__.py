"""
Ethics DAO Proposal Ledger

Confidential-looking tally encoding, proposal ledger and reveal protocol
for an ethics review committee.

Core imports are lazily loaded so that importing a submodule does not
pull in every dependency. For direct module access, import from
submodules:

    from ethics_dao.tally import encode, decode, increment
    from ethics_dao.ledger import ProposalLedger, InMemoryLedgerStore
    from ethics_dao.reveal import RevealProtocol, AuthContext
"""

__version__ = "1.0.0"

_LAZY = {
    "ProposalLedger": ("ethics_dao.ledger", "ProposalLedger"),
    "InMemoryLedgerStore": ("ethics_dao.ledger", "InMemoryLedgerStore"),
    "SQLiteLedgerStore": ("ethics_dao.ledger", "SQLiteLedgerStore"),
    "ProposalRecord": ("ethics_dao.ledger", "ProposalRecord"),
    "RevealProtocol": ("ethics_dao.reveal", "RevealProtocol"),
    "AuthContext": ("ethics_dao.reveal", "AuthContext"),
    "VoteKind": ("ethics_dao.tally", "VoteKind"),
    "VoteTriple": ("ethics_dao.tally", "VoteTriple"),
    "load_config": ("ethics_dao.config", "load_config"),
}


def __getattr__(name):
    """Lazy module loading."""
    if name in _LAZY:
        import importlib

        module_name, attr = _LAZY[name]
        return getattr(importlib.import_module(module_name), attr)
    raise AttributeError(f"module 'ethics_dao' has no attribute {name!r}")


__all__ = list(_LAZY)
