"""
Ethics DAO Exceptions

Custom exception classes for the proposal ledger, tally codec and reveal
protocol. Each concrete error also derives from the closest builtin so
generic callers can catch it without importing this module.
"""


class EthicsDAOException(Exception):
    """Base exception for Ethics DAO."""
    pass


class ValidationError(EthicsDAOException, ValueError):
    """Required input field is missing or malformed."""
    pass


class DecodeError(EthicsDAOException, ValueError):
    """Tally token does not parse under the packing scheme."""
    pass


class RangeError(EthicsDAOException, ValueError):
    """Counter would exceed the packing ceiling."""
    pass


class NotFoundError(EthicsDAOException, LookupError):
    """Proposal id is absent from the store."""
    pass


class UserDeclinedError(EthicsDAOException):
    """Signature request was cancelled by the user."""
    pass


class StoreUnavailableError(EthicsDAOException):
    """Ledger store reports it is not available."""
    pass


class LedgerTimeoutError(EthicsDAOException, TimeoutError):
    """Store or signature call did not complete in time."""
    pass


class ConcurrentUpdateError(EthicsDAOException):
    """Compare-and-set write kept losing to concurrent writers."""
    pass


class AlreadyVotedError(EthicsDAOException):
    """Identity already voted on this proposal under a one-vote policy."""
    pass


class InvalidSignatureError(EthicsDAOException):
    """Signature does not recover to the requesting identity."""
    pass


class ConfigurationError(EthicsDAOException, ValueError):
    """Configuration error."""
    pass


class SessionExpiredError(EthicsDAOException):
    """Reveal session is past its validity window."""
    pass
