"""
Ethics DAO Unified Configuration

Loads all sections of ethics_dao.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    EthicsDAOConfig,
    LedgerSectionConfig,
    LoggingConfig,
    SessionConfig,
    VotingConfig,
    load_config,
)

__all__ = [
    "EthicsDAOConfig",
    "LedgerSectionConfig",
    "LoggingConfig",
    "SessionConfig",
    "VotingConfig",
    "load_config",
]
