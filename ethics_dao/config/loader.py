"""
Ethics DAO TOML Configuration Loader

Loads every section of ethics_dao.toml with environment variable overrides
(dataclass + from_dict + from_file per section).

Environment variable mapping:
    [ledger] store_timeout       → ETHICS_DAO_STORE_TIMEOUT
    [voting] policy              → ETHICS_DAO_VOTE_POLICY
    [session] contract_address   → ETHICS_DAO_CONTRACT_ADDRESS
    [session] chain_id           → ETHICS_DAO_CHAIN_ID
    ...

A timeout of 0 (or absent) means "no timeout".
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    try:
        import tomli  # type: ignore[no-redef]
    except ImportError:
        tomli = None  # type: ignore[assignment]

from ..constants import (
    INDEX_CAS_RETRIES,
    SESSION_DURATION_DAYS,
    VOTE_CAS_RETRIES,
    parse_bool,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger, set_log_level

logger = get_logger(__name__)

_VOTE_POLICIES = ("open", "one_per_identity")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _timeout(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    value = float(value)
    return value if value > 0 else None


def _env_bool(name: str) -> Optional[bool]:
    v = os.environ.get(name)
    if v is None:
        return None
    parsed = parse_bool(v)
    if not isinstance(parsed, bool):
        raise ConfigurationError(f"{name} must be true or false, got {v!r}")
    return parsed


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class LedgerSectionConfig:
    """[ledger] section."""
    store_timeout: Optional[float] = None
    index_cas_retries: int = INDEX_CAS_RETRIES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerSectionConfig":
        return cls(
            store_timeout=_timeout(data.get("store_timeout")),
            index_cas_retries=data.get("index_cas_retries", INDEX_CAS_RETRIES),
        )

    def apply_env(self) -> None:
        if (v := os.environ.get("ETHICS_DAO_STORE_TIMEOUT")) is not None:
            self.store_timeout = _timeout(v)
        if v := os.environ.get("ETHICS_DAO_INDEX_CAS_RETRIES"):
            self.index_cas_retries = int(v)


@dataclass
class VotingConfig:
    """[voting] section."""
    policy: str = "open"
    serialize_votes: bool = False
    vote_cas_retries: int = VOTE_CAS_RETRIES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VotingConfig":
        return cls(
            policy=data.get("policy", "open"),
            serialize_votes=data.get("serialize_votes", False),
            vote_cas_retries=data.get("vote_cas_retries", VOTE_CAS_RETRIES),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("ETHICS_DAO_VOTE_POLICY"):
            self.policy = v.strip().lower()
        if (v := _env_bool("ETHICS_DAO_SERIALIZE_VOTES")) is not None:
            self.serialize_votes = v
        if v := os.environ.get("ETHICS_DAO_VOTE_CAS_RETRIES"):
            self.vote_cas_retries = int(v)


@dataclass
class SessionConfig:
    """[session] section: reveal challenge parameters."""
    contract_address: str = ""
    chain_id: int = 0
    duration_days: int = SESSION_DURATION_DAYS
    signature_timeout: Optional[float] = None
    verify_signatures: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        return cls(
            contract_address=data.get("contract_address", ""),
            chain_id=data.get("chain_id", 0),
            duration_days=data.get("duration_days", SESSION_DURATION_DAYS),
            signature_timeout=_timeout(data.get("signature_timeout")),
            verify_signatures=data.get("verify_signatures", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("ETHICS_DAO_CONTRACT_ADDRESS"):
            self.contract_address = v
        if v := os.environ.get("ETHICS_DAO_CHAIN_ID"):
            self.chain_id = int(v, 0)
        if v := os.environ.get("ETHICS_DAO_SESSION_DURATION_DAYS"):
            self.duration_days = int(v)
        if (v := os.environ.get("ETHICS_DAO_SIGNATURE_TIMEOUT")) is not None:
            self.signature_timeout = _timeout(v)
        if (v := _env_bool("ETHICS_DAO_VERIFY_SIGNATURES")) is not None:
            self.verify_signatures = v


@dataclass
class LoggingConfig:
    """[logging] section."""
    level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(level=str(data.get("level", "INFO")).upper())

    def apply_env(self) -> None:
        if v := os.environ.get("ETHICS_DAO_LOG_LEVEL"):
            self.level = v.upper()


# -----------------------------------------------------------------------
# Top-level unified config
# -----------------------------------------------------------------------

@dataclass
class EthicsDAOConfig:
    """
    Unified runtime configuration.

    Loads every section of ethics_dao.toml and applies environment variable
    overrides. This is the single source of truth at runtime.
    """
    ledger: LedgerSectionConfig = field(default_factory=LedgerSectionConfig)
    voting: VotingConfig = field(default_factory=VotingConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EthicsDAOConfig":
        """Create EthicsDAOConfig from a parsed TOML dict."""
        return cls(
            ledger=LedgerSectionConfig.from_dict(data.get("ledger", {})),
            voting=VotingConfig.from_dict(data.get("voting", {})),
            session=SessionConfig.from_dict(data.get("session", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "EthicsDAOConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with environment overrides).
        """
        if tomli is None:
            raise ImportError(
                "tomli is required for TOML config loading. "
                "Install it: pip install tomli"
            )

        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.ledger.apply_env()
        self.voting.apply_env()
        self.session.apply_env()
        self.logging.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.voting.policy not in _VOTE_POLICIES:
            raise ConfigurationError(
                f"Invalid vote policy: {self.voting.policy} (expected one of {_VOTE_POLICIES})"
            )
        if self.ledger.index_cas_retries < 1:
            raise ConfigurationError("index_cas_retries must be >= 1")
        if self.voting.vote_cas_retries < 1:
            raise ConfigurationError("vote_cas_retries must be >= 1")
        if self.session.chain_id < 0:
            raise ConfigurationError("chain_id must be >= 0")
        if self.session.duration_days < 1:
            raise ConfigurationError("duration_days must be >= 1")
        if self.logging.level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "ledger": {
                "store_timeout": self.ledger.store_timeout,
                "index_cas_retries": self.ledger.index_cas_retries,
            },
            "voting": {
                "policy": self.voting.policy,
                "serialize_votes": self.voting.serialize_votes,
                "vote_cas_retries": self.voting.vote_cas_retries,
            },
            "session": {
                "contract_address": self.session.contract_address,
                "chain_id": self.session.chain_id,
                "duration_days": self.session.duration_days,
                "signature_timeout": self.session.signature_timeout,
                "verify_signatures": self.session.verify_signatures,
            },
            "logging": {
                "level": self.logging.level,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> EthicsDAOConfig:
    """
    Load and validate the runtime configuration.

    Resolution order:
        1. Explicit *path* argument
        2. ETHICS_DAO_CONFIG env var
        3. ./ethics_dao.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("ETHICS_DAO_CONFIG", "ethics_dao.toml")

    cfg = EthicsDAOConfig.from_file(path)
    cfg.validate()
    set_log_level(cfg.logging.level)
    return cfg
