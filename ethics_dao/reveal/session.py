"""
Reveal Session

Parameters fixed for the lifetime of one client session and bound into the
challenge every reveal must sign.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Optional

from eth_utils import is_address, to_checksum_address

from ..constants import SESSION_DURATION_DAYS, SESSION_PUBLIC_KEY_HEX_LENGTH
from ..exceptions import ValidationError


def generate_session_public_key() -> str:
    """Random 0x-prefixed hex string standing in for a re-encryption key."""
    return "0x" + secrets.token_hex(SESSION_PUBLIC_KEY_HEX_LENGTH // 2)


@dataclass(frozen=True)
class RevealSession:
    """
    Fields:
        public_key:        Session public key (0x-prefixed hex)
        contract_address:  Address of the ledger contract
        chain_id:          Chain the ledger lives on
        start_timestamp:   Session start, seconds since epoch
        duration_days:     Validity window of the session
    """
    public_key: str
    contract_address: str
    chain_id: int
    start_timestamp: int
    duration_days: int = SESSION_DURATION_DAYS

    def __post_init__(self):
        if not self.public_key:
            raise ValidationError("Session public key is required")
        if self.duration_days <= 0:
            raise ValidationError("Session duration must be positive")
        if is_address(self.contract_address):
            object.__setattr__(self, "contract_address", to_checksum_address(self.contract_address))

    @classmethod
    def start(
        cls,
        contract_address: str,
        chain_id: int,
        duration_days: int = SESSION_DURATION_DAYS,
        now: Optional[float] = None,
        public_key: Optional[str] = None,
    ) -> "RevealSession":
        """Open a session starting *now* with a fresh public key."""
        return cls(
            public_key=public_key or generate_session_public_key(),
            contract_address=contract_address,
            chain_id=int(chain_id),
            start_timestamp=int(time.time() if now is None else now),
            duration_days=int(duration_days),
        )

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * 86400

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at

    def challenge(self) -> str:
        """The exact text the participant signs. Deterministic per session."""
        return (
            f"publickey:{self.public_key}\n"
            f"contractAddresses:{self.contract_address}\n"
            f"contractsChainId:{self.chain_id}\n"
            f"startTimestamp:{self.start_timestamp}\n"
            f"durationDays:{self.duration_days}"
        )
