"""
Proposal Records

Defines proposal categories, review statuses and the ProposalRecord
dataclass, together with its UTF-8 JSON wire format.

Stored payload (one document per ``proposal_<id>`` key):

    {
      "id": "prop-1700000000000-k3x9",
      "title": "...",
      "description": "...",
      "encryptedVotes": "FHE-MA==",
      "timestamp": 1700000000,
      "proposer": "0xabc...",
      "status": "pending",
      "category": "AI"
    }

The tally token is stored under ``encryptedVotes``, the field name already
used by deployed ledgers; ``encryptedTally`` is accepted on read.
"""

import json
import math
import secrets
import string
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..constants import PROPOSAL_ID_PREFIX, PROPOSAL_ID_SUFFIX_LENGTH
from ..exceptions import DecodeError, ValidationError
from ..tally import EMPTY_TALLY_TOKEN, VoteTriple, decode


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalCategory(str, Enum):
    """Research field a proposal belongs to."""
    MEDICAL = "Medical"
    AI = "AI"
    BIOLOGY = "Biology"
    CHEMISTRY = "Chemistry"
    PSYCHOLOGY = "Psychology"
    OTHER = "Other"

    @classmethod
    def parse(cls, value) -> "ProposalCategory":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().casefold()
        for category in cls:
            if category.value.casefold() == text:
                return category
        raise ValidationError(
            f"Unknown category {value!r} (expected one of {[c.value for c in cls]})"
        )


class ProposalStatus(str, Enum):
    """Review outcome. Records are created PENDING."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ══════════════════════════════════════════════════════════════════════
#  IDENTIFIERS
# ══════════════════════════════════════════════════════════════════════

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_proposal_id(now: Optional[float] = None) -> str:
    """Time component (epoch ms) plus a random base36 suffix."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(PROPOSAL_ID_SUFFIX_LENGTH))
    return f"{PROPOSAL_ID_PREFIX}-{millis}-{suffix}"


# ══════════════════════════════════════════════════════════════════════
#  RECORD
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProposalRecord:
    """
    One review proposal as stored in the ledger.

    Fields:
        id:               Unique identifier, also the storage key suffix
        title:            Short title (required)
        description:      Detailed description (required)
        category:         ProposalCategory
        encrypted_tally:  Opaque tally token; only the accumulator and the
                          reveal protocol look inside
        timestamp:        Creation time, whole seconds since epoch
        proposer:         Identity of the creator
        status:           ProposalStatus
    """
    id: str
    title: str
    description: str
    category: ProposalCategory
    proposer: str
    encrypted_tally: str = EMPTY_TALLY_TOKEN
    timestamp: int = field(default_factory=lambda: int(time.time()))
    status: ProposalStatus = ProposalStatus.PENDING

    def __post_init__(self):
        for name in ("id", "title", "description", "proposer"):
            if not isinstance(getattr(self, name), str):
                raise ValidationError(f"Proposal {name} must be a string")
        if not self.id:
            raise ValidationError("Proposal id cannot be empty")
        if not self.title.strip():
            raise ValidationError("Proposal title cannot be empty")
        if not self.description.strip():
            raise ValidationError("Proposal description cannot be empty")
        # Normalise enum fields so callers may pass plain strings
        object.__setattr__(self, "category", ProposalCategory.parse(self.category))
        object.__setattr__(self, "status", ProposalStatus(self.status))

    # ── Tally ─────────────────────────────────────────────────────────

    def with_tally(self, token: str) -> "ProposalRecord":
        """Copy of this record carrying a new tally token."""
        return replace(self, encrypted_tally=token)

    def decode_tally(self) -> VoteTriple:
        return decode(self.encrypted_tally)

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "encryptedVotes": self.encrypted_tally,
            "timestamp": self.timestamp,
            "proposer": self.proposer,
            "status": self.status.value,
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], proposal_id: Optional[str] = None) -> "ProposalRecord":
        """
        Build a record from a stored document.

        *proposal_id* (the id the record was stored under) takes precedence
        over any ``id`` inside the document. A missing status reads as
        pending and an unknown category as Other.

        Raises:
            DecodeError: if the document is not a valid proposal.
        """
        if not isinstance(data, dict):
            raise DecodeError(f"Proposal document must be an object, got {type(data).__name__}")

        token = data.get("encryptedVotes", data.get("encryptedTally"))
        if not isinstance(token, str):
            raise DecodeError("Proposal document has no tally token")
        # Reject foreign tokens at load time rather than on first vote
        decode(token)

        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise DecodeError(f"Proposal timestamp must be a number, got {timestamp!r}")
        if not math.isfinite(timestamp):
            raise DecodeError(f"Proposal timestamp must be finite, got {timestamp!r}")

        text = {}
        for name in ("id", "title", "description", "proposer"):
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise DecodeError(f"Proposal {name} must be a string, got {type(value).__name__}")
            text[name] = value or ""

        try:
            category = ProposalCategory.parse(data.get("category"))
        except ValidationError:
            category = ProposalCategory.OTHER

        try:
            return cls(
                id=proposal_id or text["id"],
                title=text["title"],
                description=text["description"],
                category=category,
                proposer=text["proposer"],
                encrypted_tally=token,
                timestamp=int(timestamp),
                status=ProposalStatus(data.get("status") or ProposalStatus.PENDING.value),
            )
        except ValueError as e:
            # ValidationError and unknown status values both land here
            raise DecodeError(f"Invalid proposal document: {e}") from e

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes, proposal_id: Optional[str] = None) -> "ProposalRecord":
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Proposal payload is not UTF-8 JSON: {e}") from e
        return cls.from_dict(data, proposal_id=proposal_id)

    def __repr__(self) -> str:
        return (
            f"<ProposalRecord {self.id} '{self.title}' "
            f"category={self.category.value} status={self.status.value}>"
        )
