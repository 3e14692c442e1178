"""
Vote Codec

Packs an (approve, reject, abstain) triple into one token.

The three counters are combined into a single integer

    v = approve * 10000 + reject * 100 + abstain

and rendered as ``FHE-`` + base64(decimal string of v). The token only
looks like ciphertext: anyone holding it can decode it. Each counter is
bounded to [0, 99] because a larger value would spill into the
neighbouring field.

Bare decimal strings (no prefix) are accepted by ``decode`` for ledgers
written before the prefix was introduced.
"""

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from ..constants import (
    TALLY_APPROVE_MULTIPLIER,
    TALLY_COUNTER_CEILING,
    TALLY_MAX_PACKED_VALUE,
    TALLY_REJECT_MULTIPLIER,
    TALLY_TOKEN_PREFIX,
)
from ..exceptions import DecodeError, RangeError, ValidationError


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

class VoteKind(str, Enum):
    """The three choices a participant can cast."""
    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"

    @classmethod
    def parse(cls, value) -> "VoteKind":
        """Accept a VoteKind or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid vote kind: {value!r} "
                f"(expected one of {[k.value for k in cls]})"
            ) from None


@dataclass(frozen=True)
class VoteTriple:
    """Decoded tally of one proposal. Never persisted directly."""
    approve: int = 0
    reject: int = 0
    abstain: int = 0

    def __post_init__(self):
        for kind in VoteKind:
            value = getattr(self, kind.value)
            if isinstance(value, bool) or not isinstance(value, int):
                raise RangeError(f"{kind.value} count must be an integer, got {value!r}")
            if value < 0 or value > TALLY_COUNTER_CEILING:
                raise RangeError(
                    f"{kind.value} count {value} outside [0, {TALLY_COUNTER_CEILING}]"
                )

    @property
    def total(self) -> int:
        return self.approve + self.reject + self.abstain

    def count(self, kind: VoteKind) -> int:
        return getattr(self, VoteKind.parse(kind).value)

    def shares(self) -> Dict[str, float]:
        """Percentage of votes per kind; an empty tally yields all zeros."""
        total = self.total or 1
        return {kind.value: self.count(kind) * 100 / total for kind in VoteKind}

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.approve, self.reject, self.abstain)

    def to_dict(self) -> Dict[str, int]:
        return {
            "approve": self.approve,
            "reject": self.reject,
            "abstain": self.abstain,
        }


# ══════════════════════════════════════════════════════════════════════
#  PACKING
# ══════════════════════════════════════════════════════════════════════

def pack(triple: VoteTriple) -> int:
    """Combine the three counters into one integer."""
    return (
        triple.approve * TALLY_APPROVE_MULTIPLIER
        + triple.reject * TALLY_REJECT_MULTIPLIER
        + triple.abstain
    )


def unpack(value: int) -> VoteTriple:
    """Split a packed integer back into its counters."""
    if value < 0 or value > TALLY_MAX_PACKED_VALUE:
        raise DecodeError(f"Packed tally {value} outside [0, {TALLY_MAX_PACKED_VALUE}]")
    return VoteTriple(
        approve=value // TALLY_APPROVE_MULTIPLIER,
        reject=(value // TALLY_REJECT_MULTIPLIER) % 100,
        abstain=value % 100,
    )


def encode(triple: VoteTriple) -> str:
    """
    Render a triple as an opaque token.

    Pure and deterministic: equal triples always yield equal tokens.
    """
    if not isinstance(triple, VoteTriple):
        raise TypeError(f"encode() expects a VoteTriple, got {type(triple).__name__}")
    digits = str(pack(triple)).encode("ascii")
    return TALLY_TOKEN_PREFIX + base64.b64encode(digits).decode("ascii")


def decode(token: str) -> VoteTriple:
    """
    Parse a token produced by ``encode`` (or a bare decimal string).

    Raises:
        DecodeError: on any other input, including packed values whose
            approve field exceeds the ceiling.
    """
    if not isinstance(token, str):
        raise DecodeError(f"Tally token must be a string, got {type(token).__name__}")

    if token.startswith(TALLY_TOKEN_PREFIX):
        payload = token[len(TALLY_TOKEN_PREFIX):]
        try:
            digits = base64.b64decode(payload, validate=True).decode("ascii")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise DecodeError(f"Tally token payload is not valid base64: {e}") from e
    else:
        digits = token.strip()

    # str.isdigit() alone admits non-ASCII digits
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise DecodeError(f"Tally token does not carry a non-negative integer: {token!r}")

    return unpack(int(digits))


def is_valid_token(token: str) -> bool:
    try:
        decode(token)
    except DecodeError:
        return False
    return True


EMPTY_TALLY = VoteTriple()
EMPTY_TALLY_TOKEN = encode(EMPTY_TALLY)
