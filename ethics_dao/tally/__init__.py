"""
Confidential tally encoding

Provides:
  - VoteKind / VoteTriple / encode / decode   (codec.py)
  - add_vote / increment                      (accumulator.py)
"""

from .codec import (
    EMPTY_TALLY,
    EMPTY_TALLY_TOKEN,
    VoteKind,
    VoteTriple,
    decode,
    encode,
    is_valid_token,
)
from .accumulator import add_vote, increment

__all__ = [
    # Codec
    "EMPTY_TALLY",
    "EMPTY_TALLY_TOKEN",
    "VoteKind",
    "VoteTriple",
    "decode",
    "encode",
    "is_valid_token",
    # Accumulator
    "add_vote",
    "increment",
]
