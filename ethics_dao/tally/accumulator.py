"""
Tally Accumulator

Applies a single vote to an encoded tally.

No access control happens here: callers decide whether the voter is
entitled to vote before asking for an increment.
"""

from dataclasses import replace

from ..constants import TALLY_COUNTER_CEILING
from ..exceptions import RangeError
from .codec import VoteKind, VoteTriple, decode, encode


def add_vote(triple: VoteTriple, kind: VoteKind) -> VoteTriple:
    """Return a new triple with one more vote of *kind*."""
    kind = VoteKind.parse(kind)
    current = triple.count(kind)
    if current >= TALLY_COUNTER_CEILING:
        raise RangeError(
            f"Cannot add {kind.value} vote: counter already at ceiling "
            f"{TALLY_COUNTER_CEILING}"
        )
    return replace(triple, **{kind.value: current + 1})


def increment(token: str, kind: VoteKind) -> str:
    """
    Decode *token*, add one vote of *kind*, and re-encode.

    All-or-nothing: on failure nothing is returned and the caller's
    original token remains the valid state.

    Raises:
        DecodeError: if *token* is not a valid tally token.
        RangeError: if the counter is already at its ceiling.
        ValidationError: if *kind* is not a vote kind.
    """
    return encode(add_vote(decode(token), kind))
