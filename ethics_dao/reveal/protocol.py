"""
Reveal Protocol

Turns a proposal's tally token into a readable VoteTriple once the
requesting participant has signed the session challenge.

The signature is a consent/liveness gate only. Nothing is derived from it
and the token can be decoded by anyone holding it; real confidentiality
would need a threshold or homomorphic scheme in place of the codec.

Every call re-runs the full challenge. No revealed tally is cached here;
callers decide how long to keep a value on screen.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from eth_utils import is_address

from ..exceptions import (
    InvalidSignatureError,
    LedgerTimeoutError,
    SessionExpiredError,
    UserDeclinedError,
    ValidationError,
)
from ..ledger.records import ProposalRecord
from ..logger import get_logger
from ..tally import VoteTriple, decode
from .session import RevealSession
from .signers import ChallengeSigner, recover_signer

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Who is asking for a reveal and how to reach their signer."""
    identity: str
    signer: ChallengeSigner


class RevealProtocol:
    """
    Challenge-response gate in front of tally decoding.

    Args:
        session:            Parameters bound into the challenge.
        verify_signatures:  Require the signature to recover to
                            ``auth.identity`` (an Ethereum address).
        timeout:            Seconds allowed for the signer (None = unbounded).
        clock:              Returns seconds since epoch; checked against the
                            session expiry on every authorisation.
    """

    def __init__(
        self,
        session: RevealSession,
        verify_signatures: bool = True,
        timeout: Optional[float] = None,
        clock=time.time,
    ):
        self.session = session
        self.verify_signatures = verify_signatures
        self.timeout = timeout
        self._clock = clock

    @classmethod
    def from_config(cls, config, now: Optional[float] = None, clock=time.time) -> "RevealProtocol":
        """Start a session from a loaded ``EthicsDAOConfig``."""
        session = RevealSession.start(
            contract_address=config.session.contract_address,
            chain_id=config.session.chain_id,
            duration_days=config.session.duration_days,
            now=now,
        )
        return cls(
            session,
            verify_signatures=config.session.verify_signatures,
            timeout=config.session.signature_timeout,
            clock=clock,
        )

    @property
    def challenge(self) -> str:
        return self.session.challenge()

    async def _request_signature(self, auth: AuthContext) -> str:
        request = auth.signer.sign_challenge(self.challenge)
        if self.timeout is None:
            return await request
        try:
            return await asyncio.wait_for(request, self.timeout)
        except asyncio.TimeoutError:
            raise LedgerTimeoutError(
                f"Signature from {auth.identity} not received within {self.timeout}s"
            ) from None

    async def authorize(self, auth: AuthContext) -> str:
        """
        Obtain (and optionally verify) a signature over the challenge.

        Returns:
            The signature.

        Raises:
            ValidationError: no identity given.
            SessionExpiredError: the session validity window has passed; the
                signer is not contacted.
            UserDeclinedError: the participant refused to sign.
            LedgerTimeoutError: the signer did not answer in time.
            InvalidSignatureError: empty signature, or one that does not
                recover to ``auth.identity``.
        """
        if not auth.identity:
            raise ValidationError("Reveal requires an identity")
        if self.session.is_expired(self._clock()):
            logger.warning(f"Reveal refused for {auth.identity}, session expired at {self.session.expires_at}")
            raise SessionExpiredError(
                f"Reveal session expired at {self.session.expires_at}, start a new session"
            )

        logger.info(f"Reveal challenge sent to {auth.identity}")
        try:
            signature = await self._request_signature(auth)
        except UserDeclinedError:
            logger.warning(f"Reveal declined by {auth.identity}")
            raise

        if not signature:
            raise InvalidSignatureError(f"Empty signature from {auth.identity}")

        if self.verify_signatures:
            if not is_address(auth.identity):
                raise InvalidSignatureError(
                    f"Cannot verify signature for non-address identity {auth.identity!r}"
                )
            signer = recover_signer(self.challenge, signature)
            if signer.lower() != auth.identity.lower():
                raise InvalidSignatureError(
                    f"Signature recovers to {signer}, not {auth.identity}"
                )
        return signature

    async def reveal(self, record: ProposalRecord, auth: AuthContext) -> VoteTriple:
        """
        Decode *record*'s tally after a successful signature.

        Never writes to the ledger.

        Raises:
            Everything ``authorize`` raises, plus DecodeError for a corrupt
            token.
        """
        await self.authorize(auth)
        triple = decode(record.encrypted_tally)
        logger.info(f"Tally of proposal {record.id} revealed to {auth.identity}")
        return triple

    def __repr__(self) -> str:
        return (
            f"<RevealProtocol chain={self.session.chain_id} "
            f"contract={self.session.contract_address} verify={self.verify_signatures}>"
        )
