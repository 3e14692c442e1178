"""
Tally reveal

Provides:
  - RevealSession / generate_session_public_key        (session.py)
  - ChallengeSigner / LocalAccountSigner / recover_signer (signers.py)
  - AuthContext / RevealProtocol                        (protocol.py)
"""

from .session import RevealSession, generate_session_public_key
from .signers import ChallengeSigner, LocalAccountSigner, recover_signer
from .protocol import AuthContext, RevealProtocol

__all__ = [
    "AuthContext",
    "ChallengeSigner",
    "LocalAccountSigner",
    "RevealProtocol",
    "RevealSession",
    "generate_session_public_key",
    "recover_signer",
]
