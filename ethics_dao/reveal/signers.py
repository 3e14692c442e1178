"""
Challenge Signers

The identity collaborator signs the reveal challenge. Signatures are
Ethereum personal_sign (EIP-191) over the UTF-8 challenge text, so any
wallet can produce them and ``recover_signer`` can check them.
"""

from typing import Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import encode_hex

from ..exceptions import InvalidSignatureError


@runtime_checkable
class ChallengeSigner(Protocol):
    """Produces a signature over a challenge; may raise UserDeclinedError."""

    async def sign_challenge(self, message: str) -> str:
        ...


class LocalAccountSigner:
    """Signs with a locally held secp256k1 key."""

    def __init__(self, private_key):
        self._account = Account.from_key(private_key)

    @classmethod
    def generate(cls) -> "LocalAccountSigner":
        return cls(Account.create().key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_challenge(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return encode_hex(signed.signature)

    def __repr__(self) -> str:
        return f"<LocalAccountSigner {self.address}>"


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the checksum address that produced *signature* over *message*.

    Raises:
        InvalidSignatureError: if the signature is malformed.
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise InvalidSignatureError(f"Could not recover signer: {e}") from e
