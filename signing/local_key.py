from __future__ import annotations

from eth_account import Account

from execution.models import RawSignature, UnsignedTransaction

from .base import SigningAuthority


class LocalKeySigner(SigningAuthority):
    """
    Signs with a raw hex private key held in process memory (DEPLOYER_PK).
    """

    kind = "local_key"

    def __init__(self, private_key: str) -> None:
        super().__init__()
        if not private_key:
            raise ValueError("private key not set")
        self._account = Account.from_key(private_key)

    def _resolve_address(self) -> str:
        return self._account.address

    def _sign(self, tx: UnsignedTransaction) -> RawSignature:
        signed = Account.sign_transaction(tx.to_dict(), self._account.key)
        return RawSignature(r=int(signed.r), s=int(signed.s), v=int(signed.v))
