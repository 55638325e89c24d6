from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from errors import DeployError, SigningStateError
from execution.models import RawSignature, UnsignedTransaction


class SignerState(Enum):
    IDLE = "idle"
    ADDRESS_RESOLVED = "address_resolved"
    SIGNED = "signed"
    FINALIZED = "finalized"
    UNAVAILABLE = "unavailable"


class SigningAuthority(ABC):
    """
    Produces one signature for one unsigned transaction.

    Lifecycle: IDLE -> ADDRESS_RESOLVED -> SIGNED -> FINALIZED. An authority is
    not reused for a second transaction.
    """

    kind = "unknown"

    def __init__(self) -> None:
        self._state = SignerState.IDLE
        self._address: Optional[str] = None

    @property
    def state(self) -> SignerState:
        return self._state

    @property
    def address(self) -> str:
        if self._address is None:
            raise SigningStateError(f"{self.kind} signer address has not been resolved")
        return self._address

    def resolve_address(self) -> str:
        self._require(SignerState.IDLE, "resolve_address")
        try:
            self._address = self._resolve_address()
        except DeployError:
            self._state = SignerState.UNAVAILABLE
            raise
        self._state = SignerState.ADDRESS_RESOLVED
        return self._address

    def sign(self, tx: UnsignedTransaction) -> RawSignature:
        self._require(SignerState.ADDRESS_RESOLVED, "sign")
        sig = self._sign(tx)
        self._state = SignerState.SIGNED
        return sig

    def finalize(self) -> None:
        self._require(SignerState.SIGNED, "finalize")
        self._state = SignerState.FINALIZED

    def _require(self, expected: SignerState, op: str) -> None:
        if self._state is not expected:
            raise SigningStateError(
                f"{self.kind} signer cannot {op} in state '{self._state.value}' (expected '{expected.value}')"
            )

    @abstractmethod
    def _resolve_address(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def _sign(self, tx: UnsignedTransaction) -> RawSignature:
        raise NotImplementedError
