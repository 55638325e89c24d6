from __future__ import annotations

from typing import Optional

from errors import BlindSigningDisabled, DeployError, DeviceSessionError
from execution.models import RawSignature, UnsignedTransaction
from execution.txcodec import encode_unsigned
from observability import log_event

from .base import SigningAuthority
from .resolution import ResolutionNegotiator
from .session import DeviceSession

DEFAULT_DERIVATION_PATH = "44'/60'/0'/0/0"

# Generic "invalid data" status of the Ethereum app. It is also the only signal
# the app gives when blind signing is off, so matching it is a heuristic.
SW_INVALID_DATA = 0x6A80
_RESOLUTION_REQUIRED_MARKERS = (
    "please provide the 'resolution' parameter",
    '"blind signing" is not enabled',
)


def requires_resolution(e: Exception) -> bool:
    """
    True when a blind signing request was refused for lack of a resolution.

    Explicit refusal messages decide first. A bare 0x6A80 is only taken as a
    refusal because blind payloads are produced by our own encoder and
    re-decoded before they reach the device, which rules out malformed data.
    """
    message = str(e).lower()
    if any(marker in message for marker in _RESOLUTION_REQUIRED_MARKERS):
        return True
    return getattr(e, "status", None) == SW_INVALID_DATA


class HardwareSigner(SigningAuthority):
    """
    Signs on an external hardware device through an open DeviceSession.

    The session is owned by the caller; this class never opens or closes it.
    """

    kind = "hardware"

    def __init__(
        self,
        session: DeviceSession,
        *,
        derivation_path: str = DEFAULT_DERIVATION_PATH,
        negotiator: Optional[ResolutionNegotiator] = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._path = derivation_path
        self._negotiator = negotiator or ResolutionNegotiator()

    @property
    def derivation_path(self) -> str:
        return self._path

    def _resolve_address(self) -> str:
        try:
            address = self._session.transport.get_address(self._path)
        except DeployError:
            raise
        except Exception as e:
            raise DeviceSessionError(f"device did not return an address for {self._path}: {e}") from e
        if not address:
            raise DeviceSessionError(f"device returned an empty address for {self._path}")
        log_event("device_address_resolved", data={"address": address, "path": self._path})
        return address

    def _sign(self, tx: UnsignedTransaction) -> RawSignature:
        transport = self._session.transport
        raw_hex = encode_unsigned(tx).hex()
        outcome = self._negotiator.negotiate(transport, raw_hex)

        try:
            if outcome.blind:
                sig = transport.sign_transaction(self._path, raw_hex)
            else:
                sig = transport.sign_transaction(self._path, raw_hex, outcome.resolution)
        except BlindSigningDisabled:
            raise
        except Exception as e:
            if outcome.blind and requires_resolution(e):
                raise BlindSigningDisabled(str(e)) from e
            if isinstance(e, DeployError):
                raise
            raise DeviceSessionError(f"device signing failed: {e}") from e

        log_event(
            "device_signed",
            data={"path": self._path, "tx_type": tx.tx_type, "resolution": outcome.attempt or "blind"},
        )
        return sig
