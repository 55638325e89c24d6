"""
Ledger Ethereum app transport.

ledgereth handles the dongle, account lookup and transaction signing. The
clear-signing descriptors (plugins, NFTs, ERC20 tokens) have no ledgereth
counterpart, so those provisioning APDUs are built here and sent on the same
dongle right before the signing request.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ledgereth.accounts import get_account_by_path
from ledgereth.comms import init_dongle
from ledgereth.constants import DATA_CHUNK_SIZE
from ledgereth.objects import TransactionType
from ledgereth.transactions import decode_transaction, sign_transaction
from ledgereth.utils import is_bip32_path

from errors import DeviceSessionError, ResolutionUnavailable
from execution.models import RawSignature

from .remote_resolution import RemoteResolutionService

CLA = 0xE0
INS_PROVIDE_ERC20 = 0x0A
INS_SET_EXTERNAL_PLUGIN = 0x12
INS_PROVIDE_NFT = 0x14
INS_SET_PLUGIN = 0x16

_STATUS_HINTS = {
    0x6985: "rejected on device",
    # Generic "invalid data"; also what the app answers when blind signing is off.
    0x6A80: "invalid data, or blind signing is disabled in the Ethereum app",
    0x6D00: "Ethereum app is not open",
    0x6E00: "Ethereum app is not open",
    0x5515: "device is locked",
}


def device_path(path: str) -> str:
    """
    "m/44'/60'/0'/0/0" -> "44'/60'/0'/0/0", rejecting paths the app cannot sign with.
    """
    p = path.strip()
    if p.startswith("m/"):
        p = p[2:]
    if not is_bip32_path(p):
        raise DeviceSessionError(f"invalid derivation path: {path}")
    return p


def _apdu(ins: int, data: bytes) -> bytes:
    if len(data) > DATA_CHUNK_SIZE:
        raise DeviceSessionError(f"descriptor longer than {DATA_CHUNK_SIZE} bytes")
    return bytes([CLA, ins, 0x00, 0x00, len(data)]) + data


def _hex(v: Any) -> bytes:
    s = str(v or "").strip()
    return bytes.fromhex(s[2:] if s.startswith("0x") else s)


def _status_of(e: BaseException) -> Optional[int]:
    # ledgereth re-raises ledgerblue's CommException (which carries sw) as LedgerError.
    for err in (e, e.__cause__):
        status = getattr(err, "sw", None)
        if status is not None:
            return status
    return None


def _session_error(e: Exception) -> DeviceSessionError:
    status = _status_of(e)
    hint = _STATUS_HINTS.get(status, "") if status is not None else ""
    message = f"{e} ({hint})" if hint else str(e)
    return DeviceSessionError(message, status=status)


class LedgerTransport:
    def __init__(self, dongle: Any, resolver: Optional[RemoteResolutionService] = None) -> None:
        self._dongle = dongle
        self._resolver = resolver

    def _exchange(self, ins: int, data: bytes) -> bytes:
        try:
            return bytes(self._dongle.exchange(_apdu(ins, data)))
        except DeviceSessionError:
            raise
        except Exception as e:
            raise _session_error(e) from e

    def get_address(self, path: str) -> str:
        return get_account_by_path(device_path(path), dongle=self._dongle).address

    def resolve_transaction(self, raw_tx_hex: str, *config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self._resolver is None:
            raise ResolutionUnavailable({"service": "LEDGER_RESOLUTION_URL not configured"})
        return self._resolver.resolve_transaction(raw_tx_hex, *config)

    def _provide(self, resolution: Dict[str, Any]) -> None:
        for plugin in _items(resolution.get("plugin")):
            self._exchange(INS_SET_PLUGIN, _hex(plugin))
        for ext in _items(resolution.get("externalPlugin")):
            self._exchange(INS_SET_EXTERNAL_PLUGIN, _hex(ext.get("payload")) + _hex(ext.get("signature")))
        for nft in _items(resolution.get("nfts")):
            self._exchange(INS_PROVIDE_NFT, _hex(nft))
        for token in _items(resolution.get("erc20Tokens")):
            self._exchange(INS_PROVIDE_ERC20, _hex(token))

    def sign_transaction(
        self, path: str, raw_tx_hex: str, resolution: Optional[Dict[str, Any]] = None
    ) -> RawSignature:
        sender_path = device_path(path)
        try:
            tx = decode_transaction(_hex(raw_tx_hex))
        except Exception as e:
            raise DeviceSessionError(f"transaction cannot be sent to the device: {e}") from e
        if resolution:
            self._provide(resolution)
        try:
            signed = sign_transaction(tx, sender_path=sender_path, dongle=self._dongle)
        except Exception as e:
            raise _session_error(e) from e

        # ledgereth rebuilds the full legacy v from the single byte the app returns.
        if tx.transaction_type == TransactionType.LEGACY:
            return RawSignature(r=hex(signed.r), s=hex(signed.s), v=hex(signed.v))
        return RawSignature(r=hex(signed.sender_r), s=hex(signed.sender_s), v=hex(signed.y_parity))

    def close(self) -> None:
        self._dongle.close()


def _items(v: Any) -> Iterable[Any]:
    if not v:
        return ()
    return v


def open_ledger(resolver: Optional[RemoteResolutionService] = None) -> LedgerTransport:
    """
    Opener for DeviceSession: connect to the first Ledger found over USB HID.
    """
    try:
        dongle = init_dongle()
    except Exception as e:
        raise _session_error(e) from e
    return LedgerTransport(dongle, resolver)
