"""
Wire encodings for contract-creation transactions.

Legacy (EIP-155):
    unsigned = RLP(nonce, gasPrice, gas, to, value, data, chainId, 0, 0)
    signed   = RLP(nonce, gasPrice, gas, to, value, data, v, r, s)

Priority fee (EIP-1559, type 2):
    unsigned = 0x02 || RLP(chainId, nonce, maxPriorityFeePerGas, maxFeePerGas, gas, to, value, data, [])
    signed   = 0x02 || RLP(..., [], yParity, r, s)
"""

from __future__ import annotations

from typing import Any, List, Optional

import rlp
from eth_keys import keys
from eth_utils import keccak, to_checksum_address

from .models import (
    LegacyFees,
    NormalizedSignature,
    PriorityFees,
    SignedEnvelope,
    UnsignedTransaction,
)

TYPE_PRIORITY_FEE = 2
_EIP155_OFFSET = 35


def _rlp_int(i: int) -> bytes:
    if i < 0:
        raise ValueError("RLP integers must be non-negative")
    if i == 0:
        return b""
    return int(i).to_bytes((int(i).bit_length() + 7) // 8, "big")


def _to_address_bytes(v: Optional[str]) -> bytes:
    if v is None or v == "":
        return b""
    s = v.strip()
    if s.startswith("0x"):
        s = s[2:]
    b = bytes.fromhex(s)
    if len(b) != 20:
        raise ValueError("to must be 20 bytes")
    return b


def _from_rlp_int(b: bytes) -> int:
    return int.from_bytes(b, "big") if b else 0


def _from_address_bytes(b: bytes) -> Optional[str]:
    if not b:
        return None
    if len(b) != 20:
        raise ValueError("to must be 20 bytes")
    return to_checksum_address(b)


def _legacy_body(tx: UnsignedTransaction) -> List[bytes]:
    if not isinstance(tx.fee_fields, LegacyFees):
        raise TypeError("legacy encoding needs LegacyFees")
    return [
        _rlp_int(tx.nonce),
        _rlp_int(tx.fee_fields.gas_price),
        _rlp_int(tx.gas_limit),
        _to_address_bytes(tx.to),
        _rlp_int(tx.value),
        tx.data,
    ]


def _priority_body(tx: UnsignedTransaction) -> List[Any]:
    if not isinstance(tx.fee_fields, PriorityFees):
        raise TypeError("priority-fee encoding needs PriorityFees")
    return [
        _rlp_int(tx.chain_id),
        _rlp_int(tx.nonce),
        _rlp_int(tx.fee_fields.max_priority_fee_per_gas),
        _rlp_int(tx.fee_fields.max_fee_per_gas),
        _rlp_int(tx.gas_limit),
        _to_address_bytes(tx.to),
        _rlp_int(tx.value),
        tx.data,
        [],
    ]


def encode_unsigned(tx: UnsignedTransaction) -> bytes:
    """
    Canonical unsigned form; this is what the signing device receives.
    """
    if tx.tx_type == TYPE_PRIORITY_FEE:
        return bytes([TYPE_PRIORITY_FEE]) + rlp.encode(_priority_body(tx))
    return rlp.encode(_legacy_body(tx) + [_rlp_int(tx.chain_id), b"", b""])


def signing_hash(tx: UnsignedTransaction) -> bytes:
    return keccak(encode_unsigned(tx))


def legacy_v(recovery_field: int, chain_id: int) -> int:
    """
    Chain-adjust a legacy recovery value exactly once.

    0/1 (parity) and 27/28 (pre-EIP-155) are adjusted; values from 35 upwards are
    taken as already chain-adjusted by the signer.
    """
    if recovery_field in (0, 1):
        return recovery_field + _EIP155_OFFSET + 2 * chain_id
    if recovery_field in (27, 28):
        return recovery_field - 27 + _EIP155_OFFSET + 2 * chain_id
    if recovery_field >= _EIP155_OFFSET:
        return recovery_field
    raise ValueError(f"invalid legacy recovery value: {recovery_field}")


def recovery_id(tx: UnsignedTransaction, sig: NormalizedSignature) -> int:
    if tx.tx_type == TYPE_PRIORITY_FEE:
        parity = sig.recovery_field
    else:
        parity = legacy_v(sig.recovery_field, tx.chain_id) - _EIP155_OFFSET - 2 * tx.chain_id
    if parity not in (0, 1):
        raise ValueError(f"recovery value does not match chain id {tx.chain_id}")
    return parity


def encode_signed(tx: UnsignedTransaction, sig: NormalizedSignature) -> bytes:
    r = _rlp_int(int.from_bytes(sig.r, "big"))
    s = _rlp_int(int.from_bytes(sig.s, "big"))
    if tx.tx_type == TYPE_PRIORITY_FEE:
        if sig.recovery_field not in (0, 1):
            raise ValueError("priority-fee transactions carry a parity bit (0 or 1)")
        body = _priority_body(tx) + [_rlp_int(sig.recovery_field), r, s]
        return bytes([TYPE_PRIORITY_FEE]) + rlp.encode(body)
    v = legacy_v(sig.recovery_field, tx.chain_id)
    return rlp.encode(_legacy_body(tx) + [_rlp_int(v), r, s])


def seal(tx: UnsignedTransaction, sig: NormalizedSignature) -> SignedEnvelope:
    return SignedEnvelope(tx=tx, signature=sig, raw=encode_signed(tx, sig))


def decode_unsigned(raw: bytes) -> UnsignedTransaction:
    """
    Parse the canonical unsigned form produced by `encode_unsigned`.
    """
    if not raw:
        raise ValueError("empty transaction")
    if raw[0] == TYPE_PRIORITY_FEE:
        items = rlp.decode(raw[1:])
        if len(items) != 9:
            raise ValueError(f"expected 9 fields in type-2 payload, got {len(items)}")
        chain_id, nonce, max_priority, max_fee, gas, to, value, data, access_list = items
        if access_list:
            raise ValueError("access lists are not supported")
        return UnsignedTransaction(
            to=_from_address_bytes(to),
            data=bytes(data),
            nonce=_from_rlp_int(nonce),
            gas_limit=_from_rlp_int(gas),
            fee_fields=PriorityFees(
                max_fee_per_gas=_from_rlp_int(max_fee),
                max_priority_fee_per_gas=_from_rlp_int(max_priority),
            ),
            chain_id=_from_rlp_int(chain_id),
            value=_from_rlp_int(value),
        )
    if raw[0] < 0xC0:
        raise ValueError(f"unsupported transaction type: {raw[0]}")
    items = rlp.decode(raw)
    if len(items) != 9:
        raise ValueError(f"expected 9 fields in legacy payload, got {len(items)}")
    nonce, gas_price, gas, to, value, data, chain_id, _, _ = items
    return UnsignedTransaction(
        to=_from_address_bytes(to),
        data=bytes(data),
        nonce=_from_rlp_int(nonce),
        gas_limit=_from_rlp_int(gas),
        fee_fields=LegacyFees(gas_price=_from_rlp_int(gas_price)),
        chain_id=_from_rlp_int(chain_id),
        value=_from_rlp_int(value),
    )


def recover_sender(envelope: SignedEnvelope) -> str:
    """
    Recover the checksummed address that produced the envelope's signature.
    """
    sig = keys.Signature(
        vrs=(
            recovery_id(envelope.tx, envelope.signature),
            int.from_bytes(envelope.signature.r, "big"),
            int.from_bytes(envelope.signature.s, "big"),
        )
    )
    pub = sig.recover_public_key_from_msg_hash(signing_hash(envelope.tx))
    return pub.to_checksum_address()


def contract_address(sender: str, nonce: int) -> str:
    """
    Address a creation transaction from `sender` at `nonce` deploys to.
    """
    return to_checksum_address(keccak(rlp.encode([_to_address_bytes(sender), _rlp_int(nonce)]))[12:])
