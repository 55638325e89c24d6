from __future__ import annotations

from typing import Union

from execution.models import FeeFields, NormalizedSignature, PriorityFees, RawSignature


def pad32(value: Union[str, bytes, int]) -> bytes:
    """
    Left-zero-pad a signature component to exactly 32 bytes.

    Devices may return r/s as hex without leading zeros (even odd-length).
    """
    if isinstance(value, bool):
        raise ValueError("signature component must not be a bool")
    if isinstance(value, int):
        if value < 0 or value.bit_length() > 256:
            raise ValueError("signature component out of range")
        return value.to_bytes(32, "big")
    if isinstance(value, (bytes, bytearray)):
        b = bytes(value)
    else:
        s = str(value).strip()
        if s.lower().startswith("0x"):
            s = s[2:]
        if len(s) > 64:
            raise ValueError("signature component longer than 32 bytes")
        b = bytes.fromhex(s.rjust(64, "0"))
    if len(b) > 32:
        raise ValueError("signature component longer than 32 bytes")
    return b.rjust(32, b"\x00")


def parse_v(v: Union[str, int]) -> int:
    """
    Integer value of v; strings may be decimal or 0x-prefixed hex.
    """
    if isinstance(v, bool):
        raise ValueError("v must not be a bool")
    if isinstance(v, int):
        return v
    s = str(v).strip().lower()
    if s.startswith("0x"):
        return int(s, 16)
    return int(s, 10)


def normalize_signature(raw: RawSignature, fee_fields: FeeFields) -> NormalizedSignature:
    """
    Map a raw signature onto the layout of the transaction's encoding.

    Priority-fee transactions carry only the parity bit (v mod 2); legacy
    transactions carry the full integer v, chain-adjusted at serialization.
    """
    v = parse_v(raw.v)
    if isinstance(fee_fields, PriorityFees):
        recovery = v % 2
    else:
        recovery = v
    return NormalizedSignature(r=pad32(raw.r), s=pad32(raw.s), recovery_field=recovery)
