from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from eth_utils import keccak

GWEI = 10**9


@dataclass(frozen=True)
class LegacyFees:
    gas_price: int


@dataclass(frozen=True)
class PriorityFees:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


FeeFields = Union[LegacyFees, PriorityFees]


@dataclass(frozen=True)
class FeeSnapshot:
    """
    Fee conditions as reported by the network. Any field may be absent.
    """

    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None


@dataclass(frozen=True)
class UnsignedTransaction:
    to: Optional[str]
    data: bytes
    nonce: int
    gas_limit: int
    fee_fields: FeeFields
    chain_id: int
    value: int = 0

    @property
    def tx_type(self) -> int:
        return 2 if isinstance(self.fee_fields, PriorityFees) else 0

    def to_dict(self) -> Dict[str, Any]:
        """
        eth-account / web3 style transaction dict. `to` is omitted for contract creation.
        """
        tx: Dict[str, Any] = {
            "nonce": self.nonce,
            "gas": self.gas_limit,
            "value": self.value,
            "data": "0x" + self.data.hex(),
            "chainId": self.chain_id,
        }
        if self.to:
            tx["to"] = self.to
        if isinstance(self.fee_fields, PriorityFees):
            tx["type"] = 2
            tx["maxFeePerGas"] = self.fee_fields.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = self.fee_fields.max_priority_fee_per_gas
            tx["accessList"] = []
        else:
            tx["gasPrice"] = self.fee_fields.gas_price
        return tx


@dataclass(frozen=True)
class RawSignature:
    """
    Signature as returned by a signing authority, in its native encoding.

    r/s may be hex strings without leading zeros, bytes or ints;
    v may be an int, a decimal string or a 0x-prefixed hex string.
    """

    r: Union[str, bytes, int]
    s: Union[str, bytes, int]
    v: Union[str, int]


@dataclass(frozen=True)
class NormalizedSignature:
    r: bytes
    s: bytes
    recovery_field: int

    def __post_init__(self) -> None:
        if len(self.r) != 32 or len(self.s) != 32:
            raise ValueError("normalized r and s must be exactly 32 bytes")


@dataclass(frozen=True)
class SignedEnvelope:
    tx: UnsignedTransaction
    signature: NormalizedSignature
    raw: bytes

    @property
    def tx_hash(self) -> str:
        return "0x" + keccak(self.raw).hex()


@dataclass(frozen=True)
class DeploymentResult:
    network: str
    sender: str
    tx_hash: str
    contract_address: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "sender": self.sender,
            "tx_hash": self.tx_hash,
            "contract_address": self.contract_address,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
        }
