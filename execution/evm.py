from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from web3 import Web3
from web3.providers.rpc import HTTPProvider

from errors import RpcError

from .models import GWEI, FeeSnapshot

# Priority tip assumed when the latest block carries a base fee.
DEFAULT_PRIORITY_FEE_WEI = 1_500_000_000


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    rpc_env: str
    default_rpc: str


NETWORKS: Dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig("mainnet", 1, "ETH_RPC_URL", "https://rpc.ankr.com/eth"),
    "sepolia": NetworkConfig("sepolia", 11155111, "SEPOLIA_RPC_URL", "https://ethereum-sepolia-rpc.publicnode.com"),
    "arbitrumOne": NetworkConfig("arbitrumOne", 42161, "ARB_RPC_URL", "https://arb1.arbitrum.io/rpc"),
    "bsc": NetworkConfig("bsc", 56, "BSC_RPC_URL", "https://bsc-dataseed.binance.org"),
}


def network_for(name: str) -> NetworkConfig:
    n = (name or "").strip()
    if n in NETWORKS:
        return NETWORKS[n]
    for cfg in NETWORKS.values():
        if cfg.name.lower() == n.lower():
            return cfg
    raise ValueError(f"Unsupported network: {name} (supported: {', '.join(NETWORKS)})")


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    v = v.strip()
    return v or None


def rpc_url_for(network: str) -> str:
    """
    Resolve RPC URL for a network.

    Env precedence (network=arbitrumOne -> ARBITRUMONE):
    - EVM_RPC_URL_<NETWORK>
    - the network's own variable (ETH_RPC_URL, SEPOLIA_RPC_URL, ARB_RPC_URL, BSC_RPC_URL)
    - built-in public endpoint
    """
    cfg = network_for(network)
    return _env(f"EVM_RPC_URL_{cfg.name.upper()}") or _env(cfg.rpc_env) or cfg.default_rpc


def is_hex_address(s: str) -> bool:
    v = (s or "").strip()
    if not (v.startswith("0x") and len(v) == 42):
        return False
    try:
        int(v[2:], 16)
        return True
    except ValueError:
        return False


class RpcClient:
    """
    The handful of JSON-RPC calls a deployment needs, on top of web3.
    """

    def __init__(self, w3: Web3) -> None:
        self._w3 = w3

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 10.0) -> "RpcClient":
        return cls(Web3(HTTPProvider(url, request_kwargs={"timeout": timeout})))

    def get_fee_data(self) -> FeeSnapshot:
        try:
            gas_price: Optional[int] = int(self._w3.eth.gas_price)
        except Exception:
            gas_price = None
        try:
            block = self._w3.eth.get_block("latest")
        except Exception as e:
            raise RpcError("get_block", str(e)) from e
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return FeeSnapshot(gas_price=gas_price)
        priority = DEFAULT_PRIORITY_FEE_WEI
        return FeeSnapshot(
            max_fee_per_gas=int(base_fee) * 2 + priority,
            max_priority_fee_per_gas=priority,
            gas_price=gas_price,
        )

    def get_transaction_count(self, address: str) -> int:
        try:
            return int(self._w3.eth.get_transaction_count(self._w3.to_checksum_address(address)))
        except Exception as e:
            raise RpcError("get_transaction_count", str(e)) from e

    def estimate_gas(self, sender: str, data: bytes, to: Optional[str] = None) -> int:
        tx: Dict[str, Any] = {"from": self._w3.to_checksum_address(sender), "data": "0x" + data.hex()}
        if to:
            tx["to"] = self._w3.to_checksum_address(to)
        return int(self._w3.eth.estimate_gas(tx))

    def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = self._w3.eth.send_raw_transaction(raw_tx)
        # tx_hash is HexBytes
        return self._w3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, *, timeout: float, poll_latency: float = 2.0) -> Dict[str, Any]:
        return dict(self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout, poll_latency=poll_latency))

    def get_code(self, address: str) -> bytes:
        try:
            return bytes(self._w3.eth.get_code(self._w3.to_checksum_address(address)))
        except Exception as e:
            raise RpcError("get_code", str(e)) from e


def format_gwei(wei: int) -> str:
    return f"{wei / GWEI:.3f} gwei"
