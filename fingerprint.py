"""
Audit fingerprints for a deployed contract.

codehash   = keccak256(runtime bytecode read from the chain)
abi.sha256 = sha256(ABI as compact JSON with sorted keys)
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from eth_utils import keccak

from artifacts import ContractArtifact
from errors import DeployError
from execution.evm import RpcClient, is_hex_address


def stable_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def abi_sha256(abi: Any) -> str:
    return "0x" + hashlib.sha256(stable_json(abi).encode("utf-8")).hexdigest()


def code_hash(code: bytes) -> str:
    return "0x" + keccak(code).hex()


def fingerprint(rpc: RpcClient, address: str, artifact: ContractArtifact, *, network: str) -> Dict[str, Any]:
    if not is_hex_address(address):
        raise DeployError("invalid_address", f"Not an address: {address}", {"address": address})
    code = rpc.get_code(address)
    if not code:
        raise DeployError(
            "no_code",
            f"No code at {address} on network {network}",
            {"address": address, "network": network},
        )
    return {
        "network": network,
        "address": address,
        "contract": artifact.contract_name,
        "codehash": code_hash(code),
        "abi.sha256": abi_sha256(artifact.abi),
    }
