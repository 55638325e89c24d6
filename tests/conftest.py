import json
import os
import sys
from unittest.mock import MagicMock

import pytest
from eth_keys import keys
from eth_utils import keccak

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from errors import DeviceSessionError
from execution.evm import RpcClient
from execution.models import FeeSnapshot, RawSignature
from execution.txcodec import contract_address, decode_unsigned

# Hardhat's first default account.
TEST_PK = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEVICE_PK = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

_ENV_KEYS = (
    "NETWORK",
    "HARDHAT_NETWORK",
    "RPC_URL",
    "ETH_RPC_URL",
    "SEPOLIA_RPC_URL",
    "ARB_RPC_URL",
    "BSC_RPC_URL",
    "EVM_RPC_URL_MAINNET",
    "EVM_RPC_URL_SEPOLIA",
    "EVM_RPC_URL_ARBITRUMONE",
    "EVM_RPC_URL_BSC",
    "USE_LEDGER",
    "LEDGER_PATH",
    "LEDGER_RESOLUTION_URL",
    "DEPLOYER_PK",
    "VERIFY_SIGNATURE",
    "ARTIFACT_PATH",
    "CONSTRUCTOR_ARGS",
    "HTTP_TIMEOUT_SEC",
    "RECEIPT_TIMEOUT_SEC",
    "DEPLOY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also drops values a test loaded from a .env file.
    for k in _ENV_KEYS:
        monkeypatch.setenv(k, "")
        monkeypatch.delenv(k)


class FakeDevice:
    """
    In-memory DeviceTransport signing with a fixed key, like the Ledger app does:
    parity for typed transactions, chain-adjusted v for legacy ones.
    """

    def __init__(self, private_key=DEVICE_PK, *, resolve=None, reject_blind=False):
        self._key = keys.PrivateKey(bytes.fromhex(private_key[2:]))
        self._resolve = resolve
        self.reject_blind = reject_blind
        self.resolve_calls = []
        self.sign_calls = []
        self.closed = 0

    @property
    def address(self):
        return self._key.public_key.to_checksum_address()

    def get_address(self, path):
        return self.address

    def resolve_transaction(self, raw_tx_hex, *config):
        self.resolve_calls.append((raw_tx_hex, config))
        if self._resolve is None:
            raise ConnectionError("resolution service unreachable")
        return self._resolve(raw_tx_hex, *config)

    def sign_transaction(self, path, raw_tx_hex, resolution=None):
        self.sign_calls.append((path, raw_tx_hex, resolution))
        if resolution is None and self.reject_blind:
            raise DeviceSessionError("Please provide the 'resolution' parameter", status=0x6A80)
        raw = bytes.fromhex(raw_tx_hex)
        sig = self._key.sign_msg_hash(keccak(raw))
        if raw[0] < 0x80:
            v = sig.v
        else:
            v = sig.v + 35 + 2 * decode_unsigned(raw).chain_id
        # Unpadded hex, as devices commonly return it.
        return RawSignature(r=hex(sig.r), s=hex(sig.s), v=hex(v))

    def close(self):
        self.closed += 1


@pytest.fixture
def fake_device():
    return FakeDevice()


def make_rpc(*, fee_snapshot=None, nonce=0, gas=100_000):
    rpc = MagicMock(spec=RpcClient)
    rpc.get_fee_data.return_value = fee_snapshot or FeeSnapshot(
        max_fee_per_gas=50_000_000_000, max_priority_fee_per_gas=2_000_000_000, gas_price=25_000_000_000
    )
    rpc.get_transaction_count.return_value = nonce
    rpc.estimate_gas.return_value = gas
    rpc.send_raw_transaction.side_effect = lambda raw: "0x" + keccak(raw).hex()

    def _receipt(tx_hash, *, timeout, poll_latency=2.0):
        sender = rpc.get_transaction_count.call_args[0][0]
        return {
            "status": 1,
            "contractAddress": contract_address(sender, nonce),
            "blockNumber": 7,
            "gasUsed": gas,
        }

    rpc.wait_for_receipt.side_effect = _receipt
    return rpc


@pytest.fixture
def rpc():
    return make_rpc()


TOKEN_ABI = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "name_", "type": "string", "internalType": "string"},
            {"name": "symbol_", "type": "string", "internalType": "string"},
            {"name": "treasury", "type": "address", "internalType": "address"},
            {"name": "initialSupply", "type": "uint256", "internalType": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "uint256"}],
    },
]
TOKEN_BYTECODE = "0x6080604052348015600f57600080fd5b50603f80601d6000396000f3fe"


@pytest.fixture
def artifact_path(tmp_path):
    p = tmp_path / "artifacts" / "contracts" / "ZRNCoin.sol" / "ZRNCoin.json"
    p.parent.mkdir(parents=True)
    p.write_text(
        json.dumps({"contractName": "ZRNCoin", "abi": TOKEN_ABI, "bytecode": TOKEN_BYTECODE}),
        encoding="utf-8",
    )
    return p


@pytest.fixture
def artifact(artifact_path):
    from artifacts import load_artifact

    return load_artifact(artifact_path)
