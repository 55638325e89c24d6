import logging
from unittest.mock import MagicMock

import pytest
import rlp
from eth_account import Account

from app.core.settings import DeploySettings
from conftest import TEST_ADDRESS, TEST_PK, FakeDevice, make_rpc
from deployer import ContractDeployer, probe_device
from errors import (
    BlindSigningDisabled,
    BroadcastRejected,
    ConstructorArityMismatch,
    InvalidSignature,
    NoSigningAuthority,
    SignatureMismatch,
)
from execution.models import FeeSnapshot, RawSignature
from execution.txcodec import contract_address, decode_unsigned

ARGS = ["ZRNCoin", "ZRN", "$deployer", "1000"]


def _settings(**kw):
    base = {"NETWORK": "sepolia", "RPC_URL": "http://rpc.invalid"}
    base.update(kw)
    return DeploySettings(**base)


def _sent_raw(rpc):
    return rpc.send_raw_transaction.call_args[0][0]


def test_hardware_deploy_with_priority_fees(artifact, rpc, fake_device):
    fake_device._resolve = lambda raw, *config: {"erc20Tokens": []}
    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device)

    result = deployer.deploy(artifact, ARGS)

    assert result.sender == fake_device.address
    assert result.contract_address == contract_address(fake_device.address, 0)
    raw = _sent_raw(rpc)
    assert raw[0] == 0x02
    assert result.tx_hash == rpc.send_raw_transaction.side_effect(raw)
    assert fake_device.closed == 1
    assert fake_device.sign_calls[0][2] == {"erc20Tokens": []}
    # $deployer became the device address in the constructor arguments.
    assert bytes.fromhex(fake_device.address[2:].lower()) in raw
    rpc.estimate_gas.assert_called_once()
    rpc.get_transaction_count.assert_called_once_with(fake_device.address)


def test_legacy_deploy_chain_adjusts_v_once(artifact, fake_device):
    rpc = make_rpc(fee_snapshot=FeeSnapshot(gas_price=4_000_000_000))
    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device)

    deployer.deploy(artifact, ARGS)

    items = rlp.decode(_sent_raw(rpc))
    assert len(items) == 9
    assert int.from_bytes(items[1], "big") == 4_000_000_000
    v = int.from_bytes(items[6], "big")
    assert v in (35 + 2 * 11155111, 36 + 2 * 11155111)


def test_gas_limit_has_safety_margin(artifact, fake_device):
    rpc = make_rpc(gas=200_000)
    ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device).deploy(artifact, ARGS)
    raw = fake_device.sign_calls[0][1]
    assert decode_unsigned(bytes.fromhex(raw)).gas_limit == 240_000


def test_gas_estimation_failure_uses_fallback(artifact, fake_device):
    rpc = make_rpc()
    rpc.estimate_gas.side_effect = ValueError("execution reverted")
    ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device).deploy(artifact, ARGS)
    assert decode_unsigned(bytes.fromhex(fake_device.sign_calls[0][1])).gas_limit == 5_000_000


def test_blind_refusal_releases_device_and_skips_broadcast(artifact, rpc):
    device = FakeDevice(reject_blind=True)
    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: device)

    with pytest.raises(BlindSigningDisabled) as e:
        deployer.deploy(artifact, ARGS)

    assert device.closed == 1
    assert len(device.resolve_calls) == 2
    rpc.send_raw_transaction.assert_not_called()
    assert e.value.data["step"] == "sign"
    assert e.value.data["network"] == "sepolia"
    assert e.value.data["address"] == device.address


def test_broadcast_rejection_releases_device(artifact, fake_device):
    rpc = make_rpc()
    rpc.send_raw_transaction.side_effect = ValueError({"code": -32000, "message": "nonce too low"})
    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device)

    with pytest.raises(BroadcastRejected) as e:
        deployer.deploy(artifact, ARGS)

    assert e.value.reason == "nonce_conflict"
    assert e.value.data["step"] == "broadcast"
    assert fake_device.closed == 1
    rpc.send_raw_transaction.assert_called_once()


def test_arity_mismatch_before_any_io(artifact):
    rpc = make_rpc()
    opener = MagicMock()
    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=opener)

    with pytest.raises(ConstructorArityMismatch) as e:
        deployer.deploy(artifact, ARGS[:3])

    assert e.value.data["expected"] == 4
    assert e.value.data["step"] == "preflight"
    opener.assert_not_called()
    assert rpc.method_calls == []


def test_local_key_fallback_when_device_missing(artifact, caplog):
    caplog.set_level(logging.WARNING, logger="readydeploy")
    rpc = make_rpc()

    def _opener():
        raise OSError("No Ledger device found")

    deployer = ContractDeployer(_settings(DEPLOYER_PK=TEST_PK), rpc=rpc, transport_opener=_opener)
    result = deployer.deploy(artifact, ARGS)

    assert result.sender == TEST_ADDRESS
    assert "device_unavailable" in caplog.text
    raw = _sent_raw(rpc)
    tx = decode_unsigned(b"\x02" + rlp.encode(rlp.decode(raw[1:])[:9]))
    assert raw == bytes(Account.sign_transaction(tx.to_dict(), TEST_PK).raw_transaction)


def test_local_key_when_ledger_disabled(artifact):
    rpc = make_rpc()
    opener = MagicMock()
    deployer = ContractDeployer(_settings(USE_LEDGER=False, DEPLOYER_PK=TEST_PK), rpc=rpc, transport_opener=opener)
    assert deployer.deploy(artifact, ARGS).sender == TEST_ADDRESS
    opener.assert_not_called()


def test_no_signing_authority(artifact):
    rpc = make_rpc()

    def _opener():
        raise OSError("No Ledger device found")

    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=_opener)
    with pytest.raises(NoSigningAuthority) as e:
        deployer.deploy(artifact, ARGS)

    assert "No Ledger device found" in e.value.message
    assert e.value.data["step"] == "signing_authority"
    rpc.get_fee_data.assert_not_called()


def test_device_address_failure_closes_session_before_fallback(artifact):
    device = FakeDevice()
    device.get_address = MagicMock(side_effect=OSError("app not open"))
    rpc = make_rpc()

    deployer = ContractDeployer(_settings(DEPLOYER_PK=TEST_PK), rpc=rpc, transport_opener=lambda: device)
    result = deployer.deploy(artifact, ARGS)

    assert result.sender == TEST_ADDRESS
    assert device.closed == 1


def test_signature_from_wrong_key_is_caught(artifact, fake_device):
    other = FakeDevice(private_key=TEST_PK)
    fake_device.sign_transaction = other.sign_transaction
    rpc = make_rpc()

    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device)
    with pytest.raises(SignatureMismatch) as e:
        deployer.deploy(artifact, ARGS)

    assert e.value.data["recovered"] == TEST_ADDRESS
    rpc.send_raw_transaction.assert_not_called()
    assert fake_device.closed == 1


def test_verification_can_be_disabled(artifact, fake_device):
    fake_device.sign_transaction = lambda path, raw, resolution=None: RawSignature(r=1, s=2, v=0)
    rpc = make_rpc()

    deployer = ContractDeployer(_settings(VERIFY_SIGNATURE=False), rpc=rpc, transport_opener=lambda: fake_device)
    deployer.deploy(artifact, ARGS)

    rpc.send_raw_transaction.assert_called_once()


def test_constructor_args_default_to_settings(artifact, rpc, fake_device):
    deployer = ContractDeployer(
        _settings(CONSTRUCTOR_ARGS=tuple(ARGS)), rpc=rpc, transport_opener=lambda: fake_device
    )
    assert deployer.deploy(artifact).sender == fake_device.address


def test_unsigned_transaction_is_a_contract_creation(artifact, rpc, fake_device):
    ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device).deploy(artifact, ARGS)
    unsigned = decode_unsigned(bytes.fromhex(fake_device.sign_calls[0][1]))
    assert unsigned.to is None
    assert unsigned.value == 0
    assert unsigned.chain_id == 11155111
    assert unsigned.data.startswith(artifact.bytecode)


def test_probe_device(fake_device):
    out = probe_device(_settings(LEDGER_PATH="44'/60'/1'/0/0"), transport_opener=lambda: fake_device)
    assert out == {"address": fake_device.address, "path": "44'/60'/1'/0/0"}
    assert fake_device.closed == 1


@pytest.mark.parametrize(
    "bad",
    [RawSignature(r=1, s=2, v=31), RawSignature(r="ff" * 33, s=2, v=27), RawSignature(r=1, s=2, v="zz")],
)
def test_malformed_device_signature_is_a_deploy_error(artifact, fake_device, caplog, bad):
    caplog.set_level(logging.ERROR, logger="readydeploy")
    fake_device.sign_transaction = lambda path, raw, resolution=None: bad
    rpc = make_rpc(fee_snapshot=FeeSnapshot(gas_price=4_000_000_000))

    deployer = ContractDeployer(_settings(), rpc=rpc, transport_opener=lambda: fake_device)
    with pytest.raises(InvalidSignature) as e:
        deployer.deploy(artifact, ARGS)

    assert e.value.code == "invalid_signature"
    assert e.value.data["step"] == "sign"
    assert e.value.data["network"] == "sepolia"
    assert e.value.data["address"] == fake_device.address
    assert "deploy_failed" in caplog.text
    assert fake_device.closed == 1
    rpc.send_raw_transaction.assert_not_called()
