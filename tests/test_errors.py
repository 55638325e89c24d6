import pytest

from errors import (
    BlindSigningDisabled,
    ConstructorArityMismatch,
    DeployError,
    DeviceSessionError,
    GasEstimationFailed,
    ResolutionUnavailable,
    classify_rpc_error,
    rpc_error_message,
)


class _Web3RpcError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.rpc_response = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": message}}


@pytest.mark.parametrize(
    "message,reason",
    [
        ("nonce too low", "nonce_conflict"),
        ("replacement transaction underpriced", "underpriced"),
        ("max fee per gas less than block base fee: address 0x..", "underpriced"),
        ("insufficient funds for gas * price + value", "insufficient_funds"),
        ("already known", "already_known"),
        ("execution reverted", "rejected"),
    ],
)
def test_classify_rpc_error(message, reason):
    err = classify_rpc_error(ValueError({"code": -32000, "message": message}))
    assert err.reason == reason
    assert err.message == message
    assert err.code == "broadcast_rejected"


def test_rpc_error_message_sources():
    assert rpc_error_message(_Web3RpcError("nonce too high")) == "nonce too high"
    assert rpc_error_message(ValueError({"message": "x"})) == "x"
    assert rpc_error_message(RuntimeError("plain")) == "plain"


def test_to_dict_shape():
    err = ConstructorArityMismatch(5, 4)
    assert err.to_dict() == {
        "code": "constructor_arity_mismatch",
        "message": "Constructor expects 5 args, got 4",
        "data": {"expected": 5, "got": 4},
    }
    assert str(err) == "Constructor expects 5 args, got 4"


def test_recovered_errors_are_not_fatal():
    assert not ResolutionUnavailable({}).fatal
    assert not GasEstimationFailed("x", 1).fatal
    assert BlindSigningDisabled("x").fatal
    assert DeviceSessionError("x").fatal


def test_errors_are_raisable_and_hashable():
    with pytest.raises(DeployError):
        raise DeviceSessionError("locked", status=0x5515)
    assert len({DeviceSessionError("a"), DeviceSessionError("a")}) == 2
    assert DeviceSessionError("a", status=0x5515).data == {"status": "0x5515"}
