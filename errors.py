from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class DeployError(Exception):
    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    # Recovered errors are absorbed by the component that raised them.
    fatal = True

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": dict(self.data)}


class ConstructorArityMismatch(DeployError):
    def __init__(self, expected: int, got: int) -> None:
        super().__init__(
            "constructor_arity_mismatch",
            f"Constructor expects {expected} args, got {got}",
            {"expected": expected, "got": got},
        )


class NoSigningAuthority(DeployError):
    def __init__(self, reason: str) -> None:
        super().__init__(
            "no_signing_authority",
            f"No signing authority available: {reason}. Connect the device or set DEPLOYER_PK.",
            {"reason": reason},
        )


class DeviceSessionError(DeployError):
    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        data: Dict[str, Any] = {}
        if status is not None:
            data["status"] = f"0x{status:04x}"
        super().__init__("device_session_error", message, data)
        self.status = status


class ResolutionUnavailable(DeployError):
    fatal = False

    def __init__(self, attempts: Dict[str, str]) -> None:
        super().__init__(
            "resolution_unavailable",
            "Clear-signing resolution failed for every call shape; falling back to blind signing",
            {"attempts": dict(attempts)},
        )


class BlindSigningDisabled(DeployError):
    def __init__(self, device_message: str) -> None:
        super().__init__(
            "blind_signing_disabled",
            "Device refused to sign without a clear-signing resolution. "
            "Enable blind signing in the Ethereum app or make the resolution service reachable.",
            {"device_message": device_message},
        )


class GasEstimationFailed(DeployError):
    fatal = False

    def __init__(self, cause: str, fallback: int) -> None:
        super().__init__(
            "gas_estimation_failed",
            f"Gas estimation failed, using fallback limit {fallback}: {cause}",
            {"fallback": fallback},
        )


class BroadcastRejected(DeployError):
    def __init__(self, reason: str, node_message: str) -> None:
        super().__init__("broadcast_rejected", node_message, {"reason": reason})
        self.reason = reason


class RpcError(DeployError):
    def __init__(self, operation: str, cause: str) -> None:
        super().__init__("rpc_error", f"RPC call {operation} failed: {cause}", {"operation": operation})


class SignatureMismatch(DeployError):
    def __init__(self, expected: str, recovered: str) -> None:
        super().__init__(
            "signature_mismatch",
            "Signature does not recover to the sending address",
            {"expected": expected, "recovered": recovered},
        )


class InvalidSignature(DeployError):
    def __init__(self, cause: str) -> None:
        super().__init__("invalid_signature", f"Signer returned a malformed signature: {cause}", {"cause": cause})


class DeploymentReverted(DeployError):
    def __init__(self, tx_hash: str) -> None:
        super().__init__(
            "deployment_reverted",
            f"Deployment transaction {tx_hash} was mined but reverted",
            {"tx_hash": tx_hash},
        )


class ConfirmationTimeout(DeployError):
    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            "confirmation_timeout",
            f"Transaction {tx_hash} was submitted but not mined within {timeout:g}s",
            {"tx_hash": tx_hash, "timeout_sec": timeout},
        )


class SigningStateError(DeployError):
    def __init__(self, message: str) -> None:
        super().__init__("signing_state_error", message, {})


class ArtifactError(DeployError):
    def __init__(self, message: str, **data: Any) -> None:
        super().__init__("artifact_error", message, data)


# Ordered: the first matching substring decides the reason code.
_REJECTION_REASONS = (
    ("nonce too low", "nonce_conflict"),
    ("nonce too high", "nonce_conflict"),
    ("replacement transaction underpriced", "underpriced"),
    ("transaction underpriced", "underpriced"),
    ("max fee per gas less than block base fee", "underpriced"),
    ("insufficient funds", "insufficient_funds"),
    ("already known", "already_known"),
    ("known transaction", "already_known"),
)


def rpc_error_message(e: Exception) -> str:
    """
    Extract the node's message from a web3 / JSON-RPC exception.
    """
    response = getattr(e, "rpc_response", None)
    if isinstance(response, dict):
        err = response.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    if e.args and isinstance(e.args[0], dict):
        msg = e.args[0].get("message")
        if msg:
            return str(msg)
    return str(e)


def classify_rpc_error(e: Exception) -> BroadcastRejected:
    """
    Map a send_raw_transaction failure onto a stable rejection reason.
    """
    message = rpc_error_message(e)
    lowered = message.lower()
    for needle, reason in _REJECTION_REASONS:
        if needle in lowered:
            return BroadcastRejected(reason, message)
    return BroadcastRejected("rejected", message)
