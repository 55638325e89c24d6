from __future__ import annotations

import logging
from typing import Any, Dict

from web3.exceptions import TimeExhausted

from errors import ConfirmationTimeout, DeploymentReverted, DeployError, RpcError, classify_rpc_error
from observability import log_event

from .models import DeploymentResult, SignedEnvelope
from .txcodec import contract_address


class BroadcastCoordinator:
    """
    Submit a signed creation transaction once and wait for it to be mined.

    Rejections are surfaced as-is; nothing is resubmitted, since a retry after an
    ambiguous failure can deploy the contract twice.
    """

    def __init__(self, rpc, *, network: str, receipt_timeout: float = 600.0, poll_latency: float = 2.0) -> None:
        self._rpc = rpc
        self._network = network
        self._receipt_timeout = float(receipt_timeout)
        self._poll_latency = float(poll_latency)

    def submit(self, envelope: SignedEnvelope) -> str:
        try:
            tx_hash = self._rpc.send_raw_transaction(envelope.raw)
        except DeployError:
            raise
        except Exception as e:
            raise classify_rpc_error(e) from e
        log_event("broadcast_submitted", data={"network": self._network, "tx_hash": tx_hash})
        return tx_hash

    def await_deployment(self, tx_hash: str, *, sender: str) -> DeploymentResult:
        try:
            receipt = self._rpc.wait_for_receipt(
                tx_hash, timeout=self._receipt_timeout, poll_latency=self._poll_latency
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(tx_hash, self._receipt_timeout) from e
        except Exception as e:
            raise RpcError("wait_for_transaction_receipt", str(e)) from e

        if int(receipt.get("status", 1)) == 0:
            raise DeploymentReverted(tx_hash)
        address = receipt.get("contractAddress")
        if not address:
            raise DeployError(
                "missing_contract_address",
                f"Receipt for {tx_hash} has no contract address",
                {"tx_hash": tx_hash},
            )
        result = DeploymentResult(
            network=self._network,
            sender=sender,
            tx_hash=tx_hash,
            contract_address=str(address),
            block_number=_opt_int(receipt, "blockNumber"),
            gas_used=_opt_int(receipt, "gasUsed"),
        )
        log_event("deployment_confirmed", data=result.to_dict())
        return result

    def broadcast(self, envelope: SignedEnvelope, *, sender: str) -> DeploymentResult:
        predicted = contract_address(sender, envelope.tx.nonce)
        log_event(
            "broadcast_prepared",
            data={"network": self._network, "tx_hash": envelope.tx_hash, "predicted_address": predicted},
        )
        tx_hash = self.submit(envelope)
        result = self.await_deployment(tx_hash, sender=sender)
        if result.contract_address.lower() != predicted.lower():
            log_event(
                "contract_address_unexpected",
                data={"predicted": predicted, "actual": result.contract_address},
                level=logging.WARNING,
            )
        return result


def _opt_int(receipt: Dict[str, Any], key: str):
    v = receipt.get(key)
    return int(v) if v is not None else None
