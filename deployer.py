"""
Contract deployment pipeline.

address -> fee model -> nonce / gas -> unsigned tx -> signature -> envelope -> broadcast

Every step is sequential; the device session (when hardware signing is used)
is held for the whole invocation and released on every exit path.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack, contextmanager
from functools import partial
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from app.core.settings import DeploySettings
from artifacts import ContractArtifact, substitute_placeholders
from errors import DeployError, DeviceSessionError, InvalidSignature, NoSigningAuthority, SignatureMismatch
from execution.broadcast import BroadcastCoordinator
from execution.builder import TransactionBuilder, check_constructor_arity, deploy_payload
from execution.evm import RpcClient, format_gwei
from execution.fees import resolve_fee_model
from execution.gas import GasEstimator
from execution.models import DeploymentResult, FeeFields, PriorityFees, SignedEnvelope
from execution.txcodec import recover_sender, seal
from observability import build_log_context, log_event
from signing.base import SigningAuthority
from signing.hardware import HardwareSigner
from signing.ledger_transport import open_ledger
from signing.local_key import LocalKeySigner
from signing.normalize import normalize_signature
from signing.remote_resolution import RemoteResolutionService
from signing.resolution import ResolutionNegotiator
from signing.session import DeviceSession, DeviceTransport


def default_transport_opener(settings: DeploySettings) -> Callable[[], DeviceTransport]:
    resolver = None
    if settings.LEDGER_RESOLUTION_URL:
        resolver = RemoteResolutionService(settings.LEDGER_RESOLUTION_URL, timeout=settings.HTTP_TIMEOUT_SEC)
    return partial(open_ledger, resolver)


class ContractDeployer:
    def __init__(
        self,
        settings: DeploySettings,
        *,
        rpc: Optional[RpcClient] = None,
        transport_opener: Optional[Callable[[], DeviceTransport]] = None,
        negotiator: Optional[ResolutionNegotiator] = None,
    ) -> None:
        self._settings = settings
        self._rpc = rpc or RpcClient.from_url(settings.RPC_URL or "", timeout=settings.HTTP_TIMEOUT_SEC)
        self._opener = transport_opener or default_transport_opener(settings)
        self._negotiator = negotiator or ResolutionNegotiator()
        self._ctx = build_log_context(network=settings.network_name, chain_id=settings.chain_id)
        self._address: Optional[str] = None

    @contextmanager
    def _step(self, name: str) -> Iterator[None]:
        try:
            yield
        except DeployError as e:
            if e.fatal:
                e.data.setdefault("step", name)
                e.data.setdefault("network", self._settings.network_name)
                if self._address:
                    e.data.setdefault("address", self._address)
                log_event("deploy_failed", ctx=self._ctx, data=e.to_dict(), level=logging.ERROR)
            raise

    def _select_authority(self, stack: ExitStack) -> SigningAuthority:
        s = self._settings
        reason = "hardware signing disabled (USE_LEDGER=0) and DEPLOYER_PK not set"
        if s.USE_LEDGER:
            session = DeviceSession(self._opener)
            try:
                stack.enter_context(session)
                signer = HardwareSigner(session, derivation_path=s.LEDGER_PATH, negotiator=self._negotiator)
                self._address = signer.resolve_address()
                return signer
            except DeviceSessionError as e:
                session.close()
                reason = f"hardware device unavailable ({e.message}) and DEPLOYER_PK not set"
                log_event(
                    "device_unavailable",
                    ctx=self._ctx,
                    data={"error": e.message, "local_key_fallback": bool(s.DEPLOYER_PK)},
                    level=logging.WARNING,
                )

        if not s.DEPLOYER_PK:
            raise NoSigningAuthority(reason)
        local = LocalKeySigner(s.DEPLOYER_PK)
        self._address = local.resolve_address()
        log_event("local_key_selected", ctx=self._ctx, data={"address": self._address})
        return local

    def _verify(self, envelope: SignedEnvelope, sender: str) -> None:
        try:
            recovered = recover_sender(envelope)
        except ValueError as e:
            raise SignatureMismatch(sender, f"unrecoverable: {e}") from e
        if recovered.lower() != sender.lower():
            raise SignatureMismatch(sender, recovered)

    def deploy(self, artifact: ContractArtifact, constructor_args: Optional[Sequence[Any]] = None) -> DeploymentResult:
        s = self._settings
        args = list(s.CONSTRUCTOR_ARGS if constructor_args is None else constructor_args)
        self._address = None
        log_event(
            "deploy_started",
            ctx=self._ctx,
            data={"contract": artifact.contract_name, "args": len(args), "use_ledger": s.USE_LEDGER},
        )

        with self._step("preflight"):
            check_constructor_arity(artifact, args)

        with ExitStack() as stack:
            with self._step("signing_authority"):
                authority = self._select_authority(stack)
            sender = authority.address

            with self._step("fee_model"):
                fee_fields = resolve_fee_model(self._rpc.get_fee_data())
            log_event("fee_model_selected", ctx=self._ctx, data=_fee_summary(fee_fields))

            with self._step("build"):
                data = deploy_payload(artifact, substitute_placeholders(args, deployer=sender))
                nonce = self._rpc.get_transaction_count(sender)
                gas_limit = GasEstimator(self._rpc).estimate(sender, data)
                tx = TransactionBuilder(s.chain_id).build(
                    data=data, nonce=nonce, fee_fields=fee_fields, gas_limit=gas_limit
                )
            log_event(
                "transaction_built",
                ctx=self._ctx,
                data={"from": sender, "nonce": nonce, "gas_limit": gas_limit, "tx_type": tx.tx_type, "bytes": len(data)},
            )

            with self._step("sign"):
                raw_sig = authority.sign(tx)
                try:
                    envelope = seal(tx, normalize_signature(raw_sig, tx.fee_fields))
                except ValueError as e:
                    raise InvalidSignature(str(e)) from e
                if s.VERIFY_SIGNATURE:
                    self._verify(envelope, sender)
                authority.finalize()

            with self._step("broadcast"):
                coordinator = BroadcastCoordinator(
                    self._rpc, network=s.network_name, receipt_timeout=s.RECEIPT_TIMEOUT_SEC
                )
                return coordinator.broadcast(envelope, sender=sender)


def probe_device(settings: DeploySettings, transport_opener: Optional[Callable[[], DeviceTransport]] = None) -> Dict[str, str]:
    """
    Open the device, read the address at the configured path, release it.
    """
    opener = transport_opener or default_transport_opener(settings)
    with DeviceSession(opener) as session:
        signer = HardwareSigner(session, derivation_path=settings.LEDGER_PATH)
        address = signer.resolve_address()
    return {"address": address, "path": settings.LEDGER_PATH}


def _fee_summary(fee_fields: FeeFields) -> Dict[str, Any]:
    if isinstance(fee_fields, PriorityFees):
        return {
            "model": "priority_fee",
            "max_fee_per_gas": format_gwei(fee_fields.max_fee_per_gas),
            "max_priority_fee_per_gas": format_gwei(fee_fields.max_priority_fee_per_gas),
        }
    return {"model": "legacy", "gas_price": format_gwei(fee_fields.gas_price)}
