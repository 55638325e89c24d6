from __future__ import annotations

from typing import Any, Sequence

from artifacts import ContractArtifact, encode_constructor_args
from errors import ConstructorArityMismatch

from .models import FeeFields, UnsignedTransaction


def check_constructor_arity(artifact: ContractArtifact, args: Sequence[Any]) -> None:
    """
    Pre-flight check; runs before any network or device I/O.
    """
    expected = len(artifact.constructor_inputs)
    if len(args) != expected:
        raise ConstructorArityMismatch(expected, len(args))


def deploy_payload(artifact: ContractArtifact, args: Sequence[Any]) -> bytes:
    """
    Creation calldata: bytecode followed by the ABI-encoded constructor arguments.
    """
    check_constructor_arity(artifact, args)
    return artifact.bytecode + encode_constructor_args(artifact, args)


class TransactionBuilder:
    def __init__(self, chain_id: int) -> None:
        self._chain_id = int(chain_id)

    def build(
        self,
        *,
        data: bytes,
        nonce: int,
        fee_fields: FeeFields,
        gas_limit: int,
    ) -> UnsignedTransaction:
        return UnsignedTransaction(
            to=None,
            data=data,
            nonce=int(nonce),
            gas_limit=int(gas_limit),
            fee_fields=fee_fields,
            chain_id=self._chain_id,
            value=0,
        )
