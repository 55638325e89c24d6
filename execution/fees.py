from __future__ import annotations

from .models import GWEI, FeeFields, FeeSnapshot, LegacyFees, PriorityFees

# Legacy gas price used when the network does not report one.
DEFAULT_GAS_PRICE_WEI = 3 * GWEI


def resolve_fee_model(snapshot: FeeSnapshot) -> FeeFields:
    """
    Choose the fee encoding for a fee snapshot.

    Priority-fee (type 2) only when both maxFeePerGas and maxPriorityFeePerGas are
    reported and non-zero; legacy otherwise, with the reported gas price or 3 gwei.
    """
    if snapshot.max_fee_per_gas and snapshot.max_priority_fee_per_gas:
        return PriorityFees(
            max_fee_per_gas=int(snapshot.max_fee_per_gas),
            max_priority_fee_per_gas=int(snapshot.max_priority_fee_per_gas),
        )
    return LegacyFees(gas_price=int(snapshot.gas_price or DEFAULT_GAS_PRICE_WEI))
