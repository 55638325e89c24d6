from __future__ import annotations

import logging
from typing import Optional

from errors import GasEstimationFailed
from observability import log_event

# Limit used when simulation fails for any reason.
FALLBACK_GAS_LIMIT = 5_000_000
# +20% safety margin, applied as integer math.
SAFETY_NUMERATOR = 120
SAFETY_DENOMINATOR = 100


class GasEstimator:
    """
    Estimate execution cost via the node, never failing the deployment.
    """

    def __init__(self, rpc, *, fallback: int = FALLBACK_GAS_LIMIT) -> None:
        self._rpc = rpc
        self._fallback = fallback

    def estimate(self, sender: str, data: bytes, to: Optional[str] = None) -> int:
        try:
            estimate = int(self._rpc.estimate_gas(sender, data, to))
        except Exception as e:
            err = GasEstimationFailed(str(e), self._fallback)
            log_event(
                "gas_estimation_failed",
                data={**err.to_dict(), "sender": sender},
                level=logging.WARNING,
            )
            return self._fallback
        return estimate * SAFETY_NUMERATOR // SAFETY_DENOMINATOR
