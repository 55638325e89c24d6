"""
Clear-signing resolution negotiation.

The device SDK's resolveTransaction changed argument shape between releases:

- older: resolveTransaction(rawTxHex, {externalPlugins, erc20, nft})
- newer: resolveTransaction(rawTxHex, resolutionConfig={}, loadConfig={externalPlugins, erc20, nft})

Both shapes are tried in order (RESOLUTION_ATTEMPTS). When neither works the
transaction is signed blind, which the device may refuse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from errors import ResolutionUnavailable
from observability import log_event

from .session import DeviceTransport

# Interpret external plugins and token transfers; skip NFT metadata.
RESOLUTION_TOGGLES: Dict[str, bool] = {"externalPlugins": True, "erc20": True, "nft": False}


@dataclass(frozen=True)
class ResolutionAttempt:
    name: str
    build_args: Callable[[str], Tuple[Any, ...]]


RESOLUTION_ATTEMPTS: Tuple[ResolutionAttempt, ...] = (
    ResolutionAttempt("options", lambda raw: (raw, dict(RESOLUTION_TOGGLES))),
    ResolutionAttempt("load_config", lambda raw: (raw, {}, dict(RESOLUTION_TOGGLES))),
)


@dataclass(frozen=True)
class ResolutionOutcome:
    resolution: Optional[Dict[str, Any]]
    attempt: Optional[str]
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def blind(self) -> bool:
        return self.resolution is None


class ResolutionNegotiator:
    def __init__(self, attempts: Sequence[ResolutionAttempt] = RESOLUTION_ATTEMPTS) -> None:
        self._attempts = tuple(attempts)

    @property
    def attempts(self) -> Tuple[ResolutionAttempt, ...]:
        return self._attempts

    def negotiate(self, transport: DeviceTransport, raw_tx_hex: str) -> ResolutionOutcome:
        failures: Dict[str, str] = {}
        for attempt in self._attempts:
            try:
                resolution = transport.resolve_transaction(*attempt.build_args(raw_tx_hex))
            except Exception as e:
                failures[attempt.name] = str(e) or type(e).__name__
                continue
            log_event("resolution_resolved", data={"attempt": attempt.name, "failed": sorted(failures)})
            return ResolutionOutcome(resolution=resolution, attempt=attempt.name, failures=failures)

        err = ResolutionUnavailable(failures)
        log_event("resolution_unavailable", data=err.to_dict(), level=logging.WARNING)
        return ResolutionOutcome(resolution=None, attempt=None, failures=failures)
