from __future__ import annotations

from typing import Any, Dict, Optional

import requests


class RemoteResolutionService:
    """
    Clear-signing resolution over HTTP.

    The Ledger resolution service (contract / token / plugin metadata lookups)
    only ships with the JavaScript SDK, so it runs as a sidecar.

    Protocol (HTTP JSON):
    POST {LEDGER_RESOLUTION_URL}/resolve_transaction
    body, older SDK shape: {"rawTxHex": "...", "options": {...}}
    body, newer SDK shape: {"rawTxHex": "...", "resolutionConfig": {...}, "loadConfig": {...}}
    response: {"resolution": {"erc20Tokens": [...], "externalPlugin": [...], ...}}

    Sidecars forward the body to resolveTransaction unchanged, so a sidecar built
    on the other SDK generation rejects the shape it does not understand.
    """

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        url = (base_url or "").strip()
        if not url:
            raise ValueError("resolution service URL not set")
        self._base_url = url.rstrip("/")
        self._timeout = float(timeout)

    def resolve_transaction(self, raw_tx_hex: str, *config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if len(config) == 1:
            payload: Dict[str, Any] = {"rawTxHex": raw_tx_hex, "options": config[0]}
        elif len(config) == 2:
            payload = {"rawTxHex": raw_tx_hex, "resolutionConfig": config[0], "loadConfig": config[1]}
        else:
            raise TypeError(f"resolve_transaction takes 1 or 2 config arguments ({len(config)} given)")
        r = requests.post(f"{self._base_url}/resolve_transaction", json=payload, timeout=self._timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict) or "resolution" not in data:
            raise ValueError("Resolution service did not return a resolution")
        return data["resolution"]
