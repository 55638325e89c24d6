from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from errors import DeployError, DeviceSessionError
from execution.models import RawSignature
from observability import log_event


class DeviceTransport(Protocol):
    """
    Request/response operations consumed from a hardware signing device.
    """

    def get_address(self, path: str) -> str:
        ...

    def resolve_transaction(self, raw_tx_hex: str, *config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def sign_transaction(
        self, path: str, raw_tx_hex: str, resolution: Optional[Dict[str, Any]] = None
    ) -> RawSignature:
        ...

    def close(self) -> None:
        ...


class DeviceSession:
    """
    Exclusive ownership of a device transport for one pipeline invocation.

    Use as a context manager; `close()` is idempotent so the transport is released
    exactly once whichever exit path runs first.
    """

    def __init__(self, opener: Callable[[], DeviceTransport], *, label: str = "ledger") -> None:
        self._opener = opener
        self._label = label
        self._transport: Optional[DeviceTransport] = None
        self._released = False

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._released

    @property
    def transport(self) -> DeviceTransport:
        if not self.is_open:
            raise DeviceSessionError(f"{self._label} session is not open")
        assert self._transport is not None
        return self._transport

    def open(self) -> "DeviceSession":
        if self._released:
            raise DeviceSessionError(f"{self._label} session was already released")
        if self._transport is not None:
            return self
        try:
            self._transport = self._opener()
        except DeployError:
            raise
        except Exception as e:
            raise DeviceSessionError(f"could not open {self._label} transport: {e}") from e
        log_event("device_session_opened", data={"device": self._label})
        return self

    def close(self) -> None:
        if self._released:
            return
        self._released = True
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            # Never mask the error that is already propagating.
            log_event(
                "device_session_close_failed",
                data={"device": self._label, "error": str(e)},
                level=logging.WARNING,
            )
            return
        log_event("device_session_released", data={"device": self._label})

    def __enter__(self) -> "DeviceSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
