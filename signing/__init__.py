from .base import SignerState, SigningAuthority
from .hardware import HardwareSigner
from .local_key import LocalKeySigner
from .normalize import normalize_signature
from .resolution import RESOLUTION_ATTEMPTS, ResolutionNegotiator, ResolutionOutcome
from .session import DeviceSession, DeviceTransport

__all__ = [
    "SignerState",
    "SigningAuthority",
    "HardwareSigner",
    "LocalKeySigner",
    "normalize_signature",
    "RESOLUTION_ATTEMPTS",
    "ResolutionNegotiator",
    "ResolutionOutcome",
    "DeviceSession",
    "DeviceTransport",
]
