"""
ReadyDeploy settings.

Typed, validated configuration read from the environment (and `.env`) once at
startup. The entrypoint builds a single `DeploySettings` and passes it down; the
pipeline never reads the environment itself.

Usage:
    from app.core.settings import load_settings

    settings = load_settings(NETWORK="sepolia")
"""

from __future__ import annotations

import dataclasses
import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Tuple

from dotenv import find_dotenv, load_dotenv

from execution.evm import network_for, rpc_url_for


class SettingsValidationError(Exception):
    """Raised when settings validation fails."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid configuration for {field}={value!r}: {message}")


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean from environment variable."""
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def parse_constructor_args(value: str | None) -> Tuple[Any, ...]:
    """Parse CONSTRUCTOR_ARGS, a JSON array."""
    if value is None or value.strip() == "":
        return ()
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise SettingsValidationError("CONSTRUCTOR_ARGS", value, f"not valid JSON ({e})") from e
    if not isinstance(parsed, list):
        raise SettingsValidationError("CONSTRUCTOR_ARGS", value, "must be a JSON array")
    return tuple(parsed)


def _get_version_from_pyproject() -> str:
    """Extract version from pyproject.toml."""
    try:
        pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        version: str = str(data.get("project", {}).get("version", "0.0.0"))
        return version
    except (OSError, tomllib.TOMLDecodeError):
        return "0.0.0"


def _default_network() -> str:
    return (os.getenv("HARDHAT_NETWORK") or os.getenv("NETWORK") or "mainnet").strip()


@dataclass(frozen=True)
class DeploySettings:
    """
    Deployment configuration, validated at construction time.
    """

    PROJECT_NAME: str = "ReadyDeploy"
    VERSION: str = field(default_factory=_get_version_from_pyproject)

    # Network
    NETWORK: str = field(default_factory=_default_network)
    RPC_URL: str | None = field(default_factory=lambda: os.getenv("RPC_URL") or None)

    # Signing
    USE_LEDGER: bool = field(default_factory=lambda: _parse_bool(os.getenv("USE_LEDGER"), True))
    LEDGER_PATH: str = field(default_factory=lambda: os.getenv("LEDGER_PATH", "44'/60'/0'/0/0").strip())
    LEDGER_RESOLUTION_URL: str | None = field(default_factory=lambda: os.getenv("LEDGER_RESOLUTION_URL") or None)
    DEPLOYER_PK: str | None = field(default_factory=lambda: os.getenv("DEPLOYER_PK") or None)
    VERIFY_SIGNATURE: bool = field(default_factory=lambda: _parse_bool(os.getenv("VERIFY_SIGNATURE"), True))

    # Contract
    ARTIFACT_PATH: str | None = field(default_factory=lambda: os.getenv("ARTIFACT_PATH") or None)
    CONSTRUCTOR_ARGS: Tuple[Any, ...] = field(default_factory=lambda: parse_constructor_args(os.getenv("CONSTRUCTOR_ARGS")))

    # Timeouts
    HTTP_TIMEOUT_SEC: float = field(default_factory=lambda: _parse_float(os.getenv("HTTP_TIMEOUT_SEC"), 10.0))
    RECEIPT_TIMEOUT_SEC: float = field(default_factory=lambda: _parse_float(os.getenv("RECEIPT_TIMEOUT_SEC"), 600.0))

    # Observability
    DEPLOY_LOG_LEVEL: str = field(default_factory=lambda: os.getenv("DEPLOY_LOG_LEVEL", "info").strip().lower())

    def __post_init__(self) -> None:
        """Validate settings, then pin the RPC endpoint so nothing reads the env later."""
        self._validate()
        if not self.RPC_URL:
            object.__setattr__(self, "RPC_URL", rpc_url_for(self.NETWORK))

    def _validate(self) -> None:
        errors: list[str] = []

        try:
            network_for(self.NETWORK)
        except ValueError as e:
            errors.append(str(e))

        if not self.USE_LEDGER and not self.DEPLOYER_PK:
            errors.append("DEPLOYER_PK required when USE_LEDGER=0")

        if self.DEPLOYER_PK:
            pk = self.DEPLOYER_PK.strip()
            pk = pk[2:] if pk.startswith("0x") else pk
            if len(pk) != 64 or any(c not in "0123456789abcdefABCDEF" for c in pk):
                errors.append("DEPLOYER_PK must be a 32-byte hex string")

        if not self.LEDGER_PATH:
            errors.append("LEDGER_PATH must not be empty")

        if self.HTTP_TIMEOUT_SEC <= 0:
            errors.append(f"HTTP_TIMEOUT_SEC must be positive, got {self.HTTP_TIMEOUT_SEC}")
        if self.RECEIPT_TIMEOUT_SEC <= 0:
            errors.append(f"RECEIPT_TIMEOUT_SEC must be positive, got {self.RECEIPT_TIMEOUT_SEC}")

        if errors:
            raise SettingsValidationError("MULTIPLE", None, "; ".join(errors))

    @property
    def chain_id(self) -> int:
        return network_for(self.NETWORK).chain_id

    @property
    def network_name(self) -> str:
        return network_for(self.NETWORK).name

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary (redacting secrets)."""
        result: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if any(s in f.name for s in ["SECRET", "PASSWORD", "PK", "TOKEN"]):
                result[f.name] = "***REDACTED***" if value else None
            elif isinstance(value, tuple):
                result[f.name] = list(value)
            else:
                result[f.name] = value
        result["chain_id"] = self.chain_id
        return result


def load_settings(*, env_file: str | None = None, **overrides: Any) -> DeploySettings:
    """
    Build settings from the environment, then apply explicit overrides (CLI flags).

    Overrides set to None are ignored.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    return DeploySettings(**{k: v for k, v in overrides.items() if v is not None})


__all__ = ["DeploySettings", "SettingsValidationError", "load_settings", "parse_constructor_args"]
