"""
readydeploy command line.

    readydeploy deploy --network sepolia --contract ZRNCoin --args '["ZRNCoin", "ZRN", "$deployer", "1000", "0"]'
    readydeploy probe
    readydeploy fingerprint --network mainnet --contract ZRNCoin --address 0x...

Exit codes: 0 success, 1 pipeline error, 2 configuration error.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.core.settings import DeploySettings, SettingsValidationError, load_settings, parse_constructor_args
from artifacts import ContractArtifact, default_artifact_path, load_artifact
from deployer import ContractDeployer, probe_device
from errors import ArtifactError, DeployError
from execution.evm import RpcClient
from fingerprint import fingerprint
from observability import configure_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _json_ok(data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": True, "data": data or {}}
    return json.dumps(payload, indent=2, sort_keys=True)


def _json_err(code: str, message: str, data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": False, "error": {"code": code, "message": message, "data": data or {}}}
    return json.dumps(payload, indent=2, sort_keys=True)


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--env-file", default=None, help="dotenv file (default: nearest .env from the working directory)")
    p.add_argument("--network", default=None)
    p.add_argument("--rpc-url", default=None)
    p.add_argument("--log-level", default=None)


def _add_artifact_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--artifact", default=None, help="path to a Hardhat artifact JSON")
    p.add_argument("--contract", default=None, help="contract name under ./artifacts/contracts")
    p.add_argument("--root", default=".", help="Hardhat project root for --contract")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="readydeploy")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="deploy a contract")
    _add_common_args(deploy)
    _add_artifact_args(deploy)
    deploy.add_argument("--args", default=None, help="constructor arguments as a JSON array")
    ledger = deploy.add_mutually_exclusive_group()
    ledger.add_argument("--ledger", dest="use_ledger", action="store_true", default=None)
    ledger.add_argument("--no-ledger", dest="use_ledger", action="store_false")
    deploy.add_argument("--path", default=None, help="derivation path on the device")
    deploy.set_defaults(func=_cmd_deploy)

    probe = sub.add_parser("probe", help="read the device address and exit")
    _add_common_args(probe)
    probe.add_argument("--path", default=None)
    probe.set_defaults(func=_cmd_probe)

    fp = sub.add_parser("fingerprint", help="codehash and ABI hash of a deployed contract")
    _add_common_args(fp)
    _add_artifact_args(fp)
    fp.add_argument("--address", required=True)
    fp.set_defaults(func=_cmd_fingerprint)
    return parser


def _settings_from(ns: argparse.Namespace, **extra: Any) -> DeploySettings:
    return load_settings(
        env_file=ns.env_file,
        NETWORK=ns.network,
        RPC_URL=ns.rpc_url,
        DEPLOY_LOG_LEVEL=ns.log_level,
        **extra,
    )


def _artifact_from(ns: argparse.Namespace, settings: DeploySettings) -> ContractArtifact:
    if ns.artifact:
        return load_artifact(ns.artifact)
    if ns.contract:
        return load_artifact(default_artifact_path(Path(ns.root), ns.contract))
    if settings.ARTIFACT_PATH:
        return load_artifact(settings.ARTIFACT_PATH)
    raise ArtifactError("No artifact given: pass --artifact or --contract, or set ARTIFACT_PATH")


def _cmd_deploy(ns: argparse.Namespace) -> Dict[str, Any]:
    extra: Dict[str, Any] = {"USE_LEDGER": ns.use_ledger, "LEDGER_PATH": ns.path}
    if ns.args is not None:
        extra["CONSTRUCTOR_ARGS"] = parse_constructor_args(ns.args)
    settings = _settings_from(ns, **extra)
    configure_logging(settings.DEPLOY_LOG_LEVEL)
    artifact = _artifact_from(ns, settings)
    result = ContractDeployer(settings).deploy(artifact)
    return result.to_dict()


def _cmd_probe(ns: argparse.Namespace) -> Dict[str, Any]:
    # Probing never needs a local key, so the hardware path is forced on.
    settings = _settings_from(ns, USE_LEDGER=True, LEDGER_PATH=ns.path)
    configure_logging(settings.DEPLOY_LOG_LEVEL)
    return probe_device(settings)


def _cmd_fingerprint(ns: argparse.Namespace) -> Dict[str, Any]:
    settings = _settings_from(ns, USE_LEDGER=True)
    configure_logging(settings.DEPLOY_LOG_LEVEL)
    artifact = _artifact_from(ns, settings)
    rpc = RpcClient.from_url(settings.RPC_URL or "", timeout=settings.HTTP_TIMEOUT_SEC)
    return fingerprint(rpc, ns.address, artifact, network=settings.network_name)


def main(argv: Optional[List[str]] = None) -> int:
    ns = build_parser().parse_args(argv)
    try:
        data = ns.func(ns)
    except SettingsValidationError as e:
        print(_json_err("config_error", str(e), {"field": e.field}), file=sys.stderr)
        return EXIT_CONFIG
    except ArtifactError as e:
        print(_json_err(e.code, e.message, e.data), file=sys.stderr)
        return EXIT_CONFIG
    except DeployError as e:
        print(_json_err(e.code, e.message, e.data), file=sys.stderr)
        return EXIT_FAILED
    except Exception as e:
        print(_json_err("unexpected_error", str(e), {"type": type(e).__name__}), file=sys.stderr)
        return EXIT_FAILED
    print(_json_ok(data))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
