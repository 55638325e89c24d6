from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_utils import to_checksum_address

from errors import ArtifactError

# Constructor argument replaced with the deploying address.
DEPLOYER_PLACEHOLDER = "$deployer"


@dataclass(frozen=True)
class ContractArtifact:
    contract_name: str
    abi: List[Dict[str, Any]]
    bytecode: bytes
    path: str = ""

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        for item in self.abi:
            if item.get("type") == "constructor":
                return list(item.get("inputs") or [])
        return []


def default_artifact_path(root: str | Path, contract_name: str) -> Path:
    """
    Hardhat layout: artifacts/contracts/<Name>.sol/<Name>.json
    """
    return Path(root) / "artifacts" / "contracts" / f"{contract_name}.sol" / f"{contract_name}.json"


def _hex_to_bytes(v: str, *, name: str, path: str) -> bytes:
    s = (v or "").strip()
    if s.startswith("0x"):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        # Unlinked library placeholders (__$...$__) land here too.
        raise ArtifactError(f"Artifact {name} is not valid hex", path=path) from e


def load_artifact(path: str | Path) -> ContractArtifact:
    p = Path(path).expanduser()
    if not p.exists():
        raise ArtifactError(f"Artifact not found: {p}. Compile the contracts first.", path=str(p))
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ArtifactError(f"Artifact is not valid JSON: {e}", path=str(p)) from e

    abi = raw.get("abi")
    if not isinstance(abi, list):
        raise ArtifactError("Artifact has no ABI", path=str(p))
    bytecode = _hex_to_bytes(str(raw.get("bytecode") or ""), name="bytecode", path=str(p))
    if not bytecode:
        raise ArtifactError("Artifact has empty bytecode (abstract contract or interface?)", path=str(p))
    return ContractArtifact(
        contract_name=str(raw.get("contractName") or p.stem),
        abi=abi,
        bytecode=bytecode,
        path=str(p),
    )


def abi_type(param: Dict[str, Any]) -> str:
    t = str(param.get("type") or "")
    if t.startswith("tuple"):
        inner = ",".join(abi_type(c) for c in param.get("components") or [])
        return f"({inner}){t[len('tuple'):]}"
    return t


def _parse_int(v: Any) -> int:
    if isinstance(v, bool):
        raise ValueError("booleans are not integers")
    if isinstance(v, int):
        return v
    s = str(v).strip().lower()
    if s.startswith("0x"):
        return int(s, 16)
    return int(s, 10)


def coerce_arg(type_: str, value: Any) -> Any:
    """
    Convert a constructor argument (often a string from env / CLI) to the Python
    value eth-abi expects for `type_`.
    """
    if type_.endswith("]"):
        base = type_[: type_.rindex("[")]
        items = json.loads(value) if isinstance(value, str) else value
        if not isinstance(items, (list, tuple)):
            raise ValueError(f"expected a list for {type_}")
        return [coerce_arg(base, item) for item in items]
    if type_.startswith(("uint", "int")):
        return _parse_int(value)
    if type_ == "address":
        return to_checksum_address(str(value).strip())
    if type_ == "bool":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}
    if type_.startswith("bytes"):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        s = str(value).strip()
        return bytes.fromhex(s[2:] if s.startswith("0x") else s)
    if type_ == "string":
        return str(value)
    if type_.startswith("(") and isinstance(value, str):
        return tuple(json.loads(value))
    return value


def substitute_placeholders(args: Sequence[Any], *, deployer: str) -> List[Any]:
    out: List[Any] = []
    for a in args:
        if isinstance(a, str) and a.strip().lower() == DEPLOYER_PLACEHOLDER:
            out.append(deployer)
        elif isinstance(a, list):
            out.append(substitute_placeholders(a, deployer=deployer))
        else:
            out.append(a)
    return out


def encode_constructor_args(artifact: ContractArtifact, args: Sequence[Any]) -> bytes:
    inputs = artifact.constructor_inputs
    types = [abi_type(i) for i in inputs]
    values = []
    for param, t, v in zip(inputs, types, args):
        try:
            values.append(coerce_arg(t, v))
        except (ValueError, TypeError) as e:
            raise ArtifactError(
                f"Constructor argument '{param.get('name') or t}' is not a valid {t}: {e}",
                argument=param.get("name"),
                type=t,
            ) from e
    if not types:
        return b""
    try:
        return abi_encode(types, values)
    except EncodingError as e:
        raise ArtifactError(f"Constructor arguments do not encode: {e}", types=types) from e
