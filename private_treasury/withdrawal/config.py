"""
Configuration for the withdrawal pipeline.

Two layers:

1. Module constants: field sizes, curve parameters and the default tree
   shape. These mirror the deployed contract and the compiled circuit and
   are validated on import.
2. Settings: an explicit, frozen value built by load_settings() from an
   optional YAML file plus environment variables. It is threaded into the
   accumulator, proof builder, ledger reader and submitter constructors;
   nothing below reads process state on its own.

Secrets (MANAGER_ETH_PRIVKEY, TREASURY_PRIVKEY) are only ever taken from the
environment. They are never read from the YAML file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import yaml
from web3 import Web3

from .exceptions import ConfigurationError
from .security import OperatorKey, SecretScalar

# ============================================================================
# FIELD AND CURVE PARAMETERS
# ============================================================================

# BN254 scalar field: the native field of the circuit, Poseidon and Baby Jubjub
SNARK_SCALAR_FIELD = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Baby Jubjub (twisted Edwards a*x^2 + y^2 = 1 + d*x^2*y^2 over the field above)
BABYJUB_A = 168700
BABYJUB_D = 168696
BABYJUB_SUBORDER = (
    2736030358979909402780800718157159386076813972158567259200215660948447373041
)
BABYJUB_BASE8 = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

# ============================================================================
# ACCUMULATOR
# ============================================================================

DEFAULT_TREE_DEPTH = 32
DEFAULT_TREE_ARITY = 2
MAX_TREE_ARITY = 5

# Padding for empty subtrees; must match the contract's own tree
NOTHING_UP_MY_SLEEVE_SEED = "Maci"
NOTHING_UP_MY_SLEEVE = (
    int.from_bytes(Web3.keccak(text=NOTHING_UP_MY_SLEEVE_SEED), "big")
    % SNARK_SCALAR_FIELD
)

# ============================================================================
# CIRCUIT
# ============================================================================

WITNESS_VERSION = 1
BUNDLE_VERSION = 1

DEFAULT_CIRCUITS_DIR = "circuits"
DEFAULT_WASM = "verif-manager.wasm"
DEFAULT_ZKEY = "verif-manager.zkey"
DEFAULT_VKEY = "verif-manager.vkey.json"
DEFAULT_POSEIDON_CONSTANTS = "poseidon_constants.json"
DEFAULT_SNARKJS_COMMAND: Tuple[str, ...] = ("snarkjs",)

# Public signal order as emitted by the compiled withdrawal circuit
DEFAULT_PUBLIC_SIGNALS: Tuple[str, ...] = (
    "v",
    "root",
    "leafIndex",
    "Px",
    "Py",
    "Qx",
    "Qy",
)
REQUIRED_PUBLIC_SIGNALS = frozenset(DEFAULT_PUBLIC_SIGNALS)

# ============================================================================
# LEDGER
# ============================================================================

DEFAULT_LEAF_EVENT = "NewLeaf"
DEFAULT_SELECTION = "first"

# Seconds
DEFAULT_PROVE_TIMEOUT = 600.0
DEFAULT_VERIFY_TIMEOUT = 60.0
DEFAULT_RECEIPT_TIMEOUT = 120.0

ENV_CONFIG_PATH = "TREASURY_CONFIG"
ENV_RPC_URL = "RPC_URL"
ENV_CONTRACT_ADDR = "CONTRACT_ADDR"
ENV_CONTRACT_ABI_PATH = "CONTRACT_ABI_PATH"
ENV_CIRCUITS_DIR = "CIRCUITS_DIR"
ENV_POSEIDON_CONSTANTS = "POSEIDON_CONSTANTS_PATH"
ENV_OPERATOR_KEY = "MANAGER_ETH_PRIVKEY"
ENV_WITHDRAW_SECRET = "TREASURY_PRIVKEY"


# ============================================================================
# SETTINGS
# ============================================================================


@dataclass(frozen=True)
class TreeParameters:
    """
    Shape of the deposit accumulator.

    Attributes:
        depth: Number of levels between a leaf and the root
        arity: Children per internal node
        zero_value: Hash used for an empty leaf position
    """

    depth: int = DEFAULT_TREE_DEPTH
    arity: int = DEFAULT_TREE_ARITY
    zero_value: int = NOTHING_UP_MY_SLEEVE

    def validate(self) -> "TreeParameters":
        if not isinstance(self.depth, int) or self.depth < 1:
            raise ConfigurationError("tree depth must be a positive int", depth=self.depth)
        if not isinstance(self.arity, int) or not 2 <= self.arity <= MAX_TREE_ARITY:
            raise ConfigurationError(
                f"tree arity must be in [2, {MAX_TREE_ARITY}]", arity=self.arity
            )
        if not 0 <= self.zero_value < SNARK_SCALAR_FIELD:
            raise ConfigurationError("zero value outside the scalar field")
        return self

    @property
    def capacity(self) -> int:
        return self.arity ** self.depth


@dataclass(frozen=True)
class LedgerSettings:
    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    abi_path: Optional[Path] = None
    from_block: int = 0
    leaf_event: str = DEFAULT_LEAF_EVENT

    def require(self) -> "LedgerSettings":
        missing = [
            name
            for name, value in (
                (ENV_RPC_URL, self.rpc_url),
                (ENV_CONTRACT_ADDR, self.contract_address),
                (ENV_CONTRACT_ABI_PATH, self.abi_path),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("ledger settings incomplete", missing=",".join(missing))
        return self


@dataclass(frozen=True)
class CircuitSettings:
    circuits_dir: Path = Path(DEFAULT_CIRCUITS_DIR)
    wasm: str = DEFAULT_WASM
    zkey: str = DEFAULT_ZKEY
    vkey: str = DEFAULT_VKEY
    poseidon_constants: Optional[Path] = None
    snarkjs_command: Tuple[str, ...] = DEFAULT_SNARKJS_COMMAND
    public_signals: Tuple[str, ...] = DEFAULT_PUBLIC_SIGNALS

    def validate(self) -> "CircuitSettings":
        if not self.snarkjs_command:
            raise ConfigurationError("snarkjs command cannot be empty")
        if len(set(self.public_signals)) != len(self.public_signals):
            raise ConfigurationError("duplicate public signal names")
        missing = REQUIRED_PUBLIC_SIGNALS - set(self.public_signals)
        if missing:
            raise ConfigurationError(
                "public signal layout lacks required signals",
                missing=",".join(sorted(missing)),
            )
        return self

    @property
    def poseidon_constants_path(self) -> Path:
        if self.poseidon_constants is not None:
            return Path(self.poseidon_constants)
        return Path(self.circuits_dir) / DEFAULT_POSEIDON_CONSTANTS


@dataclass(frozen=True)
class Timeouts:
    prove: float = DEFAULT_PROVE_TIMEOUT
    verify: float = DEFAULT_VERIFY_TIMEOUT
    receipt: float = DEFAULT_RECEIPT_TIMEOUT


@dataclass(frozen=True)
class Settings:
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    tree: TreeParameters = field(default_factory=TreeParameters)
    circuit: CircuitSettings = field(default_factory=CircuitSettings)
    timeouts: Timeouts = field(default_factory=Timeouts)
    selection: str = DEFAULT_SELECTION
    validate_parameters: bool = True
    operator_key: Optional[OperatorKey] = None
    withdraw_secret: Optional[SecretScalar] = None

    def require_operator_key(self) -> OperatorKey:
        if self.operator_key is None:
            raise ConfigurationError(f"{ENV_OPERATOR_KEY} is not set")
        return self.operator_key

    def require_withdraw_secret(self) -> SecretScalar:
        if self.withdraw_secret is None:
            raise ConfigurationError(f"{ENV_WITHDRAW_SECRET} is not set")
        return self.withdraw_secret


def load_settings(
    config_path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from an optional YAML file and the environment.

    Precedence: environment variables override the YAML file, which
    overrides the module defaults.

    Args:
        config_path: YAML file; falls back to $TREASURY_CONFIG when omitted
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: If the file is unreadable or a value is invalid
    """
    env = os.environ if environ is None else environ
    path = config_path or env.get(ENV_CONFIG_PATH) or None
    document = _read_yaml(Path(path)) if path else {}

    ledger_doc = _section(document, "ledger")
    tree_doc = _section(document, "tree")
    circuit_doc = _section(document, "circuit")
    timeout_doc = _section(document, "timeouts")

    try:
        abi_path = env.get(ENV_CONTRACT_ABI_PATH) or ledger_doc.get("abi_path")
        ledger = LedgerSettings(
            rpc_url=env.get(ENV_RPC_URL) or ledger_doc.get("rpc_url"),
            contract_address=env.get(ENV_CONTRACT_ADDR) or ledger_doc.get("contract_address"),
            abi_path=Path(abi_path) if abi_path else None,
            from_block=int(ledger_doc.get("from_block", 0)),
            leaf_event=str(ledger_doc.get("leaf_event", DEFAULT_LEAF_EVENT)),
        )

        tree = TreeParameters(
            depth=int(tree_doc.get("depth", DEFAULT_TREE_DEPTH)),
            arity=int(tree_doc.get("arity", DEFAULT_TREE_ARITY)),
            zero_value=int(tree_doc.get("zero_value", NOTHING_UP_MY_SLEEVE)),
        ).validate()

        constants = env.get(ENV_POSEIDON_CONSTANTS) or circuit_doc.get("poseidon_constants")
        circuit = CircuitSettings(
            circuits_dir=Path(
                env.get(ENV_CIRCUITS_DIR)
                or circuit_doc.get("circuits_dir", DEFAULT_CIRCUITS_DIR)
            ),
            wasm=str(circuit_doc.get("wasm", DEFAULT_WASM)),
            zkey=str(circuit_doc.get("zkey", DEFAULT_ZKEY)),
            vkey=str(circuit_doc.get("vkey", DEFAULT_VKEY)),
            poseidon_constants=Path(constants) if constants else None,
            snarkjs_command=_command(circuit_doc.get("snarkjs_command")),
            public_signals=tuple(
                circuit_doc.get("public_signals", DEFAULT_PUBLIC_SIGNALS)
            ),
        ).validate()

        timeouts = Timeouts(
            prove=float(timeout_doc.get("prove", DEFAULT_PROVE_TIMEOUT)),
            verify=float(timeout_doc.get("verify", DEFAULT_VERIFY_TIMEOUT)),
            receipt=float(timeout_doc.get("receipt", DEFAULT_RECEIPT_TIMEOUT)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid configuration value: {exc}") from exc

    return Settings(
        ledger=ledger,
        tree=tree,
        circuit=circuit,
        timeouts=timeouts,
        selection=str(document.get("selection", DEFAULT_SELECTION)),
        validate_parameters=bool(document.get("validate_parameters", True)),
        operator_key=_secret(env, ENV_OPERATOR_KEY, OperatorKey),
        withdraw_secret=_secret(env, ENV_WITHDRAW_SECRET, SecretScalar.parse),
    )


def _read_yaml(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as fh:
            document = yaml.safe_load(fh) or {}
    except OSError as exc:
        raise ConfigurationError("cannot read config file", path=str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError("config file is not valid YAML", path=str(path)) from exc
    if not isinstance(document, dict):
        raise ConfigurationError("config file must contain a mapping", path=str(path))
    for forbidden in (ENV_OPERATOR_KEY, ENV_WITHDRAW_SECRET, "operator_key", "withdraw_secret"):
        if forbidden in document:
            raise ConfigurationError(
                "secrets must be supplied through the environment", key=forbidden
            )
    return document


def _section(document: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = document.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"config section {name!r} must be a mapping")
    return value


def _command(value: Any) -> Tuple[str, ...]:
    if value is None:
        return DEFAULT_SNARKJS_COMMAND
    if isinstance(value, str):
        return tuple(value.split())
    return tuple(str(part) for part in value)


def _secret(env: Mapping[str, str], name: str, factory):
    raw = env.get(name)
    if not raw:
        return None
    try:
        return factory(raw)
    except (TypeError, ValueError) as exc:
        # Never echo the raw value
        raise ConfigurationError(f"{name} is malformed") from exc


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate module constants.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert SNARK_SCALAR_FIELD.bit_length() == 254, "Unexpected scalar field size"
    assert 0 <= NOTHING_UP_MY_SLEEVE < SNARK_SCALAR_FIELD, "Padding outside field"
    assert 2 <= DEFAULT_TREE_ARITY <= MAX_TREE_ARITY, "Invalid default arity"
    assert DEFAULT_TREE_DEPTH >= 1, "Invalid default depth"
    assert BABYJUB_SUBORDER < SNARK_SCALAR_FIELD, "Subgroup order must fit the field"
    x, y = BABYJUB_BASE8
    lhs = (BABYJUB_A * x * x + y * y) % SNARK_SCALAR_FIELD
    rhs = (1 + BABYJUB_D * x * x * y * y) % SNARK_SCALAR_FIELD
    assert lhs == rhs, "Base point is not on Baby Jubjub"
    return True


# Auto-validate on import
validate_config()
