"""
Common types for the withdrawal pipeline.

This module provides:
1. CurvePoint / DepositRecord - immutable ledger entries
2. InclusionPath - accumulator membership path
3. WithdrawWitness - explicit, versioned input for the proving engine
4. ProofBundle - proof plus public signals, with CBOR serialization
5. FieldHasher - the hash interface shared by the accumulator and ledger
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import cbor2

from .config import BUNDLE_VERSION, SNARK_SCALAR_FIELD, WITNESS_VERSION, TreeParameters
from .exceptions import ProofGenerationError, RetrievalError
from .security import SecretScalar

# A field hasher maps a sequence of field elements to one field element
FieldHasher = Callable[[Sequence[int]], int]


# ============================================================================
# LEDGER RECORDS
# ============================================================================


def _coordinate(value: Any, label: str) -> int:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise RetrievalError(f"{label} must be bytes32", length=len(value))
        number = int.from_bytes(value, "big")
    elif isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.startswith("0x"):
        number = int(value, 16)
    else:
        raise RetrievalError(f"{label} has unsupported type", type=type(value).__name__)
    if not 0 <= number < SNARK_SCALAR_FIELD:
        raise RetrievalError(f"{label} outside the scalar field")
    return number


def _component(value: Any, key: str, position: int, label: str) -> Any:
    if isinstance(value, Mapping):
        if key not in value:
            raise RetrievalError(f"{label} lacks {key!r}")
        return value[key]
    if isinstance(value, (tuple, list)):
        if position >= len(value):
            raise RetrievalError(f"{label} lacks component {position}")
        return value[position]
    raise RetrievalError(f"{label} is neither a struct nor a tuple")


@dataclass(frozen=True)
class CurvePoint:
    x: int
    y: int

    @classmethod
    def from_solidity(cls, value: Any, label: str = "point") -> "CurvePoint":
        return cls(
            x=_coordinate(_component(value, "x", 0, label), f"{label}.x"),
            y=_coordinate(_component(value, "y", 1, label), f"{label}.y"),
        )

    def as_tuple(self) -> Tuple[int, int]:
        return self.x, self.y

    def as_bytes32(self) -> Tuple[bytes, bytes]:
        return self.x.to_bytes(32, "big"), self.y.to_bytes(32, "big")


@dataclass(frozen=True)
class DepositRecord:
    """
    One deposit as emitted by the ledger's NewLeaf event.

    Attributes:
        P: First masked point (r * B8)
        Q: Second masked point (r * treasury public key)
        v: Deposited value in the smallest currency unit
    """

    P: CurvePoint
    Q: CurvePoint
    v: int

    def __post_init__(self):
        if not isinstance(self.v, int) or isinstance(self.v, bool) or self.v < 0:
            raise RetrievalError("deposit value must be a non-negative int")

    @classmethod
    def from_event_args(cls, args: Any) -> "DepositRecord":
        """
        Decode the `lf` argument of a NewLeaf event.

        Accepts the struct either as a mapping ({"P": {"x", "y"}, "Q": ..., "v"})
        or as a positional tuple ((Px, Py), (Qx, Qy), v).
        """
        if isinstance(args, Mapping) and "lf" in args:
            args = args["lf"]
        value = _component(args, "v", 2, "leaf")
        if not isinstance(value, int) or isinstance(value, bool):
            raise RetrievalError("leaf.v must be an int", type=type(value).__name__)
        return cls(
            P=CurvePoint.from_solidity(_component(args, "P", 0, "leaf"), "leaf.P"),
            Q=CurvePoint.from_solidity(_component(args, "Q", 1, "leaf"), "leaf.Q"),
            v=value,
        )

    def hash_inputs(self) -> Tuple[int, int, int, int, int]:
        return (self.P.x, self.P.y, self.Q.x, self.Q.y, self.v)

    def leaf_hash(self, hasher: FieldHasher) -> int:
        return hasher(self.hash_inputs())

    def as_contract_tuple(self) -> Tuple[Tuple[bytes, bytes], Tuple[bytes, bytes], int]:
        return (self.P.as_bytes32(), self.Q.as_bytes32(), self.v)

    def base10(self) -> Dict[str, Any]:
        return {
            "v": str(self.v),
            "P": [str(self.P.x), str(self.P.y)],
            "Q": [str(self.Q.x), str(self.Q.y)],
        }


DepositHistory = Tuple[DepositRecord, ...]


# ============================================================================
# ACCUMULATOR PATH
# ============================================================================


@dataclass(frozen=True)
class InclusionPath:
    """
    Membership path for one accumulator leaf.

    Attributes:
        index: Leaf position
        leaf: Leaf hash at that position
        root: Root the path was generated against
        indices: Branch selector per level, each in [0, arity)
        path_elements: Sibling hashes per level, arity - 1 of them
    """

    index: int
    leaf: int
    root: int
    indices: Tuple[int, ...]
    path_elements: Tuple[Tuple[int, ...], ...]

    @property
    def depth(self) -> int:
        return len(self.indices)

    def recompute_root(self, hasher: FieldHasher) -> int:
        current = self.leaf
        for selector, siblings in zip(self.indices, self.path_elements):
            children = list(siblings)
            children.insert(selector, current)
            current = hasher(children)
        return current


# ============================================================================
# WITNESS
# ============================================================================

WITNESS_FIELDS_V1: Tuple[str, ...] = (
    "v",
    "root",
    "leafIndex",
    "P",
    "Q",
    "treasuryPriv",
    "pathIndex",
    "pathElements",
)


@dataclass(frozen=True)
class WithdrawWitness:
    """
    Explicit witness for the withdrawal circuit.

    The field set is fixed per version and checked before the engine runs,
    so a malformed witness fails here rather than inside the prover.
    """

    v: int
    root: int
    leaf_index: int
    P: CurvePoint
    Q: CurvePoint
    secret: SecretScalar = field(repr=False)
    path_index: Tuple[int, ...]
    path_elements: Tuple[Tuple[int, ...], ...]
    version: int = WITNESS_VERSION

    @classmethod
    def assemble(
        cls,
        record: DepositRecord,
        index: int,
        root: int,
        secret: SecretScalar,
        path: InclusionPath,
    ) -> "WithdrawWitness":
        return cls(
            v=record.v,
            root=root,
            leaf_index=index,
            P=record.P,
            Q=record.Q,
            secret=secret,
            path_index=tuple(path.indices),
            path_elements=tuple(tuple(level) for level in path.path_elements),
        )

    def validate(self, params: TreeParameters) -> "WithdrawWitness":
        if self.version != WITNESS_VERSION:
            raise ProofGenerationError(
                "unsupported witness version", version=self.version
            )
        if not isinstance(self.secret, SecretScalar):
            raise ProofGenerationError("witness secret must be a SecretScalar")
        if len(self.path_index) != params.depth or len(self.path_elements) != params.depth:
            raise ProofGenerationError(
                "inclusion path length does not match tree depth",
                depth=params.depth,
                selectors=len(self.path_index),
                levels=len(self.path_elements),
                leaf_index=self.leaf_index,
            )
        for level, (selector, siblings) in enumerate(
            zip(self.path_index, self.path_elements)
        ):
            if not 0 <= selector < params.arity:
                raise ProofGenerationError(
                    "branch selector out of range", level=level, selector=selector
                )
            if len(siblings) != params.arity - 1:
                raise ProofGenerationError(
                    "wrong sibling count", level=level, siblings=len(siblings)
                )
            for sibling in siblings:
                _require_field(sibling, f"pathElements[{level}]")
        if not 0 <= self.leaf_index < params.capacity:
            raise ProofGenerationError("leaf index outside the tree", leaf_index=self.leaf_index)
        _require_field(self.root, "root")
        _require_field(self.v, "v")
        for label, value in (
            ("P.x", self.P.x),
            ("P.y", self.P.y),
            ("Q.x", self.Q.x),
            ("Q.y", self.Q.y),
        ):
            _require_field(value, label)
        return self

    def to_input_json(self) -> Dict[str, Any]:
        """Circuit input object; keys and order follow WITNESS_FIELDS_V1."""
        document = {
            "v": str(self.v),
            "root": str(self.root),
            "leafIndex": str(self.leaf_index),
            "P": [str(self.P.x), str(self.P.y)],
            "Q": [str(self.Q.x), str(self.Q.y)],
            "treasuryPriv": str(self.secret.reveal()),
            "pathIndex": [str(i) for i in self.path_index],
            "pathElements": [[str(s) for s in level] for level in self.path_elements],
        }
        if tuple(document) != WITNESS_FIELDS_V1:
            raise ProofGenerationError(
                "witness fields do not match version 1 layout",
                version=self.version,
            )
        return document

    def expected_signals(self) -> Dict[str, int]:
        """Public values the circuit must echo back."""
        return {
            "v": self.v,
            "root": self.root,
            "leafIndex": self.leaf_index,
            "Px": self.P.x,
            "Py": self.P.y,
            "Qx": self.Q.x,
            "Qy": self.Q.y,
        }


def _require_field(value: int, label: str) -> None:
    if not isinstance(value, int) or not 0 <= value < SNARK_SCALAR_FIELD:
        raise ProofGenerationError(f"{label} is not a field element")


# ============================================================================
# PROOF BUNDLE
# ============================================================================


@dataclass(frozen=True)
class ProofBundle:
    """
    Groth16 proof with its public signals in circuit order.

    Attributes:
        proof: snarkjs proof object (pi_a, pi_b, pi_c, protocol, curve)
        public_signals: Circuit public outputs/inputs as ints
        layout: Signal names, same order as public_signals

    Example:
        >>> blob = bundle.serialize()
        >>> restored = ProofBundle.deserialize(blob)
    """

    proof: Dict[str, Any]
    public_signals: Tuple[int, ...]
    layout: Tuple[str, ...]

    def __post_init__(self):
        if len(self.public_signals) != len(self.layout):
            raise ProofGenerationError(
                "public signal count does not match layout",
                signals=len(self.public_signals),
                layout=len(self.layout),
            )

    def signal(self, name: str) -> int:
        try:
            return self.public_signals[self.layout.index(name)]
        except ValueError:
            raise KeyError(f"unknown public signal {name!r}") from None

    def with_signal(self, name: str, value: int) -> "ProofBundle":
        """Copy with one public signal replaced."""
        signals: List[int] = list(self.public_signals)
        signals[self.layout.index(name)] = value
        return replace(self, public_signals=tuple(signals))

    @property
    def leaf_index(self) -> int:
        return self.signal("leafIndex")

    @property
    def root(self) -> int:
        return self.signal("root")

    def public_signals_json(self) -> List[str]:
        return [str(s) for s in self.public_signals]

    def serialize(self) -> bytes:
        return cbor2.dumps(
            {
                "version": BUNDLE_VERSION,
                "proof": self.proof,
                "public_signals": [str(s) for s in self.public_signals],
                "layout": list(self.layout),
            }
        )

    @classmethod
    def deserialize(cls, data: bytes) -> "ProofBundle":
        try:
            obj = cbor2.loads(data)
        except Exception as exc:
            raise ValueError(f"failed to decode proof bundle: {exc}") from exc
        if not isinstance(obj, dict):
            raise ValueError("proof bundle must be a CBOR map")
        if obj.get("version") != BUNDLE_VERSION:
            raise ValueError(f"unsupported proof bundle version: {obj.get('version')!r}")
        for key in ("proof", "public_signals", "layout"):
            if key not in obj:
                raise ValueError(f"proof bundle missing {key!r}")
        return cls(
            proof=obj["proof"],
            public_signals=tuple(int(s) for s in obj["public_signals"]),
            layout=tuple(obj["layout"]),
        )
