"""Groth16 calldata for the settlement contract's withdraw() entrypoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..exceptions import SubmissionError
from ..types import ProofBundle


@dataclass(frozen=True)
class Groth16Calldata:
    a: Tuple[int, int]
    b: Tuple[Tuple[int, int], Tuple[int, int]]
    c: Tuple[int, int]
    input: Tuple[int, ...]

    def as_args(self) -> Tuple[List[int], List[List[int]], List[int], List[int]]:
        return (
            list(self.a),
            [list(self.b[0]), list(self.b[1])],
            list(self.c),
            list(self.input),
        )


def export_groth16_calldata(bundle: ProofBundle) -> Groth16Calldata:
    """
    Map a snarkjs proof onto the Solidity verifier's (a, b, c, input) shape.

    The G2 point pi_b has its Fp2 coordinates swapped ([c1, c0]) because the
    EVM pairing precompile expects the imaginary part first. Projective
    z-coordinates are dropped.
    """
    pi_a, pi_b, pi_c = _points(bundle.proof)
    try:
        return Groth16Calldata(
            a=(int(pi_a[0]), int(pi_a[1])),
            b=(
                (int(pi_b[0][1]), int(pi_b[0][0])),
                (int(pi_b[1][1]), int(pi_b[1][0])),
            ),
            c=(int(pi_c[0]), int(pi_c[1])),
            input=tuple(bundle.public_signals),
        )
    except (IndexError, TypeError, ValueError) as exc:
        raise SubmissionError(f"malformed Groth16 proof: {exc}") from exc


def _points(proof: Dict[str, Any]) -> Tuple[Any, Any, Any]:
    try:
        return proof["pi_a"], proof["pi_b"], proof["pi_c"]
    except (KeyError, TypeError) as exc:
        raise SubmissionError("proof object lacks Groth16 points") from exc
