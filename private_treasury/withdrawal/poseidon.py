"""
Poseidon hash over the BN254 scalar field (circomlib reference variant).

The permutation follows circomlib's reference construction:

    state = [0, *inputs]                      (width t = len(inputs) + 1)
    for r in range(R_F + R_P):
        state[i] += C[r*t + i]
        S-box x^5 on every element in full rounds, on state[0] otherwise
        state = M @ state
    return state[0]

with R_F = 8 and R_P taken from ROUNDS_P[t - 2].

Round constants and MDS matrices are published parameters. They are either
loaded from the circomlib constants file (keys "C" and "M", indexed by t - 2)
named in configuration, or derived with generate(), which replays the Grain
LFSR procedure of the Poseidon reference parameter script that produced
circomlib's tables. Both the contract and the circuit use the same tables,
so a wrong table shows up as a root mismatch at startup.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from .config import SNARK_SCALAR_FIELD
from .exceptions import ConfigurationError

ROUNDS_F = 8
ROUNDS_P = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)

# Grain LFSR seed layout: field type (1 = prime), S-box (0 = x^alpha)
GRAIN_FIELD = 1
GRAIN_SBOX = 0
GRAIN_DISCARD = 160


def _field(value) -> int:
    if isinstance(value, int):
        return value % SNARK_SCALAR_FIELD
    text = str(value)
    base = 16 if text.lower().startswith("0x") else 10
    return int(text, base) % SNARK_SCALAR_FIELD


def _grain_bits(width: int, rounds_p: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR stream seeded with the instance parameters."""
    seed = (
        (GRAIN_FIELD, 2),
        (GRAIN_SBOX, 4),
        (SNARK_SCALAR_FIELD.bit_length(), 12),
        (width, 12),
        (ROUNDS_F, 10),
        (rounds_p, 10),
    )
    state = [int(bit) for value, size in seed for bit in format(value, f"0{size}b")]
    state += [1] * 30

    def step() -> int:
        bit = state[62] ^ state[51] ^ state[38] ^ state[23] ^ state[13] ^ state[0]
        state.pop(0)
        state.append(bit)
        return bit

    for _ in range(GRAIN_DISCARD):
        step()
    while True:
        keep = step()
        bit = step()
        if keep:
            yield bit


def _grain_int(bits: Iterator[int], size: int) -> int:
    value = 0
    for _ in range(size):
        value = (value << 1) | next(bits)
    return value


def grain_parameters(width: int) -> Tuple[List[int], List[List[int]]]:
    """
    Round constants and Cauchy MDS matrix for state width t.

    Round constants are rejection-sampled below the modulus. The matrix is
    M[i][j] = 1 / (x_i + y_j) from 2t samples reduced modulo the field,
    redrawn until the samples are distinct and no x_i + y_j vanishes.

    Raises:
        ValueError: If width is outside 2..17
    """
    if not 2 <= width <= len(ROUNDS_P) + 1:
        raise ValueError(f"unsupported Poseidon width: {width}")
    p = SNARK_SCALAR_FIELD
    size = p.bit_length()
    rounds_p = ROUNDS_P[width - 2]
    bits = _grain_bits(width, rounds_p)

    constants: List[int] = []
    for _ in range((ROUNDS_F + rounds_p) * width):
        value = _grain_int(bits, size)
        while value >= p:
            value = _grain_int(bits, size)
        constants.append(value)

    while True:
        samples = [_grain_int(bits, size) % p for _ in range(2 * width)]
        if len(set(samples)) != len(samples):
            continue
        xs, ys = samples[:width], samples[width:]
        if any((x + y) % p == 0 for x in xs for y in ys):
            continue
        matrix = [[pow(x + y, p - 2, p) for y in ys] for x in xs]
        return constants, matrix


class PoseidonHasher:
    """
    Callable Poseidon instance bound to one constants table.

    Example:
        >>> hasher = PoseidonHasher.from_file("circuits/poseidon_constants.json")
        >>> root = hasher([1, 2])
    """

    def __init__(
        self,
        round_constants: Sequence[Sequence],
        mds_matrices: Sequence[Sequence[Sequence]],
    ) -> None:
        if len(round_constants) != len(mds_matrices):
            raise ConfigurationError("Poseidon C and M tables differ in width count")
        if len(round_constants) > len(ROUNDS_P):
            raise ConfigurationError("Poseidon tables exceed the supported widths")
        self._C: List[List[int]] = [[_field(c) for c in row] for row in round_constants]
        self._M: List[List[List[int]]] = [
            [[_field(m) for m in row] for row in matrix] for matrix in mds_matrices
        ]
        for offset, (constants, matrix) in enumerate(zip(self._C, self._M)):
            t = offset + 2
            expected = (ROUNDS_F + ROUNDS_P[offset]) * t
            if len(constants) != expected:
                raise ConfigurationError(
                    "Poseidon round constants have the wrong length",
                    width=t,
                    expected=expected,
                    actual=len(constants),
                )
            if len(matrix) != t or any(len(row) != t for row in matrix):
                raise ConfigurationError("Poseidon MDS matrix has the wrong shape", width=t)

    @classmethod
    def from_file(cls, path: str | Path) -> "PoseidonHasher":
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(
                "cannot read Poseidon constants", path=str(path)
            ) from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                "Poseidon constants are not valid JSON", path=str(path)
            ) from exc
        if not isinstance(document, dict) or "C" not in document or "M" not in document:
            raise ConfigurationError(
                "Poseidon constants must define 'C' and 'M'", path=str(path)
            )
        return cls(document["C"], document["M"])

    @classmethod
    def generate(cls, max_inputs: int = 5) -> "PoseidonHasher":
        """Derive the circomlib tables for 1..max_inputs inputs."""
        tables = [grain_parameters(t) for t in range(2, max_inputs + 2)]
        return cls([c for c, _ in tables], [m for _, m in tables])

    @property
    def max_inputs(self) -> int:
        return len(self._C)

    def __call__(self, inputs: Sequence[int]) -> int:
        return self.hash(inputs)

    def hash(self, inputs: Sequence[int]) -> int:
        n = len(inputs)
        if n == 0 or n > self.max_inputs:
            raise ValueError(f"Poseidon supports 1..{self.max_inputs} inputs, got {n}")
        for value in inputs:
            if not 0 <= value < SNARK_SCALAR_FIELD:
                raise ValueError("Poseidon input outside the scalar field")

        p = SNARK_SCALAR_FIELD
        t = n + 1
        rounds_p = ROUNDS_P[t - 2]
        constants = self._C[t - 2]
        matrix = self._M[t - 2]
        half_f = ROUNDS_F // 2

        state = [0, *inputs]
        for r in range(ROUNDS_F + rounds_p):
            state = [(a + constants[r * t + i]) % p for i, a in enumerate(state)]
            if r < half_f or r >= half_f + rounds_p:
                state = [pow(a, 5, p) for a in state]
            else:
                state[0] = pow(state[0], 5, p)
            state = [
                sum(matrix[i][j] * state[j] for j in range(t)) % p for i in range(t)
            ]
        return state[0]
