"""
Ownership scan and withdrawal selection policies.

find_owned() only reports candidates. Which owned deposit to withdraw is a
separate policy decision; every policy fails with OwnershipError rather than
an index error when the candidates cannot satisfy it.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol, Sequence

from . import babyjub
from .exceptions import OwnershipError
from .security import SecretScalar
from .types import DepositRecord

logger = logging.getLogger(__name__)

OwnershipRelation = Callable[[DepositRecord, SecretScalar], bool]


def q_derivation_relation(record: DepositRecord, secret: SecretScalar) -> bool:
    """Q == alpha * P on Baby Jubjub."""
    return babyjub.check_q_derivation(
        record.P.as_tuple(), record.Q.as_tuple(), secret.reveal()
    )


def find_owned(
    history: Sequence[DepositRecord],
    secret: SecretScalar,
    relation: Optional[OwnershipRelation] = None,
) -> List[int]:
    """
    Indices of deposits the secret can open, ascending.

    An empty history or no match returns [] rather than raising.
    """
    relation = relation or q_derivation_relation
    owned = [index for index, record in enumerate(history) if relation(record, secret)]
    logger.info("Found %d of %d deposits recoverable by the secret", len(owned), len(history))
    return owned


# ============================================================================
# SELECTION POLICIES
# ============================================================================


class SelectionPolicy(Protocol):
    def select(self, owned: Sequence[int], history: Sequence[DepositRecord]) -> int:
        ...


def _require_candidates(owned: Sequence[int], needed: int, policy: str) -> None:
    if len(owned) < needed:
        raise OwnershipError(
            "not enough owned deposits for selection policy",
            policy=policy,
            owned=len(owned),
            needed=needed,
        )


class FirstOwned:
    def select(self, owned: Sequence[int], history: Sequence[DepositRecord]) -> int:
        _require_candidates(owned, 1, "first")
        return owned[0]

    def __repr__(self) -> str:
        return "FirstOwned()"


class LargestValue:
    """Highest value wins; ties go to the lowest index."""

    def select(self, owned: Sequence[int], history: Sequence[DepositRecord]) -> int:
        _require_candidates(owned, 1, "largest")
        return max(owned, key=lambda index: (history[index].v, -index))

    def __repr__(self) -> str:
        return "LargestValue()"


class NthOwned:
    """Zero-based position among owned deposits."""

    def __init__(self, n: int) -> None:
        if n < 0:
            raise ValueError("n must be non-negative")
        self.n = n

    def select(self, owned: Sequence[int], history: Sequence[DepositRecord]) -> int:
        _require_candidates(owned, self.n + 1, f"nth:{self.n}")
        return owned[self.n]

    def __repr__(self) -> str:
        return f"NthOwned({self.n})"


class ExplicitIndex:
    """Caller-specified ledger index, which must be owned."""

    def __init__(self, index: int) -> None:
        if index < 0:
            raise ValueError("index must be non-negative")
        self.index = index

    def select(self, owned: Sequence[int], history: Sequence[DepositRecord]) -> int:
        _require_candidates(owned, 1, f"index:{self.index}")
        if self.index not in owned:
            raise OwnershipError(
                "requested deposit is not owned by the secret", leaf_index=self.index
            )
        return self.index

    def __repr__(self) -> str:
        return f"ExplicitIndex({self.index})"


def policy_from_spec(spec: str) -> SelectionPolicy:
    """
    Parse "first", "largest", "nth:N" or "index:I".

    Raises:
        ValueError: If spec is not one of the above
    """
    text = spec.strip().lower()
    if text == "first":
        return FirstOwned()
    if text == "largest":
        return LargestValue()
    name, _, arg = text.partition(":")
    if name in ("nth", "index") and arg:
        try:
            number = int(arg)
        except ValueError:
            raise ValueError(f"invalid selection policy: {spec!r}") from None
        return NthOwned(number) if name == "nth" else ExplicitIndex(number)
    raise ValueError(
        f"invalid selection policy: {spec!r}. Valid options: first, largest, nth:N, index:I"
    )
