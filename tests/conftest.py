"""Shared fakes for pipeline-level tests: ledger, proving engine, submitter."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Dict, List, Optional, Sequence

import pytest

from private_treasury.pipeline import WithdrawalPipeline
from private_treasury.withdrawal import babyjub
from private_treasury.withdrawal.config import (
    DEFAULT_PUBLIC_SIGNALS,
    NOTHING_UP_MY_SLEEVE,
    SNARK_SCALAR_FIELD,
    TreeParameters,
)
from private_treasury.withdrawal.exceptions import ProofGenerationError
from private_treasury.withdrawal.security import SecretScalar
from private_treasury.withdrawal.types import (
    CurvePoint,
    DepositRecord,
    InclusionPath,
    ProofBundle,
    WithdrawWitness,
)
from private_treasury.withdrawal.verifier import VerifiedProof

OWNER_SECRET = 0x1D2C3B4A
STRANGER_SECRET = 0x5E6F7081


def sha_hasher(values: Sequence[int]) -> int:
    data = b"".join(int(v).to_bytes(32, "big") for v in values)
    return int.from_bytes(hashlib.sha256(data).digest(), "big") % SNARK_SCALAR_FIELD


def dense_root(params: TreeParameters, hasher, leaves: Sequence[int]) -> int:
    """Root of the fully materialised tree, as the ledger contract computes it."""
    level = list(leaves) + [params.zero_value] * (params.capacity - len(leaves))
    for _ in range(params.depth):
        level = [
            hasher(level[i : i + params.arity]) for i in range(0, len(level), params.arity)
        ]
    return level[0]


def make_record(secret: int, blinding: int, value: int) -> DepositRecord:
    P, Q = babyjub.derive_masked_points(babyjub.public_key(secret), blinding)
    return DepositRecord(P=CurvePoint(*P), Q=CurvePoint(*Q), v=value)


class FakeLedger:
    """
    In-memory ledger with a head block.

    Records in late_history land one block after the head; reads at the
    pinned head never see them, reads at "latest" (block=None) do.
    """

    def __init__(
        self,
        history: Sequence[DepositRecord],
        params: TreeParameters,
        hasher,
        *,
        leaf_hashes: Optional[List[int]] = None,
        root: Optional[int] = None,
        remote_leaf_hasher=None,
        remote_node_hasher=None,
        late_history: Sequence[DepositRecord] = (),
        head: int = 100,
    ) -> None:
        self.history = tuple(history)
        self.head = head
        honest = [record.leaf_hash(hasher) for record in self.history]
        self._leaf_hashes = list(leaf_hashes) if leaf_hashes is not None else honest
        self._root = root if root is not None else dense_root(params, hasher, honest)
        self._late = tuple(late_history)
        self._late_hashes = [record.leaf_hash(hasher) for record in self._late]
        self._late_root = dense_root(params, hasher, honest + self._late_hashes)
        self._remote_leaf = remote_leaf_hasher
        self._remote_node = remote_node_hasher
        self.calls: List[str] = []
        self.blocks: List[Optional[int]] = []

    def _pinned(self, block: Optional[int]) -> bool:
        self.blocks.append(block)
        return not self._late or (block is not None and block <= self.head)

    def latest_block(self) -> int:
        self.calls.append("latest_block")
        return self.head

    def fetch_history(self, block: Optional[int] = None):
        self.calls.append("fetch_history")
        if self._pinned(block):
            return self.history, list(self._leaf_hashes)
        return self.history + self._late, list(self._leaf_hashes) + self._late_hashes

    def fetch_root(self, block: Optional[int] = None) -> int:
        self.calls.append("fetch_root")
        return self._root if self._pinned(block) else self._late_root

    def remote_hash_leaf(
        self, record: DepositRecord, block: Optional[int] = None
    ) -> Optional[int]:
        if self._remote_leaf is None:
            return None
        return record.leaf_hash(self._remote_leaf)

    def remote_hash_left_right(
        self, left: int, right: int, block: Optional[int] = None
    ) -> Optional[int]:
        if self._remote_node is None:
            return None
        return self._remote_node([left, right])


class FakeEngine:
    """
    Stand-in Groth16 engine.

    prove() enforces the circuit's constraints (ownership and membership);
    the "proof" is an HMAC over the public signals so any change to a
    signal, or to the tag, makes verify() return False.
    """

    _KEY = b"fake-verification-key"

    def __init__(
        self,
        hasher,
        params: TreeParameters,
        layout: Sequence[str] = DEFAULT_PUBLIC_SIGNALS,
        *,
        signal_overrides: Optional[Dict[str, int]] = None,
        corrupt_proof: bool = False,
    ) -> None:
        self._hasher = hasher
        self._params = params
        self._layout = tuple(layout)
        self._overrides = dict(signal_overrides or {})
        self._corrupt = corrupt_proof
        self.prove_calls = 0
        self.verify_calls = 0

    async def prove(self, witness: WithdrawWitness) -> ProofBundle:
        self.prove_calls += 1
        if not babyjub.check_q_derivation(
            witness.P.as_tuple(), witness.Q.as_tuple(), witness.secret.reveal()
        ):
            raise ProofGenerationError(
                "ownership constraint unsatisfied", leaf_index=witness.leaf_index
            )
        leaf = self._hasher([witness.P.x, witness.P.y, witness.Q.x, witness.Q.y, witness.v])
        path = InclusionPath(
            index=witness.leaf_index,
            leaf=leaf,
            root=witness.root,
            indices=witness.path_index,
            path_elements=witness.path_elements,
        )
        if path.recompute_root(self._hasher) != witness.root:
            raise ProofGenerationError(
                "membership constraint unsatisfied", leaf_index=witness.leaf_index
            )
        position = sum(s * self._params.arity ** h for h, s in enumerate(witness.path_index))
        if position != witness.leaf_index:
            raise ProofGenerationError("path selectors disagree with leaf index")

        values = dict(witness.expected_signals())
        values.update(self._overrides)
        signals = tuple(values[name] for name in self._layout)
        tag = self.tag(signals)
        if self._corrupt:
            tag = tag[::-1]
        return ProofBundle(
            proof={
                "pi_a": ["1", "2", "1"],
                "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
                "pi_c": ["7", "8", "1"],
                "protocol": "groth16",
                "curve": "bn128",
                "tag": tag,
            },
            public_signals=signals,
            layout=self._layout,
        )

    async def verify(self, bundle: ProofBundle) -> bool:
        self.verify_calls += 1
        return hmac.compare_digest(
            str(bundle.proof.get("tag", "")), self.tag(bundle.public_signals)
        )

    @classmethod
    def tag(cls, signals: Sequence[int]) -> str:
        payload = json.dumps([str(s) for s in signals]).encode()
        return hmac.new(cls._KEY, payload, hashlib.sha256).hexdigest()


class FakeSubmitter:
    def __init__(self) -> None:
        self.submitted: List[ProofBundle] = []

    def submit(self, verified: VerifiedProof) -> Dict[str, object]:
        if not isinstance(verified, VerifiedProof):
            raise TypeError("submit() only accepts a VerifiedProof")
        self.submitted.append(verified.bundle)
        return {"tx_hash": "0x" + "ab" * 32, "leaf_index": verified.bundle.leaf_index}


@pytest.fixture
def params() -> TreeParameters:
    return TreeParameters(depth=4, arity=2, zero_value=NOTHING_UP_MY_SLEEVE)


@pytest.fixture
def hasher():
    return sha_hasher


@pytest.fixture
def owner_secret() -> SecretScalar:
    return SecretScalar(OWNER_SECRET)


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def ledger_factory(params, hasher):
    def _factory(history, **kwargs) -> FakeLedger:
        return FakeLedger(history, params, hasher, **kwargs)

    return _factory


@pytest.fixture
def engine(params, hasher) -> FakeEngine:
    return FakeEngine(hasher, params)


@pytest.fixture
def engine_factory(params, hasher):
    def _factory(**kwargs) -> FakeEngine:
        return FakeEngine(hasher, params, **kwargs)

    return _factory


@pytest.fixture
def submitter() -> FakeSubmitter:
    return FakeSubmitter()


@pytest.fixture
def pipeline_factory(params, hasher, owner_secret, submitter):
    def _factory(ledger, engine, **kwargs) -> WithdrawalPipeline:
        kwargs.setdefault("submitter", submitter)
        kwargs.setdefault("secret", owner_secret)
        return WithdrawalPipeline(
            reader=ledger,
            engine=engine,
            params=params,
            leaf_hasher=hasher,
            node_hasher=hasher,
            **kwargs,
        )

    return _factory
