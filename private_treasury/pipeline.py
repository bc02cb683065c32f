"""
Withdrawal pipeline.

Ledger Reader -> Ownership Scanner -> Accumulator -> Proof Builder ->
Local Verifier (gate) -> Submitter

Stages run strictly in sequence. Every ledger read of one attempt is made at
the same block, pinned first. Blocking ledger calls run in a worker thread;
the proving engine is awaited directly. Any stage failure ends the
attempt, and nothing is cached between attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import trio

from .withdrawal.accumulator import IncrementalTree, verify_path
from .withdrawal.config import Settings, TreeParameters
from .withdrawal.exceptions import (
    ConfigurationError,
    IntegrityError,
    OwnershipError,
    SubmissionError,
)
from .withdrawal.ownership import (
    OwnershipRelation,
    SelectionPolicy,
    find_owned,
    policy_from_spec,
)
from .withdrawal.prover import ProofBuilder
from .withdrawal.security import SecretScalar
from .withdrawal.snark.engine import ProvingEngine
from .withdrawal.types import DepositHistory, DepositRecord, FieldHasher, ProofBundle
from .withdrawal.verifier import LocalVerifier, VerifiedProof

logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    def latest_block(self) -> int:
        ...

    def fetch_history(
        self, block: Optional[int] = None
    ) -> Tuple[DepositHistory, List[int]]:
        ...

    def fetch_root(self, block: Optional[int] = None) -> int:
        ...

    def remote_hash_leaf(
        self, record: DepositRecord, block: Optional[int] = None
    ) -> Optional[int]:
        ...

    def remote_hash_left_right(
        self, left: int, right: int, block: Optional[int] = None
    ) -> Optional[int]:
        ...


class WithdrawalSink(Protocol):
    def submit(self, verified: VerifiedProof):
        ...


@dataclass
class WithdrawalOutcome:
    leaf_index: int
    root: int
    owned: List[int]
    bundle: ProofBundle
    receipt: object = None
    submitted: bool = False
    block: Optional[int] = None


@dataclass
class Snapshot:
    """History and accumulator rebuilt from one ledger read."""

    history: DepositHistory
    leaf_hashes: List[int]
    tree: IncrementalTree
    ledger_root: int
    block: int


def check_ledger_parameters(
    reader: HistorySource,
    params: TreeParameters,
    leaf_hasher: FieldHasher,
    node_hasher: FieldHasher,
    sample: Optional[DepositRecord] = None,
    block: Optional[int] = None,
) -> None:
    """
    Compare local hashing with the contract's own hash views.

    Only binary trees are probed, since _hashLeftRight takes two children.
    Views missing from the ABI are skipped. Both views are read at block
    when given.

    Raises:
        IntegrityError: If either hash disagrees
    """
    if params.arity == 2:
        remote = reader.remote_hash_left_right(
            params.zero_value, params.zero_value, block
        )
        if remote is not None:
            local = node_hasher([params.zero_value, params.zero_value])
            if remote != local:
                raise IntegrityError(
                    "node hash or padding constant disagrees with ledger",
                    local=local,
                    ledger=remote,
                )
    if sample is not None:
        remote = reader.remote_hash_leaf(sample, block)
        if remote is not None:
            local = sample.leaf_hash(leaf_hasher)
            if remote != local:
                raise IntegrityError(
                    "leaf hash disagrees with ledger", local=local, ledger=remote
                )


def rebuild_tree(
    params: TreeParameters, node_hasher: FieldHasher, leaf_hashes: Sequence[int]
) -> IncrementalTree:
    logger.info("Reconstructing accumulator from %d leaves", len(leaf_hashes))
    return IncrementalTree.from_leaves(params, node_hasher, leaf_hashes)


def check_root(tree: IncrementalTree, ledger_root: int) -> None:
    if tree.root != ledger_root:
        raise IntegrityError(
            "reconstructed root does not match ledger root",
            local_root=tree.root,
            ledger_root=ledger_root,
            leaves=len(tree),
        )
    logger.info("Root matches ledger: %d", ledger_root)


async def take_snapshot(
    reader: HistorySource,
    params: TreeParameters,
    leaf_hasher: FieldHasher,
    node_hasher: FieldHasher,
    *,
    validate_parameters: bool = True,
) -> Snapshot:
    """Fetch history at one pinned block, rebuild the accumulator, match the root."""
    block = await trio.to_thread.run_sync(reader.latest_block)
    history, leaf_hashes = await trio.to_thread.run_sync(reader.fetch_history, block)
    if validate_parameters:
        await trio.to_thread.run_sync(
            check_ledger_parameters,
            reader,
            params,
            leaf_hasher,
            node_hasher,
            history[0] if history else None,
            block,
        )
    tree = rebuild_tree(params, node_hasher, leaf_hashes)
    ledger_root = await trio.to_thread.run_sync(reader.fetch_root, block)
    check_root(tree, ledger_root)
    return Snapshot(history, list(leaf_hashes), tree, ledger_root, block)


class WithdrawalPipeline:
    """
    One run-to-completion withdrawal attempt.

    The submitter is only reachable with a VerifiedProof returned by the
    local verifier's gate; a failed check raises before submission.
    """

    def __init__(
        self,
        *,
        reader: HistorySource,
        engine: ProvingEngine,
        secret: SecretScalar,
        params: TreeParameters,
        leaf_hasher: FieldHasher,
        node_hasher: FieldHasher,
        policy: Optional[SelectionPolicy] = None,
        submitter: Optional[WithdrawalSink] = None,
        relation: Optional[OwnershipRelation] = None,
        validate_parameters: bool = True,
    ) -> None:
        self._reader = reader
        self._secret = secret
        self._params = params.validate()
        self._leaf_hasher = leaf_hasher
        self._node_hasher = node_hasher
        self._policy = policy or policy_from_spec("first")
        self._submitter = submitter
        self._relation = relation
        self._validate_parameters = validate_parameters
        self._engine = engine
        self._builder = ProofBuilder(engine, self._params)
        self._verifier = LocalVerifier(engine)

    @property
    def reader(self) -> HistorySource:
        return self._reader

    @property
    def engine(self) -> ProvingEngine:
        return self._engine

    @property
    def policy(self) -> SelectionPolicy:
        return self._policy

    @property
    def submitter(self) -> Optional[WithdrawalSink]:
        return self._submitter

    async def run(
        self,
        *,
        dry_run: bool = False,
        on_verified: Optional[Callable[[VerifiedProof], None]] = None,
    ) -> WithdrawalOutcome:
        """
        Run every stage once against a single pinned ledger block.

        on_verified, when given, is called with the gated proof before
        anything is submitted; an exception from it aborts the attempt.
        """
        block = await trio.to_thread.run_sync(self._reader.latest_block)
        history, leaf_hashes = await trio.to_thread.run_sync(
            self._reader.fetch_history, block
        )

        owned = find_owned(history, self._secret, self._relation)
        if not owned:
            raise OwnershipError("no deposit is owned by the secret", deposits=len(history))
        index = self._policy.select(owned, history)
        logger.info("Selected leaf %d with %r", index, self._policy)

        if self._validate_parameters:
            await trio.to_thread.run_sync(
                check_ledger_parameters,
                self._reader,
                self._params,
                self._leaf_hasher,
                self._node_hasher,
                history[0],
                block,
            )
        tree = rebuild_tree(self._params, self._node_hasher, leaf_hashes)
        ledger_root = await trio.to_thread.run_sync(self._reader.fetch_root, block)
        check_root(tree, ledger_root)

        path = tree.gen_path(index)
        if not verify_path(path, self._node_hasher):
            raise IntegrityError("inclusion path does not reproduce root", leaf_index=index)

        bundle = await self._builder.build(
            history[index], index, tree.root, self._secret, path
        )
        verified = await self._verifier.gate(bundle)
        outcome = WithdrawalOutcome(
            leaf_index=index, root=tree.root, owned=owned, bundle=bundle, block=block
        )
        if on_verified is not None:
            on_verified(verified)

        if dry_run or self._submitter is None:
            logger.info("Proof verified for leaf %d; not submitting", index)
            return outcome
        if verified.bundle.leaf_index != index:
            raise SubmissionError(
                "proved leaf index differs from selected leaf",
                selected=index,
                proved=verified.bundle.leaf_index,
            )

        outcome.receipt = await trio.to_thread.run_sync(self._submitter.submit, verified)
        outcome.submitted = True
        return outcome


def build_reader(settings: Settings):
    """
    Connect to the ledger and return (reader, hasher, handle).

    Ledger and Poseidon modules are imported here so offline code paths and
    tests never need an RPC endpoint or the constants file. Without a
    configured constants path and without the default file, the circomlib
    tables are derived instead.
    """
    from .ledger import contract
    from .ledger.reader import LedgerReader
    from .withdrawal.poseidon import PoseidonHasher

    path = settings.circuit.poseidon_constants_path
    if settings.circuit.poseidon_constants is None and not path.exists():
        logger.info("No Poseidon constants at %s; deriving circomlib tables", path)
        hasher = PoseidonHasher.generate()
    else:
        hasher = PoseidonHasher.from_file(path)
    handle = contract.connect(settings.ledger)
    reader = LedgerReader(
        handle,
        hasher,
        from_block=settings.ledger.from_block,
        leaf_event=settings.ledger.leaf_event,
    )
    return reader, hasher, handle


def build_pipeline(
    settings: Settings,
    *,
    policy: Optional[SelectionPolicy] = None,
    submit: bool = True,
) -> WithdrawalPipeline:
    """Wire production collaborators from settings."""
    from .ledger.submitter import Submitter
    from .withdrawal.snark.assets import resolve_artifacts
    from .withdrawal.snark.engine import SnarkjsEngine

    secret = settings.require_withdraw_secret()
    operator_key = settings.require_operator_key() if submit else None
    artifacts = resolve_artifacts(settings.circuit)
    reader, hasher, handle = build_reader(settings)
    engine = SnarkjsEngine(
        artifacts,
        settings.circuit.public_signals,
        command=settings.circuit.snarkjs_command,
        prove_timeout=settings.timeouts.prove,
        verify_timeout=settings.timeouts.verify,
    )
    submitter = None
    if operator_key is not None:
        submitter = Submitter(handle, operator_key, receipt_timeout=settings.timeouts.receipt)
    return WithdrawalPipeline(
        reader=reader,
        engine=engine,
        secret=secret,
        params=settings.tree,
        leaf_hasher=hasher,
        node_hasher=hasher,
        policy=policy or _configured_policy(settings.selection),
        submitter=submitter,
        validate_parameters=settings.validate_parameters,
    )


def _configured_policy(spec: str) -> SelectionPolicy:
    try:
        return policy_from_spec(spec)
    except ValueError as exc:
        raise ConfigurationError(str(exc), selection=spec) from exc
