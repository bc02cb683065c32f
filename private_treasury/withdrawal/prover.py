"""Build a withdrawal proof from a chosen deposit and its accumulator path."""

from __future__ import annotations

import logging

from .config import TreeParameters
from .exceptions import ProofGenerationError
from .security import SecretScalar
from .snark.engine import ProvingEngine
from .types import DepositRecord, InclusionPath, ProofBundle, WithdrawWitness

logger = logging.getLogger(__name__)


class ProofBuilder:
    """
    Assemble and validate the witness, then delegate to the proving engine.

    The public signals in the returned bundle are circuit outputs. They are
    checked against the witness afterwards, never filled in here.
    """

    def __init__(self, engine: ProvingEngine, params: TreeParameters) -> None:
        self._engine = engine
        self._params = params.validate()

    async def build(
        self,
        record: DepositRecord,
        index: int,
        root: int,
        secret: SecretScalar,
        path: InclusionPath,
    ) -> ProofBundle:
        """
        Raises:
            ProofGenerationError: If the witness is malformed, the engine
                rejects it, or the engine's public signals disagree with it
        """
        if path.index != index:
            raise ProofGenerationError(
                "inclusion path belongs to another leaf",
                leaf_index=index,
                path_index=path.index,
            )
        witness = WithdrawWitness.assemble(record, index, root, secret, path)
        witness.validate(self._params)

        logger.info("Generating proof for leaf %d against root %d", index, root)
        bundle = await self._engine.prove(witness)
        check_signals(bundle, witness)
        logger.info("Proof generated for leaf %d", index)
        return bundle


def check_signals(bundle: ProofBundle, witness: WithdrawWitness) -> None:
    for name, expected in witness.expected_signals().items():
        try:
            actual = bundle.signal(name)
        except KeyError:
            raise ProofGenerationError(
                "public signal missing from layout", signal=name
            ) from None
        if actual != expected:
            raise ProofGenerationError(
                "public signal disagrees with witness",
                signal=name,
                expected=expected,
                actual=actual,
                leaf_index=witness.leaf_index,
            )
