"""
Local proof verification gate.

A VerifiedProof can only be produced by LocalVerifier.gate(), and the
submitter only accepts a VerifiedProof, so there is no code path from an
unverified bundle to a withdrawal transaction.
"""

from __future__ import annotations

import logging

from .exceptions import VerificationFailure
from .snark.engine import ProvingEngine
from .types import ProofBundle

logger = logging.getLogger(__name__)

_GATE_TOKEN = object()


class VerifiedProof:
    """A ProofBundle that passed local verification."""

    __slots__ = ("_bundle",)

    def __init__(self, bundle: ProofBundle, *, _token: object = None) -> None:
        if _token is not _GATE_TOKEN:
            raise TypeError("VerifiedProof is only created by LocalVerifier.gate()")
        self._bundle = bundle

    @property
    def bundle(self) -> ProofBundle:
        return self._bundle

    def __repr__(self) -> str:
        return f"VerifiedProof(leaf_index={self._bundle.leaf_index})"


class LocalVerifier:
    """Check proofs with the verification key before anything is submitted."""

    def __init__(self, engine: ProvingEngine) -> None:
        self._engine = engine

    async def verify(self, bundle: ProofBundle) -> bool:
        result = bool(await self._engine.verify(bundle))
        if result:
            logger.info("Local verification OK for leaf %d", bundle.leaf_index)
        else:
            logger.warning("Local verification rejected proof for leaf %d", bundle.leaf_index)
        return result

    async def gate(self, bundle: ProofBundle) -> VerifiedProof:
        """
        Raises:
            VerificationFailure: If verify() returns False
        """
        if not await self.verify(bundle):
            raise VerificationFailure(
                "proof failed local verification",
                leaf_index=bundle.leaf_index,
                root=bundle.root,
            )
        return VerifiedProof(bundle, _token=_GATE_TOKEN)
