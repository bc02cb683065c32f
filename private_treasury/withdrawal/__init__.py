"""Public API for the withdrawal core: types, accumulator, ownership and proofs."""
from __future__ import annotations

from .accumulator import IncrementalTree, compute_zeros, verify_path
from .config import Settings, TreeParameters, load_settings
from .exceptions import (
    ConfigurationError,
    IntegrityError,
    OwnershipError,
    ProofGenerationError,
    RetrievalError,
    SubmissionError,
    TreasuryError,
    VerificationFailure,
)
from .ownership import find_owned, policy_from_spec
from .prover import ProofBuilder
from .security import OperatorKey, SecretScalar
from .types import (
    CurvePoint,
    DepositRecord,
    InclusionPath,
    ProofBundle,
    WithdrawWitness,
)
from .verifier import LocalVerifier, VerifiedProof

__all__ = [
    "ConfigurationError",
    "CurvePoint",
    "DepositRecord",
    "InclusionPath",
    "IncrementalTree",
    "IntegrityError",
    "LocalVerifier",
    "OperatorKey",
    "OwnershipError",
    "ProofBuilder",
    "ProofBundle",
    "ProofGenerationError",
    "RetrievalError",
    "SecretScalar",
    "Settings",
    "SubmissionError",
    "TreasuryError",
    "TreeParameters",
    "VerificationFailure",
    "VerifiedProof",
    "WithdrawWitness",
    "compute_zeros",
    "find_owned",
    "load_settings",
    "policy_from_spec",
    "verify_path",
]
