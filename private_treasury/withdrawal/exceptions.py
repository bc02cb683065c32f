"""
Custom exceptions for the withdrawal pipeline.

Every stage failure is fatal to the current attempt. Each exception records
the stage that raised it plus diagnostic context (leaf index, roots, counts)
so operators can tell a ledger outage from a hashing mismatch or a bad proof.
Secrets never belong in the context.
"""

from __future__ import annotations

from typing import Any, Dict


class TreasuryError(Exception):
    """Base exception for withdrawal pipeline errors."""

    stage = "pipeline"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return f"[{self.stage}] {self.message}"
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"[{self.stage}] {self.message} ({details})"


class ConfigurationError(TreasuryError):
    """Missing or inconsistent configuration."""

    stage = "config"


class RetrievalError(TreasuryError):
    """Ledger unreachable or returned a malformed record."""

    stage = "ledger"


class IntegrityError(TreasuryError):
    """Reconstructed accumulator disagrees with the ledger."""

    stage = "accumulator"


class OwnershipError(TreasuryError):
    """No owned deposit, or selection referenced a non-owned one."""

    stage = "ownership"


class ProofGenerationError(TreasuryError):
    """Witness rejected locally or by the proving engine."""

    stage = "prove"


class VerificationFailure(TreasuryError):
    """Local proof verification did not pass."""

    stage = "verify"


class SubmissionError(TreasuryError):
    """Settlement layer rejected the withdrawal transaction."""

    stage = "submit"
