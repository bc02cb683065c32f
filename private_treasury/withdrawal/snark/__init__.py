"""SNARK artifacts, proving engine and calldata helpers."""

from .assets import CircuitArtifacts, resolve_artifacts
from .calldata import Groth16Calldata, export_groth16_calldata
from .engine import ProvingEngine, SnarkjsEngine

__all__ = [
    "CircuitArtifacts",
    "resolve_artifacts",
    "Groth16Calldata",
    "export_groth16_calldata",
    "ProvingEngine",
    "SnarkjsEngine",
]
