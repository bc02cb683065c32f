"""snarkjs Groth16 proving engine, driven as a subprocess."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, List, Protocol, Sequence, Tuple

import trio

from ..config import DEFAULT_PROVE_TIMEOUT, DEFAULT_SNARKJS_COMMAND, DEFAULT_VERIFY_TIMEOUT
from ..exceptions import ProofGenerationError, VerificationFailure
from ..types import ProofBundle, WithdrawWitness
from .assets import CircuitArtifacts

logger = logging.getLogger(__name__)

MAX_STDERR_CHARS = 2000


class ProvingEngine(Protocol):
    async def prove(self, witness: WithdrawWitness) -> ProofBundle:
        ...

    async def verify(self, bundle: ProofBundle) -> bool:
        ...


class SnarkjsEngine:
    """
    Groth16 prover/verifier backed by the snarkjs CLI.

    prove():  snarkjs groth16 fullprove input.json <wasm> <zkey> proof.json public.json
    verify(): snarkjs groth16 verify <vkey> public.json proof.json

    Each call runs under its own deadline; a timeout is reported as a
    failure of that stage, never retried.
    """

    def __init__(
        self,
        artifacts: CircuitArtifacts,
        layout: Sequence[str],
        *,
        command: Sequence[str] = DEFAULT_SNARKJS_COMMAND,
        prove_timeout: float = DEFAULT_PROVE_TIMEOUT,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT,
    ) -> None:
        self._artifacts = artifacts
        self._layout = tuple(layout)
        self._command = tuple(command)
        self._prove_timeout = prove_timeout
        self._verify_timeout = verify_timeout

    async def prove(self, witness: WithdrawWitness) -> ProofBundle:
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp = Path(tmp_dir)
            input_path = tmp / "input.json"
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            input_path.write_text(json.dumps(witness.to_input_json()), encoding="utf-8")

            command = [
                *self._command,
                "groth16",
                "fullprove",
                str(input_path),
                str(self._artifacts.wasm_path),
                str(self._artifacts.zkey_path),
                str(proof_path),
                str(public_path),
            ]
            try:
                returncode, stderr = await _run(command, self._prove_timeout)
            except trio.TooSlowError:
                raise ProofGenerationError(
                    "proving engine timed out",
                    timeout=self._prove_timeout,
                    leaf_index=witness.leaf_index,
                ) from None
            except OSError as exc:
                raise ProofGenerationError(
                    f"cannot start proving engine: {exc}", command=self._command[0]
                ) from exc

            if returncode != 0:
                raise ProofGenerationError(
                    "witness rejected by proving engine",
                    returncode=returncode,
                    leaf_index=witness.leaf_index,
                    stderr=stderr or "unknown prover error",
                )

            try:
                proof = json.loads(proof_path.read_text(encoding="utf-8"))
                signals = json.loads(public_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise ProofGenerationError(
                    f"proving engine produced unreadable output: {exc}"
                ) from exc

        return ProofBundle(
            proof=proof,
            public_signals=_parse_signals(signals),
            layout=self._layout,
        )

    async def verify(self, bundle: ProofBundle) -> bool:
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp = Path(tmp_dir)
            proof_path = tmp / "proof.json"
            public_path = tmp / "public.json"
            proof_path.write_text(json.dumps(bundle.proof), encoding="utf-8")
            public_path.write_text(
                json.dumps(bundle.public_signals_json()), encoding="utf-8"
            )

            command = [
                *self._command,
                "groth16",
                "verify",
                str(self._artifacts.vkey_path),
                str(public_path),
                str(proof_path),
            ]
            try:
                returncode, stderr = await _run(command, self._verify_timeout)
            except trio.TooSlowError:
                raise VerificationFailure(
                    "verifier timed out", timeout=self._verify_timeout
                ) from None
            except OSError as exc:
                raise VerificationFailure(
                    f"cannot start verifier: {exc}", command=self._command[0]
                ) from exc

        if returncode != 0:
            logger.debug("snarkjs verify rejected proof: %s", stderr)
        return returncode == 0


async def _run(command: List[str], timeout: float) -> Tuple[int, str]:
    logger.debug("Running %s", " ".join(command))
    with trio.fail_after(timeout):
        result = await trio.run_process(
            command,
            capture_stdout=True,
            capture_stderr=True,
            check=False,
        )
    stderr = (result.stderr or b"").decode("utf-8", "replace").strip()
    return result.returncode, stderr[-MAX_STDERR_CHARS:]


def _parse_signals(signals: Any) -> Tuple[int, ...]:
    if not isinstance(signals, list):
        raise ProofGenerationError("public signals must be a JSON list")
    try:
        return tuple(int(s) for s in signals)
    except (TypeError, ValueError) as exc:
        raise ProofGenerationError(f"non-numeric public signal: {exc}") from exc
