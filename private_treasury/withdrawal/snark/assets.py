"""Resolve compiled-circuit artifacts (wasm, proving key, verification key)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import CircuitSettings
from ..exceptions import ConfigurationError

MAX_VKEY_BYTES = 1024 * 1024


@dataclass(frozen=True)
class CircuitArtifacts:
    wasm_path: Path
    zkey_path: Path
    vkey_path: Path


def resolve_artifacts(settings: CircuitSettings) -> CircuitArtifacts:
    """
    Locate the three artifacts under settings.circuits_dir.

    Absolute names in settings are used as-is.

    Raises:
        ConfigurationError: Listing every missing file, or an oversized vkey
    """
    base = Path(settings.circuits_dir)
    wasm, zkey, vkey = (
        _under(base, name) for name in (settings.wasm, settings.zkey, settings.vkey)
    )
    missing = [str(path) for path in (wasm, zkey, vkey) if not path.is_file()]
    if missing:
        raise ConfigurationError(
            "circuit artifacts not found", checked=", ".join(missing)
        )
    _check_size(vkey, MAX_VKEY_BYTES, "vkey")
    return CircuitArtifacts(wasm_path=wasm, zkey_path=zkey, vkey_path=vkey)


def _under(base: Path, name: str) -> Path:
    path = Path(name)
    return path if path.is_absolute() else base / path


def _check_size(path: Path, limit: int, label: str) -> None:
    size = path.stat().st_size
    if size > limit:
        raise ConfigurationError(f"{label} size exceeds limit", size=size, limit=limit)
