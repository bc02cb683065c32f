import pytest

from private_treasury.withdrawal.config import CircuitSettings
from private_treasury.withdrawal.exceptions import ConfigurationError
from private_treasury.withdrawal.snark.assets import MAX_VKEY_BYTES, resolve_artifacts


def _touch(path, size=4):
    path.write_bytes(b"x" * size)
    return path


def test_resolves_default_names(tmp_path):
    for name in ("verif-manager.wasm", "verif-manager.zkey", "verif-manager.vkey.json"):
        _touch(tmp_path / name)
    artifacts = resolve_artifacts(CircuitSettings(circuits_dir=tmp_path))
    assert artifacts.wasm_path == tmp_path / "verif-manager.wasm"
    assert artifacts.vkey_path == tmp_path / "verif-manager.vkey.json"


def test_absolute_names_are_used_as_is(tmp_path):
    other = tmp_path / "elsewhere"
    other.mkdir()
    wasm = _touch(other / "circuit.wasm")
    _touch(tmp_path / "verif-manager.zkey")
    _touch(tmp_path / "verif-manager.vkey.json")
    artifacts = resolve_artifacts(CircuitSettings(circuits_dir=tmp_path, wasm=str(wasm)))
    assert artifacts.wasm_path == wasm


def test_missing_files_are_all_listed(tmp_path):
    _touch(tmp_path / "verif-manager.wasm")
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_artifacts(CircuitSettings(circuits_dir=tmp_path))
    checked = excinfo.value.context["checked"]
    assert "verif-manager.zkey" in checked
    assert "verif-manager.vkey.json" in checked
    assert "verif-manager.wasm" not in checked


def test_oversized_vkey_rejected(tmp_path):
    _touch(tmp_path / "verif-manager.wasm")
    _touch(tmp_path / "verif-manager.zkey")
    _touch(tmp_path / "verif-manager.vkey.json", MAX_VKEY_BYTES + 1)
    with pytest.raises(ConfigurationError, match="size"):
        resolve_artifacts(CircuitSettings(circuits_dir=tmp_path))
