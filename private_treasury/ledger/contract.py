"""Settlement contract handle: ABI loading and web3 connection."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from web3 import Web3

from ..withdrawal.config import LedgerSettings
from ..withdrawal.exceptions import ConfigurationError, RetrievalError

_FIXED_ARRAY = re.compile(r"^u?int\d*\[(\d+)\]$")


def load_abi(path: str | Path) -> List[dict]:
    """
    Read an ABI from a bare JSON list or a build artifact with an "abi" key.

    Raises:
        ConfigurationError: If the file is unreadable or has no ABI
    """
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError("cannot read contract ABI", path=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError("contract ABI is not valid JSON", path=str(path)) from exc
    if isinstance(document, dict):
        document = document.get("abi")
    if not isinstance(document, list):
        raise ConfigurationError("no ABI list found", path=str(path))
    return document


@dataclass
class ContractHandle:
    """Web3 instance plus the bound treasury contract."""

    w3: Any
    contract: Any
    abi: List[dict]

    def has_function(self, name: str) -> bool:
        return self.function_abi(name) is not None

    def has_event(self, name: str) -> bool:
        return any(
            entry.get("type") == "event" and entry.get("name") == name
            for entry in self.abi
        )

    def function_abi(self, name: str) -> Optional[dict]:
        for entry in self.abi:
            if entry.get("type") == "function" and entry.get("name") == name:
                return entry
        return None

    def fixed_array_length(self, function: str, argument: int) -> Optional[int]:
        """N for a uintN[N]-typed argument, or None when not fixed-size."""
        entry = self.function_abi(function)
        if entry is None:
            return None
        inputs = entry.get("inputs", [])
        if not -len(inputs) <= argument < len(inputs):
            return None
        match = _FIXED_ARRAY.match(inputs[argument].get("type", ""))
        return int(match.group(1)) if match else None


def connect(settings: LedgerSettings) -> ContractHandle:
    """
    Open an HTTP provider and bind the contract.

    Raises:
        ConfigurationError: If settings are incomplete or the address is invalid
        RetrievalError: If the RPC endpoint is unreachable
    """
    settings.require()
    abi = load_abi(settings.abi_path)
    w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
    try:
        connected = w3.is_connected()
    except OSError as exc:
        raise RetrievalError("ledger endpoint unreachable", rpc_url=settings.rpc_url) from exc
    if not connected:
        raise RetrievalError("ledger endpoint unreachable", rpc_url=settings.rpc_url)
    try:
        address = Web3.to_checksum_address(settings.contract_address)
    except ValueError as exc:
        raise ConfigurationError(
            "invalid contract address", address=settings.contract_address
        ) from exc
    return ContractHandle(w3=w3, contract=w3.eth.contract(address=address, abi=abi), abi=abi)
