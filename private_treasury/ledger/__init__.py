"""Ledger access: deposit history reads and withdrawal submission."""

from .contract import ContractHandle, connect, load_abi
from .reader import LedgerReader
from .submitter import Submitter, WithdrawalReceipt

__all__ = [
    "ContractHandle",
    "connect",
    "load_abi",
    "LedgerReader",
    "Submitter",
    "WithdrawalReceipt",
]
