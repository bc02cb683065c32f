"""Dispatch a verified withdrawal proof to the settlement contract."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from ..withdrawal.config import DEFAULT_RECEIPT_TIMEOUT
from ..withdrawal.exceptions import SubmissionError
from ..withdrawal.security import OperatorKey
from ..withdrawal.snark.calldata import export_groth16_calldata
from ..withdrawal.verifier import VerifiedProof
from .contract import ContractHandle

logger = logging.getLogger(__name__)

WITHDRAW_FUNCTION = "withdraw"


@dataclass(frozen=True)
class WithdrawalReceipt:
    tx_hash: str
    block_number: int
    gas_used: int
    leaf_index: int
    balance_before: Optional[int] = None
    balance_after: Optional[int] = None


class Submitter:
    """
    Sign and send exactly one withdraw() transaction per call.

    A revert, send failure or failed receipt raises SubmissionError. Nothing
    is resubmitted: a retry with a stale root or path could target an
    accumulator state the ledger has already moved past.
    """

    def __init__(
        self,
        handle: ContractHandle,
        operator_key: OperatorKey,
        *,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> None:
        self._handle = handle
        self._account = Account.from_key(operator_key.reveal())
        self._receipt_timeout = receipt_timeout

    @property
    def operator_address(self) -> str:
        return self._account.address

    def submit(self, verified: VerifiedProof) -> WithdrawalReceipt:
        if not isinstance(verified, VerifiedProof):
            raise TypeError("submit() only accepts a VerifiedProof")

        bundle = verified.bundle
        leaf_index = bundle.leaf_index
        calldata = export_groth16_calldata(bundle)

        expected_signals = self._handle.fixed_array_length(WITHDRAW_FUNCTION, -1)
        if expected_signals is not None and expected_signals != len(calldata.input):
            raise SubmissionError(
                "public signal count does not match withdraw() signature",
                expected=expected_signals,
                actual=len(calldata.input),
            )

        w3 = self._handle.w3
        address = self._account.address
        balance_before = self._balance(address)
        if balance_before is not None:
            logger.info("Operator balance BEFORE: %s ETH", Web3.from_wei(balance_before, "ether"))

        a, b, c, signals = calldata.as_args()
        try:
            function = self._handle.contract.functions.withdraw(leaf_index, a, b, c, signals)
            tx = function.build_transaction(
                {
                    "from": address,
                    "nonce": w3.eth.get_transaction_count(address),
                    "chainId": w3.eth.chain_id,
                }
            )
        except ContractLogicError as exc:
            raise SubmissionError(
                f"withdraw reverted during estimation: {exc}", leaf_index=leaf_index
            ) from exc
        except (Web3Exception, OSError, ValueError) as exc:
            raise SubmissionError(
                f"failed to build withdraw transaction: {exc}", leaf_index=leaf_index
            ) from exc

        signed = self._account.sign_transaction(tx)
        try:
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, OSError, ValueError) as exc:
            raise SubmissionError(
                f"settlement layer rejected transaction: {exc}", leaf_index=leaf_index
            ) from exc

        tx_hex = _hex(tx_hash)
        logger.info("Sent withdraw transaction %s for leaf %d", tx_hex, leaf_index)
        try:
            receipt = w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except (Web3Exception, OSError, ValueError) as exc:
            raise SubmissionError(
                f"no receipt for withdraw transaction: {exc}",
                tx_hash=tx_hex,
                leaf_index=leaf_index,
            ) from exc

        if receipt["status"] != 1:
            raise SubmissionError(
                "withdraw transaction reverted", tx_hash=tx_hex, leaf_index=leaf_index
            )

        balance_after = self._balance(address)
        if balance_after is not None:
            logger.info("Operator balance AFTER: %s ETH", Web3.from_wei(balance_after, "ether"))

        return WithdrawalReceipt(
            tx_hash=tx_hex,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
            leaf_index=leaf_index,
            balance_before=balance_before,
            balance_after=balance_after,
        )

    def _balance(self, address: str) -> Optional[int]:
        # Informational only; a failed balance read never blocks submission
        try:
            return int(self._handle.w3.eth.get_balance(address))
        except (Web3Exception, OSError, ValueError) as exc:
            logger.warning("Could not read operator balance: %s", exc)
            return None


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)
