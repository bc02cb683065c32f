"""Submitter tests: only verified proofs reach withdraw(), exactly once."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import trio
from web3.exceptions import ContractLogicError, TimeExhausted

from private_treasury.ledger.contract import ContractHandle
from private_treasury.ledger.submitter import Submitter
from private_treasury.withdrawal.config import DEFAULT_PUBLIC_SIGNALS
from private_treasury.withdrawal.exceptions import SubmissionError
from private_treasury.withdrawal.security import OperatorKey
from private_treasury.withdrawal.types import ProofBundle
from private_treasury.withdrawal.verifier import LocalVerifier

OPERATOR_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OPERATOR_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
CONTRACT_ADDRESS = "0x000000000000000000000000000000000000dEaD"


def _withdraw_abi(signals=7):
    return [
        {
            "type": "function",
            "name": "withdraw",
            "inputs": [
                {"name": "leafIndex", "type": "uint256"},
                {"name": "a", "type": "uint256[2]"},
                {"name": "b", "type": "uint256[2][2]"},
                {"name": "c", "type": "uint256[2]"},
                {"name": "input", "type": f"uint256[{signals}]"},
            ],
        }
    ]


class _Eth:
    def __init__(self, status=1, send_error=None, receipt_error=None):
        self.chain_id = 1337
        self.status = status
        self.send_error = send_error
        self.receipt_error = receipt_error
        self.sent = []
        self.balances = [10**18, 10**18 - 5000]

    def get_transaction_count(self, address):
        return 3

    def get_balance(self, address):
        return self.balances.pop(0)

    def send_raw_transaction(self, raw):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw)
        return b"\x12" * 32

    def wait_for_transaction_receipt(self, tx_hash, timeout):
        if self.receipt_error is not None:
            raise self.receipt_error
        return {"status": self.status, "blockNumber": 99, "gasUsed": 210000}


class _Functions:
    def __init__(self, build_error=None):
        self.calls = []
        self.build_error = build_error

    def withdraw(self, *args):
        self.calls.append(args)
        functions = self

        class _Bound:
            def build_transaction(self, params):
                if functions.build_error is not None:
                    raise functions.build_error
                return {
                    "to": CONTRACT_ADDRESS,
                    "data": "0x",
                    "value": 0,
                    "gas": 300000,
                    "gasPrice": 10**9,
                    **params,
                }

        return _Bound()


def _handle(eth=None, functions=None, abi=None):
    contract = SimpleNamespace(functions=functions or _Functions())
    return ContractHandle(
        w3=SimpleNamespace(eth=eth or _Eth()),
        contract=contract,
        abi=abi if abi is not None else _withdraw_abi(),
    )


class _AcceptAll:
    async def verify(self, bundle):
        return True


def _bundle(leaf_index=4):
    return ProofBundle(
        proof={
            "pi_a": ["1", "2", "1"],
            "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
            "pi_c": ["7", "8", "1"],
        },
        public_signals=(5, 99, leaf_index, 11, 12, 13, 14),
        layout=DEFAULT_PUBLIC_SIGNALS,
    )


def _verified(bundle=None):
    return trio.run(LocalVerifier(_AcceptAll()).gate, bundle or _bundle())


def test_submits_withdraw_with_proof_leaf_index():
    eth, functions = _Eth(), _Functions()
    submitter = Submitter(_handle(eth, functions), OperatorKey(OPERATOR_KEY))

    receipt = submitter.submit(_verified())

    assert submitter.operator_address == OPERATOR_ADDRESS
    assert len(functions.calls) == 1
    leaf_index, a, b, c, signals = functions.calls[0]
    assert leaf_index == 4
    assert a == [1, 2]
    assert b == [[4, 3], [6, 5]]
    assert c == [7, 8]
    assert signals == [5, 99, 4, 11, 12, 13, 14]
    assert len(eth.sent) == 1
    assert receipt.tx_hash == "0x" + "12" * 32
    assert receipt.block_number == 99
    assert receipt.gas_used == 210000
    assert receipt.leaf_index == 4
    assert receipt.balance_before - receipt.balance_after == 5000


def test_unverified_bundle_is_refused():
    eth, functions = _Eth(), _Functions()
    submitter = Submitter(_handle(eth, functions), OperatorKey(OPERATOR_KEY))
    with pytest.raises(TypeError):
        submitter.submit(_bundle())
    assert functions.calls == []
    assert eth.sent == []


def test_reverted_receipt_is_not_retried():
    eth = _Eth(status=0)
    submitter = Submitter(_handle(eth), OperatorKey(OPERATOR_KEY))
    with pytest.raises(SubmissionError) as excinfo:
        submitter.submit(_verified())
    assert excinfo.value.context["leaf_index"] == 4
    assert len(eth.sent) == 1


def test_revert_during_estimation():
    eth = _Eth()
    functions = _Functions(build_error=ContractLogicError("execution reverted: bad root"))
    submitter = Submitter(_handle(eth, functions), OperatorKey(OPERATOR_KEY))
    with pytest.raises(SubmissionError, match="reverted"):
        submitter.submit(_verified())
    assert eth.sent == []


@pytest.mark.parametrize(
    "eth",
    [
        _Eth(send_error=ValueError({"code": -32000, "message": "nonce too low"})),
        _Eth(receipt_error=TimeExhausted("no receipt")),
    ],
)
def test_transport_failures_are_submission_errors(eth):
    submitter = Submitter(_handle(eth), OperatorKey(OPERATOR_KEY))
    with pytest.raises(SubmissionError):
        submitter.submit(_verified())


def test_signal_count_checked_against_abi():
    functions = _Functions()
    submitter = Submitter(_handle(functions=functions, abi=_withdraw_abi(6)), OperatorKey(OPERATOR_KEY))
    with pytest.raises(SubmissionError) as excinfo:
        submitter.submit(_verified())
    assert excinfo.value.context == {"expected": 6, "actual": 7}
    assert functions.calls == []


def test_balance_failure_does_not_block_submission():
    eth = _Eth()
    eth.balances = []

    def broken(address):
        raise ConnectionError("rpc down")

    eth.get_balance = broken
    receipt = Submitter(_handle(eth), OperatorKey(OPERATOR_KEY)).submit(_verified())
    assert receipt.balance_before is None
    assert receipt.balance_after is None
