"""Read the deposit history and authoritative root from the ledger."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from web3.exceptions import Web3Exception

from ..withdrawal.config import DEFAULT_LEAF_EVENT
from ..withdrawal.exceptions import RetrievalError
from ..withdrawal.types import DepositHistory, DepositRecord, FieldHasher
from .contract import ContractHandle

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (Web3Exception, OSError, ValueError)


class LedgerReader:
    """
    Pure reads against the treasury contract.

    fetch_history() returns the whole history from genesis or raises; a
    partial history is never returned because the accumulator needs the
    complete prefix.

    Every read takes an optional block number. Callers pin one block with
    latest_block() and pass it to each read, so events, the deposit counter
    and the root all describe the same prefix even while deposits land.
    """

    def __init__(
        self,
        handle: ContractHandle,
        leaf_hasher: FieldHasher,
        *,
        from_block: int = 0,
        leaf_event: str = DEFAULT_LEAF_EVENT,
    ) -> None:
        self._handle = handle
        self._hasher = leaf_hasher
        self._from_block = from_block
        self._leaf_event = leaf_event

    def latest_block(self) -> int:
        """Current head block number, used to pin a consistent snapshot."""
        try:
            return int(self._handle.w3.eth.block_number)
        except _TRANSPORT_ERRORS as exc:
            raise RetrievalError(f"failed to read block number: {exc}") from exc

    def fetch_history(
        self, block: Optional[int] = None
    ) -> Tuple[DepositHistory, List[int]]:
        """
        Args:
            block: Snapshot block; the current head is pinned when omitted

        Returns:
            (records, leaf_hashes), both in ledger emission order

        Raises:
            RetrievalError: On transport failure, malformed records, or a
                gap between the event count and the on-chain deposit counter
        """
        if block is None:
            block = self.latest_block()
        logger.info("Fetching deposit history from block %d to %d", self._from_block, block)
        events = self._fetch_events(block)

        records: List[DepositRecord] = []
        for position, event in enumerate(events):
            try:
                records.append(DepositRecord.from_event_args(_event_args(event)))
            except RetrievalError as exc:
                exc.context.setdefault("event_index", position)
                raise

        expected = self.fetch_deposit_count(block)
        if expected is not None and expected != len(records):
            raise RetrievalError(
                "deposit events do not match on-chain deposit count",
                events=len(records),
                deposits=expected,
                block=block,
            )

        leaf_hashes = [record.leaf_hash(self._hasher) for record in records]
        logger.info("Retrieved %d deposits at block %d", len(records), block)
        return tuple(records), leaf_hashes

    def fetch_root(self, block: Optional[int] = None) -> int:
        return int(self._call("root", block=block))

    def fetch_deposit_count(self, block: Optional[int] = None) -> Optional[int]:
        if not self._handle.has_function("getNumDeposits"):
            return None
        return int(self._call("getNumDeposits", block=block))

    def remote_hash_leaf(
        self, record: DepositRecord, block: Optional[int] = None
    ) -> Optional[int]:
        """Contract's own leaf hash, or None if the ABI lacks _hashLeaf."""
        if not self._handle.has_function("_hashLeaf"):
            return None
        return int(self._call("_hashLeaf", record.as_contract_tuple(), block=block))

    def remote_hash_left_right(
        self, left: int, right: int, block: Optional[int] = None
    ) -> Optional[int]:
        """Contract's own node hash, or None if the ABI lacks _hashLeftRight."""
        if not self._handle.has_function("_hashLeftRight"):
            return None
        return int(self._call("_hashLeftRight", left, right, block=block))

    def _fetch_events(self, block: int) -> List[Any]:
        if not self._handle.has_event(self._leaf_event):
            raise RetrievalError("contract ABI lacks deposit event", event=self._leaf_event)
        event = getattr(self._handle.contract.events, self._leaf_event)
        try:
            logs = list(event().get_logs(from_block=self._from_block, to_block=block))
        except _TRANSPORT_ERRORS as exc:
            raise RetrievalError(
                f"failed to fetch {self._leaf_event} events: {exc}",
                from_block=self._from_block,
                to_block=block,
            ) from exc
        return sorted(logs, key=_log_position)

    def _call(self, name: str, *args: Any, block: Optional[int] = None) -> Any:
        identifier = "latest" if block is None else block
        try:
            return getattr(self._handle.contract.functions, name)(*args).call(
                block_identifier=identifier
            )
        except _TRANSPORT_ERRORS as exc:
            raise RetrievalError(f"ledger call {name}() failed: {exc}") from exc


def _event_args(event: Any) -> Any:
    try:
        return event["args"]
    except (KeyError, TypeError):
        raise RetrievalError("event has no decoded args") from None


def _log_position(event: Any) -> Tuple[int, int]:
    try:
        return int(event["blockNumber"]), int(event["logIndex"])
    except (KeyError, TypeError, ValueError):
        raise RetrievalError("event lacks blockNumber/logIndex") from None
