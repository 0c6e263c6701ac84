"""Fetch strategies: native value scanning over blocks, or ERC-20 log filtering."""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from eth_abi import decode as abi_decode
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from fundflow.config import TokenSpec
from fundflow.errors import CacheNotReady, NoQualifyingTransferEvent, TransactionNotFound, TransientFetchError
from fundflow.utils.addresses import address_to_topic, to_hex, topic_to_address

from .cache import RangeCache
from .records import Job, TransferEvent

LOGGER = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_SIGNATURE = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def decode_transfer_log(log: Any) -> TransferEvent:
    """Decode an ERC-20 ``Transfer`` log into a transfer event."""
    topics = log["topics"]
    if len(topics) < 3 or to_hex(topics[0]) != TRANSFER_EVENT_SIGNATURE:
        raise ValueError("Log is not an indexed ERC-20 Transfer event")
    (value,) = abi_decode(["uint256"], bytes(HexBytes(log["data"])))
    return TransferEvent(
        tx_hash=to_hex(log["transactionHash"]),
        block_number=int(log["blockNumber"]),
        sender=topic_to_address(topics[1]),
        recipient=topic_to_address(topics[2]),
        value=int(value),
    )


def value_transfers(block: Any, sender: Optional[str] = None) -> List[TransferEvent]:
    """Nonzero value transactions in a full block, optionally from ``sender`` only."""
    events: List[TransferEvent] = []
    block_number = int(block["number"])
    for tx in block.get("transactions") or []:
        if isinstance(tx, (str, bytes)):
            continue
        recipient = tx.get("to")
        value = int(tx.get("value") or 0)
        if value <= 0 or not recipient:
            continue
        tx_sender = str(tx["from"]).lower()
        if sender is not None and tx_sender != sender.lower():
            continue
        events.append(
            TransferEvent(
                tx_hash=to_hex(tx["hash"]),
                block_number=block_number,
                sender=tx_sender,
                recipient=str(recipient).lower(),
                value=value,
            )
        )
    return events


class ScanStrategy(abc.ABC):
    """How transfers of one asset are discovered, backfilled and streamed."""

    @abc.abstractmethod
    async def fetch(self, endpoint: Any, job: Job, cache: RangeCache, chunk_size: int) -> List[TransferEvent]:
        """Return the job address's outgoing transfers within the job range."""

    @abc.abstractmethod
    def stream(self, endpoint: Any) -> AsyncIterator[TransferEvent]:
        """Yield transfers as they are observed live."""

    @abc.abstractmethod
    async def find_seed_event(self, endpoint: Any, tx_hash: str) -> TransferEvent:
        """Locate the transfer a seed transaction performed."""


@dataclass(frozen=True)
class NativeValueScan(ScanStrategy):
    """Scan full blocks for plain value transfers."""

    async def fetch(self, endpoint: Any, job: Job, cache: RangeCache, chunk_size: int) -> List[TransferEvent]:
        numbers = range(job.start_block, job.end_block + 1)
        boundary = cache.boundary

        if job.populates_cache or boundary is None or job.start_block < boundary:
            blocks = await asyncio.gather(*(self._cached_or_fetch(endpoint, cache, n) for n in numbers))
            if job.populates_cache:
                cache.put(job.start_block, blocks)
        else:
            blocks = []
            missing = []
            for number in numbers:
                block = cache.get(number)
                if block is None:
                    missing.append(number)
                else:
                    blocks.append(block)

            if missing:
                # The populating job for this window may still be in flight.
                if len(missing) > chunk_size:
                    raise CacheNotReady(
                        f"{len(missing)} of {job.size} blocks uncached for {job.describe()}"
                    )
                fetched = await asyncio.gather(*(self._fetch_block(endpoint, n) for n in missing))
                blocks.extend(fetched)

        events: List[TransferEvent] = []
        for block in blocks:
            events.extend(value_transfers(block, job.from_address))
        return events

    async def _cached_or_fetch(self, endpoint: Any, cache: RangeCache, number: int) -> Any:
        cached = cache.get(number)
        if cached is not None:
            return cached
        return await self._fetch_block(endpoint, number)

    @staticmethod
    async def _fetch_block(endpoint: Any, number: int) -> Any:
        block = await endpoint.get_block(number, True)
        if block is None:
            raise TransientFetchError(f"Block {number} unavailable")
        return block

    async def stream(self, endpoint: Any) -> AsyncIterator[TransferEvent]:
        async for header in endpoint.subscribe_new_blocks():
            number = header.get("number")
            if number is None:
                LOGGER.debug("Skipping pending block header")
                continue

            block = await endpoint.get_block(int(number), True)
            if not block or not block.get("transactions"):
                LOGGER.debug("No transactions found in block %s", number)
                continue

            for event in value_transfers(block):
                yield event

    async def find_seed_event(self, endpoint: Any, tx_hash: str) -> TransferEvent:
        tx = await endpoint.get_transaction(tx_hash)
        if tx is None or tx.get("blockNumber") is None:
            raise TransactionNotFound(f"Transaction {tx_hash} not found or still pending")
        if int(tx.get("value") or 0) == 0 or not tx.get("to"):
            raise NoQualifyingTransferEvent("ETH transfer not found.")
        return TransferEvent(
            tx_hash=tx_hash,
            block_number=int(tx["blockNumber"]),
            sender=str(tx["from"]).lower(),
            recipient=str(tx["to"]).lower(),
            value=int(tx["value"]),
        )


@dataclass(frozen=True)
class LogFilterScan(ScanStrategy):
    """Query ERC-20 ``Transfer`` logs of a single token contract."""

    contract_address: str

    @property
    def checksum_address(self) -> str:
        return to_checksum_address(self.contract_address)

    def log_filter(self, job: Job) -> Dict[str, Any]:
        return {
            "fromBlock": job.start_block,
            "toBlock": job.end_block,
            "address": self.checksum_address,
            "topics": [TRANSFER_EVENT_SIGNATURE, address_to_topic(job.from_address)],
        }

    async def fetch(self, endpoint: Any, job: Job, cache: RangeCache, chunk_size: int) -> List[TransferEvent]:
        logs = await endpoint.get_logs(self.log_filter(job))
        return [decode_transfer_log(log) for log in logs]

    async def stream(self, endpoint: Any) -> AsyncIterator[TransferEvent]:
        live_filter = {"address": self.checksum_address, "topics": [TRANSFER_EVENT_SIGNATURE]}
        async for log in endpoint.subscribe_logs(live_filter):
            try:
                yield decode_transfer_log(log)
            except ValueError as exc:
                LOGGER.warning("Skipping undecodable log: %s", exc)

    async def find_seed_event(self, endpoint: Any, tx_hash: str) -> TransferEvent:
        receipt = await endpoint.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise TransactionNotFound("Transaction receipt not found.")

        logs = receipt.get("logs") or []
        if not logs:
            raise NoQualifyingTransferEvent("No logs found in this transaction.")

        contract = self.contract_address.lower()
        for log in logs:
            topics = log.get("topics") or []
            if (
                topics
                and to_hex(topics[0]) == TRANSFER_EVENT_SIGNATURE
                and str(log.get("address", "")).lower() == contract
            ):
                return decode_transfer_log(log)

        raise NoQualifyingTransferEvent(
            "No ERC20 Transfer event found for the specified token in this transaction."
        )


def strategy_for(token: TokenSpec) -> ScanStrategy:
    if token.is_native:
        return NativeValueScan()
    return LogFilterScan(contract_address=token.contract_address)


__all__ = [
    "TRANSFER_EVENT_SIGNATURE",
    "ScanStrategy",
    "NativeValueScan",
    "LogFilterScan",
    "decode_transfer_log",
    "value_transfers",
    "strategy_for",
]
