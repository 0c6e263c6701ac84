"""Per-address traversal bookkeeping and job planning."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from fundflow.errors import SessionStateError

from .cache import RangeCache
from .queues import JobQueues
from .records import AddressRecord, Job, Transfer

LOGGER = logging.getLogger(__name__)


class TraversalLedger:
    """Single source of truth for what has been scheduled per address.

    ``request_scan`` turns "search ``address`` from block ``start``" into jobs
    covering only blocks no earlier request has already scheduled, so every
    (address, block) pair is enqueued at most once per session.
    """

    def __init__(
        self,
        queues: JobQueues,
        cache: RangeCache,
        chunk_size: int,
        cache_depth: int = 0,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._queues = queues
        self._cache = cache
        self.chunk_size = chunk_size
        self.cache_depth = max(0, cache_depth)
        self.seed_block: Optional[int] = None
        self.upper_bound: Optional[int] = None
        self.records: Dict[str, AddressRecord] = {}

    # ------------------------------------------------------------------ window

    def configure_window(
        self,
        seed_block: int,
        upper_bound: int,
        cache_depth: Optional[int] = None,
    ) -> int:
        """Set the scan range and recompute the cache boundary.

        Returns the new boundary.
        """
        if upper_bound < seed_block:
            raise ValueError(
                f"Until block {upper_bound} precedes seed block {seed_block}"
            )
        if cache_depth is not None:
            self.cache_depth = max(0, cache_depth)
        self.seed_block = seed_block
        self.upper_bound = upper_bound

        boundary = max(upper_bound - self.cache_depth + 1, seed_block)
        self._cache.set_boundary(boundary)
        LOGGER.info(
            "Scan window %d-%d, cache depth %d, cache boundary %d",
            seed_block,
            upper_bound,
            self.cache_depth,
            boundary,
        )
        return boundary

    @property
    def cache_boundary(self) -> int:
        boundary = self._cache.boundary
        if boundary is None or self.upper_bound is None:
            raise SessionStateError("Scan window has not been configured")
        return boundary

    # ---------------------------------------------------------------- planning

    def request_scan(self, address: str, start_block: int, populates_cache: bool = False) -> List[Job]:
        """Schedule the not-yet-covered part of ``[start_block, upper_bound]``."""
        if self.upper_bound is None:
            raise SessionStateError("Scan window has not been configured")

        key = address.lower()
        start = int(start_block)
        record = self.records.get(key)

        if record is None:
            self.records[key] = AddressRecord(address=key, earliest_scheduled_block=start)
            LOGGER.info("New address %s (search from block %d)", key, start)
            jobs = self._plan(key, start, self.upper_bound, populates_cache)
        elif start >= record.earliest_scheduled_block:
            return []
        else:
            jobs = self._plan(key, start, record.earliest_scheduled_block - 1, populates_cache)
            LOGGER.info(
                "Extending frontier of %s from %d back to %d",
                key,
                record.earliest_scheduled_block,
                start,
            )
            record.earliest_scheduled_block = start

        for job in jobs:
            self._queues.push(job)
        return jobs

    def _chunks(self, start: int, end: int) -> Iterator[Tuple[int, int]]:
        for chunk_start in range(start, end + 1, self.chunk_size):
            yield chunk_start, min(chunk_start + self.chunk_size - 1, end)

    def _plan(self, address: str, start: int, end: int, populates_cache: bool) -> List[Job]:
        if start > end:
            return []

        boundary = self.cache_boundary

        if populates_cache:
            return [
                Job(address, chunk_start, chunk_end, chunk_end >= boundary)
                for chunk_start, chunk_end in self._chunks(start, end)
            ]

        jobs = [
            Job(address, chunk_start, chunk_end)
            for chunk_start, chunk_end in self._chunks(start, min(end, boundary - 1))
        ]

        # Everything at or above the boundary is read back from the cache.
        cached_start = max(start, boundary)
        if self.cache_depth > 0 and cached_start <= end:
            jobs.append(Job(address, cached_start, end))

        return jobs

    # -------------------------------------------------------------- accounting

    def seed(self, transfer: Transfer) -> List[Job]:
        """Register the seed transfer and schedule the recipient's backfill."""
        if self.upper_bound is None:
            raise SessionStateError("Scan window has not been configured")

        sender = transfer.sender.lower()
        self.records[sender] = AddressRecord(
            address=sender,
            earliest_scheduled_block=self.upper_bound + 1,
            transfers=[transfer],
        )
        jobs = self.request_scan(transfer.recipient, transfer.block_number, populates_cache=True)
        self.records[transfer.recipient.lower()].net_traced_balance += transfer.value
        return jobs

    def apply_transfer(self, sender: str, recipient: str, value: int) -> None:
        self.records[sender.lower()].net_traced_balance -= value
        self.records[recipient.lower()].net_traced_balance += value

    def append_transfers(self, address: str, transfers: List[Transfer]) -> None:
        self.records[address.lower()].transfers.extend(transfers)

    def holds_traced_funds(self, address: str) -> bool:
        record = self.records.get(address.lower())
        return record is not None and record.net_traced_balance > 0

    def record_live_transfer(self, transfer: Transfer) -> bool:
        """Book a transfer observed in live mode; returns True for a new recipient."""
        sender = self.records[transfer.sender.lower()]
        recipient_key = transfer.recipient.lower()
        recipient = self.records.get(recipient_key)
        created = recipient is None
        if created:
            recipient = AddressRecord(address=recipient_key, earliest_scheduled_block=transfer.block_number)
            self.records[recipient_key] = recipient

        sender.net_traced_balance -= transfer.value
        recipient.net_traced_balance += transfer.value
        sender.transfers.append(transfer)
        return created

    # ------------------------------------------------------------------ access

    def get(self, address: str) -> Optional[AddressRecord]:
        return self.records.get(address.lower())

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self.records

    def __len__(self) -> int:
        return len(self.records)


__all__ = ["TraversalLedger"]
