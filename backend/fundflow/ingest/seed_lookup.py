"""Resolve the seed transaction a trace starts from."""

from __future__ import annotations

import logging
from typing import Any

from fundflow.engine.records import SeedTransfer
from fundflow.engine.strategies import ScanStrategy
from fundflow.utils.addresses import normalize_tx_hash

LOGGER = logging.getLogger(__name__)


async def lookup_seed_transfer(endpoint: Any, strategy: ScanStrategy, tx_hash: str) -> SeedTransfer:
    """Find the qualifying transfer in ``tx_hash`` and stamp it with its block time.

    Raises ``ValueError`` for a malformed hash, ``TransactionNotFound`` when the
    node does not know the transaction and ``NoQualifyingTransferEvent`` when
    it moved none of the selected asset.
    """
    normalized = normalize_tx_hash(tx_hash)
    event = await strategy.find_seed_event(endpoint, normalized)
    block = await endpoint.get_block(event.block_number, False)
    timestamp = int(block["timestamp"]) if block is not None else 0

    LOGGER.info(
        "Seed %s: %s -> %s (%d base units) at block %d",
        normalized,
        event.sender,
        event.recipient,
        event.value,
        event.block_number,
    )

    return SeedTransfer(
        tx_hash=normalized,
        block_number=event.block_number,
        timestamp=timestamp,
        sender=event.sender,
        recipient=event.recipient,
        value=event.value,
    )


__all__ = ["lookup_seed_transfer"]
