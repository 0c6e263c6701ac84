"""Value types shared by the traversal engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional


@dataclass(frozen=True)
class Job:
    """Scan ``from_address``'s outgoing activity over an inclusive block range."""

    from_address: str
    start_block: int
    end_block: int
    populates_cache: bool = False

    @property
    def size(self) -> int:
        return self.end_block - self.start_block + 1

    def describe(self) -> str:
        flag = " cache" if self.populates_cache else ""
        return f"{self.from_address} [{self.start_block}-{self.end_block}]{flag}"


@dataclass(frozen=True)
class TransferEvent:
    """A decoded value movement as returned by a scan strategy."""

    tx_hash: str
    block_number: int
    sender: str
    recipient: str
    value: int


@dataclass(frozen=True)
class Transfer:
    """A traced transfer attached to its sender's record."""

    tx_hash: str
    block_number: int
    sender: str
    recipient: str
    value: int
    amount: Decimal
    formatted_amount: str

    def summary(self) -> dict:
        return {
            "txHash": self.tx_hash,
            "from": self.sender,
            "to": self.recipient,
            "blockNumber": self.block_number,
            "amount": self.formatted_amount,
        }


@dataclass
class AddressRecord:
    """Per-address traversal bookkeeping."""

    address: str
    earliest_scheduled_block: int
    graph_index: Optional[int] = None
    transfers: List[Transfer] = field(default_factory=list)
    net_traced_balance: int = 0


@dataclass(frozen=True)
class SeedTransfer:
    """The transfer the trace starts from."""

    tx_hash: str
    block_number: int
    timestamp: int
    sender: str
    recipient: str
    value: int


__all__ = ["Job", "TransferEvent", "Transfer", "AddressRecord", "SeedTransfer"]
