"""Traversal engine: job planning, dispatch, caching and live tracking."""

from .cache import RangeCache
from .dispatcher import DispatchLoop, Worker, is_rate_limited
from .ledger import TraversalLedger
from .live import LiveSubscriptionHandler
from .projection import GraphNode, GraphProjection
from .queues import JobQueues
from .records import AddressRecord, Job, SeedTransfer, Transfer, TransferEvent
from .strategies import LogFilterScan, NativeValueScan, ScanStrategy, strategy_for

__all__ = [
    "RangeCache",
    "DispatchLoop",
    "Worker",
    "is_rate_limited",
    "TraversalLedger",
    "LiveSubscriptionHandler",
    "GraphNode",
    "GraphProjection",
    "JobQueues",
    "AddressRecord",
    "Job",
    "SeedTransfer",
    "Transfer",
    "TransferEvent",
    "strategy_for",
    "ScanStrategy",
    "NativeValueScan",
    "LogFilterScan",
]
