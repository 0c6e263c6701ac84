"""Pydantic models used by the fund-flow tracing API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TraceRequest(BaseModel):
    """Client request payload naming the seed transaction."""

    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash", description="Seed transaction hash")
    token: str = Field("ETH", description="Asset to follow (ETH or a configured token symbol)")


class ConfirmRequest(BaseModel):
    """Scan window chosen by the operator before the backfill starts."""

    until_block: Optional[int] = Field(
        None, ge=0, description="Last block to scan; capped at the chain head"
    )
    cache_depth: Optional[int] = Field(
        None, ge=0, description="Number of trailing blocks kept in the shared cache"
    )


class SeedTransferModel(BaseModel):
    """The transfer a trace starts from."""

    tx_hash: str
    block_number: int
    timestamp: int
    sender: str
    recipient: str
    value: int
    amount: str


class SeedResponse(BaseModel):
    status: str
    token: str
    seed: SeedTransferModel


class ConfirmResponse(BaseModel):
    status: str
    upper_bound: int
    cache_boundary: Optional[int] = None
    queued_jobs: int = 0


class TransferModel(BaseModel):
    """A traced transfer edge."""

    tx_hash: str
    block_number: int
    sender: str = Field(..., description="Sender address")
    recipient: str = Field(..., description="Receiver address")
    value: int = Field(..., description="Amount in base units")
    amount: str = Field(..., description="Display amount, truncated to five decimals")


class GraphNodeModel(BaseModel):
    id: str
    connections: List[TransferModel] = Field(default_factory=list)


class GraphResponse(BaseModel):
    """Nodes in discovery order with their outgoing transfers."""

    nodes: List[GraphNodeModel]


class TransferListResponse(BaseModel):
    transfers: List[TransferModel]


class WorkerState(BaseModel):
    index: int
    url: str
    active_job: Optional[str] = None
    cooldown: float = 0.0


class StatusResponse(BaseModel):
    """Snapshot of the trace session."""

    status: str
    token: Optional[str] = None
    seed_tx_hash: Optional[str] = None
    upper_bound: Optional[int] = None
    cache_boundary: Optional[int] = None
    cached_blocks: int = 0
    queued_jobs: int = 0
    priority_jobs: int = 0
    addresses: int = 0
    workers: List[WorkerState] = Field(default_factory=list)
    elapsed_seconds: Optional[float] = None
    live_observed: int = 0
    live_applied: int = 0
    live_error: Optional[str] = None


__all__ = [
    "TraceRequest",
    "ConfirmRequest",
    "SeedTransferModel",
    "SeedResponse",
    "ConfirmResponse",
    "TransferModel",
    "GraphNodeModel",
    "GraphResponse",
    "TransferListResponse",
    "WorkerState",
    "StatusResponse",
]
