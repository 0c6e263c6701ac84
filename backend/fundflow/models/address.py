"""Pydantic schemas for per-address trace state."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .trace import TransferModel


class AddressProfile(BaseModel):
    """Summary of one traced address."""

    address: str
    graph_index: Optional[int] = None
    earliest_scheduled_block: int
    net_traced_balance: int = Field(0, description="Traced funds still held, in base units")
    net_traced_amount: str = ""
    out_count: int = 0
    unique_counterparties: int = 0
    transfers: List[TransferModel] = Field(default_factory=list)


__all__ = ["AddressProfile"]
