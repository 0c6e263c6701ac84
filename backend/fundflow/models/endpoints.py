"""Pydantic schemas for RPC endpoint management."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from .trace import WorkerState


class EndpointsRequest(BaseModel):
    """RPC endpoint URLs; the first one must be a WebSocket endpoint."""

    urls: List[str] = Field(default_factory=list)


class EndpointsResponse(BaseModel):
    workers: List[WorkerState]


__all__ = ["EndpointsRequest", "EndpointsResponse"]
