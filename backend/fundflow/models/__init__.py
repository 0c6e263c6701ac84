"""Pydantic data models exposed by the fund-flow tracer backend."""

from .trace import (
	TraceRequest,
	ConfirmRequest,
	SeedTransferModel,
	SeedResponse,
	ConfirmResponse,
	TransferModel,
	GraphNodeModel,
	GraphResponse,
	TransferListResponse,
	WorkerState,
	StatusResponse,
)
from .address import AddressProfile
from .endpoints import EndpointsRequest, EndpointsResponse

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
	"AddressProfile",
	"EndpointsRequest",
	"EndpointsResponse",
]
