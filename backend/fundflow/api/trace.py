"""API endpoints driving a fund-flow trace from seed to live tracking."""

from __future__ import annotations

import logging
from typing import Iterable, List

from fastapi import APIRouter, HTTPException

from fundflow.engine.records import Transfer
from fundflow.engine.session import get_session
from fundflow.models import (
    AddressProfile,
    ConfirmRequest,
    ConfirmResponse,
    GraphNodeModel,
    GraphResponse,
    SeedResponse,
    SeedTransferModel,
    StatusResponse,
    TraceRequest,
    TransferListResponse,
    TransferModel,
)
from fundflow.utils.addresses import normalize_eth_address
from fundflow.utils.formatting import format_amount

from .errors import HANDLED_ERRORS, http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/trace", tags=["trace"])


def _transfer_models(transfers: Iterable[Transfer]) -> List[TransferModel]:
    return [
        TransferModel(
            tx_hash=transfer.tx_hash,
            block_number=transfer.block_number,
            sender=transfer.sender,
            recipient=transfer.recipient,
            value=transfer.value,
            amount=transfer.formatted_amount,
        )
        for transfer in transfers
    ]


def _status_response(session) -> StatusResponse:
    return StatusResponse(**session.snapshot())


@router.post("", response_model=SeedResponse)
async def submit_seed(payload: TraceRequest) -> SeedResponse:
    """Look up the seed transaction and wait for the operator to confirm the window."""
    session = get_session()
    try:
        seed = await session.submit_seed(payload.tx_hash, payload.token)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc

    token = session.token
    return SeedResponse(
        status=session.status.value,
        token=token.symbol,
        seed=SeedTransferModel(
            tx_hash=seed.tx_hash,
            block_number=seed.block_number,
            timestamp=seed.timestamp,
            sender=seed.sender,
            recipient=seed.recipient,
            value=seed.value,
            amount=format_amount(seed.value, token.decimals, token.symbol),
        ),
    )


@router.post("/confirm", response_model=ConfirmResponse)
async def confirm_trace(payload: ConfirmRequest) -> ConfirmResponse:
    """Seed the ledger and start draining the job queues."""
    session = get_session()
    try:
        upper_bound = await session.confirm(payload.until_block, payload.cache_depth)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc

    return ConfirmResponse(
        status=session.status.value,
        upper_bound=upper_bound,
        cache_boundary=session.cache.boundary,
        queued_jobs=len(session.queues),
    )


@router.get("/status", response_model=StatusResponse)
async def trace_status() -> StatusResponse:
    return _status_response(get_session())


@router.get("/graph", response_model=GraphResponse)
async def trace_graph() -> GraphResponse:
    """Graph nodes in discovery order with their outgoing transfers."""
    nodes = [
        GraphNodeModel(id=node["id"], connections=_transfer_models(node["connections"]))
        for node in get_session().graph()
    ]
    return GraphResponse(nodes=nodes)


@router.get("/transfers", response_model=TransferListResponse)
async def trace_transfers() -> TransferListResponse:
    """Every traced transfer ordered by block number."""
    return TransferListResponse(transfers=_transfer_models(get_session().transfers()))


@router.get("/address/{address}", response_model=AddressProfile)
async def trace_address(address: str) -> AddressProfile:
    try:
        normalized = normalize_eth_address(address)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        profile = get_session().address_profile(normalized)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc

    profile["transfers"] = _transfer_models(profile["transfers"])
    return AddressProfile(**profile)


@router.post("/live", response_model=StatusResponse)
async def start_live_tracking() -> StatusResponse:
    """Follow traced funds through new blocks on the primary endpoint."""
    session = get_session()
    try:
        session.start_live()
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return _status_response(session)


@router.post("/live/decline", response_model=StatusResponse)
async def decline_live_tracking() -> StatusResponse:
    session = get_session()
    try:
        session.decline_live()
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return _status_response(session)


@router.post("/terminate", response_model=StatusResponse)
async def terminate_trace() -> StatusResponse:
    """Stop the running backfill or live subscription; results so far are kept."""
    session = get_session()
    try:
        session.terminate()
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    LOGGER.info("Trace terminated by operator")
    return _status_response(session)


@router.post("/reset", response_model=StatusResponse)
async def reset_trace() -> StatusResponse:
    session = get_session()
    try:
        session.reset()
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return _status_response(session)


__all__ = ["router"]
