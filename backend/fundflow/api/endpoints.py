"""Endpoints managing the RPC worker pool."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from fundflow.engine.session import get_session
from fundflow.models import EndpointsRequest, EndpointsResponse, WorkerState

from .errors import HANDLED_ERRORS, http_error

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/endpoints", tags=["endpoints"])


def _workers_response(session) -> EndpointsResponse:
    return EndpointsResponse(workers=[WorkerState(**state) for state in session.worker_states()])


@router.post("", response_model=EndpointsResponse)
async def connect_workers(payload: EndpointsRequest) -> EndpointsResponse:
    """Validate every URL against the configured chain and replace the worker pool."""
    session = get_session()
    try:
        await session.connect(payload.urls)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc

    LOGGER.info("Worker pool now has %d endpoint(s)", len(session.workers))
    return _workers_response(session)


@router.get("", response_model=EndpointsResponse)
async def list_workers() -> EndpointsResponse:
    return _workers_response(get_session())


__all__ = ["router"]
