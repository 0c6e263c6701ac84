"""Translate tracer failures into HTTP errors."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from fundflow.errors import (
    EndpointWrongNetwork,
    NoQualifyingTransferEvent,
    SessionStateError,
    TracerError,
    TransactionNotFound,
)
from fundflow.rpc.endpoint import CONNECTION_ERRORS

LOGGER = logging.getLogger(__name__)

HANDLED_ERRORS = (TracerError, ValueError, KeyError) + CONNECTION_ERRORS


def _status_for(exc: Exception) -> int:
    if isinstance(exc, SessionStateError):
        return 409
    if isinstance(exc, (TransactionNotFound, KeyError)):
        return 404
    if isinstance(exc, NoQualifyingTransferEvent):
        return 422
    if isinstance(exc, (ValueError, EndpointWrongNetwork)):
        return 400
    return 502


def http_error(exc: Exception) -> HTTPException:
    status_code = _status_for(exc)
    detail = str(exc.args[0]) if exc.args else exc.__class__.__name__
    if status_code >= 500:
        LOGGER.error("Upstream failure: %s", detail)
    else:
        LOGGER.warning("Rejected request (%d): %s", status_code, detail)
    return HTTPException(status_code=status_code, detail=detail)


__all__ = ["HANDLED_ERRORS", "http_error"]
