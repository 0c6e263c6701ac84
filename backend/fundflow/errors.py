"""Exception types raised by the tracer."""

from __future__ import annotations


class TracerError(Exception):
    """Base class for all tracer errors."""


class InvalidEndpointConfiguration(TracerError, ValueError):
    """The endpoint list is empty, has blanks, or lacks a WebSocket primary."""


class EndpointUnreachable(TracerError):
    """An RPC endpoint did not answer within the validation window."""


class EndpointWrongNetwork(TracerError):
    """An RPC endpoint is connected to a different chain."""


class TransactionNotFound(TracerError):
    """The seed transaction (or its receipt) does not exist."""


class NoQualifyingTransferEvent(TracerError):
    """The seed transaction moved no value of the selected token."""


class RateLimited(TracerError):
    """The endpoint refused a request because of rate limiting."""


class CacheNotReady(TracerError):
    """Too many blocks of a cache-backed job are not cached yet."""


class TransientFetchError(TracerError):
    """A fetch failed for a reason worth retrying without penalty."""


class SessionStateError(TracerError):
    """The requested operation is not valid in the current session state."""


__all__ = [
    "TracerError",
    "InvalidEndpointConfiguration",
    "EndpointUnreachable",
    "EndpointWrongNetwork",
    "TransactionNotFound",
    "NoQualifyingTransferEvent",
    "RateLimited",
    "CacheNotReady",
    "TransientFetchError",
    "SessionStateError",
]
