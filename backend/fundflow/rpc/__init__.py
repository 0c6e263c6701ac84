"""RPC endpoint access built on web3.py."""

from .endpoint import (
    RpcEndpoint,
    check_endpoint_urls,
    connect_endpoints,
    is_websocket_url,
    validate_endpoint,
)

__all__ = [
    "RpcEndpoint",
    "check_endpoint_urls",
    "connect_endpoints",
    "is_websocket_url",
    "validate_endpoint",
]
