"""Async web3 wrapper exposing the RPC primitives the tracer consumes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, WebSocketProvider
from web3.exceptions import TransactionNotFound as Web3TransactionNotFound
from web3.exceptions import Web3Exception
from websockets.exceptions import WebSocketException

from fundflow.errors import EndpointUnreachable, EndpointWrongNetwork, InvalidEndpointConfiguration

LOGGER = logging.getLogger(__name__)

CONNECTION_ERRORS = (
    ConnectionError,
    TimeoutError,
    OSError,
    aiohttp.ClientError,
    WebSocketException,
    Web3Exception,
)


def is_websocket_url(url: str) -> bool:
    return url.strip().lower().startswith(("ws://", "wss://"))


class RpcEndpoint:
    """One remote node. WebSocket URLs get a persistent, subscription-capable provider."""

    def __init__(self, url: str, web3: Optional[AsyncWeb3] = None) -> None:
        self.url = url.strip()
        self.supports_subscriptions = is_websocket_url(self.url)
        if web3 is not None:
            self._w3 = web3
        elif self.supports_subscriptions:
            self._w3 = AsyncWeb3(WebSocketProvider(self.url))
        else:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self.url))

    async def connect(self) -> None:
        if self.supports_subscriptions:
            await self._w3.provider.connect()

    async def close(self) -> None:
        if self.supports_subscriptions:
            await self._w3.provider.disconnect()

    async def is_reachable(self) -> bool:
        return bool(await self._w3.is_connected())

    async def network_id(self) -> int:
        return int(await self._w3.eth.chain_id)

    async def get_latest_block_number(self) -> int:
        return int(await self._w3.eth.block_number)

    async def get_block(self, number: int, full_transactions: bool = False) -> Any:
        return await self._w3.eth.get_block(number, full_transactions=full_transactions)

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[Any]:
        return list(await self._w3.eth.get_logs(filter_params))

    async def get_transaction(self, tx_hash: str) -> Optional[Any]:
        try:
            return await self._w3.eth.get_transaction(tx_hash)
        except Web3TransactionNotFound:
            return None

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Any]:
        try:
            return await self._w3.eth.get_transaction_receipt(tx_hash)
        except Web3TransactionNotFound:
            return None

    def subscribe_new_blocks(self) -> AsyncIterator[Any]:
        return self._subscribe("newHeads")

    def subscribe_logs(self, filter_params: Dict[str, Any]) -> AsyncIterator[Any]:
        return self._subscribe("logs", filter_params)

    async def _subscribe(self, *params: Any) -> AsyncIterator[Any]:
        if not self.supports_subscriptions:
            raise InvalidEndpointConfiguration(f"{self.url} does not support subscriptions")

        subscription_id = await self._w3.eth.subscribe(*params)
        LOGGER.info("Subscribed to %s on %s (id=%s)", params[0], self.url, subscription_id)
        try:
            async for message in self._w3.socket.process_subscriptions():
                if message.get("subscription") != subscription_id:
                    continue
                yield message["result"]
        finally:
            try:
                await self._w3.eth.unsubscribe(subscription_id)
            except CONNECTION_ERRORS as exc:
                LOGGER.warning("Failed to unsubscribe %s on %s: %s", subscription_id, self.url, exc)

    def __repr__(self) -> str:
        return f"RpcEndpoint({self.url!r})"


async def _probe(endpoint: RpcEndpoint, expected_chain_id: int) -> None:
    await endpoint.connect()
    if not await endpoint.is_reachable():
        raise EndpointUnreachable(f"Connection failed: {endpoint.url}")
    chain_id = await endpoint.network_id()
    if chain_id != expected_chain_id:
        raise EndpointWrongNetwork(
            f"Not connected to chain {expected_chain_id} (endpoint reports {chain_id})"
        )


async def validate_endpoint(
    url: str,
    expected_chain_id: int,
    timeout: float = 5.0,
    endpoint: Optional[RpcEndpoint] = None,
) -> RpcEndpoint:
    """Connect to ``url`` and verify its chain id within ``timeout`` seconds."""
    endpoint = endpoint or RpcEndpoint(url)
    try:
        await asyncio.wait_for(_probe(endpoint, expected_chain_id), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await _close_quietly(endpoint)
        raise EndpointUnreachable(f"Connection timeout: {url}") from exc
    except (EndpointUnreachable, EndpointWrongNetwork):
        await _close_quietly(endpoint)
        raise
    except CONNECTION_ERRORS as exc:
        await _close_quietly(endpoint)
        raise EndpointUnreachable(f"Connection failed: {url}") from exc

    LOGGER.info("Validated endpoint %s on chain %d", url, expected_chain_id)
    return endpoint


async def _close_quietly(endpoint: RpcEndpoint) -> None:
    try:
        await endpoint.close()
    except CONNECTION_ERRORS as exc:
        LOGGER.debug("Ignoring close failure for %s: %s", endpoint.url, exc)


def check_endpoint_urls(urls: Sequence[str]) -> List[str]:
    """Reject empty lists, blank entries and a non-WebSocket primary."""
    cleaned = [url.strip() if url else "" for url in urls]
    if not cleaned:
        raise InvalidEndpointConfiguration("At least one endpoint is required")
    if any(not url for url in cleaned):
        raise InvalidEndpointConfiguration("Please fill in all endpoint fields")
    if not is_websocket_url(cleaned[0]):
        raise InvalidEndpointConfiguration(
            "Invalid WebSocket URL format. The first endpoint must start with ws:// or wss://"
        )
    return cleaned


async def connect_endpoints(
    urls: Sequence[str],
    expected_chain_id: int,
    timeout: float = 5.0,
) -> List[RpcEndpoint]:
    """Validate every endpoint; either all connect or none are kept."""
    cleaned = check_endpoint_urls(urls)

    connected: List[RpcEndpoint] = []
    failures: List[Exception] = []
    for url in cleaned:
        try:
            connected.append(await validate_endpoint(url, expected_chain_id, timeout))
        except (EndpointUnreachable, EndpointWrongNetwork) as exc:
            LOGGER.warning("Endpoint %s rejected: %s", url, exc)
            failures.append(exc)

    if failures:
        for endpoint in connected:
            await _close_quietly(endpoint)
        messages = list(dict.fromkeys(str(exc) for exc in failures))
        error_type = (
            EndpointWrongNetwork
            if all(isinstance(exc, EndpointWrongNetwork) for exc in failures)
            else EndpointUnreachable
        )
        raise error_type("\n".join(messages))

    return connected


__all__ = [
    "RpcEndpoint",
    "validate_endpoint",
    "connect_endpoints",
    "check_endpoint_urls",
    "is_websocket_url",
]
