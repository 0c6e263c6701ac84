import asyncio

import pytest

from fundflow.errors import EndpointUnreachable, EndpointWrongNetwork, InvalidEndpointConfiguration
from fundflow.rpc import endpoint as endpoint_module
from fundflow.rpc.endpoint import check_endpoint_urls, connect_endpoints, validate_endpoint

SEPOLIA = 11155111


class DummyEndpoint:
    def __init__(self, url, chain_id=SEPOLIA, delay=0.0, reachable=True):
        self.url = url
        self.chain_id = chain_id
        self.delay = delay
        self.reachable = reachable
        self.closed = False

    async def connect(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def close(self):
        self.closed = True

    async def is_reachable(self):
        return self.reachable

    async def network_id(self):
        return self.chain_id


@pytest.mark.parametrize(
    'urls, message',
    [
        ([], 'At least one endpoint'),
        (['wss://node', '  '], 'fill in all endpoint fields'),
        (['https://node'], 'Invalid WebSocket URL format'),
    ],
)
def test_check_endpoint_urls_rejects_bad_lists(urls, message):
    with pytest.raises(InvalidEndpointConfiguration, match=message):
        check_endpoint_urls(urls)


def test_check_endpoint_urls_allows_http_secondaries():
    assert check_endpoint_urls([' wss://a ', 'https://b']) == ['wss://a', 'https://b']


@pytest.mark.asyncio
async def test_validate_endpoint_times_out():
    dummy = DummyEndpoint('wss://slow', delay=1.0)

    with pytest.raises(EndpointUnreachable, match='Connection timeout: wss://slow'):
        await validate_endpoint('wss://slow', SEPOLIA, timeout=0.05, endpoint=dummy)
    assert dummy.closed


@pytest.mark.asyncio
async def test_validate_endpoint_checks_chain_and_reachability():
    with pytest.raises(EndpointWrongNetwork):
        await validate_endpoint('wss://main', SEPOLIA, endpoint=DummyEndpoint('wss://main', chain_id=1))
    with pytest.raises(EndpointUnreachable):
        await validate_endpoint('wss://down', SEPOLIA, endpoint=DummyEndpoint('wss://down', reachable=False))

    ok = DummyEndpoint('wss://ok')
    assert await validate_endpoint('wss://ok', SEPOLIA, endpoint=ok) is ok


@pytest.mark.asyncio
async def test_connect_endpoints_is_all_or_nothing(monkeypatch):
    created = {}

    async def fake_validate(url, expected_chain_id, timeout=5.0, endpoint=None):
        if 'bad' in url:
            raise EndpointUnreachable(f'Connection timeout: {url}')
        if 'main' in url:
            raise EndpointWrongNetwork('Not connected to chain 11155111')
        created[url] = DummyEndpoint(url)
        return created[url]

    monkeypatch.setattr(endpoint_module, 'validate_endpoint', fake_validate)

    with pytest.raises(EndpointUnreachable) as excinfo:
        await connect_endpoints(['wss://good', 'https://bad1', 'https://main1', 'https://main2'], SEPOLIA)

    lines = str(excinfo.value).split('\n')
    assert lines == ['Connection timeout: https://bad1', 'Not connected to chain 11155111']
    assert created['wss://good'].closed

    with pytest.raises(EndpointWrongNetwork):
        await connect_endpoints(['wss://main'], SEPOLIA)

    endpoints = await connect_endpoints(['wss://good', 'https://good2'], SEPOLIA)
    assert [endpoint.url for endpoint in endpoints] == ['wss://good', 'https://good2']
