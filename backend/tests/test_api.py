from dataclasses import replace

import pytest

from fundflow.api import endpoints as endpoints_module
from fundflow.api import trace as trace_module
from fundflow.config import TokenSpec, load_settings
from fundflow.engine import session as session_module
from fundflow.engine.session import TraceSession
from fundflow.errors import EndpointUnreachable, EndpointWrongNetwork

ETH = 10 ** 18
A = '0x' + 'a' * 40
B = '0x' + 'b' * 40
C = '0x' + 'c' * 40
SEED_TX = '0x' + '5' * 64
ZERO_TX = '0x' + '7' * 64


class FakeChain:
    def __init__(self, url):
        self.url = url

    async def get_latest_block_number(self):
        return 110

    async def get_block(self, number, full_transactions=False):
        return {'number': number, 'timestamp': 1700000000 + number, 'transactions': []}

    async def get_transaction(self, tx_hash):
        if tx_hash == SEED_TX:
            return {'blockNumber': 100, 'from': A, 'to': B, 'value': 5 * ETH}
        if tx_hash == ZERO_TX:
            return {'blockNumber': 101, 'from': A, 'to': B, 'value': 0}
        return None

    async def close(self):
        return None


class DummyWatchlist:
    def notify(self, address, summary):
        return None


def make_settings():
    return replace(
        load_settings(),
        rpc_endpoints=(),
        tokens={'ETH': TokenSpec('ETH', None, 18, 5, 300)},
    )


def install_session(monkeypatch, connector=None):
    async def fake_connector(urls, chain_id, timeout):
        return [FakeChain(url) for url in urls]

    session = TraceSession(
        settings=make_settings(),
        watchlist=DummyWatchlist(),
        connector=connector or fake_connector,
    )
    monkeypatch.setattr(endpoints_module, 'get_session', lambda: session)
    monkeypatch.setattr(trace_module, 'get_session', lambda: session)
    # Scheduling is exercised in test_session; keep requests free of background tasks.
    monkeypatch.setattr(session_module.DispatchLoop, 'start', lambda self: None)
    return session


def test_connect_workers(client, monkeypatch):
    install_session(monkeypatch)

    response = client.post('/endpoints', json={'urls': ['wss://primary', 'https://secondary']})

    assert response.status_code == 200
    workers = response.json()['workers']
    assert [worker['url'] for worker in workers] == ['wss://primary', 'https://secondary']
    assert client.get('/endpoints').json()['workers'][1]['cooldown'] == 0.0


@pytest.mark.parametrize(
    'error, status_code',
    [
        (EndpointUnreachable('Connection timeout: wss://slow'), 502),
        (EndpointWrongNetwork('Not connected to chain 11155111'), 400),
    ],
)
def test_connect_errors_are_mapped(client, monkeypatch, error, status_code):
    async def failing_connector(urls, chain_id, timeout):
        raise error

    install_session(monkeypatch, connector=failing_connector)

    response = client.post('/endpoints', json={'urls': ['wss://slow']})

    assert response.status_code == status_code
    assert response.json()['detail'] == str(error)


def test_invalid_endpoint_list_is_rejected(client, monkeypatch):
    session = install_session(monkeypatch)
    session._connector = session_module.connect_endpoints

    response = client.post('/endpoints', json={'urls': ['https://not-a-socket']})

    assert response.status_code == 400
    assert 'WebSocket' in response.json()['detail']


def test_seed_errors(client, monkeypatch):
    install_session(monkeypatch)

    assert client.post('/trace', json={'txHash': SEED_TX}).status_code == 409

    client.post('/endpoints', json={'urls': ['wss://primary']})
    assert client.post('/trace', json={'txHash': '0x123'}).status_code == 400
    assert client.post('/trace', json={'txHash': SEED_TX, 'token': 'DOGE'}).status_code == 400
    assert client.post('/trace', json={'txHash': '0x' + '0' * 64}).status_code == 404

    response = client.post('/trace', json={'txHash': ZERO_TX})
    assert response.status_code == 422
    assert response.json()['detail'] == 'ETH transfer not found.'
    assert client.get('/trace/status').json()['status'] == 'initial'


def test_trace_lifecycle(client, monkeypatch):
    install_session(monkeypatch)
    client.post('/endpoints', json={'urls': ['wss://primary', 'https://secondary']})

    response = client.post('/trace', json={'tx_hash': SEED_TX, 'token': 'eth'})
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'awaiting_confirmation'
    assert body['seed']['amount'] == '5 ETH'
    assert body['seed']['timestamp'] == 1700000100

    response = client.post('/trace/confirm', json={'until_block': 500})
    assert response.status_code == 200
    body = response.json()
    assert body == {'status': 'processing', 'upper_bound': 110, 'cache_boundary': 100, 'queued_jobs': 3}

    assert client.post('/trace/confirm', json={}).status_code == 409
    assert client.post('/trace/live').status_code == 409
    assert client.post('/trace/reset').status_code == 409

    graph = client.get('/trace/graph').json()
    assert [node['id'] for node in graph['nodes']] == [A, B]
    assert graph['nodes'][0]['connections'][0]['recipient'] == B

    transfers = client.get('/trace/transfers').json()['transfers']
    assert [(t['sender'], t['recipient'], t['amount']) for t in transfers] == [(A, B, '5 ETH')]

    profile = client.get('/trace/address/0x' + B[2:].upper()).json()
    assert profile['net_traced_balance'] == 5 * ETH
    assert profile['net_traced_amount'] == '5 ETH'
    assert client.get(f'/trace/address/{C}').status_code == 404
    assert client.get('/trace/address/not-an-address').status_code == 400

    status = client.get('/trace/status').json()
    assert status['status'] == 'processing'
    assert status['queued_jobs'] == 3
    assert status['addresses'] == 2
    assert len(status['workers']) == 2

    assert client.post('/trace/terminate').json()['status'] == 'completed'
    assert client.post('/trace/terminate').status_code == 409

    status = client.post('/trace/reset').json()
    assert status['status'] == 'initial'
    assert status['queued_jobs'] == 0
    assert len(status['workers']) == 2
    assert client.get('/trace/graph').json()['nodes'] == []


def test_live_decline_requires_drained_backlog(client, monkeypatch):
    install_session(monkeypatch)
    assert client.post('/trace/live/decline').status_code == 409
