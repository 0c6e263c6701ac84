import asyncio
from dataclasses import replace

import pytest

from fundflow.config import TokenSpec, load_settings
from fundflow.engine.session import SessionStatus, TraceSession
from fundflow.errors import SessionStateError, TransactionNotFound

ETH = 10 ** 18
A = '0x' + 'a' * 40
B = '0x' + 'b' * 40
C = '0x' + 'c' * 40
D = '0x' + 'd' * 40
E = '0x' + 'e' * 40
X = '0x' + '9' * 40
SEED_TX = '0x' + '5' * 64


def tx(sender, recipient, value, marker):
    return {'hash': '0x' + marker * 64, 'from': sender, 'to': recipient, 'value': value}


def build_blocks():
    blocks = {n: {'number': n, 'timestamp': 1700000000 + n, 'transactions': []} for n in range(100, 112)}
    blocks[100]['transactions'] = [tx(A, B, 5 * ETH, '5')]
    blocks[103]['transactions'] = [tx(X, B, 1, '6')]
    blocks[105]['transactions'] = [tx(B, C, 2 * ETH, '7')]
    blocks[108]['transactions'] = [tx(C, D, ETH, '8')]
    blocks[111]['transactions'] = [tx(D, E, 4 * ETH // 10, '1'), tx(X, A, 3, '2')]
    return blocks


class FakeChain:
    def __init__(self, url, blocks, latest=110):
        self.url = url
        self.blocks = blocks
        self.latest = latest
        self.headers = asyncio.Queue()
        self.closed = False
        self.gate = None

    async def get_latest_block_number(self):
        return self.latest

    async def get_block(self, number, full_transactions=False):
        gate = self.gate
        if gate is not None:
            await gate.wait()
        return self.blocks.get(number)

    async def get_transaction(self, tx_hash):
        if tx_hash != SEED_TX:
            return None
        return {'blockNumber': 100, 'from': A, 'to': B, 'value': 5 * ETH}

    async def subscribe_new_blocks(self):
        while True:
            header = await self.headers.get()
            if isinstance(header, Exception):
                raise header
            yield header

    async def close(self):
        self.closed = True


class DummyWatchlist:
    def __init__(self):
        self.calls = []

    def notify(self, address, summary):
        self.calls.append((address, summary))


def make_settings(**overrides):
    values = {
        'tick_interval': 0.01,
        'rpc_endpoints': (),
        'tokens': {'ETH': TokenSpec('ETH', None, 18, 5, 300)},
    }
    values.update(overrides)
    return replace(load_settings(), **values)


async def wait_until(predicate, timeout=5.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError('condition not reached in time')


@pytest.fixture()
def chains():
    blocks = build_blocks()
    return [FakeChain('wss://primary', blocks), FakeChain('https://secondary', blocks)]


@pytest.fixture()
def session(chains):
    async def connector(urls, chain_id, timeout):
        return chains

    return TraceSession(settings=make_settings(), watchlist=DummyWatchlist(), connector=connector)


@pytest.mark.asyncio
async def test_full_trace_backfill_then_live(session, chains):
    await session.connect(['wss://primary', 'https://secondary'])
    seed = await session.submit_seed(SEED_TX, 'eth')
    assert (seed.sender, seed.recipient, seed.timestamp) == (A, B, 1700000100)
    assert session.status is SessionStatus.AWAITING_CONFIRMATION

    assert await session.confirm(until_block=10_000) == 110
    assert session.status is SessionStatus.PROCESSING
    assert session.cache.boundary == 100

    await wait_until(lambda: session.status is SessionStatus.AWAITING_LIVE_CONFIRMATION)

    ledger = session.ledger
    assert ledger.get(A).net_traced_balance == 0
    assert ledger.get(B).net_traced_balance == 3 * ETH
    assert ledger.get(C).net_traced_balance == ETH
    assert ledger.get(D).net_traced_balance == ETH
    assert X not in ledger

    assert [(t.sender, t.recipient) for t in session.transfers()] == [(A, B), (B, C), (C, D)]
    assert [node['id'] for node in session.graph()] == [A, B, C, D]

    profile = session.address_profile(B)
    assert profile['net_traced_amount'] == '3 ETH'
    assert profile['out_count'] == 1

    session.start_live()
    assert session.status is SessionStatus.LIVE_TRACKING
    chains[0].headers.put_nowait({'number': 111})
    await wait_until(lambda: session.live.applied == 1)

    assert ledger.get(E).net_traced_balance == 4 * ETH // 10
    assert ledger.get(E).earliest_scheduled_block == 111
    assert ledger.get(D).net_traced_balance == 6 * ETH // 10
    assert [node['id'] for node in session.graph()][-1] == E
    address, summary = session.watchlist.calls[0]
    assert address == E
    assert summary['amount'] == '0.4 ETH'

    session.terminate()
    await asyncio.sleep(0.05)
    assert session.status is SessionStatus.COMPLETED

    session.reset()
    assert session.status is SessionStatus.INITIAL
    assert len(session.workers) == 2
    assert session.ledger is None
    assert session.graph() == []


@pytest.mark.asyncio
async def test_failed_seed_lookup_returns_to_initial(session):
    await session.connect(['wss://primary'])

    with pytest.raises(TransactionNotFound):
        await session.submit_seed('0x' + '0' * 64, 'ETH')

    assert session.status is SessionStatus.INITIAL
    with pytest.raises(ValueError):
        await session.submit_seed(SEED_TX, 'DOGE')


@pytest.mark.asyncio
async def test_operations_are_rejected_in_the_wrong_state(session):
    with pytest.raises(SessionStateError):
        await session.submit_seed(SEED_TX, 'ETH')

    await session.connect(['wss://primary'])
    with pytest.raises(SessionStateError):
        await session.confirm()
    with pytest.raises(SessionStateError):
        session.start_live()
    with pytest.raises(SessionStateError):
        session.terminate()


@pytest.mark.asyncio
async def test_terminate_during_backfill_clears_pending_jobs(chains):
    async def connector(urls, chain_id, timeout):
        return chains

    session = TraceSession(
        settings=make_settings(tick_interval=30.0), watchlist=DummyWatchlist(), connector=connector
    )
    await session.connect(['wss://primary'])
    await session.submit_seed(SEED_TX, 'ETH')
    await session.confirm()
    assert len(session.queues) == 3

    with pytest.raises(SessionStateError):
        session.reset()

    session.terminate()
    await asyncio.sleep(0)

    assert session.status is SessionStatus.COMPLETED
    assert len(session.queues) == 0
    assert [node['id'] for node in session.graph()] == [A, B]


@pytest.mark.asyncio
async def test_connect_falls_back_to_configured_endpoints(chains):
    requested = []

    async def connector(urls, chain_id, timeout):
        requested.append(list(urls))
        return chains

    session = TraceSession(
        settings=make_settings(rpc_endpoints=('wss://configured',)),
        watchlist=DummyWatchlist(),
        connector=connector,
    )
    await session.connect([])

    assert requested == [['wss://configured']]

    await session.close()
    assert all(chain.closed for chain in chains)
    assert session.workers == []


@pytest.mark.asyncio
async def test_fetch_left_over_from_a_reset_trace_is_ignored(chains):
    chain = chains[0]

    async def connector(urls, chain_id, timeout):
        return [chain]

    session = TraceSession(settings=make_settings(), watchlist=DummyWatchlist(), connector=connector)
    await session.connect(['wss://primary'])

    await session.submit_seed(SEED_TX, 'ETH')
    first_gate = chain.gate = asyncio.Event()
    await session.confirm()
    await wait_until(lambda: session.workers[0].active_job is not None)
    old_cache = session.cache
    session.terminate()
    session.reset()

    chain.gate = None
    await session.submit_seed(SEED_TX, 'ETH')
    second_gate = chain.gate = asyncio.Event()
    await session.confirm()
    await wait_until(lambda: session.workers[0].active_job is not None)

    first_gate.set()
    await wait_until(lambda: len(old_cache) == 5)
    await asyncio.sleep(0.05)
    assert session.status is SessionStatus.PROCESSING
    assert session.workers[0].active_job is not None
    assert len(session.cache) == 0

    second_gate.set()
    await wait_until(lambda: session.status is SessionStatus.AWAITING_LIVE_CONFIRMATION)

    assert len(session.queues) == 0
    assert session.ledger.get(D).net_traced_balance == ETH
    assert [(t.sender, t.recipient) for t in session.transfers()] == [(A, B), (B, C), (C, D)]


@pytest.mark.asyncio
async def test_dropped_live_subscription_completes_the_session(session, chains):
    await session.connect(['wss://primary', 'https://secondary'])
    await session.submit_seed(SEED_TX, 'ETH')
    await session.confirm()
    await wait_until(lambda: session.status is SessionStatus.AWAITING_LIVE_CONFIRMATION)

    session.start_live()
    chains[0].headers.put_nowait(ConnectionError('socket closed'))
    await wait_until(lambda: session.status is SessionStatus.COMPLETED)

    assert not session.live.running
    assert session.snapshot()['live_error'] == 'socket closed'
    with pytest.raises(SessionStateError):
        session.terminate()

    session.reset()
    assert session.snapshot()['live_error'] is None
