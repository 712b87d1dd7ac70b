import asyncio
import json

import aiohttp
import pytest
from aiohttp import WSMessage, WSMsgType
from unittest.mock import AsyncMock

from analysis.models import Trigger
from services.block_subscriber import BlockSubscriber
from services.errors import StreamDisconnected


def _text(payload) -> WSMessage:
    return WSMessage(WSMsgType.TEXT, json.dumps(payload), None)


def _ack(subscription_id='0xsub'):
    return _text({'jsonrpc': '2.0', 'id': 1, 'result': subscription_id})


def _header(number: int):
    return _text({
        'jsonrpc': '2.0',
        'method': 'eth_subscription',
        'params': {'subscription': '0xsub', 'result': {'number': hex(number), 'hash': f'0x{number:064x}'}},
    })


class FakeWebSocket:
    def __init__(self, messages):
        self._messages = list(messages)
        self.sent = []

    async def send_json(self, payload):
        self.sent.append(payload)

    async def receive(self):
        await asyncio.sleep(0)
        if not self._messages:
            return WSMessage(WSMsgType.CLOSED, None, None)
        return self._messages.pop(0)

    def exception(self):
        return None


class FakeConnection:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.connect_count = 0

    def ws_connect(self, url, heartbeat=None):
        self.connect_count += 1
        if not self._outcomes:
            return FakeConnection(aiohttp.ClientConnectionError('refused'))
        return FakeConnection(self._outcomes.pop(0))


def _subscriber(session, on_trigger, max_attempts=1):
    return BlockSubscriber(
        session,
        ws_url='wss://mock-node',
        on_trigger=on_trigger,
        reconnect_delay=0,
        max_reconnect_attempts=max_attempts,
    )


def _dispatched_blocks(on_trigger):
    return [c.args[0].block_number for c in on_trigger.call_args_list]


@pytest.mark.asyncio
async def test_each_header_triggers_one_cycle():
    ws = FakeWebSocket([_ack(), _header(10), _header(11)])
    on_trigger = AsyncMock()
    subscriber = _subscriber(FakeSession([ws]), on_trigger, max_attempts=0)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()
    await subscriber.aclose()

    assert _dispatched_blocks(on_trigger) == [10, 11]
    assert ws.sent[0]['method'] == 'eth_subscribe'
    assert ws.sent[0]['params'] == ['newHeads']
    first_trigger = on_trigger.call_args_list[0].args[0]
    assert isinstance(first_trigger, Trigger)
    assert first_trigger.block_hash == f'0x{10:064x}'


@pytest.mark.asyncio
async def test_reconnect_resumes_without_duplicates_or_gaps():
    first = FakeWebSocket([_ack('0xa'), _header(1), _header(2)])
    # the node replays the latest header after a reconnect
    second = FakeWebSocket([_ack('0xb'), _header(2), _header(3)])
    on_trigger = AsyncMock()
    session = FakeSession([first, second])
    subscriber = _subscriber(session, on_trigger, max_attempts=1)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()
    await subscriber.aclose()

    assert _dispatched_blocks(on_trigger) == [1, 2, 3]
    assert session.connect_count == 3
    assert subscriber.last_block == 3


@pytest.mark.asyncio
async def test_transient_connect_failure_is_retried():
    ws = FakeWebSocket([_ack(), _header(5)])
    on_trigger = AsyncMock()
    session = FakeSession([aiohttp.ClientConnectionError('dns'), ws])
    subscriber = _subscriber(session, on_trigger, max_attempts=1)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()
    await subscriber.aclose()

    assert _dispatched_blocks(on_trigger) == [5]


@pytest.mark.asyncio
async def test_gives_up_after_consecutive_failures():
    on_trigger = AsyncMock()
    session = FakeSession([])
    subscriber = _subscriber(session, on_trigger, max_attempts=3)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()

    assert session.connect_count == 4
    on_trigger.assert_not_called()


@pytest.mark.asyncio
async def test_subscription_error_counts_as_failure():
    rejected = FakeWebSocket([_text({'jsonrpc': '2.0', 'id': 1, 'error': {'code': -32601, 'message': 'not supported'}})])
    on_trigger = AsyncMock()
    session = FakeSession([rejected])
    subscriber = _subscriber(session, on_trigger, max_attempts=0)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()

    assert session.connect_count == 1
    on_trigger.assert_not_called()


@pytest.mark.asyncio
async def test_malformed_messages_are_ignored():
    ws = FakeWebSocket([
        _ack(),
        WSMessage(WSMsgType.TEXT, 'not json', None),
        _text({'jsonrpc': '2.0', 'method': 'eth_subscription', 'params': {'result': {'number': 'zz'}}}),
        _text({'jsonrpc': '2.0', 'method': 'eth_subscription', 'params': ['0xsub', {'number': '0x6'}]}),
        _header(7),
    ])
    on_trigger = AsyncMock()
    subscriber = _subscriber(FakeSession([ws]), on_trigger, max_attempts=0)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()
    await subscriber.aclose()

    assert _dispatched_blocks(on_trigger) == [7]



class ResetWebSocket(FakeWebSocket):
    async def send_json(self, payload):
        raise ConnectionResetError('Cannot write to closing transport')


@pytest.mark.asyncio
async def test_connection_reset_while_subscribing_reconnects():
    ws = FakeWebSocket([_ack(), _header(9)])
    on_trigger = AsyncMock()
    session = FakeSession([ResetWebSocket([]), ws])
    subscriber = _subscriber(session, on_trigger, max_attempts=1)

    with pytest.raises(StreamDisconnected):
        await subscriber.run()
    await subscriber.aclose()

    assert session.connect_count == 3
    assert _dispatched_blocks(on_trigger) == [9]

@pytest.mark.asyncio
async def test_slow_cycles_overlap():
    release = asyncio.Event()
    started = []

    async def slow_cycle(trigger):
        started.append(trigger.block_number)
        await release.wait()

    subscriber = _subscriber(FakeSession([]), slow_cycle)
    subscriber.dispatch(Trigger(block_number=1))
    subscriber.dispatch(Trigger(block_number=2))
    await asyncio.sleep(0)

    assert started == [1, 2]
    release.set()
    await subscriber.aclose()


@pytest.mark.asyncio
async def test_older_block_is_not_dispatched():
    on_trigger = AsyncMock()
    subscriber = _subscriber(FakeSession([]), on_trigger)

    assert subscriber.dispatch(Trigger(block_number=9)) is not None
    assert subscriber.dispatch(Trigger(block_number=8)) is None
    assert subscriber.dispatch(Trigger(block_number=9)) is None
    await subscriber.aclose()
