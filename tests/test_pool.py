"""Tests for the RPC provider pool failover behaviour."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from rpc import FailoverExhaustedError, NoProviderError, ProviderPool

ENDPOINTS = ['https://a.example', 'https://b.example', 'https://c.example']


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def clock():
    return Clock()


def make_pool(sleeps, clock, endpoints=ENDPOINTS, **kwargs):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return ProviderPool(
        endpoints,
        provider_factory=lambda url: SimpleNamespace(url=url),
        sleep=fake_sleep,
        clock=clock,
        **kwargs
    )


def rate_limited():
    return ValueError({'code': 429, 'message': 'Too Many Requests'})


def test_requires_endpoints():
    with pytest.raises(NoProviderError):
        ProviderPool([])
    with pytest.raises(NoProviderError):
        ProviderPool(['', '  '])


@pytest.mark.asyncio
async def test_execute_returns_result(sleeps, clock):
    pool = make_pool(sleeps, clock)
    result = await pool.execute(lambda w3: w3.url, 'whoami')
    assert result == 'https://a.example'
    assert pool.current_index == 0
    assert sleeps == []


@pytest.mark.asyncio
async def test_transient_error_is_retried_on_same_endpoint(sleeps, clock):
    pool = make_pool(sleeps, clock)
    calls = []

    def flaky(w3):
        calls.append(w3.url)
        if len(calls) < 3:
            raise requests.exceptions.ConnectionError('Connection reset')
        return 'ok'

    assert await pool.execute(flaky) == 'ok'
    assert calls == ['https://a.example'] * 3
    assert len(sleeps) == 2
    assert pool.current_index == 0


@pytest.mark.asyncio
async def test_three_rate_limits_rotate_to_next_endpoint(sleeps, clock):
    pool = make_pool(sleeps, clock)

    def op(w3):
        if w3.url == 'https://a.example':
            raise rate_limited()
        return w3.url

    result = await pool.execute(op, 'getBlockNumber')

    assert result == 'https://b.example'
    assert pool.current_index == 1
    assert pool.current_endpoint == 'https://b.example'
    assert pool.endpoint_count == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_non_provider_error_propagates_without_retry(sleeps, clock):
    pool = make_pool(sleeps, clock)
    calls = []

    def op(w3):
        calls.append(w3.url)
        raise KeyError('args')

    with pytest.raises(KeyError):
        await pool.execute(op)

    assert len(calls) == 1
    assert sleeps == []
    assert pool.current_index == 0


@pytest.mark.asyncio
async def test_exhausted_failover_raises_with_last_error(sleeps, clock, caplog):
    pool = make_pool(sleeps, clock, endpoints=ENDPOINTS[:2])
    calls = []

    def op(w3):
        calls.append(w3.url)
        clock.now += 100
        raise requests.exceptions.ConnectionError(f'refused #{len(calls)}')

    with pytest.raises(FailoverExhaustedError) as exc_info:
        await pool.execute(op, 'queryEvents(1-10)')

    assert len(calls) == 6
    assert calls[:3] == ['https://a.example'] * 3
    assert calls[3:] == ['https://b.example'] * 3
    assert exc_info.value.attempts == 6
    assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)
    assert 'refused #6' in str(exc_info.value.__cause__)
    assert exc_info.value.last_error is exc_info.value.__cause__
    assert 'refused #6' in str(exc_info.value)
    assert 'queryEvents(1-10) failed after 6 attempts' in caplog.text
    assert 'refused #6' in caplog.text


@pytest.mark.asyncio
async def test_single_endpoint_fails_after_max_retries(sleeps, clock):
    pool = make_pool(sleeps, clock, endpoints=ENDPOINTS[:1])

    def op(w3):
        raise rate_limited()

    with pytest.raises(FailoverExhaustedError):
        await pool.execute(op)
    assert len(sleeps) == 2
    assert pool.current_index == 0


@pytest.mark.asyncio
async def test_rotation_refused_within_cooldown(sleeps, clock):
    pool = make_pool(sleeps, clock)
    pool.force_switch()
    assert pool.current_index == 1

    def op(w3):
        raise rate_limited()

    with pytest.raises(FailoverExhaustedError) as exc_info:
        await pool.execute(op)

    assert pool.current_index == 1
    assert 'cooldown' in exc_info.value.reason


@pytest.mark.asyncio
async def test_rotation_allowed_after_cooldown(sleeps, clock):
    pool = make_pool(sleeps, clock)
    pool.force_switch()
    clock.now += 61

    def op(w3):
        if w3.url == 'https://b.example':
            raise rate_limited()
        return w3.url

    assert await pool.execute(op) == 'https://c.example'
    assert pool.current_index == 2


def test_switch_provider_respects_cooldown(sleeps, clock):
    pool = make_pool(sleeps, clock)
    assert pool.switch_provider() is True
    assert pool.switch_provider() is False
    assert pool.current_index == 1

    clock.now += 60
    assert pool.switch_provider() is True
    assert pool.current_index == 2

    assert pool.switch_provider() is False
    pool.force_switch()
    assert pool.current_index == 0


def test_pools_do_not_share_state(sleeps, clock):
    first = make_pool(sleeps, clock)
    second = make_pool(sleeps, clock)
    first.force_switch()
    assert first.current_index == 1
    assert second.current_index == 0


def test_stats(sleeps, clock):
    pool = make_pool(sleeps, clock)
    stats = pool.stats()
    assert stats['current_index'] == 0
    assert stats['total_endpoints'] == 3
    assert stats['seconds_since_last_switch'] is None

    pool.force_switch()
    clock.now += 5
    assert pool.stats()['seconds_since_last_switch'] == 5.0


@pytest.mark.asyncio
async def test_provider_creation_failure(sleeps):
    def broken_factory(url):
        raise RuntimeError('bad url')

    pool = ProviderPool(ENDPOINTS, provider_factory=broken_factory)
    with pytest.raises(NoProviderError):
        await pool.execute(lambda w3: None)


@pytest.mark.asyncio
async def test_chain_calls_go_through_pool(sleeps, clock):
    w3 = MagicMock()
    w3.eth.block_number = 1234
    w3.eth.get_block.return_value = {'timestamp': 99}
    w3.eth.get_logs.return_value = ['log']
    w3.eth.contract.return_value.functions.tokenURI.return_value.call.return_value = 'ipfs://cell'

    async def fake_sleep(delay):
        sleeps.append(delay)

    pool = ProviderPool(ENDPOINTS, provider_factory=lambda url: w3, sleep=fake_sleep, clock=clock)

    assert await pool.get_block_number() == 1234
    assert (await pool.get_block(7))['timestamp'] == 99
    assert await pool.get_logs('0xabc', 1, 10) == ['log']
    w3.eth.get_logs.assert_called_once_with({'address': '0xabc', 'fromBlock': 1, 'toBlock': 10})
    assert await pool.call_contract('0xabc', [], 'tokenURI', 510) == 'ipfs://cell'
    w3.eth.contract.return_value.functions.tokenURI.assert_called_once_with(510)


def test_from_settings_appends_alchemy_url(monkeypatch):
    monkeypatch.setenv('ALCHEMY_URL', 'https://nova.alchemy.example/v2/key')
    pool = ProviderPool.from_settings({
        'rpc_endpoints': ENDPOINTS[:2],
        'max_retries': 5,
        'min_switch_interval': 10.0,
    })
    assert pool.endpoints == ENDPOINTS[:2] + ['https://nova.alchemy.example/v2/key']
    assert pool.max_retries == 5
    assert pool.min_switch_interval == 10.0
