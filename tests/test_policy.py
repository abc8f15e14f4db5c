"""Tests for the retry and rotation policy."""

import pytest
import requests

from rpc import ProviderError
from rpc.policy import Fail, Retry, Rotate, is_provider_error, next_action, retry_delay


def _http_error(status):
    response = requests.Response()
    response.status_code = status
    return requests.exceptions.HTTPError(f"{status} error", response=response)


@pytest.mark.parametrize('error', [
    ValueError({'code': 429, 'message': 'Too Many Requests'}),
    ValueError({'code': -32005, 'message': 'limit exceeded'}),
    Exception('429 Client Error: Too Many Requests for url'),
    Exception('You have exceeded the rate limit'),
    requests.exceptions.ConnectionError('Connection refused'),
    requests.exceptions.ReadTimeout('Read timed out'),
    ConnectionResetError('connection reset by peer'),
    TimeoutError(),
    ProviderError('upstream flaky'),
    Exception('service temporarily unavailable'),
    Exception('no capacity available'),
])
def test_provider_errors_are_retryable(error):
    assert is_provider_error(error)


@pytest.mark.parametrize('status', [429, 502, 503, 504])
def test_retryable_http_statuses(status):
    assert is_provider_error(_http_error(status))


@pytest.mark.parametrize('error', [
    ValueError('execution reverted: ERC721: invalid token ID'),
    KeyError('args'),
    TypeError('unsupported operand'),
    _http_error(400),
    Exception('header not found for block 5029'),
])
def test_logic_errors_are_not_retryable(error):
    assert not is_provider_error(error)


def test_retry_delay_grows_exponentially_without_jitter():
    delays = [retry_delay(attempt, 1.0, 30.0, rand=lambda: 0.5) for attempt in range(6)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


def test_retry_delay_jitter_bounds():
    assert retry_delay(2, 1.0, 30.0, rand=lambda: 0.0) == pytest.approx(3.0)
    assert retry_delay(2, 1.0, 30.0, rand=lambda: 0.999999) == pytest.approx(5.0, rel=1e-4)


def test_retry_before_last_attempt():
    action = next_action(0, 1, 3, 9, None, 60.0, rand=lambda: 0.5)
    assert action == Retry(1.0)

    action = next_action(1, 2, 3, 9, None, 60.0, rand=lambda: 0.5)
    assert action == Retry(2.0)


def test_rotate_after_retries_when_never_switched():
    assert next_action(2, 3, 3, 9, None, 60.0) == Rotate()


def test_rotate_after_cooldown_elapsed():
    assert next_action(2, 3, 3, 9, 60.0, 60.0) == Rotate()


def test_rotation_refused_during_cooldown():
    action = next_action(2, 3, 3, 9, 10.0, 60.0)
    assert isinstance(action, Fail)
    assert 'cooldown' in action.reason


def test_fail_when_total_attempts_exhausted():
    action = next_action(2, 9, 3, 9, None, 60.0)
    assert isinstance(action, Fail)
    assert 'exhausted' in action.reason


def test_fail_immediately_on_non_provider_error():
    action = next_action(0, 1, 3, 9, None, 60.0, provider_error=False)
    assert isinstance(action, Fail)
