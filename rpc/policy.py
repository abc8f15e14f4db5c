"""Retry, backoff and endpoint-rotation policy for the provider pool.

Nothing in this module performs I/O. The pool asks :func:`next_action` what
to do after each failed attempt and gets back one of three answers:

- ``Retry(delay)`` - sleep ``delay`` seconds and try the same endpoint again
- ``Rotate()`` - move to the next endpoint in priority order
- ``Fail(reason)`` - stop and surface the error to the caller
"""
import asyncio
import random
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union

import requests

from .exceptions import ProviderError

# HTTP statuses that indicate an overloaded or rate limited endpoint
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})

# JSON-RPC error codes used by public nodes for throttling
RETRYABLE_RPC_CODES = frozenset({429, -32005, -32090})

PROVIDER_ERROR_MARKERS = (
    'rate limit',
    'too many requests',
    'limit exceeded',
    'econnrefused',
    'econnreset',
    'etimedout',
    'connection refused',
    'connection reset',
    'connection aborted',
    'socket hang up',
    'network error',
    'timed out',
    'timeout',
    'capacity',
    'unavailable',
    'bad gateway',
)

_STATUS_PATTERN = re.compile(r'\b(429|502|503|504)\b')


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class Rotate:
    pass


@dataclass(frozen=True)
class Fail:
    reason: str


Action = Union[Retry, Rotate, Fail]


def _error_details(error: BaseException) -> Tuple[Optional[Any], str]:
    """Pull a JSON-RPC error code and message out of a web3/requests error."""
    code = getattr(error, 'code', None)
    message = str(error)

    # web3 v6 raises ValueError({'code': ..., 'message': ...})
    if error.args and isinstance(error.args[0], dict):
        payload = error.args[0]
        code = payload.get('code', code)
        message = str(payload.get('message', message))

    # web3 v7 keeps the raw response on Web3RPCError
    rpc_response = getattr(error, 'rpc_response', None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get('error'), dict):
        code = rpc_response['error'].get('code', code)
        message = str(rpc_response['error'].get('message', message))

    return code, message


def is_provider_error(error: BaseException) -> bool:
    """Check whether an error is a network/rate limit failure worth retrying.

    Anything else (ABI decoding problems, reverted calls, bad arguments) is a
    logic error and must not be retried or trigger a rotation.
    """
    if error is None:
        return False

    if isinstance(error, ProviderError):
        return True

    if isinstance(error, requests.exceptions.HTTPError):
        response = error.response
        if response is not None:
            return response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    code, message = _error_details(error)
    if code in RETRYABLE_RPC_CODES or code in RETRYABLE_STATUS_CODES:
        return True
    if isinstance(code, str) and code.upper() in ('NETWORK_ERROR', 'TIMEOUT', 'SERVER_ERROR'):
        return True

    text = message.lower()
    if any(marker in text for marker in PROVIDER_ERROR_MARKERS):
        return True
    return bool(_STATUS_PATTERN.search(text))


def retry_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 0.25,
    rand: Callable[[], float] = random.random
) -> float:
    """Exponential backoff capped at ``max_delay`` with +/- ``jitter`` spread.

    Args:
        attempt: Zero-based attempt number on the current endpoint
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound before jitter is applied
        jitter: Fraction of the delay to spread randomly in both directions
        rand: Source of uniform [0, 1) numbers

    Returns:
        Delay in seconds, never negative
    """
    delay = min(initial_delay * (2 ** attempt), max_delay)
    spread = delay * jitter * (rand() * 2 - 1)
    return max(0.0, delay + spread)


def next_action(
    attempt: int,
    total_attempts: int,
    max_retries: int,
    max_total_attempts: int,
    since_last_switch: Optional[float],
    min_switch_interval: float,
    provider_error: bool = True,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    rand: Callable[[], float] = random.random
) -> Action:
    """Decide what the pool does after a failed attempt.

    Args:
        attempt: Zero-based attempt number on the active endpoint that just failed
        total_attempts: Attempts made so far across all endpoints, including this one
        max_retries: Attempts allowed per endpoint
        max_total_attempts: Attempts allowed overall (``max_retries * endpoints``)
        since_last_switch: Seconds since the last rotation, ``None`` if never rotated
        min_switch_interval: Cooldown between two rotations, in seconds
        provider_error: Result of :func:`is_provider_error` for the failure

    Returns:
        Retry, Rotate or Fail
    """
    if not provider_error:
        return Fail('non-provider error')

    if total_attempts >= max_total_attempts:
        return Fail('all endpoints exhausted')

    if attempt < max_retries - 1:
        return Retry(retry_delay(attempt, initial_delay, max_delay, rand=rand))

    if since_last_switch is None or since_last_switch >= min_switch_interval:
        return Rotate()

    return Fail('endpoint rotation on cooldown')
