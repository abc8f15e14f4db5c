"""Prioritized pool of JSON-RPC endpoints with retry and failover.

Every chain call the indexer makes goes through :meth:`ProviderPool.execute`,
which retries transient provider failures with exponential backoff and
rotates to the next endpoint once the active one keeps failing.
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from web3 import Web3

from .exceptions import FailoverExhaustedError, NoProviderError
from .policy import Retry, Rotate, is_provider_error, next_action

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = [
    'https://nova.arbitrum.io/rpc',
    'https://arbitrum-nova.drpc.org',
    'https://arbitrum-nova.public.blastapi.io',
    'https://rpc.ankr.com/arbitrumnova',
]


@dataclass
class ProviderCursor:
    """Which endpoint is active and when the pool last rotated."""
    active_index: int = 0
    last_switch: Optional[float] = None


def _mask_url(url: str) -> str:
    # Hosted endpoints carry API keys in the path
    return url if len(url) <= 50 else f"{url[:50]}..."


class ProviderPool:
    """Failover wrapper around a list of web3 HTTP endpoints.

    Each pool owns its own cursor, so independent pools never interfere.
    Providers are created lazily for the active endpoint only.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
        min_switch_interval: float = 60.0,
        request_timeout: int = 30,
        provider_factory: Optional[Callable[[str], Any]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.endpoints: List[str] = [e.strip() for e in endpoints if e and e.strip()]
        if not self.endpoints:
            raise NoProviderError("No RPC endpoints configured")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.min_switch_interval = min_switch_interval
        self.request_timeout = request_timeout

        self._provider_factory = provider_factory or self._create_provider
        self._sleep = sleep
        self._clock = clock
        self._provider = None
        self.cursor = ProviderCursor()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], **kwargs) -> 'ProviderPool':
        """Build a pool from validated settings.

        ``ALCHEMY_URL`` from the environment is appended as the last resort
        endpoint when set.
        """
        endpoints = list(settings.get('rpc_endpoints') or DEFAULT_ENDPOINTS)
        alchemy_url = os.environ.get('ALCHEMY_URL')
        if alchemy_url and alchemy_url not in endpoints:
            endpoints.append(alchemy_url)

        return cls(
            endpoints,
            max_retries=settings.get('max_retries', 3),
            initial_retry_delay=settings.get('initial_retry_delay', 1.0),
            max_retry_delay=settings.get('max_retry_delay', 30.0),
            min_switch_interval=settings.get('min_switch_interval', 60.0),
            request_timeout=settings.get('rpc_timeout', 30),
            **kwargs
        )

    def _create_provider(self, url: str) -> Web3:
        return Web3(Web3.HTTPProvider(url, request_kwargs={'timeout': self.request_timeout}))

    @property
    def current_index(self) -> int:
        return self.cursor.active_index

    @property
    def current_endpoint(self) -> str:
        return self.endpoints[self.cursor.active_index]

    @property
    def endpoint_count(self) -> int:
        return len(self.endpoints)

    def get_provider(self):
        """Return the web3 instance for the active endpoint, creating it if needed."""
        if self._provider is None:
            url = self.current_endpoint
            try:
                self._provider = self._provider_factory(url)
            except Exception as e:
                logger.error(f"Failed to create provider for {_mask_url(url)}: {e}")
                raise NoProviderError(f"Could not create provider for {_mask_url(url)}: {e}") from e
            logger.info(
                f"Initialized RPC provider with endpoint "
                f"{self.current_index + 1}/{self.endpoint_count}: {_mask_url(url)}"
            )
        return self._provider

    def _rotate(self) -> None:
        previous = self.cursor.active_index
        self.cursor.active_index = (previous + 1) % self.endpoint_count
        self.cursor.last_switch = self._clock()
        self._provider = None
        logger.info(
            f"Switched RPC provider from endpoint {previous + 1} to "
            f"{self.cursor.active_index + 1}/{self.endpoint_count}: {_mask_url(self.current_endpoint)}"
        )

    def _since_last_switch(self) -> Optional[float]:
        if self.cursor.last_switch is None:
            return None
        return self._clock() - self.cursor.last_switch

    def switch_provider(self) -> bool:
        """Rotate to the next endpoint unless the rotation cooldown is active.

        Returns:
            True if the pool rotated
        """
        since = self._since_last_switch()
        if since is not None and since < self.min_switch_interval:
            logger.debug(
                f"Skipping provider switch, only {since:.1f}s since last switch "
                f"(minimum {self.min_switch_interval}s)"
            )
            return False
        self._rotate()
        return True

    def force_switch(self) -> None:
        """Rotate to the next endpoint, ignoring the cooldown."""
        self._rotate()

    def stats(self) -> Dict[str, Any]:
        since = self._since_last_switch()
        return {
            'current_index': self.current_index,
            'current_endpoint': _mask_url(self.current_endpoint),
            'total_endpoints': self.endpoint_count,
            'endpoints': [_mask_url(url) for url in self.endpoints],
            'seconds_since_last_switch': round(since, 1) if since is not None else None,
        }

    async def execute(self, operation: Callable[[Any], Any], label: str = 'RPC call') -> Any:
        """Run ``operation(web3)`` with retry and failover.

        Args:
            operation: Callable receiving the active web3 instance
            label: Name used in log messages

        Returns:
            Whatever ``operation`` returns

        Raises:
            FailoverExhaustedError: Every allowed attempt failed with a provider error.
                The last error is kept as ``last_error`` and chained as ``__cause__``.
            Exception: Non-provider errors from ``operation`` are re-raised untouched
        """
        max_total_attempts = self.max_retries * self.endpoint_count
        total_attempts = 0
        last_error: Optional[BaseException] = None

        while total_attempts < max_total_attempts:
            provider = self.get_provider()

            for attempt in range(self.max_retries):
                total_attempts += 1
                try:
                    return operation(provider)
                except Exception as e:
                    last_error = e
                    provider_error = is_provider_error(e)
                    if not provider_error:
                        logger.debug(f"{label} failed with non-provider error: {e}")
                        raise

                    logger.warning(
                        f"{label} failed on endpoint {self.current_index + 1}/{self.endpoint_count} "
                        f"(attempt {attempt + 1}/{self.max_retries}): {e}"
                    )

                    action = next_action(
                        attempt,
                        total_attempts,
                        self.max_retries,
                        max_total_attempts,
                        self._since_last_switch(),
                        self.min_switch_interval,
                        provider_error=provider_error,
                        initial_delay=self.initial_retry_delay,
                        max_delay=self.max_retry_delay
                    )

                    if isinstance(action, Retry):
                        logger.debug(f"Retrying {label} in {action.delay:.2f}s")
                        await self._sleep(action.delay)
                        continue

                    if isinstance(action, Rotate):
                        self._rotate()
                        break

                    logger.error(f"{label} failed after {total_attempts} attempts ({action.reason}): {e}")
                    raise FailoverExhaustedError(label, total_attempts, e, action.reason) from e

        logger.error(f"{label} failed after {total_attempts} attempts: {last_error}")
        raise FailoverExhaustedError(label, total_attempts, last_error) from last_error

    async def get_block_number(self) -> int:
        return await self.execute(lambda w3: w3.eth.block_number, 'getBlockNumber')

    async def get_block(self, block_number: int):
        return await self.execute(lambda w3: w3.eth.get_block(block_number), f'getBlock({block_number})')

    async def get_logs(self, address: str, from_block: int, to_block: int) -> list:
        params = {'address': address, 'fromBlock': from_block, 'toBlock': to_block}
        return await self.execute(
            lambda w3: w3.eth.get_logs(params),
            f'queryEvents({from_block}-{to_block})'
        )

    async def get_chain_id(self) -> int:
        return await self.execute(lambda w3: w3.eth.chain_id, 'getChainId')

    async def call_contract(self, address: str, abi: list, method: str, *args) -> Any:
        """Call a view function on a contract through the pool."""
        def call(w3):
            contract = w3.eth.contract(address=address, abi=abi)
            return getattr(contract.functions, method)(*args).call()

        return await self.execute(call, f'contract.{method}()')
