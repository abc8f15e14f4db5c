"""RPC module for talking to Arbitrum Nova JSON-RPC endpoints with failover"""
from .exceptions import RPCError, ProviderError, NoProviderError, FailoverExhaustedError
from .policy import Retry, Rotate, Fail, is_provider_error, next_action, retry_delay
from .pool import DEFAULT_ENDPOINTS, ProviderCursor, ProviderPool

# Export pool and error types
__all__ = [
    # Error types
    'RPCError',
    'ProviderError',
    'NoProviderError',
    'FailoverExhaustedError',

    # Failover policy
    'Retry',
    'Rotate',
    'Fail',
    'is_provider_error',
    'next_action',
    'retry_delay',

    # Pool
    'DEFAULT_ENDPOINTS',
    'ProviderCursor',
    'ProviderPool',
]
