"""Exception types raised by the RPC provider pool"""
from typing import Optional


class RPCError(Exception):
    """Base exception for RPC errors"""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC Error [{code}] in {method}: {message}" if code else message)


class ProviderError(RPCError):
    """Transient, endpoint-specific failure (rate limit, timeout, dropped connection)"""
    pass


class NoProviderError(RPCError):
    """Raised when no RPC endpoint is configured or a provider cannot be created"""
    pass


class FailoverExhaustedError(RPCError):
    """Raised when every retry on every endpoint has failed for one operation

    The last underlying error is available as ``__cause__`` and ``last_error``.
    """
    def __init__(self, method: str, attempts: int, last_error: Optional[BaseException] = None,
                 reason: str = "retries exhausted"):
        self.attempts = attempts
        self.last_error = last_error
        self.reason = reason
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"{method} failed after {attempts} attempts ({reason}){detail}",
            method=method
        )
