"""
Bounded exponential-backoff retry for async operations.

Every provider call goes through this. Failures are not classified:
authentication and rate-limit errors use up the same attempts as a
dropped connection.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry an async operation with exponential backoff.

    The delay before attempt n (n >= 2) is base_delay * 2 ** (n - 2),
    so the defaults sleep 1s then 2s. When the last attempt fails the
    original exception is re-raised unchanged.

    Args:
        max_attempts: Total number of attempts, including the first
        base_delay: Delay in seconds before the second attempt
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def delay_for(self, attempt: int) -> float:
        """Get the sleep before the given attempt number (1-based)."""
        if attempt < 2:
            return 0.0
        return self.base_delay * 2 ** (attempt - 2)

    async def run(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run the operation until it succeeds or attempts are exhausted."""
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.delay_for(attempt))
            try:
                return await operation(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed: {e}; "
                    f"retrying in {self.delay_for(attempt + 1):.1f}s"
                )
        # Unreachable, the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """Convenience wrapper around RetryPolicy.run."""
    policy = policy or RetryPolicy(max_attempts=max_attempts, base_delay=base_delay)
    return await policy.run(operation)
