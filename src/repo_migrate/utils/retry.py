"""Capped exponential backoff for transient failures."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

T = TypeVar('T')


def is_transient(error: BaseException) -> bool:
    """Return the ``transient`` flag of an error, defaulting to False."""
    return bool(getattr(error, 'transient', False))


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry policy: ``attempts`` tries, delays doubling from ``base_delay``."""

    attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 5.0

    @classmethod
    def from_config(cls, config) -> 'BackoffPolicy':
        return cls(
            attempts=config.attempts,
            base_delay=config.base_delay,
            factor=config.factor,
            max_delay=config.max_delay,
        )

    def delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Seconds to wait after the given (1-based) failed attempt.

        A rate limit error's ``retry_after`` hint is honoured but still capped.
        """
        delay = self.base_delay * (self.factor ** (attempt - 1))
        retry_after = getattr(error, 'retry_after', None)
        if retry_after:
            delay = max(delay, float(retry_after))
        return min(delay, self.max_delay)


def retry_sync(
    func: Callable[[], T],
    policy: BackoffPolicy,
    description: str = 'operation',
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds, retrying transient errors only.

    Args:
        func: Zero-argument callable
        policy: Backoff policy
        description: Name used in log messages
        sleep: Sleep function (replaceable in tests)

    Returns:
        The callable's result

    Raises:
        The last error once attempts are exhausted, or the first
        non-transient error immediately
    """
    attempt = 1
    while True:
        try:
            return func()
        except Exception as e:
            if not is_transient(e) or attempt >= policy.attempts:
                raise
            wait = policy.delay(attempt, e)
            logger.warning(
                f'{description} failed (attempt {attempt}/{policy.attempts}): {e}; '
                f'retrying in {wait:.1f}s'
            )
            sleep(wait)
            attempt += 1


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    description: str = 'operation',
) -> T:
    """Asynchronous counterpart of :func:`retry_sync`."""
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_transient(e) or attempt >= policy.attempts:
                raise
            wait = policy.delay(attempt, e)
            logger.warning(
                f'{description} failed (attempt {attempt}/{policy.attempts}): {e}; '
                f'retrying in {wait:.1f}s'
            )
            await asyncio.sleep(wait)
            attempt += 1
