import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import AuthorizationFailure, error_message, is_not_authorized_error, is_rate_limit_error

log = logging.getLogger("red.github_bridge.retry")

T = TypeVar("T")


class BackoffPolicy:
    """
    Exponential backoff for a single GitHub mutation.

    Failures matching ``fatal`` abort at once as :class:`AuthorizationFailure`,
    failures matching ``retryable`` are retried after ``base_delay * 2 ** n``
    seconds (n being the number of failed attempts so far) until
    ``max_attempts`` calls have been made. Anything else is re-raised unchanged.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retryable: Callable[[BaseException], bool] = is_rate_limit_error,
        fatal: Callable[[BaseException], bool] = is_not_authorized_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retryable = retryable
        self.fatal = fatal
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except Exception as err:
                if self.fatal(err):
                    raise AuthorizationFailure(error_message(err) or "not authorized") from err
                if not self.retryable(err) or attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                log.warning("Rate limit hit, waiting %.0fms before retry %d...", delay * 1000, attempt)
                await self.sleep(delay)
