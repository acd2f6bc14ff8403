"""
Bounded Retry Policy

One retry policy object shared by every external call so that attempts,
backoff and jitter are uniform and independently testable.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

from structlog import get_logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_random,
)

from ..config import PipelineConfig, get_config
from ..errors import TransientNetworkError

logger = get_logger()

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "retrying_external_call",
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome and outcome.failed else None,
    )


class RetryPolicy:
    """
    Bounded retry with exponential backoff and jitter.

    ``backoff=1`` with ``jitter_seconds=0`` gives a fixed delay.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        wait_seconds: float = 1.0,
        backoff: float = 2.0,
        max_wait_seconds: float = 10.0,
        jitter_seconds: float = 0.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.wait_seconds = wait_seconds
        self.backoff = backoff
        self.max_wait_seconds = max_wait_seconds
        self.jitter_seconds = jitter_seconds

    @classmethod
    def from_config(cls, settings: Optional[PipelineConfig] = None) -> "RetryPolicy":
        """Policy for provider API calls."""
        settings = settings or get_config()
        return cls(
            max_attempts=settings.http_max_attempts,
            wait_seconds=settings.http_retry_wait_seconds,
            max_wait_seconds=settings.http_retry_max_wait_seconds,
            jitter_seconds=settings.http_retry_jitter_seconds,
        )

    @classmethod
    def fixed(cls, tries: int, delay_seconds: float) -> "RetryPolicy":
        """Fixed-delay policy for probes and content checks."""
        return cls(max_attempts=tries, wait_seconds=delay_seconds, backoff=1.0,
                   max_wait_seconds=delay_seconds)

    def _wait(self):
        if self.backoff == 1.0:
            wait = wait_fixed(self.wait_seconds)
        else:
            wait = wait_exponential(
                multiplier=self.wait_seconds,
                exp_base=self.backoff,
                max=self.max_wait_seconds,
            )
        if self.jitter_seconds > 0:
            wait = wait + wait_random(0, self.jitter_seconds)
        return wait

    def retrying(
        self,
        retry_on: tuple[type[BaseException], ...] = (TransientNetworkError,),
    ) -> AsyncRetrying:
        """
        Raw tenacity controller for ``async for attempt in ...`` loops.

        The last exception is re-raised once attempts are exhausted.
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception_type(retry_on),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` retrying transient network errors only."""
        return await self.retrying()(fn, *args, **kwargs)
