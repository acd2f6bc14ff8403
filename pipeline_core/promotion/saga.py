"""
Compensation Stack

Each successful mutating step pushes its reverse action; on failure the
stack is unwound newest first. Compensation failures are logged and do
not replace the original error.
"""

from typing import Any, Awaitable, Callable

from structlog import get_logger

logger = get_logger()


class CompensationStack:
    """LIFO stack of named async compensations."""

    def __init__(self):
        self._actions: list[tuple[str, Callable[..., Awaitable[Any]], tuple[Any, ...]]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, name: str, action: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Register ``action(*args)`` as the compensation for a completed step."""
        self._actions.append((name, action, args))

    def clear(self) -> None:
        """Forget all compensations (the run committed)."""
        self._actions.clear()

    async def unwind(self) -> list[str]:
        """
        Run compensations newest first.

        Returns:
            Names of compensations that completed
        """
        done: list[str] = []
        while self._actions:
            name, action, args = self._actions.pop()
            try:
                await action(*args)
            except Exception as e:
                logger.error("compensation_failed", compensation=name, error=str(e))
                continue
            logger.info("compensation_applied", compensation=name)
            done.append(name)
        return done
